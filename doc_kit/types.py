from dataclasses import dataclass
from typing import Mapping, Optional, Protocol, Sequence, Tuple, Union

import numpy as np

from .errors import InvalidInput

# Channel count expected for each supported color order.
COLOR_ORDERS = {
    "BGR": 3,
    "RGB": 3,
    "BGRA": 4,
    "RGBA": 4,
    "GRAY": 1,
}


@dataclass(frozen=True)
class Frame:
    """
    Image buffer handed to the pipeline for one call.

    `image` is an (H, W) or (H, W, C) array; `color_order` names the channel
    layout. The pipeline works on copies and never keeps a reference past the call.
    """

    image: np.ndarray
    color_order: str = "BGR"

    def __post_init__(self) -> None:
        if self.color_order not in COLOR_ORDERS:
            raise InvalidInput(f"Unsupported color order: {self.color_order!r}")

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def channel_count(self) -> int:
        return 1 if self.image.ndim == 2 else int(self.image.shape[2])


@dataclass(frozen=True)
class BoundingBox:
    """
    Detected document box in the original frame's pixel coordinates.

    Geometry is top-left anchored and floor-truncated; it may overshoot the
    frame edge by one pixel of rounding and is not clamped.
    """

    class_id: int
    probability: float
    x: int
    y: int
    width: int
    height: int

    def as_xywh(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height

    def as_xyxy(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.x + self.width, self.y + self.height


class TensorRuntime(Protocol):
    """
    A loaded model: named input tensors in, named output tensors out.
    """

    def run(self, inputs: Mapping[str, np.ndarray]) -> Mapping[str, np.ndarray]:
        ...


FrameLike = Union[Frame, np.ndarray]


def as_frame(frame: FrameLike) -> Frame:
    """
    Wrap a bare OpenCV array as a `Frame` (BGR, or GRAY / BGRA by channel count).
    """

    if isinstance(frame, Frame):
        return frame
    if frame is None or not hasattr(frame, "shape"):
        raise InvalidInput("frame must be a NumPy array or a Frame.")
    if frame.ndim == 2 or (frame.ndim == 3 and frame.shape[2] == 1):
        return Frame(frame, "GRAY")
    if frame.ndim == 3 and frame.shape[2] == 4:
        return Frame(frame, "BGRA")
    return Frame(frame, "BGR")
