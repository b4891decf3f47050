from typing import Tuple, Union

import numpy as np

from .errors import InvalidInput
from .types import COLOR_ORDERS, Frame, FrameLike, as_frame


def _require_cv2():
    try:
        import cv2  # type: ignore
    except Exception as e:  # pragma: no cover
        raise ImportError("OpenCV is required for preprocessing. Install with `pip install opencv-python`.") from e
    return cv2


def _check_frame(frame: Frame) -> None:
    image = frame.image
    if image.ndim not in (2, 3):
        raise InvalidInput(f"Expected image shape (H, W) or (H, W, C), got {image.shape}")
    if frame.width == 0 or frame.height == 0:
        raise InvalidInput(f"Frame has zero width or height: {image.shape}")
    expected = COLOR_ORDERS[frame.color_order]
    if frame.channel_count != expected:
        raise InvalidInput(
            f"{frame.color_order} frame must have {expected} channel(s), got {frame.channel_count}"
        )


def _pixel_array(image: np.ndarray) -> np.ndarray:
    # OpenCV resizes and packs only 8-bit and float32 pixels.
    if image.dtype == np.uint8 or image.dtype == np.float32:
        return image
    if image.dtype == np.bool_ or not (np.issubdtype(image.dtype, np.integer) or np.issubdtype(image.dtype, np.floating)):
        raise InvalidInput(f"Unsupported frame dtype: {image.dtype}")
    return image.astype(np.float32)


def pad_to_square(image: np.ndarray) -> Tuple[np.ndarray, float, float]:
    """
    Pad the shorter side with black so the image becomes square.

    Padding goes to the bottom/right only, so model-space coordinates map
    back to the original frame by scaling alone.

    Returns:
        padded: new (side, side[, C]) array, side = max(width, height)
        x_ratio: side / width
        y_ratio: side / height
    """
    cv2 = _require_cv2()

    h, w = image.shape[:2]
    max_size = max(h, w)
    x_ratio = max_size / w
    y_ratio = max_size / h
    padded = cv2.copyMakeBorder(image, 0, max_size - h, 0, max_size - w, cv2.BORDER_CONSTANT, value=0)
    return padded, x_ratio, y_ratio


def to_bgr(image: np.ndarray, color_order: str) -> np.ndarray:
    cv2 = _require_cv2()

    codes = {
        "RGB": cv2.COLOR_RGB2BGR,
        "BGRA": cv2.COLOR_BGRA2BGR,
        "RGBA": cv2.COLOR_RGBA2BGR,
        "GRAY": cv2.COLOR_GRAY2BGR,
    }
    if color_order == "BGR":
        return image.copy()
    return cv2.cvtColor(image, codes[color_order])


def letterbox_pack(
    frame: FrameLike,
    target_size: Union[int, Tuple[int, int]] = 640,
    *,
    swap_rb: bool = True,
) -> Tuple[np.ndarray, float, float]:
    """
    Pad to square, convert to BGR, resize and pack into an NCHW float32 blob.

    Pixel values are divided by 255 (no mean subtraction). With `swap_rb`
    the blob is in RGB channel order.

    Args:
        frame: `Frame` or bare OpenCV array
        target_size: model input side, or (width, height)
    Returns:
        blob: (1, 3, height, width) float32
        x_ratio, y_ratio: padded side over original width/height
    """
    cv2 = _require_cv2()

    frame = as_frame(frame)
    _check_frame(frame)
    if isinstance(target_size, int):
        target_size = (target_size, target_size)
    target_w, target_h = target_size

    padded, x_ratio, y_ratio = pad_to_square(_pixel_array(frame.image))
    bgr = to_bgr(padded, frame.color_order)
    blob = cv2.dnn.blobFromImage(
        bgr,
        scalefactor=1 / 255.0,
        size=(int(target_w), int(target_h)),
        mean=(0, 0, 0),
        swapRB=swap_rb,
        crop=False,
    )
    return blob.astype(np.float32, copy=False), x_ratio, y_ratio
