from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import cv2
import numpy as np


@dataclass(frozen=True)
class CaptureInfo:
    fps: Optional[float]
    width: Optional[int]
    height: Optional[int]
    frame_count: Optional[int]


def read_image(path: str) -> np.ndarray:
    img = cv2.imread(path)
    if img is None:
        raise FileNotFoundError(f"Could not read image at path: {path}")
    return img


def open_capture(*, video: Optional[str] = None, webcam: Optional[int] = None) -> cv2.VideoCapture:
    if (video is None) == (webcam is None):
        raise ValueError("Exactly one of video/webcam must be provided.")

    if video is not None:
        cap = cv2.VideoCapture(video)
    else:
        cap = cv2.VideoCapture(int(webcam))

    if not cap.isOpened():
        raise RuntimeError("Failed to open video source.")
    return cap


def get_capture_info(cap: cv2.VideoCapture) -> CaptureInfo:
    fps = cap.get(cv2.CAP_PROP_FPS)
    if fps is None or fps <= 0:
        fps_val = None
    else:
        fps_val = float(fps)

    w = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
    h = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
    n = cap.get(cv2.CAP_PROP_FRAME_COUNT)
    w_val = int(w) if w and w > 0 else None
    h_val = int(h) if h and h > 0 else None
    n_val = int(n) if n and n > 0 else None

    return CaptureInfo(fps=fps_val, width=w_val, height=h_val, frame_count=n_val)


class CaptureSource:
    """
    Frame source over a `cv2.VideoCapture` that decodes into one reused buffer.

    Each call overwrites the previous frame, so a frame is only valid until the
    next call. Returns None once the stream ends.
    """

    def __init__(self, cap: cv2.VideoCapture):
        self.cap = cap
        self._buffer: Optional[np.ndarray] = None

    def __call__(self) -> Optional[np.ndarray]:
        if self._buffer is None:
            ok, frame = self.cap.read()
        else:
            ok, frame = self.cap.read(self._buffer)
        if not ok or frame is None:
            return None
        self._buffer = frame
        return frame

    def release(self) -> None:
        self.cap.release()
        self._buffer = None
