"""
App layer of the ID document capture tool, built on top of `doc_kit`.

`doc_kit` stays free of any capture or display code; this package holds
- the capture profile (models, thresholds, frame interval)
- frame sources (image files, video files, webcams)
- the `FrameLoop` streaming controller
- the command-line runner
"""

from __future__ import annotations

from .config import CaptureProfile, load_capture_profile
from .frame_loop import FrameLoop, FrameResult
from .ingest import CaptureInfo, CaptureSource, get_capture_info, open_capture, read_image

__all__ = [
    "CaptureProfile",
    "load_capture_profile",
    "FrameLoop",
    "FrameResult",
    "CaptureInfo",
    "CaptureSource",
    "get_capture_info",
    "open_capture",
    "read_image",
]
