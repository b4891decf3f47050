"""
Timed driver that pulls frames, runs detection and hands results to a renderer.

The loop owns the only mutable state of a streaming session: the streaming
flag, the worker thread and the frame counter. Detection calls never overlap:
ticks run one after another on a single thread, with a minimum interval
between frame pulls.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, List, Optional

import numpy as np

from doc_kit.errors import DetectionError
from doc_kit.types import BoundingBox

LOGGER = logging.getLogger(__name__)

FrameSource = Callable[[], Optional[np.ndarray]]
Detector = Callable[[np.ndarray], List[BoundingBox]]


@dataclass(frozen=True)
class FrameResult:
    index: int
    boxes: List[BoundingBox] = field(default_factory=list)
    elapsed_ms: float = 0.0
    error: Optional[DetectionError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


Renderer = Callable[[np.ndarray, FrameResult], None]
ErrorHandler = Callable[[FrameResult], None]


class FrameLoop:
    def __init__(
        self,
        pipeline: Detector,
        source: FrameSource,
        renderer: Optional[Renderer] = None,
        *,
        interval_s: float = 0.01,
        on_error: Optional[ErrorHandler] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if interval_s < 0:
            raise ValueError("interval_s must be >= 0")
        self.pipeline = pipeline
        self.source = source
        self.renderer = renderer
        self.interval_s = float(interval_s)
        self.on_error = on_error
        self._clock = clock
        self._sleep = sleep
        self._streaming = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._frame_idx = 0
        self._last_pull: Optional[float] = None

    @property
    def is_streaming(self) -> bool:
        return self._streaming.is_set()

    def start(self, max_frames: Optional[int] = None) -> None:
        """Run the loop on a background thread."""
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("FrameLoop is already running.")
        self._streaming.set()
        self._thread = threading.Thread(target=self._run, args=(max_frames,), name="frame-loop", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Clear the streaming flag and wait for the worker thread.

        An in-flight detection finishes; its result is dropped, not rendered.
        """
        self._streaming.clear()
        thread = self._thread
        if thread is None or thread is threading.current_thread():
            return
        thread.join(timeout)
        if not thread.is_alive():
            self._thread = None

    def run(self, max_frames: Optional[int] = None) -> int:
        """
        Run the loop on the calling thread until stopped, the source ends or
        `max_frames` frames were pulled. Returns the number of frames pulled.
        """
        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("FrameLoop is already running on a background thread.")
        self._streaming.set()
        return self._run(max_frames)

    def _run(self, max_frames: Optional[int]) -> int:
        pulled = 0
        try:
            while self._streaming.is_set():
                if max_frames is not None and pulled >= max_frames:
                    break
                self._wait_for_slot()
                if not self._streaming.is_set():
                    break
                if self.tick() is None:
                    break
                pulled += 1
        finally:
            self._streaming.clear()
        return pulled

    def _wait_for_slot(self) -> None:
        if self._last_pull is None:
            return
        remaining = self.interval_s - (self._clock() - self._last_pull)
        if remaining > 0:
            self._sleep(remaining)

    def tick(self) -> Optional[FrameResult]:
        """
        Pull one frame, detect, and forward the result.

        Returns None when the source is exhausted. A `DetectionError` is
        logged, passed to `on_error` and returned inside the result; the
        loop keeps going. A call that finishes after `stop()` reaches neither
        the renderer nor `on_error`.
        """
        was_streaming = self._streaming.is_set()
        frame = self.source()
        self._last_pull = self._clock()
        if frame is None:
            self._streaming.clear()
            return None

        index = self._frame_idx
        self._frame_idx += 1

        start = self._clock()
        try:
            boxes = self.pipeline(frame)
            error = None
        except DetectionError as exc:
            LOGGER.warning("Frame %d skipped: %s: %s", index, type(exc).__name__, exc)
            boxes, error = [], exc
        result = FrameResult(index=index, boxes=boxes, elapsed_ms=(self._clock() - start) * 1000.0, error=error)

        if was_streaming and not self._streaming.is_set():
            LOGGER.debug("Frame %d finished after stop; result dropped", index)
            return result

        if error is not None:
            if self.on_error is not None:
                self.on_error(result)
            return result

        if self.renderer is not None:
            self.renderer(frame, result)
        return result
