from typing import List

import numpy as np

from .config import DetectionConfig
from .errors import ShapeMismatch
from .types import BoundingBox


class DocumentPostprocessor:
    """
    Turns the detector output and the NMS selection into document boxes.

    Layout of `output0` (per image): (1, N, 5 + C) rows of
    [cx, cy, w, h, objectness, class_scores...] in model-input pixels.
    `selected_idx` holds row indices chosen by the NMS model, in its order.

    IoU suppression is never redone here; rows are only classified, filtered
    and mapped back to the original frame.
    """

    def __init__(self, cfg: DetectionConfig):
        self.cfg = cfg

    def process(
        self,
        output0: np.ndarray,
        selected_idx: np.ndarray,
        x_ratio: float,
        y_ratio: float,
    ) -> List[BoundingBox]:
        """
        Decode the selected rows and keep the target-class document boxes.

        Args:
            output0: raw detector output
            selected_idx: indices returned by the NMS model
            x_ratio, y_ratio: padded side over original width/height
        """

        table = self._rows(output0)
        idx = self._indices(selected_idx, table.shape[0])
        if idx.size == 0:
            return []

        # Float64 math over the float32 tensor keeps floor() results reproducible.
        rows = table[idx].astype(np.float64)
        cx, cy, w, h = rows[:, 0], rows[:, 1], rows[:, 2], rows[:, 3]
        objectness = rows[:, 4]
        class_scores = rows[:, 5:]

        # np.argmax returns the first maximal index on ties.
        labels = np.argmax(class_scores, axis=1)
        scores = class_scores[np.arange(class_scores.shape[0]), labels] * objectness

        keep = (scores >= self.cfg.class_threshold) & (labels == self.cfg.target_class_id)

        xs = np.floor((cx - 0.5 * w) * x_ratio)
        ys = np.floor((cy - 0.5 * h) * y_ratio)
        widths = np.floor(w * x_ratio)
        heights = np.floor(h * y_ratio)
        keep &= self._aspect_ok(widths, heights)

        finite = np.isfinite(xs) & np.isfinite(ys) & np.isfinite(widths) & np.isfinite(heights)
        bad = np.flatnonzero(keep & ~finite)
        if bad.size:
            raise ShapeMismatch(f"selected rows {idx[bad].tolist()} have non-finite box geometry")

        return [
            BoundingBox(
                class_id=int(labels[i]),
                probability=float(scores[i]),
                x=int(xs[i]),
                y=int(ys[i]),
                width=int(widths[i]),
                height=int(heights[i]),
            )
            for i in np.flatnonzero(keep)
        ]

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _rows(self, output0: np.ndarray) -> np.ndarray:
        p = np.asarray(output0)
        if p.ndim != 3 or p.shape[0] != 1:
            raise ShapeMismatch(f"Expected detector output of shape (1, N, 5 + C), got {p.shape}")
        if p.shape[2] < 6:
            raise ShapeMismatch(f"Detector rows need at least 6 values (4 box + objectness + 1 class), got {p.shape[2]}")
        return p[0]

    def _indices(self, selected_idx: np.ndarray, num_rows: int) -> np.ndarray:
        idx = np.asarray(selected_idx)
        if idx.size == 0:
            return np.empty((0,), dtype=np.int64)
        if idx.ndim > 1 and sum(d != 1 for d in idx.shape) > 1:
            raise ShapeMismatch(f"selected_idx must be a flat index list, got shape {idx.shape}")
        idx = idx.reshape(-1)
        if not np.issubdtype(idx.dtype, np.integer):
            if not np.all(np.mod(idx, 1) == 0):
                raise ShapeMismatch("selected_idx contains non-integer values")
        idx = idx.astype(np.int64)
        bad = (idx < 0) | (idx >= num_rows)
        if bad.any():
            raise ShapeMismatch(f"selected_idx {idx[bad].tolist()} out of range for {num_rows} rows")
        return idx

    def _aspect_ok(self, widths: np.ndarray, heights: np.ndarray) -> np.ndarray:
        # x/0 is +inf (kept), 0/0 is NaN (rejected).
        with np.errstate(divide="ignore", invalid="ignore"):
            aspect = widths / heights
        return aspect > self.cfg.min_aspect_ratio
