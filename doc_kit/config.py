from dataclasses import dataclass
from typing import Tuple

import numpy as np


@dataclass(frozen=True)
class DetectionConfig:
    """
    Scalar settings for one detector + NMS model pair.

    `min_aspect_ratio` and `target_class_id` are tuned to the ID-card model
    (class 3, width/height above 0.8).
    """

    target_size: int = 640
    top_k: int = 100
    iou_threshold: float = 0.45
    conf_threshold: float = 0.2
    class_threshold: float = 0.2
    target_class_id: int = 3
    min_aspect_ratio: float = 0.8

    def __post_init__(self) -> None:
        if isinstance(self.target_size, bool) or int(self.target_size) <= 0:
            raise ValueError("target_size must be > 0")
        if isinstance(self.top_k, bool) or int(self.top_k) < 1:
            raise ValueError("top_k must be >= 1")
        for name in ("iou_threshold", "conf_threshold", "class_threshold"):
            value = float(getattr(self, name))
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1]")
        if isinstance(self.target_class_id, bool) or int(self.target_class_id) < 0:
            raise ValueError("target_class_id must be >= 0")
        if float(self.min_aspect_ratio) < 0:
            raise ValueError("min_aspect_ratio must be >= 0")

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        # [batch, channels, width, height]
        return 1, 3, int(self.target_size), int(self.target_size)

    def nms_config_tensor(self) -> np.ndarray:
        return np.array([self.top_k, self.iou_threshold, self.conf_threshold], dtype=np.float32)
