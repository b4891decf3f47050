"""
Core of the ID document detector.

A detector network followed by an NMS network, both exported to ONNX and
treated as opaque named-tensor functions. This package does the square
letterbox/blob preprocessing, runs the two models and turns the selected
rows into document boxes in original-frame pixels. Only NumPy and OpenCV
are needed beyond the inference runtime.
"""

from .config import DetectionConfig
from .errors import DetectionError, InferenceFailure, InvalidInput, ShapeMismatch
from .types import BoundingBox, Frame, TensorRuntime
from .letterbox import letterbox_pack, pad_to_square
from .postprocess import DocumentPostprocessor
from .runtime import DetectionPipeline, load_pipeline, find_project_root, resolve_path
from .visualize import draw_boxes

__all__ = [
    "DetectionConfig",
    "DetectionError",
    "InferenceFailure",
    "InvalidInput",
    "ShapeMismatch",
    "BoundingBox",
    "Frame",
    "TensorRuntime",
    "letterbox_pack",
    "pad_to_square",
    "DocumentPostprocessor",
    "DetectionPipeline",
    "load_pipeline",
    "find_project_root",
    "resolve_path",
    "draw_boxes",
]
