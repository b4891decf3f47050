from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .config import DetectionConfig
from .errors import DetectionError, InferenceFailure, InvalidInput, ShapeMismatch
from .letterbox import letterbox_pack
from .postprocess import DocumentPostprocessor
from .types import BoundingBox, FrameLike, TensorRuntime, as_frame

LOGGER = logging.getLogger(__name__)

PathLike = Union[str, Path]
ModelSource = Union[PathLike, bytes, bytearray]

# Tensor names of the exported detector / NMS pair.
DETECTOR_INPUT = "images"
DETECTOR_OUTPUT = "output0"
NMS_DETECTION_INPUT = "detection"
NMS_CONFIG_INPUT = "config"
NMS_OUTPUT = "selected_idx"


def find_project_root(
    start: Optional[PathLike] = None,
    markers: Sequence[str] = ("pyproject.toml", "setup.py", ".git", "requirements.txt"),
) -> Path:
    """
    Best-effort project root discovery, so `Models/...` paths work from any cwd.
    """

    p = Path(start) if start is not None else Path.cwd()
    p = p.resolve()

    if p.is_file():
        p = p.parent

    for parent in (p, *p.parents):
        for m in markers:
            if (parent / m).exists():
                return parent
    return p


def resolve_path(path: PathLike, root: Optional[PathLike] = "auto") -> Path:
    """
    Resolve `path` to an absolute Path.

    - Absolute paths are returned as-is.
    - Relative paths are resolved against `root` if provided, the project root otherwise.
    """

    p = Path(path)
    if p.is_absolute():
        return p

    if root == "auto" or root is None:
        base = find_project_root()
    else:
        base = Path(root).resolve()

    return (base / p).resolve()


@dataclass(frozen=True)
class PreprocessResult:
    blob: np.ndarray
    orig_size: Tuple[int, int]
    x_ratio: float
    y_ratio: float


class DetectionPipeline:
    """
    Preprocess (square letterbox) -> detector -> NMS model -> decode/filter.

    Both models are opaque named-tensor runtimes. The pipeline holds no state
    between calls besides the two handles and the config, and never runs two
    inferences on the same pair at once.
    """

    def __init__(
        self,
        detector: TensorRuntime,
        nms: TensorRuntime,
        cfg: DetectionConfig = DetectionConfig(),
        *,
        swap_rb: bool = True,
    ):
        self.detector = detector
        self.nms = nms
        self.cfg = cfg
        self.swap_rb = swap_rb
        self.post = DocumentPostprocessor(cfg)
        self._lock = threading.Lock()
        self._check_input_shape()

    @property
    def input_shape(self) -> Tuple[int, int, int, int]:
        return self.cfg.input_shape

    def _check_input_shape(self) -> None:
        declared = getattr(self.detector, "input_shape", None)
        if declared is None:
            return
        expected = self.input_shape
        if len(declared) != len(expected):
            raise InvalidInput(f"Detector expects input rank {len(declared)}, pipeline packs {expected}")
        for have, want in zip(declared, expected):
            if isinstance(have, (int, np.integer)) and int(have) != want:
                raise InvalidInput(f"Detector input shape {tuple(declared)} does not match {expected}")

    def preprocess(self, frame: FrameLike) -> PreprocessResult:
        frame = as_frame(frame)
        _, _, model_w, model_h = self.input_shape
        blob, x_ratio, y_ratio = letterbox_pack(frame, (model_w, model_h), swap_rb=self.swap_rb)
        return PreprocessResult(blob=blob, orig_size=(frame.width, frame.height), x_ratio=x_ratio, y_ratio=y_ratio)

    def _run(self, stage: str, handle: TensorRuntime, inputs: Mapping[str, np.ndarray], output: str) -> np.ndarray:
        try:
            outputs = handle.run(inputs)
        except DetectionError:
            raise
        except Exception as exc:
            raise InferenceFailure(f"{stage} inference failed: {exc}") from exc
        if outputs is None or output not in outputs:
            raise ShapeMismatch(f"{stage} model did not return '{output}'")
        return np.asarray(outputs[output])

    def infer(self, blob: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Run the detector on `blob`, then the NMS model on its output.

        Returns (output0, selected_idx).
        """

        with self._lock:
            output0 = self._run("detector", self.detector, {DETECTOR_INPUT: blob}, DETECTOR_OUTPUT)
            selected_idx = self._run(
                "nms",
                self.nms,
                {NMS_DETECTION_INPUT: output0, NMS_CONFIG_INPUT: self.cfg.nms_config_tensor()},
                NMS_OUTPUT,
            )
        return output0, selected_idx

    def detect(self, frame: FrameLike) -> List[BoundingBox]:
        prep = self.preprocess(frame)
        output0, selected_idx = self.infer(prep.blob)
        boxes = self.post.process(output0, selected_idx, prep.x_ratio, prep.y_ratio)
        LOGGER.debug("frame %dx%d: %d selected, %d kept", *prep.orig_size, selected_idx.size, len(boxes))
        return boxes

    __call__ = detect

    def warmup(self) -> None:
        """
        Push one all-zero tensor through both models so lazy runtime setup
        happens before the first real frame.
        """

        LOGGER.info("Warming up models with input shape %s", self.input_shape)
        self.infer(np.zeros(self.input_shape, dtype=np.float32))


def load_pipeline(
    detector_model: ModelSource,
    nms_model: ModelSource,
    *,
    cfg: DetectionConfig = DetectionConfig(),
    root: Optional[PathLike] = "auto",
    onnx_providers: Optional[Sequence[str]] = None,
    swap_rb: bool = True,
    warmup: bool = True,
) -> DetectionPipeline:
    """
    Create a warmed-up pipeline for a detector / NMS model pair.

    Typical usage:
        pipe = load_pipeline("Models/id-1v1.onnx", "Models/nms-weight.onnx")

    Args:
        detector_model, nms_model: model paths (relative paths resolve against
            the project root by default) or raw model bytes
        root: base directory for relative model paths ("auto" uses best-effort project root)
        onnx_providers: ORT execution providers, in priority order
        warmup: run one zero tensor through both models before returning
    """

    from .backends.onnxruntime_backend import OnnxRuntimeBackend, OnnxRuntimeBackendConfig

    ort_cfg = OnnxRuntimeBackendConfig(providers=onnx_providers)

    def _backend(model: ModelSource) -> OnnxRuntimeBackend:
        if isinstance(model, (bytes, bytearray)):
            return OnnxRuntimeBackend(model, ort_cfg)
        path = resolve_path(model, root=root)
        LOGGER.info("Loading model %s", path)
        return OnnxRuntimeBackend(path, ort_cfg)

    pipeline = DetectionPipeline(_backend(detector_model), _backend(nms_model), cfg, swap_rb=swap_rb)
    if warmup:
        pipeline.warmup()
    return pipeline
