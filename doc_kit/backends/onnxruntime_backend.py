from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np


PathLike = Union[str, Path]
ModelSource = Union[PathLike, bytes, bytearray]


@dataclass(frozen=True)
class OnnxRuntimeBackendConfig:
    """
    Configuration for ONNX Runtime inference.

    - providers: ORT execution providers (e.g., ["CUDAExecutionProvider", "CPUExecutionProvider"])
    """

    providers: Optional[Sequence[str]] = None


class OnnxRuntimeBackend:
    """
    One ONNX Runtime session exposed as a named-tensor runtime.

    `model` is a path on disk or the raw model bytes handed over by a loader.
    `run()` feeds every named input and returns every session output by name.
    """

    def __init__(self, model: ModelSource, cfg: OnnxRuntimeBackendConfig = OnnxRuntimeBackendConfig()):
        try:
            import onnxruntime as ort  # type: ignore
        except Exception as e:  # pragma: no cover
            raise ImportError(
                "onnxruntime is required for the ONNX backend. Install it with `pip install onnxruntime` "
                "(or `onnxruntime-gpu`)."
            ) from e

        self._ort = ort
        if isinstance(model, (bytes, bytearray)):
            self.model_path: Optional[Path] = None
            source: Union[str, bytes] = bytes(model)
        else:
            self.model_path = Path(model)
            if not self.model_path.exists():
                raise FileNotFoundError(str(self.model_path))
            source = str(self.model_path)

        sess_opts = ort.SessionOptions()
        providers = list(cfg.providers) if cfg.providers is not None else None
        self.session = ort.InferenceSession(source, sess_options=sess_opts, providers=providers)

        self.input_names: Tuple[str, ...] = tuple(i.name for i in self.session.get_inputs())
        self.output_names: Tuple[str, ...] = tuple(o.name for o in self.session.get_outputs())

    @property
    def input_shape(self) -> Tuple[Union[int, str, None], ...]:
        # Dynamic dims come back as strings or None.
        return tuple(self.session.get_inputs()[0].shape)

    @property
    def providers_in_use(self) -> Sequence[str]:
        # ORT returns providers in priority order for this session.
        return tuple(self.session.get_providers())

    @property
    def available_providers(self) -> Sequence[str]:
        return tuple(self._ort.get_available_providers())

    def run(self, inputs: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        outputs = self.session.run(list(self.output_names), dict(inputs))
        return dict(zip(self.output_names, outputs))
