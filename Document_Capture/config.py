from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from doc_kit.config import DetectionConfig

DEFAULT_DETECTOR_MODEL = "Models/id-1v1.onnx"
DEFAULT_NMS_MODEL = "Models/nms-weight.onnx"
DEFAULT_INTERVAL_MS = 10.0


@dataclass(frozen=True)
class CaptureProfile:
    schema_version: int
    detector_model: str = DEFAULT_DETECTOR_MODEL
    nms_model: str = DEFAULT_NMS_MODEL
    detection: DetectionConfig = DetectionConfig()
    interval_ms: float = DEFAULT_INTERVAL_MS
    class_names: Dict[int, str] = field(default_factory=dict)
    notes: Optional[str] = None

    def __post_init__(self) -> None:
        if self.schema_version != 1:
            raise ValueError("capture profile schema_version must be 1")
        if self.interval_ms < 0:
            raise ValueError("interval_ms must be >= 0")

    @property
    def interval_s(self) -> float:
        return self.interval_ms / 1000.0


def _require_int(payload: Dict[str, Any], key: str) -> int:
    if key not in payload:
        raise ValueError(f"Missing required key: {key}")
    value = payload[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_number(payload: Dict[str, Any], key: str, default: float) -> float:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return float(value)


def _optional_int(payload: Dict[str, Any], key: str, default: int) -> int:
    value = payload.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return int(value)


def _optional_str(payload: Dict[str, Any], key: str, default: str) -> str:
    value = payload.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} must be a non-empty string")
    return value


def _class_names(payload: Dict[str, Any]) -> Dict[int, str]:
    raw = payload.get("class_names", {})
    if not isinstance(raw, dict):
        raise ValueError("class_names must be an object of {id: name}")
    names: Dict[int, str] = {}
    for key, value in raw.items():
        if not str(key).isdigit() or not isinstance(value, str):
            raise ValueError("class_names must map integer ids to strings")
        names[int(key)] = value
    return names


def load_capture_profile(path: Path) -> CaptureProfile:
    if not path.exists():
        raise FileNotFoundError(f"Capture profile not found: {path}")
    raw = path.read_text(encoding="utf-8")
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid capture profile JSON: {path}") from exc
    if not isinstance(payload, dict):
        raise ValueError("Capture profile must be a JSON object")

    allowed = {
        "schema_version",
        "detector_model",
        "nms_model",
        "target_size",
        "top_k",
        "iou_threshold",
        "conf_threshold",
        "class_threshold",
        "target_class_id",
        "min_aspect_ratio",
        "interval_ms",
        "class_names",
        "notes",
    }
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValueError(f"Unknown capture profile keys: {unknown}")

    defaults = DetectionConfig()
    detection = DetectionConfig(
        target_size=_optional_int(payload, "target_size", defaults.target_size),
        top_k=_optional_int(payload, "top_k", defaults.top_k),
        iou_threshold=_optional_number(payload, "iou_threshold", defaults.iou_threshold),
        conf_threshold=_optional_number(payload, "conf_threshold", defaults.conf_threshold),
        class_threshold=_optional_number(payload, "class_threshold", defaults.class_threshold),
        target_class_id=_optional_int(payload, "target_class_id", defaults.target_class_id),
        min_aspect_ratio=_optional_number(payload, "min_aspect_ratio", defaults.min_aspect_ratio),
    )

    notes = payload.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValueError("notes must be a string if provided")

    return CaptureProfile(
        schema_version=_require_int(payload, "schema_version"),
        detector_model=_optional_str(payload, "detector_model", DEFAULT_DETECTOR_MODEL),
        nms_model=_optional_str(payload, "nms_model", DEFAULT_NMS_MODEL),
        detection=detection,
        interval_ms=_optional_number(payload, "interval_ms", DEFAULT_INTERVAL_MS),
        class_names=_class_names(payload),
        notes=notes,
    )
