from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import cv2
import numpy as np
from tqdm import tqdm

from doc_kit import DetectionConfig, DetectionPipeline, draw_boxes, load_pipeline
from doc_kit.types import BoundingBox

from Document_Capture.config import CaptureProfile, load_capture_profile
from Document_Capture.frame_loop import FrameLoop, FrameResult
from Document_Capture.ingest import CaptureSource, get_capture_info, open_capture, read_image

WINDOW_NAME = "document capture"


def setup_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _parse_ort_providers(raw: Optional[str]) -> Optional[List[str]]:
    if raw is None:
        return None
    parts = [p.strip().strip("'\"`") for p in str(raw).split(",")]
    return [p for p in parts if p] or None


def _pick(cli_value, profile_value):
    return profile_value if cli_value is None else cli_value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Detect ID documents in an image, a video file or a webcam stream.")
    src = parser.add_mutually_exclusive_group(required=True)
    src.add_argument("--image", default=None, help="Path to an input image.")
    src.add_argument("--video", default=None, help="Path to an input video file.")
    src.add_argument("--webcam", type=int, default=None, help="Webcam index (e.g., 0).")

    parser.add_argument("--profile", default=None, help="Capture profile JSON (models, thresholds, interval).")
    parser.add_argument("--detector-model", default=None, help="Path to the detector ONNX model.")
    parser.add_argument("--nms-model", default=None, help="Path to the NMS ONNX model.")
    parser.add_argument("--imgsz", type=int, default=None, help="Model input size (square).")
    parser.add_argument("--topk", type=int, default=None, help="Max boxes the NMS model may return.")
    parser.add_argument("--iou", type=float, default=None, help="IoU threshold passed to the NMS model.")
    parser.add_argument("--conf", type=float, default=None, help="Confidence threshold passed to the NMS model.")
    parser.add_argument("--class-threshold", type=float, default=None, help="Min class score x objectness to keep a box.")
    parser.add_argument("--target-class", type=int, default=None, help="Class id of the document to keep.")
    parser.add_argument("--min-aspect", type=float, default=None, help="Keep boxes with width/height above this.")
    parser.add_argument("--interval-ms", type=float, default=None, help="Minimum time between frame pulls.")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--show", action="store_true", help="Show a window with the detected boxes (q/Esc quits).")
    parser.add_argument("--out", default=None, help="Optional output path (image or video) to save the visualization.")
    parser.add_argument("--max-frames", type=int, default=0, help="Stop after N frames (0 = no limit).")
    parser.add_argument("--no-warmup", action="store_true", help="Skip the zero-tensor warm-up run.")
    parser.add_argument("--log-level", default="INFO", help="Logging level (DEBUG, INFO, WARNING, ...).")
    return parser


def resolve_profile(args: argparse.Namespace) -> CaptureProfile:
    """
    Merge the optional profile file with CLI flags; flags win when given.
    """
    base = load_capture_profile(Path(args.profile)) if args.profile else CaptureProfile(schema_version=1)
    det = base.detection
    detection = DetectionConfig(
        target_size=_pick(args.imgsz, det.target_size),
        top_k=_pick(args.topk, det.top_k),
        iou_threshold=_pick(args.iou, det.iou_threshold),
        conf_threshold=_pick(args.conf, det.conf_threshold),
        class_threshold=_pick(args.class_threshold, det.class_threshold),
        target_class_id=_pick(args.target_class, det.target_class_id),
        min_aspect_ratio=_pick(args.min_aspect, det.min_aspect_ratio),
    )
    return CaptureProfile(
        schema_version=base.schema_version,
        detector_model=_pick(args.detector_model, base.detector_model),
        nms_model=_pick(args.nms_model, base.nms_model),
        detection=detection,
        interval_ms=_pick(args.interval_ms, base.interval_ms),
        class_names=dict(base.class_names),
        notes=base.notes,
    )


def _print_boxes(boxes: Sequence[BoundingBox], class_names: Dict[int, str]) -> None:
    for box in boxes:
        name = class_names.get(box.class_id, str(box.class_id))
        print(name, f"{box.probability:.3f}", box.as_xywh())


def run_image(args: argparse.Namespace, pipeline: DetectionPipeline, profile: CaptureProfile) -> int:
    img = read_image(args.image)
    boxes = pipeline.detect(img)
    _print_boxes(boxes, profile.class_names)

    vis = draw_boxes(img, boxes, class_names=profile.class_names)
    if args.out:
        ok = cv2.imwrite(args.out, vis)
        if not ok:
            raise RuntimeError(f"Failed to write output image: {args.out}")
        print(f"Wrote: {args.out}")

    if args.show:
        cv2.imshow(WINDOW_NAME, vis)
        cv2.waitKey(0)
        cv2.destroyAllWindows()
    return 0


def run_stream(args: argparse.Namespace, pipeline: DetectionPipeline, profile: CaptureProfile) -> int:
    if args.max_frames < 0:
        raise ValueError("--max-frames must be >= 0")

    cap = open_capture(video=args.video, webcam=args.webcam)
    info = get_capture_info(cap)
    source = CaptureSource(cap)

    writer: Optional[cv2.VideoWriter] = None
    pbar = tqdm(total=info.frame_count, unit="frame", desc="detect") if args.video is not None else None
    loop: Optional[FrameLoop] = None

    def render(frame: np.ndarray, result: FrameResult) -> None:
        nonlocal writer
        if pbar is not None:
            pbar.update(1)
        else:
            print(f"Time: {result.elapsed_ms:.0f}ms boxes={len(result.boxes)}")
        if not (args.show or args.out):
            return

        if frame.ndim == 3 and frame.shape[2] == 3:
            vis = draw_boxes(frame, result.boxes, class_names=profile.class_names)
        else:
            vis = frame
        if args.out and writer is None:
            fps = info.fps or 30.0
            h, w = vis.shape[:2]
            fourcc = cv2.VideoWriter_fourcc(*"mp4v")
            writer = cv2.VideoWriter(args.out, fourcc, fps, (w, h))
            if not writer.isOpened():
                raise RuntimeError(f"Failed to open video writer: {args.out}")
        if writer is not None:
            writer.write(vis)
        if args.show:
            cv2.imshow(WINDOW_NAME, vis)
            key = cv2.waitKey(1) & 0xFF
            if key in (27, ord("q")) and loop is not None:
                loop.stop()

    def skipped(result: FrameResult) -> None:
        if pbar is not None:
            pbar.update(1)

    loop = FrameLoop(pipeline, source, render, interval_s=profile.interval_s, on_error=skipped)
    try:
        pulled = loop.run(max_frames=args.max_frames or None)
    except KeyboardInterrupt:
        loop.stop()
        pulled = None
    finally:
        source.release()
        if writer is not None:
            writer.release()
        if args.show:
            cv2.destroyAllWindows()
        if pbar is not None:
            pbar.close()

    if pulled is not None:
        print(f"Frames: {pulled}")
    if args.out and writer is not None:
        print(f"Wrote: {args.out}")
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.log_level)

    profile = resolve_profile(args)
    pipeline = load_pipeline(
        profile.detector_model,
        profile.nms_model,
        cfg=profile.detection,
        onnx_providers=_parse_ort_providers(args.onnx_providers),
        warmup=not args.no_warmup,
    )

    available = getattr(pipeline.detector, "available_providers", None)
    if available:
        print(f"ONNX Runtime available providers: {list(available)}")
    providers = getattr(pipeline.detector, "providers_in_use", None)
    if providers:
        print(f"ONNX Runtime session providers: {list(providers)}")

    if args.image is not None:
        return run_image(args, pipeline, profile)
    return run_stream(args, pipeline, profile)


if __name__ == "__main__":
    sys.exit(main())
