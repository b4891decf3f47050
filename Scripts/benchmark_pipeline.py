from __future__ import annotations

import argparse
import statistics
import time
from typing import List

import numpy as np

from doc_kit import DetectionConfig, load_pipeline
from Document_Capture.ingest import read_image


def _ms(values: List[float]) -> str:
    if not values:
        return "n/a"
    ordered = sorted(values)
    p95 = ordered[min(len(ordered) - 1, int(round(0.95 * (len(ordered) - 1))))]
    return f"mean={statistics.mean(values):7.2f}ms p50={statistics.median(values):7.2f}ms p95={p95:7.2f}ms"


def main() -> int:
    parser = argparse.ArgumentParser(description="Benchmark preprocess / inference / decode latency of the document pipeline.")
    parser.add_argument("--image", default=None, help="Input image (default: random 1280x720 noise).")
    parser.add_argument("--detector-model", default="Models/id-1v1.onnx", help="Path to the detector ONNX model.")
    parser.add_argument("--nms-model", default="Models/nms-weight.onnx", help="Path to the NMS ONNX model.")
    parser.add_argument("--imgsz", type=int, default=640, help="Model input size (square).")
    parser.add_argument(
        "--onnx-providers",
        default=None,
        help='Comma-separated ORT providers, e.g. "CUDAExecutionProvider,CPUExecutionProvider".',
    )
    parser.add_argument("--warmup", type=int, default=5, help="Runs to execute but not record.")
    parser.add_argument("--repeats", type=int, default=50, help="Recorded runs.")
    args = parser.parse_args()

    if args.warmup < 0:
        raise ValueError("--warmup must be >= 0")
    if args.repeats < 1:
        raise ValueError("--repeats must be >= 1")

    providers = None
    if args.onnx_providers:
        providers = [p.strip() for p in str(args.onnx_providers).split(",") if p.strip()]

    pipeline = load_pipeline(
        args.detector_model,
        args.nms_model,
        cfg=DetectionConfig(target_size=int(args.imgsz)),
        onnx_providers=providers,
    )

    if args.image:
        img = read_image(args.image)
    else:
        img = np.random.default_rng(0).integers(0, 256, size=(720, 1280, 3), dtype=np.uint8)

    t_pre: List[float] = []
    t_inf: List[float] = []
    t_post: List[float] = []
    for i in range(args.warmup + args.repeats):
        t0 = time.perf_counter()
        prep = pipeline.preprocess(img)
        t1 = time.perf_counter()
        output0, selected_idx = pipeline.infer(prep.blob)
        t2 = time.perf_counter()
        boxes = pipeline.post.process(output0, selected_idx, prep.x_ratio, prep.y_ratio)
        t3 = time.perf_counter()
        if i < args.warmup:
            continue
        t_pre.append((t1 - t0) * 1000.0)
        t_inf.append((t2 - t1) * 1000.0)
        t_post.append((t3 - t2) * 1000.0)

    print(f"preprocess: {_ms(t_pre)}")
    print(f"inference:  {_ms(t_inf)}")
    print(f"decode:     {_ms(t_post)}")
    print(f"boxes (last run): {len(boxes)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
