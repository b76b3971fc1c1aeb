"""
mAP50-95 Evaluation for Box Detectors

This package scores a detector's boxes against YOLO-format ground truth and
reports mean Average Precision / mean Average Recall swept over the IoU
thresholds 0.50:0.95.

Main Components:
- boxes: BoundingBox value type
- matching: intersection/union/IoU and thresholded precision/recall
- metrics: IoU sweep, per-image fold and dataset summary
- detector: Detector protocol and the template-matching stand-in
- io: Label parsing, dataset enumeration, image loading, result saving
- config: Evaluation settings (YAML + defaults)
- plots: Visualization functions

Usage:
    from mapeval.config import EvalConfig
    from mapeval.detector import TemplateMatchingDetector
    from mapeval.io import build_dataset
    from mapeval.metrics import evaluate_dataset

    dataset = build_dataset("data/images", "data/labels")
    per_image, summary = evaluate_dataset(dataset, TemplateMatchingDetector(), EvalConfig())
    print(summary.mAP, summary.mAR)
"""

__version__ = "1.0.0"
