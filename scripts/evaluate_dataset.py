"""
Evaluate Dataset - mAP50-95 / mAR50-95 for a Box Detector
==========================================================
Scores the template-matching detector against YOLO-format ground truth.

This script:
1. Pairs every image in --images_dir with <stem>.txt in --labels_dir
2. Detects each ground truth region and scores it over IoU 0.50:0.95
3. Prints one line per image and a summary line
4. Optionally saves metrics.json, per_image.csv and plots

Usage:
    # Evaluate with default settings
    python scripts/evaluate_dataset.py \\
        --images_dir data/images \\
        --labels_dir data/labels

    # With a config file and saved results
    python scripts/evaluate_dataset.py \\
        --images_dir data/images \\
        --labels_dir data/labels \\
        --config configs/default.yaml \\
        --output_dir evaluation/results/template_matching/ \\
        --clamp_intersection
"""

import argparse
import logging
import sys
from pathlib import Path

from tqdm import tqdm

# Add project root to path to import mapeval
sys.path.insert(0, str(Path(__file__).parent.parent))

from mapeval.config import load_config
from mapeval.detector import TemplateMatchingDetector
from mapeval.io import DatasetError, build_dataset, save_metrics, save_per_image_csv
from mapeval.metrics import evaluate_dataset


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Evaluate a box detector with mAP/mAR over IoU 0.50:0.95"
    )

    # Required arguments
    parser.add_argument(
        "--images_dir",
        type=str,
        required=True,
        help="Directory of images"
    )
    parser.add_argument(
        "--labels_dir",
        type=str,
        required=True,
        help="Directory of YOLO .txt labels named after the images"
    )

    # Optional arguments
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="YAML evaluation settings (default: built-in defaults)"
    )
    parser.add_argument(
        "--output_dir",
        type=str,
        default=None,
        help="Directory for metrics.json, per_image.csv and plots (default: don't save)"
    )
    parser.add_argument(
        "--run_name",
        type=str,
        default=None,
        help="Name for this evaluation run (for plot titles)"
    )
    parser.add_argument(
        "--clamp_intersection",
        action="store_true",
        default=None,
        help="Clamp negative overlap to zero instead of using the raw product"
    )
    parser.add_argument(
        "--failed_image_policy",
        choices=["zero", "exclude"],
        default=None,
        help="How unreadable images enter the means (default: zero)"
    )
    parser.add_argument(
        "--max_workers",
        type=int,
        default=None,
        help="Threads for per-region detection within an image"
    )
    parser.add_argument(
        "--no_plots",
        action="store_true",
        help="Skip plot generation when --output_dir is set"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    config = load_config(args.config).replace(
        clamp_intersection=args.clamp_intersection,
        failed_image_policy=args.failed_image_policy,
        max_workers=args.max_workers,
    )

    print("=" * 70)
    print("EVALUATE DATASET")
    print("=" * 70)
    print(f"Images:        {args.images_dir}")
    print(f"Labels:        {args.labels_dir}")
    print(f"IoU sweep:     {config.iou_start}:{config.iou_stop} step {config.iou_step}")
    print(f"Clamp:         {config.clamp_intersection}")
    print(f"Failed images: {config.failed_image_policy}")
    print("=" * 70)

    try:
        dataset = build_dataset(args.images_dir, args.labels_dir, config.image_extensions)
    except DatasetError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 1

    print(f"✓ Found {len(dataset)} images\n")

    progress = tqdm(total=len(dataset), desc="Evaluating")

    def report(index, result):
        tqdm.write(f"{index}: {result.precision}, {result.recall}, time: {result.seconds:.3f}s")
        progress.update(1)

    per_image, summary = evaluate_dataset(
        dataset, TemplateMatchingDetector(), config, on_image=report
    )
    progress.close()

    print(
        f"length: {summary.count}, mAP: {summary.mAP}, mAR: {summary.mAR}, "
        f"tbc time: {summary.avg_time_per_image:.3f}s"
    )
    if summary.failed_images:
        print(f"⚠ WARNING: {len(summary.failed_images)} image(s) failed to load")

    if args.output_dir:
        output_dir = Path(args.output_dir)
        run_name = args.run_name or Path(args.images_dir).name

        results = {
            'run_name': run_name,
            'images_dir': str(args.images_dir),
            'labels_dir': str(args.labels_dir),
            'evaluation_settings': config.to_dict(),
            'summary': summary.to_dict(),
            'per_image': [r.to_dict() for r in per_image],
        }

        print("\n" + "=" * 70)
        print("SAVING RESULTS")
        print("=" * 70)

        save_metrics(results, output_dir / "metrics.json")
        save_per_image_csv(results, output_dir / "per_image.csv")

        if not args.no_plots:
            from mapeval.plots import plot_all_metrics

            plot_all_metrics(
                results['summary'],
                results['per_image'],
                output_dir=str(output_dir),
                run_name=run_name
            )

    print("\n✓ All done!")
    return 0


if __name__ == "__main__":
    sys.exit(main())
