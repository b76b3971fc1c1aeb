"""
Visualization functions for mAP/mAR evaluation results.
"""

from pathlib import Path
from typing import Dict, List
import matplotlib.pyplot as plt
import matplotlib
import numpy as np

# Use non-interactive backend for server environments
matplotlib.use('Agg')


def _save(output_path: str):
    plt.tight_layout()
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close()
    return output_path


def plot_iou_sweep(
    summary: Dict,
    output_path: str,
    title: str = "Precision/Recall vs IoU Threshold"
):
    """
    Plot dataset-mean precision and recall at each IoU threshold.

    Args:
        summary: Dict from DatasetResult.to_dict()
        output_path: Path to save figure
        title: Plot title

    Example:
        >>> per_image, summary = evaluate_dataset(dataset, detector)
        >>> plot_iou_sweep(summary.to_dict(), "figures/iou_sweep.png")
    """
    per_threshold = summary['per_threshold']
    thresholds = sorted(float(k) for k in per_threshold.keys())
    precisions = [per_threshold[f"{t:.2f}"]['precision'] for t in thresholds]
    recalls = [per_threshold[f"{t:.2f}"]['recall'] for t in thresholds]

    plt.figure(figsize=(10, 6))
    plt.plot(thresholds, precisions, marker='o', label='Precision', linewidth=2)
    plt.plot(thresholds, recalls, marker='s', label='Recall', linewidth=2)

    plt.axhline(summary['mAP'], color='tab:blue', linestyle=':', alpha=0.6,
                label=f"mAP={summary['mAP']:.3f}")
    plt.axhline(summary['mAR'], color='tab:orange', linestyle=':', alpha=0.6,
                label=f"mAR={summary['mAR']:.3f}")

    plt.xlabel('IoU Threshold', fontsize=12)
    plt.ylabel('Score', fontsize=12)
    plt.title(title, fontsize=14, fontweight='bold')
    plt.legend(fontsize=11)
    plt.grid(True, alpha=0.3)
    if len(thresholds) > 1:
        plt.xlim([min(thresholds), max(thresholds)])
    plt.ylim([0, 1.05])

    output_path = _save(output_path)
    print(f"✓ Saved IoU sweep plot: {output_path}")


def plot_per_image_scores(
    per_image: List[Dict],
    output_path: str,
    title: str = "Per-Image Precision/Recall"
):
    """
    Plot per-image mAP/mAR as grouped bars, in evaluation order.

    Failed images are hatched so a run's zero scores stand out.

    Args:
        per_image: List of ImageResult.to_dict()
        output_path: Path to save figure
        title: Plot title
    """
    indices = np.arange(len(per_image))
    precisions = [img['precision'] for img in per_image]
    recalls = [img['recall'] for img in per_image]

    fig, ax = plt.subplots(figsize=(max(8, len(per_image) * 0.3), 6))

    width = 0.4
    bars_p = ax.bar(indices - width / 2, precisions, width, label='mAP (image)',
                    color='#3498db', edgecolor='black', linewidth=0.5)
    bars_r = ax.bar(indices + width / 2, recalls, width, label='mAR (image)',
                    color='#e67e22', edgecolor='black', linewidth=0.5)

    for i, img in enumerate(per_image):
        if img['failed']:
            bars_p[i].set_hatch('//')
            bars_r[i].set_hatch('//')
            ax.text(i, 0.02, 'load\nfailed', ha='center', va='bottom', fontsize=7, color='red')

    ax.set_xlabel('Image Index', fontsize=12)
    ax.set_ylabel('Score', fontsize=12)
    ax.set_title(title, fontsize=14, fontweight='bold')
    ax.set_xticks(indices)
    ax.set_xticklabels([str(i + 1) for i in indices], fontsize=8)
    ax.set_ylim([0, 1.05])
    ax.legend(fontsize=11)
    ax.grid(axis='y', alpha=0.3)

    output_path = _save(output_path)
    print(f"✓ Saved per-image scores plot: {output_path}")


def plot_all_metrics(
    summary: Dict,
    per_image: List[Dict],
    output_dir: str,
    run_name: str = "evaluation"
):
    """
    Generate all evaluation plots in one call.

    Args:
        summary: Dict from DatasetResult.to_dict()
        per_image: List of ImageResult.to_dict()
        output_dir: Directory to save all plots
        run_name: Name to include in titles
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    # 1. IoU sweep
    plot_iou_sweep(
        summary,
        output_dir / "iou_sweep.png",
        title=f"{run_name}: P/R vs IoU Threshold"
    )

    # 2. Per-image scores
    plot_per_image_scores(
        per_image,
        output_dir / "per_image_scores.png",
        title=f"{run_name}: Per-Image mAP/mAR"
    )

    print(f"\n✓ All plots saved to: {output_dir}/")
