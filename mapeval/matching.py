"""
IoU computation and thresholded precision/recall for detection evaluation.

The match rule is deliberately simple: every (prediction, ground truth) pair
whose IoU reaches the threshold marks both boxes as matched. There is no
confidence ranking and no one-to-one assignment, so one ground truth box may
satisfy several predictions and vice versa.
"""

import math
from typing import Sequence, Tuple

import numpy as np

from .boxes import BoundingBox


def intersection(a: BoundingBox, b: BoundingBox, clamp: bool = False) -> float:
    """
    Compute the intersection area of two boxes.

    Args:
        a: First box
        b: Second box
        clamp: Clamp negative overlap extents to zero. When False (the
               default) the raw product is returned, so two disjoint boxes
               separated on both axes yield a positive area.

    Returns:
        Intersection area as a float
    """
    inter_x1 = max(a.x1, b.x1)
    inter_y1 = max(a.y1, b.y1)
    inter_x2 = min(a.x2, b.x2)
    inter_y2 = min(a.y2, b.y2)

    inter_width = inter_x2 - inter_x1
    inter_height = inter_y2 - inter_y1

    if clamp:
        inter_width = max(0.0, inter_width)
        inter_height = max(0.0, inter_height)

    return inter_width * inter_height


def union(a: BoundingBox, b: BoundingBox, clamp: bool = False) -> float:
    """Area of a plus area of b minus their intersection."""
    return a.area + b.area - intersection(a, b, clamp=clamp)


def _divide(numerator: float, denominator: float) -> float:
    # IEEE semantics: 0/0 is nan, x/0 is +-inf
    if denominator == 0:
        if numerator == 0 or math.isnan(numerator):
            return math.nan
        return math.copysign(math.inf, numerator) * math.copysign(1.0, denominator)
    return numerator / denominator


def iou(a: BoundingBox, b: BoundingBox, clamp: bool = False) -> float:
    """
    Compute Intersection over Union (IoU) between two bounding boxes.

    Args:
        a: First box
        b: Second box
        clamp: Use the clamped intersection

    Returns:
        IoU score. NaN when both boxes are degenerate (union == 0); NaN
        fails every threshold comparison, so such pairs never match.
    """
    return _divide(intersection(a, b, clamp=clamp), union(a, b, clamp=clamp))


def iou_matrix(
    predictions: Sequence[BoundingBox],
    ground_truth: Sequence[BoundingBox],
    clamp: bool = False
) -> np.ndarray:
    """
    IoU for every (prediction, ground truth) pair.

    Returns:
        Array of shape (len(predictions), len(ground_truth))
    """
    matrix = np.zeros((len(predictions), len(ground_truth)), dtype=np.float64)
    for i, pred in enumerate(predictions):
        for j, gt in enumerate(ground_truth):
            matrix[i, j] = iou(pred, gt, clamp=clamp)
    return matrix


def score_from_iou_matrix(matrix: np.ndarray, iou_threshold: float) -> Tuple[float, float]:
    """
    Precision and recall at one IoU threshold from a precomputed IoU matrix.

    Args:
        matrix: (num_predictions, num_ground_truth) IoU matrix
        iou_threshold: Minimum IoU for a pair to count as a match

    Returns:
        (precision, recall). Each defaults to 1.0 when its denominator
        (predictions for precision, ground truth for recall) is empty.
    """
    num_preds, num_gts = matrix.shape

    # NaN >= t is False, so degenerate pairs never match
    hits = matrix >= iou_threshold
    matched_pred = hits.any(axis=1)
    matched_gt = hits.any(axis=0)

    precision = int(matched_pred.sum()) / num_preds if num_preds > 0 else 1.0
    recall = int(matched_gt.sum()) / num_gts if num_gts > 0 else 1.0

    return precision, recall


def score_at_iou(
    predictions: Sequence[BoundingBox],
    ground_truth: Sequence[BoundingBox],
    iou_threshold: float,
    clamp: bool = False
) -> Tuple[float, float]:
    """
    Per-image precision and recall at a single IoU threshold.

    Matching strategy:
    - Every prediction is compared with every ground truth box
    - A pair matches if IoU >= iou_threshold
    - A prediction is a hit if it matches any ground truth box; a ground
      truth box is recalled if any prediction matches it

    Example:
        >>> gt = [ground_truth_box(0, 0, 10, 10)]
        >>> score_at_iou([], gt, 0.5)
        (1.0, 0.0)
    """
    matrix = iou_matrix(predictions, ground_truth, clamp=clamp)
    return score_from_iou_matrix(matrix, iou_threshold)
