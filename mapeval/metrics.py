"""
mAP/mAR aggregation over an IoU threshold sweep.

Implements the evaluation in three levels:
1. eval_image_map: precision/recall at each IoU threshold for one image,
   averaged into mAP_image / mAR_image
2. MapAccumulator: immutable running totals folded over images in dataset order
3. evaluate_dataset: load -> detect -> score for every image, sequentially
"""

import logging
import math
import time
from dataclasses import dataclass, field, asdict
from functools import reduce
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .boxes import BoundingBox
from .config import EvalConfig
from .detector import Detector, detect_regions
from .io import DatasetItem, ImageLoadError, load_ground_truth, load_image
from .matching import iou_matrix, score_from_iou_matrix

logger = logging.getLogger(__name__)


def iou_thresholds(start: float = 0.5, stop: float = 0.95, step: float = 0.05) -> List[float]:
    """
    Inclusive IoU threshold sweep built from an integer counter.

    Accumulating floats (0.5 + 0.05 + ...) drifts and can drop the last
    threshold; counting steps keeps floor((stop - start) / step) + 1 values,
    i.e. 10 for the default 0.50:0.95, and never goes past stop.
    """
    num = int(math.floor((stop - start) / step + 1e-9)) + 1
    return [round(start + i * step, 10) for i in range(num)]


def eval_image_map(
    predictions: Sequence[BoundingBox],
    ground_truth: Sequence[BoundingBox],
    thresholds: Sequence[float],
    clamp: bool = False
) -> Tuple[float, float, List[float], List[float]]:
    """
    Mean precision and recall of one image over an IoU threshold sweep.

    Args:
        predictions: Detections for the image
        ground_truth: Ground truth boxes for the image
        thresholds: IoU thresholds, e.g. iou_thresholds()
        clamp: Use the clamped intersection

    Returns:
        (map_image, mar_image, precision_per_threshold, recall_per_threshold)
    """
    matrix = iou_matrix(predictions, ground_truth, clamp=clamp)

    precisions = []
    recalls = []
    for thr in thresholds:
        precision, recall = score_from_iou_matrix(matrix, thr)
        precisions.append(precision)
        recalls.append(recall)

    return float(np.mean(precisions)), float(np.mean(recalls)), precisions, recalls


@dataclass(frozen=True)
class ImageResult:
    image_id: str
    precision: float
    recall: float
    seconds: float
    precision_per_threshold: Tuple[float, ...]
    recall_per_threshold: Tuple[float, ...]
    failed: bool = False
    num_ground_truth: int = 0
    num_predictions: int = 0

    def to_dict(self) -> Dict:
        values = asdict(self)
        values['precision_per_threshold'] = list(self.precision_per_threshold)
        values['recall_per_threshold'] = list(self.recall_per_threshold)
        return values


@dataclass(frozen=True)
class DatasetResult:
    count: int
    mAP: float
    mAR: float
    avg_time_per_image: float
    thresholds: Tuple[float, ...] = ()
    precision_per_threshold: Tuple[float, ...] = ()
    recall_per_threshold: Tuple[float, ...] = ()
    failed_images: Tuple[str, ...] = ()

    def to_dict(self) -> Dict:
        return {
            'count': self.count,
            'mAP': self.mAP,
            'mAR': self.mAR,
            'avg_time_per_image': self.avg_time_per_image,
            'per_threshold': {
                f"{thr:.2f}": {'precision': p, 'recall': r}
                for thr, p, r in zip(
                    self.thresholds, self.precision_per_threshold, self.recall_per_threshold
                )
            },
            'failed_images': list(self.failed_images),
        }


def _mean(total: float, count: int) -> float:
    return total / count if count > 0 else math.nan


@dataclass(frozen=True)
class MapAccumulator:
    """
    Running totals for the dataset summary.

    Immutable: add() returns a new accumulator, so a run is a fold over the
    image results and nothing is carried over between runs.
    """

    thresholds: Tuple[float, ...]
    failed_image_policy: str = "zero"
    count: int = 0
    processed: int = 0
    precision_sum: float = 0.0
    recall_sum: float = 0.0
    seconds_sum: float = 0.0
    precision_sums: Tuple[float, ...] = field(default=())
    recall_sums: Tuple[float, ...] = field(default=())
    failed_images: Tuple[str, ...] = ()

    @classmethod
    def empty(cls, thresholds: Sequence[float], failed_image_policy: str = "zero") -> "MapAccumulator":
        zeros = (0.0,) * len(thresholds)
        return cls(
            thresholds=tuple(thresholds),
            failed_image_policy=failed_image_policy,
            precision_sums=zeros,
            recall_sums=zeros,
        )

    def add(self, result: ImageResult) -> "MapAccumulator":
        failed_images = self.failed_images + ((result.image_id,) if result.failed else ())
        processed = self.processed + 1
        seconds_sum = self.seconds_sum + result.seconds

        if result.failed and self.failed_image_policy == "exclude":
            return MapAccumulator(
                thresholds=self.thresholds,
                failed_image_policy=self.failed_image_policy,
                count=self.count,
                processed=processed,
                precision_sum=self.precision_sum,
                recall_sum=self.recall_sum,
                seconds_sum=seconds_sum,
                precision_sums=self.precision_sums,
                recall_sums=self.recall_sums,
                failed_images=failed_images,
            )

        return MapAccumulator(
            thresholds=self.thresholds,
            failed_image_policy=self.failed_image_policy,
            count=self.count + 1,
            processed=processed,
            precision_sum=self.precision_sum + result.precision,
            recall_sum=self.recall_sum + result.recall,
            seconds_sum=seconds_sum,
            precision_sums=tuple(a + b for a, b in zip(self.precision_sums, result.precision_per_threshold)),
            recall_sums=tuple(a + b for a, b in zip(self.recall_sums, result.recall_per_threshold)),
            failed_images=failed_images,
        )

    def summary(self) -> DatasetResult:
        """Dataset means. An empty accumulator gives NaN metrics."""
        return DatasetResult(
            count=self.count,
            mAP=_mean(self.precision_sum, self.count),
            mAR=_mean(self.recall_sum, self.count),
            avg_time_per_image=_mean(self.seconds_sum, self.processed),
            thresholds=self.thresholds,
            precision_per_threshold=tuple(_mean(s, self.count) for s in self.precision_sums),
            recall_per_threshold=tuple(_mean(s, self.count) for s in self.recall_sums),
            failed_images=self.failed_images,
        )


def summarize(
    results: Sequence[ImageResult],
    thresholds: Sequence[float],
    failed_image_policy: str = "zero"
) -> DatasetResult:
    """Fold per-image results, in order, into the dataset summary."""
    initial = MapAccumulator.empty(thresholds, failed_image_policy)
    return reduce(MapAccumulator.add, results, initial).summary()


def evaluate_image(
    item: DatasetItem,
    detector: Detector,
    config: EvalConfig,
    thresholds: Optional[Sequence[float]] = None
) -> ImageResult:
    """
    Load, detect and score one image.

    An image that cannot be loaded is logged and returned as a failed result
    with precision = recall = 0 at every threshold.
    """
    if thresholds is None:
        thresholds = iou_thresholds(config.iou_start, config.iou_stop, config.iou_step)

    start_time = time.perf_counter()

    try:
        image = load_image(item.image_path)
    except ImageLoadError as e:
        logger.error("%s", e)
        zeros = (0.0,) * len(thresholds)
        return ImageResult(
            image_id=item.image_id,
            precision=0.0,
            recall=0.0,
            seconds=time.perf_counter() - start_time,
            precision_per_threshold=zeros,
            recall_per_threshold=zeros,
            failed=True,
        )

    img_height, img_width = image.shape[:2]
    ground_truth = load_ground_truth(item.label_path, img_width, img_height)

    # All detections must finish before scoring starts
    predictions = detect_regions(detector, image, ground_truth, max_workers=config.max_workers)

    map_image, mar_image, precisions, recalls = eval_image_map(
        predictions, ground_truth, thresholds, clamp=config.clamp_intersection
    )

    return ImageResult(
        image_id=item.image_id,
        precision=map_image,
        recall=mar_image,
        seconds=time.perf_counter() - start_time,
        precision_per_threshold=tuple(precisions),
        recall_per_threshold=tuple(recalls),
        num_ground_truth=len(ground_truth),
        num_predictions=len(predictions),
    )


def evaluate_dataset(
    dataset: Sequence[DatasetItem],
    detector: Detector,
    config: Optional[EvalConfig] = None,
    on_image: Optional[Callable[[int, ImageResult], None]] = None
) -> Tuple[List[ImageResult], DatasetResult]:
    """
    Evaluate every image of a dataset, one after another, in dataset order.

    Args:
        dataset: Items from build_dataset()
        detector: Detector used for every ground truth region
        config: Evaluation settings (defaults to EvalConfig())
        on_image: Called as on_image(index, result) after each image;
                  index starts at 1

    Returns:
        (per-image results, dataset summary)

    Example:
        >>> per_image, summary = evaluate_dataset(dataset, TemplateMatchingDetector())
        >>> print(f"mAP50-95={summary.mAP:.3f} mAR50-95={summary.mAR:.3f}")
    """
    if config is None:
        config = EvalConfig()

    thresholds = iou_thresholds(config.iou_start, config.iou_stop, config.iou_step)

    results = []
    for index, item in enumerate(dataset, start=1):
        result = evaluate_image(item, detector, config, thresholds)
        results.append(result)
        if on_image is not None:
            on_image(index, result)

    summary = summarize(results, thresholds, config.failed_image_policy)
    return results, summary
