from __future__ import annotations

import math
from pathlib import Path

import pytest

from mapeval.boxes import detection, ground_truth_box
from mapeval.config import EvalConfig
from mapeval.detector import TemplateMatchingDetector
from mapeval.io import build_dataset
from mapeval.metrics import (
    ImageResult,
    MapAccumulator,
    eval_image_map,
    evaluate_dataset,
    iou_thresholds,
    summarize,
)

from conftest import write_labels, write_noise_image

THRESHOLDS = iou_thresholds()


def test_default_sweep_has_ten_thresholds() -> None:
    assert len(THRESHOLDS) == 10
    assert THRESHOLDS[0] == 0.5
    assert THRESHOLDS[-1] == 0.95
    assert THRESHOLDS == [0.5, 0.55, 0.6, 0.65, 0.7, 0.75, 0.8, 0.85, 0.9, 0.95]


def test_custom_sweep() -> None:
    assert iou_thresholds(0.5, 0.5, 0.05) == [0.5]
    assert iou_thresholds(0.1, 0.3, 0.1) == [0.1, 0.2, 0.3]


def test_exact_match_scores_one_at_every_threshold() -> None:
    gt = [ground_truth_box(10, 10, 50, 50)]
    preds = [detection(10, 10, 50, 50)]

    map_image, mar_image, precisions, recalls = eval_image_map(preds, gt, THRESHOLDS)

    assert map_image == 1.0
    assert mar_image == 1.0
    assert precisions == [1.0] * 10
    assert recalls == [1.0] * 10


def test_partial_overlap_averages_over_sweep() -> None:
    gt = [ground_truth_box(0, 0, 10, 10)]
    # IoU = 0.7 -> matches at 0.50 .. 0.70 (5 of 10 thresholds)
    preds = [detection(0, 0, 10, 7)]

    map_image, mar_image, precisions, _ = eval_image_map(preds, gt, THRESHOLDS)

    assert precisions == [1.0] * 5 + [0.0] * 5
    assert map_image == pytest.approx(0.5)
    assert mar_image == pytest.approx(0.5)


def _result(image_id: str, precision: float, recall: float, failed: bool = False) -> ImageResult:
    return ImageResult(
        image_id=image_id,
        precision=precision,
        recall=recall,
        seconds=0.5,
        precision_per_threshold=(precision,) * len(THRESHOLDS),
        recall_per_threshold=(recall,) * len(THRESHOLDS),
        failed=failed,
    )


def test_accumulator_is_immutable() -> None:
    empty = MapAccumulator.empty(THRESHOLDS)
    after = empty.add(_result("a", 1.0, 0.5))

    assert empty.count == 0
    assert after.count == 1
    assert after.summary().mAP == 1.0
    assert after.summary().mAR == 0.5


def test_failed_image_counts_as_zero_by_default() -> None:
    results = [_result("a", 1.0, 1.0), _result("b", 0.0, 0.0, failed=True)]

    summary = summarize(results, THRESHOLDS)

    assert summary.count == 2
    assert summary.mAP == 0.5
    assert summary.mAR == 0.5
    assert summary.failed_images == ("b",)
    assert summary.avg_time_per_image == 0.5


def test_failed_image_excluded_when_configured() -> None:
    results = [_result("a", 1.0, 1.0), _result("b", 0.0, 0.0, failed=True)]

    summary = summarize(results, THRESHOLDS, failed_image_policy="exclude")

    assert summary.count == 1
    assert summary.mAP == 1.0
    assert summary.mAR == 1.0
    assert summary.failed_images == ("b",)


def test_empty_summary_is_nan() -> None:
    summary = summarize([], THRESHOLDS)

    assert summary.count == 0
    assert math.isnan(summary.mAP)
    assert math.isnan(summary.mAR)


def test_summary_to_dict_per_threshold_keys() -> None:
    summary = summarize([_result("a", 1.0, 0.5)], THRESHOLDS)
    data = summary.to_dict()

    assert list(data['per_threshold'].keys())[0] == "0.50"
    assert list(data['per_threshold'].keys())[-1] == "0.95"
    assert data['per_threshold']["0.75"] == {'precision': 1.0, 'recall': 0.5}


def test_end_to_end_exact_detection_scores_one(single_image_dataset) -> None:
    images_dir, labels_dir = single_image_dataset
    dataset = build_dataset(images_dir, labels_dir)

    per_image, summary = evaluate_dataset(dataset, TemplateMatchingDetector(), EvalConfig())

    assert len(per_image) == 1
    assert per_image[0].precision == 1.0
    assert per_image[0].recall == 1.0
    assert per_image[0].num_ground_truth == 1
    assert summary.count == 1
    assert summary.mAP == 1.0
    assert summary.mAR == 1.0


def test_end_to_end_several_boxes_with_thread_pool(dataset_dirs) -> None:
    images_dir, labels_dir = dataset_dirs
    write_noise_image(images_dir / "multi.png", size=(128, 128), seed=3)
    write_labels(labels_dir / "multi.txt", [
        "0 0.25 0.25 0.25 0.25",
        "1 0.75 0.75 0.25 0.25",
        "2 0.5 0.25 0.125 0.125",
    ])
    dataset = build_dataset(images_dir, labels_dir)

    _, summary = evaluate_dataset(
        dataset, TemplateMatchingDetector(), EvalConfig(max_workers=3)
    )

    assert summary.mAP == 1.0
    assert summary.mAR == 1.0


def test_evaluation_is_repeatable(single_image_dataset) -> None:
    images_dir, labels_dir = single_image_dataset
    dataset = build_dataset(images_dir, labels_dir)
    detector = TemplateMatchingDetector()

    _, first = evaluate_dataset(dataset, detector)
    _, second = evaluate_dataset(dataset, detector)

    assert first.mAP == second.mAP
    assert first.mAR == second.mAR
    assert first.precision_per_threshold == second.precision_per_threshold
    assert first.recall_per_threshold == second.recall_per_threshold


def test_unreadable_image_scores_zero(single_image_dataset) -> None:
    images_dir, labels_dir = single_image_dataset
    (images_dir / "img_002.png").write_bytes(b"corrupt")
    write_labels(labels_dir / "img_002.txt", ["0 0.5 0.5 0.25 0.25"])
    dataset = build_dataset(images_dir, labels_dir)

    per_image, summary = evaluate_dataset(dataset, TemplateMatchingDetector())

    assert [r.failed for r in per_image] == [False, True]
    assert per_image[1].precision == 0.0
    assert summary.count == 2
    assert summary.mAP == 0.5
    assert summary.mAR == 0.5
    assert summary.failed_images == ("img_002",)

    _, excluded = evaluate_dataset(
        dataset, TemplateMatchingDetector(), EvalConfig(failed_image_policy="exclude")
    )
    assert excluded.count == 1
    assert excluded.mAP == 1.0


def test_image_without_labels_scores_one(dataset_dirs) -> None:
    images_dir, labels_dir = dataset_dirs
    write_noise_image(images_dir / "empty.png")
    dataset = build_dataset(images_dir, labels_dir)

    per_image, summary = evaluate_dataset(dataset, TemplateMatchingDetector())

    assert per_image[0].num_ground_truth == 0
    assert summary.mAP == 1.0
    assert summary.mAR == 1.0


def test_on_image_callback_sees_every_image_in_order(single_image_dataset) -> None:
    images_dir, labels_dir = single_image_dataset
    write_noise_image(images_dir / "img_000.png", seed=9)
    write_labels(labels_dir / "img_000.txt", ["0 0.5 0.5 0.25 0.25"])
    dataset = build_dataset(images_dir, labels_dir)
    seen = []

    evaluate_dataset(
        dataset, TemplateMatchingDetector(),
        on_image=lambda index, result: seen.append((index, result.image_id))
    )

    assert seen == [(1, "img_000"), (2, "img_001")]


def test_uneven_step_never_exceeds_stop() -> None:
    assert iou_thresholds(0.5, 0.95, 0.3) == [0.5, 0.8]
    assert iou_thresholds(0.5, 0.95, 0.2) == [0.5, 0.7, 0.9]
    assert all(t <= 0.95 for t in iou_thresholds(0.5, 0.95, 0.07))


@pytest.mark.parametrize("label_bytes", [
    b"0 0.5 0.5 0.25 0.25\xff\n",
    b"0 0.5 0.5 -0.25 0.25\n",
], ids=["undecodable-bytes", "negative-width"])
def test_faulty_label_lowers_only_that_image(single_image_dataset, label_bytes: bytes) -> None:
    images_dir, labels_dir = single_image_dataset
    write_noise_image(images_dir / "img_002.png", seed=5)
    (labels_dir / "img_002.txt").write_bytes(label_bytes)
    dataset = build_dataset(images_dir, labels_dir)

    per_image, summary = evaluate_dataset(dataset, TemplateMatchingDetector())

    assert [r.failed for r in per_image] == [False, False]
    assert (per_image[0].precision, per_image[0].recall) == (1.0, 1.0)
    assert (per_image[1].precision, per_image[1].recall) == (0.0, 0.0)
    assert summary.count == 2
    assert summary.mAP == 0.5
    assert summary.mAR == 0.5
