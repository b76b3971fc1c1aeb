"""
I/O utilities: YOLO label parsing, dataset enumeration, image loading and
saving evaluation results.
"""

import csv
import json
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional

import numpy as np
from PIL import Image

from .boxes import BoundingBox, ground_truth_box
from .config import DEFAULT_IMAGE_EXTENSIONS

logger = logging.getLogger(__name__)


class ImageLoadError(Exception):
    """An image file could not be read or decoded."""


class DatasetError(Exception):
    """The dataset directories could not be enumerated."""


@dataclass(frozen=True)
class DatasetItem:
    image_id: str
    image_path: Path
    label_path: Path


def _to_float(value: Optional[str]) -> float:
    # Malformed or missing fields are not validated; they become NaN
    if value is None:
        return math.nan
    try:
        return float(value)
    except ValueError:
        return math.nan


def parse_label_line(line: str, img_width: int, img_height: int) -> Optional[BoundingBox]:
    """
    Parse one YOLO label record into an absolute-pixel ground truth box.

    YOLO format: class_id x_center y_center width height (normalized 0-1)

    Args:
        line: Space-separated record
        img_width: Image width in pixels
        img_height: Image height in pixels

    Returns:
        Ground truth box, or None for a blank line. A record with a negative
        width or height is logged and returned with NaN corners.
    """
    if not line.strip():
        return None

    parts = line.strip().split(" ")
    parts += [None] * (5 - len(parts))
    class_id = parts[0]
    x_center, y_center, width, height = (_to_float(p) for p in parts[1:5])

    x1 = (x_center - width / 2) * img_width
    y1 = (y_center - height / 2) * img_height
    x2 = (x_center + width / 2) * img_width
    y2 = (y_center + height / 2) * img_height

    try:
        return ground_truth_box(x1, y1, x2, y2, class_id=class_id)
    except ValueError as e:
        # Negative width/height: keep the record as a NaN box that never matches
        logger.warning("Degenerate label record %r: %s", line.strip(), e)
        return ground_truth_box(math.nan, math.nan, math.nan, math.nan, class_id=class_id)


def load_ground_truth(label_path: str, img_width: int, img_height: int) -> List[BoundingBox]:
    """
    Load the ground truth boxes of one image from its YOLO label file.

    Args:
        label_path: Path to the .txt label file
        img_width: Image width in pixels
        img_height: Image height in pixels

    Returns:
        List of ground truth boxes in file order (blank lines skipped).
        A missing label file yields an empty list.
    """
    label_path = Path(label_path)
    if not label_path.exists():
        logger.warning("Label file not found: %s", label_path)
        return []

    boxes = []
    # Undecodable bytes become U+FFFD and the affected fields NaN
    with open(label_path, 'r', encoding='utf-8', errors='replace') as f:
        for line in f:
            box = parse_label_line(line, img_width, img_height)
            if box is not None:
                boxes.append(box)

    return boxes


def build_dataset(
    images_dir: str,
    labels_dir: str,
    extensions: Iterable[str] = DEFAULT_IMAGE_EXTENSIONS
) -> List[DatasetItem]:
    """
    Pair every image with the label file of the same base name.

    Images are sorted by file name so the evaluation order is stable.

    Raises:
        DatasetError: If a directory is missing or holds no images
    """
    images_dir = Path(images_dir)
    labels_dir = Path(labels_dir)

    if not images_dir.is_dir():
        raise DatasetError(f"Images directory not found: {images_dir}")
    if not labels_dir.is_dir():
        raise DatasetError(f"Labels directory not found: {labels_dir}")

    extensions = {ext.lower() for ext in extensions}
    image_files = sorted(
        p for p in images_dir.iterdir()
        if p.is_file() and p.suffix.lower() in extensions
    )

    if not image_files:
        raise DatasetError(f"No images found in {images_dir}")

    return [
        DatasetItem(
            image_id=image_path.stem,
            image_path=image_path,
            label_path=labels_dir / f"{image_path.stem}.txt",
        )
        for image_path in image_files
    ]


def load_image(image_path: str) -> np.ndarray:
    """
    Decode an image into an RGB uint8 array of shape (H, W, 3).

    Raises:
        ImageLoadError: If the file is missing or cannot be decoded
    """
    try:
        with Image.open(image_path) as img:
            return np.array(img.convert('RGB'))
    except (OSError, ValueError) as e:
        raise ImageLoadError(f"Failed to read image {image_path}: {e}") from e


def save_metrics(results: Dict, output_path: str):
    """
    Save evaluation results to JSON file.

    Args:
        results: Dictionary containing evaluation metrics
        output_path: Path to save JSON file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w') as f:
        json.dump(results, f, indent=2)

    print(f"✓ Saved metrics to: {output_path}")


def save_per_image_csv(results: Dict, output_path: str):
    """
    Save a per-image CSV for easy copy-paste into reports.

    Args:
        results: Dictionary containing a 'per_image' list
        output_path: Path to save CSV file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow(['index', 'image_id', 'precision', 'recall', 'seconds', 'failed'])

        for index, image in enumerate(results.get('per_image', []), start=1):
            writer.writerow([
                index,
                image['image_id'],
                f"{image['precision']:.4f}",
                f"{image['recall']:.4f}",
                f"{image['seconds']:.4f}",
                int(image['failed'])
            ])

    print(f"✓ Saved per-image CSV to: {output_path}")
