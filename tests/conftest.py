from __future__ import annotations

from pathlib import Path
from typing import Iterable, Tuple

import numpy as np
import pytest
from PIL import Image


def write_noise_image(path: Path, size: Tuple[int, int] = (128, 128), seed: int = 0) -> np.ndarray:
    """Random RGB noise saved losslessly; every crop of it is unique."""
    rng = np.random.default_rng(seed)
    pixels = rng.integers(0, 256, size=(size[1], size[0], 3), dtype=np.uint8)
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.fromarray(pixels).save(path)
    return pixels


def write_labels(path: Path, records: Iterable[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(records) + "\n", encoding="utf-8")


@pytest.fixture()
def dataset_dirs(tmp_path: Path) -> Tuple[Path, Path]:
    images_dir = tmp_path / "images"
    labels_dir = tmp_path / "labels"
    images_dir.mkdir()
    labels_dir.mkdir()
    return images_dir, labels_dir


@pytest.fixture()
def single_image_dataset(dataset_dirs: Tuple[Path, Path]) -> Tuple[Path, Path]:
    """One 128x128 image with one box at (48, 48, 80, 80)."""
    images_dir, labels_dir = dataset_dirs
    write_noise_image(images_dir / "img_001.png")
    write_labels(labels_dir / "img_001.txt", ["0 0.5 0.5 0.25 0.25"])
    return images_dir, labels_dir
