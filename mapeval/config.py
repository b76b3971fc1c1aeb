"""
Evaluation settings, loaded from YAML or built from defaults.
"""

from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Dict, Optional, Tuple

import yaml

FAILED_IMAGE_POLICIES = ("zero", "exclude")
DEFAULT_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".bmp")


@dataclass(frozen=True)
class EvalConfig:
    """
    Settings for one evaluation run.

    Attributes:
        iou_start: First IoU threshold of the sweep
        iou_stop: Last IoU threshold of the sweep (inclusive)
        iou_step: Spacing between thresholds
        clamp_intersection: Clamp negative overlap to zero. False reproduces
                            the raw, unclamped metric.
        failed_image_policy: "zero" scores an unreadable image as (0, 0);
                             "exclude" drops it from the dataset means
        max_workers: Thread pool size for per-region detection calls
                     (<= 1 runs them inline)
        image_extensions: File suffixes treated as images
    """

    iou_start: float = 0.5
    iou_stop: float = 0.95
    iou_step: float = 0.05
    clamp_intersection: bool = False
    failed_image_policy: str = "zero"
    max_workers: int = 4
    image_extensions: Tuple[str, ...] = field(default=DEFAULT_IMAGE_EXTENSIONS)

    def __post_init__(self):
        if self.failed_image_policy not in FAILED_IMAGE_POLICIES:
            raise ValueError(
                f"failed_image_policy must be one of {FAILED_IMAGE_POLICIES}, "
                f"got '{self.failed_image_policy}'"
            )
        if self.iou_step <= 0:
            raise ValueError(f"iou_step must be positive, got {self.iou_step}")
        if self.iou_start > self.iou_stop:
            raise ValueError(
                f"iou_start ({self.iou_start}) must not exceed iou_stop ({self.iou_stop})"
            )
        if isinstance(self.image_extensions, str) or not all(
            isinstance(ext, str) for ext in self.image_extensions
        ):
            raise ValueError(
                f"image_extensions must be a list of strings, got {self.image_extensions!r}"
            )
        # YAML gives lists; keep the dataclass hashable
        object.__setattr__(
            self, 'image_extensions',
            tuple(ext.lower() if ext.startswith('.') else f".{ext.lower()}"
                  for ext in self.image_extensions)
        )

    def replace(self, **overrides) -> "EvalConfig":
        """Copy with the given fields changed; None values are ignored."""
        values = asdict(self)
        values.update({k: v for k, v in overrides.items() if v is not None})
        return EvalConfig(**values)

    def to_dict(self) -> Dict:
        values = asdict(self)
        values['image_extensions'] = list(self.image_extensions)
        return values


def load_config(config_path: Optional[str] = None) -> EvalConfig:
    """
    Load evaluation settings from a YAML file.

    Args:
        config_path: Path to a YAML file. Keys not present fall back to the
                     EvalConfig defaults. None returns the defaults.

    Returns:
        EvalConfig

    Raises:
        FileNotFoundError: If config_path doesn't exist
        ValueError: If the file has unknown keys or invalid values
    """
    if config_path is None:
        return EvalConfig()

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, 'r') as f:
        data = yaml.safe_load(f) or {}

    # Allow settings either at the top level or under an "evaluation" key
    if isinstance(data, dict) and 'evaluation' in data:
        data = data['evaluation'] or {}

    if not isinstance(data, dict):
        raise ValueError(f"Config in {config_path} must be a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(EvalConfig)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown config keys in {config_path}: {sorted(unknown)}")

    return EvalConfig(**data)
