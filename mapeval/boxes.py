"""
Bounding box value type shared by ground truth and detections.
"""

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class BoundingBox:
    """
    Axis-aligned box in absolute pixel coordinates of one image.

    Zero-area boxes are allowed. NaN coordinates are not rejected: a
    malformed label field becomes NaN and simply never matches anything.
    """

    x1: float
    y1: float
    x2: float
    y2: float
    class_id: str = "0"
    confidence: float = 1.0

    def __post_init__(self):
        if self.x2 < self.x1 or self.y2 < self.y1:
            raise ValueError(
                f"Invalid box corners: ({self.x1}, {self.y1}, {self.x2}, {self.y2})"
            )
        if self.confidence < 0.0 or self.confidence > 1.0:
            raise ValueError(f"Confidence must be in [0, 1], got {self.confidence}")

    @property
    def width(self) -> float:
        return self.x2 - self.x1

    @property
    def height(self) -> float:
        return self.y2 - self.y1

    @property
    def area(self) -> float:
        return (self.x2 - self.x1) * (self.y2 - self.y1)

    def as_xyxy(self) -> List[float]:
        return [self.x1, self.y1, self.x2, self.y2]

    def to_dict(self) -> dict:
        return {
            'class_id': self.class_id,
            'confidence': self.confidence,
            'bbox': self.as_xyxy(),
            'bbox_format': 'xyxy',
        }


def ground_truth_box(x1: float, y1: float, x2: float, y2: float, class_id: str = "0") -> BoundingBox:
    """Ground truth is a box whose confidence is fixed at 1.0."""
    return BoundingBox(x1, y1, x2, y2, class_id=class_id, confidence=1.0)


def detection(
    x1: float, y1: float, x2: float, y2: float,
    class_id: str = "0",
    confidence: float = 1.0
) -> BoundingBox:
    """Box produced by a detector, carrying the detector's own confidence."""
    return BoundingBox(x1, y1, x2, y2, class_id=class_id, confidence=confidence)
