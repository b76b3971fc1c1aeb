"""
Detector interface and the template-matching stand-in.

The evaluation core only needs something that, given an image and a region
hint, returns one box with a confidence. TemplateMatchingDetector crops the
hint region from the image and searches for it again with a sum of squared
differences; any real detector can take its place.
"""

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import List, Protocol, Sequence

import cv2
import numpy as np

from .boxes import BoundingBox, detection

logger = logging.getLogger(__name__)


class Detector(Protocol):
    def detect(self, image: np.ndarray, region_hint: BoundingBox) -> BoundingBox:
        ...


def to_gray(image: np.ndarray) -> np.ndarray:
    """RGB (or already single-channel) uint8 image to single-channel intensity."""
    if image.ndim == 2:
        return image
    return cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)


class TemplateMatchingDetector:
    """
    Locate the hinted region inside the full image by template matching.

    The template is cut from the image at the hint's corners (truncated to
    integers and clipped to the image), then matched with cv2.TM_SQDIFF. The
    returned box sits at the location of minimum squared difference and has
    the template's size. Confidence is 1.0, or 0.0 when the hint is empty or
    non-finite and nothing could be searched for.
    """

    method = cv2.TM_SQDIFF

    def detect(self, image: np.ndarray, region_hint: BoundingBox) -> BoundingBox:
        gray = to_gray(image)
        img_h, img_w = gray.shape[:2]

        corners = region_hint.as_xyxy()
        if not all(math.isfinite(c) for c in corners):
            logger.debug("Non-finite region %s", corners)
            return detection(0, 0, 0, 0, class_id=region_hint.class_id, confidence=0.0)

        x1 = min(max(int(region_hint.x1), 0), img_w)
        y1 = min(max(int(region_hint.y1), 0), img_h)
        x2 = min(max(int(region_hint.x2), x1), img_w)
        y2 = min(max(int(region_hint.y2), y1), img_h)

        template = gray[y1:y2, x1:x2]
        if template.size == 0:
            logger.debug("Empty template for region %s", region_hint.as_xyxy())
            return detection(x1, y1, x1, y1, class_id=region_hint.class_id, confidence=0.0)

        matched = cv2.matchTemplate(gray, template, self.method)
        _, _, min_loc, _ = cv2.minMaxLoc(matched)
        x, y = min_loc

        tpl_h, tpl_w = template.shape[:2]
        return detection(
            x, y, x + tpl_w, y + tpl_h,
            class_id=region_hint.class_id,
            confidence=1.0
        )


def detect_regions(
    detector: Detector,
    image: np.ndarray,
    ground_truth: Sequence[BoundingBox],
    max_workers: int = 4
) -> List[BoundingBox]:
    """
    Run the detector once per ground truth region.

    Calls are independent and may run on a thread pool; results are returned
    in ground truth order regardless.

    Args:
        detector: Anything with detect(image, region_hint)
        image: Decoded image
        ground_truth: Region hints, one detection attempt each
        max_workers: Thread pool size; <= 1 runs the calls inline

    Returns:
        One detection per ground truth box, same order
    """
    if max_workers <= 1 or len(ground_truth) <= 1:
        return [detector.detect(image, gt) for gt in ground_truth]

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        return list(executor.map(lambda gt: detector.detect(image, gt), ground_truth))
