"""Plan the pixel crop that is sent for synthesis and later stitched back."""
import logging
import math
from dataclasses import dataclass
from typing import Tuple

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CropPlan:
    """
    Crop rectangle in source-image pixels.

    ``adjusted_region`` is the aspect-corrected box before padding, as
    floats (x, y, w, h); it is kept for debugging and tests.
    """
    x: int
    y: int
    width: int
    height: int
    aspect_adjusted: bool
    padding: float
    adjusted_region: Tuple[float, float, float, float]

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return self.x, self.y, self.width, self.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def contains(self, x: float, y: float, width: float, height: float) -> bool:
        return (
            self.x <= x
            and self.y <= y
            and x + width <= self.x + self.width
            and y + height <= self.y + self.height
        )


class CropPlanner:
    """
    Grows a detected region toward the product's aspect ratio, pads it,
    and clamps it to the image.

    The detected region itself is never cut: aspect correction only grows
    the box, padding only grows it, and clamping only trims what lies
    outside the image.
    """

    def __init__(
        self,
        target_aspect: float = config.TARGET_PRODUCT_ASPECT,
        padding: float = config.CROP_PADDING,
        max_expansion: float = config.MAX_ASPECT_EXPANSION,
        tolerance: float = config.ASPECT_TOLERANCE,
    ):
        """
        Initialize planner.

        Args:
            target_aspect: Desired width/height of the crop core
            padding: Fraction of the adjusted extent added on each side
            max_expansion: Cap on how far one axis may grow (x original extent)
            tolerance: Aspect deviation that is left alone
        """
        self.target_aspect = target_aspect
        self.padding = padding
        self.max_expansion = max_expansion
        self.tolerance = tolerance

    def plan(
        self,
        image_size: Tuple[int, int],
        region: Tuple[float, float, float, float],
    ) -> CropPlan:
        """
        Compute the crop for one detected region.

        Args:
            image_size: (width, height) of the source image
            region: Detected region (x, y, w, h) in pixels

        Returns:
            CropPlan fully inside the image and containing the region
        """
        image_width, image_height = image_size
        x, y, w, h = self._clip_region(region, image_width, image_height)

        if w <= 0 or h <= 0:
            logger.warning("Degenerate region %s, cropping the whole image", region)
            return CropPlan(0, 0, image_width, image_height, False, self.padding, (x, y, w, h))

        adjusted_w, adjusted_h = w, h
        detected_aspect = w / h
        aspect_adjusted = abs(detected_aspect - self.target_aspect) > self.tolerance

        if aspect_adjusted:
            if detected_aspect > self.target_aspect:
                # Too wide: grow height
                adjusted_h = min(w / self.target_aspect, h * self.max_expansion)
            else:
                # Too narrow: grow width
                adjusted_w = min(h * self.target_aspect, w * self.max_expansion)

        center_x = x + w / 2
        center_y = y + h / 2
        adjusted = (center_x - adjusted_w / 2, center_y - adjusted_h / 2, adjusted_w, adjusted_h)

        pad_x = adjusted_w * self.padding
        pad_y = adjusted_h * self.padding
        left = max(0, math.floor(adjusted[0] - pad_x))
        top = max(0, math.floor(adjusted[1] - pad_y))
        right = min(image_width, math.ceil(adjusted[0] + adjusted_w + pad_x))
        bottom = min(image_height, math.ceil(adjusted[1] + adjusted_h + pad_y))

        plan = CropPlan(
            x=left,
            y=top,
            width=right - left,
            height=bottom - top,
            aspect_adjusted=aspect_adjusted,
            padding=self.padding,
            adjusted_region=adjusted,
        )
        logger.debug(
            "Crop plan: region=%s aspect=%.2f -> crop=%s adjusted=%s",
            (x, y, w, h), detected_aspect, plan.box, aspect_adjusted,
        )
        return plan

    @staticmethod
    def _clip_region(region, image_width: int, image_height: int) -> Tuple[float, float, float, float]:
        """Trim a region to the image so containment is always achievable."""
        x, y, w, h = region
        x1 = min(max(x, 0), image_width)
        y1 = min(max(y, 0), image_height)
        x2 = min(max(x + w, 0), image_width)
        y2 = min(max(y + h, 0), image_height)
        return x1, y1, x2 - x1, y2 - y1
