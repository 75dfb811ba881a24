"""Stitch the synthesized crop back into the original photo."""
import io
import logging
from typing import Tuple

import numpy as np
from PIL import Image

import config
from crop_planner import CropPlan

logger = logging.getLogger(__name__)


class FeatheredCompositor:
    """
    Blends a replacement crop into the full image through an elliptical
    soft mask, so the crop's rectangular border never shows.
    """

    def __init__(self, opaque_radius: float = config.MASK_OPAQUE_RADIUS):
        """
        Initialize compositor.

        Args:
            opaque_radius: Fraction of the ellipse radius that stays fully opaque
        """
        self.opaque_radius = opaque_radius

    def create_elliptical_mask(self, size: Tuple[int, int]) -> np.ndarray:
        """
        Build an alpha mask shaped to the crop's inscribed ellipse.

        Args:
            size: (width, height) of the crop

        Returns:
            Mask (float32, 0-1) of shape (height, width): 1 inside the opaque
            core, smoothstep falloff to 0 at the ellipse edge, 0 outside
        """
        w, h = size
        if w <= 0 or h <= 0:
            return np.zeros((max(h, 0), max(w, 0)), dtype=np.float32)

        # Pixel centers, relative to the crop center, in units of the semi-axes
        xs = (np.arange(w, dtype=np.float32) + 0.5 - w / 2) / (w / 2)
        ys = (np.arange(h, dtype=np.float32) + 0.5 - h / 2) / (h / 2)
        radius = np.sqrt(xs[np.newaxis, :] ** 2 + ys[:, np.newaxis] ** 2)

        falloff = max(1.0 - self.opaque_radius, 1e-6)
        t = np.clip((radius - self.opaque_radius) / falloff, 0.0, 1.0)
        mask = 1.0 - t * t * (3.0 - 2.0 * t)
        return mask.astype(np.float32)

    def composite(
        self,
        original: Image.Image,
        replacement: Image.Image,
        plan: CropPlan,
    ) -> Image.Image:
        """
        Alpha-blend the replacement crop over the original at the planned offset.

        Args:
            original: Full source photo
            replacement: Corrected crop, already at the planned crop size
            plan: Crop plan the replacement was made for

        Returns:
            Full-size composite; pixels outside the mask keep the original values
        """
        if replacement.size != plan.size:
            raise ValueError(f"Replacement size {replacement.size} does not match crop plan {plan.size}")

        x, y, w, h = plan.box
        scene_np = np.array(original.convert("RGB")).astype(np.float32)
        crop_np = np.array(replacement.convert("RGB")).astype(np.float32)

        mask = self.create_elliptical_mask((w, h))
        mask_3d = np.stack([mask] * 3, axis=2)

        scene_np[y:y + h, x:x + w] = (
            mask_3d * crop_np +
            (1 - mask_3d) * scene_np[y:y + h, x:x + w]
        )

        logger.debug("Composited %sx%s crop at (%s, %s)", w, h, x, y)
        return Image.fromarray(np.clip(np.rint(scene_np), 0, 255).astype(np.uint8))

    @staticmethod
    def encode(image: Image.Image, quality: int = config.OUTPUT_JPEG_QUALITY) -> bytes:
        buffer = io.BytesIO()
        image.convert("RGB").save(buffer, format="JPEG", quality=quality)
        return buffer.getvalue()
