"""Downscale oversized crops for synthesis and scale results back up."""
import io
import logging
from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np
from PIL import Image

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScaledCrop:
    """
    Crop bytes ready for synthesis.

    ``scale`` is working size / original size and is kept verbatim;
    ``original_size`` is the exact size to restore afterwards.
    """
    data: bytes
    scale: float
    size: Tuple[int, int]
    original_size: Tuple[int, int]


def encode_image(image: Image.Image, format: str = "JPEG", quality: int = config.CROP_JPEG_QUALITY) -> bytes:
    buffer = io.BytesIO()
    if format == "JPEG":
        image.convert("RGB").save(buffer, format=format, quality=quality)
    else:
        image.save(buffer, format=format)
    return buffer.getvalue()


class ResolutionScaler:
    """Keeps synthesis input under a working size limit."""

    def __init__(self, max_dimension: int = config.MAX_WORKING_DIMENSION):
        self.max_dimension = max_dimension

    def downscale(self, crop_bytes: bytes) -> ScaledCrop:
        """
        Shrink a crop whose longer side exceeds the limit.

        Args:
            crop_bytes: Encoded crop image

        Returns:
            ScaledCrop; unchanged bytes with scale 1.0 when within the limit
        """
        crop = Image.open(io.BytesIO(crop_bytes))
        width, height = crop.size
        longest = max(width, height)

        if longest <= self.max_dimension:
            return ScaledCrop(crop_bytes, 1.0, (width, height), (width, height))

        scale = self.max_dimension / longest
        new_size = (max(1, round(width * scale)), max(1, round(height * scale)))
        crop_np = np.array(crop.convert("RGB"))
        resized = cv2.resize(crop_np, new_size, interpolation=cv2.INTER_LANCZOS4)

        logger.info("Downscaled crop %sx%s -> %sx%s (scale %.4f)", width, height, *new_size, scale)
        data = encode_image(Image.fromarray(resized))
        return ScaledCrop(data, scale, new_size, (width, height))

    @staticmethod
    def restore(image: Image.Image, scaled: ScaledCrop) -> Image.Image:
        """
        Resize a synthesized crop back to the planned crop size.

        The target is the recorded original size rather than size / scale,
        so the result matches the crop plan exactly.
        """
        if image.size == scaled.original_size:
            return image
        image_np = np.array(image.convert("RGB"))
        resized = cv2.resize(image_np, scaled.original_size, interpolation=cv2.INTER_LANCZOS4)
        return Image.fromarray(resized)
