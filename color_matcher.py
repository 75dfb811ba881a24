"""Damped mean-shift color correction for synthesized crops."""
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from PIL import Image

import config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ColorCorrection:
    shift: np.ndarray  # original mean - synthesized mean, per channel
    strength: float

    @property
    def magnitude(self) -> float:
        return float(np.linalg.norm(self.shift))


class ColorMatcher:
    """
    Pulls the synthesized crop's channel means toward the original's.

    Only part of the shift is applied; the fraction grows with the size
    of the mismatch and is capped.
    """

    def __init__(
        self,
        min_strength: float = config.COLOR_STRENGTH_MIN,
        max_strength: float = config.COLOR_STRENGTH_MAX,
        saturation: float = config.COLOR_SHIFT_SATURATION,
    ):
        """
        Args:
            min_strength: Strength applied to a negligible shift
            max_strength: Strength cap for large shifts
            saturation: Shift magnitude at which the cap is reached
        """
        self.min_strength = min_strength
        self.max_strength = max_strength
        self.saturation = saturation

    def compute(self, original_means: Sequence[float], synthesized_means: Sequence[float]) -> ColorCorrection:
        """
        Compute the correction between two channel-mean vectors.

        Returns:
            ColorCorrection with strength in [min_strength, max_strength]
        """
        shift = np.asarray(original_means, dtype=np.float64) - np.asarray(synthesized_means, dtype=np.float64)
        magnitude = float(np.linalg.norm(shift))

        if not np.isfinite(magnitude):
            ratio = 1.0
        else:
            ratio = min(magnitude / self.saturation, 1.0)
        strength = self.min_strength + (self.max_strength - self.min_strength) * ratio

        logger.debug("Color shift %s (|%.1f|) strength %.2f", np.round(shift, 1), magnitude, strength)
        return ColorCorrection(shift=shift, strength=strength)

    @staticmethod
    def apply(image: Image.Image, correction: ColorCorrection) -> Image.Image:
        """Add the damped shift to every pixel and clip to 8-bit range."""
        image_np = np.asarray(image.convert("RGB"), dtype=np.float32)
        offset = np.nan_to_num(correction.shift * correction.strength).astype(np.float32)
        corrected = np.clip(image_np + offset, 0, 255)
        return Image.fromarray(corrected.astype(np.uint8))
