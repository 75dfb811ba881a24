"""Coarse lighting and perspective descriptors for synthesis prompts."""
import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from PIL import Image

from region_normalizer import NormalizedRegion

logger = logging.getLogger(__name__)

# Upright whiskey bottles are roughly 2.5x taller than wide
EXPECTED_UPRIGHT_ASPECT = 2.5

BRIGHTNESS_BINS = (
    (60.0, "dim, low-light"),
    (120.0, "moderately lit"),
    (180.0, "well lit"),
)
BRIGHTEST_BIN = "bright, high-key"

# (min red-minus-blue difference, description), checked in order
TEMPERATURE_BINS = (
    (40.0, "very warm (orange/tungsten)"),
    (20.0, "warm"),
    (8.0, "slightly warm"),
    (-8.0, "neutral"),
    (-20.0, "slightly cool"),
    (-40.0, "cool"),
)
COOLEST_BIN = "very cool (blue/daylight shade)"


@dataclass(frozen=True)
class LightingDescriptor:
    brightness: str
    color_temperature: str
    perspective: str

    def to_prompt(self) -> str:
        return (
            f"The scene lighting is {self.brightness} with a {self.color_temperature} color temperature. "
            f"The bottle is {self.perspective}. "
            "Match this lighting, color temperature and camera angle exactly."
        )


def channel_means(image: Image.Image) -> np.ndarray:
    """Per-channel RGB means as float64."""
    pixels = np.asarray(image.convert("RGB"), dtype=np.float64).reshape(-1, 3)
    if pixels.size == 0:
        return np.zeros(3)
    return pixels.mean(axis=0)


class LightingAnalyzer:
    """Turns pixel statistics into descriptive bins the synthesizer can read."""

    def analyze(self, means: Sequence[float], region: NormalizedRegion) -> LightingDescriptor:
        """
        Describe the crop's lighting and the bottle's pose.

        Args:
            means: Per-channel (R, G, B) means of the original crop
            region: Detected bottle region in the full frame

        Returns:
            LightingDescriptor with brightness, temperature and perspective bins
        """
        red, green, blue = (float(v) for v in means)
        luma = 0.299 * red + 0.587 * green + 0.114 * blue

        descriptor = LightingDescriptor(
            brightness=self.brightness_bin(luma),
            color_temperature=self.temperature_bin(red - blue),
            perspective=self.perspective_note(region),
        )
        logger.debug("Lighting: luma=%.1f r-b=%.1f -> %s", luma, red - blue, descriptor)
        return descriptor

    @staticmethod
    def brightness_bin(luma: float) -> str:
        for threshold, label in BRIGHTNESS_BINS:
            if luma < threshold:
                return label
        return BRIGHTEST_BIN

    @staticmethod
    def temperature_bin(red_minus_blue: float) -> str:
        for threshold, label in TEMPERATURE_BINS:
            if red_minus_blue > threshold:
                return label
        return COOLEST_BIN

    @staticmethod
    def perspective_note(region: NormalizedRegion) -> str:
        aspect = region.aspect_ratio
        if aspect is None:
            pose = "upright and facing the camera"
        else:
            deviation = aspect / EXPECTED_UPRIGHT_ASPECT
            if deviation < 0.6:
                pose = "tilted or lying at an angle, appearing shorter than an upright bottle"
            elif deviation > 1.4:
                pose = "upright and slightly foreshortened, appearing elongated"
            else:
                pose = "upright and facing the camera"

        _, center_y = region.center
        if center_y < 0.35:
            position = "high in the frame, seen from slightly below"
        elif center_y > 0.65:
            position = "low in the frame, seen from slightly above"
        else:
            position = "at eye level"

        return f"{pose}, {position}"
