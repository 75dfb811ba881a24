"""Main pipeline orchestrator: scan a bottle, then morph it into the sponsor's."""
import asyncio
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal, Optional

from PIL import Image, UnidentifiedImageError

import config
from color_matcher import ColorMatcher
from compositor import FeatheredCompositor
from crop_planner import CropPlan, CropPlanner
from exceptions import SynthesisError
from gemini_generator import GeminiGenerator, build_instruction
from lighting_analyzer import LightingAnalyzer, channel_means
from reference_image import load_reference_bytes, reference_mime_type
from region_normalizer import FALLBACK_REGION, NormalizedRegion
from resolution_scaler import ResolutionScaler, encode_image
from signal_detector import DetectionResult, DetectionSource, SignalFusionDetector

logger = logging.getLogger(__name__)


# ============================================
# CONFIGURATION - Edit these values
# ============================================
IMAGE_PATH = "input/bottle.jpg"  # Photo of a competitor bottle
MORPH_PERCENT = 100  # 0-100
OUTPUT_PATH = "output/morphed.jpg"
# ============================================


# Detection region sources plus "caller" (region passed into morph) and
# "fallback" (nothing detected, FALLBACK_REGION used)
RegionSource = Literal["object", "logo", "cropHint", "none", "caller", "fallback"]


@dataclass(frozen=True)
class CompositeResult:
    """Final image plus provenance for debugging. Never persisted."""
    image: bytes
    detection_source: DetectionSource = "none"
    region_source: RegionSource = "none"
    aspect_adjusted: bool = False
    scale_factor: float = 1.0
    color_correction_magnitude: float = 0.0
    fallback: bool = False
    fallback_reason: Optional[str] = None
    crop_plan: Optional[CropPlan] = field(default=None, compare=False)

    def provenance(self) -> dict:
        return {
            "detectionSource": self.detection_source,
            "regionSource": self.region_source,
            "aspectAdjusted": self.aspect_adjusted,
            "scaleFactorApplied": self.scale_factor,
            "colorCorrectionMagnitude": round(self.color_correction_magnitude, 2),
            "fallback": self.fallback,
            "fallbackReason": self.fallback_reason,
        }


def emit_stage(stage: str, **provenance) -> None:
    """Log one structured event at a pipeline stage boundary."""
    logger.info("%s %s", stage, provenance, extra={"stage": stage, "provenance": provenance})


def validate_upload(
    image_bytes: bytes,
    min_bytes: int = None,
    max_bytes: int = None,
) -> str:
    """
    Check an uploaded photo before any network call.

    Args:
        image_bytes: Raw upload
        min_bytes: Smallest accepted size (defaults to config)
        max_bytes: Largest accepted size (defaults to config)

    Returns:
        Detected image format (e.g. "JPEG")

    Raises:
        ValueError: on unsupported format or size out of bounds
    """
    min_bytes = config.MIN_UPLOAD_BYTES if min_bytes is None else min_bytes
    max_bytes = config.MAX_UPLOAD_BYTES if max_bytes is None else max_bytes

    if not image_bytes:
        raise ValueError("No image provided")
    if len(image_bytes) > max_bytes:
        raise ValueError(f"Image too large (max {max_bytes // (1024 * 1024)}MB)")
    if len(image_bytes) < min_bytes:
        raise ValueError("Image too small. Please take a clear photo.")

    try:
        image_format = Image.open(io.BytesIO(image_bytes)).format
    except UnidentifiedImageError as e:
        raise ValueError("Invalid image format") from e
    if image_format not in config.ACCEPTED_FORMATS:
        raise ValueError(f"Invalid image format: {image_format}")
    return image_format


class MorphPipeline:
    """
    Runs detection at capture time and the crop/synthesize/composite chain
    at morph time. Each call is independent; the only shared state is the
    read-only reference image cache.
    """

    def __init__(
        self,
        detector: SignalFusionDetector = None,
        generator: GeminiGenerator = None,
        planner: CropPlanner = None,
        scaler: ResolutionScaler = None,
        analyzer: LightingAnalyzer = None,
        matcher: ColorMatcher = None,
        compositor: FeatheredCompositor = None,
        reference_path: Path = config.REFERENCE_IMAGE_PATH,
    ):
        """Initialize the pipeline. Omitted stages are built from config."""
        self.detector = detector or SignalFusionDetector()
        self.generator = generator or GeminiGenerator()
        self.planner = planner or CropPlanner()
        self.scaler = scaler or ResolutionScaler()
        self.analyzer = analyzer or LightingAnalyzer()
        self.matcher = matcher or ColorMatcher()
        self.compositor = compositor or FeatheredCompositor()
        self.reference_path = reference_path

    async def scan(self, image_bytes: bytes, validate: bool = True) -> DetectionResult:
        """
        Detect the competitor bottle in a photo.

        Raises:
            ValueError: invalid upload
            DetectionError: vision service failure (never degraded silently)
        """
        if validate:
            validate_upload(image_bytes)

        detection = await self.detector.detect(image_bytes)
        emit_stage("detection-complete", **detection.summary())
        return detection

    async def morph(
        self,
        image_bytes: bytes,
        region: Optional[NormalizedRegion] = None,
        morph_percent: int = 100,
        detection_source: DetectionSource = "none",
    ) -> CompositeResult:
        """
        Replace the detected bottle with the sponsor's bottle.

        Args:
            image_bytes: Original photo
            region: Previously detected region; detection runs when omitted
            morph_percent: 0-100; 0 returns the original untouched
            detection_source: Source of ``region`` when supplied by the caller

        Returns:
            CompositeResult. On synthesis failure or timeout the image is the
            original bytes unchanged and ``fallback`` is True.

        Raises:
            ValueError: morph_percent outside 0-100
            DetectionError: when detection has to run and fails
            FileNotFoundError: the reference bottle image is missing
        """
        if not 0 <= morph_percent <= 100:
            raise ValueError("morph_percent must be between 0 and 100")

        region_source: RegionSource = "caller" if region is not None else "none"
        if region is None:
            detection = await self.scan(image_bytes, validate=False)
            detection_source = detection.source
            region_source = detection.region_source
            region = detection.region
            if region is None:
                logger.warning("No region detected, using fallback region %s", FALLBACK_REGION)
                region = FALLBACK_REGION
                region_source = "fallback"

        if morph_percent == 0:
            return CompositeResult(image_bytes, detection_source, region_source)

        reference_bytes = load_reference_bytes(self.reference_path)

        original = Image.open(io.BytesIO(image_bytes))
        original.load()
        image_size = original.size

        # Step 1: Plan crop
        plan = self.planner.plan(image_size, region.to_pixels(*image_size))
        emit_stage(
            "crop-planned",
            detectionSource=detection_source,
            regionSource=region_source,
            crop=plan.box,
            aspectAdjusted=plan.aspect_adjusted,
        )

        # Step 2: Crop, capture original statistics, scale down
        crop = original.convert("RGB").crop((plan.x, plan.y, plan.x + plan.width, plan.y + plan.height))
        original_means = channel_means(crop)
        scaled = self.scaler.downscale(encode_image(crop))
        lighting = self.analyzer.analyze(original_means, region)

        # Step 3: Synthesize
        try:
            replacement_bytes = await self.generator.replace_bottle(
                scaled.data,
                reference_bytes,
                build_instruction(lighting, morph_percent),
                scaled.size,
                reference_mime_type(self.reference_path),
            )
            replacement = self._decode_replacement(replacement_bytes, scaled.size)
        except SynthesisError as e:
            logger.warning("Synthesis failed, returning original image: %s", e)
            result = CompositeResult(
                image=image_bytes,
                detection_source=detection_source,
                region_source=region_source,
                aspect_adjusted=plan.aspect_adjusted,
                scale_factor=scaled.scale,
                fallback=True,
                fallback_reason=str(e),
                crop_plan=plan,
            )
            emit_stage("morph-fallback", **result.provenance())
            return result

        replacement = self.scaler.restore(replacement, scaled)
        emit_stage("synthesis-complete", size=replacement.size, scaleFactorApplied=scaled.scale)

        # Step 4: Color match and composite
        correction = self.matcher.compute(original_means, channel_means(replacement))
        corrected = self.matcher.apply(replacement, correction)
        composite = self.compositor.composite(original, corrected, plan)

        result = CompositeResult(
            image=self.compositor.encode(composite),
            detection_source=detection_source,
            region_source=region_source,
            aspect_adjusted=plan.aspect_adjusted,
            scale_factor=scaled.scale,
            color_correction_magnitude=correction.magnitude,
            crop_plan=plan,
        )
        emit_stage("composite-complete", **result.provenance())
        return result

    @staticmethod
    def _decode_replacement(data: bytes, expected_size) -> Image.Image:
        """Decode synthesis output; anything unusable counts as a synthesis failure."""
        try:
            image = Image.open(io.BytesIO(data or b""))
            image.load()
        except (UnidentifiedImageError, OSError) as e:
            raise SynthesisError("Synthesis returned no usable image data") from e
        if image.size != tuple(expected_size):
            raise SynthesisError(f"Synthesis returned {image.size}, expected {tuple(expected_size)}")
        return image.convert("RGB")


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")

    image_path = Path(IMAGE_PATH)
    if not image_path.exists():
        print(f"Error: Image not found at {IMAGE_PATH}")
        return

    if not Path(config.REFERENCE_IMAGE_PATH).is_file():
        print(f"Error: Reference bottle not found at {config.REFERENCE_IMAGE_PATH} (set REFERENCE_IMAGE_PATH)")
        return

    print("=" * 60)
    print("BOTTLE MORPH PIPELINE")
    print("=" * 60)

    pipeline = MorphPipeline()
    result = asyncio.run(pipeline.morph(image_path.read_bytes(), morph_percent=MORPH_PERCENT))

    output_path = Path(OUTPUT_PATH)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_bytes(result.image)

    print(f"Saved to: {output_path}")
    print(f"Provenance: {result.provenance()}")


if __name__ == "__main__":
    main()
