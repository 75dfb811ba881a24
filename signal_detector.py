"""Fuse vision-service signals into one brand match and one bottle region."""
import logging
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, List, Literal, Mapping, Optional, Sequence, Tuple

import config
from container_classifier import CONTAINER_BRANDS, ContainerClassifier, ContainerType
from region_normalizer import (
    BoundingPolygon,
    NormalizedRegion,
    NormalizedVertices,
    PixelVertices,
    expand_logo_to_bottle,
    expand_region,
    normalize_bounding_poly,
)
from vision_client import VisionClient, optimize_for_vision

logger = logging.getLogger(__name__)

DetectionSource = Literal["logo", "text", "object", "cropHint", "none"]

# Competitor brands (keyword -> display name). Matching is case-insensitive
# substring; order matters only when two keywords hit the same text.
COMPETITOR_BRANDS = {
    # Irish Whiskey
    "jameson": "Jameson Irish Whiskey",
    "tullamore": "Tullamore Dew",
    "bushmills": "Bushmills",
    "redbreast": "Redbreast",
    "writers": "Writers' Tears",
    "teeling": "Teeling",
    # Scotch Whisky
    "johnnie walker": "Johnnie Walker",
    "johnnie": "Johnnie Walker",
    # American Whiskey (Bourbon/Rye)
    "bulleit": "Bulleit",
    "woodford": "Woodford Reserve",
    "maker": "Maker's Mark",
    "angel": "Angel's Envy",
    "high west": "High West",
    "michter": "Michter's",
    "knob creek": "Knob Creek",
    "four roses": "Four Roses",
}

BOTTLE_OBJECT_KEYWORDS = ("bottle", "drink", "beverage", "alcohol", "liquor")
CONTAINER_OBJECT_KEYWORDS = BOTTLE_OBJECT_KEYWORDS + ("can",)
WHISKEY_KEYWORDS = ("whiskey", "whisky", "bourbon")


@dataclass(frozen=True)
class Annotation:
    """One entry from any of the vision feature lists."""
    description: str
    score: float = 0.0
    polygon: Optional[BoundingPolygon] = None


@dataclass(frozen=True)
class VisionSignals:
    logos: Tuple[Annotation, ...] = ()
    texts: Tuple[Annotation, ...] = ()
    labels: Tuple[Annotation, ...] = ()
    objects: Tuple[Annotation, ...] = ()
    crop_hints: Tuple[Annotation, ...] = ()

    @property
    def full_text(self) -> str:
        return " ".join(t.description for t in self.texts).lower()

    @property
    def is_empty(self) -> bool:
        return not (self.logos or self.texts or self.labels or self.objects or self.crop_hints)


@dataclass(frozen=True)
class BrandMatch:
    brand: str
    confidence: float
    source: DetectionSource


@dataclass(frozen=True)
class RegionMatch:
    polygon: BoundingPolygon
    region: NormalizedRegion
    source: DetectionSource
    score: float = 0.0


@dataclass(frozen=True)
class DetectionResult:
    """Outcome of one detection call. ``brand`` set implies ``source`` != "none"."""
    brand: Optional[str] = None
    confidence: float = 0.0
    bounding_polygon: Optional[BoundingPolygon] = None
    source: DetectionSource = "none"
    region: Optional[NormalizedRegion] = None
    expanded_region: Optional[NormalizedRegion] = None
    region_source: DetectionSource = "none"
    aspect_ratio: Optional[float] = None
    container: Optional[ContainerType] = None
    has_bottle: bool = False
    has_whiskey: bool = False
    labels: Tuple[str, ...] = field(default_factory=tuple)
    detected_text: str = ""

    @property
    def detected(self) -> bool:
        return self.brand is not None

    def summary(self) -> dict:
        return {
            "brand": self.brand,
            "confidence": self.confidence,
            "detectionSource": self.source,
            "regionSource": self.region_source,
            "region": self.region.as_dict() if self.region else None,
            "aspectRatio": round(self.aspect_ratio, 2) if self.aspect_ratio else None,
            "container": self.container,
        }


# ----------------------------------------------------------------------
# Response parsing
# ----------------------------------------------------------------------

def parse_polygon(raw: Optional[dict], image_width: int, image_height: int) -> Optional[BoundingPolygon]:
    """Turn a ``boundingPoly`` dict into the matching polygon type."""
    if not raw:
        return None
    # Vision omits zero-valued coordinates from vertex dicts
    if raw.get("normalizedVertices"):
        return NormalizedVertices(
            tuple((v.get("x", 0.0), v.get("y", 0.0)) for v in raw["normalizedVertices"])
        )
    if raw.get("vertices"):
        return PixelVertices(
            tuple((v.get("x", 0), v.get("y", 0)) for v in raw["vertices"]),
            image_width,
            image_height,
        )
    return None


def parse_signals(result: dict, image_width: int, image_height: int) -> VisionSignals:
    """
    Convert one ``annotate`` response entry into typed signals.

    Args:
        result: Response entry from the vision service
        image_width: Width of the image that was sent
        image_height: Height of the image that was sent
    """
    poly = partial(parse_polygon, image_width=image_width, image_height=image_height)

    def annotations(items, name_key="description", score_key="score"):
        return tuple(
            Annotation(
                description=item.get(name_key) or "",
                score=float(item.get(score_key) or 0.0),
                polygon=poly(item.get("boundingPoly")),
            )
            for item in items or []
        )

    crop_hints = (result.get("cropHintsAnnotation") or {}).get("cropHints")
    return VisionSignals(
        logos=annotations(result.get("logoAnnotations")),
        texts=annotations(result.get("textAnnotations")),
        labels=annotations(result.get("labelAnnotations")),
        objects=annotations(result.get("localizedObjectAnnotations"), name_key="name"),
        crop_hints=annotations(crop_hints, score_key="confidence"),
    )


# ----------------------------------------------------------------------
# Fusion strategies: each maps signals to an optional match
# ----------------------------------------------------------------------

def match_keyword(text: str, brands: Mapping[str, str]) -> Optional[str]:
    text = text.lower()
    for keyword, brand in brands.items():
        if keyword in text:
            return brand
    return None


def brand_from_logos(signals: VisionSignals, brands: Mapping[str, str]) -> Optional[BrandMatch]:
    for logo in signals.logos:
        brand = match_keyword(logo.description, brands)
        if brand:
            return BrandMatch(brand, logo.score, "logo")
    return None


def brand_from_text(signals: VisionSignals, brands: Mapping[str, str]) -> Optional[BrandMatch]:
    brand = match_keyword(signals.full_text, brands)
    if brand:
        return BrandMatch(brand, config.TEXT_MATCH_CONFIDENCE, "text")
    return None


def brand_from_labels(signals: VisionSignals, brands: Mapping[str, str]) -> Optional[BrandMatch]:
    for label in signals.labels:
        brand = match_keyword(label.description, brands)
        if brand:
            return BrandMatch(brand, label.score, "object")
    return None


def _region_match(
    polygon: Optional[BoundingPolygon], source: DetectionSource, score: float = 0.0
) -> Optional[RegionMatch]:
    region = normalize_bounding_poly(polygon)
    if region is None:
        return None
    return RegionMatch(polygon, region, source, score)


def region_from_objects(signals: VisionSignals, keywords: Sequence[str]) -> Optional[RegionMatch]:
    for obj in signals.objects:
        name = obj.description.lower()
        if any(keyword in name for keyword in keywords):
            match = _region_match(obj.polygon, "object", obj.score)
            if match:
                return match
    return None


def region_from_logos(signals: VisionSignals, brands: Mapping[str, str]) -> Optional[RegionMatch]:
    for logo in signals.logos:
        if not match_keyword(logo.description, brands):
            continue
        bottle = expand_logo_to_bottle(normalize_bounding_poly(logo.polygon))
        if bottle is not None and bottle.width > 0 and bottle.height > 0:
            return RegionMatch(bottle.to_polygon(), bottle, "logo")
    return None


def region_from_crop_hints(signals: VisionSignals) -> Optional[RegionMatch]:
    if not signals.crop_hints:
        return None
    return _region_match(signals.crop_hints[0].polygon, "cropHint")


Strategy = Tuple[str, Callable[[VisionSignals], object]]


def first_match(strategies: Sequence[Strategy], signals: VisionSignals):
    """Evaluate (name, strategy) pairs in order; first non-None result wins."""
    for name, strategy in strategies:
        match = strategy(signals)
        if match is not None:
            logger.debug("Strategy %s matched", name)
            return match
    return None


class SignalFusionDetector:
    """
    Detects the competitor bottle in a photo.

    Brand comes from logo > OCR text > labels. A region is only looked for
    once a brand (or, in test mode, a container) matched; it comes from a
    localized bottle object > the matching logo (expanded to bottle size) >
    the top crop hint.
    """

    def __init__(
        self,
        client: VisionClient = None,
        brands: Mapping[str, str] = None,
        allow_containers: bool = config.ALLOW_CONTAINER_TARGETS,
        classifier: ContainerClassifier = None,
    ):
        """
        Initialize detector.

        Args:
            client: Vision client (created from config when omitted)
            brands: Keyword -> brand table
            allow_containers: Accept cans/sparkling water when no brand matches
            classifier: Container classifier for the test-mode targets
        """
        self.client = client
        self.brands = dict(brands or COMPETITOR_BRANDS)
        self.allow_containers = allow_containers
        self.classifier = classifier or ContainerClassifier()

        self.brand_strategies: List[Strategy] = [
            ("logo", partial(brand_from_logos, brands=self.brands)),
            ("text", partial(brand_from_text, brands=self.brands)),
            ("label", partial(brand_from_labels, brands=self.brands)),
        ]
        object_keywords = CONTAINER_OBJECT_KEYWORDS if allow_containers else BOTTLE_OBJECT_KEYWORDS
        self.region_strategies: List[Strategy] = [
            ("object", partial(region_from_objects, keywords=object_keywords)),
            ("logo", partial(region_from_logos, brands=self.brands)),
            ("cropHint", region_from_crop_hints),
        ]

    async def detect(self, image_bytes: bytes) -> DetectionResult:
        """
        Call the vision service once and fuse the response.

        Args:
            image_bytes: Original encoded photo

        Returns:
            DetectionResult (brand None when nothing matched)

        Raises:
            DetectionError: when the vision service fails
        """
        if self.client is None:
            self.client = VisionClient()

        payload, (width, height) = optimize_for_vision(image_bytes)
        raw = await self.client.annotate(payload)
        return self.fuse(parse_signals(raw, width, height))

    def fuse(self, signals: VisionSignals) -> DetectionResult:
        """Pure fusion step, separated from I/O."""
        if signals.is_empty:
            logger.info("Vision returned no signals")
            return DetectionResult()

        brand_match: Optional[BrandMatch] = first_match(self.brand_strategies, signals)
        container = self.classifier.classify(
            (label.description for label in signals.labels),
            (obj.description for obj in signals.objects),
            (text.description for text in signals.texts),
        )

        # Only a brand (or a container target) earns a region
        region_match: Optional[RegionMatch] = None
        if brand_match is not None or (self.allow_containers and container):
            region_match = first_match(self.region_strategies, signals)

        region = region_match.region if region_match else None
        aspect_ratio = region.aspect_ratio if region else None
        container = self.classifier.correct_by_aspect(container, aspect_ratio)

        if brand_match is None and self.allow_containers and container:
            score = region_match.score if region_match else 0.0
            brand_match = BrandMatch(
                CONTAINER_BRANDS[container],
                score or config.CONTAINER_DEFAULT_CONFIDENCE,
                "object",
            )

        if brand_match is not None and region_match is None:
            logger.warning("No bounding region found, caller should use the fallback region")

        full_text = signals.full_text
        result = DetectionResult(
            brand=brand_match.brand if brand_match else None,
            confidence=brand_match.confidence if brand_match else 0.0,
            bounding_polygon=region_match.polygon if region_match else None,
            source=brand_match.source if brand_match else "none",
            region=region,
            expanded_region=expand_region(region),
            region_source=region_match.source if region_match else "none",
            aspect_ratio=aspect_ratio,
            container=container,
            has_bottle=any(
                any(k in obj.description.lower() for k in BOTTLE_OBJECT_KEYWORDS)
                for obj in signals.objects
            ),
            has_whiskey=any(k in full_text for k in WHISKEY_KEYWORDS),
            labels=tuple(label.description for label in signals.labels if label.description),
            detected_text=signals.texts[0].description if signals.texts else "",
        )
        logger.info("Detection summary: %s", result.summary())
        return result

