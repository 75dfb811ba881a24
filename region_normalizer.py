"""Bounding polygon normalization and region expansion.

The vision service reports polygons in two shapes: pixel vertices (text
and logo annotations) or pre-normalized vertices (localized objects).
Both are modelled explicitly here and collapsed into one axis-aligned
``NormalizedRegion`` so nothing downstream cares which one arrived.

None of these helpers raise on bad geometry. A missing or degenerate
region is an expected outcome and is reported as ``None``.
"""
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple, Union

import config

Vertex = Tuple[float, float]


@dataclass(frozen=True)
class PixelVertices:
    """Polygon in source-image pixel coordinates."""
    vertices: Tuple[Vertex, ...]
    image_width: Optional[int] = None
    image_height: Optional[int] = None


@dataclass(frozen=True)
class NormalizedVertices:
    """Polygon with every coordinate already expressed as a 0-1 fraction."""
    vertices: Tuple[Vertex, ...]


BoundingPolygon = Union[PixelVertices, NormalizedVertices]


@dataclass(frozen=True)
class NormalizedRegion:
    """Axis-aligned rectangle as fractions of image width/height."""
    x: float
    y: float
    width: float
    height: float

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    @property
    def aspect_ratio(self) -> Optional[float]:
        """Height over width, or None for a zero-width region."""
        if self.width <= 0:
            return None
        return self.height / self.width

    def to_polygon(self) -> NormalizedVertices:
        x2 = self.x + self.width
        y2 = self.y + self.height
        return NormalizedVertices(((self.x, self.y), (x2, self.y), (x2, y2), (self.x, y2)))

    def to_pixels(self, image_width: int, image_height: int) -> Tuple[int, int, int, int]:
        """
        Convert to a pixel box (x, y, w, h) that stays inside the image.

        Args:
            image_width: Source image width in pixels
            image_height: Source image height in pixels

        Returns:
            Integer pixel box
        """
        px = min(max(int(round(self.x * image_width)), 0), image_width)
        py = min(max(int(round(self.y * image_height)), 0), image_height)
        pw = min(int(round(self.width * image_width)), image_width - px)
        ph = min(int(round(self.height * image_height)), image_height - py)
        return px, py, max(pw, 0), max(ph, 0)

    def as_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height}


FALLBACK_REGION = NormalizedRegion(*config.FALLBACK_REGION)


def _clamp_unit(value: float) -> float:
    return min(max(value, 0.0), 1.0)


def _region_from_vertices(vertices: Sequence[Vertex]) -> Optional[NormalizedRegion]:
    xs = [_clamp_unit(v[0]) for v in vertices]
    ys = [_clamp_unit(v[1]) for v in vertices]
    min_x, max_x = min(xs), max(xs)
    min_y, max_y = min(ys), max(ys)
    width = max(0.0, max_x - min_x)
    height = max(0.0, max_y - min_y)
    if width == 0 or height == 0:
        return None
    return NormalizedRegion(min_x, min_y, width, height)


def normalize_bounding_poly(
    polygon: Optional[BoundingPolygon],
    image_width: Optional[int] = None,
    image_height: Optional[int] = None,
) -> Optional[NormalizedRegion]:
    """
    Collapse a bounding polygon into a normalized axis-aligned region.

    Args:
        polygon: Pixel or normalized polygon (or None)
        image_width: Source width, used when the pixel polygon lacks one
        image_height: Source height, used when the pixel polygon lacks one

    Returns:
        NormalizedRegion, or None when the polygon cannot be localized
        (fewer than 4 vertices, zero area, or unknown image dimensions)
    """
    if polygon is None or len(polygon.vertices) < 4:
        return None

    if isinstance(polygon, NormalizedVertices):
        return _region_from_vertices(polygon.vertices)

    width = polygon.image_width or image_width
    height = polygon.image_height or image_height
    if not width or not height:
        return None

    scaled = [(vx / width, vy / height) for vx, vy in polygon.vertices]
    return _region_from_vertices(scaled)


def expand_region(
    region: Optional[NormalizedRegion],
    expand_x: float = config.OVERLAY_EXPANSION[0],
    expand_y: float = config.OVERLAY_EXPANSION[1],
) -> Optional[NormalizedRegion]:
    """
    Grow a region around its center for UI overlays, keeping it on screen.

    The expanded rectangle is shifted back inside the unit square rather
    than cropped; a dimension that exceeds 1 is clamped to 1 at origin 0.
    """
    if region is None:
        return None

    center_x, center_y = region.center
    width = min(region.width * expand_x, 1.0)
    height = min(region.height * expand_y, 1.0)
    x = min(max(center_x - width / 2, 0.0), 1.0 - width)
    y = min(max(center_y - height / 2, 0.0), 1.0 - height)
    return NormalizedRegion(x, y, width, height)


def expand_logo_to_bottle(
    region: Optional[NormalizedRegion],
    expand_x: float = config.LOGO_EXPANSION[0],
    expand_y: float = config.LOGO_EXPANSION[1],
) -> Optional[NormalizedRegion]:
    """
    Estimate a full bottle from a logo box.

    A logo usually covers only the label, so the box is widened a little
    and stretched vertically. Unlike ``expand_region`` the origin is
    clamped at 0 and the far edge is trimmed instead of shifted.
    """
    if region is None:
        return None

    center_x, center_y = region.center
    new_width = region.width * expand_x
    new_height = region.height * expand_y
    x = max(0.0, center_x - new_width / 2)
    y = max(0.0, center_y - new_height / 2)
    return NormalizedRegion(x, y, min(new_width, 1.0 - x), min(new_height, 1.0 - y))
