import asyncio

import pytest

from conftest import FakeVisionClient, make_image_bytes, normalized_poly, pixel_poly
from exceptions import DetectionError
from region_normalizer import NormalizedVertices, PixelVertices
from signal_detector import (
    COMPETITOR_BRANDS,
    DetectionResult,
    SignalFusionDetector,
    first_match,
    match_keyword,
    parse_signals,
)


def fuse(raw, allow_containers=False, size=(200, 300)):
    detector = SignalFusionDetector(allow_containers=allow_containers)
    return detector.fuse(parse_signals(raw, *size))


def test_parse_polygon_shapes(bottle_response):
    signals = parse_signals(bottle_response, 200, 300)
    assert isinstance(signals.logos[0].polygon, PixelVertices)
    assert signals.logos[0].polygon.image_width == 200
    assert isinstance(signals.objects[0].polygon, NormalizedVertices)
    assert signals.objects[0].description == "Bottle"
    # Vision drops zero coordinates; they default to 0
    assert signals.crop_hints[0].polygon.vertices[0] == (0, 0)
    assert signals.crop_hints[0].score == pytest.approx(0.8)


def test_match_keyword_is_case_insensitive_substring():
    assert match_keyword("Some JOHNNIE WALKER label", COMPETITOR_BRANDS) == "Johnnie Walker"
    assert match_keyword("Coca-Cola", COMPETITOR_BRANDS) is None


def test_full_response_prefers_logo_brand_and_bottle_object(bottle_response):
    result = fuse(bottle_response)
    assert result.brand == "Jameson Irish Whiskey"
    assert result.source == "logo"
    assert result.confidence == pytest.approx(0.92)
    assert result.region_source == "object"
    assert result.region.x == pytest.approx(0.3)
    assert result.region.height == pytest.approx(0.6)
    assert result.aspect_ratio == pytest.approx(3.0)
    assert result.has_bottle
    assert result.has_whiskey
    assert result.detected_text.startswith("JAMESON")


def test_text_match_uses_fixed_confidence():
    raw = {"textAnnotations": [{"description": "Bushmills\nOriginal"}]}
    result = fuse(raw)
    assert result.brand == "Bushmills"
    assert result.source == "text"
    assert result.confidence == pytest.approx(0.85)


def test_label_match_reports_label_score():
    raw = {"labelAnnotations": [{"description": "Liquor", "score": 0.95},
                                {"description": "Johnnie Walker", "score": 0.7}]}
    result = fuse(raw)
    assert result.brand == "Johnnie Walker"
    assert result.source == "object"
    assert result.confidence == pytest.approx(0.7)
    assert result.labels == ("Liquor", "Johnnie Walker")


def test_logo_beats_text_even_when_text_names_other_brand():
    raw = {
        "logoAnnotations": [{"description": "Teeling Whiskey", "score": 0.6}],
        "textAnnotations": [{"description": "Jameson"}],
    }
    result = fuse(raw)
    assert result.brand == "Teeling"
    assert result.source == "logo"


def test_logo_region_is_expanded_to_bottle_when_no_object():
    raw = {"logoAnnotations": [{"description": "Jameson", "score": 0.9,
                                "boundingPoly": pixel_poly(40, 120, 80, 150)}]}
    result = fuse(raw)
    assert result.region_source == "logo"
    assert isinstance(result.bounding_polygon, NormalizedVertices)
    assert result.region.x == pytest.approx(0.15)
    assert result.region.y == pytest.approx(0.3)
    assert result.region.width == pytest.approx(0.3)
    assert result.region.height == pytest.approx(0.3)


def test_region_is_independent_of_brand_signal():
    raw = {
        "textAnnotations": [{"description": "Woodford Reserve"}],
        "logoAnnotations": [{"description": "Woodford", "score": 0.4,
                             "boundingPoly": pixel_poly(40, 120, 80, 150)}],
        "localizedObjectAnnotations": [{"name": "Wine bottle", "score": 0.7,
                                        "boundingPoly": normalized_poly(0.1, 0.1, 0.3, 0.9)}],
    }
    result = fuse(raw)
    assert result.source == "logo"
    assert result.region_source == "object"
    assert result.region.x == pytest.approx(0.1)


def test_degenerate_object_falls_through_to_logo():
    raw = {
        "logoAnnotations": [{"description": "Jameson", "score": 0.9,
                             "boundingPoly": pixel_poly(40, 120, 80, 150)}],
        "localizedObjectAnnotations": [{"name": "Bottle", "score": 0.7,
                                        "boundingPoly": normalized_poly(0.3, 0.2, 0.3, 0.8)}],
    }
    assert fuse(raw).region_source == "logo"


def test_crop_hint_used_when_no_object_or_logo_region():
    raw = {
        "logoAnnotations": [{"description": "Jameson", "score": 0.9}],
        "cropHintsAnnotation": {"cropHints": [
            {"boundingPoly": pixel_poly(20, 30, 180, 270), "confidence": 0.7},
            {"boundingPoly": pixel_poly(0, 0, 10, 10), "confidence": 0.2},
        ]},
    }
    result = fuse(raw)
    assert result.region_source == "cropHint"
    assert result.region.x == pytest.approx(0.1)
    assert result.region.height == pytest.approx(0.8)


def test_logo_only_without_geometry_has_no_region():
    raw = {"logoAnnotations": [{"description": "Jameson Irish Whiskey", "score": 0.81}]}
    result = fuse(raw)
    assert result.brand == "Jameson Irish Whiskey"
    assert result.source == "logo"
    assert result.bounding_polygon is None
    assert result.region is None
    assert result.expanded_region is None
    assert result.region_source == "none"


def test_non_matching_logo_gives_no_brand_and_no_logo_region():
    raw = {"logoAnnotations": [{"description": "Coca-Cola", "score": 0.9,
                                "boundingPoly": pixel_poly(40, 120, 80, 150)}]}
    result = fuse(raw)
    assert result.brand is None
    assert result.source == "none"
    assert result.region is None


def test_unbranded_photo_gets_no_region():
    raw = {
        "labelAnnotations": [{"description": "Cup", "score": 0.8}],
        "localizedObjectAnnotations": [{"name": "Bottle", "score": 0.9,
                                        "boundingPoly": normalized_poly(0.1, 0.1, 0.3, 0.9)}],
        "cropHintsAnnotation": {"cropHints": [
            {"boundingPoly": pixel_poly(0, 0, 200, 300), "confidence": 0.9},
        ]},
    }
    result = fuse(raw)
    assert result.brand is None
    assert result.region is None
    assert result.bounding_polygon is None
    assert result.expanded_region is None
    assert result.region_source == "none"
    assert result.has_bottle


def test_empty_response_is_not_an_error():
    result = fuse({})
    assert result == DetectionResult()
    assert not result.detected
    assert result.source == "none"


def test_expanded_region_accompanies_region(bottle_response):
    result = fuse(bottle_response)
    assert result.expanded_region.width == pytest.approx(0.24)
    assert result.expanded_region.center == pytest.approx(result.region.center)


def test_brand_strategies_are_ordered_and_named():
    detector = SignalFusionDetector()
    assert [name for name, _ in detector.brand_strategies] == ["logo", "text", "label"]
    assert [name for name, _ in detector.region_strategies] == ["object", "logo", "cropHint"]


def test_first_match_stops_at_first_hit():
    calls = []

    def strategy(name, value):
        def run(signals):
            calls.append(name)
            return value
        return name, run

    result = first_match([strategy("a", None), strategy("b", "hit"), strategy("c", "late")], None)
    assert result == "hit"
    assert calls == ["a", "b"]


def can_response(box):
    return {
        "labelAnnotations": [{"description": "Tin can", "score": 0.9}],
        "localizedObjectAnnotations": [{"name": "Tin can", "score": 0.77,
                                        "boundingPoly": normalized_poly(*box)}],
    }


def test_container_targets_disabled_by_default():
    result = fuse(can_response((0.3, 0.3, 0.6, 0.6)))
    assert result.brand is None
    assert result.container == "can"


def test_container_target_reports_can():
    result = fuse(can_response((0.3, 0.3, 0.6, 0.6)), allow_containers=True)
    assert result.brand == "Soda Can"
    assert result.source == "object"
    assert result.confidence == pytest.approx(0.77)
    assert result.region_source == "object"


def test_tall_can_is_corrected_to_sparkling_water():
    result = fuse(can_response((0.4, 0.2, 0.6, 0.7)), allow_containers=True)
    assert result.aspect_ratio == pytest.approx(2.5)
    assert result.container == "sparkling"
    assert result.brand == "Sparkling Water"


def test_detect_calls_service_once_and_fuses(bottle_response):
    client = FakeVisionClient(bottle_response)
    detector = SignalFusionDetector(client=client)
    result = asyncio.run(detector.detect(make_image_bytes((200, 300))))
    assert len(client.payloads) == 1
    assert result.brand == "Jameson Irish Whiskey"


def test_detect_normalizes_against_sent_payload_size():
    raw = {"logoAnnotations": [{"description": "Jameson", "score": 0.9,
                                "boundingPoly": pixel_poly(0, 0, 512, 256)}]}
    client = FakeVisionClient(raw)
    detector = SignalFusionDetector(client=client)
    # 2048x1024 is shrunk to 1024x512 before sending
    result = asyncio.run(detector.detect(make_image_bytes((2048, 1024), format="JPEG")))
    assert result.region_source == "logo"
    logo_width = 512 / 1024
    assert result.region.width == pytest.approx(logo_width * 1.5)


def test_detect_propagates_service_failure(vision_failure):
    detector = SignalFusionDetector(client=FakeVisionClient(error=vision_failure))
    with pytest.raises(DetectionError):
        asyncio.run(detector.detect(make_image_bytes()))
