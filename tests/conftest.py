"""Shared fixtures for the bottle morph pipeline tests.

Everything here is offline: the vision and synthesis services are
replaced by small fakes that return canned responses.
"""
import asyncio
import io
import logging
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
from google.genai import types
from PIL import Image

# Add the project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from exceptions import DetectionError  # noqa: E402

logging.getLogger("PIL").setLevel(logging.WARNING)


def make_image_bytes(size=(200, 300), color=(120, 90, 60), format="PNG", box=None, box_color=(30, 40, 200)):
    """Solid image, optionally with a filled rectangle (x, y, w, h)."""
    image = Image.new("RGB", size, color)
    if box is not None:
        x, y, w, h = box
        image.paste(Image.new("RGB", (w, h), box_color), (x, y))
    buffer = io.BytesIO()
    image.save(buffer, format=format)
    return buffer.getvalue()


def image_response(data: bytes, finish_reason=types.FinishReason.STOP):
    part = SimpleNamespace(inline_data=SimpleNamespace(data=data, mime_type="image/png"), text=None)
    return SimpleNamespace(
        candidates=[SimpleNamespace(finish_reason=finish_reason, content=SimpleNamespace(parts=[part]))]
    )


def text_response(text: str = "I cannot edit this image."):
    part = SimpleNamespace(inline_data=None, text=text)
    return SimpleNamespace(
        candidates=[SimpleNamespace(finish_reason=types.FinishReason.STOP, content=SimpleNamespace(parts=[part]))]
    )


def echo_size_responder(color=(200, 170, 90)):
    """Reply with a solid image at the same size as the crop that was sent."""
    def respond(contents):
        crop = Image.open(io.BytesIO(contents[0].inline_data.data))
        return image_response(make_image_bytes(crop.size, color))
    return respond


class FakeModels:
    def __init__(self, response=None, responder=None, delay=0.0, error=None):
        self.response = response
        self.responder = responder
        self.delay = delay
        self.error = error
        self.calls = []

    async def generate_content(self, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if self.responder is not None:
            return self.responder(contents)
        return self.response


class FakeGenaiClient:
    """Stands in for ``genai.Client``; only ``aio.models.generate_content`` is used."""

    def __init__(self, **kwargs):
        self.models = FakeModels(**kwargs)
        self.aio = SimpleNamespace(models=self.models)


class FakeVisionClient:
    def __init__(self, result=None, error=None):
        self.result = result or {}
        self.error = error
        self.payloads = []

    async def annotate(self, image_bytes):
        self.payloads.append(image_bytes)
        if self.error is not None:
            raise self.error
        return self.result


class FakeDetector:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = 0

    async def detect(self, image_bytes):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.result


def pixel_poly(x1, y1, x2, y2):
    return {"vertices": [{"x": x1, "y": y1}, {"x": x2, "y": y1}, {"x": x2, "y": y2}, {"x": x1, "y": y2}]}


def normalized_poly(x1, y1, x2, y2):
    return {
        "normalizedVertices": [
            {"x": x1, "y": y1}, {"x": x2, "y": y1}, {"x": x2, "y": y2}, {"x": x1, "y": y2},
        ]
    }


@pytest.fixture
def bottle_response():
    """Vision response for a 200x300 photo of a Jameson bottle."""
    return {
        "logoAnnotations": [
            {"description": "Jameson", "score": 0.92, "boundingPoly": pixel_poly(40, 120, 80, 150)},
        ],
        "textAnnotations": [
            {"description": "JAMESON\nIrish Whiskey", "boundingPoly": pixel_poly(35, 110, 90, 160)},
            {"description": "JAMESON", "boundingPoly": pixel_poly(35, 110, 90, 130)},
        ],
        "localizedObjectAnnotations": [
            {"name": "Bottle", "score": 0.88, "boundingPoly": normalized_poly(0.3, 0.2, 0.5, 0.8)},
        ],
        "cropHintsAnnotation": {
            "cropHints": [{"boundingPoly": {"vertices": [{}, {"x": 200}, {"x": 200, "y": 300}, {"y": 300}]},
                           "confidence": 0.8}],
        },
    }


@pytest.fixture
def reference_path(tmp_path):
    path = tmp_path / "reference.png"
    path.write_bytes(make_image_bytes((120, 300), (180, 140, 60)))
    return path


@pytest.fixture
def vision_failure():
    return DetectionError("Vision API timed out after 10.0s")
