"""Replace the scanned bottle using Gemini image editing."""
import asyncio
import io
import logging
import time
from typing import Optional, Tuple

import httpx
from google import genai
from google.genai import errors, types
from PIL import Image, UnidentifiedImageError

import config
from exceptions import SynthesisError, SynthesisTimeout
from lighting_analyzer import LightingDescriptor

logger = logging.getLogger(__name__)

TARGET_BOTTLE_DETAILS = """- Distinctive curved bottle shape with elegant profile and decorative neck
- Cream/beige shield-shaped label with "KEEPER'S HEART" text in an arc
- Copper/gold decorative bands on neck and base
- Amber/golden whiskey color through the glass
- Black decorative cap with copper pattern"""


def build_instruction(lighting: Optional[LightingDescriptor] = None, morph_percent: int = 100) -> str:
    """
    Create the edit instruction for one synthesis call.

    Args:
        lighting: Lighting/perspective bins of the crop
        morph_percent: 1-100, how far to transform toward the reference bottle

    Returns:
        Natural-language instruction
    """
    if morph_percent >= 100:
        prompt = f"""Replace the whiskey bottle in the first image with the exact bottle shown in the second reference image.

CRITICAL REQUIREMENTS:
- Remove the original whiskey bottle completely
- Place the Keeper's Heart bottle (from second image) in the exact same position and angle
- Preserve any hands, fingers, or background elements visible in the first image
- Match the lighting, shadows, and perspective of the original scene
- Fill in the background naturally where the old bottle was removed

Study the second reference image carefully for these details:
{TARGET_BOTTLE_DETAILS}"""
    else:
        prompt = f"""Edit the first image by partially transforming the bottle toward the Keeper's Heart bottle shown in the second reference image ({morph_percent}% complete transformation).

The target bottle has:
{TARGET_BOTTLE_DETAILS}

Make the bottle look {morph_percent}% like the reference bottle while keeping {100 - morph_percent}% of the original bottle's appearance.
Keep the background, hands, shadows, and composition from the first image exactly the same."""

    if lighting is not None:
        prompt += "\n\n" + lighting.to_prompt()

    prompt += "\n\nOutput ONLY the edited image with the same dimensions as the first image."
    return prompt


class GeminiGenerator:
    def __init__(self, api_key: str = None, client=None, timeout: float = config.SYNTHESIS_TIMEOUT_S):
        """Initialize Gemini generator."""
        self.timeout = timeout
        if client is not None:
            self.client = client
            return

        self.api_key = api_key or config.GEMINI_API_KEY
        if not self.api_key:
            raise ValueError("GEMINI_API_KEY not set in environment or config")

        self.client = genai.Client(api_key=self.api_key)

    async def replace_bottle(
        self,
        crop_bytes: bytes,
        reference_bytes: bytes,
        instruction: str,
        expected_size: Tuple[int, int],
        reference_mime_type: str = "image/png",
    ) -> bytes:
        """
        Ask Gemini to swap the bottle in a crop for the reference bottle.

        Args:
            crop_bytes: JPEG crop of the scanned bottle (working resolution)
            reference_bytes: Reference image of the sponsor bottle
            instruction: Edit instruction (see build_instruction)
            expected_size: (width, height) the result must have

        Returns:
            Encoded replacement image, same pixel size as the crop

        Raises:
            SynthesisTimeout: when the call exceeds the deadline
            SynthesisError: on API errors, text-only replies or size mismatch
        """
        started = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self.client.aio.models.generate_content(
                    model=config.GEMINI_MODEL,
                    contents=[
                        types.Part.from_bytes(data=crop_bytes, mime_type="image/jpeg"),
                        types.Part.from_bytes(data=reference_bytes, mime_type=reference_mime_type),
                        instruction,
                    ],
                    config=types.GenerateContentConfig(
                        temperature=config.GENERATION_TEMPERATURE,
                        top_p=config.GENERATION_TOP_P,
                        top_k=config.GENERATION_TOP_K,
                        response_modalities=["IMAGE", "TEXT"],
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise SynthesisTimeout(f"Gemini did not respond within {self.timeout}s") from e
        except (errors.APIError, httpx.HTTPError) as e:
            raise SynthesisError(f"Gemini API error: {e}") from e

        logger.info("Gemini responded in %dms", (time.monotonic() - started) * 1000)

        image_data = self._extract_image(response)
        try:
            size = Image.open(io.BytesIO(image_data)).size
        except UnidentifiedImageError as e:
            raise SynthesisError("Gemini returned undecodable image data") from e

        if size != tuple(expected_size):
            raise SynthesisError(f"Gemini returned {size}, expected {tuple(expected_size)}")
        return image_data

    @staticmethod
    def _extract_image(response) -> bytes:
        """Pull the first inline image out of a response."""
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            raise SynthesisError("Gemini returned no candidates")

        candidate = candidates[0]
        finish_reason = getattr(candidate, "finish_reason", None)
        if finish_reason is not None and finish_reason != types.FinishReason.STOP:
            message = getattr(candidate, "finish_message", None) or finish_reason
            raise SynthesisError(f"Gemini generation stopped: {message}")

        text_reply = None
        parts = candidate.content.parts if candidate.content and candidate.content.parts else []
        for part in parts:
            if getattr(part, "inline_data", None) and part.inline_data.data:
                return part.inline_data.data
            if getattr(part, "text", None):
                text_reply = part.text

        raise SynthesisError(f"No image generated in response: {text_reply or 'empty response'}")


if __name__ == "__main__":
    # Test the generator on a local crop
    from pathlib import Path
    from reference_image import load_reference_bytes

    test_crop = Path("input/crop.jpg")
    if test_crop.exists():
        crop = test_crop.read_bytes()
        generator = GeminiGenerator()
        result = asyncio.run(generator.replace_bottle(
            crop,
            load_reference_bytes(),
            build_instruction(),
            Image.open(test_crop).size,
        ))
        Path("output").mkdir(exist_ok=True)
        Path("output/replaced_crop.png").write_bytes(result)
        print("Replacement saved to output/replaced_crop.png")
    else:
        print(f"Please place a crop image at {test_crop}")
