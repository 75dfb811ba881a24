"""Process-wide cache of the sponsor bottle reference image."""
import logging
from functools import lru_cache
from pathlib import Path

import config

logger = logging.getLogger(__name__)


@lru_cache(maxsize=None)
def load_reference_bytes(path: Path = config.REFERENCE_IMAGE_PATH) -> bytes:
    """
    Read the reference image once per path for the life of the process.

    The returned bytes are immutable and shared between requests; the
    cache is never invalidated.
    """
    path = Path(path)
    if not path.is_file():
        raise FileNotFoundError(
            f"Reference bottle image not found at {path}; set REFERENCE_IMAGE_PATH"
        )
    data = path.read_bytes()
    logger.info("Loaded reference image %s (%dKB)", path, len(data) // 1024)
    return data


def reference_mime_type(path: Path = config.REFERENCE_IMAGE_PATH) -> str:
    suffix = Path(path).suffix.lower()
    if suffix in (".jpg", ".jpeg"):
        return "image/jpeg"
    if suffix == ".webp":
        return "image/webp"
    return "image/png"
