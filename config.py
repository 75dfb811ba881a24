"""Configuration for the pipeline."""
import os
from pathlib import Path

# API Keys
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "")
GOOGLE_VISION_API_KEY = os.getenv("GOOGLE_VISION_API_KEY", "")

# Paths
PROJECT_ROOT = Path(__file__).parent
REFERENCE_IMAGE_PATH = Path(
    os.getenv("REFERENCE_IMAGE_PATH", str(PROJECT_ROOT / "assets" / "keepersheart.png"))
)

# Gemini Settings
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash-image")
GENERATION_TEMPERATURE = 0.4  # Low for consistency across frames
GENERATION_TOP_P = 0.8
GENERATION_TOP_K = 40
SYNTHESIS_TIMEOUT_S = float(os.getenv("SYNTHESIS_TIMEOUT_S", "30"))

# Vision Settings
VISION_API_URL = "https://vision.googleapis.com/v1/images:annotate"
VISION_TIMEOUT_S = float(os.getenv("VISION_TIMEOUT_S", "10"))
VISION_MAX_DIMENSION = 1024  # Vision works best at 640-1024px
VISION_JPEG_QUALITY = 85
VISION_FEATURES = {
    "TEXT_DETECTION": 50,
    "LOGO_DETECTION": 10,
    "OBJECT_LOCALIZATION": 10,
    "LABEL_DETECTION": 20,
    "CROP_HINTS": 3,
}

# Upload validation
ACCEPTED_FORMATS = ("JPEG", "PNG", "WEBP")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(10 * 1024 * 1024)))
MIN_UPLOAD_BYTES = int(os.getenv("MIN_UPLOAD_BYTES", str(100 * 1024)))

# Detection
TEXT_MATCH_CONFIDENCE = 0.85  # OCR gives no score of its own
CONTAINER_DEFAULT_CONFIDENCE = 0.85
ALLOW_CONTAINER_TARGETS = os.getenv("ALLOW_CONTAINER_TARGETS", "").lower() in ("1", "true", "yes")
CAN_TO_SPARKLING_ASPECT = 1.8  # height/width
SPARKLING_TO_CAN_ASPECT = 1.5

# Regions (normalized 0-1)
OVERLAY_EXPANSION = (1.2, 1.2)
LOGO_EXPANSION = (1.5, 3.0)  # Logos cover roughly the middle third of a bottle
FALLBACK_REGION = (0.3, 0.15, 0.4, 0.7)  # x, y, width, height

# Crop planning
TARGET_PRODUCT_ASPECT = 0.4  # width/height of the sponsor bottle
CROP_PADDING = 0.15
MAX_ASPECT_EXPANSION = 2.0
ASPECT_TOLERANCE = 0.05

# Synthesis input / output
MAX_WORKING_DIMENSION = 1024
CROP_JPEG_QUALITY = 95
OUTPUT_JPEG_QUALITY = 90

# Compositing
MASK_OPAQUE_RADIUS = 0.7
COLOR_STRENGTH_MIN = 0.3
COLOR_STRENGTH_MAX = 0.6
COLOR_SHIFT_SATURATION = 60.0  # Shift magnitude at which strength tops out
