# config.py
"""
Application configuration constants for SmartCollage
"""

# Canvas defaults
DEFAULT_PREVIEW_SIZE = 1024
DEFAULT_EXPORT_SIZE = 4096
DEFAULT_MAIN_RATIO = 0.48
DEFAULT_GAP = 0
DEFAULT_BACKGROUND = "#ffffff"

# Canvas limits
MIN_CANVAS_SIZE = 64
MAX_CANVAS_SIZE = 16384
MIN_MAIN_RATIO = 0.05
MAX_MAIN_RATIO = 0.95
GAP_DIVISOR = 8  # gap is clamped to size // GAP_DIVISOR

# Grid packer settings
GAP_FALLBACK_ATTEMPTS = 4

# Render pipeline settings
FRAME_YIELD_INTERVAL = 4  # yield to the host every Nth ring image

# Supported image formats
SUPPORTED_IMAGE_FORMATS = ['png', 'jpg', 'jpeg', 'bmp', 'webp', 'gif', 'tiff']

# Export options
EXPORT_FORMATS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
}
DEFAULT_EXPORT_FORMAT = "image/png"
QUALITY_MIN = 1
QUALITY_MAX = 100
QUALITY_DEFAULT = 0.92  # fraction of QUALITY_MAX
EXPORT_FILENAME_PREFIX = "smartcollage"

# Demo images
DEMO_IMAGE_COUNT = 120

# Logging
LOG_FILENAME = "smartcollage.log"
LOG_MAX_BYTES = 1_048_576
LOG_BACKUP_COUNT = 5
