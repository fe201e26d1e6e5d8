"""
Defaults and limits shared across the transcoder.
"""

# Source types accepted by the decoder
ALLOWED_TYPES = ("image/jpeg", "image/png", "image/webp")
IMAGE_EXTS = {".jpg", ".jpeg", ".png", ".webp"}
MAX_FILE_SIZE = 100 * 1024 * 1024  # 100MB

DEFAULT_QUALITY = 0.8
DEFAULT_OUTPUT_FORMAT = "image/webp"
WIDTH_PRESETS = (800, 1200, 1920, None)

# Settings changes inside this window collapse into one re-submission wave
DEBOUNCE_SECONDS = 0.5

# Requests the worker keeps in flight at once
DEFAULT_MAX_CONCURRENT = 4

# Seconds to wait for the worker loop to come up
WORKER_STARTUP_TIMEOUT = 5.0

# Source rows accumulated per numpy pass in the area filter
BAND_ROWS = 256
