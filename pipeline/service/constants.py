"""
Media pipeline constants.

Fixed encoding parameters and the enumerated quality heights. Channel size
ceilings live in settings (see config.py) since they belong to the platform.
"""

# Heights accepted for a fixed-height quality tier
ALLOWED_HEIGHTS = [360, 480, 720, 1080, 1440, 2160]

# Height cap used by the default quality tier
DEFAULT_MAX_HEIGHT = 720

# Static sticker encoding
STATIC_STICKER_QUALITY = 80

# Animated sticker encoding
ANIMATED_STICKER_MAX_SECONDS = 10
ANIMATED_STICKER_FPS = 15
ANIMATED_STICKER_QUALITY = 75

# Oversized video trimming
TRIM_SECONDS = 30

STICKER_EXTENSION = '.webp'
VIDEO_EXTENSION = '.mp4'

STICKER_MIME_TYPE = 'image/webp'
VIDEO_MIME_TYPE = 'video/mp4'

DOCUMENT_FILENAME = 'video_completo.mp4'

MEBIBYTE = 1024 * 1024
