"""
Django settings for the bachat project.

Everything the media pipeline reads is prefixed with BACHAT_ and can be
overridden from the environment.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default):
    value = os.environ.get(name)
    if not value:
        return default
    return int(value)


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-bachat-dev-key')

DEBUG = _env_bool('DJANGO_DEBUG', False)

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', 'localhost').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'huey.contrib.djhuey',
    'pipeline',
]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

USE_TZ = True
TIME_ZONE = 'America/Sao_Paulo'
LANGUAGE_CODE = 'pt-br'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Huey task queue. Each MediaJob runs as its own task so that slow transcodes
# never block the process accepting webhooks.
HUEY = {
    'huey_class': 'huey.SqliteHuey',
    'name': 'bachat',
    'filename': os.environ.get('HUEY_DB', str(BASE_DIR / 'huey.sqlite3')),
    'immediate': _env_bool('HUEY_IMMEDIATE', False),
    'consumer': {
        'workers': _env_int('HUEY_WORKERS', 4),
        'worker_type': 'thread',
    },
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '[{asctime}] {levelname} {name}: {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'pipeline': {
            'handlers': ['console'],
            'level': os.environ.get('BACHAT_LOG_LEVEL', 'INFO'),
        },
        'huey': {
            'handlers': ['console'],
            'level': 'INFO',
        },
    },
}

# Media pipeline

# Scratch directory for intermediate files (downloads, transcodes, stickers)
BACHAT_SCRATCH_DIR = os.environ.get('BACHAT_SCRATCH_DIR', str(BASE_DIR / 'temp'))

# Channel-imposed ceilings
BACHAT_ANIMATED_STICKER_MAX_BYTES = _env_int('BACHAT_ANIMATED_STICKER_MAX_BYTES', 500 * 1024)
BACHAT_INLINE_MEDIA_MAX_BYTES = _env_int('BACHAT_INLINE_MEDIA_MAX_BYTES', 16 * 1024 * 1024)

# Square sticker canvas edge, in pixels
BACHAT_STICKER_SIZE = _env_int('BACHAT_STICKER_SIZE', 512)

# External tools
BACHAT_FFMPEG_BIN = os.environ.get('BACHAT_FFMPEG_BIN', 'ffmpeg')
BACHAT_CODEC_TIMEOUT = _env_int('BACHAT_CODEC_TIMEOUT', 120)
BACHAT_DOWNLOAD_TIMEOUT = _env_int('BACHAT_DOWNLOAD_TIMEOUT', 600)

# yt-dlp
BACHAT_YTDLP_PROXY = os.environ.get('BACHAT_YTDLP_PROXY', '')
BACHAT_YTDLP_EXTRA_ARGS = os.environ.get('BACHAT_YTDLP_EXTRA_ARGS', '')

# cleanup_scratch command
BACHAT_SCRATCH_MAX_AGE_MINUTES = _env_int('BACHAT_SCRATCH_MAX_AGE_MINUTES', 60)

# WhatsApp Cloud API
WHATSAPP_TOKEN = os.environ.get('WHATSAPP_TOKEN', '')
WHATSAPP_PHONE_NUMBER_ID = os.environ.get('WHATSAPP_PHONE_NUMBER_ID', '')
WHATSAPP_API_VERSION = os.environ.get('WHATSAPP_API_VERSION', 'v20.0')
WHATSAPP_API_BASE = os.environ.get('WHATSAPP_API_BASE', 'https://graph.facebook.com')
