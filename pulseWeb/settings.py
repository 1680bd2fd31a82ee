"""
Django settings for the HabitPulse analytics service.

Everything environment-specific is read from HABITPULSE_* variables so the
same module serves local runs, the test suite and scheduled workers.
"""
import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('HABITPULSE_SECRET_KEY', 'habitpulse-insecure-dev-key')

DEBUG = _env_bool('HABITPULSE_DEBUG', default=False)

ALLOWED_HOSTS = os.environ.get('HABITPULSE_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',')

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'habitpulse',
]

MIDDLEWARE = []

# =============================================================================
# DATABASE
# =============================================================================

DB_ENGINE = os.environ.get('HABITPULSE_DB_ENGINE', 'django.db.backends.sqlite3')

if DB_ENGINE.endswith('sqlite3'):
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': os.environ.get('HABITPULSE_DB_NAME', str(BASE_DIR / 'habitpulse.sqlite3')),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': DB_ENGINE,
            'NAME': os.environ.get('HABITPULSE_DB_NAME', 'habitpulse'),
            'USER': os.environ.get('HABITPULSE_DB_USER', ''),
            'PASSWORD': os.environ.get('HABITPULSE_DB_PASSWORD', ''),
            'HOST': os.environ.get('HABITPULSE_DB_HOST', 'localhost'),
            'PORT': os.environ.get('HABITPULSE_DB_PORT', ''),
        }
    }

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# Job locks for the scheduler live in the cache
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'habitpulse-locks',
    }
}

# =============================================================================
# TIME
# =============================================================================

USE_TZ = True
TIME_ZONE = os.environ.get('HABITPULSE_TIMEZONE', 'UTC')
LANGUAGE_CODE = 'en-us'

# =============================================================================
# HABITPULSE
# =============================================================================

HABITPULSE = {
    'SCHEDULER_ENABLED': _env_bool('HABITPULSE_SCHEDULER_ENABLED', default=False),
    'HOURLY_LOOKBACK_DAYS': int(os.environ.get('HABITPULSE_HOURLY_LOOKBACK_DAYS', 7)),
    'DAILY_LOOKBACK_DAYS': int(os.environ.get('HABITPULSE_DAILY_LOOKBACK_DAYS', 30)),
    'WEEKLY_LOOKBACK_DAYS': int(os.environ.get('HABITPULSE_WEEKLY_LOOKBACK_DAYS', 90)),
    'RETENTION_MONTHS': int(os.environ.get('HABITPULSE_RETENTION_MONTHS', 6)),
}

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.environ.get('HABITPULSE_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'structured': {
            '()': 'habitpulse.utils.logging_utils.StructuredFormatter',
        },
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'structured' if _env_bool('HABITPULSE_JSON_LOGS', default=True) else 'simple',
        },
    },
    'loggers': {
        'habitpulse': {
            'handlers': ['console'],
            'level': LOG_LEVEL,
            'propagate': False,
        },
        'apscheduler': {
            'handlers': ['console'],
            'level': 'WARNING',
        },
    },
}
