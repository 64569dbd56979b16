"""Test settings - uses SQLite for fast local testing."""
import os
import tempfile
from pathlib import Path

os.environ.setdefault("DEBUG", "True")
os.environ.setdefault("SECRET_KEY", "test-only-secret-key-not-used-outside-the-suite")

from .base import *  # noqa: F401,F403,E402

DEBUG = True

# SQLite test database kept on disk so worker threads share it.
# IMMEDIATE transactions make concurrent writers queue on the lock.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
        "OPTIONS": {"timeout": 20, "transaction_mode": "IMMEDIATE"},
        "TEST": {"NAME": str(Path(tempfile.gettempdir()) / f"fulfillment-test-{os.getpid()}.sqlite3")},
    }
}

# Faster password hashing in tests
PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

# Disable Redis cache in tests
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
    }
}

# Run Celery tasks inline
CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True

# Disable API throttling in tests for deterministic runs
REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []  # noqa: F405
REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}  # noqa: F405

# Pin fulfillment knobs to their documented defaults
GPS_TOLERANCE_METERS = 100
OTP_EXPIRY_MINUTES = 30
OTP_LENGTH = 6
CONFIRMATION_MAX_RETRIES = 3
STUCK_ORDER_TIMEOUT_HOURS = 24

# Disable logging noise during tests
LOGGING["root"]["level"] = "WARNING"  # noqa: F405
LOGGING["loggers"]["fulfillment"]["handlers"] = ["console"]  # noqa: F405
LOGGING["loggers"]["fulfillment"]["level"] = "WARNING"  # noqa: F405

# Uploaded handover photos go to a throwaway directory
MEDIA_ROOT = Path(tempfile.mkdtemp(prefix="fulfillment-media-"))
