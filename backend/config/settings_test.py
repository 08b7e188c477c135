from __future__ import annotations

from .settings import *  # noqa: F403


# Tests should be self-contained and not require external services.
DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

ENGINE_BASE_URL = "http://engine.test"
ENGINE_API_KEY = "test-engine-key"
ENGINE_TIMEOUT_SECONDS = 5.0
# 32 bytes of 0x01, base64 encoded.
CREDENTIAL_ENCRYPTION_KEY = "AQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQE="
PROVISIONING_CLAIM_TTL_SECONDS = 300

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "handlers": {"null": {"class": "logging.NullHandler"}},
    "root": {"handlers": ["null"], "level": "WARNING"},
}
