from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass
from typing import Any

from .errors import ConfigurationError

DEFAULT_ENGINE_TIMEOUT_SECONDS = 30.0
DEFAULT_CLAIM_TTL_SECONDS = 300


@dataclass(frozen=True)
class ProvisioningSettings:
    """
    Explicit deployment configuration for the provisioning pipeline.
    Built once from Django settings and handed to the engine client and the
    orchestrator; business logic never reads settings or the environment.
    """

    engine_base_url: str
    engine_api_key: str
    encryption_key: str
    engine_timeout: float = DEFAULT_ENGINE_TIMEOUT_SECONDS
    claim_ttl_seconds: int = DEFAULT_CLAIM_TTL_SECONDS

    @classmethod
    def from_django(cls, source: Any | None = None) -> "ProvisioningSettings":
        if source is None:
            from django.conf import settings as source

        base_url = str(getattr(source, "ENGINE_BASE_URL", "") or "").strip()
        api_key = str(getattr(source, "ENGINE_API_KEY", "") or "").strip()
        encryption_key = str(
            getattr(source, "CREDENTIAL_ENCRYPTION_KEY", "") or ""
        ).strip()

        missing = [
            name
            for name, value in (
                ("ENGINE_BASE_URL", base_url),
                ("ENGINE_API_KEY", api_key),
                ("CREDENTIAL_ENCRYPTION_KEY", encryption_key),
            )
            if not value
        ]
        if missing:
            raise ConfigurationError(
                f"Provisioning is not configured: missing {', '.join(missing)}."
            )
        _validate_encryption_key(encryption_key)

        try:
            timeout = float(
                getattr(
                    source, "ENGINE_TIMEOUT_SECONDS", DEFAULT_ENGINE_TIMEOUT_SECONDS
                )
            )
            claim_ttl = int(
                getattr(
                    source, "PROVISIONING_CLAIM_TTL_SECONDS", DEFAULT_CLAIM_TTL_SECONDS
                )
            )
        except (TypeError, ValueError) as exc:
            raise ConfigurationError(f"Invalid provisioning setting: {exc}") from exc

        return cls(
            engine_base_url=base_url,
            engine_api_key=api_key,
            encryption_key=encryption_key,
            engine_timeout=timeout,
            claim_ttl_seconds=claim_ttl,
        )


def _validate_encryption_key(encryption_key: str) -> None:
    try:
        key_bytes = base64.b64decode(encryption_key, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ConfigurationError(
            "CREDENTIAL_ENCRYPTION_KEY must be base64 encoded."
        ) from exc
    if len(key_bytes) != 32:
        raise ConfigurationError("CREDENTIAL_ENCRYPTION_KEY must decode to 32 bytes.")
