from __future__ import annotations

import logging
from typing import Iterable

from .binder import EngineCredential, credential_type_for_provider
from .crypto import decrypt_credential_payload
from .engine import EngineClient
from .errors import DecryptionError, EngineApiError
from .models import IntegrationConnection
from .report import ProvisioningReport, Step

logger = logging.getLogger(__name__)


def credential_display_name(
    tenant_label: str, provider: str, activation_id: str
) -> str:
    return f"[{tenant_label}] {provider} - {str(activation_id)[:8]}"


def provision_credentials(
    client: EngineClient,
    connections: Iterable[IntegrationConnection],
    required_providers: list[str],
    encryption_key: str,
    tenant_label: str,
    activation_id: str,
    report: ProvisioningReport,
) -> list[EngineCredential]:
    """
    Creates one engine credential per connected provider in the required set
    (every connection when no set is declared).
    Failures are recorded on the report and skipped so the remaining
    providers still get attached.
    """
    required = set(required_providers)
    created: list[EngineCredential] = []
    for connection in connections:
        provider = connection.provider.strip().lower()
        if required and provider not in required:
            continue

        if not connection.has_ciphertext:
            logger.warning("No encrypted data for provider: %s", provider)
            report.failed(
                Step.CREATE_CREDENTIAL,
                code="missing_ciphertext",
                detail="Connection has no encrypted payload.",
                provider=provider,
            )
            continue

        try:
            data = decrypt_credential_payload(
                connection.encrypted_payload,
                connection.encryption_iv,
                connection.encryption_tag,
                encryption_key,
            )
        except DecryptionError as exc:
            logger.error("Failed to decrypt credential for %s: %s", provider, exc)
            report.failed(
                Step.CREATE_CREDENTIAL,
                code=exc.code,
                detail=str(exc),
                provider=provider,
            )
            continue

        credential_type = credential_type_for_provider(provider)
        name = credential_display_name(tenant_label, provider, activation_id)
        try:
            credential_id = client.create_credential(credential_type, name, data)
        except EngineApiError as exc:
            logger.error("Failed to create credential for %s: %s", provider, exc)
            report.failed(
                Step.CREATE_CREDENTIAL,
                code=exc.code,
                detail=str(exc),
                provider=provider,
            )
            continue

        created.append(
            EngineCredential(
                provider=provider, type=credential_type, id=credential_id, name=name
            )
        )
        report.succeeded(
            Step.CREATE_CREDENTIAL, provider=provider, detail=credential_id
        )
        logger.info("Created credential %s for %s", credential_id, provider)
    return created
