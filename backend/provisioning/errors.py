from __future__ import annotations

"""
Error taxonomy for the provisioning pipeline.
Each error carries a stable machine-readable code and the HTTP status the API
answers with when the error ends a request.
"""

from typing import Iterable


class ProvisioningError(RuntimeError):
    """Base exception for provisioning failures."""

    code = "provisioning_error"
    http_status = 500


class ConfigurationError(ProvisioningError):
    """Raised when a required deployment setting is missing or malformed."""

    code = "configuration_error"
    http_status = 500


class NotFoundError(ProvisioningError):
    """Raised when an activation request, automation or template is missing."""

    code = "not_found"
    http_status = 404


class TemplateInvalidError(ProvisioningError):
    """Raised when a stored workflow template fails schema validation."""

    code = "template_invalid"
    http_status = 422

    def __init__(self, message: str, errors: list[dict[str, str]] | None = None):
        super().__init__(message)
        self.errors = errors or []


class IntegrationMissingError(ProvisioningError):
    """Raised when a declared required provider has no connected credential."""

    code = "integration_missing"
    http_status = 422

    def __init__(self, providers: Iterable[str]) -> None:
        self.providers = list(providers)
        super().__init__(f"Missing integrations: {', '.join(self.providers)}")


class DecryptionError(ProvisioningError):
    """Raised when an encrypted credential cannot be authenticated or parsed."""

    code = "decryption_failed"


class EngineApiError(ProvisioningError):
    """Raised when the workflow engine answers with a non-success status."""

    code = "engine_api_error"
    http_status = 502

    def __init__(self, message: str, status_code: int = 0, body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ProvisioningInProgressError(ProvisioningError):
    """Raised when another run currently holds the claim for an activation."""

    code = "provisioning_in_progress"
    http_status = 409


class NotProvisionedError(ProvisioningError):
    code = "not_provisioned"
    http_status = 400


class ActivationRevokedError(ProvisioningError):
    code = "activation_revoked"
    http_status = 403
