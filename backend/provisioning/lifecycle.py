from __future__ import annotations

import http.client
import json
import logging
import urllib.error
import uuid
from dataclasses import dataclass, field
from typing import Any, cast
from urllib.request import Request, urlopen

from django.db import transaction
from django.utils import timezone

from .engine import EngineClient
from .errors import ActivationRevokedError, EngineApiError, NotProvisionedError
from .models import (
    ActivationRequest,
    ActivationStatus,
    MappingStatus,
    Tenant,
    WorkflowInstanceMapping,
)
from .store import load_mapping, set_activation_status

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 10


class LifecycleAction:
    PAUSE = "pause"
    RESUME = "resume"
    REVOKE = "revoke"
    RETRIGGER = "retrigger"

    choices = (PAUSE, RESUME, REVOKE, RETRIGGER)


@dataclass(frozen=True)
class LifecycleResult:
    success: bool
    message: str
    workflow_id: str | None = None
    webhook_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success, "message": self.message}
        if self.workflow_id:
            payload["workflowId"] = self.workflow_id
        if self.webhook_url:
            payload["webhookUrl"] = self.webhook_url
        payload.update(self.extra)
        return payload


class ActivationLifecycle:
    """
    Pause, resume, revoke and retrigger an already provisioned activation.
    Tenant integration connections are shared across activations and are
    never touched here.
    """

    def __init__(self, client: EngineClient) -> None:
        self._client = client

    def run(
        self,
        action: str,
        tenant: Tenant,
        activation_request_id: uuid.UUID | str,
        config: dict[str, Any] | None = None,
    ) -> LifecycleResult:
        if action == LifecycleAction.PAUSE:
            return self.pause(tenant, activation_request_id)
        if action == LifecycleAction.RESUME:
            return self.resume(tenant, activation_request_id)
        if action == LifecycleAction.REVOKE:
            return self.revoke(tenant, activation_request_id)
        if action == LifecycleAction.RETRIGGER:
            return self.retrigger(tenant, activation_request_id, config or {})
        raise ValueError(f"Unknown lifecycle action: {action}")

    def pause(
        self, tenant: Tenant, activation_request_id: uuid.UUID | str
    ) -> LifecycleResult:
        mapping = load_mapping(tenant, activation_request_id)
        if mapping is not None and mapping.status == MappingStatus.REVOKED:
            raise ActivationRevokedError("Activation revoked")
        workflow_id = mapping.primary_workflow_id if mapping is not None else None
        if workflow_id:
            result = self._client.deactivate_workflow(workflow_id)
            if not result.success:
                logger.warning(
                    "Failed to deactivate workflow %s: %s", workflow_id, result.error
                )

        with cast(Any, transaction).atomic():
            if mapping is not None:
                mapping.status = MappingStatus.PAUSED
                mapping.save(update_fields=["status", "updated_at"])
            _update_activation(tenant, activation_request_id, ActivationStatus.PAUSED)
        logger.info("Paused activation %s", activation_request_id)
        return LifecycleResult(
            success=True, message="Automation paused", workflow_id=workflow_id
        )

    def resume(
        self, tenant: Tenant, activation_request_id: uuid.UUID | str
    ) -> LifecycleResult:
        mapping = load_mapping(tenant, activation_request_id)
        if mapping is None or not mapping.primary_workflow_id:
            raise NotProvisionedError("Activation not provisioned yet (no workflow)")
        if mapping.status == MappingStatus.REVOKED:
            raise ActivationRevokedError("Activation revoked")

        workflow_id = cast(str, mapping.primary_workflow_id)
        try:
            self._client.activate(workflow_id)
        except EngineApiError as exc:
            logger.error("Failed to reactivate workflow %s: %s", workflow_id, exc)
            raise EngineApiError(
                f"Failed to reactivate workflow: {exc}",
                status_code=exc.status_code,
                body=exc.body,
            ) from exc

        with cast(Any, transaction).atomic():
            mapping.status = MappingStatus.ACTIVE
            mapping.save(update_fields=["status", "updated_at"])
            _update_activation(tenant, activation_request_id, ActivationStatus.LIVE)
        logger.info("Resumed activation %s", activation_request_id)
        return LifecycleResult(
            success=True,
            message="Automation resumed",
            workflow_id=workflow_id,
            webhook_url=mapping.webhook_url or None,
        )

    def revoke(
        self, tenant: Tenant, activation_request_id: uuid.UUID | str
    ) -> LifecycleResult:
        mapping = load_mapping(tenant, activation_request_id)
        workflow_id = mapping.primary_workflow_id if mapping is not None else None
        attempted = False
        verified = False
        if workflow_id:
            logger.info("Revoking: deactivating workflow %s", workflow_id)
            result = self._client.deactivate_workflow(workflow_id)
            attempted = result.attempted
            verified = result.verified
            if not result.success:
                logger.warning(
                    "Failed to deactivate workflow %s: %s", workflow_id, result.error
                )

        revoked_at = timezone.now()
        with cast(Any, transaction).atomic():
            if mapping is not None:
                mapping.status = MappingStatus.REVOKED
                mapping.metadata = {
                    **(mapping.metadata or {}),
                    "revoked_at": revoked_at.isoformat(),
                    "revoked_by": tenant.email or tenant.slug,
                    "deactivation_attempted": attempted,
                    "deactivation_verified": verified,
                }
                mapping.save(update_fields=["status", "metadata", "updated_at"])
            _update_activation(
                tenant, activation_request_id, ActivationStatus.COMPLETED
            )
        logger.info(
            "Revoked activation %s (attempted=%s, verified=%s)",
            activation_request_id,
            attempted,
            verified,
        )
        return LifecycleResult(
            success=True,
            message="Automation revoked and workflow deactivated",
            workflow_id=workflow_id,
            extra={
                "deactivation_attempted": attempted,
                "deactivation_verified": verified,
            },
        )

    def retrigger(
        self,
        tenant: Tenant,
        activation_request_id: uuid.UUID | str,
        config: dict[str, Any],
    ) -> LifecycleResult:
        mapping = load_mapping(tenant, activation_request_id)
        if mapping is None:
            raise NotProvisionedError("Activation not provisioned yet (no mapping)")
        if mapping.status == MappingStatus.REVOKED:
            logger.info(
                "Blocked retrigger for revoked activation: %s", activation_request_id
            )
            raise ActivationRevokedError("Activation revoked")
        if not mapping.webhook_url:
            raise NotProvisionedError(
                "Activation not provisioned yet (no webhook_url). "
                "Run provisioning first."
            )

        webhook_url = mapping.webhook_url
        logger.info("Retriggering webhook: POST %s", webhook_url)
        error = _post_webhook(
            webhook_url,
            {
                "activation_id": str(activation_request_id),
                "config": config,
                "triggered_by": "retrigger",
                "timestamp": timezone.now().isoformat(),
            },
        )
        _record_webhook_response(mapping, error)

        if error:
            return LifecycleResult(
                success=False,
                message=f"Webhook failed: {error}",
                webhook_url=webhook_url,
            )
        return LifecycleResult(
            success=True,
            message="Webhook triggered successfully",
            webhook_url=webhook_url,
        )


def _update_activation(
    tenant: Tenant, activation_request_id: uuid.UUID | str, status: str
) -> None:
    manager = cast(Any, ActivationRequest)._default_manager
    activation = manager.filter(tenant=tenant, id=activation_request_id).first()
    if activation is not None:
        set_activation_status(activation, status)


def _post_webhook(url: str, payload: dict[str, Any]) -> str:
    request_body = json.dumps(
        payload,
        ensure_ascii=True,
        separators=(",", ":"),
    ).encode("utf-8")
    request = Request(url, data=request_body, method="POST")
    request.add_header("Content-Type", "application/json")
    try:
        with urlopen(request, timeout=WEBHOOK_TIMEOUT_SECONDS) as response:
            response.read()
    except urllib.error.HTTPError as exc:
        response_body = ""
        try:
            response_body = exc.read().decode("utf-8", errors="replace")
        except OSError:
            response_body = ""
        return response_body or f"HTTP {exc.code}"
    except urllib.error.URLError as exc:
        return str(exc.reason)
    except (TimeoutError, OSError, http.client.HTTPException) as exc:
        return repr(exc)
    return ""


def _record_webhook_response(mapping: WorkflowInstanceMapping, error: str) -> None:
    mapping.metadata = {
        **(mapping.metadata or {}),
        "last_webhook_response": {
            "status": "error" if error else "success",
            "error": error or None,
            "timestamp": timezone.now().isoformat(),
        },
    }
    mapping.save(update_fields=["metadata", "updated_at"])
