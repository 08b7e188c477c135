from __future__ import annotations

"""
Reads and writes against the relational store used by the provisioning run:
activation requests, automations, immutable templates, encrypted integration
connections, and the workflow instance mapping that anchors idempotency.
"""

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, cast

from django.db import transaction
from django.utils import timezone

from .errors import NotFoundError, TemplateInvalidError
from .models import (
    ActivationRequest,
    ActivationStatus,
    Automation,
    ConnectionStatus,
    IntegrationConnection,
    MappingStatus,
    Tenant,
    WorkflowInstanceMapping,
    WorkflowTemplate,
)
from .schemas import WorkflowDefinition, validate_workflow_definition

SHORT_CIRCUIT_STATUSES = (MappingStatus.ACTIVE, MappingStatus.PROVISIONING)


@dataclass(frozen=True)
class MappingClaim:
    mapping: WorkflowInstanceMapping
    created: bool
    already_provisioned: bool = False
    in_progress: bool = False


def load_activation_request(
    tenant: Tenant, activation_request_id: uuid.UUID | str
) -> ActivationRequest:
    manager = cast(Any, ActivationRequest)._default_manager
    activation = (
        manager.select_related("automation")
        .filter(tenant=tenant, id=activation_request_id)
        .first()
    )
    if activation is None:
        raise NotFoundError("Activation not found")
    return activation


def load_automation(activation: ActivationRequest) -> Automation:
    if activation.automation_id is None:
        raise NotFoundError("No automation linked to activation")
    manager = cast(Any, Automation)._default_manager
    automation = manager.filter(id=activation.automation_id).first()
    if automation is None:
        raise NotFoundError("Automation not found")
    return automation


def load_template(
    automation: Automation,
) -> tuple[WorkflowTemplate, WorkflowDefinition]:
    """Loads the first template linked to an automation and validates its graph."""
    template_ids = automation.template_ids or []
    if not isinstance(template_ids, list) or not template_ids:
        raise NotFoundError("No template linked to automation")
    try:
        template_id = uuid.UUID(str(template_ids[0]))
    except ValueError as exc:
        raise NotFoundError("Template not found") from exc

    manager = cast(Any, WorkflowTemplate)._default_manager
    template = manager.filter(id=template_id).first()
    if template is None:
        raise NotFoundError("Template not found")

    errors = validate_workflow_definition(template.workflow_json)
    if errors:
        raise TemplateInvalidError(
            f"Template {template.id} failed validation.", errors=errors
        )
    return template, WorkflowDefinition.from_payload(template.workflow_json)


def load_connected_integrations(tenant: Tenant) -> list[IntegrationConnection]:
    manager = cast(Any, IntegrationConnection)._default_manager
    return list(
        manager.filter(tenant=tenant, status=ConnectionStatus.CONNECTED).order_by(
            "provider"
        )
    )


def load_mapping(
    tenant: Tenant, activation_request_id: uuid.UUID | str
) -> WorkflowInstanceMapping | None:
    manager = cast(Any, WorkflowInstanceMapping)._default_manager
    return manager.filter(
        tenant=tenant, activation_request_id=activation_request_id
    ).first()


def claim_mapping(
    tenant: Tenant,
    activation_request_id: uuid.UUID,
    claim_ttl_seconds: int,
) -> MappingClaim:
    """
    Inserts the mapping row for (tenant, activation request) or returns the
    existing one, under a row lock.
    A mapping that already recorded an engine workflow while active or
    provisioning short-circuits; a fresh provisioning row without one is
    treated as an in-flight run until the claim TTL expires.
    """
    manager = cast(Any, WorkflowInstanceMapping)._default_manager
    now = timezone.now()
    with cast(Any, transaction).atomic():
        mapping, created = manager.select_for_update().get_or_create(
            tenant=tenant,
            activation_request_id=activation_request_id,
            defaults={
                "status": MappingStatus.PROVISIONING,
                "metadata": {"started_at": now.isoformat()},
            },
        )
        if created:
            return MappingClaim(mapping=mapping, created=True)

        if mapping.status in SHORT_CIRCUIT_STATUSES and mapping.n8n_workflow_ids:
            return MappingClaim(
                mapping=mapping, created=False, already_provisioned=True
            )

        if mapping.status == MappingStatus.PROVISIONING and mapping.updated_at > (
            now - timedelta(seconds=claim_ttl_seconds)
        ):
            return MappingClaim(mapping=mapping, created=False, in_progress=True)

        mapping.status = MappingStatus.PROVISIONING
        mapping.error_message = ""
        mapping.metadata = {
            **(mapping.metadata or {}),
            "started_at": now.isoformat(),
        }
        mapping.save(
            update_fields=["status", "error_message", "metadata", "updated_at"]
        )
    return MappingClaim(mapping=mapping, created=False)


def record_automation(mapping: WorkflowInstanceMapping, automation: Automation) -> None:
    mapping.automation_id = automation.id
    mapping.save(update_fields=["automation_id", "updated_at"])


def record_workflow_id(mapping: WorkflowInstanceMapping, workflow_id: str) -> None:
    mapping.n8n_workflow_ids = [workflow_id]
    mapping.save(update_fields=["n8n_workflow_ids", "updated_at"])


def set_activation_status(activation: ActivationRequest, status: str) -> None:
    activation.status = status
    activation.customer_visible_status = status
    activation.status_updated_at = timezone.now()
    activation.save(
        update_fields=["status", "customer_visible_status", "status_updated_at"]
    )


def commit_success(
    mapping: WorkflowInstanceMapping,
    activation: ActivationRequest,
    *,
    workflow_id: str,
    credential_ids: list[str],
    webhook_url: str | None,
    steps: list[dict[str, Any]],
    degraded: bool,
) -> None:
    now = timezone.now()
    with cast(Any, transaction).atomic():
        mapping.status = MappingStatus.ACTIVE
        mapping.n8n_workflow_ids = [workflow_id]
        mapping.n8n_credential_ids = list(credential_ids)
        mapping.webhook_url = webhook_url or ""
        mapping.error_message = ""
        mapping.provisioned_at = now
        mapping.metadata = {
            **(mapping.metadata or {}),
            "webhook_url": webhook_url,
            "provisioned_at": now.isoformat(),
            "degraded": degraded,
            "steps": steps,
        }
        mapping.save(
            update_fields=[
                "status",
                "n8n_workflow_ids",
                "n8n_credential_ids",
                "webhook_url",
                "error_message",
                "provisioned_at",
                "metadata",
                "updated_at",
            ]
        )
        set_activation_status(activation, ActivationStatus.LIVE)


def commit_failure(
    mapping: WorkflowInstanceMapping,
    activation: ActivationRequest | None,
    *,
    error_message: str,
    steps: list[dict[str, Any]],
) -> None:
    with cast(Any, transaction).atomic():
        mapping.status = MappingStatus.ERROR
        mapping.error_message = error_message
        mapping.metadata = {
            **(mapping.metadata or {}),
            "failed_at": timezone.now().isoformat(),
            "steps": steps,
        }
        mapping.save(
            update_fields=["status", "error_message", "metadata", "updated_at"]
        )
        if activation is not None:
            set_activation_status(activation, ActivationStatus.NEEDS_ATTENTION)
