from __future__ import annotations

"""
Provisioning orchestrator: turns an immutable workflow template, a tenant's
encrypted integration credentials and an activation request into a live,
isolated workflow inside the external engine.

Fatal failures (missing inputs, undeclared prerequisites, workflow creation)
end the run in the `error` state before or at the first engine write.
Everything after the workflow exists (credentials, patching, activation,
webhook discovery) degrades step by step and is recorded on the report.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from .binder import bind_node_credentials
from .conf import ProvisioningSettings
from .credentials import provision_credentials
from .engine import EngineClient, sanitize_nodes
from .errors import (
    EngineApiError,
    IntegrationMissingError,
    ProvisioningError,
    ProvisioningInProgressError,
)
from .models import (
    ActivationRequest,
    ActivationStatus,
    IntegrationConnection,
    Tenant,
    WorkflowInstanceMapping,
)
from .notifications import Notifier
from .report import ProvisioningReport, Step
from .store import (
    claim_mapping,
    commit_failure,
    commit_success,
    load_activation_request,
    load_automation,
    load_connected_integrations,
    load_template,
    record_automation,
    record_workflow_id,
    set_activation_status,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProvisioningResult:
    success: bool
    workflow_id: str | None = None
    webhook_url: str | None = None
    credential_ids: list[str] = field(default_factory=list)
    error: str | None = None
    error_code: str = ""
    message: str = ""
    already_provisioned: bool = False
    degraded: bool = False
    steps: list[dict[str, Any]] = field(default_factory=list)
    http_status: int = 200

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": self.success}
        if self.workflow_id:
            payload["workflowId"] = self.workflow_id
        if self.webhook_url:
            payload["webhookUrl"] = self.webhook_url
        if self.success and not self.already_provisioned:
            payload["credentialIds"] = list(self.credential_ids)
            payload["degraded"] = self.degraded
        if self.error:
            payload["error"] = self.error
            payload["code"] = self.error_code
        if self.message:
            payload["message"] = self.message
        if self.steps:
            payload["steps"] = list(self.steps)
        return payload


def tenant_label(tenant: Tenant, activation: ActivationRequest) -> str:
    if activation.company:
        return activation.company
    if activation.name:
        return activation.name
    if tenant.email:
        return tenant.email.split("@")[0]
    return tenant.name or tenant.slug


class ProvisioningOrchestrator:
    def __init__(
        self,
        settings: ProvisioningSettings,
        client: EngineClient | None = None,
        notifier: Notifier | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or EngineClient.from_settings(settings)
        self._notifier = notifier or Notifier()

    def provision(
        self, tenant: Tenant, activation_request_id: uuid.UUID | str
    ) -> ProvisioningResult:
        activation_request_id = uuid.UUID(str(activation_request_id))
        claim = claim_mapping(
            tenant, activation_request_id, self._settings.claim_ttl_seconds
        )
        mapping = claim.mapping

        if claim.already_provisioned:
            logger.info(
                "Activation %s already provisioned as workflow %s",
                activation_request_id,
                mapping.primary_workflow_id,
            )
            return ProvisioningResult(
                success=True,
                workflow_id=mapping.primary_workflow_id,
                webhook_url=mapping.webhook_url or None,
                credential_ids=list(mapping.n8n_credential_ids or []),
                message="Already provisioned",
                already_provisioned=True,
            )
        if claim.in_progress:
            error = ProvisioningInProgressError(
                "Provisioning already in progress for this activation"
            )
            logger.warning("%s: %s", error, activation_request_id)
            return ProvisioningResult(
                success=False,
                error=str(error),
                error_code=error.code,
                http_status=error.http_status,
            )

        logger.info("Starting provisioning for activation: %s", activation_request_id)
        report = ProvisioningReport()
        activation: ActivationRequest | None = None
        try:
            activation = load_activation_request(tenant, activation_request_id)
            set_activation_status(activation, ActivationStatus.PROVISIONING)
            return self._run(tenant, activation, mapping, report)
        except ProvisioningError as exc:
            logger.error(
                "Provisioning failed for activation %s: %s", activation_request_id, exc
            )
            commit_failure(
                mapping,
                activation,
                error_message=str(exc),
                steps=report.to_list(),
            )
            self._notifier.provisioning_failed(
                tenant, str(activation_request_id), str(exc)
            )
            return ProvisioningResult(
                success=False,
                error=str(exc),
                error_code=exc.code,
                steps=report.to_list(),
                http_status=exc.http_status,
            )

    def _run(
        self,
        tenant: Tenant,
        activation: ActivationRequest,
        mapping: WorkflowInstanceMapping,
        report: ProvisioningReport,
    ) -> ProvisioningResult:
        activation_id = str(activation.id)
        automation = load_automation(activation)
        record_automation(mapping, automation)
        template, definition = load_template(automation)
        logger.info("Using template: %s (%s)", template.name, template.id)

        required_providers = automation.required_providers
        connections = self._resolve_connections(tenant, required_providers)

        label = tenant_label(tenant, activation)
        try:
            workflow_id = self._client.create_workflow(definition, label, activation_id)
        except EngineApiError as exc:
            report.failed(Step.CREATE_WORKFLOW, code=exc.code, detail=str(exc))
            raise
        report.succeeded(Step.CREATE_WORKFLOW, detail=workflow_id)
        record_workflow_id(mapping, workflow_id)
        logger.info("Created workflow: %s", workflow_id)

        credentials = provision_credentials(
            self._client,
            connections,
            required_providers,
            self._settings.encryption_key,
            label,
            activation_id,
            report,
        )

        nodes = bind_node_credentials(sanitize_nodes(definition.nodes), credentials)
        try:
            self._client.patch_workflow_nodes(workflow_id, nodes)
        except EngineApiError as exc:
            # The workflow stays unpatched and can be configured by hand.
            logger.error("Failed to patch workflow credentials: %s", exc)
            report.failed(Step.PATCH_NODES, code=exc.code, detail=str(exc))
        else:
            report.succeeded(Step.PATCH_NODES)

        activated = self._client.activate_workflow(workflow_id)
        if activated:
            report.succeeded(Step.ACTIVATE)
        else:
            report.failed(
                Step.ACTIVATE,
                code="activation_failed",
                detail="Workflow was created but left inactive.",
            )

        webhook_url = self._discover_webhook_url(workflow_id, report)

        credential_ids = [credential.id for credential in credentials]
        steps = report.to_list()
        commit_success(
            mapping,
            activation,
            workflow_id=workflow_id,
            credential_ids=credential_ids,
            webhook_url=webhook_url,
            steps=steps,
            degraded=report.degraded,
        )
        self._notifier.automation_activated(tenant, activation_id, workflow_id)
        if report.degraded:
            self._notifier.provisioning_degraded(
                tenant,
                activation_id,
                workflow_id,
                [outcome.to_dict() for outcome in report.failures],
            )

        logger.info(
            "Provisioning complete. Workflow: %s, Active: %s, Degraded: %s",
            workflow_id,
            activated,
            report.degraded,
        )
        return ProvisioningResult(
            success=True,
            workflow_id=workflow_id,
            webhook_url=webhook_url,
            credential_ids=credential_ids,
            degraded=report.degraded,
            steps=steps,
        )

    def _resolve_connections(
        self, tenant: Tenant, required_providers: list[str]
    ) -> list[IntegrationConnection]:
        if not required_providers:
            logger.info("No required integrations - proceeding without credentials")
            return []
        connections = load_connected_integrations(tenant)
        connected = {connection.provider.strip().lower() for connection in connections}
        missing = [
            provider for provider in required_providers if provider not in connected
        ]
        if missing:
            raise IntegrationMissingError(missing)
        return connections

    def _discover_webhook_url(
        self, workflow_id: str, report: ProvisioningReport
    ) -> str | None:
        try:
            definition = self._client.get_workflow(workflow_id)
        except EngineApiError as exc:
            logger.warning("Could not fetch workflow %s: %s", workflow_id, exc)
            report.failed(Step.DISCOVER_WEBHOOK, code=exc.code, detail=str(exc))
            return None
        webhook_url = self._client.webhook_url_for(definition)
        report.succeeded(Step.DISCOVER_WEBHOOK, detail=webhook_url or "")
        return webhook_url
