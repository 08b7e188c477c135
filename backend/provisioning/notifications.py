from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, cast

from .models import (
    Notification,
    NotificationAudience,
    NotificationEventType,
    Tenant,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationEvent:
    event_type: str
    audience: str
    activation_request_id: str
    title: str
    body: str = ""
    severity: str = "info"
    tenant: Tenant | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class Notifier:
    """Records tenant and operator notifications; delivery happens elsewhere."""

    def notify(self, event: NotificationEvent) -> Notification:
        logger.info(
            "Notification: type=%s audience=%s activation_request_id=%s",
            event.event_type,
            event.audience,
            event.activation_request_id,
        )
        manager = cast(Any, Notification)._default_manager
        return manager.create(
            tenant=event.tenant,
            audience=event.audience,
            event_type=event.event_type,
            title=event.title,
            body=event.body,
            severity=event.severity,
            metadata={
                "activation_request_id": event.activation_request_id,
                **event.metadata,
            },
        )

    def automation_activated(
        self, tenant: Tenant, activation_request_id: str, workflow_id: str
    ) -> Notification:
        return self.notify(
            NotificationEvent(
                event_type=NotificationEventType.AUTOMATION_ACTIVATED,
                audience=NotificationAudience.TENANT,
                activation_request_id=activation_request_id,
                title="Automation Live!",
                body="Your automation has been activated and is now running.",
                severity="success",
                tenant=tenant,
                metadata={"workflow_id": workflow_id},
            )
        )

    def provisioning_failed(
        self, tenant: Tenant, activation_request_id: str, error: str
    ) -> Notification:
        return self.notify(
            NotificationEvent(
                event_type=NotificationEventType.PROVISIONING_FAILED,
                audience=NotificationAudience.OPERATOR,
                activation_request_id=activation_request_id,
                title="Provisioning Failed",
                body=(
                    "Failed to provision automation for "
                    f"{tenant.email or tenant.slug}: {error}"
                ),
                severity="error",
                tenant=tenant,
                metadata={"error": error},
            )
        )

    def provisioning_degraded(
        self,
        tenant: Tenant,
        activation_request_id: str,
        workflow_id: str,
        failed_steps: list[dict[str, Any]],
    ) -> Notification:
        summary = ", ".join(
            f"{item['step']}:{item['provider']}"
            if item.get("provider")
            else item["step"]
            for item in failed_steps
        )
        return self.notify(
            NotificationEvent(
                event_type=NotificationEventType.PROVISIONING_DEGRADED,
                audience=NotificationAudience.OPERATOR,
                activation_request_id=activation_request_id,
                title="Provisioning Needs Follow-up",
                body=(
                    f"Workflow {workflow_id} for {tenant.email or tenant.slug} "
                    f"was provisioned with degraded steps: {summary}"
                ),
                severity="warning",
                tenant=tenant,
                metadata={"workflow_id": workflow_id, "failed_steps": failed_steps},
            )
        )
