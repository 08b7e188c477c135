from __future__ import annotations

import hashlib
import uuid
from typing import Any, cast

from django.db import models

from ..schemas import RequiredIntegration


class TemplateImmutableError(RuntimeError):
    """Raised when code tries to modify a stored workflow template."""

    pass


class Tenant(models.Model):
    name = models.CharField(max_length=120)
    slug = models.SlugField(max_length=120, unique=True)
    email = models.EmailField(max_length=254, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)


class TenantScopedModel(models.Model):
    tenant = models.ForeignKey(
        Tenant, on_delete=models.PROTECT, related_name="%(class)ss"
    )

    class Meta:
        abstract = True


class TenantApiKey(TenantScopedModel):
    name = models.CharField(max_length=120, blank=True)
    key_hash = models.CharField(max_length=64, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @staticmethod
    def hash_key(raw_key: str) -> str:
        return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()

    @classmethod
    def authenticate(cls, raw_key: str) -> "TenantApiKey | None":
        key_hash = cls.hash_key(raw_key)
        manager = cast(Any, TenantApiKey)._default_manager
        result = manager.select_related("tenant").filter(key_hash=key_hash).first()
        return cast("TenantApiKey | None", result)


class WorkflowTemplate(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)
    workflow_json = models.JSONField()
    created_at = models.DateTimeField(auto_now_add=True)

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self._state.adding:
            raise TemplateImmutableError("Workflow templates cannot be modified.")
        super().save(*args, **kwargs)


class Automation(models.Model):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    slug = models.SlugField(max_length=120, unique=True)
    name = models.CharField(max_length=200)
    template_ids = models.JSONField(default=list, blank=True)
    required_integrations = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    @property
    def required_providers(self) -> list[str]:
        return [
            item.provider
            for item in RequiredIntegration.parse_list(self.required_integrations)
        ]


class ActivationStatus(models.TextChoices):
    PENDING = "pending"
    PROVISIONING = "provisioning"
    LIVE = "live"
    NEEDS_ATTENTION = "needs_attention"
    PAUSED = "paused"
    COMPLETED = "completed"


class ActivationRequest(TenantScopedModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    automation = models.ForeignKey(
        Automation,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="activation_requests",
    )
    name = models.CharField(max_length=200, blank=True)
    company = models.CharField(max_length=200, blank=True)
    status = models.CharField(
        max_length=20,
        choices=ActivationStatus.choices,
        default=ActivationStatus.PENDING,
    )
    customer_visible_status = models.CharField(
        max_length=20,
        choices=ActivationStatus.choices,
        default=ActivationStatus.PENDING,
    )
    status_updated_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)


class ConnectionStatus(models.TextChoices):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"


class IntegrationConnection(TenantScopedModel):
    provider = models.CharField(max_length=80)
    status = models.CharField(
        max_length=20,
        choices=ConnectionStatus.choices,
        default=ConnectionStatus.CONNECTED,
    )
    encrypted_payload = models.TextField(blank=True)
    encryption_iv = models.CharField(max_length=64, blank=True)
    encryption_tag = models.CharField(max_length=64, blank=True)
    connected_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta(TenantScopedModel.Meta):
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "provider"],
                name="uniq_integration_connection_per_tenant",
            )
        ]

    @property
    def has_ciphertext(self) -> bool:
        return bool(
            self.encrypted_payload and self.encryption_iv and self.encryption_tag
        )


class MappingStatus(models.TextChoices):
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    ERROR = "error"
    PAUSED = "paused"
    REVOKED = "revoked"


class WorkflowInstanceMapping(TenantScopedModel):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    activation_request_id = models.UUIDField()
    automation_id = models.UUIDField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=MappingStatus.choices,
        default=MappingStatus.PROVISIONING,
    )
    n8n_workflow_ids = models.JSONField(default=list, blank=True)
    n8n_credential_ids = models.JSONField(default=list, blank=True)
    webhook_url = models.URLField(max_length=500, blank=True)
    error_message = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    provisioned_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta(TenantScopedModel.Meta):
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "activation_request_id"],
                name="uniq_mapping_per_activation_request",
            )
        ]

    @property
    def primary_workflow_id(self) -> str | None:
        workflow_ids = self.n8n_workflow_ids or []
        return str(workflow_ids[0]) if workflow_ids else None


class NotificationAudience(models.TextChoices):
    TENANT = "tenant"
    OPERATOR = "operator"


class NotificationEventType(models.TextChoices):
    AUTOMATION_ACTIVATED = "automation_activated"
    PROVISIONING_FAILED = "provisioning_failed"
    PROVISIONING_DEGRADED = "provisioning_degraded"


class Notification(models.Model):
    tenant = models.ForeignKey(
        Tenant,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="notifications",
    )
    audience = models.CharField(max_length=20, choices=NotificationAudience.choices)
    event_type = models.CharField(
        max_length=60, choices=NotificationEventType.choices
    )
    title = models.CharField(max_length=200)
    body = models.TextField(blank=True)
    severity = models.CharField(max_length=20, default="info")
    metadata = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [
            models.Index(
                fields=["audience", "created_at"],
                name="notification_audience_idx",
            ),
            models.Index(fields=["event_type"], name="notification_event_type_idx"),
        ]
