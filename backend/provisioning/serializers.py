from __future__ import annotations

from typing import Any

from rest_framework import serializers

from .lifecycle import LifecycleAction
from .models import IntegrationConnection, WorkflowInstanceMapping


class ProvisionRequestSerializer(serializers.Serializer):
    activation_request_id = serializers.UUIDField(required=False)
    activationRequestId = serializers.UUIDField(required=False)

    def validate(self, attrs: dict[str, Any]) -> dict[str, Any]:
        activation_request_id = attrs.get("activation_request_id") or attrs.get(
            "activationRequestId"
        )
        if activation_request_id is None:
            raise serializers.ValidationError(
                {"activation_request_id": "This field is required."}
            )
        return {"activation_request_id": activation_request_id}


class WorkflowInstanceMappingSerializer(serializers.ModelSerializer):
    workflow_id = serializers.CharField(source="primary_workflow_id", read_only=True)

    class Meta:
        model = WorkflowInstanceMapping
        fields = (
            "id",
            "activation_request_id",
            "automation_id",
            "status",
            "workflow_id",
            "n8n_workflow_ids",
            "n8n_credential_ids",
            "webhook_url",
            "error_message",
            "metadata",
            "provisioned_at",
            "created_at",
            "updated_at",
        )
        read_only_fields = fields


class IntegrationConnectSerializer(serializers.Serializer):
    provider = serializers.CharField(max_length=80)
    credentials = serializers.DictField()

    def validate_provider(self, value: str) -> str:
        provider = value.strip().lower()
        if not provider:
            raise serializers.ValidationError("Provider must not be blank.")
        return provider

    def validate_credentials(self, value: dict[str, Any]) -> dict[str, Any]:
        if not value:
            raise serializers.ValidationError("Credentials must not be empty.")
        return value


class IntegrationConnectionSerializer(serializers.ModelSerializer):
    has_credentials = serializers.SerializerMethodField()

    class Meta:
        model = IntegrationConnection
        fields = ("provider", "status", "connected_at", "has_credentials", "updated_at")
        read_only_fields = fields

    def get_has_credentials(self, obj: IntegrationConnection) -> bool:
        return obj.has_ciphertext


class LifecycleActionSerializer(serializers.Serializer):
    action = serializers.ChoiceField(choices=LifecycleAction.choices)
    config = serializers.DictField(required=False, default=dict)
