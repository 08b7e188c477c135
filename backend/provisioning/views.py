# pyright: reportMissingImports=false
import json
import logging
from typing import Any, cast

from django.utils import timezone
from rest_framework import status
from rest_framework.generics import ListAPIView
from rest_framework.permissions import AllowAny
from rest_framework.response import Response  # type: ignore[reportMissingImports]
from rest_framework.views import APIView  # type: ignore[reportMissingImports]

from .conf import ProvisioningSettings
from .crypto import encrypt_credentials
from .engine import EngineClient
from .errors import ProvisioningError
from .lifecycle import ActivationLifecycle
from .models import ConnectionStatus, IntegrationConnection, WorkflowInstanceMapping
from .orchestrator import ProvisioningOrchestrator, ProvisioningResult
from .serializers import (
    IntegrationConnectionSerializer,
    IntegrationConnectSerializer,
    LifecycleActionSerializer,
    ProvisionRequestSerializer,
    WorkflowInstanceMappingSerializer,
)

logger = logging.getLogger(__name__)


def _error_response(exc: ProvisioningError) -> Response:
    return Response(
        {"success": False, "error": str(exc), "code": exc.code},
        status=exc.http_status,
    )


def _result_response(result: ProvisioningResult) -> Response:
    status_code = status.HTTP_200_OK if result.success else result.http_status
    return Response(result.to_payload(), status=status_code)


def _provision(tenant: Any, activation_request_id: Any) -> Response:
    try:
        settings = ProvisioningSettings.from_django()
    except ProvisioningError as exc:
        logger.error("Provisioning is not configured: %s", exc)
        return _error_response(exc)
    orchestrator = ProvisioningOrchestrator(
        settings, client=EngineClient.from_settings(settings)
    )
    return _result_response(orchestrator.provision(tenant, activation_request_id))


class HealthView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    def get(self, request):
        return Response(
            {
                "status": "ok",
            }
        )


class ActivationProvisionView(APIView):
    def post(self, request, activation_request_id):
        return _provision(request.tenant, activation_request_id)


class ProvisionView(APIView):
    def post(self, request):
        serializer = ProvisionRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated_data = cast(dict[str, Any], serializer.validated_data)
        return _provision(request.tenant, validated_data["activation_request_id"])


class ActivationLifecycleView(APIView):
    def post(self, request, activation_request_id):
        serializer = LifecycleActionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated_data = cast(dict[str, Any], serializer.validated_data)
        try:
            settings = ProvisioningSettings.from_django()
            lifecycle = ActivationLifecycle(EngineClient.from_settings(settings))
            result = lifecycle.run(
                validated_data["action"],
                request.tenant,
                activation_request_id,
                config=validated_data.get("config") or {},
            )
        except ProvisioningError as exc:
            return _error_response(exc)
        return Response(result.to_payload())


class MappingListView(ListAPIView):
    serializer_class = WorkflowInstanceMappingSerializer

    def get_queryset(self):
        manager = cast(Any, WorkflowInstanceMapping)._default_manager
        queryset = manager.filter(tenant=self.request.tenant).order_by("-created_at")
        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset


class MappingDetailView(APIView):
    def get(self, request, activation_request_id):
        manager = cast(Any, WorkflowInstanceMapping)._default_manager
        mapping = manager.filter(
            tenant=request.tenant, activation_request_id=activation_request_id
        ).first()
        if mapping is None:
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)
        return Response(WorkflowInstanceMappingSerializer(mapping).data)


class IntegrationListView(APIView):
    def get(self, request):
        manager = cast(Any, IntegrationConnection)._default_manager
        connections = manager.filter(tenant=request.tenant).order_by("provider")
        return Response(IntegrationConnectionSerializer(connections, many=True).data)

    def post(self, request):
        serializer = IntegrationConnectSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        validated_data = cast(dict[str, Any], serializer.validated_data)
        try:
            settings = ProvisioningSettings.from_django()
        except ProvisioningError as exc:
            return _error_response(exc)

        provider = validated_data["provider"]
        encrypted = encrypt_credentials(
            json.dumps(validated_data["credentials"]), settings.encryption_key
        )
        manager = cast(Any, IntegrationConnection)._default_manager
        connection, created = manager.update_or_create(
            tenant=request.tenant,
            provider=provider,
            defaults={
                "status": ConnectionStatus.CONNECTED,
                "encrypted_payload": encrypted.ciphertext,
                "encryption_iv": encrypted.iv,
                "encryption_tag": encrypted.tag,
                "connected_at": timezone.now(),
            },
        )
        logger.info("Connected integration %s (created=%s)", provider, created)
        return Response(
            IntegrationConnectionSerializer(connection).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class IntegrationDetailView(APIView):
    def delete(self, request, provider: str):
        manager = cast(Any, IntegrationConnection)._default_manager
        connection = manager.filter(
            tenant=request.tenant, provider=provider.strip().lower()
        ).first()
        if connection is None:
            return Response({"detail": "Not found."}, status=status.HTTP_404_NOT_FOUND)
        connection.status = ConnectionStatus.DISCONNECTED
        connection.encrypted_payload = ""
        connection.encryption_iv = ""
        connection.encryption_tag = ""
        connection.save(
            update_fields=[
                "status",
                "encrypted_payload",
                "encryption_iv",
                "encryption_tag",
                "updated_at",
            ]
        )
        logger.info("Disconnected integration %s", connection.provider)
        return Response(IntegrationConnectionSerializer(connection).data)


health_view = cast(Any, HealthView).as_view()
activation_provision_view = cast(Any, ActivationProvisionView).as_view()
provision_view = cast(Any, ProvisionView).as_view()
activation_lifecycle_view = cast(Any, ActivationLifecycleView).as_view()
mapping_list_view = cast(Any, MappingListView).as_view()
mapping_detail_view = cast(Any, MappingDetailView).as_view()
integration_list_view = cast(Any, IntegrationListView).as_view()
integration_detail_view = cast(Any, IntegrationDetailView).as_view()
