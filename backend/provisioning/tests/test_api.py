# pyright: reportGeneralTypeIssues=false
# pyright: reportUnknownMemberType=false
from __future__ import annotations

import logging
import uuid
from types import SimpleNamespace
from typing import Any, cast
from unittest.mock import patch

from django.conf import settings
from django.test import SimpleTestCase, TestCase, override_settings
from rest_framework.test import APIClient

from provisioning.crypto import decrypt_credential_payload
from provisioning.models import (
    ConnectionStatus,
    IntegrationConnection,
    MappingStatus,
    WorkflowInstanceMapping,
)
from provisioning.tenant_context import TenantLogFilter, set_current_tenant

from .factories import (
    RecordingEngineClient,
    connect_integration,
    create_activation,
    create_automation,
    create_tenant,
)


class ProvisioningApiTests(TestCase):
    @classmethod
    def setUpTestData(cls) -> None:
        cls.tenant_key_raw = "tenant-a-test-key"
        cls.tenant = create_tenant("tenant-a", raw_key=cls.tenant_key_raw)
        cls.other_key_raw = "tenant-b-test-key"
        cls.other_tenant = create_tenant("tenant-b", raw_key=cls.other_key_raw)
        cls.automation = create_automation(required=[{"provider": "slack"}])

    def setUp(self) -> None:
        self.engine = RecordingEngineClient()
        patcher = patch(
            "provisioning.views.EngineClient.from_settings", return_value=self.engine
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def _client_for(self, raw_key: str) -> APIClient:
        client = APIClient()
        client.credentials(HTTP_X_TENANT_API_KEY=raw_key)
        return client

    def test_health_is_public(self) -> None:
        resp = cast(Any, APIClient().get("/api/health"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_provision_requires_tenant_key(self) -> None:
        activation = create_activation(self.tenant, self.automation)

        resp = cast(Any, APIClient().post(f"/api/activations/{activation.id}/provision"))
        self.assertEqual(resp.status_code, 401)

        resp = cast(
            Any,
            self._client_for("wrong-key").post(
                f"/api/activations/{activation.id}/provision"
            ),
        )
        self.assertEqual(resp.status_code, 401)
        self.assertEqual(self.engine.calls, [])

    def test_provision_then_repeat_via_body_route(self) -> None:
        connect_integration(self.tenant, "slack")
        activation = create_activation(self.tenant, self.automation)
        client = self._client_for(self.tenant_key_raw)

        resp = cast(Any, client.post(f"/api/activations/{activation.id}/provision"))

        self.assertEqual(resp.status_code, 200)
        payload = resp.json()
        self.assertTrue(payload["success"])
        self.assertEqual(payload["workflowId"], "wf-1")
        self.assertEqual(payload["webhookUrl"], "http://engine.test/webhook/slack-digest")
        self.assertEqual(payload["credentialIds"], ["cred-2"])
        self.assertFalse(payload["degraded"])
        self.assertEqual(
            [step["step"] for step in payload["steps"]],
            [
                "create_workflow",
                "create_credential",
                "patch_nodes",
                "activate",
                "discover_webhook",
            ],
        )

        call_count = len(self.engine.calls)
        resp = cast(
            Any,
            client.post(
                "/api/provision",
                data={"activationRequestId": str(activation.id)},
                format="json",
            ),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["message"], "Already provisioned")
        self.assertEqual(resp.json()["workflowId"], "wf-1")
        self.assertEqual(len(self.engine.calls), call_count)

    def test_bearer_token_is_accepted(self) -> None:
        connect_integration(self.tenant, "slack")
        activation = create_activation(self.tenant, self.automation)
        client = APIClient()
        client.credentials(HTTP_AUTHORIZATION=f"Bearer {self.tenant_key_raw}")

        resp = cast(
            Any,
            client.post(
                "/api/provision",
                data={"activation_request_id": str(activation.id)},
                format="json",
            ),
        )

        self.assertEqual(resp.status_code, 200)

    def test_provision_body_requires_activation_id(self) -> None:
        client = self._client_for(self.tenant_key_raw)
        resp = cast(Any, client.post("/api/provision", data={}, format="json"))
        self.assertEqual(resp.status_code, 400)

    def test_missing_integration_maps_to_422(self) -> None:
        activation = create_activation(self.tenant, self.automation)
        client = self._client_for(self.tenant_key_raw)

        resp = cast(Any, client.post(f"/api/activations/{activation.id}/provision"))

        self.assertEqual(resp.status_code, 422)
        self.assertEqual(
            resp.json(),
            {
                "success": False,
                "error": "Missing integrations: slack",
                "code": "integration_missing",
            },
        )

    def test_other_tenant_cannot_provision_or_read_mapping(self) -> None:
        connect_integration(self.tenant, "slack")
        activation = create_activation(self.tenant, self.automation)
        client = self._client_for(self.tenant_key_raw)
        other_client = self._client_for(self.other_key_raw)

        resp = cast(
            Any, other_client.post(f"/api/activations/{activation.id}/provision")
        )
        self.assertEqual(resp.status_code, 404)

        resp = cast(Any, client.post(f"/api/activations/{activation.id}/provision"))
        self.assertEqual(resp.status_code, 200)

        resp = cast(Any, client.get(f"/api/mappings/{activation.id}"))
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], MappingStatus.ACTIVE)
        self.assertEqual(resp.json()["workflow_id"], "wf-1")

        resp = cast(Any, client.get("/api/mappings"))
        self.assertEqual(len(resp.json()), 1)

        resp = cast(Any, other_client.get("/api/mappings?status=active"))
        self.assertEqual(resp.json(), [])
        resp = cast(Any, other_client.get(f"/api/mappings/{uuid.uuid4()}"))
        self.assertEqual(resp.status_code, 404)

    @override_settings(ENGINE_BASE_URL="")
    def test_unconfigured_engine_returns_configuration_error(self) -> None:
        activation = create_activation(self.tenant, self.automation)
        client = self._client_for(self.tenant_key_raw)

        resp = cast(Any, client.post(f"/api/activations/{activation.id}/provision"))

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json()["code"], "configuration_error")
        manager = cast(Any, WorkflowInstanceMapping)._default_manager
        self.assertFalse(manager.exists())

    def test_connect_and_disconnect_integration(self) -> None:
        client = self._client_for(self.tenant_key_raw)

        resp = cast(
            Any,
            client.post(
                "/api/integrations",
                data={"provider": " Slack ", "credentials": {"accessToken": "xoxb-1"}},
                format="json",
            ),
        )
        self.assertEqual(resp.status_code, 201)
        self.assertEqual(resp.json()["provider"], "slack")
        self.assertTrue(resp.json()["has_credentials"])

        manager = cast(Any, IntegrationConnection)._default_manager
        connection = manager.get(tenant=self.tenant, provider="slack")
        self.assertNotIn("xoxb-1", connection.encrypted_payload)
        self.assertEqual(
            decrypt_credential_payload(
                connection.encrypted_payload,
                connection.encryption_iv,
                connection.encryption_tag,
                settings.CREDENTIAL_ENCRYPTION_KEY,
            ),
            {"accessToken": "xoxb-1"},
        )

        resp = cast(
            Any,
            client.post(
                "/api/integrations",
                data={"provider": "slack", "credentials": {"accessToken": "xoxb-2"}},
                format="json",
            ),
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(manager.filter(tenant=self.tenant).count(), 1)

        resp = cast(Any, client.get("/api/integrations"))
        self.assertEqual([item["provider"] for item in resp.json()], ["slack"])

        resp = cast(Any, client.delete("/api/integrations/slack"))
        self.assertEqual(resp.status_code, 200)
        connection.refresh_from_db()
        self.assertEqual(connection.status, ConnectionStatus.DISCONNECTED)
        self.assertEqual(connection.encrypted_payload, "")
        self.assertFalse(resp.json()["has_credentials"])

        resp = cast(Any, self._client_for(self.other_key_raw).get("/api/integrations"))
        self.assertEqual(resp.json(), [])

    def test_connect_rejects_empty_credentials(self) -> None:
        client = self._client_for(self.tenant_key_raw)
        resp = cast(
            Any,
            client.post(
                "/api/integrations",
                data={"provider": "slack", "credentials": {}},
                format="json",
            ),
        )
        self.assertEqual(resp.status_code, 400)


class TenantLogFilterTests(SimpleTestCase):
    def _record(self) -> logging.LogRecord:
        return logging.LogRecord(
            "provisioning", logging.INFO, __file__, 1, "msg", (), None
        )

    def test_stamps_current_tenant_slug(self) -> None:
        log_filter = TenantLogFilter()
        set_current_tenant(SimpleNamespace(slug="tenant-a"))
        self.addCleanup(set_current_tenant, None)

        record = self._record()
        self.assertTrue(log_filter.filter(record))
        self.assertEqual(record.tenant, "tenant-a")

        set_current_tenant(None)
        record = self._record()
        log_filter.filter(record)
        self.assertEqual(record.tenant, "-")
