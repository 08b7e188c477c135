# pyright: reportGeneralTypeIssues=false
from __future__ import annotations

import json
import tempfile
from io import StringIO
from pathlib import Path
from types import SimpleNamespace
from typing import Any, cast
from unittest.mock import patch

from django.core.management import call_command
from django.core.management.base import CommandError
from django.test import SimpleTestCase, TestCase

from provisioning.conf import ProvisioningSettings
from provisioning.errors import ConfigurationError
from provisioning.models import (
    MappingStatus,
    TemplateImmutableError,
    WorkflowInstanceMapping,
    WorkflowTemplate,
)

from .factories import (
    SLACK_TEMPLATE,
    RecordingEngineClient,
    create_activation,
    create_automation,
    create_tenant,
)

VALID_KEY = "AQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQEBAQE="


class ProvisioningSettingsTests(SimpleTestCase):
    def test_builds_from_source(self) -> None:
        source = SimpleNamespace(
            ENGINE_BASE_URL="https://engine.example.com",
            ENGINE_API_KEY="key",
            CREDENTIAL_ENCRYPTION_KEY=VALID_KEY,
            ENGINE_TIMEOUT_SECONDS="12",
        )
        settings = ProvisioningSettings.from_django(source)
        self.assertEqual(settings.engine_timeout, 12.0)
        self.assertEqual(settings.claim_ttl_seconds, 300)

    def test_missing_values_are_named(self) -> None:
        source = SimpleNamespace(ENGINE_BASE_URL="", CREDENTIAL_ENCRYPTION_KEY=VALID_KEY)
        with self.assertRaises(ConfigurationError) as ctx:
            ProvisioningSettings.from_django(source)
        self.assertIn("ENGINE_BASE_URL", str(ctx.exception))
        self.assertIn("ENGINE_API_KEY", str(ctx.exception))

    def test_short_encryption_key_is_rejected(self) -> None:
        source = SimpleNamespace(
            ENGINE_BASE_URL="https://engine.example.com",
            ENGINE_API_KEY="key",
            CREDENTIAL_ENCRYPTION_KEY="c2hvcnQ=",
        )
        with self.assertRaises(ConfigurationError):
            ProvisioningSettings.from_django(source)


class ImportWorkflowTemplateCommandTests(TestCase):
    def _write(self, payload: Any) -> Path:
        handle = tempfile.NamedTemporaryFile(
            "w", suffix=".json", delete=False, encoding="utf-8"
        )
        with handle:
            json.dump(payload, handle)
        self.addCleanup(Path(handle.name).unlink)
        return Path(handle.name)

    def test_imports_valid_export(self) -> None:
        stdout = StringIO()
        call_command(
            "import_workflow_template",
            str(self._write(SLACK_TEMPLATE)),
            "--name",
            "Slack Digest v1",
            stdout=stdout,
        )

        template = cast(Any, WorkflowTemplate)._default_manager.get()
        self.assertEqual(template.name, "Slack Digest v1")
        self.assertEqual(template.workflow_json, SLACK_TEMPLATE)
        self.assertIn(str(template.id), stdout.getvalue())

        template.name = "edited"
        with self.assertRaises(TemplateImmutableError):
            template.save()

    def test_rejects_invalid_export(self) -> None:
        path = self._write({"name": "Broken", "nodes": [{"name": "A"}]})
        with self.assertRaises(CommandError):
            call_command("import_workflow_template", str(path), stderr=StringIO())
        self.assertFalse(cast(Any, WorkflowTemplate)._default_manager.exists())


class ProvisionActivationCommandTests(TestCase):
    def test_provisions_by_tenant_slug(self) -> None:
        tenant = create_tenant("tenant-a")
        activation = create_activation(tenant, create_automation())
        engine = RecordingEngineClient()
        stdout = StringIO()

        with patch(
            "provisioning.orchestrator.EngineClient.from_settings", return_value=engine
        ):
            call_command(
                "provision_activation",
                "--tenant",
                "tenant-a",
                "--activation",
                str(activation.id),
                stdout=stdout,
            )

        self.assertEqual(json.loads(stdout.getvalue())["workflowId"], "wf-1")
        mapping = cast(Any, WorkflowInstanceMapping)._default_manager.get()
        self.assertEqual(mapping.status, MappingStatus.ACTIVE)

    def test_failure_raises_command_error(self) -> None:
        tenant = create_tenant("tenant-a")
        activation = create_activation(tenant, None)

        with patch(
            "provisioning.orchestrator.EngineClient.from_settings",
            return_value=RecordingEngineClient(),
        ):
            with self.assertRaises(CommandError):
                call_command(
                    "provision_activation",
                    "--tenant",
                    str(tenant.id),
                    "--activation",
                    str(activation.id),
                    stdout=StringIO(),
                )

    def test_unknown_tenant(self) -> None:
        with self.assertRaises(CommandError):
            call_command(
                "provision_activation",
                "--tenant",
                "nobody",
                "--activation",
                "not-a-uuid",
            )
