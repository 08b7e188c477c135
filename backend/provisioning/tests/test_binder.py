from __future__ import annotations

from django.test import SimpleTestCase

from provisioning.binder import (
    EngineCredential,
    bind_node_credentials,
    credential_type_for_provider,
)
from provisioning.schemas import (
    RequiredIntegration,
    WorkflowDefinition,
    validate_workflow_definition,
)

from .factories import HUBSPOT_SLACK_TEMPLATE, SLACK_TEMPLATE


class NodeCredentialBinderTests(SimpleTestCase):
    def test_attaches_available_type_and_leaves_other_node_untouched(self) -> None:
        definition = WorkflowDefinition.from_payload(HUBSPOT_SLACK_TEMPLATE)
        hubspot = EngineCredential(
            provider="hubspot",
            type="hubspotOAuth2Api",
            id="cred-1",
            name="[Acme] hubspot - 1234abcd",
        )

        nodes = bind_node_credentials(definition.nodes, [hubspot])
        payloads = [node.to_payload() for node in nodes]

        self.assertEqual(
            payloads[0]["credentials"],
            {"hubspotOAuth2Api": {"id": "cred-1", "name": "[Acme] hubspot - 1234abcd"}},
        )
        self.assertNotIn("credentials", payloads[1])
        self.assertEqual(payloads[1]["parameters"], {"channel": "#sales"})

    def test_nodes_without_credential_needs_are_unchanged(self) -> None:
        definition = WorkflowDefinition.from_payload(SLACK_TEMPLATE)
        webhook = definition.find_node("n8n-nodes-base.webhook")
        slack = EngineCredential("slack", "slackOAuth2Api", "cred-9", "Slack")

        nodes = bind_node_credentials([webhook], [slack])

        self.assertEqual(nodes, [webhook])

    def test_provider_credential_type_fallback(self) -> None:
        self.assertEqual(credential_type_for_provider("Slack"), "slackOAuth2Api")
        self.assertEqual(credential_type_for_provider("pipedrive"), "pipedriveApi")


class WorkflowSchemaTests(SimpleTestCase):
    def test_sanitized_copy_drops_ids_and_credentials(self) -> None:
        definition = WorkflowDefinition.from_payload(SLACK_TEMPLATE)
        slack = definition.nodes[1].without_engine_refs().to_payload()

        self.assertNotIn("id", slack)
        self.assertNotIn("credentials", slack)
        self.assertEqual(slack["position"], [200, 0])

    def test_validation_reports_paths(self) -> None:
        errors = validate_workflow_definition(
            {"name": "Broken", "nodes": [{"name": "A"}, "oops"], "connections": []}
        )
        paths = {(error["path"], error["code"]) for error in errors}

        self.assertIn(("connections", "invalid_type"), paths)
        self.assertIn(("nodes[0].type", "required"), paths)
        self.assertIn(("nodes[1]", "invalid_type"), paths)
        self.assertEqual(validate_workflow_definition(SLACK_TEMPLATE), [])

    def test_required_integrations_are_normalized(self) -> None:
        parsed = RequiredIntegration.parse_list(
            [{"provider": "HubSpot"}, "slack", {"provider": "hubspot"}, {"x": 1}, 3]
        )
        self.assertEqual([item.provider for item in parsed], ["hubspot", "slack"])
        self.assertEqual(RequiredIntegration.parse_list(None), [])
