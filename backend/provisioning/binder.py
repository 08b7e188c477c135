from __future__ import annotations

"""
Maps engine node types to the credential types they need and attaches freshly
created tenant credentials to a workflow's nodes.
"""

from dataclasses import dataclass
from typing import Iterable

from .schemas import CredentialReference, WorkflowNode

PROVIDER_CREDENTIAL_TYPES = {
    "hubspot": "hubspotOAuth2Api",
    "gmail": "gmailOAuth2",
    "google_calendar": "googleCalendarOAuth2Api",
    "google_drive": "googleDriveOAuth2Api",
    "google_sheets": "googleSheetsOAuth2Api",
    "slack": "slackOAuth2Api",
    "notion": "notionOAuth2Api",
    "openai": "openAiApi",
    "telegram": "telegramApi",
    "microsoft_teams": "microsoftTeamsOAuth2Api",
    "airtable": "airtableTokenApi",
}

NODE_CREDENTIAL_TYPES = {
    "n8n-nodes-base.hubspot": ("hubspotOAuth2Api",),
    "n8n-nodes-base.gmail": ("gmailOAuth2",),
    "n8n-nodes-base.gmailTrigger": ("gmailOAuth2",),
    "n8n-nodes-base.googleCalendar": ("googleCalendarOAuth2Api",),
    "n8n-nodes-base.googleCalendarTrigger": ("googleCalendarOAuth2Api",),
    "n8n-nodes-base.googleDrive": ("googleDriveOAuth2Api",),
    "n8n-nodes-base.googleDriveTrigger": ("googleDriveOAuth2Api",),
    "n8n-nodes-base.googleSheets": ("googleSheetsOAuth2Api",),
    "n8n-nodes-base.slack": ("slackOAuth2Api",),
    "n8n-nodes-base.notion": ("notionOAuth2Api",),
    "n8n-nodes-base.openAi": ("openAiApi",),
    "n8n-nodes-base.telegram": ("telegramApi",),
    "n8n-nodes-base.microsoftTeams": ("microsoftTeamsOAuth2Api",),
    "n8n-nodes-base.airtable": ("airtableTokenApi",),
}


@dataclass(frozen=True)
class EngineCredential:
    """A credential object created inside the engine during one provisioning run."""

    provider: str
    type: str
    id: str
    name: str


def credential_type_for_provider(provider: str) -> str:
    key = provider.strip().lower()
    return PROVIDER_CREDENTIAL_TYPES.get(key, f"{key}Api")


def required_credential_types(node_type: str) -> tuple[str, ...]:
    return NODE_CREDENTIAL_TYPES.get(node_type, ())


def bind_node_credentials(
    nodes: Iterable[WorkflowNode], credentials: Iterable[EngineCredential]
) -> list[WorkflowNode]:
    """
    Returns the node list with matching credential references attached.
    Nodes whose required credential was never created, or that need none, are
    returned unchanged.
    """
    available = list(credentials)
    bound: list[WorkflowNode] = []
    for node in nodes:
        references: dict[str, CredentialReference] = {}
        for credential_type in required_credential_types(node.type):
            match = next(
                (item for item in available if item.type == credential_type), None
            )
            if match is not None:
                references[credential_type] = CredentialReference(
                    id=match.id, name=match.name
                )
        if references:
            bound.append(node.with_credentials({**node.credentials, **references}))
        else:
            bound.append(node)
    return bound
