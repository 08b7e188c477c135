from __future__ import annotations

"""
Typed views over the JSON payloads that enter the provisioning pipeline.
Engine workflow graphs are validated once at load time and then handled as
frozen dataclasses; unknown node keys (position, typeVersion, ...) are carried
through untouched in `extra`.
"""

from dataclasses import dataclass, field, replace
from typing import Any

NODE_KNOWN_KEYS = {"id", "name", "type", "parameters", "credentials"}
WORKFLOW_SUBMIT_KEYS = ("name", "nodes", "connections", "settings", "staticData")


@dataclass(frozen=True)
class CredentialReference:
    id: str
    name: str

    def to_payload(self) -> dict[str, str]:
        return {"id": self.id, "name": self.name}


@dataclass(frozen=True)
class WorkflowNode:
    name: str
    type: str
    parameters: dict[str, Any] = field(default_factory=dict)
    credentials: dict[str, CredentialReference] = field(default_factory=dict)
    node_id: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WorkflowNode":
        credentials: dict[str, CredentialReference] = {}
        raw_credentials = payload.get("credentials") or {}
        if isinstance(raw_credentials, dict):
            for credential_type, reference in raw_credentials.items():
                if not isinstance(reference, dict):
                    continue
                credentials[str(credential_type)] = CredentialReference(
                    id=str(reference.get("id", "")),
                    name=str(reference.get("name", "")),
                )
        parameters = payload.get("parameters")
        return cls(
            name=str(payload.get("name", "")),
            type=str(payload.get("type", "")),
            parameters=dict(parameters) if isinstance(parameters, dict) else {},
            credentials=credentials,
            node_id=str(payload.get("id", "") or ""),
            extra={
                key: value
                for key, value in payload.items()
                if key not in NODE_KNOWN_KEYS
            },
        )

    def without_engine_refs(self) -> "WorkflowNode":
        """Drops engine-assigned ids and credential references."""
        return replace(self, node_id="", credentials={})

    def with_credentials(
        self, credentials: dict[str, CredentialReference]
    ) -> "WorkflowNode":
        return replace(self, credentials=dict(credentials))

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        if self.node_id:
            payload["id"] = self.node_id
        payload["name"] = self.name
        payload["type"] = self.type
        payload["parameters"] = dict(self.parameters)
        if self.credentials:
            payload["credentials"] = {
                credential_type: reference.to_payload()
                for credential_type, reference in self.credentials.items()
            }
        return payload


@dataclass(frozen=True)
class WorkflowDefinition:
    name: str
    nodes: tuple[WorkflowNode, ...]
    connections: dict[str, Any] = field(default_factory=dict)
    settings: dict[str, Any] = field(default_factory=dict)
    static_data: Any = None
    workflow_id: str = ""
    active: bool = False

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "WorkflowDefinition":
        connections = payload.get("connections")
        settings = payload.get("settings")
        return cls(
            name=str(payload.get("name", "")),
            nodes=tuple(
                WorkflowNode.from_payload(node)
                for node in payload.get("nodes", [])
                if isinstance(node, dict)
            ),
            connections=dict(connections) if isinstance(connections, dict) else {},
            settings=dict(settings) if isinstance(settings, dict) else {},
            static_data=payload.get("staticData"),
            workflow_id=str(payload.get("id", "") or ""),
            active=bool(payload.get("active", False)),
        )

    def find_node(self, node_type: str) -> WorkflowNode | None:
        return next((node for node in self.nodes if node.type == node_type), None)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "name": self.name,
            "nodes": [node.to_payload() for node in self.nodes],
            "connections": dict(self.connections),
            "settings": dict(self.settings),
        }
        if self.static_data is not None:
            payload["staticData"] = self.static_data
        return payload


@dataclass(frozen=True)
class RequiredIntegration:
    provider: str

    @classmethod
    def parse_list(cls, raw: Any) -> list["RequiredIntegration"]:
        """
        Accepts `[{"provider": "hubspot"}, ...]` (or bare provider strings) and
        returns lower-cased, de-duplicated entries in declaration order.
        """
        if not isinstance(raw, list):
            return []
        seen: set[str] = set()
        integrations: list[RequiredIntegration] = []
        for item in raw:
            if isinstance(item, dict):
                provider = item.get("provider")
            else:
                provider = item
            if not isinstance(provider, str):
                continue
            provider = provider.strip().lower()
            if not provider or provider in seen:
                continue
            seen.add(provider)
            integrations.append(cls(provider=provider))
        return integrations


def validate_workflow_definition(payload: Any) -> list[dict[str, str]]:
    """
    Checks an engine workflow export before it is stored or duplicated.
    Returns a list of error dictionaries with 'path', 'code', and 'message'.
    """
    errors: list[dict[str, str]] = []
    if not isinstance(payload, dict):
        _add_error(errors, "", "invalid_type", "Workflow must be an object.")
        return _sorted_errors(errors)

    for key in ("name", "nodes", "connections"):
        if key not in payload:
            _add_error(errors, key, "required", "Field is required.")

    if "name" in payload:
        _expect_type(errors, "name", payload.get("name"), str)
    if "connections" in payload:
        _expect_type(errors, "connections", payload.get("connections"), dict)
    if "settings" in payload and payload.get("settings") is not None:
        _expect_type(errors, "settings", payload.get("settings"), dict)

    nodes = payload.get("nodes")
    if "nodes" in payload and _expect_type(errors, "nodes", nodes, list):
        node_names: set[str] = set()
        for idx, node in enumerate(nodes):
            node_path = f"nodes[{idx}]"
            if not _expect_type(errors, node_path, node, dict):
                continue
            for key in ("name", "type"):
                if key not in node:
                    _add_error(
                        errors, f"{node_path}.{key}", "required", "Field is required."
                    )
            name = node.get("name")
            if "name" in node and _expect_type(errors, f"{node_path}.name", name, str):
                if name in node_names:
                    _add_error(
                        errors,
                        f"{node_path}.name",
                        "duplicate_name",
                        "Node name must be unique.",
                    )
                node_names.add(name)
            if "type" in node:
                _expect_type(errors, f"{node_path}.type", node.get("type"), str)
            if "parameters" in node:
                _expect_type(
                    errors, f"{node_path}.parameters", node.get("parameters"), dict
                )
            if "credentials" in node and node.get("credentials") is not None:
                _expect_type(
                    errors, f"{node_path}.credentials", node.get("credentials"), dict
                )

    return _sorted_errors(errors)


def _add_error(
    errors: list[dict[str, str]], path: str, code: str, message: str
) -> None:
    errors.append({"path": path, "code": code, "message": message})


def _expect_type(
    errors: list[dict[str, str]], path: str, value: Any, expected: type
) -> bool:
    if isinstance(value, expected):
        return True
    _add_error(errors, path, "invalid_type", f"Expected {expected.__name__}.")
    return False


def _sorted_errors(errors: list[dict[str, str]]) -> list[dict[str, str]]:
    return sorted(
        errors, key=lambda item: (item["path"], item["code"], item["message"])
    )
