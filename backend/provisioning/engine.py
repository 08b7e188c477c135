from __future__ import annotations

"""
Thin HTTP client for the external workflow engine's REST API.
Every call is synchronous, JSON in and out, and authenticated with the
engine API key header. Non-success statuses surface as EngineApiError; callers
decide which failures are fatal.
"""

import http.client
import json
import logging
import urllib.error
from dataclasses import dataclass
from typing import Any, Callable, Iterable
from urllib.parse import quote, urlsplit
from urllib.request import Request, urlopen

from .conf import DEFAULT_ENGINE_TIMEOUT_SECONDS, ProvisioningSettings
from .errors import EngineApiError
from .schemas import WORKFLOW_SUBMIT_KEYS, WorkflowDefinition, WorkflowNode

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"
API_KEY_HEADER = "X-N8N-API-KEY"
WEBHOOK_NODE_TYPE = "n8n-nodes-base.webhook"
EXECUTION_SETTINGS = {
    "saveDataSuccessExecution": "all",
    "saveDataErrorExecution": "all",
}


@dataclass(frozen=True)
class DeactivationResult:
    success: bool
    attempted: bool
    verified: bool
    error: str = ""


def normalize_base_url(raw_url: str) -> str:
    """
    Reduces an operator-supplied base address to a bare origin.
    Falls back to trimming trailing slashes when the value does not parse as
    an absolute URL.
    """
    value = (raw_url or "").strip()
    parts = urlsplit(value)
    if parts.scheme and parts.netloc:
        return f"{parts.scheme}://{parts.netloc}"
    return value.rstrip("/")


def workflow_display_name(
    template_name: str, tenant_label: str, activation_id: str
) -> str:
    return f"[{tenant_label}] {template_name} - {str(activation_id)[:8]}"


def sanitize_nodes(nodes: Iterable[WorkflowNode]) -> list[WorkflowNode]:
    return [node.without_engine_refs() for node in nodes]


class EngineClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = DEFAULT_ENGINE_TIMEOUT_SECONDS,
        opener: Callable[..., Any] | None = None,
    ) -> None:
        self.base_url = normalize_base_url(base_url)
        self._api_key = api_key
        self._timeout = timeout
        self._opener = opener

    @classmethod
    def from_settings(cls, settings: ProvisioningSettings) -> "EngineClient":
        return cls(
            settings.engine_base_url,
            settings.engine_api_key,
            timeout=settings.engine_timeout,
        )

    def create_workflow(
        self,
        definition: WorkflowDefinition,
        tenant_label: str,
        activation_id: str,
    ) -> str:
        """
        Submits a per-tenant copy of a template as a new engine workflow.
        Node ids and credential references are stripped so the copy never
        carries another tenant's engine objects.
        """
        payload = definition.to_payload()
        payload["name"] = workflow_display_name(
            definition.name, tenant_label, activation_id
        )
        payload["nodes"] = [
            node.to_payload() for node in sanitize_nodes(definition.nodes)
        ]
        payload["settings"] = {**definition.settings, **EXECUTION_SETTINGS}
        body = {key: payload[key] for key in WORKFLOW_SUBMIT_KEYS if key in payload}
        data = self._call("POST", "/workflows", body)
        return _require_id(data, "workflow")

    def create_credential(
        self, credential_type: str, name: str, data: dict[str, Any]
    ) -> str:
        response = self._call(
            "POST",
            "/credentials",
            {"name": name, "type": credential_type, "data": data},
        )
        return _require_id(response, "credential")

    def patch_workflow_nodes(
        self, workflow_id: str, nodes: Iterable[WorkflowNode]
    ) -> None:
        self._call(
            "PATCH",
            f"/workflows/{quote(workflow_id, safe='')}",
            {"nodes": [node.to_payload() for node in nodes]},
        )

    def activate(self, workflow_id: str) -> None:
        self._call("POST", f"/workflows/{quote(workflow_id, safe='')}/activate")

    def activate_workflow(self, workflow_id: str) -> bool:
        try:
            self.activate(workflow_id)
        except EngineApiError as exc:
            logger.warning("Failed to activate workflow %s: %s", workflow_id, exc)
            return False
        return True

    def get_workflow(self, workflow_id: str) -> WorkflowDefinition:
        data = self._call("GET", f"/workflows/{quote(workflow_id, safe='')}")
        if not isinstance(data, dict):
            raise EngineApiError("Engine returned a non-object workflow payload.")
        return WorkflowDefinition.from_payload(data)

    def webhook_url_for(self, definition: WorkflowDefinition) -> str | None:
        """Composes the public webhook address of a webhook-triggered workflow."""
        webhook_node = definition.find_node(WEBHOOK_NODE_TYPE)
        if webhook_node is None:
            return None
        path = webhook_node.parameters.get("path")
        if not isinstance(path, str) or not path.strip():
            return None
        return f"{self.base_url}/webhook/{path.strip().lstrip('/')}"

    def deactivate_workflow(self, workflow_id: str) -> DeactivationResult:
        """
        Deactivates a workflow and verifies the result with a follow-up GET.
        Uses the dedicated endpoint first and falls back to patching
        `active: false`.
        """
        encoded_id = quote(workflow_id, safe="")
        error = ""
        try:
            self._call("POST", f"/workflows/{encoded_id}/deactivate")
        except EngineApiError as exc:
            logger.info(
                "Deactivate endpoint failed for %s, falling back to PATCH: %s",
                workflow_id,
                exc,
            )
            try:
                self._call("PATCH", f"/workflows/{encoded_id}", {"active": False})
            except EngineApiError as patch_exc:
                error = str(patch_exc)
                logger.error(
                    "Both deactivation methods failed for %s: %s", workflow_id, error
                )

        verified = False
        try:
            verified = self.get_workflow(workflow_id).active is False
        except EngineApiError as exc:
            logger.warning("Could not verify workflow %s state: %s", workflow_id, exc)

        return DeactivationResult(
            success=not error, attempted=True, verified=verified, error=error
        )

    def _call(self, method: str, endpoint: str, body: Any | None = None) -> Any:
        url = f"{self.base_url}{API_PREFIX}{endpoint}"
        data = None
        if body is not None:
            data = json.dumps(body, ensure_ascii=True, separators=(",", ":")).encode(
                "utf-8"
            )
        request = Request(url, data=data, method=method)
        request.add_header("Content-Type", "application/json")
        request.add_header("Accept", "application/json")
        request.add_header(API_KEY_HEADER, self._api_key)
        logger.info("Engine API call: %s %s", method, url)

        opener = self._opener or urlopen
        try:
            with opener(request, timeout=self._timeout) as response:
                raw_body = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            error_body = ""
            try:
                error_body = exc.read().decode("utf-8", errors="replace")
            except OSError:
                error_body = ""
            logger.error("Engine API error (%s): %s", exc.code, error_body)
            raise EngineApiError(
                f"Engine API error: {exc.code} - {error_body}",
                status_code=int(exc.code),
                body=error_body,
            ) from exc
        except urllib.error.URLError as exc:
            logger.error("Engine API request failed: %s", exc.reason)
            raise EngineApiError(f"Engine API request failed: {exc.reason}") from exc
        except (TimeoutError, OSError, http.client.HTTPException) as exc:
            logger.error("Engine API connection failed: %s", exc)
            raise EngineApiError(f"Engine API connection failed: {exc!r}") from exc

        if not raw_body.strip():
            return {}
        try:
            return json.loads(raw_body)
        except json.JSONDecodeError as exc:
            raise EngineApiError(
                "Engine API returned invalid JSON.", body=raw_body
            ) from exc


def _require_id(payload: Any, kind: str) -> str:
    resource_id = payload.get("id") if isinstance(payload, dict) else None
    if resource_id in (None, ""):
        raise EngineApiError(f"Engine did not return a {kind} id.")
    return str(resource_id)
