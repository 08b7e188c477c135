from __future__ import annotations

import os
import threading
import time
import uuid
from typing import Any

from fastapi import FastAPI, Header, HTTPException, Request


def _env(name: str, default: str = "") -> str:
    return os.getenv(name, default)


APP_HOST = _env("APP_HOST", "0.0.0.0")
APP_PORT = int(_env("APP_PORT", "5678"))
ENGINE_API_KEY = _env("ENGINE_API_KEY", "local-engine-key")


app = FastAPI(title="Mock Workflow Engine", version="0.1.0")

_lock = threading.Lock()
_workflows: dict[str, dict[str, Any]] = {}
_credentials: dict[str, dict[str, Any]] = {}
_webhook_calls: list[dict[str, Any]] = []


def reset_state() -> None:
    with _lock:
        _workflows.clear()
        _credentials.clear()
        _webhook_calls.clear()


def _require_api_key(api_key: str | None) -> None:
    if api_key != ENGINE_API_KEY:
        raise HTTPException(status_code=401, detail="Unauthorized")


def _get_workflow(workflow_id: str) -> dict[str, Any]:
    workflow = _workflows.get(workflow_id)
    if workflow is None:
        raise HTTPException(status_code=404, detail="Workflow not found")
    return workflow


def _new_id() -> str:
    return uuid.uuid4().hex[:16]


@app.get("/healthz")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/v1/workflows")
async def create_workflow(
    request: Request, x_n8n_api_key: str | None = Header(default=None)
) -> dict[str, Any]:
    _require_api_key(x_n8n_api_key)
    payload = await request.json()
    if not isinstance(payload, dict) or not payload.get("name"):
        raise HTTPException(status_code=400, detail="Workflow name is required")
    nodes = []
    for node in payload.get("nodes") or []:
        nodes.append({**node, "id": node.get("id") or _new_id()})
    workflow = {
        **payload,
        "id": _new_id(),
        "nodes": nodes,
        "active": False,
        "createdAt": time.time(),
    }
    with _lock:
        _workflows[workflow["id"]] = workflow
    return workflow


@app.get("/api/v1/workflows/{workflow_id}")
def get_workflow(
    workflow_id: str, x_n8n_api_key: str | None = Header(default=None)
) -> dict[str, Any]:
    _require_api_key(x_n8n_api_key)
    return _get_workflow(workflow_id)


@app.patch("/api/v1/workflows/{workflow_id}")
async def patch_workflow(
    workflow_id: str,
    request: Request,
    x_n8n_api_key: str | None = Header(default=None),
) -> dict[str, Any]:
    _require_api_key(x_n8n_api_key)
    payload = await request.json()
    with _lock:
        workflow = _get_workflow(workflow_id)
        if "nodes" in payload:
            workflow["nodes"] = payload["nodes"]
        if "active" in payload:
            workflow["active"] = bool(payload["active"])
    return workflow


@app.post("/api/v1/workflows/{workflow_id}/activate")
def activate_workflow(
    workflow_id: str, x_n8n_api_key: str | None = Header(default=None)
) -> dict[str, Any]:
    _require_api_key(x_n8n_api_key)
    with _lock:
        workflow = _get_workflow(workflow_id)
        for node in workflow.get("nodes") or []:
            for reference in (node.get("credentials") or {}).values():
                if reference.get("id") not in _credentials:
                    raise HTTPException(
                        status_code=400,
                        detail=f"Unknown credential on node {node.get('name')}",
                    )
        workflow["active"] = True
    return workflow


@app.post("/api/v1/workflows/{workflow_id}/deactivate")
def deactivate_workflow(
    workflow_id: str, x_n8n_api_key: str | None = Header(default=None)
) -> dict[str, Any]:
    _require_api_key(x_n8n_api_key)
    with _lock:
        workflow = _get_workflow(workflow_id)
        workflow["active"] = False
    return workflow


@app.post("/api/v1/credentials")
async def create_credential(
    request: Request, x_n8n_api_key: str | None = Header(default=None)
) -> dict[str, Any]:
    _require_api_key(x_n8n_api_key)
    payload = await request.json()
    for key in ("name", "type", "data"):
        if key not in payload:
            raise HTTPException(status_code=400, detail=f"Missing {key}")
    credential = {"id": _new_id(), "name": payload["name"], "type": payload["type"]}
    with _lock:
        _credentials[credential["id"]] = {**credential, "data": payload["data"]}
    return credential


@app.post("/webhook/{path:path}")
async def webhook(path: str, request: Request) -> dict[str, Any]:
    with _lock:
        matches = [
            workflow
            for workflow in _workflows.values()
            if workflow.get("active")
            and any(
                node.get("type") == "n8n-nodes-base.webhook"
                and str((node.get("parameters") or {}).get("path", "")).strip("/")
                == path.strip("/")
                for node in workflow.get("nodes") or []
            )
        ]
    if not matches:
        raise HTTPException(status_code=404, detail="Webhook not registered")
    payload = await request.json()
    with _lock:
        _webhook_calls.append({"path": path, "payload": payload})
    return {"message": "Workflow was started", "workflowId": matches[0]["id"]}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=APP_HOST, port=APP_PORT)
