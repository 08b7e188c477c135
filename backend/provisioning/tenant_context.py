from __future__ import annotations

import contextvars
import logging
from typing import Any

_current_tenant: contextvars.ContextVar[Any] = contextvars.ContextVar(
    "current_tenant",
    default=None,
)


def set_current_tenant(tenant: Any) -> None:
    _current_tenant.set(tenant)


def get_current_tenant() -> Any:
    return _current_tenant.get()


class TenantLogFilter(logging.Filter):
    """Stamps `record.tenant` with the slug of the tenant serving the request."""

    def filter(self, record: logging.LogRecord) -> bool:
        tenant = get_current_tenant()
        record.tenant = getattr(tenant, "slug", None) or "-"
        return True
