from __future__ import annotations

import logging
from typing import Callable, cast

from django.http import HttpRequest, HttpResponse

from .auth import raw_api_key_from_meta
from .models import TenantApiKey
from .tenant_context import set_current_tenant

logger = logging.getLogger(__name__)


class TenantContextMiddleware:
    """
    Resolves the calling tenant once per request and binds it to the context
    variable read by TenantLogFilter, so every log line of a provisioning run
    carries the tenant slug.
    """

    def __init__(self, get_response: Callable[[HttpRequest], HttpResponse]) -> None:
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        raw_key = raw_api_key_from_meta(cast(dict[str, str], request.META))
        tenant_api_key = None
        tenant = None

        if raw_key:
            tenant_api_key = TenantApiKey.authenticate(raw_key)
            if tenant_api_key is not None:
                tenant = tenant_api_key.tenant
            else:
                logger.warning("Rejected unknown tenant API key for %s", request.path)

        setattr(request, "tenant_api_key_provided", raw_key is not None)
        setattr(request, "tenant_api_key", tenant_api_key)
        setattr(request, "tenant", tenant)
        set_current_tenant(tenant)

        try:
            return self.get_response(request)
        finally:
            set_current_tenant(None)
