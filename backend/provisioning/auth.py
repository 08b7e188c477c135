# pyright: reportMissingImports=false
from __future__ import annotations

from collections.abc import Mapping
from typing import cast

from django.contrib.auth.models import AnonymousUser  # type: ignore[reportMissingImports]
from rest_framework import authentication, exceptions  # type: ignore[reportMissingImports]
from rest_framework.permissions import BasePermission

from .models import Tenant, TenantApiKey
from .tenant_context import set_current_tenant

API_KEY_META = "HTTP_X_TENANT_API_KEY"
AUTHORIZATION_META = "HTTP_AUTHORIZATION"
BEARER_PREFIX = "bearer "


def raw_api_key_from_meta(meta: Mapping[str, str]) -> str | None:
    """Returns the tenant key from `X-Tenant-Api-Key` or `Authorization: Bearer`."""
    raw_key = meta.get(API_KEY_META)
    if raw_key is not None:
        return raw_key
    authorization = meta.get(AUTHORIZATION_META, "")
    if authorization.lower().startswith(BEARER_PREFIX):
        return authorization[len(BEARER_PREFIX) :].strip()
    return None


class TenantApiKeyAuthentication(authentication.BaseAuthentication):
    header_name = "X-Tenant-Api-Key"

    def authenticate(self, request):
        raw_key = raw_api_key_from_meta(cast(Mapping[str, str], request.META))
        if raw_key is None:
            return None
        if not raw_key.strip():
            raise exceptions.AuthenticationFailed("Invalid tenant API key.")

        if getattr(request, "tenant_api_key_provided", False):
            tenant_api_key = getattr(request, "tenant_api_key", None)
        else:
            tenant_api_key = TenantApiKey.authenticate(raw_key)

        if tenant_api_key is None:
            raise exceptions.AuthenticationFailed("Invalid tenant API key.")

        tenant = cast(Tenant, tenant_api_key.tenant)
        request.tenant = tenant
        request.tenant_api_key = tenant_api_key
        request.tenant_api_key_provided = True
        set_current_tenant(tenant)

        return AnonymousUser(), tenant_api_key

    def authenticate_header(self, request) -> str:
        return self.header_name


class TenantRequired(BasePermission):
    message = "Tenant API key required."

    def has_permission(self, request, view) -> bool:
        return getattr(request, "tenant", None) is not None
