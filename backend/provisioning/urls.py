from __future__ import annotations

from django.urls import path

from .views import (
    activation_lifecycle_view,
    activation_provision_view,
    health_view,
    integration_detail_view,
    integration_list_view,
    mapping_detail_view,
    mapping_list_view,
    provision_view,
)

urlpatterns = [
    path("health", health_view, name="health"),
    path("provision", provision_view, name="provision"),
    path(
        "activations/<uuid:activation_request_id>/provision",
        activation_provision_view,
        name="activation-provision",
    ),
    path(
        "activations/<uuid:activation_request_id>/lifecycle",
        activation_lifecycle_view,
        name="activation-lifecycle",
    ),
    path("mappings", mapping_list_view, name="mapping-list"),
    path(
        "mappings/<uuid:activation_request_id>",
        mapping_detail_view,
        name="mapping-detail",
    ),
    path("integrations", integration_list_view, name="integration-list"),
    path(
        "integrations/<str:provider>",
        integration_detail_view,
        name="integration-detail",
    ),
]
