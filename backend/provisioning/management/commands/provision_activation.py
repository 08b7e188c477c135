from __future__ import annotations

import json
import uuid
from typing import Any, cast

from django.core.management.base import BaseCommand, CommandError

from provisioning.conf import ProvisioningSettings
from provisioning.errors import ConfigurationError
from provisioning.models import Tenant
from provisioning.orchestrator import ProvisioningOrchestrator


class Command(BaseCommand):
    help = "Provision the engine workflow for one tenant activation request."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--tenant",
            dest="tenant",
            required=True,
            help="Tenant id or slug that owns the activation request.",
        )
        parser.add_argument(
            "--activation",
            dest="activation",
            required=True,
            help="Activation request id (UUID).",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        tenant = self._get_tenant(options["tenant"])
        try:
            activation_request_id = uuid.UUID(str(options["activation"]))
        except ValueError as exc:
            raise CommandError("Activation id must be a UUID.") from exc

        try:
            settings = ProvisioningSettings.from_django()
        except ConfigurationError as exc:
            raise CommandError(str(exc)) from exc

        result = ProvisioningOrchestrator(settings).provision(
            tenant, activation_request_id
        )
        self.stdout.write(json.dumps(result.to_payload(), indent=2, sort_keys=True))
        if not result.success:
            raise CommandError(result.error or "Provisioning failed.")

    def _get_tenant(self, selector: str) -> Tenant:
        tenant = None
        tenant_manager = cast(Any, Tenant)._default_manager
        if selector.isdigit():
            tenant = tenant_manager.filter(id=int(selector)).first()
        if tenant is None:
            tenant = tenant_manager.filter(slug=selector).first()
        if tenant is None:
            raise CommandError("Tenant not found.")
        return tenant
