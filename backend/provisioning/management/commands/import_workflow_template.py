from __future__ import annotations

import json
from pathlib import Path
from typing import Any, cast

from django.core.management.base import BaseCommand, CommandError

from provisioning.models import WorkflowTemplate
from provisioning.schemas import validate_workflow_definition


class Command(BaseCommand):
    help = "Import an exported engine workflow JSON file as an immutable template."

    def add_arguments(self, parser) -> None:
        parser.add_argument("path", help="Path to the workflow JSON export.")
        parser.add_argument(
            "--name",
            dest="name",
            help="Template name; defaults to the workflow's own name.",
        )

    def handle(self, *args: Any, **options: Any) -> None:
        path = Path(options["path"])
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise CommandError(f"Cannot read {path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise CommandError(f"{path} is not valid JSON: {exc}") from exc

        errors = validate_workflow_definition(payload)
        if errors:
            for error in errors:
                self.stderr.write(
                    f"{error['path']}: {error['code']} {error['message']}"
                )
            raise CommandError("Workflow JSON failed validation.")

        name = options.get("name") or payload.get("name") or path.stem
        manager = cast(Any, WorkflowTemplate)._default_manager
        template = manager.create(name=name, workflow_json=payload)
        self.stdout.write(f"template={template.id} name={template.name}")
