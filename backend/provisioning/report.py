from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any


class Step:
    CREATE_WORKFLOW = "create_workflow"
    CREATE_CREDENTIAL = "create_credential"
    PATCH_NODES = "patch_nodes"
    ACTIVATE = "activate"
    DISCOVER_WEBHOOK = "discover_webhook"


@dataclass(frozen=True)
class StepOutcome:
    step: str
    ok: bool
    provider: str = ""
    code: str = ""
    detail: str = ""

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ProvisioningReport:
    """Accumulates per-step outcomes of one provisioning run."""

    outcomes: list[StepOutcome] = field(default_factory=list)

    def succeeded(self, step: str, provider: str = "", detail: str = "") -> None:
        self.outcomes.append(
            StepOutcome(step=step, ok=True, provider=provider, detail=detail)
        )

    def failed(self, step: str, code: str, detail: str, provider: str = "") -> None:
        self.outcomes.append(
            StepOutcome(
                step=step, ok=False, provider=provider, code=code, detail=detail
            )
        )

    @property
    def failures(self) -> list[StepOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def degraded(self) -> bool:
        return bool(self.failures)

    def to_list(self) -> list[dict[str, Any]]:
        return [outcome.to_dict() for outcome in self.outcomes]
