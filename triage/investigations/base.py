from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional, Protocol, runtime_checkable

from triage.actions.base import Action
from triage.core.models import InvestigationStep

if TYPE_CHECKING:
    from triage.resources.builder import ResourceBuilder


@dataclass
class InvestigationResult:
    # Executed in this order when concurrency is disabled.
    actions: List[Action] = field(default_factory=list)

    limited_support_set: InvestigationStep = field(default_factory=InvestigationStep)
    service_log_prepared: InvestigationStep = field(default_factory=InvestigationStep)
    service_log_sent: InvestigationStep = field(default_factory=InvestigationStep)

    # Non-empty only for fatal, non-retriable preconditions.
    stop_investigations: Optional[str] = None

    def performed_steps(self) -> List[str]:
        out = []
        for name in ("limited_support_set", "service_log_prepared", "service_log_sent"):
            step = getattr(self, name)
            if step.performed:
                out.append(name if not step.labels else f"{name}({','.join(step.labels)})")
        return out


@runtime_checkable
class Investigation(Protocol):
    """
    Pluggable investigation strategy.

    `run` declares the capabilities it needs on the builder, builds them, and returns actions.
    Transient backing-system failures are raised as InfrastructureError (retried); conclusive outcomes
    are returned as actions or raised as FindingError.
    """

    name: str
    description: str
    alert_title: str
    experimental: bool

    def run(self, rb: "ResourceBuilder") -> InvestigationResult: ...

    def should_investigate_alert(self, title: str) -> bool: ...


class BaseInvestigation:
    """Default metadata behavior: match when `alert_title` is a substring of the incoming title."""

    name = ""
    description = ""
    alert_title = ""
    experimental = False
    # When the access check finds missing cloud credentials, stop instead of running.
    requires_cloud_access = False

    def is_experimental(self) -> bool:
        return self.experimental

    def should_investigate_alert(self, title: str) -> bool:
        return bool(self.alert_title) and self.alert_title in (title or "")

    def run(self, rb: "ResourceBuilder") -> InvestigationResult:
        raise NotImplementedError
