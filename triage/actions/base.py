from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Protocol, runtime_checkable

from triage.core.models import Cluster
from triage.core.notes import NoteWriter
from triage.logs import RunLogger, get_run_logger
from triage.providers.base import AlertingClient, InventoryClient, ReportClient


class ActionType(str, Enum):
    SERVICE_LOG = "service_log"
    LIMITED_SUPPORT = "limited_support"
    NOTE = "note"
    TITLE_UPDATE = "title_update"
    SILENCE = "silence"
    ESCALATE = "escalate"
    REPORT = "report"


# Actions that talk to the alert itself; their relative order is observable on the alert.
ALERTING_ACTION_TYPES = frozenset({ActionType.NOTE, ActionType.TITLE_UPDATE, ActionType.SILENCE, ActionType.ESCALATE})


@dataclass
class ExecutionContext:
    """Everything an action may touch while executing. Shared read-only across workers."""

    investigation_name: str = ""
    cluster: Optional[Cluster] = None
    inventory: Optional[InventoryClient] = None
    alerting: Optional[AlertingClient] = None
    reports: Optional[ReportClient] = None
    notes: Optional[NoteWriter] = None
    logger: RunLogger = field(default_factory=get_run_logger)
    # Set by the caller to abandon pending retries.
    cancel: threading.Event = field(default_factory=threading.Event)

    def with_logger(self, logger: RunLogger) -> "ExecutionContext":
        return ExecutionContext(
            investigation_name=self.investigation_name,
            cluster=self.cluster,
            inventory=self.inventory,
            alerting=self.alerting,
            reports=self.reports,
            notes=self.notes,
            logger=logger,
            cancel=self.cancel,
        )


@runtime_checkable
class Action(Protocol):
    """
    A data-described side effect.

    Actions must be idempotent: the executor may run `execute` several times.
    """

    action_type: ActionType

    def validate(self) -> None:
        """Raise ValueError if the action cannot be executed."""

    def execute(self, ctx: ExecutionContext) -> None:
        """Perform the side effect. Raise on failure."""
