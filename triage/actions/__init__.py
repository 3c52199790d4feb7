"""
Result actions.

Actions are data: investigations and prechecks return them, the executor runs them.
"""

from triage.actions.actions import (
    EscalateAction,
    LimitedSupportAction,
    NoteAction,
    ReportAction,
    ServiceLogAction,
    SilenceAction,
    TitleUpdateAction,
)
from triage.actions.base import ALERTING_ACTION_TYPES, Action, ActionType, ExecutionContext

__all__ = [
    "ALERTING_ACTION_TYPES",
    "Action",
    "ActionType",
    "EscalateAction",
    "ExecutionContext",
    "LimitedSupportAction",
    "NoteAction",
    "ReportAction",
    "ServiceLogAction",
    "SilenceAction",
    "TitleUpdateAction",
]
