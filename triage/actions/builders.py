"""Shorthand constructors for actions and a fluent builder for investigation results."""

from __future__ import annotations

from typing import Callable, List, Optional

from triage.actions.actions import (
    EscalateAction,
    LimitedSupportAction,
    NoteAction,
    ReportAction,
    ServiceLogAction,
    SilenceAction,
)
from triage.actions.base import Action
from triage.core.notes import NoteWriter
from triage.investigations.base import InvestigationResult


def service_log(severity: str, summary: str, description: str = "") -> Action:
    return ServiceLogAction(severity=severity, summary=summary, description=description)


def limited_support(summary: str, details: str, context: str = "") -> Action:
    return LimitedSupportAction(summary=summary, details=details, context=context)


def note(content: str) -> Action:
    return NoteAction(content=content)


def note_from(notes: NoteWriter) -> Action:
    return NoteAction(content=str(notes))


def silence(reason: str = "") -> Action:
    return SilenceAction(reason=reason)


def escalate(reason: str = "") -> Action:
    return EscalateAction(reason=reason)


def report(cluster_id: str, summary: str, data: str) -> Action:
    return ReportAction(cluster_id=cluster_id, summary=summary, data=data)


def note_and_report_from(notes: NoteWriter, cluster_id: str, investigation_name: str) -> List[Action]:
    """A report holding the note text, followed by the note itself."""
    text = str(notes)
    return [report(cluster_id, investigation_name, text), note(text)]


class ResultBuilder:
    """
    Collects actions for an InvestigationResult in submission order.

        result = (
            ResultBuilder()
            .add_note("Network verifier passed")
            .escalate("Needs a human")
            .build()
        )
    """

    def __init__(self) -> None:
        self._actions: List[Action] = []
        self._stop: Optional[str] = None

    def add_action(self, action: Action) -> "ResultBuilder":
        self._actions.append(action)
        return self

    def add_service_log(
        self,
        severity: str,
        summary: str,
        configure: Optional[Callable[[ServiceLogAction], None]] = None,
    ) -> "ResultBuilder":
        a = ServiceLogAction(severity=severity, summary=summary)
        if configure is not None:
            configure(a)
        return self.add_action(a)

    def add_limited_support(
        self,
        summary: str,
        details: str,
        configure: Optional[Callable[[LimitedSupportAction], None]] = None,
    ) -> "ResultBuilder":
        a = LimitedSupportAction(summary=summary, details=details)
        if configure is not None:
            configure(a)
        return self.add_action(a)

    def add_note(self, content: str) -> "ResultBuilder":
        return self.add_action(note(content))

    def add_note_from(self, notes: NoteWriter) -> "ResultBuilder":
        return self.add_action(note_from(notes))

    def silence(self, reason: str = "") -> "ResultBuilder":
        return self.add_action(silence(reason))

    def escalate(self, reason: str = "") -> "ResultBuilder":
        return self.add_action(escalate(reason))

    def stop(self, reason: str) -> "ResultBuilder":
        self._stop = reason
        return self

    def build(self) -> InvestigationResult:
        return InvestigationResult(actions=list(self._actions), stop_investigations=self._stop)
