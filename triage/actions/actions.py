"""Concrete result actions.

Alerting actions (note/silence/escalate/title) are skipped with a warning when the run has no alerting
client (manual runs).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from triage.actions.base import ActionType, ExecutionContext
from triage.core.docs import KIND_LIMITED_SUPPORT, KIND_SERVICE_LOG, check_documentation
from triage.providers.base import AlertingClient


def _alerting(ctx: ExecutionContext, what: str) -> Optional[AlertingClient]:
    if ctx.alerting is None:
        ctx.logger.warning("No alerting client available; skipping %s", what)
    return ctx.alerting


@dataclass
class ServiceLogAction:
    severity: str
    summary: str
    description: str = ""
    service_name: str = "SREManualAction"
    internal_only: bool = False
    reason: str = ""
    allow_duplicates: bool = False
    action_type: ActionType = field(default=ActionType.SERVICE_LOG, init=False)

    def validate(self) -> None:
        if not self.summary:
            raise ValueError("service log summary is required")
        if not self.severity:
            raise ValueError("service log severity is required")

    def execute(self, ctx: ExecutionContext) -> None:
        if ctx.cluster is None or ctx.inventory is None:
            raise RuntimeError("cluster and inventory client required for service log action")
        check_documentation(ctx.cluster, summary=self.summary, details=self.description, kind=KIND_SERVICE_LOG)

        ctx.logger.info("Sending service log: %s (reason: %s)", self.summary, self.reason)
        if not self.allow_duplicates:
            try:
                if ctx.inventory.has_service_log(ctx.cluster, self.summary):
                    ctx.logger.info("Skipping duplicate service log: %s", self.summary)
                    return
            except Exception as e:
                ctx.logger.warning("Duplicate service log check failed, sending anyway: %s", e)
        ctx.inventory.post_service_log(
            ctx.cluster,
            severity=self.severity,
            summary=self.summary,
            description=self.description,
            service_name=self.service_name,
            internal_only=self.internal_only,
        )


@dataclass
class LimitedSupportAction:
    summary: str
    details: str
    context: str = ""
    allow_duplicates: bool = False
    action_type: ActionType = field(default=ActionType.LIMITED_SUPPORT, init=False)

    def validate(self) -> None:
        if not self.summary:
            raise ValueError("limited support summary is required")
        if not self.details:
            raise ValueError("limited support details are required")

    def execute(self, ctx: ExecutionContext) -> None:
        if ctx.cluster is None or ctx.inventory is None:
            raise RuntimeError("cluster and inventory client required for limited support action")
        check_documentation(ctx.cluster, summary=self.summary, details=self.details, kind=KIND_LIMITED_SUPPORT)
        ctx.logger.info("Setting limited support: %s (context: %s)", self.summary, self.context)
        ctx.inventory.post_limited_support_reason(ctx.cluster, summary=self.summary, details=self.details)


@dataclass
class NoteAction:
    content: str
    action_type: ActionType = field(default=ActionType.NOTE, init=False)

    def validate(self) -> None:
        if not (self.content or "").strip():
            raise ValueError("note content cannot be empty")

    def execute(self, ctx: ExecutionContext) -> None:
        client = _alerting(ctx, "note")
        if client is None:
            return
        ctx.logger.info("Adding alert note (%d chars)", len(self.content))
        client.add_note(self.content)


@dataclass
class SilenceAction:
    reason: str = ""
    action_type: ActionType = field(default=ActionType.SILENCE, init=False)

    def validate(self) -> None:
        return None

    def execute(self, ctx: ExecutionContext) -> None:
        client = _alerting(ctx, "silence")
        if client is None:
            return
        ctx.logger.info("Silencing alert: %s", self.reason)
        client.silence()


@dataclass
class EscalateAction:
    reason: str = ""
    action_type: ActionType = field(default=ActionType.ESCALATE, init=False)

    def validate(self) -> None:
        return None

    def execute(self, ctx: ExecutionContext) -> None:
        client = _alerting(ctx, "escalation")
        if client is None:
            return
        ctx.logger.info("Escalating alert: %s", self.reason)
        client.escalate()


@dataclass
class TitleUpdateAction:
    prefix: str
    action_type: ActionType = field(default=ActionType.TITLE_UPDATE, init=False)

    def validate(self) -> None:
        if not self.prefix:
            raise ValueError("prefix cannot be empty")

    def execute(self, ctx: ExecutionContext) -> None:
        client = _alerting(ctx, "title update")
        if client is None:
            return
        current = client.get_title()
        if self.prefix in current:
            return
        ctx.logger.info("Updating alert title with prefix: %s", self.prefix)
        client.update_title(f"{self.prefix} {current}")


@dataclass
class ReportAction:
    cluster_id: str
    summary: str
    data: str
    report_id: Optional[str] = field(default=None, init=False)
    action_type: ActionType = field(default=ActionType.REPORT, init=False)

    def validate(self) -> None:
        if not self.cluster_id:
            raise ValueError("cluster_id is required")
        if not self.summary:
            raise ValueError("summary is required")
        if not self.data:
            raise ValueError("data is required")

    def execute(self, ctx: ExecutionContext) -> None:
        if ctx.reports is None:
            raise RuntimeError("report client not available in execution context")
        if self.report_id is None:
            ctx.logger.info("Creating cluster report for %s", self.cluster_id)
            self.report_id = ctx.reports.create_report(self.cluster_id, self.summary, self.data)
        if ctx.notes is not None:
            ctx.notes.append_automation("%s", self.note_text())
        ctx.logger.info("Created cluster report: %s", self.report_id)

    def note_text(self) -> str:
        if self.report_id is None:
            return "Cluster report created (report details not available)"
        return (
            "Created a cluster report, access it with the following command:\n"
            f"osdctl cluster reports get --cluster-id {self.cluster_id} --report-id {self.report_id}"
        )
