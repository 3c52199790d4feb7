"""
Entry controllers.

- webhook: one alert payload -> alerting client -> strategy by alert title (unsupported alerts are escalated)
- manual: cluster id + strategy name, no alerting client, optional dry run
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Optional

from triage.config import TriageConfig
from triage.controller.runner import InvestigationRunner, RetryPolicy
from triage.core.errors import ConfigError, TriageError
from triage.executor.executor import ExecutionOptions
from triage.investigations.registry import ALIASES, get_investigation, get_investigation_by_name
from triage.providers.access_provider import AccessApiClient
from triage.providers.aws_provider import StsCredentialBroker
from triage.providers.base import AccessProvisioner, AlertingClient, CredentialBroker, InventoryClient, ReportClient
from triage.providers.inventory_provider import InventoryRestClient
from triage.providers.pagerduty_provider import PagerDutyClient

logger = logging.getLogger(__name__)


class UnknownInvestigationError(TriageError):
    pass


@dataclass(frozen=True)
class WebhookConfig:
    payload_path: str

    def validate(self) -> None:
        if not self.payload_path:
            raise ConfigError("payload path can not be empty")


@dataclass(frozen=True)
class ManualConfig:
    cluster_id: str
    investigation_name: str
    dry_run: bool = False

    def validate(self) -> None:
        if not self.cluster_id or not self.investigation_name:
            raise ConfigError("cluster id and investigation name can not be empty")


@dataclass
class Dependencies:
    """Process-wide collaborators shared by every run."""

    inventory: InventoryClient
    credentials: Optional[CredentialBroker] = None
    provisioner: Optional[AccessProvisioner] = None
    reports: Optional[ReportClient] = None

    @classmethod
    def from_config(cls, cfg: TriageConfig) -> "Dependencies":
        cfg.validate_live()
        access = AccessApiClient(cfg.access_api_url, cfg.inventory_token, proxy=cfg.access_api_proxy)
        credentials = None
        if cfg.initial_role_arn:
            credentials = StsCredentialBroker(cfg.initial_role_arn, proxy=cfg.aws_proxy)
        else:
            logger.warning("TRIAGE_INITIAL_ROLE_ARN is not set; cloud access will be unavailable")
        return cls(
            inventory=InventoryRestClient(cfg.inventory_url, cfg.inventory_token),
            credentials=credentials,
            provisioner=access,
            reports=access,
        )


def _execution_options(cfg: TriageConfig, dry_run: bool = False) -> ExecutionOptions:
    return ExecutionOptions(
        dry_run=dry_run or cfg.dry_run,
        stop_on_error=False,
        max_retries=cfg.action_max_retries,
        concurrent=cfg.concurrent_actions,
    )


def _retry_policy(cfg: TriageConfig) -> RetryPolicy:
    return RetryPolicy(
        max_retries=cfg.max_investigation_retries,
        initial_backoff=cfg.initial_backoff_seconds,
        max_backoff=cfg.max_backoff_seconds,
    )


def _runner(cfg: TriageConfig, deps: Dependencies, alerting: Optional[AlertingClient], dry_run: bool) -> InvestigationRunner:
    return InvestigationRunner(
        inventory=deps.inventory,
        credentials=deps.credentials,
        provisioner=deps.provisioner,
        reports=deps.reports,
        alerting=alerting,
        options=_execution_options(cfg, dry_run),
        retry=_retry_policy(cfg),
        pipeline=cfg.identifier,
    )


class WebhookController:
    def __init__(
        self,
        cfg: TriageConfig,
        deps: Dependencies,
        webhook: WebhookConfig,
        *,
        alerting_factory: Optional[Callable[[bytes], Any]] = None,
    ) -> None:
        self.cfg = cfg
        self.deps = deps
        self.webhook = webhook
        self._alerting_factory = alerting_factory or self._pagerduty_from_payload

    def _pagerduty_from_payload(self, payload: bytes) -> PagerDutyClient:
        self.cfg.validate_alerting()
        return PagerDutyClient.from_webhook(
            payload,
            token=self.cfg.pd_token,
            silent_policy=self.cfg.pd_silent_policy,
            from_email=self.cfg.pd_from_email,
        )

    def investigate(self) -> None:
        try:
            payload = Path(self.webhook.payload_path).read_bytes()
        except OSError as e:
            raise TriageError(f"failed to read webhook payload: {e}") from e

        alerting = self._alerting_factory(payload)
        title = alerting.get_title()
        inv = get_investigation(title, self.cfg.experimental_enabled)
        cluster_id = alerting.retrieve_cluster_id()

        if inv is None:
            logger.info("No investigation matches alert %r for cluster %s; escalating", title, cluster_id)
            try:
                alerting.escalate()
            except Exception as e:
                raise TriageError(f"could not escalate unsupported alert: {e}") from e
            return

        logger.info("Alert %r matched investigation %s", title, inv.name)
        _runner(self.cfg, self.deps, alerting, dry_run=False).run_investigation(cluster_id, inv)


class ManualController:
    def __init__(self, cfg: TriageConfig, deps: Dependencies, manual: ManualConfig) -> None:
        self.cfg = cfg
        self.deps = deps
        self.manual = manual

    def investigate(self) -> None:
        if self.manual.dry_run:
            logger.info("🔍 DRY RUN MODE: Investigation will run without performing any external operations")

        inv = get_investigation_by_name(self.manual.investigation_name, self.cfg.experimental_enabled)
        if inv is None:
            available = "\n".join(f"- {short} ({name})" for short, name in sorted(ALIASES.items()))
            raise UnknownInvestigationError(
                f"unknown investigation: {self.manual.investigation_name} - must be one of:\n{available}"
            )

        # No alerting client for manual runs.
        _runner(self.cfg, self.deps, None, dry_run=self.manual.dry_run).run_investigation(self.manual.cluster_id, inv)


def new_controller(
    cfg: TriageConfig,
    deps: Dependencies,
    *,
    webhook: Optional[WebhookConfig] = None,
    manual: Optional[ManualConfig] = None,
):
    """Exactly one of `webhook` / `manual` must be given."""
    if (webhook is None) == (manual is None):
        raise ConfigError("must specify exactly one controller type")
    if webhook is not None:
        webhook.validate()
        return WebhookController(cfg, deps, webhook)
    manual.validate()
    return ManualController(cfg, deps, manual)


def run(
    cfg: TriageConfig,
    *,
    webhook: Optional[WebhookConfig] = None,
    manual: Optional[ManualConfig] = None,
    deps: Optional[Dependencies] = None,
) -> None:
    if manual is not None and manual.dry_run and not cfg.dry_run:
        cfg = replace(cfg, dry_run=True)
    ctrl = new_controller(cfg, deps or Dependencies.from_config(cfg), webhook=webhook, manual=manual)
    ctrl.investigate()
