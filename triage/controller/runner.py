"""
Investigation run loop for one alert.

    precheck -> access check -> investigation (retried on infrastructure errors) -> actions -> cleanup

Cleanup runs on every exit path and releases exactly the ephemeral grants the builder built. Failures are
reported once through the alerting client; a failure to report is only logged.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from triage.actions.actions import TitleUpdateAction
from triage.core.docs import DocumentationMismatchError
from triage.core.errors import TriageError, find_in_chain, is_infrastructure_error
from triage.executor.errors import MultipleActionsError
from triage.executor.executor import ActionExecutor, ExecutionOptions, ExecutorInput, WaitFunc
from triage.investigations.base import Investigation, InvestigationResult
from triage.investigations.ccam import CloudCredentialsCheck
from triage.investigations.precheck import ClusterStatePrecheck
from triage.logs import RunLogger, get_run_logger
from triage.providers.base import (
    AccessProvisioner,
    AlertingClient,
    CredentialBroker,
    InventoryClient,
    ReportClient,
)
from triage.resources.builder import ResourceBuilder

TITLE_PREFIX = "[Triage Investigated]"

FAILURE_NOTE = "🚨 Automated investigation failed, please investigate manually. 🚨"
EARLY_FAILURE_NOTE = (
    "🚨 Automated investigation failed prior to resource initialization, please investigate manually. 🚨"
)


class InvestigationFailedError(TriageError):
    def __init__(self, name: str, attempts: int, err: BaseException) -> None:
        self.name = name
        self.attempts = attempts
        self.err = err
        super().__init__(f"investigation {name} failed after {attempts} attempt(s): {err}")
        self.__cause__ = err


class ActionsFailedError(TriageError):
    def __init__(self, stage: str, err: BaseException) -> None:
        self.stage = stage
        self.err = err
        super().__init__(f"failed to execute {stage} actions: {err}")
        self.__cause__ = err


@dataclass(frozen=True)
class RetryPolicy:
    """Investigation retry policy. Only infrastructure errors are retried."""

    max_retries: int = 3
    initial_backoff: float = 1.0
    max_backoff: float = 10.0

    @property
    def max_attempts(self) -> int:
        return max(0, self.max_retries) + 1


def calculate_backoff(attempt: int, initial: float = 1.0, maximum: float = 10.0) -> float:
    """Delay after failed attempt `attempt` (1-based): initial, 2x, 4x, ... capped at `maximum`."""
    backoff = initial * (2 ** max(0, attempt - 1))
    return min(backoff, maximum)


def documentation_mismatch(err: Optional[BaseException]) -> Optional[DocumentationMismatchError]:
    """Find a documentation mismatch anywhere in `err`, including inside aggregated action failures."""
    hit = find_in_chain(err, DocumentationMismatchError)
    if hit is not None:
        return hit
    multi = find_in_chain(err, MultipleActionsError)
    if multi is not None:
        return multi.find(DocumentationMismatchError)
    return None


def run_with_retry(
    inv: Investigation,
    rb: ResourceBuilder,
    policy: RetryPolicy = RetryPolicy(),
    sleep: Callable[[float], None] = time.sleep,
    logger: Optional[RunLogger] = None,
) -> Tuple[InvestigationResult, int]:
    """
    Run `inv` until it succeeds, fails with a non-infrastructure error, or runs out of attempts.

    Returns (result, attempts). Raises InvestigationFailedError carrying the last error.
    """
    log = logger or rb.resources.logger
    max_attempts = policy.max_attempts
    last: Optional[BaseException] = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = inv.run(rb)
        except Exception as e:
            last = e
            if not is_infrastructure_error(e):
                log.debug("Non-retriable error encountered: %s", e)
                raise InvestigationFailedError(inv.name, attempt, e) from e
            if attempt < max_attempts:
                backoff = calculate_backoff(attempt, policy.initial_backoff, policy.max_backoff)
                log.warning(
                    "Infrastructure error on attempt %d/%d, retrying in %.1fs: %s", attempt, max_attempts, backoff, e
                )
                sleep(backoff)
            else:
                log.error("Infrastructure error on final attempt %d/%d: %s", attempt, max_attempts, e)
            continue

        if attempt > 1:
            log.info("Investigation succeeded on attempt %d", attempt)
        return result, attempt

    raise InvestigationFailedError(inv.name, max_attempts, last or RuntimeError("no attempts made"))


class InvestigationRunner:
    """Runs one investigation for one cluster. Collaborators are shared; resources are per run."""

    def __init__(
        self,
        *,
        inventory: InventoryClient,
        credentials: Optional[CredentialBroker] = None,
        provisioner: Optional[AccessProvisioner] = None,
        reports: Optional[ReportClient] = None,
        alerting: Optional[AlertingClient] = None,
        options: ExecutionOptions = ExecutionOptions(concurrent=True),
        retry: RetryPolicy = RetryPolicy(),
        sleep: Callable[[float], None] = time.sleep,
        action_wait: Optional[WaitFunc] = None,
        precheck: Optional[Investigation] = None,
        access_check: Optional[Investigation] = None,
        pipeline: str = "",
    ) -> None:
        self.inventory = inventory
        self.credentials = credentials
        self.provisioner = provisioner
        self.reports = reports
        self.alerting = alerting
        self.options = options
        self.retry = retry
        self.sleep = sleep
        self.action_wait = action_wait
        self.precheck = precheck or ClusterStatePrecheck()
        self.access_check = access_check or CloudCredentialsCheck()
        self.pipeline = pipeline

    def new_builder(self, cluster_id: str, inv: Investigation) -> ResourceBuilder:
        logger = get_run_logger(cluster_id=cluster_id, pipeline=self.pipeline or inv.name)
        return ResourceBuilder(
            cluster_id=cluster_id,
            name=inv.name,
            inventory=self.inventory,
            credentials=self.credentials,
            provisioner=self.provisioner,
            alerting=self.alerting,
            reports=self.reports,
            logger=logger,
        )

    def run_investigation(
        self,
        cluster_id: str,
        inv: Investigation,
        *,
        cancel: Optional[threading.Event] = None,
        builder: Optional[ResourceBuilder] = None,
    ) -> None:
        """Raises the failure after it has been reported; cleanup has always run by then."""
        rb = builder or self.new_builder(cluster_id, inv)
        failure: Optional[BaseException] = None
        try:
            self._investigate(rb, inv, cancel)
        except Exception as e:
            failure = e
            raise
        finally:
            self.cleanup(rb)
            if failure is not None:
                self.handle_failure(failure, rb)

    def _investigate(self, rb: ResourceBuilder, inv: Investigation, cancel: Optional[threading.Event]) -> None:
        logger = rb.resources.logger

        result = self.precheck.run(rb)
        if result.actions:
            self.execute_actions(rb, result, "precheck", cancel)
            # Any precheck action means the run is over.
            return
        if result.stop_investigations:
            logger.error("Stopping investigations due to: %s", result.stop_investigations)
            return

        result = self.access_check.run(rb)
        if result.actions:
            self.execute_actions(rb, result, "ccam", cancel)
        if result.stop_investigations and getattr(inv, "requires_cloud_access", False):
            logger.info("Stopping %s: %s", inv.name, result.stop_investigations)
            return

        logger.info("Starting investigation for %s", inv.name)
        result, _attempts = run_with_retry(inv, rb, self.retry, self.sleep, logger)
        steps = result.performed_steps()
        if steps:
            logger.info("Investigation %s performed: %s", inv.name, ", ".join(steps))

        self.execute_actions(rb, result, inv.name, cancel)
        self.execute_actions(rb, InvestigationResult(actions=[TitleUpdateAction(prefix=TITLE_PREFIX)]), inv.name, cancel)

    def execute_actions(
        self,
        rb: ResourceBuilder,
        result: InvestigationResult,
        stage: str,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        if not result.actions:
            rb.resources.logger.debug("No actions to execute")
            return

        r = rb.resources
        executor = ActionExecutor(
            inventory=r.inventory,
            alerting=r.alerting,
            reports=r.reports,
            logger=r.logger,
            wait=self.action_wait,
        )
        try:
            executor.execute(
                ExecutorInput(
                    investigation_name=stage,
                    actions=result.actions,
                    cluster=r.cluster,
                    notes=r.notes,
                    options=self.options,
                ),
                cancel=cancel,
            )
        except TriageError as e:
            r.logger.error("Action execution failed for %s: %s", stage, e)
            raise ActionsFailedError(stage, e) from e
        r.logger.info("Successfully executed all actions for %s", stage)

    def cleanup(self, rb: ResourceBuilder) -> None:
        r = rb.resources
        for label, err in r.release_all():
            r.logger.error("Failed to release %s: %s", label, err)

    def handle_failure(self, err: BaseException, rb: ResourceBuilder) -> None:
        """Leave the alert actionable. Never raises."""
        r = rb.resources
        r.logger.error("Investigation failed: %s", err)
        if rb.error is not None and rb.error is not err:
            r.logger.error("Resource builder failed with error: %s", rb.error)
        r.logger.debug("Resource builder state: %s", rb.describe())

        doc_err = documentation_mismatch(err)
        if doc_err is not None:
            message = doc_err.escalation_message()
            if r.notes is not None:
                r.notes.append_warning("%s", message)
                message = str(r.notes)
            self._escalate(r, message, "documentation mismatch")
            return

        if r.notes is not None:
            r.notes.append_warning("%s", FAILURE_NOTE)
            text = str(r.notes)
        else:
            text = EARLY_FAILURE_NOTE
        self._escalate(r, text, "investigation failure")

    def _escalate(self, r, text: str, what: str) -> None:
        if r.alerting is None:
            r.logger.error("No alerting client available, unable to escalate %s", what)
            return
        try:
            r.alerting.escalate_with_note(text)
        except Exception as e:  # noqa: BLE001
            r.logger.error("Failed to escalate %s notes: %s", what, e)
            return
        r.logger.info("Escalated %s with notes", what)
