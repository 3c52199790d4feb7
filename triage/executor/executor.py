"""Executes the actions produced by prechecks and investigations.

Contract:
- all actions are validated before any of them runs
- sequential mode runs actions in submission order
- concurrent mode runs alerting actions (note/title/silence/escalate) in submission order on one worker and
  every other action on its own worker; all workers are joined before returning
- each action is retried up to `max_retries` times before it counts as failed; documentation mismatches and
  HTTP 4xx responses other than 408/429 fail on the first attempt
- with `stop_on_error=False` one failure never blocks the others; failures are raised together as
  MultipleActionsError
- `stop_on_error=True` skips the remaining actions of the failing worker only. In concurrent mode that means
  later alerting actions after a failed alerting action; independent actions each have their own worker and
  always run
- `dry_run` logs what would happen and performs no side effects
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from triage.actions.base import ALERTING_ACTION_TYPES, Action, ExecutionContext
from triage.core.docs import DocumentationMismatchError
from triage.core.errors import http_status
from triage.core.models import Cluster
from triage.core.notes import NoteWriter
from triage.executor.errors import ActionExecutionError, ActionValidationError, MultipleActionsError
from triage.logs import RunLogger, get_run_logger
from triage.providers.base import AlertingClient, InventoryClient, ReportClient

DEFAULT_MAX_RETRIES = 3
# Request timeout and rate limiting.
RETRYABLE_CLIENT_STATUSES = (408, 429)

# (seconds, cancel) -> True if cancelled while waiting
WaitFunc = Callable[[float, threading.Event], bool]


def _default_wait(seconds: float, cancel: threading.Event) -> bool:
    return cancel.wait(seconds)


def action_backoff(retry: int) -> float:
    """Seconds to wait before retry number `retry` (1-based): 1, 4, 9, ..."""
    return float(retry * retry)


@dataclass(frozen=True)
class ExecutionOptions:
    dry_run: bool = False
    stop_on_error: bool = False
    # None means DEFAULT_MAX_RETRIES.
    max_retries: Optional[int] = None
    concurrent: bool = False

    def retries(self) -> int:
        return DEFAULT_MAX_RETRIES if self.max_retries is None else max(0, int(self.max_retries))


@dataclass
class ExecutorInput:
    investigation_name: str
    actions: List[Action]
    cluster: Optional[Cluster] = None
    notes: Optional[NoteWriter] = None
    options: ExecutionOptions = field(default_factory=ExecutionOptions)


def _type_name(action: Action) -> str:
    t = getattr(action, "action_type", None)
    return str(getattr(t, "value", t) or type(action).__name__)


def _is_permanent(err: BaseException) -> bool:
    """Documentation mismatches and client-side HTTP errors (4xx other than 408/429) are never retried."""
    if isinstance(err, DocumentationMismatchError):
        return True
    status = http_status(err)
    return status is not None and 400 <= status < 500 and status not in RETRYABLE_CLIENT_STATUSES


class ActionExecutor:
    def __init__(
        self,
        *,
        inventory: Optional[InventoryClient] = None,
        alerting: Optional[AlertingClient] = None,
        reports: Optional[ReportClient] = None,
        logger: Optional[RunLogger] = None,
        wait: Optional[WaitFunc] = None,
    ) -> None:
        self.inventory = inventory
        self.alerting = alerting
        self.reports = reports
        self.logger = logger or get_run_logger()
        self._wait = wait or _default_wait

    def execute(self, executor_input: ExecutorInput, *, cancel: Optional[threading.Event] = None) -> None:
        """Run every action of `executor_input`. Raises ActionValidationError or MultipleActionsError."""
        actions = list(executor_input.actions or [])
        if not actions:
            self.logger.debug("No actions to execute")
            return

        opts = executor_input.options
        self.logger.info("Executing %d action(s) for %s", len(actions), executor_input.investigation_name)

        for i, action in enumerate(actions):
            try:
                action.validate()
            except Exception as e:
                raise ActionValidationError(_type_name(action), ValueError(f"action {i}: {e}")) from e

        ctx = ExecutionContext(
            investigation_name=executor_input.investigation_name,
            cluster=executor_input.cluster,
            inventory=self.inventory,
            alerting=self.alerting,
            reports=self.reports,
            notes=executor_input.notes,
            logger=self.logger,
            cancel=cancel if cancel is not None else threading.Event(),
        )

        if opts.concurrent:
            errors = self._execute_concurrent(actions, ctx, opts)
        else:
            errors = self._execute_sequential(list(enumerate(actions)), ctx, opts)
        if errors:
            raise MultipleActionsError(errors)

    def _execute_sequential(
        self,
        indexed: List[Tuple[int, Action]],
        ctx: ExecutionContext,
        opts: ExecutionOptions,
    ) -> List[ActionExecutionError]:
        errors: List[ActionExecutionError] = []
        for i, action in indexed:
            err = self._run_one(i, action, ctx, opts)
            if err is None:
                continue
            errors.append(err)
            if opts.stop_on_error:
                break
        return errors

    def _execute_concurrent(
        self,
        actions: List[Action],
        ctx: ExecutionContext,
        opts: ExecutionOptions,
    ) -> List[ActionExecutionError]:
        alerting = [(i, a) for i, a in enumerate(actions) if getattr(a, "action_type", None) in ALERTING_ACTION_TYPES]
        independent = [(i, a) for i, a in enumerate(actions) if getattr(a, "action_type", None) not in ALERTING_ACTION_TYPES]

        groups: List[List[Tuple[int, Action]]] = []
        if alerting:
            groups.append(alerting)
        groups.extend([[ia] for ia in independent])

        errors: List[ActionExecutionError] = []
        with ThreadPoolExecutor(max_workers=max(1, len(groups)), thread_name_prefix="action") as pool:
            futures = [pool.submit(self._execute_sequential, g, ctx, opts) for g in groups]
            for fut in futures:
                errors.extend(fut.result())
        return errors

    def _run_one(
        self,
        index: int,
        action: Action,
        ctx: ExecutionContext,
        opts: ExecutionOptions,
    ) -> Optional[ActionExecutionError]:
        atype = _type_name(action)
        logger = self.logger.bind(action_index=index, action_type=atype)
        if opts.dry_run:
            logger.info("DRY RUN: would execute action %s", atype)
            return None
        try:
            attempts = self._execute_with_retry(action, ctx.with_logger(logger), opts.retries())
        except _Exhausted as ex:
            logger.error("Action failed: %s", ex.err)
            return ActionExecutionError(atype, ex.attempts, ex.err, index=index)
        if attempts > 1:
            logger.info("Action %s succeeded on attempt %d", atype, attempts)
        else:
            logger.info("Action completed successfully")
        return None

    def _execute_with_retry(self, action: Action, ctx: ExecutionContext, max_retries: int) -> int:
        atype = _type_name(action)
        last: Optional[BaseException] = None
        for attempt in range(1, max_retries + 2):
            if attempt > 1:
                backoff = action_backoff(attempt - 1)
                ctx.logger.info("Retrying action %s after %.0fs (retry %d/%d)", atype, backoff, attempt - 1, max_retries)
                if self._wait(backoff, ctx.cancel):
                    raise _Exhausted(attempt - 1, RuntimeError(f"cancelled while retrying: {last}"))
            if ctx.cancel.is_set():
                raise _Exhausted(attempt - 1, RuntimeError("execution cancelled"))
            try:
                action.execute(ctx)
                return attempt
            except Exception as e:  # noqa: BLE001
                last = e
                if _is_permanent(e):
                    ctx.logger.warning("Action %s failed with non-retryable error: %s", atype, e)
                    raise _Exhausted(attempt, e) from e
                ctx.logger.warning("Action %s failed (attempt %d/%d): %s", atype, attempt, max_retries + 1, e)
        raise _Exhausted(max_retries + 1, last or RuntimeError("action failed"))


class _Exhausted(Exception):
    def __init__(self, attempts: int, err: BaseException) -> None:
        self.attempts = attempts
        self.err = err
        super().__init__(str(err))
