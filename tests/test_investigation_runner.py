from __future__ import annotations

from typing import Callable, List

import pytest

from triage.actions.builders import ResultBuilder, note, service_log
from triage.controller.runner import (
    EARLY_FAILURE_NOTE,
    FAILURE_NOTE,
    TITLE_PREFIX,
    ActionsFailedError,
    InvestigationFailedError,
    InvestigationRunner,
    RetryPolicy,
    calculate_backoff,
    run_with_retry,
)
from triage.core.errors import CloudAccessError, wrap_finding, wrap_infrastructure
from triage.executor import ExecutionOptions
from triage.investigations.base import BaseInvestigation, InvestigationResult


class _ScriptedInvestigation(BaseInvestigation):
    """Calls `body(rb)` on every run and counts the calls."""

    name = "scripted"
    description = "test investigation"
    alert_title = "Scripted"

    def __init__(self, body: Callable, requires_cloud_access: bool = False) -> None:
        self.body = body
        self.calls = 0
        self.requires_cloud_access = requires_cloud_access

    def run(self, rb) -> InvestigationResult:
        self.calls += 1
        return self.body(rb)


def _raise(err: BaseException):
    raise err


def _runner(inventory, credentials, provisioner, alerting, reports, sleeps: List[float], **kwargs) -> InvestigationRunner:
    kwargs.setdefault("retry", RetryPolicy(max_retries=3, initial_backoff=1.0, max_backoff=10.0))
    return InvestigationRunner(
        inventory=inventory,
        credentials=credentials,
        provisioner=provisioner,
        reports=reports,
        alerting=alerting,
        sleep=sleeps.append,
        action_wait=lambda seconds, cancel: False,
        **kwargs,
    )


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def runner(inventory, credentials, provisioner, alerting, reports, sleeps) -> InvestigationRunner:
    return _runner(inventory, credentials, provisioner, alerting, reports, sleeps)


def test_calculate_backoff_doubles_and_caps() -> None:
    assert [calculate_backoff(a, 1.0, 10.0) for a in range(1, 6)] == [1.0, 2.0, 4.0, 8.0, 10.0]
    assert calculate_backoff(3, 0.5, 1.5) == 1.5


def test_infrastructure_errors_are_retried_until_attempts_run_out(runner, alerting, sleeps) -> None:
    def body(rb):
        rb.with_notes().build()
        raise wrap_infrastructure(TimeoutError("api timed out"), "listing nodes")

    inv = _ScriptedInvestigation(body)

    with pytest.raises(InvestigationFailedError) as exc:
        runner.run_investigation("abc123", inv)

    assert inv.calls == 4
    assert exc.value.attempts == 4
    assert sleeps == [1.0, 2.0, 4.0]

    assert alerting.names() == ["escalate_with_note"]
    text = alerting.calls[0][1]
    assert FAILURE_NOTE in text
    assert "Automated scripted pre-investigation" in text


def test_finding_errors_are_not_retried(runner, sleeps) -> None:
    inv = _ScriptedInvestigation(lambda rb: _raise(wrap_finding(ValueError("bad config"))))

    with pytest.raises(InvestigationFailedError) as exc:
        runner.run_investigation("abc123", inv)

    assert inv.calls == 1
    assert exc.value.attempts == 1
    assert sleeps == []


def test_unclassified_errors_are_not_retried(make_builder, sleeps) -> None:
    inv = _ScriptedInvestigation(lambda rb: _raise(KeyError("bug")))

    with pytest.raises(InvestigationFailedError):
        run_with_retry(inv, make_builder(), RetryPolicy(max_retries=5), sleeps.append)

    assert inv.calls == 1


def test_retry_recovers_after_transient_failure(make_builder, sleeps) -> None:
    outcomes = [wrap_infrastructure(ConnectionError("reset")), None]

    def body(rb):
        err = outcomes.pop(0)
        if err is not None:
            raise err
        return InvestigationResult()

    inv = _ScriptedInvestigation(body)
    result, attempts = run_with_retry(inv, make_builder(), RetryPolicy(max_retries=3), sleeps.append)

    assert attempts == 2
    assert result.actions == []
    assert sleeps == [1.0]


def test_zero_retries_means_one_attempt(make_builder, sleeps) -> None:
    inv = _ScriptedInvestigation(lambda rb: _raise(wrap_infrastructure(TimeoutError("t"))))

    with pytest.raises(InvestigationFailedError):
        run_with_retry(inv, make_builder(), RetryPolicy(max_retries=0), sleeps.append)

    assert inv.calls == 1
    assert sleeps == []


def test_escalate_only_result_updates_title_without_retry_or_releases(runner, alerting, provisioner, sleeps) -> None:
    inv = _ScriptedInvestigation(lambda rb: ResultBuilder().add_note("needs a human").escalate("manual").build())

    runner.run_investigation("abc123", inv)

    assert inv.calls == 1
    assert sleeps == []
    assert provisioner.released == []
    assert alerting.names() == ["add_note", "escalate", "update_title"]
    assert alerting.title == f"{TITLE_PREFIX} RestartControlPlane CRITICAL (1)"


def test_success_releases_grants_exactly_once(runner, provisioner, alerting) -> None:
    def body(rb):
        rb.with_api_access().build()
        return InvestigationResult(actions=[note("done")])

    runner.run_investigation("abc123", _ScriptedInvestigation(body))

    assert provisioner.released == ["grant-1"]
    assert "escalate_with_note" not in alerting.names()


def test_failure_still_releases_grants_exactly_once(runner, provisioner) -> None:
    def body(rb):
        rb.with_api_access().build()
        raise wrap_infrastructure(TimeoutError("t"))

    with pytest.raises(InvestigationFailedError):
        runner.run_investigation("abc123", _ScriptedInvestigation(body))

    # Grants are memoized across attempts.
    assert len(provisioner.provisioned) == 1
    assert provisioner.released == ["grant-1"]


def test_release_failure_is_only_logged(runner, provisioner) -> None:
    provisioner.release_error = RuntimeError("delete failed")

    def body(rb):
        rb.with_api_access().build()
        return InvestigationResult()

    runner.run_investigation("abc123", _ScriptedInvestigation(body))

    assert provisioner.released == ["grant-1"]


def test_precheck_actions_end_the_run(runner, inventory, alerting, provisioner) -> None:
    inventory.access_protected = True
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult())

    runner.run_investigation("abc123", inv)

    assert inv.calls == 0
    assert alerting.names() == ["add_note", "escalate"]
    assert provisioner.released == []


def test_uninstalling_cluster_is_silenced_by_precheck(runner, inventory, alerting, cluster_factory) -> None:
    inventory.cluster = cluster_factory(state="uninstalling")
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult())

    runner.run_investigation("abc123", inv)

    assert inv.calls == 0
    assert alerting.names() == ["add_note", "silence"]


def test_missing_credentials_do_not_stop_strategies_that_do_not_need_them(
    runner, credentials, inventory, alerting
) -> None:
    credentials.error = RuntimeError("could not assume support role in customer's account: AccessDenied: denied")
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult(actions=[note("strategy ran")]))

    runner.run_investigation("abc123", inv)

    assert inv.calls == 1
    assert inventory.limited_support[0][0] == "Restore missing cloud credentials"
    names = alerting.names()
    assert names.index("silence") < names.index("update_title")
    assert ("add_note", "strategy ran") in alerting.calls


def test_missing_credentials_stop_strategies_that_need_them(runner, credentials, alerting) -> None:
    credentials.error = RuntimeError("could not assume support role in customer's account: AccessDenied: denied")
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult(), requires_cloud_access=True)

    runner.run_investigation("abc123", inv)

    assert inv.calls == 0
    assert alerting.names() == ["add_note", "silence"]


def test_unexpected_access_check_failure_escalates_early(runner, credentials, alerting, provisioner) -> None:
    credentials.error = RuntimeError("sts endpoint unreachable")
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult())

    with pytest.raises(CloudAccessError):
        runner.run_investigation("abc123", inv)

    assert inv.calls == 0
    assert alerting.calls == [("escalate_with_note", EARLY_FAILURE_NOTE)]
    assert provisioner.released == []


def test_documentation_mismatch_gets_tailored_escalation(runner, alerting, inventory) -> None:
    def body(rb):
        rb.with_notes().build()
        return InvestigationResult(
            actions=[
                service_log(
                    "Warning",
                    "Firewall blocks egress",
                    "See https://docs.openshift.com/dedicated/networking/firewall.html",
                )
            ]
        )

    with pytest.raises(ActionsFailedError):
        runner.run_investigation("abc123", _ScriptedInvestigation(body))

    assert inventory.service_logs == []
    assert alerting.names() == ["escalate_with_note"]
    text = alerting.calls[0][1]
    assert "Please send the correct documentation" in text
    assert FAILURE_NOTE not in text


def test_escalation_failure_does_not_mask_the_investigation_error(runner, alerting) -> None:
    alerting.errors["escalate_with_note"] = RuntimeError("pagerduty down")
    inv = _ScriptedInvestigation(lambda rb: _raise(wrap_finding(ValueError("x"))))

    with pytest.raises(InvestigationFailedError):
        runner.run_investigation("abc123", inv)

    assert alerting.names() == ["escalate_with_note"]


def test_sequential_actions_keep_result_order(inventory, credentials, provisioner, alerting, reports, sleeps) -> None:
    runner = _runner(
        inventory, credentials, provisioner, alerting, reports, sleeps, options=ExecutionOptions(concurrent=False)
    )
    inv = _ScriptedInvestigation(lambda rb: ResultBuilder().add_note("one").silence().add_note("two").build())

    runner.run_investigation("abc123", inv)

    assert alerting.calls[:3] == [("add_note", "one"), ("silence", None), ("add_note", "two")]


def test_strategies_without_cloud_needs_run_when_no_credential_broker_is_configured(
    inventory, provisioner, alerting, reports, sleeps
) -> None:
    runner = _runner(inventory, None, provisioner, alerting, reports, sleeps)

    def body(rb):
        rb.with_api_access().build()
        return InvestigationResult(actions=[note("api only")])

    inv = _ScriptedInvestigation(body)
    runner.run_investigation("abc123", inv)

    assert inv.calls == 1
    assert ("add_note", "api only") in alerting.calls
    assert "escalate_with_note" not in alerting.names()
    assert provisioner.released == ["grant-1"]


def test_cloud_strategies_are_skipped_when_no_credential_broker_is_configured(
    inventory, provisioner, alerting, reports, sleeps
) -> None:
    runner = _runner(inventory, None, provisioner, alerting, reports, sleeps)
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult(), requires_cloud_access=True)

    runner.run_investigation("abc123", inv)

    assert inv.calls == 0
    assert alerting.calls == []


@pytest.fixture
def builder_with_grant(make_builder, provisioner):
    rb = make_builder()
    rb.with_api_access().build()
    assert provisioner.provisioned == [("abc123", "test-investigation", False)]
    return rb


def test_precheck_stop_releases_prebuilt_grants(runner, inventory, provisioner, builder_with_grant) -> None:
    inventory.access_protected = True
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult())

    runner.run_investigation("abc123", inv, builder=builder_with_grant)

    assert inv.calls == 0
    assert provisioner.released == ["grant-1"]


def test_missing_credentials_stop_releases_prebuilt_grants(
    runner, credentials, alerting, provisioner, builder_with_grant
) -> None:
    credentials.error = RuntimeError("could not assume support role in customer's account: AccessDenied: denied")
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult(), requires_cloud_access=True)

    runner.run_investigation("abc123", inv, builder=builder_with_grant)

    assert inv.calls == 0
    assert alerting.names() == ["add_note", "silence"]
    assert provisioner.released == ["grant-1"]


def test_unexpected_access_check_failure_releases_prebuilt_grants(
    runner, credentials, alerting, provisioner, builder_with_grant
) -> None:
    credentials.error = RuntimeError("sts endpoint unreachable")
    inv = _ScriptedInvestigation(lambda rb: InvestigationResult())

    with pytest.raises(CloudAccessError):
        runner.run_investigation("abc123", inv, builder=builder_with_grant)

    assert inv.calls == 0
    assert alerting.names() == ["escalate_with_note"]
    assert provisioner.released == ["grant-1"]
