from __future__ import annotations

from datetime import datetime, timezone

import pytest
import requests

from triage.actions.base import ActionType
from triage.core.errors import FindingError, InfrastructureError
from triage.investigations.restartcontrolplane import RESTART_ANNOTATION, RestartControlPlane

HC_PATH = "/apis/hypershift.openshift.io/v1beta1/namespaces/ocm-production-abc123/hostedclusters/demo"


@pytest.fixture
def hcp_inventory(inventory, cluster_factory):
    inventory.cluster = cluster_factory(hypershift=True)
    return inventory


def _investigation(session) -> RestartControlPlane:
    return RestartControlPlane(
        session_factory=lambda: session,
        now=lambda: datetime(2024, 5, 1, 12, 30, 0, tzinfo=timezone.utc),
    )


def test_non_hcp_cluster_is_silenced_without_api_calls(make_builder, session, provisioner) -> None:
    result = _investigation(session).run(make_builder())

    assert [a.action_type for a in result.actions] == [ActionType.REPORT, ActionType.NOTE, ActionType.SILENCE]
    assert "not an HCP cluster" in result.actions[1].content
    assert session.requests == []
    assert provisioner.provisioned == []


def test_restart_patches_hosted_cluster(make_builder, hcp_inventory, session, fake_response, provisioner) -> None:
    session.add("GET", HC_PATH, fake_response(200, {"kind": "HostedCluster"}))
    session.add("PATCH", HC_PATH, fake_response(200, {"kind": "HostedCluster"}))

    result = _investigation(session).run(make_builder())

    get, patch = session.requests
    assert get["url"] == f"https://access.example.com/clusters/mc-1{HC_PATH}"
    assert patch["json"] == {"metadata": {"annotations": {RESTART_ANNOTATION: "2024-05-01T12:30:00Z"}}}
    assert patch["headers"]["Content-Type"] == "application/merge-patch+json"
    assert patch["headers"]["Authorization"] == "Bearer t0ken"
    assert session.closed is True
    assert provisioner.provisioned == [("mc-1", "test-investigation", True)]

    assert [a.action_type for a in result.actions] == [ActionType.NOTE]
    assert "Requested control plane restart" in result.actions[0].content


def test_api_failure_is_an_infrastructure_error(make_builder, hcp_inventory, session, fake_response) -> None:
    session.add("GET", HC_PATH, fake_response(200, {}))
    session.add("PATCH", HC_PATH, requests.exceptions.ConnectionError("reset"))

    with pytest.raises(InfrastructureError) as exc:
        _investigation(session).run(make_builder())

    assert "failed to update HostedCluster" in str(exc.value)
    assert session.closed is True


def test_missing_hosted_cluster_is_an_infrastructure_error(make_builder, hcp_inventory, session) -> None:
    # No route: the fake session answers 404.
    with pytest.raises(InfrastructureError) as exc:
        _investigation(session).run(make_builder())

    assert "failed to get HostedCluster" in str(exc.value)


def test_unknown_hosted_cluster_location_is_a_finding(make_builder, hcp_inventory, session) -> None:
    hcp_inventory.topology = hcp_inventory.topology.model_copy(update={"hosted_cluster_namespace": ""})

    with pytest.raises(FindingError):
        _investigation(session).run(make_builder())

    assert session.requests == []
