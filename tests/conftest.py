"""
Pytest config.

Local imports like `import triage` rely on the repo root being on sys.path; when a global `pytest` entrypoint
is used that doesn't happen reliably during collection, so it is pinned here.

Collaborators are hand-written fakes that record every call; tests assert on `calls`.
"""

from __future__ import annotations

import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

from triage.core.models import ApiAccess, CloudAccess, Cluster, ClusterDeployment, ManagementInfo  # noqa: E402


def make_cluster(**overrides: Any) -> Cluster:
    fields: Dict[str, Any] = {
        "id": "abc123",
        "external_id": "ext-abc123",
        "name": "demo",
        "state": "ready",
        "cloud_provider": "aws",
        "product": "rosa",
        "region": "us-east-1",
        "hypershift": False,
        "domain_prefix": "demo",
    }
    fields.update(overrides)
    return Cluster(**fields)


class FakeInventory:
    def __init__(self, cluster: Optional[Cluster] = None) -> None:
        self.cluster = cluster or make_cluster()
        self.calls: List[Tuple[str, Any]] = []
        self.errors: Dict[str, BaseException] = {}
        self.access_protected = False
        self.existing_service_logs: List[str] = []
        self.service_logs: List[Dict[str, Any]] = []
        self.limited_support: List[Tuple[str, str]] = []
        self.topology = ManagementInfo(
            management_cluster_id="mc-1",
            management_cluster_name="mc-one",
            hosted_control_plane_namespace="ocm-production-abc123-demo",
            hosted_cluster_namespace="ocm-production-abc123",
        )
        self._lock = threading.Lock()

    def _record(self, name: str, arg: Any) -> None:
        with self._lock:
            self.calls.append((name, arg))
        if name in self.errors:
            raise self.errors[name]

    def count(self, name: str) -> int:
        return sum(1 for n, _ in self.calls if n == name)

    def get_cluster(self, cluster_id: str) -> Cluster:
        self._record("get_cluster", cluster_id)
        return self.cluster

    def get_cluster_deployment(self, cluster_id: str) -> ClusterDeployment:
        self._record("get_cluster_deployment", cluster_id)
        return ClusterDeployment(name=f"cd-{cluster_id}", namespace="uhc-production", installed=True)

    def get_management_topology(self, cluster: Cluster) -> ManagementInfo:
        self._record("get_management_topology", cluster.id)
        return self.topology

    def is_access_protected(self, cluster: Cluster) -> bool:
        self._record("is_access_protected", cluster.id)
        return self.access_protected

    def post_service_log(self, cluster: Cluster, **kwargs: Any) -> None:
        self._record("post_service_log", kwargs.get("summary"))
        self.service_logs.append(kwargs)

    def has_service_log(self, cluster: Cluster, summary: str) -> bool:
        self._record("has_service_log", summary)
        return summary in self.existing_service_logs

    def post_limited_support_reason(self, cluster: Cluster, *, summary: str, details: str) -> None:
        self._record("post_limited_support_reason", summary)
        self.limited_support.append((summary, details))


class FakeCredentials:
    def __init__(self, error: Optional[BaseException] = None) -> None:
        self.error = error
        self.calls: List[str] = []

    def acquire_tenant_credentials(self, cluster: Cluster) -> CloudAccess:
        self.calls.append(cluster.id)
        if self.error is not None:
            raise self.error
        return CloudAccess(region=cluster.region, role_arn="arn:aws:iam::123456789012:role/support")


class FakeProvisioner:
    def __init__(self, error: Optional[BaseException] = None, release_error: Optional[BaseException] = None) -> None:
        self.error = error
        self.release_error = release_error
        self.provisioned: List[Tuple[str, str, bool]] = []
        self.released: List[str] = []

    def provision(self, cluster_id: str, scope_name: str, *, management: bool = False):
        self.provisioned.append((cluster_id, scope_name, management))
        if self.error is not None:
            raise self.error
        grant_id = f"grant-{len(self.provisioned)}"
        access = ApiAccess(
            cluster_id=cluster_id,
            host=f"https://access.example.com/clusters/{cluster_id}",
            bearer_token="t0ken",
            grant_id=grant_id,
            management=management,
        )

        def release() -> None:
            self.released.append(grant_id)
            if self.release_error is not None:
                raise self.release_error

        return access, release


class FakeAlerting:
    def __init__(self, title: str = "RestartControlPlane CRITICAL (1)") -> None:
        self.title = title
        self.calls: List[Tuple[str, Any]] = []
        self.errors: Dict[str, BaseException] = {}
        self._lock = threading.Lock()

    def _record(self, name: str, arg: Any = None) -> None:
        with self._lock:
            self.calls.append((name, arg))
        if name in self.errors:
            raise self.errors[name]

    def names(self) -> List[str]:
        return [n for n, _ in self.calls]

    def escalate_with_note(self, text: str) -> None:
        self._record("escalate_with_note", text)

    def silence_with_note(self, text: str) -> None:
        self._record("silence_with_note", text)

    def add_note(self, text: str) -> None:
        self._record("add_note", text)

    def escalate(self) -> None:
        self._record("escalate")

    def silence(self) -> None:
        self._record("silence")

    def get_title(self) -> str:
        return self.title

    def update_title(self, title: str) -> None:
        self._record("update_title", title)
        self.title = title

    def get_cluster_reference(self) -> str:
        return "https://example.pagerduty.com/incidents/Q1"

    def retrieve_cluster_id(self) -> str:
        return "abc123"


class FakeReports:
    def __init__(self) -> None:
        self.created: List[Tuple[str, str, str]] = []

    def create_report(self, cluster_id: str, summary: str, data: str) -> str:
        self.created.append((cluster_id, summary, data))
        return f"report-{len(self.created)}"


class FakeResponse:
    def __init__(self, status_code: int = 200, json_body: Any = None, text: str = "") -> None:
        import json as _json

        self.status_code = status_code
        self._json = json_body
        self.text = text or ("" if json_body is None else _json.dumps(json_body))
        self.content = self.text.encode("utf-8")

    def json(self) -> Any:
        if self._json is None:
            raise ValueError("no json body")
        return self._json

    def raise_for_status(self) -> None:
        import requests

        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} error")


class FakeSession:
    """Stands in for requests.Session; responses are queued per (method, url-suffix)."""

    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}
        self.proxies: Dict[str, str] = {}
        self.requests: List[Dict[str, Any]] = []
        self.routes: List[Tuple[str, str, Any]] = []
        self.closed = False

    def add(self, method: str, suffix: str, response: Any) -> "FakeSession":
        self.routes.append((method.upper(), suffix, response))
        return self

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.requests.append({"method": method.upper(), "url": url, **kwargs})
        path = url.split("?", 1)[0]
        for m, suffix, response in self.routes:
            if m == method.upper() and path.endswith(suffix):
                if isinstance(response, list):
                    item = response.pop(0) if len(response) > 1 else response[0]
                else:
                    item = response
                if isinstance(item, BaseException):
                    raise item
                return item
        return FakeResponse(404, text="no route")

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("GET", url, **kwargs)

    def patch(self, url: str, **kwargs: Any) -> FakeResponse:
        return self.request("PATCH", url, **kwargs)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def cluster_factory():
    return make_cluster


@pytest.fixture
def inventory() -> FakeInventory:
    return FakeInventory()


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials()


@pytest.fixture
def provisioner() -> FakeProvisioner:
    return FakeProvisioner()


@pytest.fixture
def alerting() -> FakeAlerting:
    return FakeAlerting()


@pytest.fixture
def reports() -> FakeReports:
    return FakeReports()


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def make_builder(inventory, credentials, provisioner, alerting, reports):
    from triage.resources.builder import ResourceBuilder

    def _make(**overrides: Any) -> ResourceBuilder:
        kwargs: Dict[str, Any] = {
            "cluster_id": "abc123",
            "name": "test-investigation",
            "inventory": inventory,
            "credentials": credentials,
            "provisioner": provisioner,
            "alerting": alerting,
            "reports": reports,
        }
        kwargs.update(overrides)
        return ResourceBuilder(**kwargs)

    return _make
