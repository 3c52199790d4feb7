"""Capability client contracts consumed by the builder, the runner and the actions.

Concrete implementations live next to this module; tests use hand-written fakes.
"""

from __future__ import annotations

from typing import Callable, Protocol, Tuple, runtime_checkable

from triage.core.models import ApiAccess, CloudAccess, Cluster, ClusterDeployment, ManagementInfo

ReleaseFunc = Callable[[], None]


@runtime_checkable
class AlertingClient(Protocol):
    def escalate_with_note(self, text: str) -> None: ...

    def silence_with_note(self, text: str) -> None: ...

    def add_note(self, text: str) -> None: ...

    def escalate(self) -> None: ...

    def silence(self) -> None: ...

    def get_title(self) -> str: ...

    def update_title(self, title: str) -> None: ...

    def get_cluster_reference(self) -> str: ...


@runtime_checkable
class InventoryClient(Protocol):
    def get_cluster(self, cluster_id: str) -> Cluster: ...

    def get_cluster_deployment(self, cluster_id: str) -> ClusterDeployment: ...

    def get_management_topology(self, cluster: Cluster) -> ManagementInfo: ...

    def is_access_protected(self, cluster: Cluster) -> bool: ...

    def post_service_log(
        self,
        cluster: Cluster,
        *,
        severity: str,
        summary: str,
        description: str,
        service_name: str,
        internal_only: bool,
    ) -> None: ...

    def has_service_log(self, cluster: Cluster, summary: str) -> bool: ...

    def post_limited_support_reason(self, cluster: Cluster, *, summary: str, details: str) -> None: ...


@runtime_checkable
class CredentialBroker(Protocol):
    def acquire_tenant_credentials(self, cluster: Cluster) -> CloudAccess: ...


@runtime_checkable
class AccessProvisioner(Protocol):
    def provision(self, cluster_id: str, scope_name: str, *, management: bool = False) -> Tuple[ApiAccess, ReleaseFunc]:
        """Create a time-boxed grant. The caller owns the returned release function."""
        ...


@runtime_checkable
class ReportClient(Protocol):
    def create_report(self, cluster_id: str, summary: str, data: str) -> str:
        """Create a cluster report and return its id."""
        ...

