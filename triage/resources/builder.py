"""Lazy, memoized construction of the capabilities an investigation needs.

Contract:
- strategies declare what they need (`rb.with_cluster().with_api_access()`) and call `build()`
- each capability is built at most once per run; later `build()` calls only add what is new
- the first failure is wrapped in its capability error, cached, and re-raised on every later `build()`
  without touching collaborators again
- release functions of ephemeral grants are attached to `Resources`; the builder never calls them
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

import yaml

from triage.core.errors import (
    ApiAccessError,
    CliAccessError,
    CloudAccessError,
    ClusterDeploymentNotFoundError,
    ClusterNotFoundError,
    ManagementApiAccessError,
    ManagementClusterNotFoundError,
    ResourceBuildError,
)
from triage.core.models import ApiAccess, CliAccess, CloudAccess, Cluster, ClusterDeployment, ManagementInfo
from triage.core.notes import NoteWriter
from triage.logs import RunLogger, get_run_logger
from triage.providers.base import (
    AccessProvisioner,
    AlertingClient,
    CredentialBroker,
    InventoryClient,
    ReleaseFunc,
    ReportClient,
)


@dataclass(frozen=True)
class BuildRequest:
    """What a run has asked for so far. `closure()` adds transitive prerequisites."""

    cluster: bool = False
    cluster_deployment: bool = False
    cloud_access: bool = False
    api_access: bool = False
    cli_access: bool = False
    management_api_access: bool = False
    notes: bool = False

    def closure(self) -> "BuildRequest":
        api = self.api_access or self.cli_access
        cluster = self.cluster or api or self.cloud_access or self.cluster_deployment or self.management_api_access
        return replace(self, cluster=cluster, api_access=api)

    def merge(self, other: "BuildRequest") -> "BuildRequest":
        return BuildRequest(**{k: getattr(self, k) or getattr(other, k) for k in self.__dataclass_fields__})


@dataclass
class Resources:
    """Capability bag owned by exactly one run. Populated incrementally by the builder."""

    name: str
    cluster_id: str
    inventory: InventoryClient
    logger: RunLogger
    alerting: Optional[AlertingClient] = None
    reports: Optional[ReportClient] = None

    cluster: Optional[Cluster] = None
    cluster_deployment: Optional[ClusterDeployment] = None
    cloud_access: Optional[CloudAccess] = None
    api_access: Optional[ApiAccess] = None
    api_release: Optional[ReleaseFunc] = field(default=None, repr=False)
    cli_access: Optional[CliAccess] = None
    cli_release: Optional[ReleaseFunc] = field(default=None, repr=False)
    notes: Optional[NoteWriter] = None

    # Hosted control plane topology
    is_hcp: bool = False
    management: Optional[ManagementInfo] = None
    management_api_access: Optional[ApiAccess] = None
    management_api_release: Optional[ReleaseFunc] = field(default=None, repr=False)

    # Names of capabilities already resolved (including "checked, not applicable").
    built: set = field(default_factory=set, repr=False)

    def pending_releases(self) -> List[Tuple[str, ReleaseFunc]]:
        """Release functions of ephemeral grants that were actually constructed, in reverse build order."""
        out: List[Tuple[str, ReleaseFunc]] = []
        if self.cli_release is not None:
            out.append(("cli access", self.cli_release))
        if self.api_release is not None:
            out.append(("cluster api access", self.api_release))
        if self.management_api_release is not None:
            out.append(("management cluster api access", self.management_api_release))
        return out

    def release_all(self) -> List[Tuple[str, BaseException]]:
        """
        Invoke every pending release function exactly once.

        Returns (label, error) pairs for releases that failed; never raises.
        """
        failures: List[Tuple[str, BaseException]] = []
        for label, fn in self.pending_releases():
            # Detach before calling so a second cleanup pass cannot release twice.
            if label == "cli access":
                self.cli_release = None
            elif label == "cluster api access":
                self.api_release = None
            else:
                self.management_api_release = None
            self.logger.info("Releasing %s", label)
            try:
                fn()
            except Exception as e:  # noqa: BLE001
                failures.append((label, e))
        return failures


@dataclass(frozen=True)
class BuildDeps:
    inventory: InventoryClient
    credentials: Optional[CredentialBroker] = None
    provisioner: Optional[AccessProvisioner] = None


def write_kubeconfig(access: ApiAccess, directory: Optional[str] = None) -> Tuple[str, ReleaseFunc]:
    """Write a kubeconfig for `access` to a private temp file. Returns (path, remove_fn)."""
    name = f"triage-{access.cluster_id}"
    doc = {
        "apiVersion": "v1",
        "kind": "Config",
        "clusters": [{"name": name, "cluster": {"server": access.host}}],
        "users": [{"name": name, "user": {"token": access.bearer_token}}],
        "contexts": [{"name": name, "context": {"cluster": name, "user": name}}],
        "current-context": name,
    }
    fd, path = tempfile.mkstemp(prefix="kubeconfig-", suffix=".yaml", dir=directory)
    with os.fdopen(fd, "w", encoding="utf-8") as f:
        yaml.safe_dump(doc, f, sort_keys=False)

    def _remove() -> None:
        try:
            os.remove(path)
        except FileNotFoundError:
            return

    return path, _remove


# --- build steps -----------------------------------------------------------------------------------
#
# Each step: (capability name, is_requested(request), build(resources, deps)).
# Steps run in this order; a step that raises stops the resolution.

BuildFunc = Callable[[Resources, BuildDeps], None]


def _require_cluster(r: Resources, err_cls: type) -> Cluster:
    if r.cluster is None:
        raise err_cls(r.cluster_id, RuntimeError("cluster identity is not available"))
    return r.cluster


def _build_notes(r: Resources, _deps: BuildDeps) -> None:
    r.notes = NoteWriter(r.name, r.logger)


def _build_cluster(r: Resources, deps: BuildDeps) -> None:
    try:
        r.cluster = deps.inventory.get_cluster(r.cluster_id)
    except Exception as e:
        raise ClusterNotFoundError(r.cluster_id, e) from e


def _build_cloud_access(r: Resources, deps: BuildDeps) -> None:
    cluster = _require_cluster(r, CloudAccessError)
    if deps.credentials is None:
        raise CloudAccessError(r.cluster_id, RuntimeError("no credential broker configured"))
    try:
        r.cloud_access = deps.credentials.acquire_tenant_credentials(cluster)
    except Exception as e:
        raise CloudAccessError(r.cluster_id, e) from e


def _build_api_access(r: Resources, deps: BuildDeps) -> None:
    cluster = _require_cluster(r, ApiAccessError)
    if deps.provisioner is None:
        raise ApiAccessError(r.cluster_id, RuntimeError("no access provisioner configured"))
    try:
        access, release = deps.provisioner.provision(cluster.id, r.name, management=False)
    except Exception as e:
        raise ApiAccessError(r.cluster_id, e) from e
    r.api_access = access
    r.api_release = release


def _build_cli_access(r: Resources, _deps: BuildDeps) -> None:
    if r.api_access is None:
        raise CliAccessError(r.cluster_id, RuntimeError("cluster api access is not available"))
    try:
        path, remove = write_kubeconfig(r.api_access)
    except Exception as e:
        raise CliAccessError(r.cluster_id, e) from e
    r.cli_access = CliAccess(cluster_id=r.cluster_id, kubeconfig_path=path)
    r.cli_release = remove


def _build_cluster_deployment(r: Resources, deps: BuildDeps) -> None:
    cluster = _require_cluster(r, ClusterDeploymentNotFoundError)
    try:
        r.cluster_deployment = deps.inventory.get_cluster_deployment(cluster.id)
    except Exception as e:
        raise ClusterDeploymentNotFoundError(r.cluster_id, e) from e


def _build_management_api_access(r: Resources, deps: BuildDeps) -> None:
    cluster = _require_cluster(r, ManagementClusterNotFoundError)
    r.is_hcp = bool(cluster.hypershift)
    if not r.is_hcp:
        r.logger.debug("Cluster is not a hosted control plane cluster; skipping management access")
        return

    if r.management is None:
        try:
            r.management = deps.inventory.get_management_topology(cluster)
        except Exception as e:
            raise ManagementClusterNotFoundError(r.cluster_id, e) from e

    mc_id = r.management.management_cluster_id
    if deps.provisioner is None:
        raise ManagementApiAccessError(r.cluster_id, mc_id, RuntimeError("no access provisioner configured"))
    try:
        access, release = deps.provisioner.provision(mc_id, r.name, management=True)
    except Exception as e:
        raise ManagementApiAccessError(r.cluster_id, mc_id, e) from e
    r.management_api_access = access
    r.management_api_release = release


BUILD_STEPS: Tuple[Tuple[str, Callable[[BuildRequest], bool], BuildFunc], ...] = (
    ("notes", lambda q: q.notes, _build_notes),
    ("cluster", lambda q: q.cluster, _build_cluster),
    ("cloud_access", lambda q: q.cloud_access, _build_cloud_access),
    ("api_access", lambda q: q.api_access, _build_api_access),
    ("cli_access", lambda q: q.cli_access, _build_cli_access),
    ("cluster_deployment", lambda q: q.cluster_deployment, _build_cluster_deployment),
    ("management_api_access", lambda q: q.management_api_access, _build_management_api_access),
)


def resolve_resources(request: BuildRequest, resources: Resources, deps: BuildDeps, steps=None) -> Resources:
    """
    Build every requested capability not yet present on `resources`, in dependency order.

    Raises the capability-specific ResourceBuildError on the first failure. Never retries.
    """
    req = request.closure()
    for name, wanted, build in steps if steps is not None else BUILD_STEPS:
        if not wanted(req) or name in resources.built:
            continue
        resources.logger.debug("Building %s", name)
        try:
            build(resources, deps)
        except ResourceBuildError:
            raise
        except Exception as e:
            # Unclassified step failure.
            raise ResourceBuildError(resources.cluster_id, e) from e
        resources.built.add(name)
    return resources


class ResourceBuilder:
    """Fluent capability declaration for one run. See module docstring for the caching contract."""

    def __init__(
        self,
        *,
        cluster_id: str,
        name: str,
        inventory: InventoryClient,
        credentials: Optional[CredentialBroker] = None,
        provisioner: Optional[AccessProvisioner] = None,
        alerting: Optional[AlertingClient] = None,
        reports: Optional[ReportClient] = None,
        logger: Optional[RunLogger] = None,
    ) -> None:
        if not cluster_id:
            raise ValueError("cluster_id is required")
        self._deps = BuildDeps(inventory=inventory, credentials=credentials, provisioner=provisioner)
        self._request = BuildRequest()
        self._failed: Optional[ResourceBuildError] = None
        self._resources = Resources(
            name=name,
            cluster_id=cluster_id,
            inventory=inventory,
            logger=logger or get_run_logger(cluster_id=cluster_id, pipeline=name),
            alerting=alerting,
            reports=reports,
        )
        # Overridable in tests.
        self.steps = BUILD_STEPS

    def _want(self, **flags: bool) -> "ResourceBuilder":
        self._request = self._request.merge(BuildRequest(**flags))
        return self

    def with_cluster(self) -> "ResourceBuilder":
        return self._want(cluster=True)

    def with_cluster_deployment(self) -> "ResourceBuilder":
        return self._want(cluster_deployment=True)

    def with_cloud_access(self) -> "ResourceBuilder":
        return self._want(cloud_access=True)

    def with_api_access(self) -> "ResourceBuilder":
        return self._want(api_access=True)

    def with_cli_access(self) -> "ResourceBuilder":
        return self._want(cli_access=True)

    def with_management_api_access(self) -> "ResourceBuilder":
        return self._want(management_api_access=True)

    def with_notes(self) -> "ResourceBuilder":
        return self._want(notes=True)

    def with_alerting_client(self, client: AlertingClient) -> "ResourceBuilder":
        self._resources.alerting = client
        return self

    @property
    def request(self) -> BuildRequest:
        return self._request

    @property
    def resources(self) -> Resources:
        """Whatever has been built so far (possibly partial). Never raises."""
        return self._resources

    @property
    def error(self) -> Optional[ResourceBuildError]:
        return self._failed

    @property
    def has_credential_broker(self) -> bool:
        return self._deps.credentials is not None

    def build(self) -> Resources:
        if self._failed is not None:
            raise self._failed
        try:
            resolve_resources(self._request, self._resources, self._deps, steps=self.steps)
        except ResourceBuildError as e:
            self._failed = e
            raise
        return self._resources

    def try_build(self) -> Tuple[Resources, Optional[ResourceBuildError]]:
        """Like build(), but returns (resources, error) instead of raising."""
        try:
            return self.build(), None
        except ResourceBuildError as e:
            return self._resources, e

    def fork(self) -> "ResourceBuilder":
        """
        A builder seeded with everything built so far, with its own request and failure cache.

        Used for optional capabilities whose failure must not poison this builder. Release functions stay
        with this builder; call `absorb()` afterwards to take over whatever the fork built.
        """
        child = ResourceBuilder.__new__(ResourceBuilder)
        child._deps = self._deps
        child._request = BuildRequest()
        child._failed = None
        child._resources = replace(
            self._resources,
            api_release=None,
            cli_release=None,
            management_api_release=None,
            built=set(self._resources.built),
        )
        child.steps = self.steps
        return child

    def absorb(self, child: "ResourceBuilder") -> "ResourceBuilder":
        """Adopt capabilities (and release ownership) that `child` built and this builder lacks."""
        mine, theirs = self._resources, child._resources
        for name in theirs.built - mine.built:
            if name == "api_access":
                mine.api_access, mine.api_release = theirs.api_access, theirs.api_release
                theirs.api_release = None
            elif name == "cli_access":
                mine.cli_access, mine.cli_release = theirs.cli_access, theirs.cli_release
                theirs.cli_release = None
            elif name == "management_api_access":
                mine.is_hcp, mine.management = theirs.is_hcp, theirs.management
                mine.management_api_access = theirs.management_api_access
                mine.management_api_release = theirs.management_api_release
                theirs.management_api_release = None
            else:
                setattr(mine, name, getattr(theirs, name))
            mine.built.add(name)
        if child._failed is None:
            self._request = self._request.merge(child._request.closure())
        return self

    def describe(self) -> Dict[str, Any]:
        return {
            "cluster_id": self._resources.cluster_id,
            "name": self._resources.name,
            "requested": {k: v for k, v in vars(self._request).items() if v},
            "built": sorted(self._resources.built),
            "failed": str(self._failed) if self._failed else None,
        }
