"""Error taxonomy shared by the builder, the strategies and the runner.

Three families:
- resource construction errors (one per capability, raised by the builder, never retried there)
- infrastructure errors (transient backing-system faults, retried by the runner)
- finding errors (conclusive outcomes, never retried)

Anything else is treated as an unclassified bug by the runner.
"""

from __future__ import annotations

from typing import Optional


class TriageError(Exception):
    """Base class for every error raised by this package."""


class ConfigError(TriageError):
    pass


class InfrastructureError(TriageError):
    """A transient failure of a backing system (timeouts, throttling, 5xx)."""

    def __init__(self, err: BaseException, context: str = "") -> None:
        self.err = err
        self.context = context
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.context:
            return f"infrastructure error ({self.context}): {self.err}"
        return f"infrastructure error: {self.err}"


class FindingError(TriageError):
    """A conclusive investigation outcome (missing data, customer misconfiguration)."""

    def __init__(self, err: BaseException, context: str = "") -> None:
        self.err = err
        self.context = context
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.context:
            return f"investigation finding ({self.context}): {self.err}"
        return f"investigation finding: {self.err}"


def wrap_infrastructure(err: Optional[BaseException], context: str = "") -> Optional[InfrastructureError]:
    if err is None:
        return None
    wrapped = InfrastructureError(err, context)
    wrapped.__cause__ = err
    return wrapped


def wrap_finding(err: Optional[BaseException], context: str = "") -> Optional[FindingError]:
    if err is None:
        return None
    wrapped = FindingError(err, context)
    wrapped.__cause__ = err
    return wrapped


def _chain(err: Optional[BaseException]):
    seen = set()
    while err is not None and id(err) not in seen:
        seen.add(id(err))
        yield err
        nxt = err.__cause__
        if nxt is None and isinstance(err, (InfrastructureError, FindingError, ResourceBuildError)):
            nxt = err.err
        err = nxt


def find_in_chain(err: Optional[BaseException], kind: type) -> Optional[BaseException]:
    """Return the first error of type `kind` in the cause chain of `err`, if any."""
    for e in _chain(err):
        if isinstance(e, kind):
            return e
    return None


def is_infrastructure_error(err: Optional[BaseException]) -> bool:
    # The outermost classification wins so an error is never both.
    for e in _chain(err):
        if isinstance(e, FindingError):
            return False
        if isinstance(e, InfrastructureError):
            return True
    return False


def is_finding_error(err: Optional[BaseException]) -> bool:
    for e in _chain(err):
        if isinstance(e, InfrastructureError):
            return False
        if isinstance(e, FindingError):
            return True
    return False


class ResourceBuildError(TriageError):
    """Base class for capability construction failures. Always carries the cluster id and the cause."""

    what = "build resource"

    def __init__(self, cluster_id: str, err: BaseException) -> None:
        self.cluster_id = cluster_id
        self.err = err
        super().__init__(str(self))
        self.__cause__ = err

    def __str__(self) -> str:
        return f"could not {self.what} for {self.cluster_id}: {self.err}"


class ClusterNotFoundError(ResourceBuildError):
    what = "retrieve cluster info"


class ClusterDeploymentNotFoundError(ResourceBuildError):
    what = "retrieve cluster deployment"


class CloudAccessError(ResourceBuildError):
    what = "retrieve cloud credentials"


class ApiAccessError(ResourceBuildError):
    what = "create scoped api access"


class CliAccessError(ResourceBuildError):
    what = "create cli access"


class ManagementClusterNotFoundError(ResourceBuildError):
    what = "retrieve management cluster for HCP cluster"


class ManagementApiAccessError(ResourceBuildError):
    """Scoped access to the management cluster of an HCP cluster failed."""

    def __init__(self, cluster_id: str, management_cluster_id: str, err: BaseException) -> None:
        self.management_cluster_id = management_cluster_id
        super().__init__(cluster_id, err)

    def __str__(self) -> str:
        return (
            f"could not create scoped api access for management cluster {self.management_cluster_id} "
            f"(HCP cluster: {self.cluster_id}): {self.err}"
        )


def http_status(err: Optional[BaseException]) -> Optional[int]:
    """HTTP status code of the first error in the cause chain that carries one."""
    for e in _chain(err):
        status = getattr(e, "status_code", None)
        if status is None:
            status = getattr(getattr(e, "response", None), "status_code", None)
        if isinstance(status, int):
            return status
    return None
