"""Domain models for clusters and the capabilities built for one run.

Inventory payloads vary between environments, so descriptors keep unknown fields (`extra="allow"`).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

CLUSTER_STATE_READY = "ready"
CLUSTER_STATE_UNINSTALLING = "uninstalling"


class BaseModelAllowExtra(BaseModel):
    model_config = ConfigDict(extra="allow")


class BaseModelStrict(BaseModel):
    model_config = ConfigDict(extra="forbid")


class Cluster(BaseModelAllowExtra):
    # Immutable once fetched.
    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    external_id: str = ""
    name: str = ""
    state: str = ""
    cloud_provider: str = ""
    product: str = ""
    region: str = ""
    hypershift: bool = False
    domain_prefix: str = ""

    def is_aws(self) -> bool:
        return self.cloud_provider.strip().lower() == "aws"


class ClusterDeployment(BaseModelAllowExtra):
    name: str
    namespace: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    installed: bool = False


class ManagementInfo(BaseModelAllowExtra):
    management_cluster_id: str
    management_cluster_name: str = ""
    hosted_control_plane_namespace: str = ""
    # Namespace of the HostedCluster object on the management cluster.
    hosted_cluster_namespace: str = ""


class CloudAccess(BaseModel):
    """Tenant-scoped cloud credentials."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    region: str = ""
    role_arn: str = ""
    expiration: Optional[datetime] = None
    session: Any = None


class ApiAccess(BaseModelStrict):
    """Time-boxed, narrowly scoped access to a cluster API through the access proxy."""

    cluster_id: str
    host: str
    bearer_token: str = Field(default="", repr=False)
    grant_id: str = ""
    management: bool = False


class CliAccess(BaseModelStrict):
    """Kubeconfig written for CLI-style tooling, derived from an ApiAccess."""

    cluster_id: str
    kubeconfig_path: str


class InvestigationStep(BaseModelStrict):
    performed: bool = False
    labels: List[str] = Field(default_factory=list)
