"""Cluster inventory REST client (cluster descriptors, deployments, topology, service logs, limited support)."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import requests

from triage.core.models import Cluster, ClusterDeployment, ManagementInfo

logger = logging.getLogger(__name__)

CLUSTERS_API = "/api/clusters_mgmt/v1/clusters"
SERVICE_LOGS_API = "/api/service_logs/v1/cluster_logs"
ACCESS_PROTECTION_API = "/api/access_transparency/v1/access_protection"


class InventoryError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ClusterLookupError(InventoryError):
    pass


def _ref_id(value: Any) -> str:
    # Inventory references are either plain strings or {"id": ...} objects.
    if isinstance(value, dict):
        return str(value.get("id") or "")
    return str(value or "")


def cluster_from_api(doc: Dict[str, Any]) -> Cluster:
    hypershift = doc.get("hypershift") or {}
    sts = (doc.get("aws") or {}).get("sts") or {}
    return Cluster(
        support_role_arn=str(sts.get("support_role_arn") or ""),
        id=str(doc.get("id") or ""),
        external_id=str(doc.get("external_id") or ""),
        name=str(doc.get("name") or ""),
        state=str(doc.get("state") or ""),
        cloud_provider=_ref_id(doc.get("cloud_provider")),
        product=_ref_id(doc.get("product")),
        region=_ref_id(doc.get("region")),
        hypershift=bool(hypershift.get("enabled")) if isinstance(hypershift, dict) else bool(hypershift),
        domain_prefix=str(doc.get("domain_prefix") or ""),
    )


def cluster_deployment_from_api(doc: Dict[str, Any]) -> ClusterDeployment:
    meta = doc.get("metadata") or {}
    spec = doc.get("spec") or {}
    return ClusterDeployment(
        name=str(meta.get("name") or ""),
        namespace=str(meta.get("namespace") or ""),
        labels=dict(meta.get("labels") or {}),
        installed=bool(spec.get("installed")),
    )


class InventoryRestClient:
    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {token}", "Accept": "application/json"})

    def _request(self, method: str, path: str, *, allow_404: bool = False, **kwargs: Any) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise InventoryError(f"{method} {path} failed: {e}") from e
        if resp.status_code == 404 and allow_404:
            return None
        if resp.status_code >= 400:
            raise InventoryError(f"{method} {path} returned {resp.status_code}: {resp.text}", resp.status_code)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise InventoryError(f"{method} {path} returned invalid JSON: {e}") from e

    def _search_clusters(self, query: str) -> List[Dict[str, Any]]:
        doc = self._request("GET", CLUSTERS_API, params={"search": query, "size": 2}) or {}
        return list(doc.get("items") or [])

    # --- descriptors -----------------------------------------------------------------------------

    def get_cluster(self, cluster_id: str) -> Cluster:
        """Look up a cluster by internal id, falling back to external id."""
        doc = self._request("GET", f"{CLUSTERS_API}/{cluster_id}", allow_404=True)
        if doc is None:
            items = self._search_clusters(f"external_id = '{cluster_id}'")
            if not items:
                raise ClusterLookupError(f"no cluster found for id {cluster_id}")
            if len(items) > 1:
                raise ClusterLookupError(f"more than one cluster found for id {cluster_id}")
            doc = items[0]
        return cluster_from_api(doc)

    def get_cluster_deployment(self, cluster_id: str) -> ClusterDeployment:
        doc = self._request("GET", f"{CLUSTERS_API}/{cluster_id}/resources/live") or {}
        raw = (doc.get("resources") or {}).get("cluster_deployment")
        if not raw:
            raise InventoryError(f"cluster {cluster_id} has no cluster deployment resource")
        try:
            cd = json.loads(raw) if isinstance(raw, str) else raw
        except ValueError as e:
            raise InventoryError(f"could not decode cluster deployment of {cluster_id}: {e}") from e
        return cluster_deployment_from_api(cd)

    def get_management_topology(self, cluster: Cluster) -> ManagementInfo:
        doc = self._request("GET", f"{CLUSTERS_API}/{cluster.id}/hypershift") or {}
        mc_name = str(doc.get("management_cluster") or "")
        if not mc_name:
            raise InventoryError(f"cluster {cluster.id} has no management cluster")
        items = self._search_clusters(f"name = '{mc_name}'")
        if not items:
            raise ClusterLookupError(f"management cluster {mc_name} not found")

        hcp_namespace = str(doc.get("hcp_namespace") or "")
        hc_namespace = str(doc.get("hc_namespace") or "")
        suffix = f"-{cluster.domain_prefix}"
        if not hc_namespace and cluster.domain_prefix and hcp_namespace.endswith(suffix):
            hc_namespace = hcp_namespace[: -len(suffix)]
        return ManagementInfo(
            management_cluster_id=str(items[0].get("id") or ""),
            management_cluster_name=mc_name,
            hosted_control_plane_namespace=hcp_namespace,
            hosted_cluster_namespace=hc_namespace,
        )

    def is_access_protected(self, cluster: Cluster) -> bool:
        doc = self._request("GET", ACCESS_PROTECTION_API, params={"clusterId": cluster.id}) or {}
        return bool(doc.get("enabled"))

    # --- customer communication ------------------------------------------------------------------

    def post_service_log(
        self,
        cluster: Cluster,
        *,
        severity: str,
        summary: str,
        description: str,
        service_name: str,
        internal_only: bool,
    ) -> None:
        body = {
            "cluster_id": cluster.id,
            "cluster_uuid": cluster.external_id,
            "severity": severity,
            "service_name": service_name,
            "summary": summary,
            "description": description,
            "internal_only": internal_only,
        }
        logger.info("Posting service log for cluster %s: %s", cluster.id, summary)
        self._request("POST", SERVICE_LOGS_API, json=body)

    def has_service_log(self, cluster: Cluster, summary: str) -> bool:
        escaped = summary.replace("'", "''")
        doc = self._request(
            "GET",
            SERVICE_LOGS_API,
            params={"search": f"cluster_id = '{cluster.id}' and summary = '{escaped}'", "size": 1},
        ) or {}
        return bool(doc.get("items"))

    def post_limited_support_reason(self, cluster: Cluster, *, summary: str, details: str) -> None:
        logger.info("Posting limited support reason for cluster %s: %s", cluster.id, summary)
        self._request(
            "POST",
            f"{CLUSTERS_API}/{cluster.id}/limited_support_reasons",
            json={"summary": summary, "details": details, "detection_type": "manual"},
        )
