"""Scoped cluster API access (time-boxed remediation grants) and cluster reports through the access API."""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, Optional, Tuple

import requests

from triage.core.models import ApiAccess
from triage.providers.base import ReleaseFunc

logger = logging.getLogger(__name__)

REMEDIATION_API = "/backplane/remediation"
REPORTS_API = "/backplane/reports"
MANAGING_CLUSTER_MANAGEMENT = "management"


class AccessProvisionError(RuntimeError):
    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AccessApiClient:
    """
    Client for the access API.

    `provision()` creates a remediation grant and returns the ApiAccess plus the function that deletes it.
    The caller owns the release function and must call it exactly once.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        *,
        proxy: str = "",
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._token = token
        self._session = session or requests.Session()
        self._session.headers.update({"Authorization": f"Bearer {token}", "Accept": "application/json"})
        if proxy:
            self._session.proxies.update({"http": proxy, "https": proxy})

    def _request(self, method: str, path: str, *, expect: Tuple[int, ...], **kwargs: Any) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            resp = self._session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            raise AccessProvisionError(f"{method} {path} failed: {e}") from e
        if resp.status_code not in expect:
            raise AccessProvisionError(
                f"unexpected status code {resp.status_code} for {method} {path}: {resp.text}", resp.status_code
            )
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}

    def provision(self, cluster_id: str, scope_name: str, *, management: bool = False) -> Tuple[ApiAccess, ReleaseFunc]:
        params = {"remediation": scope_name}
        if management:
            params["managingCluster"] = MANAGING_CLUSTER_MANAGEMENT

        doc = self._request("POST", f"{REMEDIATION_API}/{cluster_id}", expect=(200, 201), params=params)
        proxy_uri = doc.get("proxy_uri") or ""
        instance_id = doc.get("remediation_instance_id") or ""
        if not proxy_uri:
            raise AccessProvisionError("failed to create remediation: missing proxy URI in response payload")

        access = ApiAccess(
            cluster_id=cluster_id,
            host=f"{self.base_url}{proxy_uri}",
            bearer_token=self._token,
            grant_id=instance_id,
            management=management,
        )
        logger.info("Created remediation %s for cluster %s (management=%s)", instance_id, cluster_id, management)

        def release() -> None:
            del_params = {"remediationInstanceId": instance_id}
            if management:
                del_params["managingCluster"] = MANAGING_CLUSTER_MANAGEMENT
            try:
                self._request(
                    "DELETE",
                    f"{REMEDIATION_API}/{cluster_id}",
                    expect=tuple(range(200, 300)),
                    params=del_params,
                )
            except AccessProvisionError as e:
                raise AccessProvisionError(f"failed to delete remediation {instance_id}: {e}") from e
            logger.info("Deleted remediation %s for cluster %s", instance_id, cluster_id)

        return access, release

    def create_report(self, cluster_id: str, summary: str, data: str) -> str:
        if not (cluster_id and summary and data):
            raise ValueError("cluster_id, summary and report data are required")
        body = {"summary": summary, "data": base64.b64encode(data.encode("utf-8")).decode("ascii")}
        doc = self._request("POST", f"{REPORTS_API}/{cluster_id}", expect=(201,), json=body)
        report_id = str(doc.get("report_id") or doc.get("id") or "")
        if not report_id:
            raise AccessProvisionError("report created but no report id returned")
        return report_id
