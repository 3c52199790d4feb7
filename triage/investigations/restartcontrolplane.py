"""Restarts the control plane of a hosted control plane (HCP) cluster."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable, Dict

import requests

from triage.actions.builders import note_and_report_from, note_from, silence
from triage.core.errors import wrap_finding, wrap_infrastructure
from triage.core.models import ApiAccess
from triage.investigations.base import BaseInvestigation, InvestigationResult
from triage.resources.builder import ResourceBuilder

HOSTED_CLUSTER_API = "apis/hypershift.openshift.io/v1beta1"
RESTART_ANNOTATION = "hypershift.openshift.io/restart-date"


def hosted_cluster_url(access: ApiAccess, namespace: str, name: str) -> str:
    return f"{access.host.rstrip('/')}/{HOSTED_CLUSTER_API}/namespaces/{namespace}/hostedclusters/{name}"


class RestartControlPlane(BaseInvestigation):
    name = "restartcontrolplane"
    description = "Restarts the control plane of an HCP cluster"
    alert_title = "RestartControlPlane"

    def __init__(
        self,
        session_factory: Callable[[], requests.Session] = requests.Session,
        now: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
        timeout: float = 30,
    ) -> None:
        self._session_factory = session_factory
        self._now = now
        self._timeout = timeout

    def run(self, rb: ResourceBuilder) -> InvestigationResult:
        r = rb.with_cluster().with_management_api_access().with_notes().build()
        cluster = r.cluster

        if not r.is_hcp:
            r.notes.append_success("Cluster is not an HCP cluster, skipping control plane restart")
            actions = note_and_report_from(r.notes, cluster.id, self.name)
            actions.append(silence("Control plane restart only applies to HCP clusters"))
            return InvestigationResult(actions=actions)

        namespace = r.management.hosted_cluster_namespace if r.management else ""
        if not namespace or not cluster.domain_prefix:
            raise wrap_finding(
                ValueError(f"hosted cluster location unknown (namespace={namespace!r} name={cluster.domain_prefix!r})"),
                "Restarting Control Plane failed",
            )

        access = r.management_api_access
        url = hosted_cluster_url(access, namespace, cluster.domain_prefix)
        headers = {"Authorization": f"Bearer {access.bearer_token}", "Accept": "application/json"}
        restart_date = self._now().strftime("%Y-%m-%dT%H:%M:%SZ")

        session = self._session_factory()
        try:
            try:
                resp = session.get(url, headers=headers, timeout=self._timeout)
                resp.raise_for_status()
            except requests.exceptions.RequestException as e:
                raise wrap_infrastructure(RuntimeError(f"failed to get HostedCluster: {e}"), "Restarting Control Plane failed") from e

            patch: Dict[str, Any] = {"metadata": {"annotations": {RESTART_ANNOTATION: restart_date}}}
            try:
                resp = session.patch(
                    url,
                    json=patch,
                    headers={**headers, "Content-Type": "application/merge-patch+json"},
                    timeout=self._timeout,
                )
                resp.raise_for_status()
            except requests.exceptions.RequestException as e:
                raise wrap_infrastructure(
                    RuntimeError(f"failed to update HostedCluster: {e}"), "Restarting Control Plane failed"
                ) from e
        finally:
            session.close()

        r.notes.append_success("Requested control plane restart (%s=%s)", RESTART_ANNOTATION, restart_date)
        return InvestigationResult(actions=[note_from(r.notes)])
