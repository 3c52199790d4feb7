"""Checks that a cluster can be investigated at all before any strategy runs."""

from __future__ import annotations

from triage.actions.builders import ResultBuilder
from triage.core.models import CLUSTER_STATE_UNINSTALLING
from triage.investigations.base import BaseInvestigation, InvestigationResult
from triage.resources.builder import ResourceBuilder


class ClusterStatePrecheck(BaseInvestigation):
    """
    Pre-requisites for an investigation:
    - the cluster is not uninstalling
    - the cloud provider is supported (AWS)
    - the cluster is not access protected

    Any failed check yields alert actions plus a stop reason; the runner executes them and ends the run.
    """

    name = "precheck"
    description = "Validates that the cluster state allows an automated investigation"

    def run(self, rb: ResourceBuilder) -> InvestigationResult:
        r = rb.with_cluster().build()
        cluster = r.cluster
        logger = r.logger
        out = ResultBuilder()

        if cluster.state == CLUSTER_STATE_UNINSTALLING:
            logger.info("Cluster is uninstalling and requires no investigation. Silencing alert.")
            return (
                out.add_note("Triage: Cluster is already uninstalling, silencing alert.")
                .silence("cluster is already uninstalling")
                .stop("cluster is already uninstalling")
                .build()
            )

        if not cluster.is_aws():
            logger.info("Cloud provider unsupported, forwarding to primary.")
            return (
                out.add_note("Triage could not run an automated investigation on this cluster: unsupported cloud provider.")
                .escalate("unsupported cloud provider")
                .stop("unsupported cloud provider (non-AWS)")
                .build()
            )

        try:
            protected = r.inventory.is_access_protected(cluster)
        except Exception as e:
            logger.warning("Failed to get access protection status for cluster: %s. Escalating for manual handling.", e)
            return (
                out.add_note(
                    "Triage could not determine access protection status for this cluster, as it is unable to run "
                    "against access protected clusters, please investigate manually."
                )
                .escalate("access protection unknown")
                .stop("access protection could not be determined")
                .build()
            )

        if protected:
            logger.info("Cluster is access protected. Escalating alert.")
            return (
                out.add_note("Triage is unable to run against access protected clusters. Please investigate.")
                .escalate("cluster is access protected")
                .stop("cluster is access protected")
                .build()
            )

        return out.build()
