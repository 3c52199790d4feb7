"""Cluster Credentials Are Missing (CCAM): detects customer-removed cloud credentials."""

from __future__ import annotations

import re
from typing import List, Pattern

from triage.actions.builders import ResultBuilder
from triage.core.models import CLUSTER_STATE_READY, CLUSTER_STATE_UNINSTALLING
from triage.investigations.base import BaseInvestigation, InvestigationResult
from triage.resources.builder import ResourceBuilder

LIMITED_SUPPORT_SUMMARY = "Restore missing cloud credentials"
LIMITED_SUPPORT_DETAILS = (
    "Your cluster requires you to take action because Red Hat is not able to access the infrastructure with the "
    "provided credentials. Please restore the credentials and permissions provided during install"
)
CLOUD_ACCESS_NOT_CONFIGURED = "cloud access not configured"

# Credential broker errors that mean the customer changed or deleted roles/policies we rely on.
USER_CAUSED_ERRORS: List[Pattern[str]] = [
    # Trust relationship to the support role can no longer be verified.
    re.compile(r"Failed to find trusted relationship to support role 'RH-Technical-Support-Access'"),
    # Trust policy of the installer role was modified.
    re.compile(r"RH-Managed-OpenShift-Installer/OCM is not authorized to perform: sts:AssumeRole on resource"),
    # Support role deleted.
    re.compile(r"Support role, used with cluster '[a-z0-9]{32}', does not exist in the customer's AWS account"),
    # Trust policy of the support role was modified.
    re.compile(r"could not assume support role in customer's account: .*AccessDenied:"),
    # GetRole permission removed from the installer role.
    re.compile(r"is not authorized to perform: iam:GetRole on resource: role"),
]


def customer_removed_permissions(message: str) -> bool:
    return any(p.search(message or "") for p in USER_CAUSED_ERRORS)


class CloudCredentialsCheck(BaseInvestigation):
    """
    Access check run before every strategy.

    Cloud access is probed on a fork of the run's builder, so a failure here does not poison strategies that
    never need cloud credentials. Errors that are not customer caused are raised unchanged. Without a
    credential broker the check only asks the runner to stop strategies that require cloud access.
    """

    name = "Cluster Credentials Are Missing (CCAM)"
    description = "Detects missing cluster credentials"

    def run(self, rb: ResourceBuilder) -> InvestigationResult:
        if not rb.has_credential_broker:
            rb.resources.logger.warning("No credential broker configured, skipping missing credentials check")
            return InvestigationResult(stop_investigations=CLOUD_ACCESS_NOT_CONFIGURED)

        probe = rb.fork()
        r, err = probe.with_cluster().with_cloud_access().try_build()
        rb.absorb(probe)
        r.logger.info("Investigating possible missing cloud credentials...")
        if err is None:
            return InvestigationResult()

        if not customer_removed_permissions(str(err)):
            raise err

        cluster = r.cluster
        if cluster is None:
            raise err

        out = ResultBuilder()
        if cluster.state == CLUSTER_STATE_READY:
            out.add_limited_support(LIMITED_SUPPORT_SUMMARY, LIMITED_SUPPORT_DETAILS)
            out.add_note(
                f"Added the following Limited Support reason to cluster: {LIMITED_SUPPORT_SUMMARY}. Silencing alert."
            )
            out.silence("cloud credentials are missing")
            result = out.stop("cloud credentials are missing").build()
            result.limited_support_set.performed = True
            result.limited_support_set.labels = [LIMITED_SUPPORT_SUMMARY]
            return result

        if cluster.state == CLUSTER_STATE_UNINSTALLING:
            return (
                out.add_note(
                    f"Skipped adding limited support reason '{LIMITED_SUPPORT_SUMMARY}': cluster is already uninstalling."
                )
                .silence("cluster is uninstalling")
                .stop("cloud credentials are missing")
                .build()
            )

        # Unknown or transitional state (e.g. installing): a human decides.
        return (
            out.add_note(
                "Cluster has invalid cloud credentials (support role/policy is missing) and the cluster is in state "
                f"'{cluster.state}'. Please investigate."
            )
            .escalate("cloud credentials are missing")
            .stop("cloud credentials are missing")
            .build()
        )
