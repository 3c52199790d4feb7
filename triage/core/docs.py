"""Product documentation links and mismatch detection for customer-facing messages."""

from __future__ import annotations

import re
from typing import Dict, Optional, Tuple

from triage.core.errors import TriageError
from triage.core.models import Cluster

PRODUCT_UNKNOWN = ""
PRODUCT_OSD = "osd"
PRODUCT_ROSA = "rosa"

TOPIC_PRIVATELINK_FIREWALL = "privatelink-firewall"
TOPIC_MONITORING_STACK = "monitoring-stack"
TOPIC_AWS_CUSTOM_VPC = "aws-custom-vpc"

KIND_SERVICE_LOG = "service log"
KIND_LIMITED_SUPPORT = "limited support reason"

_DOC_BASE_ROSA = "https://docs.redhat.com/en/documentation/red_hat_openshift_service_on_aws_classic_architecture/4/html"
_DOC_BASE_OSD = "https://docs.redhat.com/en/documentation/openshift_dedicated/4/html"

DOCUMENTATION_LINKS: Dict[str, Dict[str, str]] = {
    TOPIC_PRIVATELINK_FIREWALL: {
        PRODUCT_ROSA: f"{_DOC_BASE_ROSA}/install_rosa_classic_clusters/deploying-rosa-without-aws-sts"
        "#rosa-classic-firewall-prerequisites_prerequisites",
        PRODUCT_OSD: f"{_DOC_BASE_OSD}-single/planning_your_environment/index#osd-aws-privatelink-firewall-prerequisites_aws-ccs",
    },
    TOPIC_MONITORING_STACK: {
        PRODUCT_ROSA: f"{_DOC_BASE_ROSA}/monitoring/configuring-user-workload-monitoring",
        PRODUCT_OSD: f"{_DOC_BASE_OSD}/monitoring/configuring-user-workload-monitoring",
    },
    TOPIC_AWS_CUSTOM_VPC: {
        PRODUCT_ROSA: f"{_DOC_BASE_ROSA}/prepare_your_environment/rosa-cloud-expert-prereq-checklist"
        "#vpc-requirements-for-privatelink-clusters",
        PRODUCT_OSD: f"{_DOC_BASE_OSD}/cluster_administration/configuring-private-connections",
    },
}

# Ordered: the first product whose indicator matches wins.
PRODUCT_INDICATORS: Dict[str, Tuple[str, ...]] = {
    PRODUCT_ROSA: (
        "docs.openshift.com/rosa/",
        "docs.redhat.com/en/documentation/red_hat_openshift_service_on_aws",
    ),
    PRODUCT_OSD: (
        "docs.openshift.com/dedicated/",
        "docs.redhat.com/en/documentation/openshift_dedicated",
    ),
}

_URL_RE = re.compile(r"https?://[^\s>\"']+")


def documentation_link(product: str, topic: str) -> str:
    links = DOCUMENTATION_LINKS.get(topic) or {}
    return links.get(product) or links.get(PRODUCT_ROSA) or ""


def cluster_product(cluster: Optional[Cluster]) -> str:
    if cluster is None:
        return PRODUCT_UNKNOWN
    p = (cluster.product or "").strip().lower()
    if p in (PRODUCT_OSD, PRODUCT_ROSA):
        return p
    return PRODUCT_UNKNOWN


def product_display_name(product: str) -> str:
    if product == PRODUCT_ROSA:
        return "ROSA"
    if product == PRODUCT_OSD:
        return "OpenShift Dedicated"
    return "unknown"


def _product_from_link(link: str) -> str:
    low = link.lower()
    for product, indicators in PRODUCT_INDICATORS.items():
        if any(ind in low for ind in indicators):
            return product
    return PRODUCT_UNKNOWN


def find_documentation_mismatch(expected_product: str, text: str) -> Tuple[str, str]:
    """
    Return (detected_product, link) for the first documentation reference that targets another product.

    Returns (PRODUCT_UNKNOWN, "") when the expected product is unknown or nothing mismatches.
    """
    if expected_product == PRODUCT_UNKNOWN or not text:
        return PRODUCT_UNKNOWN, ""

    for link in _URL_RE.findall(text):
        detected = _product_from_link(link)
        if detected in (PRODUCT_UNKNOWN, expected_product):
            continue
        return detected, link

    low = text.lower()
    for product, indicators in PRODUCT_INDICATORS.items():
        if product == expected_product:
            continue
        for ind in indicators:
            if ind in low:
                return product, ind
    return PRODUCT_UNKNOWN, ""


class DocumentationMismatchError(TriageError):
    """A customer-facing message links to documentation for a different product than the cluster's."""

    def __init__(
        self,
        *,
        expected_product: str,
        detected_product: str,
        link: str,
        summary: str,
        details: str,
        kind: str,
    ) -> None:
        self.expected_product = expected_product
        self.detected_product = detected_product
        self.link = link
        self.summary = summary
        self.details = details
        self.kind = kind
        super().__init__(
            f"documentation link {link!r} targets {product_display_name(detected_product)} documentation "
            f"but cluster product is {product_display_name(expected_product)}"
        )

    def escalation_message(self) -> str:
        return (
            f"{self.kind}: '{self.summary}' was to be sent, but detected documentation link {self.link!r} for "
            f"{product_display_name(self.detected_product)} product while working on a "
            f"{product_display_name(self.expected_product)} cluster. Please send the correct documentation for the "
            f"product manually. Details prepared:\n{self.details}"
        )


def check_documentation(cluster: Optional[Cluster], *, summary: str, details: str, kind: str) -> None:
    """Raise DocumentationMismatchError if `details` links to another product's documentation."""
    expected = cluster_product(cluster)
    detected, link = find_documentation_mismatch(expected, details)
    if detected == PRODUCT_UNKNOWN:
        return
    raise DocumentationMismatchError(
        expected_product=expected,
        detected_product=detected,
        link=link,
        summary=summary,
        details=details,
        kind=kind,
    )
