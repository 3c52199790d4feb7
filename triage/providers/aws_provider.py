"""Tenant cloud credentials via AWS STS role chaining (initial role -> cluster support role)."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from triage.core.models import CloudAccess, Cluster

logger = logging.getLogger(__name__)

SESSION_NAME = "triage-investigation"
DEFAULT_DURATION_SECONDS = 900


class CredentialError(RuntimeError):
    pass


def support_role_arn(cluster: Cluster) -> str:
    """Support role of an STS cluster, as reported by the inventory (`aws.sts.support_role_arn`)."""
    extra = cluster.model_extra or {}
    aws = extra.get("aws")
    sts = aws.get("sts") if isinstance(aws, dict) else None
    nested = sts.get("support_role_arn") if isinstance(sts, dict) else None
    return str(extra.get("support_role_arn") or nested or "")


def _describe(err: ClientError) -> str:
    info = (err.response or {}).get("Error") or {}
    return f"{info.get('Code', 'Unknown')}: {info.get('Message', str(err))}"


class StsCredentialBroker:
    def __init__(
        self,
        initial_role_arn: str,
        *,
        proxy: str = "",
        duration_seconds: int = DEFAULT_DURATION_SECONDS,
        session_factory: Callable[..., Any] = boto3.Session,
    ) -> None:
        self.initial_role_arn = initial_role_arn
        self.duration_seconds = duration_seconds
        self._session_factory = session_factory
        self._config = Config(proxies={"https": proxy, "http": proxy}) if proxy else None

    def _sts(self, session: Any, region: str) -> Any:
        kwargs: Dict[str, Any] = {"region_name": region or None}
        if self._config is not None:
            kwargs["config"] = self._config
        return session.client("sts", **kwargs)

    def _assume(self, session: Any, region: str, role_arn: str) -> Dict[str, Any]:
        resp = self._sts(session, region).assume_role(
            RoleArn=role_arn,
            RoleSessionName=SESSION_NAME,
            DurationSeconds=self.duration_seconds,
        )
        return resp["Credentials"]

    def _session_for(self, creds: Dict[str, Any], region: str) -> Any:
        return self._session_factory(
            aws_access_key_id=creds["AccessKeyId"],
            aws_secret_access_key=creds["SecretAccessKey"],
            aws_session_token=creds["SessionToken"],
            region_name=region or None,
        )

    def acquire_tenant_credentials(self, cluster: Cluster) -> CloudAccess:
        if not cluster.is_aws():
            raise CredentialError(f"cluster {cluster.id} is not an AWS cluster")
        if not self.initial_role_arn:
            raise CredentialError("no initial role configured")
        target = support_role_arn(cluster)
        if not target:
            raise CredentialError(f"Support role, used with cluster '{cluster.id}', is not known to the inventory")

        region = cluster.region
        try:
            initial = self._assume(self._session_factory(region_name=region or None), region, self.initial_role_arn)
        except (ClientError, BotoCoreError) as e:
            detail = _describe(e) if isinstance(e, ClientError) else str(e)
            raise CredentialError(f"could not assume initial role {self.initial_role_arn}: {detail}") from e

        try:
            creds = self._assume(self._session_for(initial, region), region, target)
        except ClientError as e:
            raise CredentialError(f"could not assume support role in customer's account: {_describe(e)}") from e
        except BotoCoreError as e:
            raise CredentialError(f"could not assume support role in customer's account: {e}") from e

        logger.info("Acquired tenant credentials for cluster %s via %s", cluster.id, target)
        return CloudAccess(
            region=region,
            role_arn=target,
            expiration=creds.get("Expiration"),
            session=self._session_for(creds, region),
        )
