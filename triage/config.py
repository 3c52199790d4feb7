from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

from triage.core.errors import ConfigError


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name) or "").strip() or default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


@dataclass(frozen=True)
class TriageConfig:
    log_level: str = "INFO"
    identifier: str = ""

    experimental_enabled: bool = False
    dry_run: bool = False

    # Investigation retry policy (infrastructure errors only)
    max_investigation_retries: int = 3
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 10.0

    # Action executor
    action_max_retries: int = 3
    concurrent_actions: bool = True

    # Collaborators
    inventory_url: str = ""
    inventory_token: str = ""
    access_api_url: str = ""
    access_api_proxy: str = ""
    aws_proxy: str = ""
    initial_role_arn: str = ""
    pd_token: str = ""
    pd_silent_policy: str = ""
    pd_from_email: str = "triage@localhost"

    def missing_live(self) -> List[str]:
        missing = []
        for env, value in (
            ("INVENTORY_URL", self.inventory_url),
            ("INVENTORY_TOKEN", self.inventory_token),
            ("ACCESS_API_URL", self.access_api_url),
        ):
            if not value:
                missing.append(env)
        return missing

    def validate_live(self) -> None:
        missing = self.missing_live()
        if missing:
            raise ConfigError(f"missing required environment variables: {', '.join(missing)}")

    def validate_alerting(self) -> None:
        missing = [env for env, v in (("PD_TOKEN", self.pd_token), ("PD_SILENT_POLICY", self.pd_silent_policy)) if not v]
        if missing:
            raise ConfigError(f"missing required environment variables: {', '.join(missing)}")


def load_config() -> TriageConfig:
    return TriageConfig(
        log_level=_env_str("LOG_LEVEL", "INFO").upper(),
        identifier=_env_str("TRIAGE_IDENTIFIER"),
        experimental_enabled=_env_bool("TRIAGE_EXPERIMENTAL_ENABLED", False),
        dry_run=_env_bool("TRIAGE_DRY_RUN", False),
        max_investigation_retries=max(0, _env_int("TRIAGE_MAX_INVESTIGATION_RETRIES", 3)),
        initial_backoff_seconds=max(0.0, _env_float("TRIAGE_INITIAL_BACKOFF_SECONDS", 1.0)),
        max_backoff_seconds=max(0.0, _env_float("TRIAGE_MAX_BACKOFF_SECONDS", 10.0)),
        action_max_retries=max(0, _env_int("TRIAGE_ACTION_MAX_RETRIES", 3)),
        concurrent_actions=_env_bool("TRIAGE_CONCURRENT_ACTIONS", True),
        inventory_url=_env_str("INVENTORY_URL").rstrip("/"),
        inventory_token=_env_str("INVENTORY_TOKEN"),
        access_api_url=_env_str("ACCESS_API_URL").rstrip("/"),
        access_api_proxy=_env_str("ACCESS_API_PROXY"),
        aws_proxy=_env_str("AWS_PROXY"),
        initial_role_arn=_env_str("TRIAGE_INITIAL_ROLE_ARN"),
        pd_token=_env_str("PD_TOKEN"),
        pd_silent_policy=_env_str("PD_SILENT_POLICY"),
        pd_from_email=_env_str("PD_FROM_EMAIL", "triage@localhost"),
    )
