"""Per-run logging handle.

One `RunLogger` is created per alert once the cluster id is known and passed explicitly through the run,
instead of re-initializing module loggers.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping, Tuple

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    lvl = getattr(logging, (level or "INFO").upper(), None)
    if not isinstance(lvl, int):
        lvl = logging.INFO
    logging.basicConfig(level=lvl, format=LOG_FORMAT, stream=sys.stderr)


class RunLogger(logging.LoggerAdapter):
    """Prefixes every message with the run identity and attaches it as `extra` for structured handlers."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        extra = dict(self.extra or {})
        kwargs["extra"] = {**extra, **(kwargs.get("extra") or {})}
        bits = [f"{k}={v}" for k, v in extra.items() if v]
        if not bits:
            return msg, kwargs
        return f"[{' '.join(bits)}] {msg}", kwargs

    def bind(self, **fields: Any) -> "RunLogger":
        return RunLogger(self.logger, {**dict(self.extra or {}), **fields})


def get_run_logger(cluster_id: str = "", pipeline: str = "", name: str = "triage.run") -> RunLogger:
    return RunLogger(logging.getLogger(name), {"cluster_id": cluster_id, "pipeline": pipeline})
