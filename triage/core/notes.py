"""Note accumulator shared by a run and its actions."""

from __future__ import annotations

import logging
import threading
from typing import Any, Optional


class NoteWriter:
    """
    Builds the note that ends up on the alert.

    Writes are serialized by an internal lock; concurrent action workers may append while others read.
    """

    def __init__(self, investigation_name: str, logger: Optional[logging.LoggerAdapter] = None) -> None:
        self.investigation_name = investigation_name
        self._logger = logger
        self._lock = threading.Lock()
        self._parts = [
            f"🤖 Automated {investigation_name} pre-investigation 🤖\n",
            "===========================\n",
        ]

    def __str__(self) -> str:
        with self._lock:
            return "".join(self._parts)

    def _write(self, prefix: str, fmt: str, *args: Any) -> None:
        msg = fmt % args if args else fmt
        if self._logger is not None:
            self._logger.info("%s", msg)
        with self._lock:
            self._parts.append(f"{prefix} {msg}\n")

    def append_success(self, fmt: str, *args: Any) -> None:
        self._write("✅", fmt, *args)

    def append_warning(self, fmt: str, *args: Any) -> None:
        self._write("⚠️", fmt, *args)

    def append_automation(self, fmt: str, *args: Any) -> None:
        self._write("🤖", fmt, *args)
