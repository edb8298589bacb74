"""
Audit trail for reader operations.

Every path is passed through sanitize_for_logging before it is written.
"""

import logging
from typing import Any

from bastion.shared.gate import GateLogger
from bastion.SensitiveGate import sanitize_for_logging


def _details(details: dict) -> str:
    if not details:
        return ""
    return " " + " ".join(f"{key}={value}" for key, value in details.items())


class AuditLogger:
    """Writes start / success / failure records to bastion.ReaderGate.audit."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._log = GateLogger.get("ReaderGate.audit")

    def _write(self, level: int, message: str) -> None:
        if self.enabled:
            self._log.log(level, message)

    def start(self, operation: str, operation_id: str, path: Any, **details) -> None:
        self._write(
            logging.INFO,
            f"[{operation_id}] {operation} started: {sanitize_for_logging(path)}{_details(details)}",
        )

    def success(self, operation: str, operation_id: str, path: Any, **details) -> None:
        self._write(
            logging.INFO,
            f"[{operation_id}] {operation} succeeded: {sanitize_for_logging(path)}{_details(details)}",
        )

    def failure(self, operation: str, operation_id: str, path: Any, kind: str, **details) -> None:
        self._write(
            logging.WARNING,
            f"[{operation_id}] {operation} failed ({kind}): "
            f"{sanitize_for_logging(path)}{_details(details)}",
        )

    def warning(self, operation: str, operation_id: str, path: Any, message: str) -> None:
        self._write(
            logging.WARNING,
            f"[{operation_id}] {operation} warning: {sanitize_for_logging(path)}: {message}",
        )
