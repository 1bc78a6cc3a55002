"""Structured audit logging with PII redaction."""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

from dispute_resolution.utils.pii import mask_pii, hash_user_id, redact_for_logging


def get_logger(name: str, level: str = "INFO") -> logging.Logger:
    """Get a configured logger instance."""
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stderr)
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    logger.setLevel(getattr(logging, level.upper()))
    return logger


class AuditLogger:
    """Audit trail for dispute lifecycle events with PII protection."""

    def __init__(
        self,
        log_dir: Path | None = None,
        user_id: str | None = None,
        use_presidio: bool = True,
    ):
        self.log_dir = log_dir or Path("logs")
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.user_id = user_id
        self.user_hash = hash_user_id(user_id) if user_id else "anonymous"
        self.use_presidio = use_presidio
        self._logger = get_logger(f"audit.{self.user_hash}")

    def for_user(self, user_id: str) -> "AuditLogger":
        """Return an audit logger writing to the same directory for another user."""
        return AuditLogger(log_dir=self.log_dir, user_id=user_id, use_presidio=self.use_presidio)

    def _get_log_file(self) -> Path:
        """Get the current audit log file path."""
        date_str = datetime.now().strftime("%Y-%m-%d")
        return self.log_dir / f"audit_{date_str}.jsonl"

    def _write_entry(self, entry: dict):
        """Write an audit entry to the log file."""
        entry["timestamp"] = datetime.now().isoformat()
        entry["user_hash"] = self.user_hash

        with open(self._get_log_file(), "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def _mask(self, text: str | None) -> str | None:
        return mask_pii(text, use_presidio=self.use_presidio) if text else text

    def read_entries(self) -> list[dict]:
        """Read today's audit entries."""
        log_file = self._get_log_file()
        if not log_file.exists():
            return []
        with open(log_file, encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    def log_dispute_filed(
        self,
        dispute_id: str,
        reference: str,
        category: str,
        description: str,
    ):
        """Log when a dispute is filed."""
        entry = {
            "event": "dispute_filed",
            "dispute_id": dispute_id,
            "reference": reference,
            "category": category,
            "description": self._mask(description),
        }
        self._write_entry(entry)
        self._logger.info(f"Dispute filed: {dispute_id} for {reference}")

    def log_transition(
        self,
        dispute_id: str,
        action: str,
        from_stage: str,
        to_stage: str,
        metadata: dict[str, Any] | None = None,
    ):
        """Log a dispute stage transition or sub-transition."""
        entry = {
            "event": "dispute_transition",
            "dispute_id": dispute_id,
            "action": action,
            "from_stage": from_stage,
            "to_stage": to_stage,
            "metadata": redact_for_logging(metadata) if metadata else None,
        }
        self._write_entry(entry)
        self._logger.info(f"Dispute {dispute_id}: {action} ({from_stage} -> {to_stage})")

    def log_resolution(
        self,
        dispute_id: str,
        outcome: str,
        reason: str | None,
        settlement_ref: str | None,
    ):
        """Log a terminal resolution after settlement succeeded."""
        entry = {
            "event": "dispute_resolved",
            "dispute_id": dispute_id,
            "outcome": outcome,
            "reason": self._mask(reason),
            "settlement_ref": settlement_ref,
        }
        self._write_entry(entry)
        self._logger.info(f"Dispute resolved: {dispute_id} outcome={outcome}")

    def log_settlement_failure(self, dispute_id: str, outcome: str, error: str):
        """Log a settlement attempt that did not reach the ledger."""
        entry = {
            "event": "settlement_failed",
            "dispute_id": dispute_id,
            "outcome": outcome,
            "error": error,
        }
        self._write_entry(entry)
        self._logger.error(f"Settlement failed for dispute {dispute_id}: {error}")

    def log_security_event(
        self,
        event_type: str,
        details: str,
        severity: str = "warning",
    ):
        """Log a security-related event."""
        entry = {
            "event": "security",
            "event_type": event_type,
            "details": self._mask(details),
            "severity": severity,
        }
        self._write_entry(entry)
        log_method = getattr(self._logger, severity.lower(), self._logger.warning)
        log_method(f"Security event: {event_type}")
