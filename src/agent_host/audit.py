"""Structured JSON audit trail for approval decisions."""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from loguru import logger

from .config import Config

MAX_PARAM_LENGTH = 1000


class AuditEvent(str, Enum):
    """Audit event types for approval decisions."""

    APPROVAL_AUTO = "approval_auto"
    APPROVAL_REQUESTED = "approval_requested"
    APPROVAL_GRANTED = "approval_granted"
    APPROVAL_DENIED = "approval_denied"
    DECISION_PERSISTED = "decision_persisted"
    DECISION_REVOKED = "decision_revoked"
    PERSISTENCE_FAILED = "persistence_failed"


def _clip(value: Any) -> Any:
    """Shorten long strings inside tool params."""
    if isinstance(value, str) and len(value) > MAX_PARAM_LENGTH:
        return f"{value[:MAX_PARAM_LENGTH]}... [truncated, {len(value)} total chars]"
    if isinstance(value, dict):
        return {k: _clip(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clip(v) for v in value]
    return value


class AuditLogger:
    """
    Append-only JSON Lines trail of approval decisions.

    When the file reaches Config.AUDIT_MAX_BYTES it is shifted to
    ``<name>.1`` (older backups move up by one) and only
    Config.AUDIT_BACKUP_COUNT backups are kept.
    """

    def __init__(self, log_path: Optional[str] = None):
        self.log_path = Path(log_path or Config.AUDIT_LOG_PATH)
        self.max_bytes = Config.AUDIT_MAX_BYTES
        self.backup_count = Config.AUDIT_BACKUP_COUNT
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _rotate(self) -> None:
        if self.max_bytes <= 0 or not self.log_path.is_file():
            return
        if self.log_path.stat().st_size < self.max_bytes:
            return

        if self.backup_count <= 0:
            self.log_path.unlink()
            return
        self._backup(self.backup_count).unlink(missing_ok=True)
        for index in range(self.backup_count - 1, 0, -1):
            if self._backup(index).exists():
                self._backup(index).replace(self._backup(index + 1))
        self.log_path.replace(self._backup(1))
        logger.debug(f"Rotated audit log {self.log_path}")

    def log(
        self,
        event: AuditEvent,
        tool_name: Optional[str] = None,
        session_id: Optional[str] = None,
        request_id: Optional[str] = None,
        **fields,
    ) -> None:
        """
        Append one audit record. Write errors are logged, never raised.

        Args:
            event: Audit event type
            tool_name: Tool the decision concerns
            session_id: Session identifier for correlation
            request_id: Approval request identifier for correlation
            **fields: Extra record fields; long strings are truncated
        """
        record = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event.value,
            "tool_name": tool_name,
            "session_id": session_id,
            "request_id": request_id,
            **_clip(fields),
        }
        line = json.dumps(record, ensure_ascii=False, default=str)

        try:
            self._rotate()
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError as e:
            logger.error(f"Failed to write audit record {event.value}: {e}")

    def history(self, limit: int = 100) -> List[Dict[str, Any]]:
        """
        Read back the newest audit records from the current log file.

        Args:
            limit: Maximum number of records

        Returns:
            Records, newest first
        """
        if not self.log_path.exists():
            return []

        records = []
        with open(self.log_path, encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(f"Skipping malformed audit line in {self.log_path}")
        records.reverse()
        return records[:limit]
