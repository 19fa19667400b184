"""Relay audit trail: append-only JSON Lines with size rotation and a hash chain.

Each line carries ``prev_hash``, the SHA-256 of the previous line, so edits
or deletions inside a file are detectable with ``validate_audit_chain``.
"""

from __future__ import annotations

import fcntl
import hashlib
import json
import os
from dataclasses import dataclass
from pathlib import Path

from botrelay.models import AuditEvent


@dataclass
class ChainValidationResult:
    valid: bool
    broken_at_line: int | None = None


def _line_hash(line: str) -> str:
    return hashlib.sha256(line.encode()).hexdigest()


def validate_audit_chain(log_path: Path) -> ChainValidationResult:
    """Check that every line's prev_hash matches the line before it."""
    lines = [line for line in log_path.read_text().splitlines() if line]
    prev_hash: str | None = None
    for number, line in enumerate(lines, start=1):
        if json.loads(line).get("prev_hash") != prev_hash:
            return ChainValidationResult(valid=False, broken_at_line=number)
        prev_hash = _line_hash(line)
    return ChainValidationResult(valid=True)


class AuditLogger:
    """Writes ``AuditEvent`` records for ingestion, subscriptions and deliveries."""

    def __init__(
        self,
        log_path: str,
        max_bytes: int = 10_485_760,
        backup_count: int = 5,
    ) -> None:
        self.log_path = Path(log_path)
        self._max_bytes = max_bytes
        self._backup_count = backup_count
        self._last_line: str | None = None
        # Resume the chain from an existing file
        if self.log_path.exists():
            existing = [line for line in self.log_path.read_text().splitlines() if line]
            if existing:
                self._last_line = existing[-1]

    @classmethod
    def from_env(cls, log_path: str) -> AuditLogger:
        max_bytes = int(os.environ.get("AUDIT_LOG_MAX_BYTES", "10485760"))
        backup_count = int(os.environ.get("AUDIT_LOG_BACKUP_COUNT", "5"))
        return cls(log_path=log_path, max_bytes=max_bytes, backup_count=backup_count)

    def _backup(self, index: int) -> Path:
        return self.log_path.with_name(f"{self.log_path.name}.{index}")

    def _maybe_rotate(self) -> None:
        """Shift ``log`` -> ``log.1`` -> ... -> ``log.N`` once the size limit is hit."""
        if not self.log_path.exists() or self.log_path.stat().st_size < self._max_bytes:
            return

        self._backup(self._backup_count).unlink(missing_ok=True)
        for i in range(self._backup_count - 1, 0, -1):
            if self._backup(i).exists():
                self._backup(i).rename(self._backup(i + 1))
        self.log_path.rename(self._backup(1))

    def log(self, event: AuditEvent) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        record = event.model_dump(mode="json")
        record["prev_hash"] = _line_hash(self._last_line) if self._last_line is not None else None
        line = json.dumps(record, separators=(",", ":"))

        lock_file = self.log_path.with_name(f".{self.log_path.name}.lock")
        with open(lock_file, "w") as lf:
            fcntl.flock(lf, fcntl.LOCK_EX)
            try:
                self._maybe_rotate()
                with open(self.log_path, "a") as f:
                    f.write(line + "\n")
            finally:
                fcntl.flock(lf, fcntl.LOCK_UN)

        self._last_line = line

    def read_events(self) -> list[AuditEvent]:
        """Events in the current (unrotated) file, oldest first."""
        if not self.log_path.exists():
            return []
        events = []
        for line in self.log_path.read_text().splitlines():
            if not line:
                continue
            record = json.loads(line)
            record.pop("prev_hash", None)
            events.append(AuditEvent.model_validate(record))
        return events
