"""Tests for the relay audit logger."""

from __future__ import annotations

import hashlib
import json
from pathlib import Path

import pytest

from botrelay.audit.logger import AuditLogger, validate_audit_chain
from botrelay.models import AuditEventType, RiskLevel
from tests.conftest import make_audit_event


def test_log_appends_json_line(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    AuditLogger(log_path=str(log_file)).log(make_audit_event())

    lines = log_file.read_text().strip().split("\n")
    assert len(lines) == 1
    parsed = json.loads(lines[0])
    assert parsed["event_type"] == "message_ingested"
    assert parsed["risk_level"] == "info"
    assert "T" in parsed["timestamp"]


def test_log_creates_parent_directory(tmp_path: Path) -> None:
    log_file = tmp_path / "nested" / "audit.jsonl"
    AuditLogger(log_path=str(log_file)).log(make_audit_event())
    assert log_file.exists()


def test_read_events_round_trips_fields(tmp_path: Path) -> None:
    logger = AuditLogger(log_path=str(tmp_path / "audit.jsonl"))
    logger.log(make_audit_event(
        event_type=AuditEventType.DELIVERY_ATTEMPT,
        result="failed",
        risk_level=RiskLevel.MEDIUM,
        details={"webhook_id": "w1", "attempt": 2},
    ))

    [event] = logger.read_events()
    assert event.event_type == AuditEventType.DELIVERY_ATTEMPT
    assert event.details == {"webhook_id": "w1", "attempt": 2}


def test_read_events_missing_file(tmp_path: Path) -> None:
    assert AuditLogger(log_path=str(tmp_path / "none.jsonl")).read_events() == []


# --- Rotation ---


def test_rotation_triggers_at_threshold(tmp_path: Path) -> None:
    logger = AuditLogger(log_path=str(tmp_path / "audit.jsonl"), max_bytes=100, backup_count=3)
    for i in range(20):
        logger.log(make_audit_event(action=f"event-{i}"))
    assert (tmp_path / "audit.jsonl.1").exists()


def test_rotation_keeps_backup_count(tmp_path: Path) -> None:
    logger = AuditLogger(log_path=str(tmp_path / "audit.jsonl"), max_bytes=50, backup_count=2)
    for i in range(50):
        logger.log(make_audit_event(action=f"event-{i}"))
    assert (tmp_path / "audit.jsonl.2").exists()
    assert not (tmp_path / "audit.jsonl.3").exists()


def test_rotation_configurable_via_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("AUDIT_LOG_MAX_BYTES", "500")
    monkeypatch.setenv("AUDIT_LOG_BACKUP_COUNT", "7")
    logger = AuditLogger.from_env(str(tmp_path / "audit.jsonl"))
    assert logger._max_bytes == 500
    assert logger._backup_count == 7


# --- Hash chain ---


def test_first_entry_has_null_prev_hash(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    AuditLogger(log_path=str(log_file)).log(make_audit_event())
    assert json.loads(log_file.read_text())["prev_hash"] is None


def test_entries_chain_to_previous_line(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file))
    logger.log(make_audit_event(action="first"))
    logger.log(make_audit_event(action="second"))

    lines = log_file.read_text().strip().split("\n")
    assert json.loads(lines[1])["prev_hash"] == hashlib.sha256(lines[0].encode()).hexdigest()


def test_chain_resumes_after_restart(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    AuditLogger(log_path=str(log_file)).log(make_audit_event(action="before"))
    AuditLogger(log_path=str(log_file)).log(make_audit_event(action="after"))
    assert validate_audit_chain(log_file).valid


def test_validate_chain_detects_tampering(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file))
    for i in range(5):
        logger.log(make_audit_event(action=f"event-{i}"))

    lines = log_file.read_text().strip().split("\n")
    lines[2] = lines[2].replace("event-2", "TAMPERED")
    log_file.write_text("\n".join(lines) + "\n")

    result = validate_audit_chain(log_file)
    assert not result.valid
    assert result.broken_at_line == 4


def test_validate_chain_detects_deleted_line(tmp_path: Path) -> None:
    log_file = tmp_path / "audit.jsonl"
    logger = AuditLogger(log_path=str(log_file))
    for i in range(4):
        logger.log(make_audit_event(action=f"event-{i}"))

    lines = log_file.read_text().strip().split("\n")
    del lines[1]
    log_file.write_text("\n".join(lines) + "\n")

    result = validate_audit_chain(log_file)
    assert not result.valid
    assert result.broken_at_line == 2
