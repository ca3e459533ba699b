"""Tests for identity_client.audit — IdentityAuditLogger and AuditEvent."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from identity_client.audit import DEFAULT_BUFFER_SIZE, AuditEvent, IdentityAuditLogger


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def memory_logger() -> IdentityAuditLogger:
    return IdentityAuditLogger(log_path=None)


@pytest.fixture()
def file_logger(tmp_path: Path) -> IdentityAuditLogger:
    return IdentityAuditLogger(log_path=tmp_path / "nested" / "audit.jsonl")


# ---------------------------------------------------------------------------
# AuditEvent
# ---------------------------------------------------------------------------


class TestAuditEvent:
    def test_to_dict_has_required_keys(self) -> None:
        event = AuditEvent(event_type="keystore_unlocked", account_id="5Abc")
        data = event.to_dict()
        assert set(data) == {"timestamp", "event_type", "account_id", "details"}

    def test_timestamp_is_utc_iso(self) -> None:
        data = AuditEvent(event_type="x").to_dict()
        assert str(data["timestamp"]).endswith("+00:00")


# ---------------------------------------------------------------------------
# IdentityAuditLogger
# ---------------------------------------------------------------------------


class TestMemoryBuffer:
    def test_log_event_buffers_json(self, memory_logger: IdentityAuditLogger) -> None:
        memory_logger.log_event("custom", "5Abc", reason="test")
        lines = memory_logger.drain_buffer()
        assert len(lines) == 1
        parsed = json.loads(lines[0])
        assert parsed["event_type"] == "custom"
        assert parsed["details"] == {"reason": "test"}

    def test_drain_clears(self, memory_logger: IdentityAuditLogger) -> None:
        memory_logger.log_event("one")
        memory_logger.drain_buffer()
        assert memory_logger.drain_buffer() == []

    def test_buffer_is_bounded(self) -> None:
        bounded = IdentityAuditLogger(log_path=None, buffer_size=3)
        for index in range(1000):
            bounded.log_event("keystore_unlock_failed", attempt=index)
        events = bounded.read_log()
        assert len(events) == 3
        assert [event["details"] for event in events] == [
            {"attempt": 997},
            {"attempt": 998},
            {"attempt": 999},
        ]

    def test_default_bound(self, memory_logger: IdentityAuditLogger) -> None:
        for _ in range(DEFAULT_BUFFER_SIZE + 50):
            memory_logger.log_event("keystore_unlock_failed")
        assert len(memory_logger.drain_buffer()) == DEFAULT_BUFFER_SIZE

    def test_read_log_from_buffer(self, memory_logger: IdentityAuditLogger) -> None:
        memory_logger.log_lock("5Abc", success=True)
        memory_logger.log_unlock("", success=False)
        events = memory_logger.read_log()
        assert [e["event_type"] for e in events] == [
            "keystore_locked",
            "keystore_unlock_failed",
        ]


class TestFileLog:
    def test_creates_parent_directory(self, file_logger: IdentityAuditLogger, tmp_path: Path) -> None:
        assert (tmp_path / "nested").is_dir()

    def test_appends_one_line_per_event(
        self, file_logger: IdentityAuditLogger, tmp_path: Path
    ) -> None:
        file_logger.log_initialized("/state", has_key=False, unlocked=False)
        file_logger.log_key_set("5Abc", "generated", None)
        lines = (tmp_path / "nested" / "audit.jsonl").read_text().splitlines()
        assert len(lines) == 2

    def test_read_log_tail(self, file_logger: IdentityAuditLogger) -> None:
        for index in range(5):
            file_logger.log_event("event", index=index)
        events = file_logger.read_log(tail=2)
        assert [e["details"]["index"] for e in events] == [3, 4]  # type: ignore[index]

    def test_skips_corrupt_lines(
        self, file_logger: IdentityAuditLogger, tmp_path: Path
    ) -> None:
        file_logger.log_event("good")
        with (tmp_path / "nested" / "audit.jsonl").open("a") as fh:
            fh.write("{not json\n")
        assert len(file_logger.read_log()) == 1

    def test_write_failure_is_logged_not_raised(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "audit.jsonl"
        path.mkdir()
        broken = IdentityAuditLogger(log_path=path)
        with caplog.at_level(logging.ERROR, logger="identity_client.audit"):
            broken.log_event("keystore_locked", "5Abc")
        assert "keystore_locked" in caplog.text


class TestEventHelpers:
    def test_paperkey_event_carries_fingerprint_only(
        self, memory_logger: IdentityAuditLogger
    ) -> None:
        memory_logger.log_paperkey("5Abc", "0123456789abcdef", 3)
        event = memory_logger.read_log()[0]
        assert event["event_type"] == "paperkey_added"
        assert event["details"] == {"fingerprint": "0123456789abcdef", "uid": "3"}

    def test_proof_events(self, memory_logger: IdentityAuditLogger) -> None:
        memory_logger.log_proof("5Abc", "github", "octocat", "bcid")
        memory_logger.log_proof("5Abc", "github", "", "", revoked=True)
        kinds = [e["event_type"] for e in memory_logger.read_log()]
        assert kinds == ["proof_submitted", "proof_revoked"]

    def test_password_changed(self, memory_logger: IdentityAuditLogger) -> None:
        memory_logger.log_password_changed("5Abc")
        assert memory_logger.read_log()[0]["account_id"] == "5Abc"
