"""Tests for the append-only event log — hashing, persistence and recovery."""

import json

import pytest
from datetime import datetime, timezone

from nftmarket.persistence.event_log import EventKind, EventLog, EventRecord


def _now() -> datetime:
    return datetime(2026, 2, 16, 12, 0, 0, tzinfo=timezone.utc)


def _event(event_id: str = "EVT-00000001", **payload) -> EventRecord:
    return EventRecord.create(
        event_id=event_id,
        event_kind=EventKind.NEW_BID,
        actor_id="alice",
        payload=payload or {"bidder": "alice", "collection": "punks", "item": "7", "amount": 15},
        timestamp_utc=_now(),
    )


class TestEventRecord:
    def test_hash_is_deterministic(self) -> None:
        assert _event().event_hash == _event().event_hash
        assert _event().event_hash.startswith("sha256:")

    def test_hash_covers_payload(self) -> None:
        a = _event(bidder="alice", amount=15)
        b = _event(bidder="alice", amount=16)
        assert a.event_hash != b.event_hash

    def test_timestamp_normalised_to_utc(self) -> None:
        assert _event().timestamp_utc == "2026-02-16T12:00:00Z"

    def test_to_dict(self) -> None:
        data = _event().to_dict()
        assert data["event_kind"] == "new_bid"
        assert data["actor_id"] == "alice"


class TestEventLog:
    def test_append_and_filter(self) -> None:
        log = EventLog()
        log.append(_event("EVT-00000001"))
        log.append(EventRecord.create(
            event_id="EVT-00000002",
            event_kind=EventKind.FEE_RATE_CHANGED,
            actor_id="admin",
            payload={"administrator": "admin", "old_fee_rate": 5, "fee_rate": 7},
            timestamp_utc=_now(),
        ))
        assert log.count == 2
        assert len(log.events(EventKind.NEW_BID)) == 1
        assert log.last_event.event_id == "EVT-00000002"

    def test_events_for_key(self) -> None:
        log = EventLog()
        log.append(_event("EVT-00000001", collection="punks", item="7"))
        log.append(_event("EVT-00000002", collection="punks", item="8"))
        assert [e.event_id for e in log.events_for("punks", "8")] == ["EVT-00000002"]

    def test_events_since(self) -> None:
        log = EventLog()
        log.append(_event())
        assert len(log.events_since("2026-02-16T00:00:00Z")) == 1
        assert log.events_since("2026-02-17T00:00:00Z") == []

    def test_duplicate_id_rejected(self) -> None:
        log = EventLog()
        log.append(_event())
        with pytest.raises(ValueError, match="Duplicate event ID"):
            log.append(_event())
        assert log.count == 1


class TestEventLogPersistence:
    def test_round_trip(self, tmp_path) -> None:
        path = tmp_path / "nested" / "events.jsonl"
        log = EventLog(storage_path=path)
        log.append(_event("EVT-00000001"))
        log.append(_event("EVT-00000002", amount=20))

        reloaded = EventLog(storage_path=path)
        assert reloaded.count == 2
        assert reloaded.events()[1].payload == {"amount": 20}
        assert reloaded.events()[0].event_kind == EventKind.NEW_BID

    def test_tampered_record_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        EventLog(storage_path=path).append(_event())

        record = json.loads(path.read_text(encoding="utf-8"))
        record["payload"]["amount"] = 1
        path.write_text(json.dumps(record) + "\n", encoding="utf-8")

        with pytest.raises(ValueError, match="Integrity check failed"):
            EventLog(storage_path=path)

    def test_duplicate_on_recovery_rejected(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        line = json.dumps(_event().to_dict())
        path.write_text(line + "\n" + line + "\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Duplicate event ID on recovery"):
            EventLog(storage_path=path)

    def test_blank_lines_ignored(self, tmp_path) -> None:
        path = tmp_path / "events.jsonl"
        path.write_text("\n" + json.dumps(_event().to_dict()) + "\n\n", encoding="utf-8")
        assert EventLog(storage_path=path).count == 1

    def test_failed_write_leaves_log_unchanged(self, tmp_path, monkeypatch) -> None:
        log = EventLog(storage_path=tmp_path / "events.jsonl")

        def _fail(event) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(log, "_append_to_file", _fail)
        with pytest.raises(OSError):
            log.append(_event())
        assert log.count == 0
