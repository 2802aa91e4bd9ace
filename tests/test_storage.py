"""DuckDB persistence: ledger snapshot round trip and the notification log."""

import tempfile
from pathlib import Path

import pytest

from conftest import after_grace, new_event
from poolbet.ledger import LedgerConfig, SettlementLedger
from poolbet.ledger.errors import AlreadyClaimed
from poolbet.models import EventStatus, NotificationKind, Outcome
from poolbet.storage.db import get_connection, init_schema
from poolbet.storage.export import export_notifications_to_parquet
from poolbet.storage.ledger_store import (
    ledger_summary,
    load_ledger,
    load_stats,
    pool_mismatches,
    save_ledger,
)
from poolbet.storage.notification_log import (
    NotificationLogSink,
    log_stats,
    stream_notifications,
)

CONFIG = LedgerConfig(min_stake=1, max_stake=1_000_000, fee_bps=100, max_batch_size=10)


@pytest.fixture
def temp_db():
    tmp = tempfile.mkdtemp()
    path = Path(tmp) / "test.duckdb"
    conn = get_connection(path)
    init_schema(conn)
    yield conn
    conn.close()
    path.unlink(missing_ok=True)
    Path(tmp).rmdir()


@pytest.fixture
def scenario(ledger, clock):
    """One resolved (partly claimed), one cancelled, one open event."""
    resolved, cancelled = new_event(ledger), new_event(ledger)
    ledger.record_stake(resolved, "alice", Outcome.HOME, 100)
    ledger.record_stake(resolved, "bob", Outcome.AWAY, 200)
    ledger.record_stake(resolved, "carol", Outcome.HOME, 200)
    ledger.record_stake(cancelled, "bob", Outcome.DRAW, 70)
    ledger.cancel(cancelled, "postponed")
    after_grace(clock)
    ledger.resolve(resolved, Outcome.HOME)
    ledger.claim(resolved, "alice")
    opened = new_event(ledger, start=clock.now + 3600)
    ledger.record_stake(opened, "dave", Outcome.AWAY, 40)
    return {"resolved": resolved, "cancelled": cancelled, "open": opened}


def test_ledger_round_trip(temp_db, ledger, scenario):
    assert save_ledger(temp_db, ledger) == 3
    restored = load_ledger(temp_db, config=CONFIG)

    assert restored.verify_conservation() == []
    assert pool_mismatches(temp_db) == []
    assert [e.model_dump() for e in restored.list_events()] == [e.model_dump() for e in ledger.list_events()]
    assert restored.global_stats() == ledger.global_stats()
    assert restored.participant_stats("alice") == ledger.participant_stats("alice")


def test_restored_ledger_keeps_working(temp_db, ledger, clock, scenario):
    save_ledger(temp_db, ledger)
    restored = load_ledger(temp_db, config=CONFIG)

    with pytest.raises(AlreadyClaimed):
        restored.claim(scenario["resolved"], "alice")
    assert restored.claim(scenario["resolved"], "carol") == ledger.get_claimable(scenario["resolved"], "carol").amount
    assert restored.claim(scenario["cancelled"], "bob") == 70
    restored.record_stake(scenario["open"], "erin", Outcome.HOME, 10, now=clock.now)
    assert restored.get_pools(scenario["open"]).total == 50
    # ids continue after the stored maximum
    assert restored.create_event(
        {"home_team": "Leeds", "away_team": "Everton", "competition": "Cup"},
        restored.clock() + 100,
    ) == scenario["open"] + 1
    assert restored.verify_conservation() == []


def test_aggregates_rebuilt_when_not_stored(temp_db, ledger, scenario):
    save_ledger(temp_db, ledger)
    temp_db.execute("DELETE FROM ledger_stats")
    assert load_stats(temp_db) is None
    restored = load_ledger(temp_db, config=CONFIG)
    saved = ledger.global_stats()
    rebuilt = restored.global_stats()
    assert rebuilt.total_stakes == saved.total_stakes
    assert rebuilt.total_volume == saved.total_volume
    assert rebuilt.fee_balance == saved.fee_balance
    assert rebuilt.total_paid_out == saved.total_paid_out
    assert rebuilt.resolved_events == 1
    assert rebuilt.cancelled_events == 1
    assert rebuilt.active_events == 1
    assert restored.participant_stats("alice").total_claimed == ledger.participant_stats("alice").total_claimed


def test_pool_mismatch_detected(temp_db, ledger, scenario):
    save_ledger(temp_db, ledger)
    temp_db.execute("UPDATE events SET home_pool = home_pool + 1 WHERE event_id = ?", [scenario["resolved"]])
    rows = pool_mismatches(temp_db)
    assert [r["event_id"] for r in rows] == [scenario["resolved"]]


def test_ledger_summary(temp_db, ledger, scenario):
    save_ledger(temp_db, ledger)
    s = ledger_summary(temp_db)
    by_status = {row["status"]: row for row in s["by_status"]}
    assert by_status[EventStatus.RESOLVED.value]["pool"] == 500
    assert by_status[EventStatus.CANCELLED.value]["events"] == 1
    assert s["stakes"] == 5
    assert s["participants"] == 4
    assert s["stats"]["total_events"] == 3


def test_notification_log_sink(tmp_path, ledger, clock):
    db_path = tmp_path / "log.duckdb"
    sink = NotificationLogSink(db_path, batch_size=3)
    ledger.subscribe(sink)
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 100)
    ledger.record_stake(eid, "bob", Outcome.AWAY, 100)
    after_grace(clock)
    ledger.resolve(eid, Outcome.HOME)
    ledger.claim(eid, "alice")
    sink.close()

    conn = get_connection(db_path)
    try:
        stats = log_stats(conn)
        assert stats["total_notifications"] == len(ledger.notifier.history)
        by_kind = {row["kind"]: row["count"] for row in stats["by_kind"]}
        assert by_kind[NotificationKind.STAKE_PLACED.value] == 2
        assert by_kind[NotificationKind.EVENT_CLOSED.value] == 1

        logged = list(stream_notifications(conn, event_id=eid))
        assert [n.seq for n in logged] == sorted(n.seq for n in logged)
        assert logged == [n for n in ledger.notifier.history if n.event_id == eid]

        claims = list(stream_notifications(conn, kind=NotificationKind.CLAIM_PAID))
        assert len(claims) == 1
        assert claims[0].payload["amount"] == 198
        assert claims[0].payload["payout_kind"] == "WINNINGS"

        out = tmp_path / "export" / "notes.parquet"
        assert export_notifications_to_parquet(conn, out, event_id=eid) == len(logged)
        assert out.exists()
    finally:
        conn.close()


def test_failing_sink_does_not_break_ledger(ledger):
    def broken(note):
        raise RuntimeError("indexer down")

    ledger.subscribe(broken)
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 100)
    assert ledger.get_pools(eid).total == 100


def test_notifier_keeps_no_history_by_default(tmp_path, clock):
    ledger = SettlementLedger(CONFIG, clock=clock)
    sink = NotificationLogSink(tmp_path / "log.duckdb")
    ledger.subscribe(sink)
    eid = new_event(ledger)
    ledger.record_stake(eid, "alice", Outcome.HOME, 100)
    assert ledger.notifier.history == []
    sink.close()
    conn = get_connection(tmp_path / "log.duckdb")
    try:
        assert log_stats(conn)["total_notifications"] == 2
    finally:
        conn.close()


def test_export_filters_by_kind(tmp_path, ledger, clock):
    db_path = tmp_path / "log.duckdb"
    sink = NotificationLogSink(db_path)
    ledger.subscribe(sink)
    first, second = new_event(ledger), new_event(ledger)
    for eid in (first, second):
        ledger.record_stake(eid, "alice", Outcome.HOME, 100)
        ledger.record_stake(eid, "bob", Outcome.DRAW, 100)
    sink.close()

    conn = get_connection(db_path)
    try:
        out = tmp_path / "stakes.parquet"
        assert export_notifications_to_parquet(conn, out, kind=NotificationKind.STAKE_PLACED) == 4
        assert export_notifications_to_parquet(conn, out, event_id=second, kind=NotificationKind.STAKE_PLACED) == 2
        exported = conn.execute(f"SELECT kind, event_id FROM read_parquet('{out.as_posix()}')").fetchall()
        assert exported == [(NotificationKind.STAKE_PLACED.value, second)] * 2
        assert export_notifications_to_parquet(conn, out, kind=NotificationKind.CLAIM_PAID) == 0
    finally:
        conn.close()
