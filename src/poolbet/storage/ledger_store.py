"""Ledger snapshot persistence: events, stakes, aggregates."""

from __future__ import annotations

from dataclasses import asdict, fields
from typing import TYPE_CHECKING, Any

import structlog

from poolbet.ledger.config import LedgerConfig
from poolbet.ledger.custody import Custody
from poolbet.ledger.engine import SettlementLedger
from poolbet.models.event import Event, EventStatus, Outcome
from poolbet.models.stake import Stake
from poolbet.models.stats import GlobalStats, ParticipantStats

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

_EVENT_COLUMNS = [
    "event_id", "home_team", "away_team", "competition", "start_time", "status", "result",
    "total_pool", "home_pool", "draw_pool", "away_pool", "home_count", "draw_count", "away_count",
    "fee_bps", "fee_amount", "dust_amount", "total_claimed", "created_at", "closed_at", "resolved_at",
    "cancelled_at", "cancellation_reason",
]
_STAKE_COLUMNS = ["event_id", "participant", "amount", "outcome", "claimed", "placed_at", "payout", "claimed_at"]
_PARTICIPANT_COLUMNS = [f.name for f in fields(ParticipantStats)]


def _placeholders(n: int) -> str:
    return ", ".join("?" * n)


def _event_row(event: Event) -> list[Any]:
    row = event.model_dump()
    row["status"] = event.status.value
    row["result"] = int(event.result)
    return [row[c] for c in _EVENT_COLUMNS]


def _stake_row(stake: Stake) -> list[Any]:
    row = stake.model_dump()
    row["outcome"] = int(stake.outcome)
    return [row[c] for c in _STAKE_COLUMNS]


def save_ledger(conn: DuckDBPyConnection, ledger: SettlementLedger) -> int:
    """Replace the stored snapshot with the ledger's current state. Returns events written."""
    events, stakes, stats, participants = ledger.snapshot()
    conn.begin()
    try:
        conn.execute("DELETE FROM events")
        conn.execute("DELETE FROM stakes")
        conn.execute("DELETE FROM ledger_stats")
        conn.execute("DELETE FROM participant_stats")
        if events:
            conn.executemany(
                f"INSERT INTO events ({', '.join(_EVENT_COLUMNS)}) VALUES ({_placeholders(len(_EVENT_COLUMNS))})",
                [_event_row(e) for e in events],
            )
        if stakes:
            conn.executemany(
                f"INSERT INTO stakes ({', '.join(_STAKE_COLUMNS)}) VALUES ({_placeholders(len(_STAKE_COLUMNS))})",
                [_stake_row(s) for s in stakes],
            )
        conn.executemany(
            "INSERT INTO ledger_stats (name, value) VALUES (?, ?)",
            list(asdict(stats).items()),
        )
        if participants:
            conn.executemany(
                f"INSERT INTO participant_stats ({', '.join(_PARTICIPANT_COLUMNS)}) "
                f"VALUES ({_placeholders(len(_PARTICIPANT_COLUMNS))})",
                [[getattr(p, c) for c in _PARTICIPANT_COLUMNS] for p in participants],
            )
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    log.info("ledger_saved", events=len(events), stakes=len(stakes))
    return len(events)


def load_events(conn: DuckDBPyConnection) -> list[Event]:
    rows = conn.execute(f"SELECT {', '.join(_EVENT_COLUMNS)} FROM events ORDER BY event_id").fetchall()
    out = []
    for r in rows:
        data = dict(zip(_EVENT_COLUMNS, r))
        data["status"] = EventStatus(data["status"])
        data["result"] = Outcome(data["result"])
        out.append(Event(**data))
    return out


def load_stakes(conn: DuckDBPyConnection) -> list[Stake]:
    rows = conn.execute(
        f"SELECT {', '.join(_STAKE_COLUMNS)} FROM stakes ORDER BY event_id, placed_at, participant"
    ).fetchall()
    out = []
    for r in rows:
        data = dict(zip(_STAKE_COLUMNS, r))
        data["outcome"] = Outcome(data["outcome"])
        out.append(Stake(**data))
    return out


def load_stats(conn: DuckDBPyConnection) -> tuple[GlobalStats, list[ParticipantStats]] | None:
    rows = conn.execute("SELECT name, value FROM ledger_stats").fetchall()
    if not rows:
        return None
    known = {f.name for f in fields(GlobalStats)}
    stats = GlobalStats(**{name: value for name, value in rows if name in known})
    prows = conn.execute(f"SELECT {', '.join(_PARTICIPANT_COLUMNS)} FROM participant_stats").fetchall()
    return stats, [ParticipantStats(**dict(zip(_PARTICIPANT_COLUMNS, r))) for r in prows]


def load_ledger(
    conn: DuckDBPyConnection,
    config: LedgerConfig | None = None,
    custody: Custody | None = None,
) -> SettlementLedger:
    """Rebuild a ledger from the stored snapshot."""
    ledger = SettlementLedger(config=config, custody=custody)
    saved = load_stats(conn)
    stats, participants = saved if saved else (None, None)
    ledger.restore(load_events(conn), load_stakes(conn), stats, participants)
    return ledger


def pool_mismatches(conn: DuckDBPyConnection) -> list[dict[str, Any]]:
    """Events whose stored pools disagree with their stored stakes."""
    rows = conn.execute(
        """
        SELECT e.event_id, e.total_pool,
               COALESCE(SUM(s.amount), 0) AS staked,
               e.home_pool + e.draw_pool + e.away_pool AS outcome_sum,
               e.total_claimed,
               COALESCE(SUM(CASE WHEN s.claimed THEN s.payout ELSE 0 END), 0) AS paid
        FROM events e
        LEFT JOIN stakes s ON s.event_id = e.event_id
        GROUP BY e.event_id, e.total_pool, e.home_pool, e.draw_pool, e.away_pool, e.total_claimed
        HAVING e.total_pool != COALESCE(SUM(s.amount), 0)
            OR e.total_pool != e.home_pool + e.draw_pool + e.away_pool
            OR e.total_claimed != COALESCE(SUM(CASE WHEN s.claimed THEN s.payout ELSE 0 END), 0)
        ORDER BY e.event_id
        """
    ).fetchall()
    columns = ["event_id", "total_pool", "staked", "outcome_sum", "total_claimed", "paid"]
    return [dict(zip(columns, r)) for r in rows]


def ledger_summary(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Counts by status plus stored aggregates."""
    by_status = conn.execute(
        "SELECT status, COUNT(*), COALESCE(SUM(total_pool), 0) FROM events GROUP BY status ORDER BY status"
    ).fetchall()
    stakes = conn.execute("SELECT COUNT(*), COUNT(DISTINCT participant) FROM stakes").fetchone()
    stats = dict(conn.execute("SELECT name, value FROM ledger_stats ORDER BY name").fetchall())
    return {
        "by_status": [{"status": r[0], "events": r[1], "pool": r[2]} for r in by_status],
        "stakes": stakes[0],
        "participants": stakes[1],
        "stats": stats,
    }
