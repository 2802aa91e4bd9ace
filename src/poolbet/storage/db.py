"""DuckDB connection and schema init."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import duckdb

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

SCHEMA_SQL = """
CREATE SEQUENCE IF NOT EXISTS notification_seq START 1;

-- Notification log (append-only)
CREATE TABLE IF NOT EXISTS notifications (
    id              BIGINT PRIMARY KEY DEFAULT nextval('notification_seq'),
    seq             BIGINT NOT NULL,
    kind            VARCHAR NOT NULL,
    event_id        BIGINT,
    participant     VARCHAR,
    ts              BIGINT NOT NULL,
    payload         JSON NOT NULL
);

-- Ledger snapshot: events
CREATE TABLE IF NOT EXISTS events (
    event_id            BIGINT PRIMARY KEY,
    home_team           VARCHAR NOT NULL,
    away_team           VARCHAR NOT NULL,
    competition         VARCHAR NOT NULL,
    start_time          BIGINT NOT NULL,
    status              VARCHAR NOT NULL,
    result              INTEGER NOT NULL,
    total_pool          BIGINT NOT NULL,
    home_pool           BIGINT NOT NULL,
    draw_pool           BIGINT NOT NULL,
    away_pool           BIGINT NOT NULL,
    home_count          INTEGER NOT NULL,
    draw_count          INTEGER NOT NULL,
    away_count          INTEGER NOT NULL,
    fee_bps             INTEGER NOT NULL DEFAULT 0,
    fee_amount          BIGINT NOT NULL,
    dust_amount         BIGINT NOT NULL,
    total_claimed       BIGINT NOT NULL,
    created_at          BIGINT,
    closed_at           BIGINT,
    resolved_at         BIGINT,
    cancelled_at        BIGINT,
    cancellation_reason VARCHAR
);

-- Ledger snapshot: stakes, one per (event, participant)
CREATE TABLE IF NOT EXISTS stakes (
    event_id        BIGINT NOT NULL,
    participant     VARCHAR NOT NULL,
    amount          BIGINT NOT NULL,
    outcome         INTEGER NOT NULL,
    claimed         BOOLEAN NOT NULL,
    placed_at       BIGINT,
    payout          BIGINT,
    claimed_at      BIGINT,
    PRIMARY KEY (event_id, participant)
);

-- Ledger snapshot: global aggregates as key/value rows
CREATE TABLE IF NOT EXISTS ledger_stats (
    name            VARCHAR PRIMARY KEY,
    value           BIGINT NOT NULL
);

-- Ledger snapshot: per-participant aggregates
CREATE TABLE IF NOT EXISTS participant_stats (
    participant     VARCHAR PRIMARY KEY,
    total_stakes    BIGINT NOT NULL,
    total_wagered   BIGINT NOT NULL,
    total_won       BIGINT NOT NULL,
    total_claimed   BIGINT NOT NULL,
    total_profit    BIGINT NOT NULL,
    win_count       BIGINT NOT NULL,
    refund_count    BIGINT NOT NULL,
    first_stake_at  BIGINT,
    last_activity_at BIGINT
);
"""


def get_connection(db_path: str | Path, read_only: bool = False) -> DuckDBPyConnection:
    """Return a DuckDB connection. Caller must close or use as context manager."""
    path = Path(db_path)
    if not read_only:
        path.parent.mkdir(parents=True, exist_ok=True)
    return duckdb.connect(str(path), read_only=read_only)


def init_schema(conn: DuckDBPyConnection) -> None:
    """Create tables and sequences if they do not exist."""
    for stmt in SCHEMA_SQL.split(";"):
        stmt = stmt.strip()
        if stmt:
            try:
                conn.execute(stmt)
            except duckdb.Error as e:
                if "already exists" not in str(e).lower():
                    raise
