"""Notification log append and query."""

from __future__ import annotations

import json
from pathlib import Path
from threading import Lock
from typing import TYPE_CHECKING, Any, Iterator

from poolbet.models.notification import Notification, NotificationKind
from poolbet.storage.db import get_connection, init_schema

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

NotificationRow = tuple[int, str, int | None, str | None, int, str]


def prepare_row(note: Notification) -> NotificationRow:
    """Build a notifications row: (seq, kind, event_id, participant, ts, payload_json)."""
    return (
        note.seq,
        note.kind.value,
        note.event_id,
        note.participant,
        note.timestamp,
        json.dumps(note.payload),
    )


def append_notifications_batch(conn: DuckDBPyConnection, rows: list[NotificationRow]) -> None:
    if not rows:
        return
    conn.executemany(
        """
        INSERT INTO notifications (seq, kind, event_id, participant, ts, payload)
        VALUES (?, ?, ?, ?, ?, ?)
        """,
        rows,
    )


def stream_notifications(
    conn: DuckDBPyConnection,
    event_id: int | None = None,
    kind: NotificationKind | None = None,
) -> Iterator[Notification]:
    """Yield logged notifications in sequence order, optionally filtered."""
    conditions = []
    params: list[Any] = []
    if event_id is not None:
        conditions.append("event_id = ?")
        params.append(event_id)
    if kind is not None:
        conditions.append("kind = ?")
        params.append(kind.value)
    where = " AND ".join(conditions) if conditions else "1=1"
    rows = conn.execute(
        f"SELECT seq, kind, event_id, participant, ts, payload FROM notifications WHERE {where} ORDER BY seq ASC, id ASC",
        params,
    ).fetchall()
    for seq, kind_value, eid, participant, ts, payload_json in rows:
        payload = json.loads(payload_json) if isinstance(payload_json, str) else payload_json
        yield Notification(
            seq=seq,
            kind=NotificationKind(kind_value),
            timestamp=ts,
            event_id=eid,
            participant=participant,
            payload=payload or {},
        )


def log_stats(conn: DuckDBPyConnection) -> dict[str, Any]:
    """Return notification log statistics: total count, ts range, count by kind."""
    total = conn.execute("SELECT COUNT(*) FROM notifications").fetchone()[0]
    min_ts, max_ts = conn.execute("SELECT MIN(ts), MAX(ts) FROM notifications").fetchone()
    by_kind = conn.execute(
        "SELECT kind, COUNT(*) AS cnt FROM notifications GROUP BY kind ORDER BY cnt DESC, kind"
    ).fetchall()
    return {
        "total_notifications": total,
        "min_ts": min_ts,
        "max_ts": max_ts,
        "by_kind": [{"kind": r[0], "count": r[1]} for r in by_kind],
    }


class NotificationLogSink:
    """Notifier sink that buffers notifications and appends them to DuckDB in batches."""

    def __init__(self, db_path: str | Path, batch_size: int = 100) -> None:
        self.db_path = Path(db_path)
        self.batch_size = batch_size
        self._conn = None
        self._batch: list[NotificationRow] = []
        self._lock = Lock()

    def _get_conn(self):
        if self._conn is None:
            self._conn = get_connection(self.db_path)
            init_schema(self._conn)
        return self._conn

    def __call__(self, note: Notification) -> None:
        with self._lock:
            self._batch.append(prepare_row(note))
            if len(self._batch) >= self.batch_size:
                self._flush_locked()

    def _flush_locked(self) -> None:
        if not self._batch:
            return
        append_notifications_batch(self._get_conn(), self._batch)
        self._batch = []

    def flush(self) -> None:
        with self._lock:
            self._flush_locked()

    def close(self) -> None:
        with self._lock:
            self._flush_locked()
            if self._conn is not None:
                self._conn.close()
                self._conn = None
