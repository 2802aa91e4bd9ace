"""Export the notification log to Parquet."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Any

from poolbet.models.notification import NotificationKind

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection


def _filter(event_id: int | None, kind: NotificationKind | None) -> tuple[str, list[Any]]:
    conditions = []
    params: list[Any] = []
    if event_id is not None:
        conditions.append("event_id = ?")
        params.append(int(event_id))
    if kind is not None:
        conditions.append("kind = ?")
        params.append(NotificationKind(kind).value)
    return (" AND ".join(conditions) if conditions else "1=1"), params


def export_notifications_to_parquet(
    conn: DuckDBPyConnection,
    output_path: str | Path,
    event_id: int | None = None,
    kind: NotificationKind | None = None,
) -> int:
    """Export notifications in sequence order to a Parquet file, optionally filtered. Returns row count."""
    path = Path(output_path).resolve()
    path.parent.mkdir(parents=True, exist_ok=True)
    path_str = str(path).replace("\\", "\\\\").replace("'", "''")
    where, params = _filter(event_id, kind)
    # COPY takes no bound parameters; select into a temp table first
    conn.execute("DROP TABLE IF EXISTS notifications_export")
    conn.execute(
        f"CREATE TEMP TABLE notifications_export AS SELECT * FROM notifications WHERE {where} ORDER BY seq, id",
        params,
    )
    try:
        conn.execute(f"COPY (SELECT * FROM notifications_export ORDER BY seq, id) TO '{path_str}' (FORMAT PARQUET)")
        count = conn.execute("SELECT COUNT(*) FROM notifications_export").fetchone()[0]
    finally:
        conn.execute("DROP TABLE IF EXISTS notifications_export")
    return count
