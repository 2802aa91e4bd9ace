"""Log subcommand: show, export, stats."""

from __future__ import annotations

import json

import typer

from poolbet.models.notification import NotificationKind
from poolbet.storage.db import get_connection, init_schema
from poolbet.storage.export import export_notifications_to_parquet
from poolbet.storage.notification_log import log_stats, stream_notifications

app = typer.Typer(help="Notification log: inspect, export, statistics")


@app.command("show")
def show(
    ctx: typer.Context,
    event: int | None = typer.Option(None, "--event", "-e", help="Filter by event ID"),
    kind: NotificationKind | None = typer.Option(None, "--kind", "-k", help="Filter by notification kind"),
    limit: int = typer.Option(50, "--limit", "-n", help="Stop after this many notifications"),
) -> None:
    """Print logged notifications in sequence order."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        shown = 0
        for note in stream_notifications(conn, event_id=event, kind=kind):
            if shown >= limit:
                break
            who = note.participant or "-"
            eid = note.event_id if note.event_id is not None else "-"
            typer.echo(f"{note.seq:>6}  {note.timestamp}  {note.kind.value:<22} event={eid}  {who}  {json.dumps(note.payload)}")
            shown += 1
        if shown == 0:
            typer.echo("No notifications.")
    finally:
        conn.close()


@app.command("export")
def export(
    ctx: typer.Context,
    event: int | None = typer.Option(None, "--event", "-e", help="Filter by event ID"),
    kind: NotificationKind | None = typer.Option(None, "--kind", "-k", help="Filter by notification kind"),
    output: str = typer.Option("notifications.parquet", "--output", "-o", help="Output path"),
) -> None:
    """Export notifications to Parquet."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        count = export_notifications_to_parquet(conn, output, event_id=event, kind=kind)
        typer.echo(f"Exported {count} notifications to {output}")
    finally:
        conn.close()


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Show notification log statistics (counts, time range, by kind)."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = log_stats(conn)
        typer.echo(f"Total notifications: {s['total_notifications']}")
        typer.echo(f"Ts range: {s.get('min_ts')} .. {s.get('max_ts')}")
        for row in s["by_kind"]:
            typer.echo(f"  {row['kind']}  {row['count']}")
    finally:
        conn.close()
