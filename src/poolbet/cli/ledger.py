"""Ledger subcommand: summary, verify."""

from __future__ import annotations

import typer

from poolbet.storage.db import get_connection, init_schema
from poolbet.storage.ledger_store import ledger_summary, load_ledger, pool_mismatches

app = typer.Typer(help="Inspect and verify the persisted ledger snapshot")


@app.command("summary")
def summary(ctx: typer.Context) -> None:
    """Show events by status and stored aggregates."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = ledger_summary(conn)
        for row in s["by_status"]:
            typer.echo(f"{row['status']:<10} events={row['events']}  pool={row['pool']}")
        typer.echo(f"Stakes: {s['stakes']}  Participants: {s['participants']}")
        for name, value in s["stats"].items():
            typer.echo(f"  {name}: {value}")
    finally:
        conn.close()


@app.command("verify")
def verify(ctx: typer.Context) -> None:
    """Check pool and payout conservation for every stored event. Exit 1 on any violation."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        problems = [
            f"event {row['event_id']}: stored pools/claims disagree with stakes {row}"
            for row in pool_mismatches(conn)
        ]
        ledger = load_ledger(conn, config=settings.ledger_config())
        problems.extend(ledger.verify_conservation())
    finally:
        conn.close()
    if problems:
        for p in problems:
            typer.echo(p)
        raise typer.Exit(1)
    typer.echo("Ledger consistent.")
