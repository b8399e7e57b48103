"""Typer CLI entry point."""

from __future__ import annotations

from typing import Optional

import typer

from ecotrack.config import Settings
from ecotrack.db.client import ping
from ecotrack.service import EcoTrackService
from ecotrack.store.postgres import PostgresLedgerStore, apply_schema
from ecotrack.utils.logging import configure_logging, get_logger


app = typer.Typer(help="EcoTrack report lifecycle CLI")
db_app = typer.Typer(help="Database utilities")
dispatch_app = typer.Typer(help="Collection task dispatch")
rewards_app = typer.Typer(help="Reward settlement")
leaderboard_app = typer.Typer(help="Leaderboard views")

app.add_typer(db_app, name="db")
app.add_typer(dispatch_app, name="dispatch")
app.add_typer(rewards_app, name="rewards")
app.add_typer(leaderboard_app, name="leaderboard")

logger = get_logger(__name__)


def build_service(settings: Optional[Settings] = None) -> EcoTrackService:
    """Wire the service against the configured Postgres database."""
    settings = settings or Settings()
    return EcoTrackService(PostgresLedgerStore(settings), settings)


@app.callback()
def main() -> None:
    """Initialize logging for all commands."""
    settings = Settings()
    configure_logging(settings.log_level, settings.run_env)


@db_app.command("check")
def db_check() -> None:
    """Check database connectivity."""
    try:
        ping()
        logger.info("db.check.ok")
    except Exception as exc:
        logger.error("db.check.failed: %s", exc)
        typer.echo(f"Database check failed: {exc}", err=True)
        raise typer.Exit(1)


@db_app.command("init")
def db_init() -> None:
    """Create the ledger tables if they do not exist."""
    apply_schema(Settings())
    typer.echo("Schema applied")


@dispatch_app.command("sweep")
def dispatch_sweep() -> None:
    """Retry queued dispatches and repair missing or stale tasks (for cron)."""
    result = build_service().dispatcher.sweep()
    typer.echo(
        f"dispatched={result.dispatched} still_queued={result.still_queued} "
        f"dropped={result.dropped} repaired={result.repaired} closed={result.closed} "
        f"withdrawn={result.withdrawn}"
    )


@rewards_app.command("settle")
def rewards_settle() -> None:
    """Finish rewards whose coins or profile credit never landed."""
    settled = build_service().rewards.settle_pending()
    typer.echo(f"settled={settled}")


@leaderboard_app.command("show")
def leaderboard_show(
    limit: Optional[int] = typer.Option(None, help="Rows to show (default from env)"),
) -> None:
    """Print the current leaderboard."""
    service = build_service()
    if limit is None:
        limit = service.settings.leaderboard_default_limit
    for entry in service.leaderboard.refresh()[:limit]:
        typer.echo(
            f"{entry.rank:>3}  {entry.username:<24} coins={entry.eco_coins} "
            f"reports={entry.total_reports} level={entry.level}"
        )


if __name__ == "__main__":
    app()
