from __future__ import annotations

import json
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from debriefer.config import settings
from debriefer.data.repositories import MissionRepository, PilotRepository
from debriefer.data.storage import Database
from debriefer.exceptions import ConfigError
from debriefer.ledger import KillLedgerStore, UnitCatalog
from debriefer.ledger.catalog import load_catalog_file
from debriefer.summary import MissionSummaryAggregator

cli = typer.Typer(help="Debriefer CLI (kill ledger and mission summaries)")


def _database(db_path: Optional[Path]) -> Database:
    return Database(db_path or settings.paths.db_path)


@cli.command()
def version() -> None:
    """Print runtime version."""
    typer.echo(f"{settings.app.name} {settings.app.version}")


@cli.command()
def serve(
    host: str = typer.Option("127.0.0.1", help="Host to bind"),
    port: int = typer.Option(8000, help="Port to bind"),
    reload: bool = typer.Option(False, help="Enable autoreload for local development"),
) -> None:
    """Run the Debriefer API server."""
    uvicorn.run(
        "debriefer.api.main:app",
        host=host,
        port=port,
        reload=reload,
        app_dir="src",
    )


@cli.command("seed-catalog")
def seed_catalog(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="YAML or JSON unit list"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Database path (defaults to settings)"),
) -> None:
    """Load unit types into the catalog; existing type names are kept."""
    try:
        units = load_catalog_file(file)
    except ConfigError as exc:
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1)
    added = UnitCatalog(_database(db_path)).seed(units)
    typer.echo(f"Seeded {added} of {len(units)} unit types")


@cli.command()
def summary(
    mission_debriefing_id: str = typer.Argument(..., help="Mission debrief id"),
    db_path: Optional[Path] = typer.Option(None, "--db", help="Database path (defaults to settings)"),
) -> None:
    """Print the mission summary as JSON."""
    db = _database(db_path)
    catalog = UnitCatalog(db)
    store = KillLedgerStore(db, catalog, PilotRepository(db))
    result = MissionSummaryAggregator(MissionRepository(db), store, catalog).get_mission_summary(mission_debriefing_id)
    typer.echo(json.dumps(result.model_dump(mode="json"), indent=2, ensure_ascii=False))


if __name__ == "__main__":
    cli()
