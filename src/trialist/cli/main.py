"""CLI application using Typer for the Trialist trial processor."""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import typer
from rich.console import Console
from rich.table import Table

from ..analysis.gateway import AnalysisClient
from ..config.run_config import RunConfig
from ..config.settings import settings
from ..core.errors import ConfigurationError, TrialistError
from ..core.models import Trial
from ..io.repository import SQLiteSurveyRepository
from ..processor import RunSummary, TrialProcessor
from ..utils.logging import get_logger

app = typer.Typer(
    name="trialist",
    help="Trialist - process completed N-of-1 trials and store their analysis",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


def _load_config(
    params: Optional[str],
    reprocess: bool,
    reprocess_all: bool,
    trial_end_date: Optional[datetime],
    campaign_id: Optional[str],
) -> RunConfig:
    values: Dict[str, Any] = {"reprocess": reprocess, "reprocess-all": reprocess_all}
    if trial_end_date is not None:
        values["trial-end-date"] = trial_end_date.date()
    if campaign_id is not None:
        values["campaign-id"] = campaign_id
    try:
        if params:
            if reprocess or reprocess_all or trial_end_date is not None or campaign_id is not None:
                raise ConfigurationError("--params cannot be combined with other run options")
            return RunConfig.from_json(params)
        return RunConfig.from_mapping(values)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)


def _open_repository() -> SQLiteSurveyRepository:
    if settings.database_path is None:
        raise ConfigurationError("TRIALIST_DATABASE_PATH is not set")
    if not Path(settings.database_path).is_file():
        raise ConfigurationError(f"Survey database not found: {settings.database_path}")
    return SQLiteSurveyRepository(settings.database_path)


def _print_trials(trials: List[Trial], title: str) -> None:
    table = Table(title=title)
    table.add_column("Participant", style="cyan")
    table.add_column("Setup survey", style="white")
    table.add_column("Start", style="green")
    table.add_column("End", style="green")
    table.add_column("Days", style="yellow", justify="right")
    for trial in trials:
        table.add_row(
            trial.participant_id,
            trial.setup.survey_key,
            trial.start_date.isoformat(),
            trial.end_date.isoformat(),
            str(trial.setup.total_days + 1),
        )
    console.print(table)


def _print_summary(summary: RunSummary) -> None:
    table = Table(title="Run Summary")
    table.add_column("Stage", style="cyan")
    table.add_column("Trials", style="green", justify="right")
    table.add_row("Resolved", str(summary.resolved))
    table.add_row("Eligible", str(summary.eligible))
    table.add_row("Failed normalization", str(summary.failed_normalization))
    table.add_row("Failed submission", str(summary.failed_submission))
    table.add_row("[bold]Processed[/bold]", f"[bold]{summary.processed}[/bold]")
    console.print(table)


@app.command()
def run(
    reprocess: bool = typer.Option(False, "--reprocess", help="Also process trials that already have a result"),
    reprocess_all: bool = typer.Option(False, "--reprocess-all", help="Process every completed trial"),
    trial_end_date: Optional[datetime] = typer.Option(
        None, "--trial-end-date", formats=["%Y-%m-%d"], help="Trial end date to process (default: yesterday)"
    ),
    campaign_id: Optional[str] = typer.Option(None, "--campaign-id", "-c", help="Campaign identifier"),
    params: Optional[str] = typer.Option(
        None, "--params", help='Run parameters as one JSON object, e.g. {"reprocess": true, "trial-end-date": "2020-02-11"}'
    ),
) -> None:
    """Process completed trials and store their analysis results."""
    logger.info(f"Starting program run at {datetime.now().isoformat()}")
    run_config = _load_config(params, reprocess, reprocess_all, trial_end_date, campaign_id)
    summary: Optional[RunSummary] = None
    try:
        with _open_repository() as repository, AnalysisClient() as gateway:
            processor = TrialProcessor(repository, run_config, gateway=gateway)
            console.print(
                f"[bold blue]Processing trials[/bold blue] for {run_config.campaign_id} "
                f"ending {processor.target_end_date.isoformat()}"
            )
            summary = processor.new_summary()
            processor.run(summary)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)
    except TrialistError as e:
        logger.exception(f"Run aborted: {e}")
        console.print(f"[red]Run aborted: {e}[/red]")
        if summary is not None:
            _print_summary(summary)
            console.print(f"Processed {summary.processed} trial(s) before the run was aborted")
        raise typer.Exit(1)
    finally:
        processed = summary.processed if summary else 0
        logger.info(f"Processed {processed} trials.")
        logger.info(f"Ending program run at {datetime.now().isoformat()}")

    _print_summary(summary)
    console.print(f"\n[bold green]✓ Processed {summary.processed} trial(s)[/bold green]")


@app.command()
def trials(
    reprocess: bool = typer.Option(False, "--reprocess", help="Include trials that already have a result"),
    reprocess_all: bool = typer.Option(False, "--reprocess-all", help="Include every completed trial"),
    trial_end_date: Optional[datetime] = typer.Option(
        None, "--trial-end-date", formats=["%Y-%m-%d"], help="Trial end date to select (default: yesterday)"
    ),
    campaign_id: Optional[str] = typer.Option(None, "--campaign-id", "-c", help="Campaign identifier"),
    show_all: bool = typer.Option(False, "--all", help="Also list resolved trials that are not selected"),
) -> None:
    """List the trials a run would process, without normalizing or submitting them."""
    run_config = _load_config(None, reprocess, reprocess_all, trial_end_date, campaign_id)
    try:
        with _open_repository() as repository:
            processor = TrialProcessor(repository, run_config)
            resolved, selected = processor.select()
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2)
    except TrialistError as e:
        console.print(f"[red]Could not resolve trials: {e}[/red]")
        raise typer.Exit(1)

    if show_all:
        _print_trials(resolved, "Resolved Trials")
    _print_trials(selected, f"Trials to process (end date {processor.target_end_date.isoformat()})")
    console.print(f"{len(selected)} of {len(resolved)} trial(s) selected")


if __name__ == "__main__":
    app()
