"""CLI entry point for fiscalsync."""

import logging
import re
import sys
from datetime import date, datetime, time
from pathlib import Path

import click

from .config import load_settings
from .domain.models import (
    DocumentCategory,
    OutcomeStatus,
    RetrievalMode,
    RunSummary,
)
from .errors import FiscalSyncError
from .scheduler import ScheduleManager, run_scheduler
from .wiring import build_components

logger = logging.getLogger(__name__)

DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
CATEGORY_CHOICE = click.Choice([c.value for c in DocumentCategory])


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # httpx logs every request URL, which carries the API key
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("filelock").setLevel(logging.INFO)


def parse_date_range(date_range: str) -> tuple[date, date]:
    """Parse YYYY-MM-DD..YYYY-MM-DD (or a single day) into (start, end)."""
    if ".." in date_range:
        start, end = date_range.split("..", 1)
    else:
        start = end = date_range
    if not DATE_PATTERN.match(start) or not DATE_PATTERN.match(end):
        raise click.BadParameter("Date range must be YYYY-MM-DD..YYYY-MM-DD")
    try:
        first, last = date.fromisoformat(start), date.fromisoformat(end)
    except ValueError as e:
        raise click.BadParameter(str(e)) from None
    if first > last:
        raise click.BadParameter("Start date must be before end date")
    return first, last


def echo_summary(summary: RunSummary) -> None:
    if summary.skipped_reason:
        click.echo(f"{summary.subscriber_id}: skipped ({summary.skipped_reason})")
        return
    click.echo(
        f"{summary.subscriber_id}: seen={summary.seen} archived={summary.archived} "
        f"duplicates={summary.duplicates} parse_errors={summary.parse_errors} "
        f"write_failures={summary.write_failures} failures={summary.failures}"
    )
    for unit in summary.failed_units:
        click.echo(
            f"  ✗ {unit.cnpj} {unit.category.value} {unit.day}: {unit.error}", err=True
        )


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """fiscalsync - fiscal XML synchronization from the SIEG API."""
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None


@cli.command()
@click.argument("subscriber_id")
@click.option("-t", "--type", "types", multiple=True, type=CATEGORY_CHOICE,
              help="Document type (repeatable); defaults to subscriber selection")
@click.option("--dates", help="YYYY-MM-DD..YYYY-MM-DD; defaults to the plan window")
@click.pass_context
def run(
    ctx: click.Context, subscriber_id: str, types: tuple[str, ...], dates: str | None
) -> None:
    """Download documents for every active CNPJ of a subscriber."""
    date_range = parse_date_range(dates) if dates else None
    components = build_components(load_settings(ctx.obj["config_path"]))
    try:
        summary = components.service.run_for_subscriber(
            subscriber_id, RetrievalMode.MANUAL, types or None, date_range
        )
    except FiscalSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        components.close()
    echo_summary(summary)


@cli.command("run-cnpj")
@click.argument("subscriber_id")
@click.argument("tax_identifier_id")
@click.option("-t", "--type", "types", multiple=True, type=CATEGORY_CHOICE,
              help="Document type (repeatable)")
@click.option("--dates", help="YYYY-MM-DD..YYYY-MM-DD; defaults to the plan window")
@click.pass_context
def run_cnpj(
    ctx: click.Context,
    subscriber_id: str,
    tax_identifier_id: str,
    types: tuple[str, ...],
    dates: str | None,
) -> None:
    """Download documents for a single CNPJ."""
    date_range = parse_date_range(dates) if dates else None
    components = build_components(load_settings(ctx.obj["config_path"]))
    try:
        summary = components.service.run_for_tax_identifier(
            subscriber_id, tax_identifier_id, types or None, date_range, RetrievalMode.MANUAL
        )
    except FiscalSyncError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        components.close()
    echo_summary(summary)


@cli.command("run-all")
@click.pass_context
def run_all(ctx: click.Context) -> None:
    """Download documents for all eligible subscribers."""
    components = build_components(load_settings(ctx.obj["config_path"]))
    try:
        summaries = components.service.run_all(RetrievalMode.MANUAL)
    finally:
        components.close()
    for summary in summaries:
        echo_summary(summary)
    click.echo(f"\nProcessed {len(summaries)} subscribers")


@cli.command()
@click.pass_context
def purge(ctx: click.Context) -> None:
    """Remove documents past their retention window."""
    components = build_components(load_settings(ctx.obj["config_path"]))
    try:
        deleted = components.sweeper.purge_expired()
    finally:
        components.close()
    click.echo(f"Deleted {deleted} expired documents")


@cli.command()
@click.option("-s", "--subscriber", help="Subscriber id")
@click.option("--cnpj-id", help="Tax identifier id")
@click.option("-t", "--type", "category", type=CATEGORY_CHOICE, help="Document type")
@click.option("--status", type=click.Choice([s.value for s in OutcomeStatus]))
@click.option("--dates", help="Retrieval date range YYYY-MM-DD..YYYY-MM-DD")
@click.option("--limit", type=int, default=50, show_default=True)
@click.option("--offset", type=int, default=0)
@click.pass_context
def history(
    ctx: click.Context,
    subscriber: str | None,
    cnpj_id: str | None,
    category: str | None,
    status: str | None,
    dates: str | None,
    limit: int,
    offset: int,
) -> None:
    """List retrieval outcomes, newest first."""
    start = end = None
    if dates:
        first, last = parse_date_range(dates)
        start, end = datetime.combine(first, time.min), datetime.combine(last, time.max)

    components = build_components(load_settings(ctx.obj["config_path"]))
    try:
        outcomes = components.outcomes.list_outcomes(
            subscriber_id=subscriber,
            tax_identifier_id=cnpj_id,
            category=DocumentCategory(category) if category else None,
            status=OutcomeStatus(status) if status else None,
            start=start,
            end=end,
            limit=limit,
            offset=offset,
        )
    finally:
        components.close()

    if not outcomes:
        click.echo("No outcomes found")
        return
    for o in outcomes:
        mark = "✓" if o.status == OutcomeStatus.SUCCESS else "✗"
        click.echo(
            f"{mark} {o.id} {o.retrieved_at:%Y-%m-%d %H:%M} {o.category.value} "
            f"{o.document_number or 'unknown'} {o.file_path or o.error_message}"
        )


@cli.command()
@click.argument("outcome_id")
@click.pass_context
def delete(ctx: click.Context, outcome_id: str) -> None:
    """Delete one outcome record and its file."""
    components = build_components(load_settings(ctx.obj["config_path"]))
    try:
        removed = components.sweeper.remove(outcome_id)
    finally:
        components.close()
    if not removed:
        click.echo(f"Outcome not found: {outcome_id}", err=True)
        sys.exit(1)
    click.echo(f"Deleted {outcome_id}")


@cli.command()
@click.pass_context
def triggers(ctx: click.Context) -> None:
    """Show derived trigger times and next run per job."""
    settings = load_settings(ctx.obj["config_path"])
    components = build_components(settings)
    manager = ScheduleManager(
        directory=components.directory,
        service=components.service,
        sweeper=components.sweeper,
        config=settings.schedule,
    )
    try:
        manager.refresh()
        for name, job_triggers in manager.jobs.items():
            times = ", ".join(map(str, job_triggers))
            click.echo(f"{name}: {times} (next {manager.next_run(name):%Y-%m-%d %H:%M})")
    finally:
        manager.shutdown()
        components.close()


@cli.command()
@click.pass_context
def schedule(ctx: click.Context) -> None:
    """Run the scheduler daemon."""
    settings = load_settings(ctx.obj["config_path"])
    run_scheduler(settings)


if __name__ == "__main__":
    cli()
