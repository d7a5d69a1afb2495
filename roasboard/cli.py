"""CLI entry point for roasboard."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from roasboard import __version__
from roasboard.config import load_config
from roasboard.history import ReportHistory
from roasboard.io_csv import InputSchemaError
from roasboard.pipeline import AnalysisRequest, InputValidationError, run_analysis, write_outputs
from roasboard.staging import StagingStore
from roasboard.store import SQLiteStore, StoreError


def _setup_logging(level: str, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _open_store(db_path: str) -> SQLiteStore:
    try:
        return SQLiteStore(db_path)
    except FileNotFoundError as exc:
        raise click.ClickException(str(exc))


@click.group()
@click.version_option(version=__version__, prog_name="roasboard")
def cli():
    """roasboard: reconcile ad spend with lead / sale revenue."""
    pass


@cli.command()
@click.option("--db", "db_path", default=None, help="SQLite database with lead / sale tables")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
def tables(db_path: str | None, config_path: str):
    """List the tables available for analysis."""
    cfg = load_config(config_path)
    store = _open_store(db_path or cfg.store.db_path)
    try:
        names = store.list_tables()
    except StoreError as exc:
        raise click.ClickException(str(exc))
    if not names:
        click.echo("No tables found.")
    for name in names:
        click.echo(name)


@cli.command()
@click.option("--base-table", required=True, help="Lead (captaciones) table")
@click.option("--sales-table", required=True, help="Sales table")
@click.option("--spend-csv", "spend_csv", required=True, type=click.Path(exists=True, dir_okay=False),
              help="Ads Manager spend export")
@click.option("--country-csv", "country_csv", default=None, type=click.Path(exists=True, dir_okay=False),
              help="Optional spend-by-country export")
@click.option("--exchange-rate", type=float, default=None,
              help="Divide CSV amounts by this rate (0 = no conversion)")
@click.option("--multiply-revenue/--no-multiply-revenue", default=None,
              help="Count revenue twice (co-production)")
@click.option("--db", "db_path", default=None, help="SQLite database with lead / sale tables")
@click.option("--out", "output_dir", default="output", help="Output directory")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
@click.option("--save/--no-save", default=False, help="Keep the result in the report history")
@click.option("--label", default=None, help="History label for --save")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def analyze(
    base_table: str,
    sales_table: str,
    spend_csv: str,
    country_csv: str | None,
    exchange_rate: float | None,
    multiply_revenue: bool | None,
    db_path: str | None,
    output_dir: str,
    config_path: str,
    save: bool,
    label: str | None,
    verbose: bool,
):
    """Run the spend / revenue reconciliation and write the dashboard data."""
    cfg = load_config(config_path)
    _setup_logging(cfg.logging.level, verbose)

    request = AnalysisRequest(
        base_table=base_table,
        sales_table=sales_table,
        spend_csv=Path(spend_csv).read_text(encoding="utf-8-sig"),
        country_csv=Path(country_csv).read_text(encoding="utf-8-sig") if country_csv else None,
        exchange_rate=cfg.analysis.exchange_rate if exchange_rate is None else exchange_rate,
        multiply_revenue=(
            cfg.analysis.multiply_revenue if multiply_revenue is None else multiply_revenue
        ),
    )
    store = _open_store(db_path or cfg.store.db_path)
    staging = StagingStore(cfg.staging.path) if cfg.staging.enabled else None

    click.echo(f"📂 Database: {store.db_path}")
    click.echo(f"📂 Tables:   {base_table} / {sales_table}")

    try:
        result = run_analysis(request, store, cfg, staging)
    except (InputSchemaError, InputValidationError, StoreError) as exc:
        raise click.ClickException(str(exc))

    paths = write_outputs(result, output_dir, title=f"ROAS {base_table} / {sales_table}")
    summary = result["summary"]

    click.echo("")
    click.echo("✅ Analysis complete!")
    click.echo(f"   Ads:           {len(result['ads'])}")
    click.echo(f"   Revenue:       {summary['totalRevenueAll']:,.2f}")
    click.echo(f"   Spend:         {summary['totalSpendAll']:,.2f}")
    click.echo(f"   ROAS:          {summary['totalRoasAll']:.2f}")
    click.echo(f"   Files written: {paths['analysis']}, {paths['report']}")

    if save:
        history = ReportHistory(cfg.history.path, cfg.history.max_reports)
        report_id = history.save(result, label=label or f"{base_table}|{sales_table}")
        click.echo(f"   Saved to history as {report_id}")


@cli.group("history")
def history_group():
    """Saved report history."""
    pass


def _history(config_path: str) -> ReportHistory:
    cfg = load_config(config_path)
    return ReportHistory(cfg.history.path, cfg.history.max_reports)


@history_group.command("list")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
def history_list(config_path: str):
    """List saved reports, newest first."""
    entries = _history(config_path).list()
    if not entries:
        click.echo("No saved reports.")
    for e in entries:
        click.echo(f"{e['id']}  {e['created_at']}  {e['label']}")


@history_group.command("show")
@click.argument("report_id")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
def history_show(report_id: str, config_path: str):
    """Print a saved report as JSON."""
    result = _history(config_path).load(report_id)
    if result is None:
        raise click.ClickException(f"No saved report with id {report_id}")
    click.echo(json.dumps(result, ensure_ascii=False, indent=2))


@history_group.command("delete")
@click.argument("report_id")
@click.option("--config", "config_path", default="config.yaml", help="Config file path")
def history_delete(report_id: str, config_path: str):
    """Delete a saved report."""
    if not _history(config_path).delete(report_id):
        raise click.ClickException(f"No saved report with id {report_id}")
    click.echo(f"🗑  Deleted {report_id}")


if __name__ == "__main__":
    cli()
