"""Command line entry point for the pxtables application."""

from __future__ import annotations

import asyncio
import json
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import click
import requests
import structlog

from pxtables.data import (
    INDICATORS,
    CanonicalRow,
    Indicator,
    IngestOutcome,
    ObservationStore,
    PxWebHttpClient,
    QueryFilters,
    TableIngestor,
    TableMetadata,
    build_query,
    collect_indicators,
    get_indicator,
    ingest_indicators,
)
from pxtables.data.catalog import BASE_URL, DEFAULT_DATABASE, DEFAULT_LANGUAGE
from pxtables.data.periods import detect_frequency, infer_time_index
from pxtables.data.query import merge_overrides, parse_override
from pxtables.errors import PxTablesError
from pxtables.logging import configure_logging, table_context
from pxtables.math import percent_change, summarize
from pxtables.series import group_for_chart, series_key, to_csv

DSN_HELP = "PostgreSQL connection string. May also be set via the PXTABLES_DSN env var."
SCHEMA_HELP = (
    "Target database schema for series tables. May also be set via the PXTABLES_SCHEMA env var."
)
PERIOD_HELP = "Restrict the time variable to these period codes (repeatable)."
SELECT_HELP = "Override a variable's selection as CODE=value1,value2 (repeatable)."
MAX_PERIODS_HELP = "Keep only the most recent N periods when no period filter applies."

FORMAT_CHOICES = ("json", "json-stat2")
LOG_FORMAT_CHOICES = ("console", "json")
LOG_LEVEL_CHOICES = ("critical", "error", "warning", "info", "debug")

logger = structlog.get_logger(__name__)


def _require_dsn(ctx: click.Context, override: str | None) -> str:
    """Return the resolved DSN, raising when none is provided."""
    ctx.ensure_object(dict)
    dsn = override or ctx.obj.get("dsn")
    if not dsn:
        raise click.UsageError("A PostgreSQL DSN is required; pass --dsn or set PXTABLES_DSN.")
    return dsn


def _resolve_schema(ctx: click.Context, override: str | None) -> str:
    ctx.ensure_object(dict)
    return override or ctx.obj.get("schema") or "public"


def _build_ingestor(ctx: click.Context) -> TableIngestor:
    """Create an ingestor bound to the configured PxWeb endpoint."""
    ctx.ensure_object(dict)
    client = PxWebHttpClient(
        base_url=ctx.obj.get("base_url") or BASE_URL,
        language=ctx.obj.get("language") or DEFAULT_LANGUAGE,
    )
    return TableIngestor(client=client)


@contextmanager
def _translate_errors() -> Iterator[None]:
    """Report library and transport failures as click errors."""
    try:
        yield
    except PxTablesError as exc:
        raise click.ClickException(f"{type(exc).__name__}: {exc}") from exc
    except requests.RequestException as exc:
        raise click.ClickException(f"Request failed: {exc}") from exc


def _filters_from_options(periods: Sequence[str], selections: Sequence[str]) -> QueryFilters:
    try:
        overrides = merge_overrides([parse_override(text) for text in selections])
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--select") from exc
    return QueryFilters(periods=tuple(periods) or None, overrides=overrides)


def _metadata_to_dict(metadata: TableMetadata) -> dict[str, Any]:
    time_index = infer_time_index(metadata.variables)
    return {
        "title": metadata.title,
        "source": metadata.source,
        "updated": metadata.updated,
        "time_variable": (
            metadata.variables[time_index].code if time_index is not None else None
        ),
        "frequency": detect_frequency(metadata).value,
        "variables": [
            {
                "code": variable.code,
                "label": variable.label,
                "time": variable.is_time,
                "elimination": variable.elimination,
                "values": [
                    {"code": code, "label": label}
                    for code, label in zip(variable.values, variable.value_labels, strict=True)
                ],
            }
            for variable in metadata.variables
        ],
    }


def _echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, ensure_ascii=False))


def _period_changes(rows: Sequence[CanonicalRow]) -> dict[str, list[float | None]]:
    """Percent change per series against the preceding table period.

    Changes are aligned with the non-null chart points; a point whose
    preceding period is missing has no change.
    """
    dates = sorted({row.date for row in rows})
    by_key: dict[str, dict[str, float | None]] = {}
    for row in rows:
        by_key.setdefault(series_key(row), {})[row.date] = row.value
    changes: dict[str, list[float | None]] = {}
    for key, values in by_key.items():
        aligned = [values.get(date) for date in dates]
        changes[key] = [
            change
            for value, change in zip(aligned, percent_change(aligned))
            if value is not None
        ]
    return changes


def _selected_indicators(indicator_ids: Sequence[str]) -> list[Indicator]:
    if not indicator_ids:
        return list(INDICATORS)
    try:
        return [get_indicator(indicator_id) for indicator_id in indicator_ids]
    except KeyError as exc:
        raise click.BadParameter(
            f"Unknown indicator {exc.args[0]!r}.", param_hint="--indicator"
        ) from exc


def _echo_outcomes(outcomes: Sequence[IngestOutcome]) -> None:
    for outcome in outcomes:
        if outcome.ok:
            click.echo(f"{outcome.indicator_id}: {len(outcome.observations)} observations")
        else:
            click.echo(f"{outcome.indicator_id}: failed ({outcome.error})")


@click.group()
@click.option("--dsn", envvar="PXTABLES_DSN", help=DSN_HELP, default=None)
@click.option(
    "--schema",
    envvar="PXTABLES_SCHEMA",
    default="public",
    show_default=True,
    help=SCHEMA_HELP,
)
@click.option(
    "--base-url",
    envvar="PXTABLES_BASE_URL",
    default=BASE_URL,
    show_default=True,
    help="PxWeb API root, up to and including the API version segment.",
)
@click.option(
    "--language",
    envvar="PXTABLES_LANGUAGE",
    default=DEFAULT_LANGUAGE,
    show_default=True,
    help="PxWeb language segment used for labels.",
)
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVEL_CHOICES, case_sensitive=False),
    envvar="PXTABLES_LOG_LEVEL",
    default="info",
    show_default=True,
    help="Verbosity for structured logs.",
)
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMAT_CHOICES, case_sensitive=False),
    envvar="PXTABLES_LOG_FORMAT",
    default="console",
    show_default=True,
    help="Render logs as console-friendly text or JSON.",
)
@click.pass_context
def cli(
    ctx: click.Context,
    dsn: str | None,
    schema: str,
    base_url: str,
    language: str,
    log_level: str,
    log_format: str,
) -> None:
    """Browse, fetch and ingest PxWeb statistical tables."""
    configure_logging(level=log_level, json_output=log_format.lower() == "json")
    ctx.ensure_object(dict)
    ctx.obj.update({"dsn": dsn, "schema": schema, "base_url": base_url, "language": language})
    logger.bind(command_group="pxtables").debug(
        "cli.initialized",
        dsn=bool(dsn),
        schema=schema,
        base_url=base_url,
        language=language,
    )


@cli.command("nodes")
@click.argument("path", default=DEFAULT_DATABASE)
@click.pass_context
def nodes(ctx: click.Context, path: str) -> None:
    """List the folders and tables below PATH."""
    ingestor = _build_ingestor(ctx)
    try:
        with _translate_errors():
            listing = ingestor.list_nodes(path)
    finally:
        ingestor.close()
    for node in listing:
        click.echo(f"{node.type:<6} {'/'.join(node.path)}\t{node.text}")


@cli.command("metadata")
@click.argument("table_path")
@click.pass_context
def metadata(ctx: click.Context, table_path: str) -> None:
    """Print a table's variables and value codes as JSON."""
    ingestor = _build_ingestor(ctx)
    try:
        with _translate_errors(), table_context(table=table_path):
            table_metadata = ingestor.fetch_metadata(table_path)
    finally:
        ingestor.close()
    _echo_json(_metadata_to_dict(table_metadata))


@cli.command("query")
@click.argument("table_path")
@click.option("--period", "periods", multiple=True, help=PERIOD_HELP)
@click.option("--select", "selections", multiple=True, help=SELECT_HELP)
@click.option("--max-periods", type=click.IntRange(min=1), default=None, help=MAX_PERIODS_HELP)
@click.option(
    "--format",
    "response_format",
    type=click.Choice(FORMAT_CHOICES),
    default="json",
    show_default=True,
)
@click.pass_context
def query(
    ctx: click.Context,
    *,
    table_path: str,
    periods: tuple[str, ...],
    selections: tuple[str, ...],
    max_periods: int | None,
    response_format: str,
) -> None:
    """Print the query payload that would be posted for TABLE_PATH."""
    filters = _filters_from_options(periods, selections)
    ingestor = _build_ingestor(ctx)
    try:
        with _translate_errors(), table_context(table=table_path):
            table_metadata = ingestor.fetch_metadata(table_path)
            payload = build_query(
                table_metadata,
                filters,
                max_periods=max_periods,
                response_format=response_format,
            ).to_payload()
    finally:
        ingestor.close()
    _echo_json(payload)


@cli.command("fetch")
@click.argument("table_path")
@click.option("--period", "periods", multiple=True, help=PERIOD_HELP)
@click.option("--select", "selections", multiple=True, help=SELECT_HELP)
@click.option("--max-periods", type=click.IntRange(min=1), default=None, help=MAX_PERIODS_HELP)
@click.option(
    "--format",
    "response_format",
    type=click.Choice(FORMAT_CHOICES),
    default="json",
    show_default=True,
)
@click.option(
    "--output",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the normalized table as JSON to this file instead of stdout.",
)
@click.option(
    "--csv",
    "csv_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Also export the table as CSV.",
)
@click.option(
    "--series",
    "as_series",
    is_flag=True,
    default=False,
    help="Print per-series points and summary statistics instead of the table.",
)
@click.pass_context
def fetch(
    ctx: click.Context,
    *,
    table_path: str,
    periods: tuple[str, ...],
    selections: tuple[str, ...],
    max_periods: int | None,
    response_format: str,
    output: Path | None,
    csv_path: Path | None,
    as_series: bool,
) -> None:
    """Fetch TABLE_PATH and print it as a normalized table."""
    filters = _filters_from_options(periods, selections)
    cmd_log = logger.bind(command="fetch", table=table_path)
    cmd_log.info("command.start", format=response_format)
    ingestor = _build_ingestor(ctx)
    try:
        with _translate_errors(), table_context(table=table_path):
            result = ingestor.fetch_table(
                table_path,
                filters,
                max_periods=max_periods,
                response_format=response_format,
            )
            table = result.to_table()
    finally:
        ingestor.close()

    if not table.rows:
        cmd_log.warning("command.empty_table")
    if csv_path is not None:
        csv_path.parent.mkdir(parents=True, exist_ok=True)
        csv_path.write_text(to_csv(table), encoding="utf-8")
        click.echo(f"Wrote {len(table.rows)} rows to {csv_path}", err=True)

    if as_series:
        grouped = group_for_chart(table.rows, [row.id for row in table.rows])
        changes = _period_changes(table.rows)
        payload: dict[str, Any] = {
            "title": table.title,
            "unit": table.unit,
            "series": [
                {
                    "key": series.key,
                    "label": series.label,
                    "points": [{"date": date, "value": value} for date, value in series.points],
                    "stats": summarize(series.values).to_dict(),
                    "change_pct": changes[series.key],
                }
                for series in grouped.values()
            ],
        }
    else:
        payload = table.to_dict()

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        click.echo(f"Wrote {len(table.rows)} rows to {output}", err=True)
    else:
        _echo_json(payload)
    cmd_log.info("command.completed", rows=len(table.rows))


@cli.command("indicators")
@click.option("--category", default=None, help="Only list indicators in this category.")
def indicators(category: str | None) -> None:
    """List the curated indicator catalog."""
    for indicator in INDICATORS:
        if category and indicator.category.lower() != category.lower():
            continue
        click.echo(f"{indicator.id}\t{indicator.frequency}\t{indicator.label}")


@cli.command("ingest")
@click.option("--dsn", envvar="PXTABLES_DSN", help=DSN_HELP, default=None)
@click.option("--schema", envvar="PXTABLES_SCHEMA", default=None, help=SCHEMA_HELP)
@click.option(
    "--indicator",
    "indicator_ids",
    multiple=True,
    help="Indicator id to ingest (repeatable). Defaults to the whole catalog.",
)
@click.option(
    "--max-workers",
    type=click.IntRange(min=1),
    default=4,
    show_default=True,
    help="Maximum number of tables fetched concurrently.",
)
@click.option(
    "--dry-run",
    is_flag=True,
    default=False,
    help="Fetch and report without writing to the database.",
)
@click.pass_context
def ingest(
    ctx: click.Context,
    *,
    dsn: str | None,
    schema: str | None,
    indicator_ids: tuple[str, ...],
    max_workers: int,
    dry_run: bool,
) -> None:
    """Fetch catalog indicators and upsert them into PostgreSQL."""
    selected = _selected_indicators(indicator_ids)
    cmd_log = logger.bind(command="ingest", dry_run=dry_run)
    cmd_log.info("command.start", indicators=[indicator.id for indicator in selected])

    def factory() -> TableIngestor:
        return _build_ingestor(ctx)

    if dry_run:
        outcomes = asyncio.run(
            collect_indicators(selected, max_workers=max_workers, client_factory=factory)
        )
    else:
        resolved_dsn = _require_dsn(ctx, dsn)
        resolved_schema = _resolve_schema(ctx, schema)
        outcomes = asyncio.run(
            ingest_indicators(
                resolved_dsn,
                selected,
                schema=resolved_schema,
                max_workers=max_workers,
                client_factory=factory,
            )
        )
    _echo_outcomes(outcomes)
    failed = [outcome.indicator_id for outcome in outcomes if not outcome.ok]
    cmd_log.info("command.completed", failed=failed)
    if failed and len(failed) == len(outcomes):
        raise click.ClickException("Every requested indicator failed to ingest.")


@cli.command("ensure-schema")
@click.option("--dsn", envvar="PXTABLES_DSN", help=DSN_HELP, default=None)
@click.option("--schema", envvar="PXTABLES_SCHEMA", default=None, help=SCHEMA_HELP)
@click.pass_context
def ensure_schema(ctx: click.Context, *, dsn: str | None, schema: str | None) -> None:
    """Create the series and observation tables if they are missing."""
    resolved_dsn = _require_dsn(ctx, dsn)
    resolved_schema = _resolve_schema(ctx, schema)
    cmd_log = logger.bind(command="ensure-schema", schema=resolved_schema)
    cmd_log.info("command.start")

    async def _run() -> None:
        store = ObservationStore(dsn=resolved_dsn, schema=resolved_schema)
        try:
            await store.ensure_schema()
        finally:
            await store.close()

    asyncio.run(_run())
    click.echo(f"Ensured schema objects in {resolved_schema}.")
    cmd_log.info("command.completed")


if __name__ == "__main__":
    cli()
