"""High level orchestration for fetching catalog indicators and persisting them."""

import asyncio
from collections.abc import Callable, Sequence

import requests
import structlog
from attrs import define

from ..errors import PxTablesError
from .catalog import INDICATORS, Indicator
from .ingest import TableIngestor
from .loader import ObservationStore
from .models import Observation, SeriesRecord

logger = structlog.get_logger(__name__)


@define(slots=True, frozen=True)
class IngestOutcome:
    """Result of one indicator fetch; ``error`` is set when it failed."""

    indicator_id: str
    series: SeriesRecord | None = None
    observations: tuple[Observation, ...] = ()
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _ingest_one(indicator: Indicator, client_factory: Callable[[], TableIngestor]) -> IngestOutcome:
    ingestor = client_factory()
    try:
        result = ingestor.ingest_indicator(indicator)
    finally:
        ingestor.close()
    return IngestOutcome(
        indicator_id=indicator.id,
        series=result.series,
        observations=tuple(result.observations),
    )


async def collect_indicators(
    indicators: Sequence[Indicator] = INDICATORS,
    *,
    max_workers: int = 4,
    client_factory: Callable[[], TableIngestor] = TableIngestor,
) -> list[IngestOutcome]:
    """Fetch indicators concurrently, isolating failures per indicator.

    Results are returned in the order of ``indicators``.
    """
    if max_workers < 1:
        raise ValueError("max_workers must be at least 1")
    semaphore = asyncio.Semaphore(max_workers)

    async def run(indicator: Indicator) -> IngestOutcome:
        async with semaphore:
            try:
                return await asyncio.to_thread(_ingest_one, indicator, client_factory)
            except (PxTablesError, requests.RequestException) as exc:
                logger.warning(
                    "pipeline.indicator_failed",
                    indicator=indicator.id,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                return IngestOutcome(indicator_id=indicator.id, error=str(exc))

    return list(await asyncio.gather(*(run(indicator) for indicator in indicators)))


async def ingest_indicators(
    dsn: str | None,
    indicators: Sequence[Indicator] = INDICATORS,
    *,
    schema: str = "public",
    max_workers: int = 4,
    client_factory: Callable[[], TableIngestor] = TableIngestor,
) -> list[IngestOutcome]:
    """Fetch indicators and upsert every successful one into the database."""
    pipe_log = logger.bind(operation="ingest_indicators", schema=schema)
    pipe_log.info("pipeline.ingest_start", indicators=len(indicators), max_workers=max_workers)
    outcomes = await collect_indicators(
        indicators, max_workers=max_workers, client_factory=client_factory
    )
    succeeded = [outcome for outcome in outcomes if outcome.ok and outcome.series is not None]

    store = ObservationStore(dsn=dsn, schema=schema)
    try:
        await store.ensure_schema()
        await store.upsert_series([outcome.series for outcome in succeeded])
        written = 0
        for outcome in succeeded:
            written += await store.upsert_observations(outcome.observations)
    finally:
        await store.close()

    pipe_log.info(
        "pipeline.ingest_complete",
        succeeded=len(succeeded),
        failed=len(outcomes) - len(succeeded),
        observations=written,
    )
    return outcomes


__all__ = ["IngestOutcome", "collect_indicators", "ingest_indicators"]
