"""Coordinate metadata retrieval, query building and flattening for PxWeb tables."""

from collections.abc import Sequence

import structlog
from attrs import define, field

from ..series.observations import to_observations
from ..series.table import Table, transform
from .catalog import DEFAULT_DATABASE, Indicator
from .client import PxWebHttpClient
from .flatten import flatten_response
from .models import (
    CanonicalRow,
    DenseResponse,
    Observation,
    Query,
    SeriesRecord,
    SparseResponse,
    TableMetadata,
    TableNode,
)
from .parser import parse_metadata, parse_nodes, parse_response
from .periods import detect_frequency
from .query import QueryFilters, build_query

logger = structlog.get_logger(__name__)


@define(slots=True, frozen=True)
class TableResult:
    """Everything produced by one table fetch."""

    table_path: str
    metadata: TableMetadata
    query: Query
    response: SparseResponse | DenseResponse
    rows: list[CanonicalRow]

    def unit(self) -> str | None:
        if isinstance(self.response, SparseResponse):
            return self.response.unit()
        return None

    def to_table(self) -> Table:
        """Normalize the rows against the metadata they were flattened with."""
        if isinstance(self.response, DenseResponse):
            return transform(self.rows, self.response.to_metadata(base=self.metadata))
        key_codes = self.response.key_codes()
        metadata = self.metadata.select(key_codes) if key_codes else self.metadata
        return transform(self.rows, metadata, unit=self.unit())


@define(slots=True, frozen=True)
class IndicatorResult:
    """A single indicator's series metadata and its observations."""

    series: SeriesRecord
    observations: list[Observation]


@define(slots=True)
class TableIngestor:
    """Fetch PxWeb tables and turn them into canonical rows, tables or observations."""

    client: PxWebHttpClient = field(factory=PxWebHttpClient)

    def list_nodes(self, path: str = DEFAULT_DATABASE) -> list[TableNode]:
        """List folders and tables below ``path``."""
        payload = self.client.get_json(path)
        nodes = parse_nodes(payload, parent=[part for part in path.split("/") if part])
        logger.debug("ingest.nodes_listed", path=path, count=len(nodes))
        return nodes

    def fetch_metadata(self, table_path: str) -> TableMetadata:
        """Fetch and validate a table's metadata document."""
        payload = self.client.get_json(table_path)
        metadata = parse_metadata(payload, title=table_path.rsplit("/", 1)[-1])
        logger.debug(
            "ingest.metadata_loaded",
            table=table_path,
            variables=len(metadata.variables),
        )
        return metadata

    def fetch_table(
        self,
        table_path: str,
        filters: QueryFilters | None = None,
        *,
        max_periods: int | None = None,
        response_format: str = "json",
        metadata: TableMetadata | None = None,
    ) -> TableResult:
        """Build the default query, fetch the data and flatten it."""
        log = logger.bind(table=table_path, format=response_format)
        log.info("ingest.table_start")
        metadata = metadata or self.fetch_metadata(table_path)
        query = build_query(
            metadata,
            filters,
            max_periods=max_periods,
            response_format=response_format,
        )
        payload = self.client.post_query(table_path, query.to_payload())
        response = parse_response(payload)
        rows = flatten_response(response, metadata)
        log.info("ingest.table_complete", rows=len(rows), selections=len(query.selections))
        return TableResult(
            table_path=table_path,
            metadata=metadata,
            query=query,
            response=response,
            rows=rows,
        )

    def ingest_indicator(self, indicator: Indicator) -> IndicatorResult:
        """Fetch one catalog indicator as a single date-keyed series."""
        result = self.fetch_table(
            indicator.table_path,
            QueryFilters(overrides=indicator.selection),
            max_periods=indicator.max_periods,
        )
        observations = to_observations(result.rows, indicator.series_id)
        detected = detect_frequency(result.metadata)
        series = SeriesRecord(
            series_id=indicator.series_id,
            provider_id=indicator.table_path,
            title=indicator.label,
            description=result.metadata.title,
            freq=indicator.frequency or detected.value,
            unit=indicator.unit or result.unit(),
            geo=indicator.geo,
        )
        logger.info(
            "ingest.indicator_complete",
            indicator=indicator.id,
            observations=len(observations),
        )
        return IndicatorResult(series=series, observations=observations)

    def close(self) -> None:
        """Close the underlying HTTP client."""
        self.client.close()
        logger.debug("ingest.client_closed")


def fetch_tables(
    ingestor: TableIngestor,
    table_paths: Sequence[str],
    filters: QueryFilters | None = None,
) -> list[TableResult]:
    """Fetch several tables sequentially with shared filters."""
    return [ingestor.fetch_table(path, filters) for path in table_paths]


__all__ = ["IndicatorResult", "TableIngestor", "TableResult", "fetch_tables"]
