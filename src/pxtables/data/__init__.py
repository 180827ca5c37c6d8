"""PxWeb retrieval, parsing and flattening."""

from .catalog import INDICATORS, Indicator, get_indicator
from .client import PxWebHttpClient
from .flatten import flatten_dense, flatten_response, flatten_sparse
from .ingest import TableIngestor, TableResult
from .loader import ObservationStore
from .models import (
    CanonicalRow,
    Frequency,
    Observation,
    Query,
    SeriesRecord,
    TableMetadata,
    TableNode,
    Variable,
)
from .parser import parse_metadata, parse_response
from .periods import normalize
from .pipeline import IngestOutcome, collect_indicators, ingest_indicators
from .query import QueryFilters, build_query

__all__ = [
    "CanonicalRow",
    "Frequency",
    "INDICATORS",
    "Indicator",
    "IngestOutcome",
    "Observation",
    "ObservationStore",
    "PxWebHttpClient",
    "Query",
    "QueryFilters",
    "SeriesRecord",
    "TableIngestor",
    "TableMetadata",
    "TableNode",
    "TableResult",
    "Variable",
    "build_query",
    "collect_indicators",
    "flatten_dense",
    "flatten_response",
    "flatten_sparse",
    "get_indicator",
    "ingest_indicators",
    "normalize",
    "parse_metadata",
    "parse_response",
]
