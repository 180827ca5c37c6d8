"""Global test configuration and fixtures."""

import copy
from dataclasses import dataclass
from typing import Any
from unittest.mock import MagicMock

import pytest
import requests

from pxtables.data.client import PxWebHttpClient
from pxtables.data.parser import parse_metadata

POPULATION_METADATA = {
    "title": "Population by region",
    "variables": [
        {
            "code": "Vuosi",
            "text": "Year",
            "values": ["2020", "2021", "2022"],
            "valueTexts": ["2020", "2021", "2022"],
            "time": True,
        },
        {
            "code": "Alue",
            "text": "Region",
            "values": ["FI", "SE"],
            "valueTexts": ["Finland", "Sweden"],
        },
    ],
}

POPULATION_SPARSE = {
    "columns": [
        {"code": "Vuosi", "text": "Year", "type": "t"},
        {"code": "Alue", "text": "Region", "type": "d"},
        {"code": "vaesto", "text": "Population (persons)", "type": "c"},
    ],
    "comments": [],
    "data": [
        {"key": ["2020", "FI"], "values": ["100"]},
        {"key": ["2021", "FI"], "values": ["110"]},
        {"key": ["2020", "SE"], "values": ["200"]},
    ],
}

LABOUR_METADATA = {
    "title": "Labour force survey",
    "variables": [
        {
            "code": "Kuukausi",
            "text": "Month",
            "values": ["2024M01", "2024M02", "2024M03", "2024M04"],
            "valueTexts": ["2024M01", "2024M02", "2024M03", "2024M04"],
        },
        {
            "code": "Sukupuoli",
            "text": "Sex",
            "values": ["1", "2", "SSS"],
            "valueTexts": ["Males", "Females", "Total"],
        },
        {
            "code": "Tiedot",
            "text": "Information",
            "values": ["Työllisyysaste_t", "Työttömyysaste_t"],
            "valueTexts": ["Employment rate, trend (%)", "Unemployment rate, trend (%)"],
            "elimination": False,
        },
    ],
}

POPULATION_JSONSTAT = {
    "version": "2.0",
    "class": "dataset",
    "label": "Population by region",
    "source": "Statistics Finland",
    "updated": "2024-03-01T08:00:00Z",
    "id": ["Alue", "Vuosi"],
    "size": [2, 3],
    "value": [100, 110, 120, 200, 210, None],
    "role": {"time": ["Vuosi"]},
    "dimension": {
        "Alue": {
            "label": "Region",
            "category": {
                "index": {"FI": 0, "SE": 1},
                "label": {"FI": "Finland", "SE": "Sweden"},
            },
        },
        "Vuosi": {
            "label": "Year",
            "category": {
                "index": {"2020": 0, "2021": 1, "2022": 2},
                "label": {"2020": "2020", "2021": "2021", "2022": "2022"},
            },
        },
    },
}


@dataclass(slots=True)
class CannedResponse:
    """A canned PxWeb payload (or failure) for testing."""

    payload: Any = None
    exception: Exception | None = None


@pytest.fixture
def population_metadata_payload():
    """Return a fresh copy of the population metadata document."""
    return copy.deepcopy(POPULATION_METADATA)


@pytest.fixture
def population_metadata(population_metadata_payload):
    """Return parsed population metadata."""
    return parse_metadata(population_metadata_payload)


@pytest.fixture
def population_sparse_payload():
    """Return a fresh copy of the sparse population response."""
    return copy.deepcopy(POPULATION_SPARSE)


@pytest.fixture
def population_jsonstat_payload():
    """Return a fresh copy of the JSON-stat2 population dataset."""
    return copy.deepcopy(POPULATION_JSONSTAT)


@pytest.fixture
def labour_metadata():
    """Return parsed metadata for a table with an unflagged monthly time variable."""
    return parse_metadata(copy.deepcopy(LABOUR_METADATA))


@pytest.fixture
def mock_pxweb_client():
    """Return a primer that wires a mocked PxWebHttpClient to canned responses by path."""
    client = MagicMock(spec=PxWebHttpClient)

    def _resolve(responses: dict[str, CannedResponse], path: str) -> Any:
        if path not in responses:
            raise requests.HTTPError(f"No canned response for path: {path}")
        canned = responses[path]
        if canned.exception:
            raise canned.exception
        return copy.deepcopy(canned.payload)

    def prime(
        get: dict[str, CannedResponse] | None = None,
        post: dict[str, CannedResponse] | None = None,
    ) -> MagicMock:
        client.get_json.side_effect = lambda path: _resolve(get or {}, path)
        client.post_query.side_effect = lambda path, payload: _resolve(post or {}, path)
        return client

    return prime
