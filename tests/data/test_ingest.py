"""Unit tests for the table ingestor."""

import pytest
import requests

from pxtables.data.catalog import Indicator
from pxtables.data.ingest import TableIngestor, fetch_tables
from pxtables.data.models import DenseResponse
from pxtables.data.query import QueryFilters
from pxtables.errors import MalformedResponse, NoTimeDimension
from tests.conftest import (
    LABOUR_METADATA,
    POPULATION_JSONSTAT,
    POPULATION_METADATA,
    POPULATION_SPARSE,
    CannedResponse,
)

POPULATION_PATH = "StatFin/vaerak/statfin_vaerak_pxt_11ra.px"
LABOUR_PATH = "StatFin/tym/tyti/statfin_tyti_pxt_135z.px"


def test_list_nodes(mock_pxweb_client):
    """Node paths are prefixed with the listed folder."""
    client = mock_pxweb_client(
        get={"StatFin/vaerak": CannedResponse([{"id": "x.px", "type": "t", "text": "X"}])}
    )
    nodes = TableIngestor(client=client).list_nodes("StatFin/vaerak")
    assert nodes[0].path == ("StatFin", "vaerak", "x.px")
    assert nodes[0].is_table


def test_fetch_metadata_defaults_title(mock_pxweb_client):
    """Untitled tables are named after the last path segment."""
    client = mock_pxweb_client(
        get={POPULATION_PATH: CannedResponse({"variables": POPULATION_METADATA["variables"]})}
    )
    metadata = TableIngestor(client=client).fetch_metadata(POPULATION_PATH)
    assert metadata.title == "statfin_vaerak_pxt_11ra.px"


def test_fetch_table_sparse(mock_pxweb_client):
    """A sparse fetch builds the default query, posts it and flattens the rows."""
    client = mock_pxweb_client(
        get={POPULATION_PATH: CannedResponse(POPULATION_METADATA)},
        post={POPULATION_PATH: CannedResponse(POPULATION_SPARSE)},
    )
    result = TableIngestor(client=client).fetch_table(POPULATION_PATH)

    posted_path, payload = client.post_query.call_args.args
    assert posted_path == POPULATION_PATH
    assert payload["query"][0] == {
        "code": "Vuosi",
        "selection": {"filter": "item", "values": ["2020", "2021", "2022"]},
    }
    assert payload["response"] == {"format": "json"}
    assert len(result.rows) == 3
    assert result.unit() == "Population (persons)"

    table = result.to_table()
    assert table.time_variable == "Vuosi"
    assert [column.code for column in table.dimension_columns] == ["Alue"]
    assert table.unit == "Population (persons)"


def test_fetch_table_dense(mock_pxweb_client):
    """JSON-stat2 responses are flattened against their own categories."""
    client = mock_pxweb_client(
        get={POPULATION_PATH: CannedResponse(POPULATION_METADATA)},
        post={POPULATION_PATH: CannedResponse(POPULATION_JSONSTAT)},
    )
    result = TableIngestor(client=client).fetch_table(
        POPULATION_PATH,
        QueryFilters(overrides={"Alue": ["FI", "SE"]}),
        response_format="json-stat2",
    )
    assert isinstance(result.response, DenseResponse)
    assert client.post_query.call_args.args[1]["response"] == {"format": "json-stat2"}
    assert len(result.rows) == 6
    assert result.unit() is None
    table = result.to_table()
    assert table.title == "Population by region"
    assert table.source == "Statistics Finland"


def test_fetch_table_reuses_given_metadata(mock_pxweb_client, population_metadata):
    """Passing metadata skips the metadata request."""
    client = mock_pxweb_client(post={POPULATION_PATH: CannedResponse(POPULATION_SPARSE)})
    TableIngestor(client=client).fetch_table(POPULATION_PATH, metadata=population_metadata)
    client.get_json.assert_not_called()


def test_fetch_table_propagates_errors(mock_pxweb_client):
    """Malformed payloads and transport errors are not swallowed."""
    client = mock_pxweb_client(
        get={POPULATION_PATH: CannedResponse(POPULATION_METADATA)},
        post={POPULATION_PATH: CannedResponse({"unexpected": True})},
    )
    with pytest.raises(MalformedResponse):
        TableIngestor(client=client).fetch_table(POPULATION_PATH)

    client = mock_pxweb_client(
        get={POPULATION_PATH: CannedResponse(exception=requests.ConnectionError("down"))}
    )
    with pytest.raises(requests.ConnectionError):
        TableIngestor(client=client).fetch_table(POPULATION_PATH)


def test_fetch_table_without_time_dimension(mock_pxweb_client):
    """Tables lacking a time variable fail with NoTimeDimension."""
    metadata = {"title": "regions", "variables": [{"code": "Alue", "values": ["FI"]}]}
    client = mock_pxweb_client(
        get={"regions.px": CannedResponse(metadata)},
        post={"regions.px": CannedResponse({"data": [{"key": ["FI"], "values": ["1"]}]})},
    )
    with pytest.raises(NoTimeDimension):
        TableIngestor(client=client).fetch_table("regions.px")


def test_ingest_indicator(mock_pxweb_client):
    """An indicator becomes one series record plus date-keyed observations."""
    response = {
        "columns": [
            {"code": "Kuukausi", "text": "Month", "type": "t"},
            {"code": "Sukupuoli", "text": "Sex", "type": "d"},
            {"code": "Tiedot", "text": "Information", "type": "d"},
            {"code": "tyti", "text": "Percent", "type": "c"},
        ],
        "data": [
            {"key": ["2024M02", "SSS", "Työttömyysaste_t"], "values": ["8.1"]},
            {"key": ["2024M01", "SSS", "Työttömyysaste_t"], "values": ["7.9"]},
            {"key": ["2024M03", "SSS", "Työttömyysaste_t"], "values": [".."]},
        ],
    }
    client = mock_pxweb_client(
        get={LABOUR_PATH: CannedResponse(LABOUR_METADATA)},
        post={LABOUR_PATH: CannedResponse(response)},
    )
    indicator = Indicator(
        id="fin_unemployment_rate_m",
        label="Unemployment rate (%), monthly",
        table_path=LABOUR_PATH,
        frequency="M",
        unit="",
        selection={"Sukupuoli": ["SSS"], "Tiedot": ["Työttömyysaste_t"]},
        max_periods=3,
    )
    result = TableIngestor(client=client).ingest_indicator(indicator)

    query = client.post_query.call_args.args[1]["query"]
    assert query[0]["selection"]["values"] == ["2024M02", "2024M03", "2024M04"]
    assert query[2]["selection"]["values"] == ["Työttömyysaste_t"]
    assert result.series.series_id == "STATFIN_FIN_UNEMPLOYMENT_RATE_M"
    assert result.series.provider_id == LABOUR_PATH
    assert result.series.description == "Labour force survey"
    assert result.series.unit == "Percent"
    assert result.series.freq == "M"
    assert [(obs.date, obs.value) for obs in result.observations] == [
        ("2024-01-01", 7.9),
        ("2024-02-01", 8.1),
    ]


def test_close_and_fetch_tables(mock_pxweb_client):
    """fetch_tables fetches sequentially and close releases the client."""
    client = mock_pxweb_client(
        get={POPULATION_PATH: CannedResponse(POPULATION_METADATA)},
        post={POPULATION_PATH: CannedResponse(POPULATION_SPARSE)},
    )
    ingestor = TableIngestor(client=client)
    results = fetch_tables(ingestor, [POPULATION_PATH, POPULATION_PATH])
    assert [len(result.rows) for result in results] == [3, 3]
    ingestor.close()
    client.close.assert_called_once()
