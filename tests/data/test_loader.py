"""Tests for the async observation store."""

import pytest

from pxtables.data.loader import ObservationStore
from pxtables.data.models import Observation, SeriesRecord


@pytest.mark.asyncio
async def test_connect_reuses_single_connection(mocker):
    """Subsequent connect calls should reuse the same asyncpg connection."""
    mock_connection = mocker.AsyncMock()
    connect_mock = mocker.patch("asyncpg.connect", return_value=mock_connection)

    store = ObservationStore(dsn="postgres://example")
    first = await store.connect(timeout=5)
    second = await store.connect()

    assert first is second is mock_connection
    connect_mock.assert_called_once_with("postgres://example", timeout=5)


@pytest.mark.asyncio
async def test_connect_without_dsn_uses_kwargs(mocker):
    """Connection keyword arguments are used when no DSN is configured."""
    connect_mock = mocker.patch("asyncpg.connect", return_value=mocker.AsyncMock())

    store = ObservationStore(connection_kwargs={"host": "db", "user": "px"})
    await store.connect()

    connect_mock.assert_called_once_with(host="db", user="px")


@pytest.mark.asyncio
async def test_close_closes_connection(mocker):
    """close() should release the cached connection when present."""
    mock_connection = mocker.AsyncMock()
    store = ObservationStore()
    store._connection = mock_connection

    await store.close()
    await store.close()

    mock_connection.close.assert_awaited_once()
    assert store._connection is None


@pytest.mark.asyncio
async def test_ensure_schema_executes_all_statements(mocker):
    """ensure_schema should create the series and observation tables."""
    mock_connection = mocker.AsyncMock()
    store = ObservationStore(schema="stats")
    store._connection = mock_connection

    await store.ensure_schema()

    assert mock_connection.execute.await_count == 2
    ddl_payload = " ".join(call.args[0] for call in mock_connection.execute.await_args_list)
    assert "CREATE TABLE IF NOT EXISTS stats.px_series" in ddl_payload
    assert "CREATE TABLE IF NOT EXISTS stats.px_observation" in ddl_payload
    assert "PRIMARY KEY (series_id, date)" in ddl_payload


@pytest.mark.asyncio
async def test_upsert_series(mocker):
    """Series rows are upserted on their id."""
    connection = mocker.AsyncMock()
    store = ObservationStore()
    store._connection = connection
    series = SeriesRecord(
        series_id="STATFIN_FIN_CPI_M",
        provider_id="StatFin/hin/khi/statfin_khi_pxt_11xq.px",
        title="Consumer price index",
        freq="M",
        unit="Index (2015=100)",
        geo="FI",
    )

    await store.upsert_series([series])

    query, args = connection.executemany.await_args.args
    assert "INSERT INTO public.px_series" in query
    assert "ON CONFLICT (series_id) DO UPDATE" in query
    assert args[0][:8] == (
        "STATFIN_FIN_CPI_M",
        "StatFin/hin/khi/statfin_khi_pxt_11xq.px",
        "STATFIN",
        "Consumer price index",
        None,
        "M",
        "Index (2015=100)",
        "FI",
    )


@pytest.mark.asyncio
async def test_upsert_observations(mocker):
    """Observations are upserted on (series_id, date), keeping missing values as NULL."""
    connection = mocker.AsyncMock()
    store = ObservationStore()
    store._connection = connection

    written = await store.upsert_observations(
        [
            Observation(series_id="S", date="2024-01-01", value=1.5),
            Observation(series_id="S", date="2024-02-01", value=None),
        ]
    )

    assert written == 2
    query, args = connection.executemany.await_args.args
    assert "ON CONFLICT (series_id, date) DO UPDATE SET value = EXCLUDED.value" in query
    assert args == [("S", "2024-01-01", 1.5), ("S", "2024-02-01", None)]


@pytest.mark.asyncio
async def test_upserts_skip_empty_input(mocker):
    """Empty batches never open a connection."""
    connect_mock = mocker.patch("asyncpg.connect")
    store = ObservationStore(dsn="postgres://example")

    await store.upsert_series([])
    assert await store.upsert_observations([]) == 0

    connect_mock.assert_not_called()


@pytest.mark.asyncio
async def test_fetch_observations(mocker):
    """Stored observations are read back as models."""
    connection = mocker.AsyncMock()
    connection.fetch.return_value = [
        {"series_id": "S", "date": "2024-01-01", "value": 1.0},
        {"series_id": "S", "date": "2024-02-01", "value": None},
    ]
    store = ObservationStore()
    store._connection = connection

    observations = await store.fetch_observations("S")

    assert observations == [
        Observation(series_id="S", date="2024-01-01", value=1.0),
        Observation(series_id="S", date="2024-02-01", value=None),
    ]
    assert connection.fetch.await_args.args[1] == "S"


@pytest.mark.asyncio
async def test_statements_are_plain_sql(mocker):
    """Every statement sent to PostgreSQL starts with its keyword and carries no stray text."""
    connection = mocker.AsyncMock()
    connection.fetch.return_value = []
    store = ObservationStore()
    store._connection = connection

    await store.ensure_schema()
    await store.upsert_series(
        [SeriesRecord(series_id="S", provider_id="StatFin/x.px", title="Series")]
    )
    await store.upsert_observations([Observation(series_id="S", date="2024-01-01", value=1.0)])
    await store.fetch_observations("S")

    statements = [
        *(call.args[0] for call in connection.execute.await_args_list),
        connection.executemany.await_args_list[0].args[0],
        connection.executemany.await_args_list[1].args[0],
        connection.fetch.await_args.args[0],
    ]
    leading = [statement.split(None, 1)[0] for statement in statements]
    assert leading == ["CREATE", "CREATE", "INSERT", "INSERT", "SELECT"]
    for statement in statements:
        assert "#" not in statement
        assert "noqa" not in statement
