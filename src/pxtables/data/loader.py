"""Async PostgreSQL persistence for ingested PxWeb series."""

from collections.abc import Iterable, Sequence
from datetime import datetime, timezone
from typing import Any

import asyncpg
import structlog
from attrs import define, field

from .models import Observation, SeriesRecord

logger = structlog.get_logger(__name__)


@define(slots=True)
class ObservationStore:
    """Upsert series metadata and observations into PostgreSQL using asyncpg."""

    dsn: str | None = None
    schema: str = "public"
    connection_kwargs: dict[str, Any] = field(factory=dict)
    _connection: asyncpg.Connection | None = field(default=None, init=False, repr=False)

    async def connect(self, **overrides: Any) -> asyncpg.Connection:
        """Establish (or reuse) the async connection."""
        if self._connection is not None:
            return self._connection
        kwargs: dict[str, Any] = {**self.connection_kwargs, **overrides}
        if self.dsn:
            connection = await asyncpg.connect(self.dsn, **kwargs)
        else:
            connection = await asyncpg.connect(**kwargs)
        self._connection = connection
        return connection

    async def close(self) -> None:
        """Close the open connection, if any."""
        if self._connection is not None:
            await self._connection.close()
            self._connection = None

    async def ensure_schema(self) -> None:
        """Create the series and observation tables if they do not exist."""
        conn = await self.connect()
        statements = [
            f"""
            CREATE TABLE IF NOT EXISTS {self._qualified("px_series")} (
                series_id text PRIMARY KEY,
                provider_id text NOT NULL,
                source text NOT NULL,
                title text NOT NULL,
                description text,
                freq text NOT NULL,
                unit text,
                geo text,
                updated_at timestamptz NOT NULL DEFAULT now()
            );
            """,
            f"""
            CREATE TABLE IF NOT EXISTS {self._qualified("px_observation")} (
                series_id text NOT NULL REFERENCES {self._qualified("px_series")} (series_id)
                    ON DELETE CASCADE,
                date text NOT NULL,
                value double precision,
                PRIMARY KEY (series_id, date)
            );
            """,
        ]
        for statement in statements:
            await conn.execute(statement)
        logger.debug("db.schema_ready", schema=self.schema)

    async def upsert_series(self, series_list: Sequence[SeriesRecord]) -> None:
        """Insert or refresh series metadata rows."""
        if not series_list:
            return
        conn = await self.connect()
        query = f"""
        INSERT INTO {self._qualified("px_series")}
            (series_id, provider_id, source, title, description, freq, unit, geo, updated_at)
        VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9)
        ON CONFLICT (series_id) DO UPDATE SET
            provider_id = EXCLUDED.provider_id,
            source = EXCLUDED.source,
            title = EXCLUDED.title,
            description = EXCLUDED.description,
            freq = EXCLUDED.freq,
            unit = EXCLUDED.unit,
            geo = EXCLUDED.geo,
            updated_at = EXCLUDED.updated_at;
        """  # noqa: S608
        now = datetime.now(timezone.utc)
        args = [
            (
                series.series_id,
                series.provider_id,
                series.source,
                series.title,
                series.description,
                series.freq,
                series.unit,
                series.geo,
                now,
            )
            for series in series_list
        ]
        await conn.executemany(query, args)
        logger.debug("db.series_upserted", count=len(args))

    async def upsert_observations(self, observations: Iterable[Observation]) -> int:
        """Upsert observation rows keyed by (series_id, date); returns the row count."""
        observations = list(observations)
        if not observations:
            return 0
        conn = await self.connect()
        query = f"""
        INSERT INTO {self._qualified("px_observation")} (series_id, date, value)
        VALUES ($1, $2, $3)
        ON CONFLICT (series_id, date) DO UPDATE SET value = EXCLUDED.value;
        """  # noqa: S608
        await conn.executemany(
            query, [(obs.series_id, obs.date, obs.value) for obs in observations]
        )
        logger.debug("db.observations_upserted", count=len(observations))
        return len(observations)

    async def fetch_observations(self, series_id: str) -> list[Observation]:
        """Read a stored series back in date order."""
        conn = await self.connect()
        query = f"""
        SELECT series_id, date, value
        FROM {self._qualified("px_observation")}
        WHERE series_id = $1
        ORDER BY date;
        """  # noqa: S608
        records = await conn.fetch(query, series_id)
        return [
            Observation(series_id=record["series_id"], date=record["date"], value=record["value"])
            for record in records
        ]

    def _qualified(self, table: str) -> str:
        """Return a schema-qualified table name."""
        return f"{self.schema}.{table}"


__all__ = ["ObservationStore"]
