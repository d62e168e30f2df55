"""ClickHouse async client.

Read-only: this application never writes to ClickHouse.
Used by the widget row source for shipment queries.

Uses clickhouse-connect for HTTP protocol queries.
Falls back to mock data in development when ClickHouse is unreachable.
"""

import asyncio
import random
from dataclasses import dataclass
from datetime import date, timedelta

import clickhouse_connect  # type: ignore[import-untyped]
import structlog

from dashgrid.core.config import settings

logger = structlog.stdlib.get_logger("dashgrid.clickhouse")

_MOCK_CARRIERS = ["Acme Freight", "Blue Line", "Cardinal Transport", "Delta Haul"]
_MOCK_STATES = ["CA", "TX", "IL", "GA", "NY", "WA"]
_MOCK_MODES = ["LTL", "TL", "Parcel"]


def _generate_mock_data(query: str) -> list[dict]:
    """Generate shipment-like rows for development mode."""
    num_rows = random.randint(20, 80)
    base_date = date.today() - timedelta(days=90)
    rows = []
    for i in range(num_rows):
        retail = round(random.uniform(150, 2500), 2)
        rows.append(
            {
                "load_id": 100_000 + i,
                "customer_id": "dev",
                "pickup_date": (base_date + timedelta(days=i)).isoformat(),
                "carrier_name": random.choice(_MOCK_CARRIERS),
                "mode_name": random.choice(_MOCK_MODES),
                "origin_state": random.choice(_MOCK_STATES),
                "dest_state": random.choice(_MOCK_STATES),
                "retail": retail,
                "accessorial_total": round(random.uniform(0, 120), 2),
                "transit_days": random.randint(1, 7),
                "miles": random.randint(40, 2400),
                "is_completed": random.random() < 0.7,
                "is_cancelled": random.random() < 0.05,
            }
        )
    return rows


@dataclass
class ClickHouseClient:
    """Async ClickHouse client wrapper.

    Provides a read-only interface to ClickHouse for widget row fetches.
    Queries run on a worker thread so concurrent widget fetches do not
    block the event loop.
    """

    host: str
    port: int
    database: str
    user: str
    password: str
    query_timeout: int = 30

    def _get_client(self) -> clickhouse_connect.driver.Client:  # type: ignore[name-defined]
        """Create a clickhouse-connect client."""
        return clickhouse_connect.get_client(
            host=self.host,
            port=self.port,
            database=self.database,
            username=self.user,
            password=self.password,
            settings={"max_execution_time": self.query_timeout},
        )

    def _query(self, query: str, params: dict | None) -> list[dict]:
        client = self._get_client()
        result = client.query(query, parameters=params)
        columns = result.column_names
        return [dict(zip(columns, row, strict=False)) for row in result.result_rows]

    async def execute(self, query: str, params: dict | None = None) -> list[dict]:
        """Execute a read-only query and return rows as dicts.

        All queries must be built via SQLGlot, never string concatenation.
        In development mode, falls back to mock data if ClickHouse is unreachable.
        """
        try:
            return await asyncio.to_thread(self._query, query, params)
        except Exception as exc:
            if settings.app_env == "development":
                logger.info(
                    "clickhouse_fallback_mock",
                    reason=str(exc),
                    query=query[:100],
                )
                return _generate_mock_data(query)
            raise

    async def ping(self) -> bool:
        """Health check."""
        try:
            rows = await asyncio.to_thread(self._query, "SELECT 1", None)
            return len(rows) > 0
        except Exception as exc:
            if settings.app_env == "development":
                logger.info("clickhouse_ping_failed_dev", reason=str(exc))
                return True
            return False


def get_clickhouse_client() -> ClickHouseClient:
    return ClickHouseClient(
        host=settings.clickhouse.clickhouse_host,
        port=settings.clickhouse.clickhouse_port,
        database=settings.clickhouse.clickhouse_database,
        user=settings.clickhouse.clickhouse_user,
        password=settings.clickhouse.clickhouse_password,
        query_timeout=settings.clickhouse.clickhouse_query_timeout,
    )
