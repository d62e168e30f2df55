"""ClickHouse client wrapper tests. The driver is never contacted."""

import pytest

from dashgrid.core import clickhouse
from dashgrid.core.clickhouse import ClickHouseClient


def _client() -> ClickHouseClient:
    return ClickHouseClient(host="ch", port=8123, database="default", user="default", password="")


class TestExecute:
    async def test_returns_rows(self, monkeypatch):
        monkeypatch.setattr(ClickHouseClient, "_query", lambda self, q, p: [{"retail": 1.0}])
        assert await _client().execute("SELECT retail FROM shipment") == [{"retail": 1.0}]

    async def test_development_falls_back_to_mock_rows(self, monkeypatch):
        def unreachable(self, query, params):
            raise ConnectionError("refused")

        monkeypatch.setattr(ClickHouseClient, "_query", unreachable)
        monkeypatch.setattr(clickhouse.settings, "app_env", "development")

        rows = await _client().execute("SELECT * FROM shipment")
        assert rows
        assert {"load_id", "customer_id", "pickup_date", "retail", "carrier_name"} <= rows[0].keys()

    async def test_production_propagates(self, monkeypatch):
        def unreachable(self, query, params):
            raise ConnectionError("refused")

        monkeypatch.setattr(ClickHouseClient, "_query", unreachable)
        monkeypatch.setattr(clickhouse.settings, "app_env", "production")

        with pytest.raises(ConnectionError):
            await _client().execute("SELECT 1")


class TestPing:
    async def test_ping_ok(self, monkeypatch):
        monkeypatch.setattr(ClickHouseClient, "_query", lambda self, q, p: [{"1": 1}])
        assert await _client().ping() is True

    async def test_ping_failure_in_production(self, monkeypatch):
        def unreachable(self, query, params):
            raise ConnectionError("refused")

        monkeypatch.setattr(ClickHouseClient, "_query", unreachable)
        monkeypatch.setattr(clickhouse.settings, "app_env", "production")
        assert await _client().ping() is False
