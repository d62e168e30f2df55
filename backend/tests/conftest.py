"""Shared test fixtures.

All external stores (ClickHouse, Redis) are mocked or replaced with
in-memory implementations. Tests never require running instances.
"""

from datetime import date

import pytest

from dashgrid.core.document_store import InMemoryDocumentStore
from dashgrid.schemas.query import DateRange, QueryContext


@pytest.fixture
def tenant_id() -> str:
    return "cust-aaaa"


@pytest.fixture
def tenant_id_b() -> str:
    """Second tenant for isolation tests."""
    return "cust-bbbb"


@pytest.fixture
def date_range() -> DateRange:
    return DateRange(start=date(2026, 1, 1), end=date(2026, 3, 31))


@pytest.fixture
def customer_context(tenant_id, date_range) -> QueryContext:
    return QueryContext(tenant_id=tenant_id, date_range=date_range)


@pytest.fixture
def admin_context(date_range) -> QueryContext:
    """Admin looking across every customer."""
    return QueryContext(is_admin=True, date_range=date_range)


@pytest.fixture
def memory_store() -> InMemoryDocumentStore:
    return InMemoryDocumentStore()


@pytest.fixture
def shipment_rows(tenant_id, tenant_id_b) -> list[dict]:
    return [
        {"load_id": 1, "customer_id": tenant_id, "carrier_name": "Acme", "retail": 100.0, "cost": 80.0,
         "pickup_date": "2026-01-05", "dest_state": "CA"},
        {"load_id": 2, "customer_id": tenant_id, "carrier_name": "Acme", "retail": 50.0, "cost": 40.0,
         "pickup_date": "2026-01-20", "dest_state": "TX"},
        {"load_id": 3, "customer_id": tenant_id, "carrier_name": "Blue Line", "retail": 25.0, "cost": 20.0,
         "pickup_date": "2026-02-11", "dest_state": "CA"},
        {"load_id": 4, "customer_id": tenant_id_b, "carrier_name": "Blue Line", "retail": 999.0, "cost": 900.0,
         "pickup_date": "2026-02-12", "dest_state": "NY"},
    ]
