"""Row sources: where widgets get raw rows from.

The executor only depends on the RowSource protocol. ClickHouseRowSource
compiles the query spec with SQLGlot and runs it through clickhouse-connect;
InMemoryRowSource evaluates the same resolved filters over local rows
(development fixtures and tests).
"""

import re
import time
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import structlog

from dashgrid.core.clickhouse import ClickHouseClient
from dashgrid.core.config import settings
from dashgrid.core.metrics import row_fetch_duration_seconds, row_fetch_rows
from dashgrid.schemas.query import QueryContext, QueryFilter, QuerySpec
from dashgrid.services.query_compiler import compile_query, resolve_filters

logger = structlog.stdlib.get_logger(__name__)


@runtime_checkable
class RowSource(Protocol):
    async def fetch_rows(self, spec: QuerySpec, context: QueryContext) -> list[dict]: ...


class ClickHouseRowSource:
    """Fetches raw widget rows from ClickHouse."""

    def __init__(self, clickhouse: ClickHouseClient, row_cap: int | None = None):
        self._clickhouse = clickhouse
        self._row_cap = row_cap

    async def fetch_rows(self, spec: QuerySpec, context: QueryContext) -> list[dict]:
        compiled = compile_query(spec, context, dialect="clickhouse", row_cap=self._row_cap)
        start = time.perf_counter()
        rows = await self._clickhouse.execute(compiled.sql)
        duration = time.perf_counter() - start

        row_fetch_duration_seconds.labels(source="clickhouse").observe(duration)
        row_fetch_rows.labels(source="clickhouse").observe(len(rows))
        logger.info(
            "rows_fetched",
            source="clickhouse",
            entity=spec.base_entity,
            duration_ms=round(duration * 1000, 2),
            rows=len(rows),
        )
        return rows


def _like_pattern(pattern: str) -> re.Pattern[str]:
    parts = []
    for ch in pattern:
        if ch == "%":
            parts.append(".*")
        elif ch == "_":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    return re.compile("".join(parts), re.DOTALL)


def _compare(left: Any, op: str, right: Any) -> bool:
    try:
        if op == "gt":
            return left > right
        if op == "gte":
            return left >= right
        if op == "lt":
            return left < right
        if op == "lte":
            return left <= right
    except TypeError:
        return False
    raise ValueError(f"Unsupported comparison operator: {op!r}")


def matches(row: Mapping[str, Any], filt: QueryFilter) -> bool:
    """Evaluate one resolved filter against a row, mirroring the SQL semantics."""
    value = row.get(filt.field)
    op = filt.operator
    if op == "is_null":
        return value is None
    if op == "not_null":
        return value is not None
    if filt.value is None:
        # Same as the compiler: a filter without a value is not applied
        return True
    if value is None:
        return False
    if op == "eq":
        return value == filt.value or str(value) == str(filt.value)
    if op == "neq":
        return value != filt.value and str(value) != str(filt.value)
    if op == "in":
        options = filt.value if isinstance(filt.value, (list, tuple, set)) else [filt.value]
        return value in options or str(value) in {str(o) for o in options}
    if op == "like":
        return _like_pattern(str(filt.value)).fullmatch(str(value)) is not None
    if op == "between":
        if not isinstance(filt.value, (list, tuple)) or len(filt.value) != 2:
            return True
        return _compare(value, "gte", filt.value[0]) and _compare(value, "lte", filt.value[1])
    return _compare(value, op, filt.value)


class InMemoryRowSource:
    """Serves rows from local tables keyed by base_entity."""

    def __init__(self, tables: dict[str, list[dict]] | None = None, row_cap: int | None = None):
        self._tables = {name: list(rows) for name, rows in (tables or {}).items()}
        self._row_cap = row_cap

    def load(self, entity: str, rows: list[dict]) -> None:
        self._tables[entity] = list(rows)

    async def fetch_rows(self, spec: QuerySpec, context: QueryContext) -> list[dict]:
        filters = resolve_filters(spec, context)
        cap = self._row_cap if self._row_cap is not None else settings.dashboard.row_fetch_cap
        start = time.perf_counter()
        rows = [
            dict(row)
            for row in self._tables.get(spec.base_entity, [])
            if all(matches(row, f) for f in filters)
        ][:cap]
        row_fetch_duration_seconds.labels(source="memory").observe(time.perf_counter() - start)
        row_fetch_rows.labels(source="memory").observe(len(rows))
        return rows
