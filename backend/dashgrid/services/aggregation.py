"""Aggregation engine: turns a QuerySpec plus raw rows into a renderable shape.

One generic transform serves every widget, built-in or user-authored:

- kpi / featured_kpi -> KpiData (count, sum, or avg of the aggregate column)
- bar_chart / pie_chart -> ChartData grouped by category, value desc, top N;
  with a granularity, every time bucket in key order instead
- map -> ChartData grouped by category, value desc, untruncated
- line_chart -> ChartData grouped by time/category key, key ascending
- table / ai_report -> TableData (projection, or grouped aggregates)

Malformed data never raises: non-numeric values count as 0, missing
categories land in an "Unknown" bucket, empty input yields zero/empty shapes.
A spec whose only aggregate was removed by field policy yields zero/empty
for scalar and series widgets.
"""

import math
import time
from collections.abc import Iterable, Mapping
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any

from dashgrid.core.config import settings
from dashgrid.core.metrics import aggregation_duration_seconds
from dashgrid.schemas.query import Aggregate, Granularity, QueryColumn, QuerySpec
from dashgrid.schemas.widget import (
    ChartData,
    KpiData,
    SeriesPoint,
    TableData,
    WidgetType,
    parse_widget_type,
)

UNKNOWN_CATEGORY = "Unknown"

_CATEGORICAL_TYPES = {WidgetType.BAR_CHART, WidgetType.PIE_CHART, WidgetType.MAP}
_TABLE_TYPES = {WidgetType.TABLE, WidgetType.AI_REPORT}


def to_number(value: Any) -> float:
    """Numeric coercion used everywhere: anything unparseable is 0."""
    if isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float, Decimal)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _parse_date(value: Any) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            return None
    return None


def _bucket(value: Any, granularity: Granularity) -> str | None:
    day = _parse_date(value)
    if day is None:
        return None
    if granularity == "month":
        return f"{day.year:04d}-{day.month:02d}"
    if granularity == "week":
        return (day - timedelta(days=day.weekday())).isoformat()
    return day.isoformat()


def category_key(value: Any, granularity: Granularity | None = None) -> str:
    """Group key for a raw field value; null and blank values are "Unknown"."""
    if value is None or (isinstance(value, str) and not value.strip()):
        return UNKNOWN_CATEGORY
    if granularity is not None:
        bucket = _bucket(value, granularity)
        if bucket is not None:
            return bucket
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def _reduce(rows: list[Mapping], aggregate: Aggregate, field: str | None) -> float:
    if aggregate == "count" or field is None:
        return float(len(rows))
    total = math.fsum(to_number(row.get(field)) for row in rows)
    if aggregate == "sum":
        return total
    # avg: an empty group is 0, never NaN
    if not rows:
        return 0.0
    return total / len(rows)


def _driver(spec: QuerySpec) -> tuple[Aggregate, str | None]:
    col = spec.aggregate_column()
    if col is None:
        return "count", None
    return col.aggregate, col.field  # type: ignore[return-value]


def _category_field(spec: QuerySpec) -> str:
    if spec.group_by:
        return spec.group_by[0]
    for col in spec.columns:
        if col.aggregate is None:
            return col.field
    return "name"


def _group(rows: Iterable[Mapping], field: str, granularity: Granularity | None) -> dict[str, list[Mapping]]:
    groups: dict[str, list[Mapping]] = {}
    for row in rows:
        groups.setdefault(category_key(row.get(field), granularity), []).append(row)
    return groups


def _key_order(name: str) -> tuple[int, float, str]:
    """Numeric keys compare as numbers, everything else as text (ISO dates sort chronologically)."""
    try:
        number = float(name)
    except ValueError:
        return (1, 0.0, name)
    if math.isnan(number):
        return (1, 0.0, name)
    return (0, number, "")


def _kpi(spec: QuerySpec, rows: list[Mapping], label: str | None, value_format: str) -> KpiData:
    aggregate, field = _driver(spec)
    col = spec.aggregate_column()
    return KpiData(
        value=_reduce(rows, aggregate, field),
        label=label or (col.output_name if col else "count"),
        format=value_format,  # type: ignore[arg-type]
    )


def _categorical(spec: QuerySpec, rows: list[Mapping], limit: int | None) -> ChartData:
    aggregate, field = _driver(spec)
    groups = _group(rows, _category_field(spec), spec.granularity)
    series = [SeriesPoint(name=name, value=_reduce(members, aggregate, field)) for name, members in groups.items()]
    if spec.granularity is not None:
        # Time-bucketed bars read left to right; every bucket is kept
        return ChartData(series=sorted(series, key=lambda p: _key_order(p.name)))
    # sorted() is stable: ties keep first-seen order
    series = sorted(series, key=lambda p: p.value, reverse=True)
    if limit is not None:
        series = series[:limit]
    return ChartData(series=series)


def _timeline(spec: QuerySpec, rows: list[Mapping]) -> ChartData:
    aggregate, field = _driver(spec)
    groups = _group(rows, _category_field(spec), spec.granularity)
    series = [SeriesPoint(name=name, value=_reduce(members, aggregate, field)) for name, members in groups.items()]
    return ChartData(series=sorted(series, key=lambda p: _key_order(p.name)))


def _order_value(value: Any) -> tuple[int, float, str]:
    if isinstance(value, bool):
        return (1, 0.0, str(value))
    if isinstance(value, (int, float, Decimal)):
        return (0, to_number(value), "")
    if isinstance(value, (datetime, date)):
        return (1, 0.0, value.isoformat())
    return (1, 0.0, str(value))


def _apply_order(rows: list[dict[str, Any]], spec: QuerySpec, name_for: dict[str, str]) -> list[dict[str, Any]]:
    # Stable sorts applied from the lowest-priority key up give lexicographic order
    for order in reversed(spec.order_by):
        key = name_for.get(order.field, order.field)
        present = [r for r in rows if r.get(key) is not None]
        missing = [r for r in rows if r.get(key) is None]
        present.sort(key=lambda r: _order_value(r.get(key)), reverse=order.direction == "desc")
        rows = present + missing
    return rows


def _output_names(spec: QuerySpec) -> dict[str, str]:
    names: dict[str, str] = {}
    for col in spec.columns:
        names.setdefault(col.field, col.output_name)
    return names


def _table(spec: QuerySpec, rows: list[Mapping], default_limit: int) -> TableData:
    limit = spec.limit or default_limit
    name_for = _output_names(spec)

    if spec.group_by and spec.aggregate_columns():
        out_columns: list[QueryColumn] = [
            QueryColumn(field=f) for f in spec.group_by if not any(c.field == f and c.aggregate is None for c in spec.columns)
        ]
        out_columns.extend(spec.columns)
        groups: dict[tuple[str, ...], list[Mapping]] = {}
        for row in rows:
            key = tuple(
                category_key(row.get(f), spec.granularity if i == 0 else None) for i, f in enumerate(spec.group_by)
            )
            groups.setdefault(key, []).append(row)

        table_rows: list[dict[str, Any]] = []
        for key, members in groups.items():
            group_values = dict(zip(spec.group_by, key, strict=True))
            out: dict[str, Any] = {}
            for col in out_columns:
                if col.aggregate is not None:
                    out[col.output_name] = _reduce(members, col.aggregate, col.field)
                elif col.field in group_values:
                    out[col.output_name] = group_values[col.field]
                else:
                    out[col.output_name] = members[0].get(col.field)
            table_rows.append(out)
        columns = [c.output_name for c in out_columns]
    else:
        if spec.columns:
            projection = [(c.field, c.output_name) for c in spec.columns]
        else:
            projection = [(k, k) for k in (rows[0].keys() if rows else [])]
        table_rows = [{name: row.get(field) for field, name in projection} for row in rows]
        columns = [name for _, name in projection]

    table_rows = _apply_order(table_rows, spec, name_for)
    return TableData(rows=table_rows[:limit], columns=columns)


def aggregate(
    spec: QuerySpec,
    widget_type: WidgetType | str | None,
    rows: Iterable[Any],
    *,
    label: str | None = None,
    value_format: str = "number",
    max_series: int | None = None,
    default_table_limit: int | None = None,
) -> KpiData | ChartData | TableData:
    """Aggregate rows into the shape the widget type renders.

    Never raises on malformed data. Unknown widget types aggregate as KPIs.
    """
    start = time.perf_counter()
    resolved = parse_widget_type(widget_type) or WidgetType.KPI
    clean_rows = [row for row in rows if isinstance(row, Mapping)]
    if max_series is None:
        max_series = settings.dashboard.max_chart_series
    if default_table_limit is None:
        default_table_limit = settings.dashboard.default_table_limit

    redacted_away = spec.aggregate_redacted and spec.aggregate_column() is None

    result: KpiData | ChartData | TableData
    if redacted_away and resolved in (WidgetType.KPI, WidgetType.FEATURED_KPI):
        result = KpiData(value=0, label=label or "", format=value_format)  # type: ignore[arg-type]
    elif redacted_away and resolved not in _TABLE_TYPES:
        result = ChartData(series=[])
    elif resolved in (WidgetType.KPI, WidgetType.FEATURED_KPI):
        result = _kpi(spec, clean_rows, label, value_format)
    elif resolved == WidgetType.LINE_CHART:
        result = _timeline(spec, clean_rows)
    elif resolved in _CATEGORICAL_TYPES:
        result = _categorical(spec, clean_rows, None if resolved == WidgetType.MAP else max_series)
    elif resolved in _TABLE_TYPES:
        result = _table(spec, clean_rows, default_table_limit)
    else:  # pragma: no cover - every WidgetType is handled above
        result = _kpi(spec, clean_rows, label, value_format)

    aggregation_duration_seconds.labels(widget_type=resolved.value).observe(time.perf_counter() - start)
    return result
