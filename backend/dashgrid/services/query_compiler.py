"""Query compiler: QuerySpec + QueryContext -> SQL via SQLGlot.

Two steps:

1. resolve_filters() substitutes the caller's context into dynamic filters.
   Stored values on dynamic filters are never used. Tenant-scoped callers
   always get a tenant filter, whatever the query spec says.
2. compile_query() builds the SELECT that pulls raw rows for in-memory
   aggregation. Aggregation itself stays in Python so every widget, built-in
   or custom, shares one transform regardless of the row source dialect.

All SQL is built as SQLGlot expressions, never by string concatenation.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any

import structlog
from sqlglot import exp

from dashgrid.core.config import settings
from dashgrid.schemas.query import OrderBy, QueryContext, QueryFilter, QuerySpec

logger = structlog.stdlib.get_logger(__name__)

_START_OPERATORS = ("gt", "gte")
_END_OPERATORS = ("lt", "lte")


class UnresolvedDynamicFilterError(Exception):
    """A dynamic filter cannot be bound from the caller's context."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Cannot resolve dynamic filter on {field!r}: {reason}")


@dataclass
class CompiledQuery:
    """A row-fetch query ready for the row source."""

    sql: str
    dialect: str
    filters: list[QueryFilter] = field(default_factory=list)
    limit: int | None = None


def _resolve_tenant(filt: QueryFilter, context: QueryContext, tenant_field: str) -> QueryFilter | None:
    if context.tenant_id is not None:
        return QueryFilter(field=tenant_field, operator="eq", value=context.tenant_id)
    if not context.is_restricted:
        # Admin across all customers: the filter simply does not apply
        return None
    raise UnresolvedDynamicFilterError(tenant_field, "no tenant in context for a tenant-scoped caller")


def _resolve_date(filt: QueryFilter, context: QueryContext) -> QueryFilter | None:
    if context.date_range is None:
        return None
    start = context.date_range.start.isoformat()
    end = context.date_range.end.isoformat()
    if filt.operator in _START_OPERATORS:
        return filt.model_copy(update={"value": start, "is_dynamic": False})
    if filt.operator in _END_OPERATORS:
        return filt.model_copy(update={"value": end, "is_dynamic": False})
    return filt.model_copy(update={"operator": "between", "value": [start, end], "is_dynamic": False})


def resolve_filters(
    spec: QuerySpec,
    context: QueryContext,
    *,
    tenant_field: str | None = None,
    date_field: str | None = None,
) -> list[QueryFilter]:
    """Bind dynamic filters to the caller's context.

    The tenant field binds to the caller's tenant. The primary date field and
    any configured extra date fields bind to the selected date range.

    Raises:
        UnresolvedDynamicFilterError: a restricted caller has no tenant.
    """
    tenant_field = tenant_field or settings.dashboard.tenant_field
    date_fields = {date_field or settings.dashboard.date_field, *settings.dashboard.extra_date_fields}

    resolved: list[QueryFilter] = []
    tenant_bound = False
    for filt in spec.filters:
        if filt.field == tenant_field and context.is_restricted:
            # Restricted callers only ever see their own tenant
            bound = _resolve_tenant(filt, context, tenant_field)
            if bound is not None and not tenant_bound:
                resolved.append(bound)
                tenant_bound = True
            continue
        if not filt.is_dynamic:
            resolved.append(filt)
            continue
        if filt.field == tenant_field:
            bound = _resolve_tenant(filt, context, tenant_field)
        elif filt.field in date_fields:
            bound = _resolve_date(filt, context)
        else:
            logger.warning("dynamic_filter_unbound", field=filt.field, operator=filt.operator)
            bound = None
        if bound is not None:
            resolved.append(bound)
            tenant_bound = tenant_bound or bound.field == tenant_field

    if context.is_restricted and not tenant_bound:
        if context.tenant_id is None:
            raise UnresolvedDynamicFilterError(tenant_field, "no tenant in context for a tenant-scoped caller")
        resolved.append(QueryFilter(field=tenant_field, operator="eq", value=context.tenant_id))
    return resolved


def _literal(value: Any) -> exp.Expression:
    if value is None:
        return exp.Null()
    if isinstance(value, bool):
        return exp.Boolean(this=value)
    if isinstance(value, (int, float, Decimal)):
        return exp.Literal.number(value)
    if isinstance(value, (datetime, date)):
        return exp.Literal.string(value.isoformat())
    return exp.Literal.string(str(value))


def _column(name: str) -> exp.Column:
    return exp.Column(this=exp.to_identifier(name))


def _condition(filt: QueryFilter) -> exp.Expression | None:
    """WHERE condition for one filter, or None when the filter carries no usable value."""
    col = _column(filt.field)
    op = filt.operator
    value = filt.value

    if op == "is_null":
        return exp.Is(this=col, expression=exp.Null())
    if op == "not_null":
        return exp.Not(this=exp.Is(this=col, expression=exp.Null()))
    if value is None:
        return None

    if op == "in":
        values = value if isinstance(value, (list, tuple, set)) else [value]
        if not values:
            return None
        return exp.In(this=col, expressions=[_literal(v) for v in values])
    if op == "between":
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            return None
        return exp.Between(this=col, low=_literal(value[0]), high=_literal(value[1]))
    if op == "like":
        return exp.Like(this=col, expression=exp.Literal.string(str(value)))

    comparisons: dict[str, type[exp.Expression]] = {
        "eq": exp.EQ,
        "neq": exp.NEQ,
        "gt": exp.GT,
        "gte": exp.GTE,
        "lt": exp.LT,
        "lte": exp.LTE,
    }
    return comparisons[op](this=col, expression=_literal(value))


def _raw_order_by(spec: QuerySpec) -> list[OrderBy]:
    # order_by may name an output alias, which exists only after aggregation
    aliases = {c.alias for c in spec.columns if c.alias and c.alias != c.field}
    return [o for o in spec.order_by if o.field not in aliases]


def _needed_fields(spec: QuerySpec) -> list[str]:
    ordered: list[str] = []
    for name in [c.field for c in spec.columns] + spec.group_by + [o.field for o in _raw_order_by(spec)]:
        if name not in ordered:
            ordered.append(name)
    return ordered


def compile_query(
    spec: QuerySpec,
    context: QueryContext,
    *,
    dialect: str = "clickhouse",
    row_cap: int | None = None,
) -> CompiledQuery:
    """Build the raw-row SELECT for a widget.

    Only the fields the query spec reads are selected. ORDER BY and the query spec's
    LIMIT are pushed down only for plain projections; aggregated widgets need
    every matching row (up to row_cap).
    """
    cap = row_cap if row_cap is not None else settings.dashboard.row_fetch_cap
    filters = resolve_filters(spec, context)

    fields = _needed_fields(spec)
    projection: list[exp.Expression] = [_column(f) for f in fields] or [exp.Star()]
    select = exp.select(*projection).from_(exp.to_table(spec.base_entity))

    for filt in filters:
        condition = _condition(filt)
        if condition is not None:
            select = select.where(condition)

    is_projection = not spec.group_by and not spec.aggregate_columns()
    limit = cap
    if is_projection:
        order_by = _raw_order_by(spec)
        if order_by:
            select = select.order_by(
                *[exp.Ordered(this=_column(o.field), desc=o.direction == "desc") for o in order_by]
            )
        if spec.limit is not None:
            limit = min(spec.limit, cap)
    select = select.limit(int(limit))

    return CompiledQuery(sql=select.sql(dialect=dialect), dialect=dialect, filters=filters, limit=limit)
