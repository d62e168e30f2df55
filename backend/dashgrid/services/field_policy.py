"""Restricted-field access policy.

Cost and margin figures are internal. Customers (and admins viewing as a
customer) must never see them, and nothing saved into the shared system
namespace may reference them. Enforced twice: when a custom widget is saved
and again when any widget executes.

Redaction is silent: offending references are dropped, never rejected.
"""

from collections.abc import Iterable, Mapping
from typing import Any

import structlog

from dashgrid.core.config import settings
from dashgrid.core.metrics import restricted_fields_stripped_total
from dashgrid.schemas.query import QuerySpec
from dashgrid.schemas.widget import (
    ChartData,
    CustomWidgetDefinition,
    KpiData,
    TableData,
    VisualizationHint,
)

logger = structlog.stdlib.get_logger(__name__)

RESTRICTED_FIELDS: frozenset[str] = frozenset(
    {
        "cost",
        "cost_without_tax",
        "margin",
        "margin_percent",
        "linehaul",
        "carrier_total",
        "carrier_pay",
        "carrier_cost",
        "buy_rate",
        "target_rate",
    }
)


def restricted_fields() -> frozenset[str]:
    """Built-in deny list plus RESTRICTED_FIELDS_EXTRA from configuration."""
    extra = {f.strip().lower() for f in settings.field_policy.restricted_fields_extra if f.strip()}
    return RESTRICTED_FIELDS | extra


def is_restricted_field(field: str | None) -> bool:
    if not field:
        return False
    return field.strip().lower() in restricted_fields()


def redact_query_spec(spec: QuerySpec, stage: str = "execute") -> tuple[QuerySpec, list[str]]:
    """Return a copy of spec with every restricted reference removed.

    Returns the redacted spec and the sorted list of removed field names.
    """
    removed: set[str] = set()

    def keep(field: str) -> bool:
        if is_restricted_field(field):
            removed.add(field)
            return False
        return True

    columns = [c for c in spec.columns if keep(c.field)]
    dropped_aggregate = any(c.aggregate is not None and is_restricted_field(c.field) for c in spec.columns)
    redacted = spec.model_copy(
        update={
            "columns": columns,
            "filters": [f for f in spec.filters if keep(f.field)],
            "group_by": [g for g in spec.group_by if keep(g)],
            "order_by": [o for o in spec.order_by if keep(o.field)],
            "aggregate_redacted": spec.aggregate_redacted or dropped_aggregate,
        }
    )
    if removed:
        restricted_fields_stripped_total.labels(stage=stage).inc(len(removed))
    return redacted, sorted(removed)


def redact_visualization(hint: VisualizationHint) -> VisualizationHint:
    updates: dict[str, Any] = {}
    if is_restricted_field(hint.x_field):
        updates["x_field"] = None
    if is_restricted_field(hint.y_field):
        updates["y_field"] = None
    return hint.model_copy(update=updates) if updates else hint


def strip_restricted_keys(rows: Iterable[Mapping[str, Any]]) -> list[dict[str, Any]]:
    """Drop restricted keys from every row a row source returned."""
    return [{k: v for k, v in row.items() if not is_restricted_field(k)} for row in rows]


def redact_snapshot(snapshot: KpiData | ChartData | TableData | None) -> KpiData | ChartData | TableData | None:
    """Remove restricted columns from a stored table snapshot."""
    if not isinstance(snapshot, TableData):
        return snapshot
    columns = [c for c in snapshot.columns if not is_restricted_field(c)]
    if len(columns) == len(snapshot.columns):
        return snapshot
    return TableData(rows=strip_restricted_keys(snapshot.rows), columns=columns)


def redact_custom_widget(definition: CustomWidgetDefinition) -> CustomWidgetDefinition:
    """Strip restricted fields from a custom widget before it is persisted."""
    spec, removed = redact_query_spec(definition.query_spec, stage="save")
    if removed:
        logger.info(
            "restricted_fields_stripped",
            widget_id=definition.id or None,
            widget_name=definition.name,
            fields=removed,
        )
    return definition.model_copy(
        update={
            "query_spec": spec,
            "visualization": redact_visualization(definition.visualization),
            "static_snapshot": redact_snapshot(definition.static_snapshot),
        }
    )
