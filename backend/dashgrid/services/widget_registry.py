"""Hardcoded built-in widget registry.

Built-in widgets are code-defined, not stored in the document store.
Each one is pure data: a QuerySpec plus a visualization hint. The generic
executor runs them exactly like user-authored widgets.
"""

from collections.abc import Mapping
from types import MappingProxyType

from dashgrid.schemas.layout import DashboardKind
from dashgrid.schemas.query import OrderBy, QueryColumn, QueryFilter, QuerySpec
from dashgrid.schemas.widget import AccessScope, ValueFormat, VisualizationHint, WidgetDefinition, WidgetType

SHIPMENT_ENTITY = "shipment"


class WidgetNotFoundError(LookupError):
    """Raised when a widget id resolves to neither a built-in nor a custom widget."""

    def __init__(self, widget_id: str):
        self.widget_id = widget_id
        super().__init__(f"Widget {widget_id!r} not found")


def _scoped(*extra: QueryFilter) -> list[QueryFilter]:
    """Tenant and pickup-date filters every shipment widget carries."""
    return [
        QueryFilter(field="customer_id", operator="eq", is_dynamic=True),
        QueryFilter(field="pickup_date", operator="gte", is_dynamic=True),
        QueryFilter(field="pickup_date", operator="lte", is_dynamic=True),
        *extra,
    ]


def _count(field: str = "load_id", alias: str = "shipments") -> QueryColumn:
    return QueryColumn(field=field, alias=alias, aggregate="count")


def _sum(field: str, alias: str | None = None) -> QueryColumn:
    return QueryColumn(field=field, alias=alias, aggregate="sum")


def _avg(field: str, alias: str | None = None) -> QueryColumn:
    return QueryColumn(field=field, alias=alias, aggregate="avg")


def _make_widget(
    widget_id: str,
    name: str,
    widget_type: WidgetType,
    category: str,
    spec: QuerySpec,
    *,
    description: str = "",
    label: str | None = None,
    value_format: ValueFormat = "number",
    tooltip: str | None = None,
    access_scope: AccessScope = "all",
) -> WidgetDefinition:
    return WidgetDefinition(
        id=widget_id,
        name=name,
        description=description,
        type=widget_type,
        category=category,
        access_scope=access_scope,
        query_spec=spec,
        visualization=VisualizationHint(label=label or name, value_format=value_format),
        tooltip=tooltip,
    )


_WIDGETS: list[WidgetDefinition] = [
    # ── Geographic ──
    _make_widget(
        "flow_map",
        "Shipment Flow Map",
        WidgetType.MAP,
        "geographic",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[QueryColumn(field="dest_state"), _count()],
            filters=_scoped(),
            group_by=["dest_state"],
        ),
        description="Shipment counts by destination state",
    ),
    _make_widget(
        "cost_by_state",
        "Cost by State",
        WidgetType.MAP,
        "geographic",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[QueryColumn(field="dest_state"), _avg("retail", "avg_spend")],
            filters=_scoped(),
            group_by=["dest_state"],
        ),
        description="Average freight spend per shipment by destination state",
        value_format="currency",
    ),
    # ── Volume ──
    _make_widget(
        "total_shipments",
        "Total Shipments",
        WidgetType.KPI,
        "volume",
        QuerySpec(base_entity=SHIPMENT_ENTITY, columns=[_count()], filters=_scoped()),
        description="Shipments picked up in the selected period",
        tooltip="COUNT(*) of shipments in date range",
    ),
    _make_widget(
        "in_transit",
        "In Transit",
        WidgetType.KPI,
        "volume",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[_count()],
            filters=_scoped(QueryFilter(field="delivery_date", operator="is_null")),
        ),
        description="Shipments picked up but not yet delivered",
        tooltip="COUNT(*) of shipments with pickup_date but no delivery_date",
    ),
    _make_widget(
        "delivered_month",
        "Delivered in Period",
        WidgetType.KPI,
        "volume",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[_count()],
            filters=[
                QueryFilter(field="customer_id", operator="eq", is_dynamic=True),
                QueryFilter(field="delivery_date", operator="gte", is_dynamic=True),
                QueryFilter(field="delivery_date", operator="lte", is_dynamic=True),
            ],
        ),
        description="Shipments delivered in the selected period",
    ),
    _make_widget(
        "shipment_volume_trend",
        "Shipment Volume Trend",
        WidgetType.BAR_CHART,
        "volume",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[QueryColumn(field="pickup_date"), _count()],
            filters=_scoped(),
            group_by=["pickup_date"],
            granularity="week",
        ),
        description="Weekly shipment counts",
    ),
    # ── Financial ──
    _make_widget(
        "total_cost",
        "Total Cost",
        WidgetType.FEATURED_KPI,
        "financial",
        QuerySpec(base_entity=SHIPMENT_ENTITY, columns=[_sum("retail", "total_spend")], filters=_scoped()),
        description="Total freight spend in the selected period",
        value_format="currency",
        tooltip="SUM(retail) for shipments in date range",
    ),
    _make_widget(
        "avg_cost_shipment",
        "Avg Cost Per Shipment",
        WidgetType.FEATURED_KPI,
        "financial",
        QuerySpec(base_entity=SHIPMENT_ENTITY, columns=[_avg("retail", "avg_spend")], filters=_scoped()),
        description="Average freight spend per shipment",
        value_format="currency",
        tooltip="AVG(retail) for shipments in date range",
    ),
    _make_widget(
        "monthly_spend",
        "Monthly Spend Trend",
        WidgetType.LINE_CHART,
        "financial",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[QueryColumn(field="pickup_date"), _sum("retail", "spend")],
            filters=_scoped(),
            group_by=["pickup_date"],
            granularity="month",
        ),
        description="Freight spend per month",
        value_format="currency",
    ),
    _make_widget(
        "accessorial_breakdown",
        "Accessorial Charges",
        WidgetType.BAR_CHART,
        "financial",
        QuerySpec(
            base_entity="shipment_accessorial",
            columns=[QueryColumn(field="accessorial_type"), _sum("charge", "charges")],
            filters=_scoped(),
            group_by=["accessorial_type"],
        ),
        description="Breakdown of accessorial charges by type",
        value_format="currency",
        tooltip="SUM(charge) grouped by accessorial type",
    ),
    # ── Breakdown ──
    _make_widget(
        "mode_breakdown",
        "Shipments by Mode",
        WidgetType.PIE_CHART,
        "breakdown",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[QueryColumn(field="mode_name"), _count()],
            filters=_scoped(),
            group_by=["mode_name"],
        ),
        description="Distribution of shipments by transport mode",
    ),
    _make_widget(
        "carrier_mix",
        "Carrier Mix",
        WidgetType.PIE_CHART,
        "breakdown",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[QueryColumn(field="carrier_name"), _count()],
            filters=_scoped(),
            group_by=["carrier_name"],
        ),
        description="Share of shipments per carrier",
    ),
    _make_widget(
        "spend_by_carrier",
        "Spend by Carrier",
        WidgetType.BAR_CHART,
        "breakdown",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[QueryColumn(field="carrier_name"), _sum("retail", "spend")],
            filters=_scoped(),
            group_by=["carrier_name"],
        ),
        description="Freight spend per carrier",
        value_format="currency",
    ),
    _make_widget(
        "top_lanes",
        "Top Lanes",
        WidgetType.TABLE,
        "breakdown",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[
                QueryColumn(field="origin_state", alias="origin"),
                QueryColumn(field="dest_state", alias="destination"),
                _count(),
                _sum("retail", "spend"),
            ],
            filters=_scoped(),
            group_by=["origin_state", "dest_state"],
            order_by=[OrderBy(field="shipments", direction="desc")],
            limit=10,
        ),
        description="Busiest origin/destination state pairs",
    ),
    # ── Performance ──
    _make_widget(
        "carrier_performance",
        "Carrier Performance",
        WidgetType.TABLE,
        "performance",
        QuerySpec(
            base_entity=SHIPMENT_ENTITY,
            columns=[
                QueryColumn(field="carrier_name", alias="carrier"),
                _count(),
                _avg("transit_days", "avg_transit_days"),
            ],
            filters=_scoped(QueryFilter(field="delivery_date", operator="not_null")),
            group_by=["carrier_name"],
            order_by=[OrderBy(field="shipments", direction="desc")],
        ),
        description="Delivered volume and transit times by carrier",
    ),
    # ── Admin only ──
    _make_widget(
        "total_margin",
        "Total Margin",
        WidgetType.FEATURED_KPI,
        "financial",
        QuerySpec(base_entity=SHIPMENT_ENTITY, columns=[_sum("margin", "total_margin")], filters=_scoped()),
        description="Gross margin across all shipments in the selected period",
        value_format="currency",
        access_scope="admin",
    ),
]

BUILTIN_WIDGETS: Mapping[str, WidgetDefinition] = MappingProxyType({w.id: w for w in _WIDGETS})

DEFAULT_LAYOUTS: Mapping[DashboardKind, tuple[str, ...]] = MappingProxyType(
    {
        DashboardKind.MAIN: (
            "total_shipments",
            "in_transit",
            "delivered_month",
            "total_cost",
            "flow_map",
            "shipment_volume_trend",
            "monthly_spend",
            "spend_by_carrier",
            "carrier_mix",
            "top_lanes",
        ),
        DashboardKind.PULSE: (
            "total_shipments",
            "in_transit",
            "total_cost",
            "avg_cost_shipment",
            "monthly_spend",
            "mode_breakdown",
        ),
    }
)


class WidgetRegistry:
    """Read-only view over a catalog of built-in widget definitions."""

    def __init__(
        self,
        catalog: Mapping[str, WidgetDefinition] = BUILTIN_WIDGETS,
        default_layouts: Mapping[DashboardKind, tuple[str, ...]] = DEFAULT_LAYOUTS,
    ):
        self._catalog = MappingProxyType(dict(catalog))
        self._default_layouts = default_layouts

    def get(self, widget_id: str) -> WidgetDefinition | None:
        return self._catalog.get(widget_id)

    def require(self, widget_id: str) -> WidgetDefinition:
        definition = self._catalog.get(widget_id)
        if definition is None:
            raise WidgetNotFoundError(widget_id)
        return definition

    def list_for_scope(self, is_admin: bool) -> list[WidgetDefinition]:
        """Catalog order; admin-scoped widgets only for admins."""
        return [w for w in self._catalog.values() if is_admin or w.access_scope != "admin"]

    def list_by_category(self, category: str, is_admin: bool = False) -> list[WidgetDefinition]:
        return [w for w in self.list_for_scope(is_admin) if w.category == category]

    def default_layout(self, kind: DashboardKind = DashboardKind.MAIN) -> list[str]:
        return [w for w in self._default_layouts.get(kind, ()) if w in self._catalog]

    def __contains__(self, widget_id: object) -> bool:
        return widget_id in self._catalog

    def __len__(self) -> int:
        return len(self._catalog)
