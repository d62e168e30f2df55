"""Built-in widget registry tests."""

import pytest
from pydantic import ValidationError

from dashgrid.schemas.layout import DashboardKind
from dashgrid.schemas.widget import WidgetType
from dashgrid.services.field_policy import is_restricted_field
from dashgrid.services.widget_registry import BUILTIN_WIDGETS, WidgetNotFoundError, WidgetRegistry

EXPECTED_IDS = {
    "flow_map",
    "cost_by_state",
    "total_shipments",
    "in_transit",
    "delivered_month",
    "shipment_volume_trend",
    "total_cost",
    "avg_cost_shipment",
    "monthly_spend",
    "accessorial_breakdown",
    "mode_breakdown",
    "carrier_mix",
    "spend_by_carrier",
    "top_lanes",
    "carrier_performance",
    "total_margin",
}


class TestCatalog:
    def test_contains_every_builtin(self):
        assert set(BUILTIN_WIDGETS) == EXPECTED_IDS

    def test_catalog_is_read_only(self):
        with pytest.raises(TypeError):
            BUILTIN_WIDGETS["new"] = BUILTIN_WIDGETS["flow_map"]  # type: ignore[index]

    def test_definitions_are_frozen(self):
        with pytest.raises(ValidationError):
            BUILTIN_WIDGETS["flow_map"].name = "Renamed"  # type: ignore[misc]

    def test_ids_match_keys(self):
        assert all(w.id == key for key, w in BUILTIN_WIDGETS.items())

    def test_map_widgets(self):
        assert BUILTIN_WIDGETS["flow_map"].type == WidgetType.MAP
        assert BUILTIN_WIDGETS["cost_by_state"].type == WidgetType.MAP

    def test_every_widget_is_tenant_scoped(self):
        for widget in BUILTIN_WIDGETS.values():
            assert any(
                f.field == "customer_id" and f.is_dynamic for f in widget.query_spec.filters
            ), widget.id

    def test_only_admin_widgets_touch_restricted_fields(self):
        for widget in BUILTIN_WIDGETS.values():
            touches = any(is_restricted_field(f) for f in widget.query_spec.referenced_fields())
            if touches:
                assert widget.access_scope == "admin", widget.id


class TestRegistry:
    def test_customer_scope_excludes_admin_widgets(self):
        ids = {w.id for w in WidgetRegistry().list_for_scope(is_admin=False)}
        assert "total_margin" not in ids
        assert ids == EXPECTED_IDS - {"total_margin"}

    def test_admin_scope_includes_everything(self):
        assert {w.id for w in WidgetRegistry().list_for_scope(is_admin=True)} == EXPECTED_IDS

    def test_get(self):
        registry = WidgetRegistry()
        assert registry.get("top_lanes").type == WidgetType.TABLE
        assert registry.get("nope") is None
        assert "top_lanes" in registry

    def test_require_raises_for_unknown(self):
        with pytest.raises(WidgetNotFoundError):
            WidgetRegistry().require("nope")

    def test_list_by_category(self):
        financial = {w.id for w in WidgetRegistry().list_by_category("financial")}
        assert "total_cost" in financial
        assert "total_margin" not in financial

    @pytest.mark.parametrize("kind", list(DashboardKind))
    def test_default_layout_ids_are_known_and_visible(self, kind):
        registry = WidgetRegistry()
        layout = registry.default_layout(kind)
        assert layout
        assert len(layout) == len(set(layout))
        for widget_id in layout:
            assert registry.get(widget_id).access_scope == "all"

    def test_default_layout_skips_ids_missing_from_catalog(self):
        registry = WidgetRegistry(
            catalog={"total_cost": BUILTIN_WIDGETS["total_cost"]},
            default_layouts={DashboardKind.MAIN: ("ghost", "total_cost")},
        )
        assert registry.default_layout(DashboardKind.MAIN) == ["total_cost"]
        assert registry.default_layout(DashboardKind.PULSE) == []
