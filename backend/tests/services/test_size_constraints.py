"""Size constraint resolver tests.

The ordering and clamp checks run over every (widget id, widget type, kind)
combination the resolver can see: every override id and a plain id, against
every type name plus legacy and unknown names.
"""

import pytest

from dashgrid.schemas.layout import DashboardKind
from dashgrid.schemas.widget import WidgetType
from dashgrid.services.size_constraints import (
    FALLBACK_CONSTRAINT,
    TYPE_CONSTRAINTS,
    WIDGET_OVERRIDES,
    clamp,
    default_size,
    default_sizes_for_layout,
    get_constraints,
    is_interactive,
    is_valid,
    size_label,
)

WIDGET_IDS = [*WIDGET_OVERRIDES, "total_shipments", "widget_custom123"]
TYPE_NAMES = [t.value for t in WidgetType] + ["number", "currency", "percentage", "gauge", "", None]
KINDS = list(DashboardKind)
REQUESTS = [-5, 0, 1, 2, 3, 4, 7, 2.6, "2", "abc", None, True, float("nan"), float("inf")]


def _all_pairs():
    for widget_id in WIDGET_IDS:
        for type_name in TYPE_NAMES:
            for kind in KINDS:
                yield widget_id, type_name, kind


class TestTables:
    def test_type_table_is_exhaustive(self):
        assert set(TYPE_CONSTRAINTS) == set(WidgetType)

    def test_fallback_is_kpi(self):
        assert FALLBACK_CONSTRAINT == TYPE_CONSTRAINTS[WidgetType.KPI]


class TestGetConstraints:
    @pytest.mark.parametrize("widget_id,widget_type,kind", list(_all_pairs()))
    def test_min_le_optimal_le_max(self, widget_id, widget_type, kind):
        c = get_constraints(widget_id, widget_type, kind)
        assert 1 <= c.min_size <= c.optimal_size <= c.max_size <= kind.max_size_level
        assert c.min_height > 0

    def test_type_defaults(self):
        c = get_constraints("some_bar", WidgetType.BAR_CHART)
        assert (c.min_size, c.max_size, c.optimal_size, c.min_height) == (2, 3, 2, 280)

    def test_pie_chart_caps_at_medium(self):
        assert get_constraints("any_pie", "pie_chart").max_size == 2

    def test_override_wins_over_type(self):
        c = get_constraints("flow_map", WidgetType.MAP)
        assert (c.min_size, c.max_size, c.optimal_size, c.min_height) == (3, 3, 3, 500)

    def test_override_applies_regardless_of_type(self):
        assert get_constraints("carrier_mix", WidgetType.KPI).max_size == 2

    def test_unknown_type_uses_kpi_constraints(self):
        assert get_constraints("x", "gauge") == TYPE_CONSTRAINTS[WidgetType.KPI]

    def test_legacy_type_names_resolve_to_kpi(self):
        assert get_constraints("x", "currency") == TYPE_CONSTRAINTS[WidgetType.KPI]

    def test_pulse_widens_full_width_maximum(self):
        assert get_constraints("x", WidgetType.TABLE, DashboardKind.PULSE).max_size == 4
        # Medium-capped widgets stay capped
        assert get_constraints("x", WidgetType.PIE_CHART, DashboardKind.PULSE).max_size == 2


class TestClamp:
    @pytest.mark.parametrize("widget_id,widget_type,kind", list(_all_pairs()))
    @pytest.mark.parametrize("requested", REQUESTS)
    def test_result_is_valid_and_idempotent(self, widget_id, widget_type, kind, requested):
        size = clamp(requested, widget_id, widget_type, kind)
        assert is_valid(size, widget_id, widget_type, kind)
        assert clamp(size, widget_id, widget_type, kind) == size

    def test_pie_chart_large_request_clamps_to_medium(self):
        assert clamp(3, "carrier_mix", WidgetType.PIE_CHART) == 2

    def test_bar_chart_small_request_clamps_up(self):
        assert clamp(1, "spend_by_carrier", WidgetType.BAR_CHART) == 2

    def test_in_range_request_unchanged(self):
        assert clamp(2, "total_shipments", WidgetType.KPI) == 2

    def test_numeric_strings_and_floats_coerced(self):
        assert clamp("3", "total_shipments", WidgetType.KPI) == 3
        assert clamp(1.6, "total_shipments", WidgetType.KPI) == 2

    @pytest.mark.parametrize("requested", ["abc", None, True, float("nan")])
    def test_unparseable_request_gets_optimal_size(self, requested):
        assert clamp(requested, "flow_map", WidgetType.MAP) == 3


class TestHelpers:
    def test_is_valid_bounds(self):
        assert is_valid(2, "x", WidgetType.TABLE)
        assert not is_valid(1, "x", WidgetType.TABLE)
        assert not is_valid(4, "x", WidgetType.TABLE)
        assert not is_valid("abc", "x", WidgetType.TABLE)

    def test_default_size_is_optimal(self):
        assert default_size("cost_by_state", WidgetType.MAP) == 3
        assert default_size("total_shipments", WidgetType.KPI) == 1

    def test_default_sizes_for_layout(self):
        sizes = default_sizes_for_layout(
            ["flow_map", "total_cost", "mystery"],
            {"flow_map": WidgetType.MAP, "total_cost": WidgetType.FEATURED_KPI},
        )
        assert sizes == {"flow_map": 3, "total_cost": 1, "mystery": 1}

    def test_only_maps_are_interactive(self):
        assert is_interactive(WidgetType.MAP)
        assert is_interactive("map")
        assert not any(is_interactive(t) for t in WidgetType if t != WidgetType.MAP)
        assert not is_interactive("gauge")

    @pytest.mark.parametrize("size,label", [(1, "Small"), (2, "Medium"), (3, "Large"), (4, "Full"), (9, "Auto")])
    def test_size_label(self, size, label):
        assert size_label(size) == label
