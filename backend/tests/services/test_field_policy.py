"""Restricted-field policy tests."""

from unittest.mock import patch

from dashgrid.schemas.query import OrderBy, QueryColumn, QueryFilter, QuerySpec
from dashgrid.schemas.widget import (
    CustomWidgetDefinition,
    KpiData,
    TableData,
    VisualizationHint,
    WidgetType,
)
from dashgrid.services.field_policy import (
    RESTRICTED_FIELDS,
    is_restricted_field,
    redact_custom_widget,
    redact_query_spec,
    redact_snapshot,
    strip_restricted_keys,
)


def _spec_with_cost() -> QuerySpec:
    return QuerySpec(
        base_entity="shipment",
        columns=[
            QueryColumn(field="carrier_name"),
            QueryColumn(field="cost", aggregate="sum"),
            QueryColumn(field="retail", aggregate="sum"),
        ],
        filters=[
            QueryFilter(field="margin", operator="gt", value=0),
            QueryFilter(field="customer_id", is_dynamic=True),
        ],
        group_by=["carrier_name", "linehaul"],
        order_by=[OrderBy(field="carrier_pay", direction="desc"), OrderBy(field="retail")],
    )


class TestIsRestricted:
    def test_builtin_list(self):
        for name in ("cost", "margin", "margin_percent", "carrier_total", "buy_rate", "target_rate"):
            assert name in RESTRICTED_FIELDS
            assert is_restricted_field(name)

    def test_case_insensitive(self):
        assert is_restricted_field("Cost")
        assert is_restricted_field(" MARGIN ")

    def test_allowed_fields(self):
        assert not is_restricted_field("retail")
        assert not is_restricted_field(None)
        assert not is_restricted_field("")

    def test_configured_extras(self):
        with patch("dashgrid.services.field_policy.settings") as mock_settings:
            mock_settings.field_policy.restricted_fields_extra = ["fuel_cost"]
            assert is_restricted_field("fuel_cost")
        assert not is_restricted_field("fuel_cost")


class TestRedactQuerySpec:
    def test_strips_every_position(self):
        redacted, removed = redact_query_spec(_spec_with_cost())

        assert [c.field for c in redacted.columns] == ["carrier_name", "retail"]
        assert [f.field for f in redacted.filters] == ["customer_id"]
        assert redacted.group_by == ["carrier_name"]
        assert [o.field for o in redacted.order_by] == ["retail"]
        assert removed == ["carrier_pay", "cost", "linehaul", "margin"]

    def test_original_untouched(self):
        spec = _spec_with_cost()
        redact_query_spec(spec)
        assert len(spec.columns) == 3

    def test_clean_spec_unchanged(self):
        spec = QuerySpec(base_entity="shipment", columns=[QueryColumn(field="retail", aggregate="sum")])
        redacted, removed = redact_query_spec(spec)
        assert redacted == spec
        assert removed == []

    def test_dropped_aggregate_is_marked(self):
        redacted, _ = redact_query_spec(_spec_with_cost())
        assert redacted.aggregate_redacted is True

    def test_dropped_plain_column_is_not_marked(self):
        spec = QuerySpec(base_entity="shipment", columns=[QueryColumn(field="carrier_name"), QueryColumn(field="cost")])
        redacted, removed = redact_query_spec(spec)
        assert removed == ["cost"]
        assert redacted.aggregate_redacted is False

    def test_mark_survives_a_second_pass(self):
        spec = QuerySpec(base_entity="shipment", columns=[QueryColumn(field="margin", aggregate="avg")])
        once, _ = redact_query_spec(spec, stage="save")
        twice, removed = redact_query_spec(once)
        assert removed == []
        assert twice.aggregate_redacted is True


class TestRowsAndSnapshots:
    def test_strip_restricted_keys(self):
        rows = [{"retail": 10, "cost": 7, "Margin": 3}]
        assert strip_restricted_keys(rows) == [{"retail": 10}]

    def test_table_snapshot_redacted(self):
        snapshot = TableData(rows=[{"carrier": "A", "cost": 1}], columns=["carrier", "cost"])
        redacted = redact_snapshot(snapshot)
        assert redacted.columns == ["carrier"]
        assert redacted.rows == [{"carrier": "A"}]

    def test_kpi_snapshot_untouched(self):
        snapshot = KpiData(value=5, label="Total")
        assert redact_snapshot(snapshot) is snapshot


class TestRedactCustomWidget:
    def test_spec_visualization_and_snapshot(self):
        widget = CustomWidgetDefinition(
            name="Carrier costs",
            type=WidgetType.BAR_CHART,
            query_spec=_spec_with_cost(),
            visualization=VisualizationHint(x_field="carrier_name", y_field="cost"),
            data_mode="static",
            static_snapshot=TableData(rows=[{"cost": 1}], columns=["cost"]),
        )
        redacted = redact_custom_widget(widget)

        assert "cost" not in redacted.query_spec.referenced_fields()
        assert redacted.visualization.x_field == "carrier_name"
        assert redacted.visualization.y_field is None
        assert redacted.static_snapshot.columns == []
