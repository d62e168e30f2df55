"""Widget executor: the one place a widget definition becomes data.

    definition -> access check -> field policy -> row fetch -> aggregation

Built-in and custom widgets go through the same path. The caller's
QueryContext is passed in explicitly; dynamic filters are bound from it by
the row source's compiler.
"""

import structlog

from dashgrid.schemas.query import QueryContext
from dashgrid.schemas.widget import (
    AnyWidgetDefinition,
    ChartData,
    CustomWidgetDefinition,
    KpiData,
    TableData,
)
from dashgrid.services.aggregation import aggregate
from dashgrid.services.field_policy import redact_query_spec, redact_snapshot, strip_restricted_keys
from dashgrid.services.row_source import RowSource

logger = structlog.stdlib.get_logger(__name__)


class WidgetAccessError(PermissionError):
    """Raised when the caller's context may not run a widget."""

    def __init__(self, widget_id: str, reason: str):
        self.widget_id = widget_id
        self.reason = reason
        super().__init__(f"Access to widget {widget_id!r} denied: {reason}")


class WidgetExecutor:
    """Runs widget definitions against a row source."""

    def __init__(
        self,
        row_source: RowSource,
        max_series: int | None = None,
        default_table_limit: int | None = None,
    ):
        self._row_source = row_source
        self._max_series = max_series
        self._default_table_limit = default_table_limit

    async def calculate(
        self, definition: AnyWidgetDefinition, context: QueryContext
    ) -> KpiData | ChartData | TableData:
        """Produce the renderable data for one widget.

        Raises:
            WidgetAccessError: admin-only widget requested by a restricted caller.
            UnresolvedDynamicFilterError: the context cannot bind a required filter.
        """
        log = logger.bind(widget_id=definition.id, widget_type=definition.type.value)

        if definition.access_scope == "admin" and context.is_restricted:
            raise WidgetAccessError(definition.id, "admin-only widget")

        if isinstance(definition, CustomWidgetDefinition) and definition.data_mode == "static":
            if definition.static_snapshot is not None:
                snapshot = definition.static_snapshot
                return redact_snapshot(snapshot) if context.is_restricted else snapshot  # type: ignore[return-value]
            log.warning("static_widget_without_snapshot")

        spec = definition.query_spec
        if context.is_restricted:
            spec, removed = redact_query_spec(spec, stage="execute")
            if removed:
                log.info("restricted_fields_stripped", fields=removed)

        rows = await self._row_source.fetch_rows(spec, context)
        if context.is_restricted:
            rows = strip_restricted_keys(rows)

        return aggregate(
            spec,
            definition.type,
            rows,
            label=definition.visualization.label or definition.name,
            value_format=definition.visualization.value_format,
            max_series=self._max_series,
            default_table_limit=self._default_table_limit,
        )
