"""Pydantic models shared across services: query specs, widgets, layouts.

Import the public models from here.
"""

from dashgrid.schemas.layout import DashboardKind, InvalidReorderError, LayoutDocument, LayoutKey
from dashgrid.schemas.query import DateRange, OrderBy, QueryColumn, QueryContext, QueryFilter, QuerySpec
from dashgrid.schemas.widget import (
    ChartData,
    CreatedBy,
    CustomWidgetDefinition,
    KpiData,
    OwnerScope,
    PromotionRecord,
    SeriesPoint,
    TableData,
    VisualizationHint,
    WidgetDefinition,
    WidgetType,
)

__all__ = [
    "DashboardKind",
    "InvalidReorderError",
    "LayoutDocument",
    "LayoutKey",
    "DateRange",
    "OrderBy",
    "QueryColumn",
    "QueryContext",
    "QueryFilter",
    "QuerySpec",
    "ChartData",
    "CreatedBy",
    "CustomWidgetDefinition",
    "KpiData",
    "OwnerScope",
    "PromotionRecord",
    "SeriesPoint",
    "TableData",
    "VisualizationHint",
    "WidgetDefinition",
    "WidgetType",
]
