"""Widget types, definitions, and the renderable data shapes they produce."""

from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from dashgrid.schemas.query import QuerySpec

# Older widget documents used the value format as the type name
_LEGACY_KPI_TYPES = {"number", "currency", "percentage"}


class WidgetType(str, Enum):
    KPI = "kpi"
    FEATURED_KPI = "featured_kpi"
    LINE_CHART = "line_chart"
    BAR_CHART = "bar_chart"
    PIE_CHART = "pie_chart"
    TABLE = "table"
    MAP = "map"
    AI_REPORT = "ai_report"

    @classmethod
    def _missing_(cls, value: object) -> "WidgetType | None":
        if isinstance(value, str) and value.lower() in _LEGACY_KPI_TYPES:
            return cls.KPI
        return None


def parse_widget_type(value: "WidgetType | str | None") -> WidgetType | None:
    """Lenient lookup: returns None for unknown type names instead of raising."""
    if isinstance(value, WidgetType):
        return value
    if value is None:
        return None
    try:
        return WidgetType(value)
    except ValueError:
        return None


class OwnerScope(str, Enum):
    SYSTEM = "system"
    ADMIN = "admin"
    CUSTOMER = "customer"


AccessScope = Literal["all", "admin"]
Visibility = Literal["private", "promoted", "system"]
DataMode = Literal["live", "static"]
ValueFormat = Literal["number", "currency", "percent"]


# ── Widget data ──────────────────────────────────────────────────────────


class KpiData(BaseModel):
    kind: Literal["kpi"] = "kpi"
    value: float
    label: str
    format: ValueFormat = "number"


class SeriesPoint(BaseModel):
    name: str
    value: float


class ChartData(BaseModel):
    kind: Literal["chart"] = "chart"
    series: list[SeriesPoint] = Field(default_factory=list)


class TableData(BaseModel):
    kind: Literal["table"] = "table"
    rows: list[dict[str, Any]] = Field(default_factory=list)
    columns: list[str] = Field(default_factory=list)


WidgetData = Annotated[Union[KpiData, ChartData, TableData], Field(discriminator="kind")]


def is_empty_result(data: KpiData | ChartData | TableData) -> bool:
    """Whether a result carries nothing to draw (a KPI always draws its value)."""
    if isinstance(data, ChartData):
        return not data.series
    if isinstance(data, TableData):
        return not data.rows
    return False


# ── Definitions ──────────────────────────────────────────────────────────


class VisualizationHint(BaseModel):
    label: str | None = None
    value_format: ValueFormat = "number"
    x_field: str | None = None
    y_field: str | None = None


class WidgetDefinition(BaseModel):
    """Built-in widget. Defined in code, never mutated at runtime."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str = ""
    type: WidgetType
    category: str
    access_scope: AccessScope = "all"
    default_size: int | None = None
    query_spec: QuerySpec
    visualization: VisualizationHint = Field(default_factory=VisualizationHint)
    tooltip: str | None = None


class CreatedBy(BaseModel):
    owner_id: str
    owner_scope: OwnerScope
    timestamp: datetime


class PromotionRecord(BaseModel):
    """Audit trail kept on a widget copied into the system namespace."""

    original_widget_id: str
    original_scope: OwnerScope
    original_owner_id: str | None = None
    promoted_by: str
    promoted_at: datetime


class CustomWidgetDefinition(BaseModel):
    """User- or admin-authored widget persisted in the custom widget store."""

    id: str = ""
    name: str
    description: str = ""
    type: WidgetType
    category: str = "custom"
    access_scope: AccessScope = "all"
    default_size: int | None = None
    query_spec: QuerySpec
    visualization: VisualizationHint = Field(default_factory=VisualizationHint)
    tooltip: str | None = None

    created_by: CreatedBy | None = None
    visibility: Visibility = "private"
    version: int = Field(default=0, ge=0)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    data_mode: DataMode = "live"
    static_snapshot: WidgetData | None = None
    snapshot_timestamp: datetime | None = None

    promoted_from: PromotionRecord | None = None


AnyWidgetDefinition = WidgetDefinition | CustomWidgetDefinition
