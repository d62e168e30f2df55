"""Declarative widget query specification and caller context."""

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Aggregate = Literal["count", "sum", "avg"]
FilterOperator = Literal[
    "eq",
    "neq",
    "gt",
    "gte",
    "lt",
    "lte",
    "in",
    "like",
    "between",
    "is_null",
    "not_null",
]
OrderDirection = Literal["asc", "desc"]
Granularity = Literal["day", "week", "month"]


class QueryColumn(BaseModel):
    field: str
    alias: str | None = None
    aggregate: Aggregate | None = None

    @property
    def output_name(self) -> str:
        return self.alias or self.field


class QueryFilter(BaseModel):
    field: str
    operator: FilterOperator = "eq"
    value: Any | None = None
    # Resolved from QueryContext at execution time; any stored value is ignored
    is_dynamic: bool = False


class OrderBy(BaseModel):
    field: str
    direction: OrderDirection = "asc"


class QuerySpec(BaseModel):
    base_entity: str
    columns: list[QueryColumn] = Field(default_factory=list)
    filters: list[QueryFilter] = Field(default_factory=list)
    group_by: list[str] = Field(default_factory=list)
    order_by: list[OrderBy] = Field(default_factory=list)
    limit: int | None = Field(default=None, ge=1)
    granularity: Granularity | None = None
    # Set when field policy removed an aggregated column; scalar and series
    # widgets then render zero/empty rather than a row count
    aggregate_redacted: bool = False

    def aggregate_column(self) -> QueryColumn | None:
        """The column driving scalar and series widgets: the first one with an aggregate."""
        for col in self.columns:
            if col.aggregate is not None:
                return col
        return None

    def aggregate_columns(self) -> list[QueryColumn]:
        return [c for c in self.columns if c.aggregate is not None]

    def referenced_fields(self) -> set[str]:
        """Every raw field the query spec reads, in any position."""
        fields = {c.field for c in self.columns}
        fields.update(f.field for f in self.filters)
        fields.update(self.group_by)
        fields.update(o.field for o in self.order_by)
        return fields


class DateRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    start: date
    end: date

    @model_validator(mode="after")
    def validate_order(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError("date_range end must not be before start")
        return self


class QueryContext(BaseModel):
    """Immutable caller context substituted into dynamic filters.

    Passed explicitly into every widget calculation; there is no ambient
    "current tenant" or "current date range".
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str | None = None
    date_range: DateRange | None = None
    is_admin: bool = False
    viewing_as_customer: bool = False

    @property
    def is_restricted(self) -> bool:
        """True unless an admin is looking at unscoped data."""
        return not self.is_admin or self.viewing_as_customer
