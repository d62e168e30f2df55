"""Size constraint resolver.

Widget layout footprints are small integer levels (1 = one grid column). What a
widget may occupy is data, not scattered conditionals:

1. a per-type default table, exhaustive over WidgetType;
2. a narrow per-widget-id override table.

Tables are expressed on the main dashboard scale (1..3). A dashboard kind with
a larger scale widens any "full width" maximum to its own ceiling.

Every function here is pure and total: bad input is clamped, never rejected.
"""

from dataclasses import dataclass, replace

from dashgrid.schemas.layout import DashboardKind
from dashgrid.schemas.widget import WidgetType, parse_widget_type

BASE_MAX_LEVEL = DashboardKind.MAIN.max_size_level


@dataclass(frozen=True)
class SizeConstraint:
    min_size: int
    max_size: int
    optimal_size: int
    min_height: int  # pixels


TYPE_CONSTRAINTS: dict[WidgetType, SizeConstraint] = {
    WidgetType.KPI: SizeConstraint(min_size=1, max_size=3, optimal_size=1, min_height=120),
    WidgetType.FEATURED_KPI: SizeConstraint(min_size=1, max_size=3, optimal_size=1, min_height=140),
    WidgetType.PIE_CHART: SizeConstraint(min_size=1, max_size=2, optimal_size=1, min_height=200),
    WidgetType.BAR_CHART: SizeConstraint(min_size=2, max_size=3, optimal_size=2, min_height=280),
    WidgetType.LINE_CHART: SizeConstraint(min_size=2, max_size=3, optimal_size=2, min_height=280),
    WidgetType.TABLE: SizeConstraint(min_size=2, max_size=3, optimal_size=2, min_height=300),
    # Maps need width to be legible
    WidgetType.MAP: SizeConstraint(min_size=2, max_size=3, optimal_size=3, min_height=400),
    WidgetType.AI_REPORT: SizeConstraint(min_size=2, max_size=3, optimal_size=2, min_height=320),
}

# Used for type names with no table entry
FALLBACK_CONSTRAINT = TYPE_CONSTRAINTS[WidgetType.KPI]

WIDGET_OVERRIDES: dict[str, SizeConstraint] = {
    "flow_map": SizeConstraint(min_size=3, max_size=3, optimal_size=3, min_height=500),
    "cost_by_state": SizeConstraint(min_size=2, max_size=3, optimal_size=3, min_height=400),
    "carrier_mix": SizeConstraint(min_size=1, max_size=2, optimal_size=1, min_height=200),
    "top_lanes": SizeConstraint(min_size=2, max_size=3, optimal_size=2, min_height=320),
    "monthly_spend": SizeConstraint(min_size=2, max_size=3, optimal_size=2, min_height=280),
}

INTERACTIVE_TYPES = frozenset({WidgetType.MAP})

_SIZE_LABELS = {1: "Small", 2: "Medium", 3: "Large", 4: "Full"}


def get_constraints(
    widget_id: str,
    widget_type: WidgetType | str | None,
    kind: DashboardKind = DashboardKind.MAIN,
) -> SizeConstraint:
    resolved_type = parse_widget_type(widget_type)
    constraint = TYPE_CONSTRAINTS.get(resolved_type, FALLBACK_CONSTRAINT)  # type: ignore[arg-type]
    constraint = WIDGET_OVERRIDES.get(widget_id, constraint)

    ceiling = kind.max_size_level
    if ceiling > BASE_MAX_LEVEL and constraint.max_size == BASE_MAX_LEVEL:
        constraint = replace(constraint, max_size=ceiling)
    return constraint


def _as_level(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value == value and abs(value) != float("inf"):
        return int(round(value))
    if isinstance(value, str):
        try:
            return int(round(float(value.strip())))
        except ValueError:
            return None
    return None


def clamp(
    requested: object,
    widget_id: str,
    widget_type: WidgetType | str | None,
    kind: DashboardKind = DashboardKind.MAIN,
) -> int:
    """Pull a requested size into [min_size, max_size]. Unparseable requests get optimal_size."""
    constraint = get_constraints(widget_id, widget_type, kind)
    level = _as_level(requested)
    if level is None:
        return constraint.optimal_size
    return max(min(level, constraint.max_size), constraint.min_size)


def is_valid(
    size: object,
    widget_id: str,
    widget_type: WidgetType | str | None,
    kind: DashboardKind = DashboardKind.MAIN,
) -> bool:
    level = _as_level(size)
    if level is None:
        return False
    constraint = get_constraints(widget_id, widget_type, kind)
    return constraint.min_size <= level <= constraint.max_size


def default_size(
    widget_id: str,
    widget_type: WidgetType | str | None,
    kind: DashboardKind = DashboardKind.MAIN,
) -> int:
    return get_constraints(widget_id, widget_type, kind).optimal_size


def default_sizes_for_layout(
    widget_ids: list[str],
    widget_types: dict[str, WidgetType | str],
    kind: DashboardKind = DashboardKind.MAIN,
) -> dict[str, int]:
    """Optimal size for every id; ids with no known type start small."""
    sizes: dict[str, int] = {}
    for widget_id in widget_ids:
        widget_type = widget_types.get(widget_id)
        sizes[widget_id] = default_size(widget_id, widget_type, kind) if widget_type else 1
    return sizes


def is_interactive(widget_type: WidgetType | str | None) -> bool:
    """Widgets with their own pointer gestures (pan/zoom) never join hover-reorder."""
    return parse_widget_type(widget_type) in INTERACTIVE_TYPES


def size_label(size: int) -> str:
    return _SIZE_LABELS.get(size, "Auto")
