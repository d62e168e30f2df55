"""Dashboard layout documents.

A layout is the ordered list of widget ids on one dashboard plus per-widget
size overrides. Every transform returns a new document; the store replaces
documents wholesale.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class DashboardKind(str, Enum):
    MAIN = "main"
    PULSE = "pulse"

    @property
    def max_size_level(self) -> int:
        return _MAX_SIZE_LEVEL[self]


_MAX_SIZE_LEVEL = {
    DashboardKind.MAIN: 3,
    DashboardKind.PULSE: 4,
}


class InvalidReorderError(ValueError):
    """Raised when a reorder request does not preserve the layout's widget set."""

    def __init__(self, missing: set[str], extra: set[str], detail: str = ""):
        self.missing = missing
        self.extra = extra
        message = detail or (
            f"Reorder must be a permutation of the current layout "
            f"(missing={sorted(missing)}, extra={sorted(extra)})"
        )
        super().__init__(message)


class LayoutKey(BaseModel):
    """Identifies one layout document: a dashboard variant for one owner."""

    model_config = ConfigDict(frozen=True)

    kind: DashboardKind = DashboardKind.MAIN
    owner_id: str

    def __str__(self) -> str:
        return f"{self.kind.value}:{self.owner_id}"


class LayoutDocument(BaseModel):
    model_config = ConfigDict(frozen=True)

    widget_ids: list[str] = Field(default_factory=list)
    sizes: dict[str, int] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_ids(self) -> "LayoutDocument":
        seen: set[str] = set()
        for widget_id in self.widget_ids:
            if widget_id in seen:
                raise ValueError(f"Duplicate widget id in layout: {widget_id!r}")
            seen.add(widget_id)
        stale = [k for k in self.sizes if k not in seen]
        for key in stale:
            del self.sizes[key]
        return self

    def contains(self, widget_id: str) -> bool:
        return widget_id in self.widget_ids

    def with_widget_added(self, widget_id: str) -> "LayoutDocument":
        if widget_id in self.widget_ids:
            return self
        return LayoutDocument(widget_ids=[*self.widget_ids, widget_id], sizes=dict(self.sizes))

    def with_widget_removed(self, widget_id: str) -> "LayoutDocument":
        if widget_id not in self.widget_ids:
            return self
        return LayoutDocument(
            widget_ids=[w for w in self.widget_ids if w != widget_id],
            sizes={k: v for k, v in self.sizes.items() if k != widget_id},
        )

    def with_size(self, widget_id: str, size: int) -> "LayoutDocument":
        """Record a size override. Unknown widget ids are ignored."""
        if widget_id not in self.widget_ids:
            return self
        return LayoutDocument(widget_ids=list(self.widget_ids), sizes={**self.sizes, widget_id: size})

    def reordered(self, new_order: list[str]) -> "LayoutDocument":
        """Return the layout in new_order, which must be a permutation of the current ids."""
        current = set(self.widget_ids)
        proposed = set(new_order)
        if len(new_order) != len(proposed):
            raise InvalidReorderError(set(), set(), detail="Reorder contains duplicate widget ids")
        if proposed != current:
            raise InvalidReorderError(missing=current - proposed, extra=proposed - current)
        return LayoutDocument(widget_ids=list(new_order), sizes=dict(self.sizes))

    def moved(self, old_index: int, new_index: int) -> "LayoutDocument":
        """Move the widget at old_index so it ends up at new_index."""
        count = len(self.widget_ids)
        if not (0 <= old_index < count and 0 <= new_index < count):
            raise InvalidReorderError(
                set(), set(), detail=f"Reorder indices out of range: {old_index} -> {new_index} (size {count})"
            )
        order = list(self.widget_ids)
        order.insert(new_index, order.pop(old_index))
        return self.reordered(order)
