"""Dashboard grid controller.

Owns one dashboard's layout for one owner: the viewing/editing mode, the
selected widget, layout mutations, and per-widget data state.

Persistence
-----------
Mutations compose on a pending document. A trailing debounce flushes the
pending document to the layout store once the user pauses, so a burst of
drags or resizes costs one write. Every mutation call returns only after the
save that carries it has succeeded, and ``layout`` reflects only confirmed
writes. When a save fails, all pending changes are dropped and every waiting
caller gets the DocumentStoreError.

Widget data
-----------
Each widget slot keeps the result of its latest request only. A response
that arrives after a newer request for the same slot, or after
``cancel_fetches()``, is discarded.
"""

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog

from dashgrid.core.config import settings
from dashgrid.core.logging_config import dashboard_log_context
from dashgrid.core.metrics import layout_mutations_coalesced_total, widget_fetches_total
from dashgrid.schemas.layout import LayoutDocument, LayoutKey
from dashgrid.schemas.query import QueryContext
from dashgrid.schemas.widget import (
    AnyWidgetDefinition,
    ChartData,
    CustomWidgetDefinition,
    KpiData,
    TableData,
    is_empty_result,
)
from dashgrid.services import size_constraints
from dashgrid.services.custom_widget_store import CustomWidgetStore, OwnerContext
from dashgrid.services.layout_store import LayoutStore, effective_size
from dashgrid.services.size_constraints import SizeConstraint
from dashgrid.services.widget_executor import WidgetExecutor
from dashgrid.services.widget_registry import WidgetNotFoundError, WidgetRegistry

logger = structlog.stdlib.get_logger(__name__)


class GridMode(str, Enum):
    VIEWING = "viewing"
    EDITING = "editing"


class WidgetStatus(str, Enum):
    READY = "ready"
    EMPTY = "empty"
    ERROR = "error"


class GridStateError(Exception):
    """Raised when an operation is not allowed in the grid's current mode."""

    def __init__(self, operation: str, mode: GridMode, detail: str = ""):
        self.operation = operation
        self.mode = mode
        message = f"{operation} is not allowed while {mode.value}"
        super().__init__(f"{message}: {detail}" if detail else message)


@dataclass(frozen=True)
class ReorderRequested:
    """A drag ended: move the widget at old_index to new_index."""

    old_index: int
    new_index: int


@dataclass
class WidgetState:
    widget_id: str
    status: WidgetStatus
    data: KpiData | ChartData | TableData | None = None
    error: str | None = None


@dataclass(frozen=True)
class ResolvedWidget:
    widget_id: str
    definition: AnyWidgetDefinition
    constraint: SizeConstraint
    size: int


class DashboardController:
    def __init__(
        self,
        key: LayoutKey,
        layout_store: LayoutStore,
        registry: WidgetRegistry,
        executor: WidgetExecutor,
        *,
        custom_store: CustomWidgetStore | None = None,
        owner: OwnerContext | None = None,
        is_admin: bool = False,
        debounce_ms: int | None = None,
    ):
        self.key = key
        self._layout_store = layout_store
        self._registry = registry
        self._executor = executor
        self._custom_store = custom_store
        self._owner = owner
        self._is_admin = is_admin
        delay_ms = debounce_ms if debounce_ms is not None else settings.dashboard.layout_save_debounce_ms
        self._delay = max(delay_ms, 0) / 1000

        self.mode = GridMode.VIEWING
        self.selected: str | None = None
        self._layout = LayoutDocument()
        self._custom: dict[str, CustomWidgetDefinition] = {}

        # Debounced persistence
        self._pending: LayoutDocument | None = None
        self._in_flight: LayoutDocument | None = None
        self._waiters: list[asyncio.Future[None]] = []
        self._timer: asyncio.Task[None] | None = None
        self._save_lock = asyncio.Lock()
        self._tasks: set[asyncio.Task[None]] = set()

        # Widget data
        self._generation: dict[str, int] = {}
        self._states: dict[str, WidgetState] = {}

    # ── State ─────────────────────────────────────────────────────────

    @property
    def layout(self) -> LayoutDocument:
        """The last layout the store confirmed."""
        return self._layout

    @property
    def widget_states(self) -> dict[str, WidgetState]:
        return dict(self._states)

    async def load(self) -> LayoutDocument:
        """Load the stored layout and the owner's custom widgets.

        The kind's default layout is used only when no layout is stored; a
        layout the owner emptied stays empty.
        """
        doc = await self._layout_store.load_stored(self.key)
        if doc is None:
            doc = LayoutDocument(widget_ids=self._registry.default_layout(self.key.kind))
        self._layout = doc
        if self._custom_store is not None and self._owner is not None:
            widgets = await self._custom_store.list_visible(self._owner)
            self._custom = {w.id: w for w in widgets}
        logger.info("dashboard_loaded", layout=str(self.key), widgets=len(doc.widget_ids))
        return doc

    def resolve(self, widget_id: str) -> AnyWidgetDefinition | None:
        builtin = self._registry.get(widget_id)
        if builtin is not None and (self._is_admin or builtin.access_scope != "admin"):
            return builtin
        return self._custom.get(widget_id)

    def resolve_widgets(self) -> list[ResolvedWidget]:
        """Every layout entry with a known definition, in layout order, with its clamped size."""
        resolved = []
        for widget_id in self._layout.widget_ids:
            definition = self.resolve(widget_id)
            if definition is None:
                logger.debug("layout_widget_unresolved", widget_id=widget_id, layout=str(self.key))
                continue
            resolved.append(
                ResolvedWidget(
                    widget_id=widget_id,
                    definition=definition,
                    constraint=size_constraints.get_constraints(widget_id, definition.type, self.key.kind),
                    size=effective_size(self._layout, widget_id, definition.type, self.key.kind),
                )
            )
        return resolved

    # ── Mode ──────────────────────────────────────────────────────────

    def enter_edit(self) -> None:
        self.mode = GridMode.EDITING

    def exit_edit(self) -> None:
        self.mode = GridMode.VIEWING
        self.selected = None

    def select_widget(self, widget_id: str | None) -> None:
        if widget_id is None:
            self.selected = None
            return
        self._require_editing("select_widget")
        if widget_id not in self._working_layout().widget_ids:
            raise WidgetNotFoundError(widget_id)
        self.selected = widget_id

    def _require_editing(self, operation: str) -> None:
        if self.mode != GridMode.EDITING:
            raise GridStateError(operation, self.mode)

    # ── Mutations ─────────────────────────────────────────────────────

    async def add_widget(self, widget_id: str) -> None:
        """Append a widget. Allowed in any mode; adding a present widget is a no-op."""
        if self.resolve(widget_id) is None:
            raise WidgetNotFoundError(widget_id)
        await self._commit(lambda doc: doc.with_widget_added(widget_id))

    async def remove_widget(self, widget_id: str) -> None:
        self._require_editing("remove_widget")
        if self.selected == widget_id:
            self.selected = None
        await self._commit(lambda doc: doc.with_widget_removed(widget_id))

    async def change_size(self, widget_id: str, size: object) -> int:
        """Clamp and store a new size. Returns the size actually stored."""
        self._require_editing("change_size")
        if widget_id not in self._working_layout().widget_ids:
            raise WidgetNotFoundError(widget_id)
        definition = self.resolve(widget_id)
        widget_type = definition.type if definition is not None else None
        clamped = size_constraints.clamp(size, widget_id, widget_type, self.key.kind)
        await self._commit(lambda doc: doc.with_size(widget_id, clamped))
        return clamped

    async def reorder(self, request: ReorderRequested) -> None:
        """Apply a drag. While viewing only hover-reorder of non-interactive widgets is allowed."""
        if self.mode == GridMode.VIEWING:
            order = self._working_layout().widget_ids
            if 0 <= request.old_index < len(order):
                dragged = order[request.old_index]
                definition = self.resolve(dragged)
                if definition is not None and size_constraints.is_interactive(definition.type):
                    raise GridStateError("reorder", self.mode, f"{dragged!r} handles its own pointer gestures")
        await self._commit(lambda doc: doc.moved(request.old_index, request.new_index))

    async def reset_to_default(self) -> None:
        defaults = self._registry.default_layout(self.key.kind)
        await self._commit(lambda _: LayoutDocument(widget_ids=defaults))

    # ── Debounced persistence ─────────────────────────────────────────

    def _working_layout(self) -> LayoutDocument:
        for doc in (self._pending, self._in_flight):
            if doc is not None:
                return doc
        return self._layout

    async def _commit(self, change: Callable[[LayoutDocument], LayoutDocument]) -> None:
        base = self._working_layout()
        updated = change(base)
        if updated == base:
            return
        if self._pending is not None:
            layout_mutations_coalesced_total.inc()
        self._pending = updated
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        self._schedule_flush()
        await waiter

    def _schedule_flush(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = self._spawn(self._flush_later())

    def _spawn(self, coro) -> asyncio.Task[None]:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _flush_later(self) -> None:
        await asyncio.sleep(self._delay)
        # Past the debounce window this task must not be cancelled by new mutations
        self._timer = None
        await self._flush()

    async def flush(self) -> None:
        """Write any pending layout immediately."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        await self._flush()

    async def _flush(self) -> None:
        async with self._save_lock:
            if self._pending is None:
                return
            doc, waiters = self._pending, self._waiters
            self._pending, self._waiters = None, []
            self._in_flight = doc
            try:
                await self._layout_store.save(self.key, doc)
            except Exception as exc:
                self._in_flight = None
                dropped = self._drop_pending()
                logger.warning(
                    "layout_save_failed",
                    layout=str(self.key),
                    error=str(exc),
                    dropped_waiters=len(waiters) + len(dropped),
                )
                for waiter in [*waiters, *dropped]:
                    if not waiter.done():
                        waiter.set_exception(exc)
                return
            self._in_flight = None
            self._layout = doc
            if self.selected is not None and self.selected not in doc.widget_ids:
                self.selected = None
            for waiter in waiters:
                if not waiter.done():
                    waiter.set_result(None)

    def _drop_pending(self) -> list[asyncio.Future[None]]:
        """Discard mutations built on top of a failed save."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        dropped = self._waiters
        self._pending, self._waiters = None, []
        return dropped

    async def close(self) -> None:
        await self.flush()
        self.cancel_fetches()

    # ── Widget data ───────────────────────────────────────────────────

    async def fetch_widget(self, widget_id: str, context: QueryContext) -> WidgetState | None:
        """Fetch one widget's data. Returns None when the result went stale before it arrived."""
        generation = self._generation.get(widget_id, 0) + 1
        self._generation[widget_id] = generation

        definition = self.resolve(widget_id)
        if definition is None:
            state = WidgetState(widget_id=widget_id, status=WidgetStatus.ERROR, error="widget not found")
        else:
            try:
                data = await self._executor.calculate(definition, context)
            except Exception as exc:
                logger.warning("widget_fetch_failed", widget_id=widget_id, error=str(exc), exc_info=True)
                state = WidgetState(widget_id=widget_id, status=WidgetStatus.ERROR, error=str(exc))
            else:
                status = WidgetStatus.EMPTY if is_empty_result(data) else WidgetStatus.READY
                state = WidgetState(widget_id=widget_id, status=status, data=data)

        if self._generation.get(widget_id) != generation:
            widget_fetches_total.labels(status="stale").inc()
            return None
        self._states[widget_id] = state
        widget_fetches_total.labels(status=state.status.value).inc()
        return state

    async def refresh_all(self, context: QueryContext) -> dict[str, WidgetState]:
        """Fetch every resolvable widget concurrently. One failure never blocks the others."""
        widget_ids = [w.widget_id for w in self.resolve_widgets()]
        with dashboard_log_context(str(self.key), context.tenant_id):
            results = await asyncio.gather(*(self.fetch_widget(w, context) for w in widget_ids))
        return {w: state for w, state in zip(widget_ids, results, strict=True) if state is not None}

    def cancel_fetches(self) -> None:
        """Abandon in-flight fetches: their results are discarded, current states are kept."""
        for widget_id in list(self._generation):
            self._generation[widget_id] += 1
