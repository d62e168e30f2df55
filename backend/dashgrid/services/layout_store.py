"""Layout store: one layout document per (dashboard kind, owner).

    dashboard-layouts/{kind}/{owner_id}.json

A missing layout reads as None from load_stored() and as an empty layout from
load(); a stored empty layout stays empty. Read-modify-write operations for
the same owner key are serialised with an asyncio.Lock so concurrent
mutations never lose each other's changes. A lock lives only while some
operation holds or waits on it.
"""

import asyncio
import weakref
from collections.abc import Callable

import structlog
from pydantic import ValidationError

from dashgrid.core.document_store import DocumentStore, DocumentStoreError
from dashgrid.core.metrics import layout_saves_total, malformed_documents_total
from dashgrid.schemas.layout import DashboardKind, LayoutDocument, LayoutKey
from dashgrid.schemas.widget import WidgetType
from dashgrid.services import size_constraints

logger = structlog.stdlib.get_logger(__name__)

LAYOUTS_ROOT = "dashboard-layouts"


def layout_path(key: LayoutKey) -> str:
    if not key.owner_id or "/" in key.owner_id:
        raise ValueError(f"Invalid layout owner id: {key.owner_id!r}")
    return f"{LAYOUTS_ROOT}/{key.kind.value}/{key.owner_id}.json"


def effective_size(
    doc: LayoutDocument,
    widget_id: str,
    widget_type: WidgetType | str | None,
    kind: DashboardKind = DashboardKind.MAIN,
) -> int:
    """Stored size clamped to the widget's constraints, or its optimal size when none is stored."""
    stored = doc.sizes.get(widget_id)
    if stored is None:
        return size_constraints.default_size(widget_id, widget_type, kind)
    return size_constraints.clamp(stored, widget_id, widget_type, kind)


class LayoutStore:
    """Loads and persists LayoutDocuments through a DocumentStore."""

    def __init__(self, store: DocumentStore):
        self._store = store
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock(self, key: LayoutKey) -> asyncio.Lock:
        lock = self._locks.get(str(key))
        if lock is None:
            lock = asyncio.Lock()
            self._locks[str(key)] = lock
        return lock

    async def load_stored(self, key: LayoutKey) -> LayoutDocument | None:
        """The stored layout, or None when nothing (or nothing readable) is stored."""
        raw = await self._store.get(layout_path(key))
        if raw is None:
            return None
        try:
            return LayoutDocument.model_validate_json(raw)
        except ValidationError as exc:
            malformed_documents_total.labels(collection="layouts").inc()
            logger.warning("layout_malformed", layout=str(key), errors=exc.error_count())
            return None

    async def load(self, key: LayoutKey) -> LayoutDocument:
        doc = await self.load_stored(key)
        return doc if doc is not None else LayoutDocument()

    async def save(self, key: LayoutKey, doc: LayoutDocument) -> None:
        """Replace the stored layout wholesale.

        Raises:
            DocumentStoreError: the write failed.
        """
        try:
            await self._store.put(layout_path(key), doc.model_dump_json().encode())
        except DocumentStoreError:
            layout_saves_total.labels(dashboard_kind=key.kind.value, status="error").inc()
            raise
        layout_saves_total.labels(dashboard_kind=key.kind.value, status="ok").inc()
        logger.debug("layout_saved", layout=str(key), widgets=len(doc.widget_ids))

    async def _update(self, key: LayoutKey, change: Callable[[LayoutDocument], LayoutDocument]) -> LayoutDocument:
        async with self._lock(key):
            current = await self.load(key)
            updated = change(current)
            if updated != current:
                await self.save(key, updated)
            return updated

    async def add_widget(self, key: LayoutKey, widget_id: str) -> LayoutDocument:
        """Append a widget; adding one already present changes nothing."""
        return await self._update(key, lambda doc: doc.with_widget_added(widget_id))

    async def remove_widget(self, key: LayoutKey, widget_id: str) -> LayoutDocument:
        return await self._update(key, lambda doc: doc.with_widget_removed(widget_id))

    async def reorder(self, key: LayoutKey, new_order: list[str]) -> LayoutDocument:
        """Store a new widget order.

        Raises:
            InvalidReorderError: new_order is not a permutation of the stored ids.
                Nothing is written.
        """
        return await self._update(key, lambda doc: doc.reordered(new_order))

    async def move_widget(self, key: LayoutKey, old_index: int, new_index: int) -> LayoutDocument:
        return await self._update(key, lambda doc: doc.moved(old_index, new_index))

    async def set_size(self, key: LayoutKey, widget_id: str, size: int) -> LayoutDocument:
        """Store a size override as given. Reads go through effective_size()."""
        return await self._update(key, lambda doc: doc.with_size(widget_id, size))

    async def reset_to_default(self, key: LayoutKey, widget_ids: list[str]) -> LayoutDocument:
        """Replace the layout with widget_ids and no size overrides."""
        doc = LayoutDocument(widget_ids=list(dict.fromkeys(widget_ids)))
        async with self._lock(key):
            await self.save(key, doc)
        logger.info("layout_reset", layout=str(key), widgets=len(doc.widget_ids))
        return doc
