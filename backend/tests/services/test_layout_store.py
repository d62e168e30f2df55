"""Layout store tests."""

import asyncio
import gc
from unittest.mock import AsyncMock, MagicMock

import pytest

from dashgrid.core.document_store import DocumentStoreError
from dashgrid.schemas.layout import DashboardKind, InvalidReorderError, LayoutDocument, LayoutKey
from dashgrid.schemas.widget import WidgetType
from dashgrid.services.layout_store import LayoutStore, effective_size, layout_path


@pytest.fixture
def key() -> LayoutKey:
    return LayoutKey(kind=DashboardKind.MAIN, owner_id="cust-aaaa")


@pytest.fixture
def layouts(memory_store) -> LayoutStore:
    return LayoutStore(memory_store)


class TestPaths:
    def test_layout_path(self, key):
        assert layout_path(key) == "dashboard-layouts/main/cust-aaaa.json"
        assert layout_path(LayoutKey(kind=DashboardKind.PULSE, owner_id="x")) == "dashboard-layouts/pulse/x.json"

    def test_rejects_nested_owner(self):
        with pytest.raises(ValueError):
            layout_path(LayoutKey(owner_id="a/b"))


class TestLoad:
    async def test_missing_layout_is_empty(self, layouts, key):
        assert await layouts.load(key) == LayoutDocument()

    async def test_malformed_layout_is_empty(self, layouts, memory_store, key):
        await memory_store.put(layout_path(key), b'{"widget_ids": ["a", "a"]}')
        assert await layouts.load(key) == LayoutDocument()

    async def test_load_stored_distinguishes_missing_from_empty(self, layouts, key):
        assert await layouts.load_stored(key) is None
        await layouts.add_widget(key, "a")
        await layouts.remove_widget(key, "a")
        assert await layouts.load_stored(key) == LayoutDocument()

    async def test_load_stored_treats_malformed_as_missing(self, layouts, memory_store, key):
        await memory_store.put(layout_path(key), b"[]")
        assert await layouts.load_stored(key) is None

    async def test_kinds_are_separate(self, layouts, key):
        await layouts.add_widget(key, "total_cost")
        pulse = LayoutKey(kind=DashboardKind.PULSE, owner_id=key.owner_id)
        assert (await layouts.load(pulse)).widget_ids == []


class TestMutations:
    async def test_add_is_idempotent(self, layouts, key):
        await layouts.add_widget(key, "total_cost")
        await layouts.add_widget(key, "total_cost")
        assert (await layouts.load(key)).widget_ids == ["total_cost"]

    async def test_remove_drops_size(self, layouts, key):
        await layouts.add_widget(key, "top_lanes")
        await layouts.set_size(key, "top_lanes", 3)
        doc = await layouts.remove_widget(key, "top_lanes")
        assert doc.widget_ids == []
        assert doc.sizes == {}

    async def test_reorder(self, layouts, key):
        for widget_id in ("a", "b", "c"):
            await layouts.add_widget(key, widget_id)
        await layouts.reorder(key, ["c", "a", "b"])
        assert (await layouts.load(key)).widget_ids == ["c", "a", "b"]

    @pytest.mark.parametrize("bad_order", [["a", "b"], ["a", "b", "c", "d"], ["a", "a", "b"]])
    async def test_invalid_reorder_writes_nothing(self, bad_order, key):
        backend = MagicMock()
        backend.get = AsyncMock(return_value=LayoutDocument(widget_ids=["a", "b", "c"]).model_dump_json().encode())
        backend.put = AsyncMock()

        with pytest.raises(InvalidReorderError):
            await LayoutStore(backend).reorder(key, bad_order)
        backend.put.assert_not_awaited()

    async def test_move_widget(self, layouts, key):
        for widget_id in ("a", "b", "c"):
            await layouts.add_widget(key, widget_id)
        doc = await layouts.move_widget(key, 0, 2)
        assert doc.widget_ids == ["b", "c", "a"]

    async def test_move_out_of_range(self, layouts, key):
        await layouts.add_widget(key, "a")
        with pytest.raises(InvalidReorderError):
            await layouts.move_widget(key, 0, 5)

    async def test_set_size_ignores_unknown_widget(self, layouts, key):
        doc = await layouts.set_size(key, "ghost", 2)
        assert doc.sizes == {}

    async def test_reset_to_default(self, layouts, key):
        await layouts.add_widget(key, "x")
        await layouts.set_size(key, "x", 2)
        doc = await layouts.reset_to_default(key, ["total_cost", "flow_map", "total_cost"])
        assert doc.widget_ids == ["total_cost", "flow_map"]
        assert doc.sizes == {}
        assert await layouts.load(key) == doc

    async def test_concurrent_adds_are_not_lost(self, layouts, key):
        await asyncio.gather(*(layouts.add_widget(key, f"w{i}") for i in range(10)))
        assert sorted((await layouts.load(key)).widget_ids) == sorted(f"w{i}" for i in range(10))

    async def test_locks_released_after_mutations(self, layouts, key):
        other = LayoutKey(kind=DashboardKind.PULSE, owner_id="cust-bbbb")
        await asyncio.gather(layouts.add_widget(key, "a"), layouts.add_widget(other, "b"))
        await layouts.reset_to_default(key, ["total_cost"])
        gc.collect()
        assert len(layouts._locks) == 0

    async def test_unchanged_layout_is_not_rewritten(self, key):
        backend = MagicMock()
        backend.get = AsyncMock(return_value=LayoutDocument(widget_ids=["a"]).model_dump_json().encode())
        backend.put = AsyncMock()

        await LayoutStore(backend).add_widget(key, "a")
        backend.put.assert_not_awaited()

    async def test_write_failure_propagates(self, key):
        backend = MagicMock()
        backend.get = AsyncMock(return_value=None)
        backend.put = AsyncMock(side_effect=DocumentStoreError("put", "p", "timeout"))

        with pytest.raises(DocumentStoreError):
            await LayoutStore(backend).add_widget(key, "a")


class TestEffectiveSize:
    def test_default_when_unset(self):
        doc = LayoutDocument(widget_ids=["top_lanes"])
        assert effective_size(doc, "top_lanes", WidgetType.TABLE) == 2

    def test_stored_size_is_clamped(self):
        doc = LayoutDocument(widget_ids=["carrier_mix"], sizes={"carrier_mix": 3})
        assert effective_size(doc, "carrier_mix", WidgetType.PIE_CHART) == 2

    def test_pulse_allows_wider(self):
        doc = LayoutDocument(widget_ids=["w"], sizes={"w": 4})
        assert effective_size(doc, "w", WidgetType.TABLE, DashboardKind.PULSE) == 4
        assert effective_size(doc, "w", WidgetType.TABLE, DashboardKind.MAIN) == 3
