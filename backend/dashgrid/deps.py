"""Service wiring.

All services are built from this module. Callers never instantiate backing
store clients directly.
"""

import structlog
from prometheus_client import start_http_server
from redis.exceptions import RedisError

from dashgrid.core.clickhouse import get_clickhouse_client
from dashgrid.core.config import settings
from dashgrid.core.document_store import DocumentStore, InMemoryDocumentStore, RedisDocumentStore
from dashgrid.core.logging_config import configure_logging
from dashgrid.core.metrics import app_info
from dashgrid.core.redis import close_redis, get_redis
from dashgrid.schemas.layout import LayoutKey
from dashgrid.services.custom_widget_store import CustomWidgetStore, OwnerContext
from dashgrid.services.dashboard_controller import DashboardController
from dashgrid.services.layout_store import LayoutStore
from dashgrid.services.row_source import ClickHouseRowSource, RowSource
from dashgrid.services.widget_executor import WidgetExecutor
from dashgrid.services.widget_registry import WidgetRegistry

logger = structlog.stdlib.get_logger(__name__)

_memory_store: InMemoryDocumentStore | None = None


def init_app() -> None:
    """Process startup: logging, then the metrics endpoint when enabled. Call once."""
    configure_logging()
    if not settings.metrics_enabled:
        logger.info("metrics_disabled")
        return
    app_info.info({"env": settings.app_env, "document_backend": settings.documents.document_backend})
    start_http_server(settings.metrics_port)
    logger.info("metrics_server_started", port=settings.metrics_port)


async def get_document_store() -> DocumentStore:
    global _memory_store
    if settings.documents.document_backend == "memory":
        if _memory_store is None:
            _memory_store = InMemoryDocumentStore()
        return _memory_store
    redis = await get_redis()
    return RedisDocumentStore(
        redis=redis,
        key_prefix=settings.documents.document_key_prefix,
        scan_count=settings.documents.redis_scan_count,
    )


def get_row_source() -> RowSource:
    return ClickHouseRowSource(clickhouse=get_clickhouse_client(), row_cap=settings.dashboard.row_fetch_cap)


def get_widget_registry() -> WidgetRegistry:
    return WidgetRegistry()


def get_widget_executor(row_source: RowSource | None = None) -> WidgetExecutor:
    return WidgetExecutor(
        row_source=row_source or get_row_source(),
        max_series=settings.dashboard.max_chart_series,
        default_table_limit=settings.dashboard.default_table_limit,
    )


async def get_custom_widget_store(store: DocumentStore | None = None) -> CustomWidgetStore:
    return CustomWidgetStore(store=store or await get_document_store())


async def get_layout_store(store: DocumentStore | None = None) -> LayoutStore:
    return LayoutStore(store=store or await get_document_store())


async def get_dashboard_controller(
    key: LayoutKey,
    owner: OwnerContext,
    *,
    row_source: RowSource | None = None,
    store: DocumentStore | None = None,
) -> DashboardController:
    """Build and load a controller for one owner's dashboard."""
    store = store or await get_document_store()
    controller = DashboardController(
        key=key,
        layout_store=await get_layout_store(store),
        registry=get_widget_registry(),
        executor=get_widget_executor(row_source),
        custom_store=await get_custom_widget_store(store),
        owner=owner,
        is_admin=owner.is_admin,
        debounce_ms=settings.dashboard.layout_save_debounce_ms,
    )
    await controller.load()
    return controller


async def check_backends() -> dict[str, bool]:
    """Reachability of the row source and the document store."""
    clickhouse_ok = await get_clickhouse_client().ping()
    if settings.documents.document_backend == "memory":
        documents_ok = True
    else:
        redis = await get_redis()
        try:
            documents_ok = bool(await redis.ping())
        except (RedisError, OSError) as exc:
            logger.warning("document_store_unreachable", error=str(exc))
            documents_ok = False
    return {"clickhouse": clickhouse_ok, "documents": documents_ok}


async def shutdown() -> None:
    await close_redis()
