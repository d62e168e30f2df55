"""structlog setup for dashgrid.

Service modules log through ``structlog.stdlib.get_logger(__name__)``. Library
loggers (redis, clickhouse_connect) go through the same ProcessorFormatter so
every line comes out in one format. Per-dashboard context (layout key, tenant)
is carried in structlog contextvars and merged into each event.
"""

import logging
import sys

import structlog

from dashgrid.core.config import settings

# Libraries that log every request at INFO
_QUIET_LOGGERS = ("clickhouse_connect", "urllib3", "redis")


def _renderer() -> structlog.types.Processor:
    log_format = settings.log_format or ("console" if settings.app_env == "development" else "json")
    if log_format == "console":
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.JSONRenderer()


def configure_logging() -> None:
    """Install structlog as the logging backend. Safe to call more than once."""
    pre_chain: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    structlog.configure(
        processors=[*pre_chain, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, _renderer()],
            foreign_pre_chain=pre_chain,
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def dashboard_log_context(layout: str, tenant_id: str | None = None):
    """Context manager attaching the dashboard being served to every log event inside it.

    Tasks started inside the block (asyncio.gather children) inherit the binding.
    """
    return structlog.contextvars.bound_contextvars(layout=layout, tenant_id=tenant_id)
