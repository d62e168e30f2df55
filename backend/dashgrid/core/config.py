"""Application configuration via pydantic-settings.

All config is sourced from environment variables. Never use os.getenv() directly.
"""

import json

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DocumentStoreSettings(BaseSettings):
    """Key-addressed JSON document storage for layouts and custom widgets."""

    model_config = SettingsConfigDict(env_prefix="")

    # "redis" in deployed environments, "memory" for local development and tests
    document_backend: str = "redis"
    redis_url: str = "redis://redis:6379/0"
    document_key_prefix: str = "dashgrid:doc:"
    redis_scan_count: int = 500  # COUNT hint per SCAN round-trip

    @field_validator("document_backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        if v not in ("redis", "memory"):
            raise ValueError(f"DOCUMENT_BACKEND must be 'redis' or 'memory', got {v!r}")
        return v


class ClickHouseSettings(BaseSettings):
    """ClickHouse configuration for the widget row source (read-only)."""

    model_config = SettingsConfigDict(env_prefix="")

    clickhouse_host: str = "localhost"
    clickhouse_port: int = 8123
    clickhouse_database: str = "default"
    clickhouse_user: str = "default"
    clickhouse_password: str = ""
    clickhouse_query_timeout: int = 30  # max execution time for widget queries


class DashboardSettings(BaseSettings):
    """Widget pipeline and layout behaviour."""

    model_config = SettingsConfigDict(env_prefix="")

    # Rapid successive layout mutations are coalesced into one save
    layout_save_debounce_ms: int = 750

    # Categorical charts are truncated to the top N series
    max_chart_series: int = 10
    default_table_limit: int = 100

    # Hard cap on rows pulled from the row source for in-memory aggregation
    row_fetch_cap: int = 50_000

    # Fields dynamic filters bind to
    tenant_field: str = "customer_id"
    date_field: str = "pickup_date"
    # Other date columns a dynamic filter may bind to the selected date range
    extra_date_fields: list[str] = ["delivery_date"]


class FieldPolicySettings(BaseSettings):
    """Fields hidden from non-privileged scopes, in addition to the built-in list."""

    model_config = SettingsConfigDict(env_prefix="")

    restricted_fields_extra: list[str] = []

    @field_validator("restricted_fields_extra", mode="before")
    @classmethod
    def parse_restricted_fields(cls, v: str | list[str]) -> list[str]:
        if isinstance(v, str):
            return json.loads(v)
        return v


class Settings(BaseSettings):
    """dashgrid settings.

    Environment variables are the single source of truth.
    Defaults are development-safe values only.
    """

    model_config = SettingsConfigDict(env_file=".env")

    app_env: str = "development"

    # Nested settings groups
    documents: DocumentStoreSettings = DocumentStoreSettings()
    clickhouse: ClickHouseSettings = ClickHouseSettings()
    dashboard: DashboardSettings = DashboardSettings()
    field_policy: FieldPolicySettings = FieldPolicySettings()

    # Observability
    log_level: str = "INFO"
    # "console" or "json"; unset picks console in development, json elsewhere
    log_format: str | None = None
    metrics_enabled: bool = True
    # Port for the Prometheus scrape endpoint
    metrics_port: int = 9100

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str | None) -> str | None:
        if v is not None and v not in ("console", "json"):
            raise ValueError(f"LOG_FORMAT must be 'console' or 'json', got {v!r}")
        return v

    @model_validator(mode="after")
    def _validate_production_settings(self) -> "Settings":
        """Refuse to start with the in-memory document backend outside development.

        Layouts and custom widgets would be lost on every restart.
        """
        is_prod = self.app_env != "development"
        if is_prod and self.documents.document_backend == "memory":
            raise ValueError(
                f"DOCUMENT_BACKEND=memory is not allowed when APP_ENV={self.app_env!r}."
            )
        return self


settings = Settings()
