"""Settings tests: defaults, env parsing, production guard."""

import pytest
from pydantic import ValidationError

from dashgrid.core.config import DocumentStoreSettings, FieldPolicySettings, Settings


class TestDefaults:
    def test_development_defaults(self):
        s = Settings()
        assert s.app_env == "development"
        assert s.dashboard.layout_save_debounce_ms == 750
        assert s.dashboard.max_chart_series == 10
        assert s.dashboard.default_table_limit == 100
        assert s.dashboard.tenant_field == "customer_id"
        assert s.dashboard.date_field == "pickup_date"
        assert s.dashboard.extra_date_fields == ["delivery_date"]
        assert s.metrics_enabled is True
        assert s.metrics_port == 9100


class TestDocumentBackend:
    def test_rejects_unknown_backend(self):
        with pytest.raises(ValidationError):
            DocumentStoreSettings(document_backend="s3")

    def test_memory_backend_allowed_in_development(self):
        s = Settings(app_env="development", documents=DocumentStoreSettings(document_backend="memory"))
        assert s.documents.document_backend == "memory"

    def test_memory_backend_rejected_outside_development(self):
        with pytest.raises(ValidationError, match="DOCUMENT_BACKEND=memory"):
            Settings(app_env="production", documents=DocumentStoreSettings(document_backend="memory"))


class TestFieldPolicySettings:
    def test_extra_fields_from_json_env(self, monkeypatch):
        monkeypatch.setenv("RESTRICTED_FIELDS_EXTRA", '["fuel_cost", "rebate"]')
        assert FieldPolicySettings().restricted_fields_extra == ["fuel_cost", "rebate"]

    def test_extra_fields_default_empty(self):
        assert FieldPolicySettings().restricted_fields_extra == []


class TestLogFormat:
    def test_defaults_to_unset(self):
        assert Settings().log_format is None

    def test_rejects_unknown_format(self):
        with pytest.raises(ValidationError):
            Settings(log_format="xml")
