"""Tests for configuration settings."""
import pytest
from pydantic import ValidationError

from flowgraph.config.settings import Settings, get_settings, reset_settings


class TestSettings:
    """Test Settings configuration."""

    def test_settings_default_values(self, monkeypatch):
        """Test default values are set correctly."""
        monkeypatch.delenv("FLOWGRAPH_LOG_LEVEL", raising=False)

        settings = Settings()

        # env is set to 'test' in conftest.py
        assert settings.env in ("development", "test")
        assert settings.log_level == "INFO"
        assert settings.log_json is True

        # Document defaults
        assert settings.default_workflow_name == "New Workflow"
        assert settings.untitled_workflow_name == "Untitled Workflow"
        assert settings.default_edge_type == "smoothstep"
        assert settings.edge_animated is True

        # Execution and persistence
        assert settings.max_concurrency == 4
        assert settings.storage_dir == "workflows"
        assert settings.redis_url in ("redis://localhost:6379/0", "redis://localhost:6379/1")
        assert settings.redis_key_prefix == "workflow:"
        assert settings.export_version == "1.0.0"

    def test_settings_env_prefix(self, monkeypatch):
        """Test that FLOWGRAPH_ prefix works for environment variables."""
        monkeypatch.setenv("FLOWGRAPH_ENV", "production")
        monkeypatch.setenv("FLOWGRAPH_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("FLOWGRAPH_DEFAULT_WORKFLOW_NAME", "Draft")

        settings = Settings()

        assert settings.env == "production"
        assert settings.log_level == "DEBUG"
        assert settings.default_workflow_name == "Draft"

    def test_max_concurrency_validation(self, monkeypatch):
        """Test that max_concurrency must be at least 1."""
        monkeypatch.setenv("FLOWGRAPH_MAX_CONCURRENCY", "0")

        with pytest.raises(ValidationError) as exc_info:
            Settings()

        assert "max_concurrency must be at least 1" in str(exc_info.value)

    def test_get_settings_singleton(self):
        """Test that get_settings returns singleton instance."""
        reset_settings()
        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

    def test_reset_settings(self):
        """Test that reset_settings clears the singleton."""
        settings1 = get_settings()
        reset_settings()
        settings2 = get_settings()

        assert settings1 is not settings2

    def test_store_uses_configured_default_name(self, monkeypatch):
        """Settings flow into a new store's document."""
        from flowgraph.store import WorkflowGraphStore

        monkeypatch.setenv("FLOWGRAPH_DEFAULT_WORKFLOW_NAME", "Scratch")

        assert WorkflowGraphStore().name == "Scratch"
