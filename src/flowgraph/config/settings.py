"""Configuration and settings management using pydantic-settings."""
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings with environment variable loading."""

    model_config = SettingsConfigDict(
        env_prefix="FLOWGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Core service settings
    env: str = Field(default="development", description="Environment name")
    log_level: str = Field(default="INFO", description="Log level")
    log_json: bool = Field(default=True, description="Emit JSON log lines")

    # Workflow document defaults
    default_workflow_name: str = Field(
        default="New Workflow",
        description="Name given to a fresh workflow and restored on a hard clear",
    )
    untitled_workflow_name: str = Field(
        default="Untitled Workflow",
        description="Name used when a loaded workflow has a blank name",
    )
    default_edge_type: str = Field(
        default="smoothstep",
        description="Edge type assigned to new or loaded edges without one",
    )
    edge_animated: bool = Field(
        default=True,
        description="Whether new edges are animated",
    )

    # Execution
    max_concurrency: int = Field(
        default=4,
        description="Maximum number of independent nodes dispatched at once",
    )

    # Persistence
    storage_dir: str = Field(
        default="workflows",
        description="Directory used by the JSON file repository",
    )
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    redis_key_prefix: str = Field(
        default="workflow:",
        description="Key prefix for workflows stored in Redis",
    )

    # Export
    export_version: str = Field(
        default="1.0.0",
        description="Version tag written into exported workflow documents",
    )

    @field_validator("max_concurrency")
    @classmethod
    def validate_max_concurrency(cls, v: int) -> int:
        """Validate that at least one node can run at a time."""
        if v < 1:
            raise ValueError("max_concurrency must be at least 1")
        return v


# Global settings instance
_settings: Settings | None = None


def get_settings() -> Settings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (useful for testing)."""
    global _settings
    _settings = None
