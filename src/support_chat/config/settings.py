"""
Configuration management for Support Chat.

This module implements hierarchical configuration loading with validation,
following the pattern: overrides > env vars > user config > defaults.
"""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FALLBACK_REPLY = (
    "I apologize, but I'm currently experiencing a momentary system delay. "
    "Please try your question again in a few seconds."
)


class DatabaseConfig(BaseModel):
    """Durable message log configuration."""

    url: str = Field(
        default="sqlite:///./data/support_chat.db",
        description="SQLAlchemy database URL (sync form)",
    )
    echo: bool = Field(default=False, description="Log emitted SQL statements")
    encryption_enabled: bool = Field(
        default=False, description="Encrypt message text at rest"
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, v):
        if not v or "://" not in v:
            raise ValueError("Database URL must include a scheme")
        return v


class CacheConfig(BaseModel):
    """Session history cache configuration."""

    enabled: bool = Field(default=True, description="Enable the Redis history cache")
    url: str = Field(default="redis://localhost:6379/0", description="Redis URL")
    ttl_seconds: int = Field(
        default=3600, ge=1, description="History cache entry lifetime in seconds"
    )
    key_prefix: str = Field(default="conversation", description="Cache key prefix")
    socket_timeout: float = Field(
        default=2.0, gt=0, le=60, description="Redis socket timeout in seconds"
    )

    @field_validator("key_prefix")
    @classmethod
    def validate_key_prefix(cls, v):
        if not v or not v.strip():
            raise ValueError("Cache key prefix cannot be empty")
        return v.strip().rstrip(":")


class ChatConfig(BaseModel):
    """Conversation handling configuration."""

    context_window: int = Field(
        default=10, ge=1, le=200, description="Messages sent to the model as context"
    )
    max_message_length: int = Field(
        default=1000, ge=1, le=100000, description="Maximum user message length"
    )
    fallback_reply: str = Field(
        default=DEFAULT_FALLBACK_REPLY,
        description="Reply used when the completion service fails",
    )
    serialize_session_writes: bool = Field(
        default=False, description="Serialize concurrent writes to one session"
    )

    @field_validator("fallback_reply")
    @classmethod
    def validate_fallback_reply(cls, v):
        if not v or not v.strip():
            raise ValueError("Fallback reply cannot be empty")
        return v


class CompletionConfig(BaseModel):
    """Completion service configuration."""

    provider: str = Field(default="gemini", description="Completion provider")
    model: str = Field(default="gemini-2.5-flash", description="Model identifier")
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        description="Provider API base URL",
    )
    timeout: float = Field(
        default=30.0, gt=0, le=300, description="Completion timeout in seconds"
    )
    max_retries: int = Field(default=2, ge=0, le=10, description="Number of retries")
    temperature: float | None = Field(
        default=0.4, ge=0.0, le=2.0, description="Sampling temperature"
    )
    max_output_tokens: int | None = Field(
        default=1024, ge=1, le=32000, description="Maximum tokens to generate"
    )

    @field_validator("provider")
    @classmethod
    def validate_provider(cls, v):
        v = v.lower().strip()
        if v not in {"gemini"}:
            raise ValueError(f"Unsupported completion provider: {v}")
        return v


class ServerConfig(BaseModel):
    """HTTP server configuration."""

    host: str = Field(default="localhost", description="Server host")
    port: int = Field(default=3000, ge=1, le=65535, description="Server port")
    route_prefix: str = Field(default="/chat", description="Chat routes prefix")
    cors_enabled: bool = Field(default=True, description="Enable CORS")
    cors_origins: list[str] = Field(
        default_factory=lambda: ["*"], description="Allowed CORS origins"
    )

    @field_validator("host")
    @classmethod
    def validate_host(cls, v):
        if not v or len(v.strip()) == 0:
            raise ValueError("Host cannot be empty")
        return v.strip()

    @field_validator("route_prefix")
    @classmethod
    def validate_route_prefix(cls, v):
        v = (v or "").strip().rstrip("/")
        if v and not v.startswith("/"):
            v = f"/{v}"
        return v


class AppSettings(BaseSettings):
    """Main application settings using environment variables."""

    app_name: str = Field(default="Support Chat", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    environment: str = Field(
        default="development",
        description="Environment (development/staging/production/test)",
    )

    # API Keys
    gemini_api_key: str | None = Field(
        default=None, description="Google Generative Language API key", repr=False
    )

    # Security
    database_encryption_key: str | None = Field(
        default=None, description="Master key for message encryption", repr=False
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    # Configuration sections
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    completion: CompletionConfig = Field(default_factory=CompletionConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="forbid",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v):
        valid_environments = {"development", "staging", "production", "test"}
        if v not in valid_environments:
            raise ValueError(f"Environment must be one of {valid_environments}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of {valid_levels}")
        return v.upper()

    @model_validator(mode="after")
    def validate_api_keys(self):
        """Validate that the completion API key is configured in production."""
        if not self.gemini_api_key and self.environment == "production":
            raise ValueError("Gemini API key must be configured in production")

        return self

    @model_validator(mode="after")
    def validate_encryption_keys(self):
        """Validate encryption keys are present when encryption is enabled."""
        if (
            self.database.encryption_enabled
            and not self.database_encryption_key
            and self.environment == "production"
        ):
            raise ValueError(
                "Database encryption key is required when encryption is enabled in production"
            )

        return self


class ConfigurationManager:
    """Manages hierarchical configuration loading and validation."""

    def __init__(self):
        self._settings: AppSettings | None = None
        self._user_config: dict[str, Any] = {}

    def load_configuration(
        self,
        config_path: Path | None = None,
        override_env: dict[str, str] | None = None,
    ) -> AppSettings:
        """
        Load configuration with hierarchy: override > env vars > user config > defaults.

        Args:
            config_path: Path to user configuration file
            override_env: Environment variable overrides (simulating CLI args)

        Returns:
            Validated AppSettings instance
        """
        if config_path and config_path.exists():
            self._user_config = self._load_yaml_config(config_path)

        if override_env:
            for key, value in override_env.items():
                os.environ[key] = value

        # YAML values are init kwargs; pydantic-settings gives those precedence,
        # so env vars are re-applied on top of them below.
        init_kwargs: dict[str, Any] = {}
        if self._user_config:
            init_kwargs.update(self._user_config)

        self._settings = AppSettings(**init_kwargs)
        if init_kwargs:
            env_settings = AppSettings()
            self._settings = self._merge_env(self._settings, env_settings)

        return self._settings

    def _merge_env(self, base: AppSettings, env_settings: AppSettings) -> AppSettings:
        """Apply explicitly set environment values over YAML-provided ones."""
        env_values = env_settings.model_dump(exclude_unset=True)
        if not env_values:
            return base

        merged = base.model_dump()
        for key, value in env_values.items():
            if isinstance(value, dict) and isinstance(merged.get(key), dict):
                merged[key].update(value)
            else:
                merged[key] = value
        return AppSettings.model_validate(merged)

    def _load_yaml_config(self, config_path: Path) -> dict[str, Any]:
        """Load configuration from YAML file."""
        try:
            with open(config_path, encoding="utf-8") as f:
                config = yaml.safe_load(f)
                return config or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML configuration: {e}") from e
        except FileNotFoundError:
            return {}

    @property
    def settings(self) -> AppSettings:
        """Get current settings (load default if not loaded)."""
        if self._settings is None:
            self._settings = self.load_configuration()
        return self._settings

    def reset(self):
        """Reset the configuration manager (useful for testing)."""
        self._settings = None
        self._user_config = {}


# Global configuration manager instance
config_manager = ConfigurationManager()


def get_settings() -> AppSettings:
    """Get the current application settings."""
    return config_manager.settings


def load_config(config_path: Path | None = None) -> AppSettings:
    """Load configuration from file and environment."""
    return config_manager.load_configuration(config_path)
