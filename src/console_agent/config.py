"""Configuration settings for the application."""

import os
from typing import List

from pydantic_settings import BaseSettings

PROVIDERS = ("anthropic", "openai")

_DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
}

_API_KEY_ENV_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
}


class ConfigurationError(RuntimeError):
    """Raised when the settings cannot be used to talk to a provider."""


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from CONSOLE_AGENT_* environment variables or a .env file
    DEBUG: bool = False
    LOG_LEVEL: str = "warning"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    PROVIDER: str = "anthropic"  # Options: anthropic, openai
    API_KEY: str | None = None
    MODEL: str | None = None
    MAX_TOKENS: int = 4096
    TEMPERATURE: float = 0.2
    TIMEOUT: float = 30.0  # seconds, per provider request
    MAX_TOOL_ROUNDS: int = 100

    # Behaviour
    AUTO_EXECUTE: bool = False
    MEMORIES_ENABLED: bool = True
    SESSION_LOGGING: bool = True
    USER_NAME: str | None = None

    # Locations
    DATA_DIR: str = ".console_agent"
    PROJECT_ROOT: str = "."
    DATABASE_PATH: str | None = None

    class Config:
        """Configuration for Pydantic settings."""

        env_prefix = "CONSOLE_AGENT_"
        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    def resolved_api_key(self) -> str | None:
        """Return the configured key, falling back to the vendor's own env var."""
        if self.API_KEY:
            return self.API_KEY
        env_var = _API_KEY_ENV_VARS.get(self.PROVIDER.lower())
        return os.environ.get(env_var) if env_var else None

    def resolved_model(self) -> str | None:
        """Return the configured model or the provider's default."""
        if self.MODEL:
            return self.MODEL
        return _DEFAULT_MODELS.get(self.PROVIDER.lower())

    def resolved_user_name(self) -> str | None:
        """Return the name recorded against sessions."""
        return self.USER_NAME or os.environ.get("USER")

    def validate_for_requests(self) -> None:
        """
        Check that a provider request can be made with these settings.

        Raises
        ------
        ConfigurationError
            If the provider is unknown or no API key can be resolved.
        """
        provider = self.PROVIDER.lower()
        if provider not in PROVIDERS:
            raise ConfigurationError(
                f"Unknown provider: {self.PROVIDER}. Valid: {', '.join(PROVIDERS)}"
            )
        if not self.resolved_api_key():
            raise ConfigurationError(
                f"No API key. Set CONSOLE_AGENT_API_KEY or {_API_KEY_ENV_VARS[provider]}."
            )

    def status_lines(self) -> List[str]:
        """Human-readable summary used by ``ai_status()``."""
        key = self.resolved_api_key()
        masked_key = f"{key[:7]}...{key[-4:]}" if key else "(not set)"
        return [
            f"  Provider:        {self.PROVIDER}",
            f"  Model:           {self.resolved_model()}",
            f"  API key:         {masked_key}",
            f"  Max tokens:      {self.MAX_TOKENS}",
            f"  Temperature:     {self.TEMPERATURE}",
            f"  Timeout:         {self.TIMEOUT}s",
            f"  Max tool rounds: {self.MAX_TOOL_ROUNDS}",
            f"  Auto-execute:    {self.AUTO_EXECUTE}",
            f"  Memories:        {self.MEMORIES_ENABLED}",
            f"  Session logging: {self.SESSION_LOGGING}",
            f"  Data dir:        {self.DATA_DIR}",
            f"  Debug:           {self.DEBUG}",
        ]
