"""
Application configuration using pydantic-settings.

Loads configuration from environment variables and .env files.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="INTERVIEW_FLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # LLM Configuration (Ollama HTTP API)
    llm_base_url: str = Field(
        default="http://localhost:11434",
        description="Base URL of the Ollama server",
    )
    llm_model_name: str = Field(
        default="gpt-oss:20b",
        description="Ollama model name to use (e.g., gpt-oss:20b)",
    )
    llm_timeout: int = Field(
        default=120,
        description="Timeout in seconds for LLM requests",
    )
    llm_max_attempts: int = Field(
        default=3,
        ge=1,
        description="Total upstream attempts per generation before giving up",
    )
    llm_retry_min_delay: float = Field(
        default=3.0,
        ge=0.0,
        description="Initial backoff delay in seconds between attempts",
    )
    llm_retry_max_delay: float = Field(
        default=30.0,
        ge=0.0,
        description="Upper bound in seconds for the backoff delay",
    )

    # Flow execution
    max_step_iterations: int = Field(
        default=40,
        ge=1,
        description="Calls a single step may take before the session is stopped with an error",
    )

    # Session persistence
    session_store: Literal["memory", "sql"] = Field(
        default="memory",
        description="Session store backend",
    )
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/interview_flow.db",
        description="SQLAlchemy async connection string for the sql session store",
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns:
        Settings: Application settings instance.
    """
    return Settings()
