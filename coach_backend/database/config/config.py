"""
Configuration — Pydantic v2 Settings (env / .env)
=================================================

Purpose
-------
Centralized, strongly-typed application configuration using:
- Pydantic v2 `BaseSettings` for environment-driven values
- `pydantic-settings` v2 for `.env` loading and model config

Load Order & Behavior
---------------------
- Values are read from the environment; if not present, `.env` is used.
- Every field has a default, so the service boots (against a local SQLite
  file) without any `.env` at all.
- `extra="ignore"`: unknown env vars are ignored (not an error).

Usage
-----
from coach_backend.database.config.config import settings

# Example
timeout_ms = settings.INFERENCE_TIMEOUT_MS
budget = settings.PROMPT_BUDGET

Security
--------
- Never commit secrets or the `.env` file to source control.
- Prefer runtime environment variables in production (K8s/Secrets Manager/etc.).
"""

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application configuration settings loaded from environment variables
    or a `.env` file. Provides strongly typed access to environment values.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DB_DRIVER_NAME: str = Field("sqlite", description="Database driver (e.g., `postgresql+psycopg`, `sqlite`).")
    DB_USERNAME: Optional[str] = Field(None, description="Database username credential.")
    DB_PASSWORD: Optional[str] = Field(None, description="Database password credential.")
    DB_HOST: Optional[str] = Field(None, description="Hostname or IP address of the database server.")
    DB_DATABASE_NAME: str = Field("coach.db", description="Name of the database (file path for SQLite).")

    # Entity store capacity (None = unbounded)
    STORE_MAX_BYTES: Optional[int] = Field(None, description="Maximum total size of stored entity payloads, in bytes.")
    STORE_MAX_ENTRIES: Optional[int] = Field(None, description="Maximum number of stored entity keys.")

    # Snapshot / upgrade boundary
    SNAPSHOT_PATH: str = Field("snapshots/entity_store.json", description="File receiving the entity-store snapshot on shutdown.")
    RESTORE_ON_STARTUP: bool = Field(True, description="Rehydrate an empty entity store from SNAPSHOT_PATH at startup when present.")
    SNAPSHOT_ON_SHUTDOWN: bool = Field(True, description="Write a snapshot of the entity store during shutdown.")

    # Identity
    SYSTEM_IDENTITY: str = Field("system", description="Identity allowed to access every conversation for maintenance.")
    SECRET_KEY: str = Field("change-me", description="Key used to verify caller identity tokens.")
    ALGORITHM: str = Field("HS256", description="Algorithm of caller identity tokens (e.g., `HS256`).")

    # Inference endpoint
    API_KEY: str = Field("", description="API key of the inference endpoint.")
    OPEN_AI_MODEL: str = Field("gpt-4o-mini", description="Model name sent with every inference request.")
    INFERENCE_BASE_URL: Optional[str] = Field(None, description="Override of the inference endpoint base URL.")
    INFERENCE_TEMPERATURE: float = Field(0.7, description="Sampling temperature of the coach model.")
    INFERENCE_TIMEOUT_MS: int = Field(30000, description="Per-attempt timeout of an inference call, in milliseconds.")
    INFERENCE_MAX_RETRIES: int = Field(2, description="Retries after a timed out or failed inference attempt.")
    INFERENCE_BACKOFF_MS: int = Field(500, description="Base delay between inference retries, in milliseconds.")

    # Prompt assembly
    PROMPT_BUDGET: int = Field(12000, description="Maximum size of the conversation history placed in a prompt.")
    PROMPT_BUDGET_UNIT: Literal["characters", "tokens"] = Field("characters", description="Unit in which PROMPT_BUDGET is measured.")

    # HTTP
    FRONTEND_URL: str = Field("http://localhost:5173", description="Base URL of the frontend client application.")


# Singleton instance of Settings, ready to be imported across the app
settings = Settings()
"""Defines a Settings object that contains the contents of the .env file"""
