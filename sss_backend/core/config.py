"""
Configuration for the SSS backend.

Settings cover the database connection, token signing, the category
rule cache and command delivery. They are loaded from environment
variables or a `.env` file at the project root, with defaults suitable
for local development.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pathlib import Path
from dotenv import load_dotenv
import logging
import os

ENV_PATH = Path(__file__).resolve().parents[2] / ".env"
load_dotenv(ENV_PATH, override=False)


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    # Local default is a SQLite file; production points at PostgreSQL.
    database_url: str = Field(default="sqlite+pysqlite:///./sss.db")
    jwt_secret: str | None = Field(default=None)
    admin_token_ttl_min: int = Field(default=7 * 24 * 60)
    student_session_ttl_min: int = Field(default=12 * 60)
    category_cache_ttl_sec: float = Field(default=60.0)
    command_poll_limit: int = Field(default=10)
    # Unset means commands are never failed automatically.
    command_max_attempts: int | None = Field(default=None)
    auto_create_db: bool = Field(default=True)
    auto_seed_default_category: bool = Field(default=True)
    auto_seed_admin_user: bool = Field(default=True)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()


def get_app_env() -> str:
    raw = os.getenv("SSS_ENV") or os.getenv("APP_ENV") or "dev"
    env = raw.strip().lower()
    if env not in {"dev", "prod"}:
        logging.getLogger("config").warning("Unknown SSS_ENV=%s; defaulting to dev", raw)
        env = "dev"
    return env


def env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


def _is_weak_secret(secret: str | None) -> bool:
    if not secret:
        return True
    secret = secret.strip()
    if len(secret) < 20:
        return True
    weak = {"change-me", "changeme", "secret", "password", "admin"}
    return secret.lower() in weak


def validate_runtime_settings() -> None:
    env = get_app_env()
    logger = logging.getLogger("config")

    auth_disabled = env_flag("SSS_AUTH_DISABLED", "false")
    jwt_secret = (os.getenv("SSS_JWT_SECRET") or settings.jwt_secret or "").strip()
    admin_password = (os.getenv("SSS_ADMIN_PASSWORD") or "").strip()
    if env == "prod":
        if auth_disabled:
            raise RuntimeError("SSS_AUTH_DISABLED must be false in prod.")
        if _is_weak_secret(jwt_secret):
            raise RuntimeError("SSS_JWT_SECRET must be set to a strong value in prod.")
        if not admin_password:
            raise RuntimeError("SSS_ADMIN_PASSWORD must be set in prod.")
        if settings.database_url.startswith("sqlite"):
            logger.warning("DATABASE_URL points at SQLite in prod.")
        if settings.auto_create_db:
            logger.warning("AUTO_CREATE_DB is enabled in prod. Consider setting it to false.")
    else:
        if not auth_disabled and _is_weak_secret(jwt_secret):
            logger.warning("SSS_JWT_SECRET is weak or missing; dev fallback will be used.")

    if settings.command_max_attempts is not None and settings.command_max_attempts < 1:
        raise RuntimeError("COMMAND_MAX_ATTEMPTS must be a positive integer when set.")


validate_runtime_settings()
