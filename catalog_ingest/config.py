"""
Configuration for the Catalog Ingest Relay.

All settings come from environment variables and are loaded once, at cold
start, by `app.py`. Required variables fail fast with a ConfigurationError so
a misconfigured deployment never processes an event.
"""

import os
from dataclasses import dataclass
from typing import Optional

from .exceptions import ConfigurationError

UPLOAD_MODES = ("attachment", "version")


def get_env_var(name: str, default: Optional[str] = None) -> str:
    """
    Gets an environment variable or raises a ConfigurationError for fast-failure.

    Args:
        name: The name of the environment variable.
        default: An optional default value. If not provided, the variable is required.

    Returns:
        The value of the environment variable.

    Raises:
        ConfigurationError: If the required environment variable is not set.
    """
    value = os.environ.get(name, default)
    if value is None or value == "":
        raise ConfigurationError(f"FATAL: Environment variable '{name}' is not set.")
    return value


def _get_int(name: str, default: str) -> int:
    raw = get_env_var(name, default)
    try:
        value = int(raw)
    except ValueError:
        raise ConfigurationError(f"FATAL: Environment variable '{name}' must be an integer, got {raw!r}.")
    if value <= 0:
        raise ConfigurationError(f"FATAL: Environment variable '{name}' must be positive, got {value}.")
    return value


@dataclass(frozen=True)
class Settings:
    api_key: str
    api_user: str
    catalog_host: str
    account_id: str
    target_bucket: str
    dedup_table: str = "IngestAntiDupe"
    dedup_ttl_seconds: int = 600
    http_timeout_seconds: int = 300
    upload_mode: str = "attachment"
    environment: str = "dev"
    log_level: str = "INFO"


def load_settings() -> Settings:
    """Reads and validates the relay configuration from the environment."""
    upload_mode = get_env_var("UPLOAD_MODE", "attachment").lower()
    if upload_mode not in UPLOAD_MODES:
        raise ConfigurationError(
            f"FATAL: UPLOAD_MODE must be one of {UPLOAD_MODES}, got {upload_mode!r}."
        )

    return Settings(
        api_key=get_env_var("API_KEY"),
        api_user=get_env_var("API_USER"),
        catalog_host=get_env_var("GE_ENV"),
        account_id=get_env_var("ACCOUNT"),
        target_bucket=get_env_var("BUCKET"),
        dedup_table=get_env_var("DEDUP_TABLE", "IngestAntiDupe"),
        dedup_ttl_seconds=_get_int("DEDUP_TTL_SECONDS", str(Settings.dedup_ttl_seconds)),
        http_timeout_seconds=_get_int("HTTP_TIMEOUT_SECONDS", str(Settings.http_timeout_seconds)),
        upload_mode=upload_mode,
        environment=get_env_var("ENVIRONMENT", "dev"),
        log_level=get_env_var("LOG_LEVEL", "INFO").upper(),
    )
