"""
Application configuration models and helpers.

Centralizes settings management so both the FastAPI app and the sleep digest
worker share a consistent configuration surface.
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from croniter import croniter
from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_env_file(path: str = ".env") -> None:
    """Load key=value pairs from ``path`` into the process environment.

    Values already present in the environment win over the file.
    """
    env_path = Path(path)
    if not env_path.exists():
        return
    for raw_line in env_path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = line.partition("=")
        if not sep:
            continue
        key = key.strip()
        if not key or key in os.environ:
            continue
        os.environ[key] = value.strip().strip('"').strip("'")


class _EnvSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


class FitbitSettings(_EnvSettings):
    """Configuration required for the Fitbit OAuth application."""

    client_id: str = Field(..., validation_alias="FITBIT_CLIENT_ID")
    client_secret: str = Field(..., validation_alias="FITBIT_CLIENT_SECRET")
    redirect_uri: AnyHttpUrl = Field(..., validation_alias="FITBIT_REDIRECT_URI")
    scopes: str = Field(
        "profile sleep",
        validation_alias="FITBIT_SCOPES",
        description="Comma or space separated OAuth scopes.",
    )

    @property
    def scope_list(self) -> tuple[str, ...]:
        return tuple(scope for scope in re.split(r"[,\s]+", self.scopes) if scope)


class OAuthSettings(_EnvSettings):
    """OAuth flow configuration."""

    state_ttl_seconds: int = Field(900, validation_alias="OAUTH_STATE_TTL")
    http_timeout_seconds: float = Field(
        10.0,
        validation_alias="HTTP_TIMEOUT_SECONDS",
        description="Timeout applied to every outbound HTTP call.",
    )


class MailgunSettings(_EnvSettings):
    """Outbound email delivery settings."""

    domain: Optional[str] = Field(None, validation_alias="MAILGUN_DOMAIN")
    api_key: Optional[str] = Field(None, validation_alias="MAILGUN_API_KEY")
    base_url: str = Field("https://api.mailgun.net/v3", validation_alias="MAILGUN_BASE_URL")
    sender_name: str = Field("nyx", validation_alias="MAILGUN_SENDER_NAME")

    @property
    def is_configured(self) -> bool:
        return bool(self.domain and self.api_key)


class SecuritySettings(_EnvSettings):
    """Security-related configuration."""

    token_encryption_secret: Optional[str] = Field(
        None,
        validation_alias="TOKEN_ENCRYPTION_SECRET",
        description=(
            "Secret used to derive the symmetric key for encrypting stored tokens."
        ),
    )


class AppSettings(_EnvSettings):
    """Root settings object for the web application and the digest worker."""

    environment: str = Field("development", validation_alias="APP_ENV")
    log_level: str = Field("INFO", validation_alias="APP_LOG_LEVEL")
    cron_schedule: str = Field("0 10 * * *", validation_alias="CRON_SCHEDULE")
    scheduler_enabled: bool = Field(True, validation_alias="SCHEDULER_ENABLED")
    credential_store_backend: Literal["sqlite", "memory"] = Field(
        "sqlite", validation_alias="CREDENTIAL_STORE_BACKEND"
    )
    credential_db_path: str = Field("data/nyx.db", validation_alias="CREDENTIAL_DB_PATH")
    security: SecuritySettings = Field(default_factory=SecuritySettings)
    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    fitbit: FitbitSettings = Field(default_factory=FitbitSettings)
    mailgun: MailgunSettings = Field(default_factory=MailgunSettings)

    @field_validator("cron_schedule")
    @classmethod
    def _check_cron_schedule(cls, value: str) -> str:
        if not croniter.is_valid(value):
            raise ValueError(f"Invalid cron expression: {value!r}")
        return value


@lru_cache()
def get_settings() -> AppSettings:
    """Return a cached settings object."""
    return AppSettings()  # type: ignore[call-arg]


__all__ = [
    "AppSettings",
    "FitbitSettings",
    "MailgunSettings",
    "OAuthSettings",
    "SecuritySettings",
    "get_settings",
]
