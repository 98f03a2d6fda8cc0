"""Expose dependency helpers for FastAPI routers."""

from .clients import (
    get_authorization_handshake,
    get_credential_codec,
    get_credential_store,
    get_fitbit_oauth_client,
    get_mailgun_client,
    get_oauth_state_encoder,
    get_sleep_client,
    get_sleep_notifier,
    get_token_refresh_guard,
)
from .config import get_app_settings

__all__ = [
    "get_app_settings",
    "get_authorization_handshake",
    "get_credential_codec",
    "get_credential_store",
    "get_fitbit_oauth_client",
    "get_mailgun_client",
    "get_oauth_state_encoder",
    "get_sleep_client",
    "get_sleep_notifier",
    "get_token_refresh_guard",
]
