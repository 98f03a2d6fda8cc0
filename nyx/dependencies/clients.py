"""
Factory functions providing the shared store, clients and services.

Each factory is cached so the HTTP handlers and the digest worker running in
the same process share one credential store.
"""

from functools import lru_cache
from typing import Optional

from nyx.clients import FitbitOAuthClient, FitbitSleepClient, MailgunClient, OAuthStateEncoder
from nyx.dependencies.config import get_app_settings
from nyx.services import (
    AuthorizationHandshake,
    CredentialCodec,
    SleepNotifier,
    TokenRefreshGuard,
)
from nyx.stores import CredentialStore, InMemoryCredentialStore, SQLiteCredentialStore


@lru_cache()
def get_credential_store() -> CredentialStore:
    """Provide the configured credential store."""
    settings = get_app_settings()
    if settings.credential_store_backend == "memory":
        return InMemoryCredentialStore()
    return SQLiteCredentialStore(settings.credential_db_path)


def _signing_secret() -> str:
    settings = get_app_settings()
    return settings.security.token_encryption_secret or settings.fitbit.client_secret


@lru_cache()
def get_credential_codec() -> CredentialCodec:
    """Provide the token codec, keyed from the encryption secret or client secret."""
    return CredentialCodec(secret=_signing_secret())


@lru_cache()
def get_oauth_state_encoder() -> OAuthStateEncoder:
    """Provide the OAuth state signer, keyed like the token codec."""
    return OAuthStateEncoder(secret_key=_signing_secret())


@lru_cache()
def get_fitbit_oauth_client() -> FitbitOAuthClient:
    """Create a singleton Fitbit OAuth client."""
    settings = get_app_settings()
    return FitbitOAuthClient(settings.fitbit, settings.oauth)


@lru_cache()
def get_authorization_handshake() -> AuthorizationHandshake:
    """Provide the login handshake bound to the shared store."""
    settings = get_app_settings()
    return AuthorizationHandshake(
        store=get_credential_store(),
        oauth_client=get_fitbit_oauth_client(),
        codec=get_credential_codec(),
        state_encoder=get_oauth_state_encoder(),
        oauth_settings=settings.oauth,
    )


@lru_cache()
def get_token_refresh_guard() -> TokenRefreshGuard:
    """Provide the guard that persists rotated refresh tokens."""
    return TokenRefreshGuard(
        store=get_credential_store(),
        codec=get_credential_codec(),
        open_session=get_fitbit_oauth_client().open_session,
    )


@lru_cache()
def get_sleep_client() -> FitbitSleepClient:
    """Provide the Fitbit sleep API client."""
    return FitbitSleepClient()


@lru_cache()
def get_mailgun_client() -> Optional[MailgunClient]:
    """Provide a Mailgun client when delivery is configured."""
    settings = get_app_settings()
    if not settings.mailgun.is_configured:
        return None
    return MailgunClient(settings.mailgun, settings.oauth)


@lru_cache()
def get_sleep_notifier() -> SleepNotifier:
    """Provide the digest notifier."""
    return SleepNotifier(get_mailgun_client())


__all__ = [
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
