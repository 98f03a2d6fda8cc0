"""Service layer exports."""

from .credential_codec import CredentialCodec
from .handshake import AuthorizationHandshake, LoginRedirect
from .notifier import SleepNotifier, compose_sleep_message
from .refresh_guard import TokenRefreshGuard

__all__ = [
    "AuthorizationHandshake",
    "CredentialCodec",
    "LoginRedirect",
    "SleepNotifier",
    "TokenRefreshGuard",
    "compose_sleep_message",
]
