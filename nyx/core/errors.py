"""
Exception hierarchy for the credential lifecycle.

Handshake errors surface to the HTTP caller; everything raised while sweeping
is contained per user by the digest worker.
"""

from __future__ import annotations


class NyxError(Exception):
    """Base class for application errors."""


class InvalidStateError(NyxError):
    """Raised when an OAuth callback carries an unknown, consumed or expired state."""


class OAuthTokenExchangeError(NyxError):
    """Raised when the token endpoint rejects a request or returns garbage."""


class TokenExchangeError(NyxError):
    """Raised when an authorization code could not be turned into a credential."""


class TokenDeserializeError(NyxError):
    """Raised when a stored token cannot be decrypted or parsed."""


class CredentialStoreError(NyxError):
    """Raised when the credential store backend fails."""


class CredentialPersistError(NyxError):
    """Raised when a rotated credential could not be written back.

    The remote call succeeded, so the provider has most likely already
    invalidated the refresh token held in the store.
    """


class SleepFetchError(NyxError):
    """Raised when sleep data could not be retrieved from Fitbit."""


class NotificationError(NyxError):
    """Raised when the digest email could not be delivered."""


__all__ = [
    "CredentialPersistError",
    "CredentialStoreError",
    "InvalidStateError",
    "NotificationError",
    "NyxError",
    "OAuthTokenExchangeError",
    "SleepFetchError",
    "TokenDeserializeError",
    "TokenExchangeError",
]
