"""Public schema exports."""

from .auth import AccountLinkResult, OAuthCallbackPayload

__all__ = [
    "AccountLinkResult",
    "OAuthCallbackPayload",
]
