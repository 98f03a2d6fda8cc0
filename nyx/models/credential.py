"""
Domain models for OAuth credential persistence.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class OAuthCredential(BaseModel):
    """Access token, refresh token and expiry issued by the authorization server."""

    access_token: str
    refresh_token: str = ""
    token_type: str = "Bearer"
    expires_at: Optional[datetime] = None

    def is_expired(self, leeway: timedelta = timedelta(seconds=0)) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= datetime.now(timezone.utc) + leeway

    def to_token(self) -> Dict[str, Any]:
        """Render the credential as the token mapping used by OAuth sessions."""
        token: Dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
        }
        if self.refresh_token:
            token["refresh_token"] = self.refresh_token
        if self.expires_at is not None:
            token["expires_at"] = int(self.expires_at.timestamp())
        return token

    @classmethod
    def from_token(cls, token: Mapping[str, Any]) -> "OAuthCredential":
        """Build a credential from a token mapping (``expires_at`` as POSIX time)."""
        expires_at: Optional[datetime] = None
        raw_expires_at = token.get("expires_at")
        if raw_expires_at is not None:
            expires_at = datetime.fromtimestamp(int(raw_expires_at), tz=timezone.utc)
        elif token.get("expires_in") is not None:
            expires_at = datetime.now(timezone.utc) + timedelta(
                seconds=int(token["expires_in"])
            )
        return cls(
            access_token=token["access_token"],
            refresh_token=token.get("refresh_token") or "",
            token_type=token.get("token_type") or "Bearer",
            expires_at=expires_at,
        )


class CredentialRecord(BaseModel):
    """A user known to the system, keyed by email.

    ``state`` is the nonce of the pending login attempt (blank when none) and
    ``token`` the opaque serialized credential (blank until the first
    successful handshake). Records are immutable; changes go through the
    credential store's ``upsert``.
    """

    model_config = ConfigDict(frozen=True)

    identity: str = Field(..., description="User email, the stable key.")
    state: str = Field("", description="Pending OAuth state nonce.")
    state_issued_at: Optional[datetime] = None
    token: str = Field("", description="Serialized credential, opaque to storage.")


__all__ = ["CredentialRecord", "OAuthCredential"]
