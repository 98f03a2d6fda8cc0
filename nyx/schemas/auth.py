"""Schemas related to OAuth flows."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class OAuthCallbackPayload(BaseModel):
    """Query parameters Fitbit sends back to the redirect URI."""

    state: str = Field("", description="Opaque state token issued when starting OAuth.")
    code: Optional[str] = Field(None, description="Authorization code returned by Fitbit.")
    error: Optional[str] = Field(None, description="Error reported when consent was denied.")


class AccountLinkResult(BaseModel):
    """Confirmation returned once the Fitbit account is linked."""

    status: str = "connected"
    email: str
    message: str = "Success! Expect an email in the morning!"


__all__ = ["AccountLinkResult", "OAuthCallbackPayload"]
