"""
Fitbit OAuth utilities.

These helpers sign OAuth state values, build the consent URL, exchange
authorization codes and open token-refreshing HTTP sessions for stored
credentials.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from hashlib import sha256
from http import HTTPStatus
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx
from authlib.integrations.httpx_client import AsyncOAuth2Client

from nyx.core.config import FitbitSettings, OAuthSettings
from nyx.core.errors import InvalidStateError, OAuthTokenExchangeError
from nyx.models.credential import OAuthCredential


class OAuthStateEncoder:
    """Encode and decode OAuth state values to guard against tampering."""

    def __init__(self, secret_key: str) -> None:
        if not secret_key:
            raise ValueError("A secret is required to sign OAuth state values.")
        self._secret_key = secret_key.encode("utf-8")

    def encode(self, payload: Dict[str, Any]) -> str:
        serialized = json.dumps(payload, separators=(",", ":"), sort_keys=True)
        signature = hmac.new(self._secret_key, serialized.encode("utf-8"), sha256).digest()
        return base64.urlsafe_b64encode(signature + serialized.encode("utf-8")).decode("utf-8")

    def decode(self, token: str) -> Dict[str, Any]:
        """Return the signed payload; raises ``InvalidStateError`` if it was not signed here."""
        try:
            decoded = base64.urlsafe_b64decode(token.encode("utf-8"))
        except (binascii.Error, ValueError) as exc:
            raise InvalidStateError("Malformed OAuth state.") from exc
        signature, serialized = decoded[:32], decoded[32:]
        expected_signature = hmac.new(self._secret_key, serialized, sha256).digest()
        if not serialized or not hmac.compare_digest(signature, expected_signature):
            raise InvalidStateError("Invalid OAuth state signature.")
        try:
            payload = json.loads(serialized)
        except ValueError as exc:
            raise InvalidStateError("Malformed OAuth state.") from exc
        if not isinstance(payload, dict):
            raise InvalidStateError("Malformed OAuth state.")
        return payload


class FitbitOAuthClient:
    """Build Fitbit authorization URLs and exchange authorization codes."""

    AUTH_BASE_URL = "https://www.fitbit.com/oauth2/authorize"
    TOKEN_URL = "https://api.fitbit.com/oauth2/token"

    def __init__(
        self,
        fitbit_settings: FitbitSettings,
        oauth_settings: OAuthSettings,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._fitbit = fitbit_settings
        self._oauth = oauth_settings
        self._transport = transport

    def build_authorization_url(self, state: str) -> str:
        """Construct the Fitbit consent URL carrying ``state``."""
        params = {
            "client_id": self._fitbit.client_id,
            "redirect_uri": str(self._fitbit.redirect_uri),
            "response_type": "code",
            "scope": " ".join(self._fitbit.scope_list),
            "access_type": "offline",
            "state": state,
        }
        return f"{self.AUTH_BASE_URL}?{urlencode(params)}"

    async def exchange_authorization_code(self, code: str) -> OAuthCredential:
        """Exchange an authorization code for a credential."""
        payload = {
            "code": code,
            "client_id": self._fitbit.client_id,
            "redirect_uri": str(self._fitbit.redirect_uri),
            "grant_type": "authorization_code",
        }

        try:
            async with httpx.AsyncClient(
                timeout=self._oauth.http_timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(
                    self.TOKEN_URL,
                    data=payload,
                    auth=(self._fitbit.client_id, self._fitbit.client_secret),
                )
        except httpx.HTTPError as exc:
            raise OAuthTokenExchangeError(f"Token endpoint request failed: {exc}") from exc

        if response.status_code != HTTPStatus.OK:
            raise OAuthTokenExchangeError(response.text)

        try:
            token_payload = response.json()
        except ValueError as exc:
            raise OAuthTokenExchangeError("Token endpoint returned invalid JSON.") from exc

        if not all(
            token_payload.get(key) for key in ("access_token", "refresh_token", "expires_in")
        ):
            raise OAuthTokenExchangeError("Incomplete token payload returned from Fitbit.")

        return OAuthCredential.from_token(token_payload)

    def open_session(self, credential: OAuthCredential) -> AsyncOAuth2Client:
        """
        Return an HTTP client authenticated with ``credential``.

        The client refreshes an expired access token against the token
        endpoint before sending a request; its ``token`` attribute always holds
        the credential currently in use.
        """
        return AsyncOAuth2Client(
            client_id=self._fitbit.client_id,
            client_secret=self._fitbit.client_secret,
            token_endpoint_auth_method="client_secret_basic",
            token=credential.to_token(),
            token_endpoint=self.TOKEN_URL,
            timeout=self._oauth.http_timeout_seconds,
            transport=self._transport,
        )


__all__ = ["FitbitOAuthClient", "OAuthStateEncoder"]
