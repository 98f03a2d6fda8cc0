"""
OAuth authorization-code handshake bound to per-attempt state tokens.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from nyx.clients.fitbit_auth import FitbitOAuthClient, OAuthStateEncoder
from nyx.core.config import OAuthSettings
from nyx.core.errors import InvalidStateError, OAuthTokenExchangeError, TokenExchangeError
from nyx.models.credential import CredentialRecord
from nyx.services.credential_codec import CredentialCodec
from nyx.stores.base import CredentialStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoginRedirect:
    authorization_url: str
    state: str


class AuthorizationHandshake:
    """Start logins and complete them from the OAuth callback.

    Every login attempt gets its own signed state, stored on the user's
    record until the callback consumes it. A callback is only honoured for a
    state that is currently pending and younger than the configured TTL.
    """

    def __init__(
        self,
        store: CredentialStore,
        oauth_client: FitbitOAuthClient,
        codec: CredentialCodec,
        state_encoder: OAuthStateEncoder,
        oauth_settings: OAuthSettings,
    ) -> None:
        self._store = store
        self._oauth = oauth_client
        self._codec = codec
        self._state_encoder = state_encoder
        self._state_ttl = timedelta(seconds=oauth_settings.state_ttl_seconds)

    def issue_state(self) -> str:
        """Return a fresh state value signed by this server."""
        return self._encode_state(datetime.now(timezone.utc))

    def begin_login(self, email: str, state: Optional[str] = None) -> LoginRedirect:
        """
        Record a pending login for ``email`` and build the consent URL.

        ``state`` is the value embedded in the login form; it is used only if
        this server signed it, it has not expired and no record holds it.
        Otherwise a new one is issued, so a caller can never choose the
        state. A pending state from an earlier attempt is replaced and an
        already linked credential is kept until the new handshake succeeds.
        """
        identity = email.strip().lower()
        if not identity:
            raise ValueError("An email address is required to log in.")

        issued_at = self._form_state_issued_at(state) if state else None
        if issued_at is None:
            issued_at = datetime.now(timezone.utc)
            state = self._encode_state(issued_at)

        self._store.bind_state(identity, state, issued_at)

        logger.info("Started Fitbit login for %s", identity)
        return LoginRedirect(
            authorization_url=self._oauth.build_authorization_url(state=state),
            state=state,
        )

    async def complete_login(self, state: str, code: Optional[str]) -> CredentialRecord:
        """
        Exchange ``code`` and attach the credential to the pending record.

        Raises ``InvalidStateError`` when ``state`` is not pending and
        ``TokenExchangeError`` when no credential could be obtained. The store
        is written only on success.
        """
        pending = self._pending_record(state)
        if not code:
            raise TokenExchangeError("Authorization was not granted.")

        try:
            credential = await self._oauth.exchange_authorization_code(code)
        except OAuthTokenExchangeError as exc:
            logger.warning("Code exchange failed for %s: %s", pending.identity, exc)
            raise TokenExchangeError("Failed to exchange authorization code.") from exc

        # Another callback may have consumed the state during the exchange.
        current = self._pending_record(state)
        if current.identity != pending.identity:
            raise InvalidStateError("Invalid CSRF token.")

        linked = current.model_copy(
            update={
                "state": "",
                "state_issued_at": None,
                "token": self._codec.dumps(credential),
            }
        )
        self._store.upsert(linked)
        logger.info("Linked Fitbit account for %s", linked.identity)
        return linked

    def _pending_record(self, state: str) -> CredentialRecord:
        record = self._store.get_by_state(state) if state else None
        if record is None:
            raise InvalidStateError("Invalid CSRF token.")
        issued_at = record.state_issued_at
        if issued_at is not None:
            if issued_at.tzinfo is None:
                issued_at = issued_at.replace(tzinfo=timezone.utc)
            if datetime.now(timezone.utc) - issued_at > self._state_ttl:
                raise InvalidStateError("OAuth state token has expired.")
        return record

    def _encode_state(self, issued_at: datetime) -> str:
        return self._state_encoder.encode(
            {"nonce": uuid.uuid4().hex, "issued_at": issued_at.isoformat()}
        )

    def _form_state_issued_at(self, state: str) -> Optional[datetime]:
        """Return when ``state`` was issued if it is ours, fresh and unbound."""
        try:
            payload = self._state_encoder.decode(state)
            issued_at = datetime.fromisoformat(payload["issued_at"])
        except (InvalidStateError, KeyError, TypeError, ValueError):
            logger.info("Ignoring unsigned login state; issuing a new one")
            return None
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        if datetime.now(timezone.utc) - issued_at > self._state_ttl:
            return None
        if self._store.get_by_state(state) is not None:
            return None
        return issued_at


__all__ = ["AuthorizationHandshake", "LoginRedirect"]
