"""
Persist refresh-token rotations that happen inside authenticated calls.

Fitbit refresh tokens are single use: refreshing an access token invalidates
the refresh token that was used and issues a new one. The OAuth session
refreshes silently and does not report it, so a rotation is detected by the
access token changing across the call. This relies on the session replacing
the access token if and only if it refreshed.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Mapping, Protocol, TypeVar

from nyx.core.errors import CredentialPersistError, CredentialStoreError, TokenDeserializeError
from nyx.models.credential import OAuthCredential
from nyx.services.credential_codec import CredentialCodec
from nyx.stores.base import CredentialStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TokenSession(Protocol):
    """An async HTTP session exposing the credential it currently holds."""

    token: Mapping[str, Any]

    async def __aenter__(self) -> Any: ...

    async def __aexit__(self, *exc_info: Any) -> Any: ...


SessionFactory = Callable[[OAuthCredential], TokenSession]


class TokenRefreshGuard:
    """Run authenticated operations and write back any rotated credential."""

    def __init__(
        self,
        store: CredentialStore,
        codec: CredentialCodec,
        open_session: SessionFactory,
    ) -> None:
        self._store = store
        self._codec = codec
        self._open_session = open_session
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    async def with_guarded_credential(
        self,
        identity: str,
        credential: OAuthCredential,
        operation: Callable[[Any], Awaitable[T]],
    ) -> T:
        """
        Call ``operation`` with a session for ``credential``.

        Calls for the same identity run one at a time, and each starts from
        the newest credential in the store. If the session rotated the
        credential, it is persisted before this returns or re-raises.

        Raises
        ------
        CredentialPersistError
            If a rotated credential could not be written back.
        """
        async with self._identity_lock(identity):
            credential = self._freshest(identity, credential)
            async with self._open_session(credential) as session:
                try:
                    result = await operation(session)
                except Exception:
                    self._persist_if_rotated(identity, credential, session)
                    raise
                self._persist_if_rotated(identity, credential, session)
        return result

    @asynccontextmanager
    async def _identity_lock(self, identity: str) -> AsyncIterator[None]:
        """Hold the lock for ``identity``; drop it once nobody uses or awaits it."""
        lock = self._locks.get(identity)
        if lock is None:
            lock = self._locks[identity] = asyncio.Lock()
        self._lock_users[identity] = self._lock_users.get(identity, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[identity] -= 1
            if not self._lock_users[identity]:
                del self._lock_users[identity]
                del self._locks[identity]

    def _freshest(self, identity: str, credential: OAuthCredential) -> OAuthCredential:
        record = self._store.get_by_identity(identity)
        if record is None or not record.token:
            return credential
        try:
            stored = self._codec.loads(record.token)
        except TokenDeserializeError:
            return credential
        if stored.access_token != credential.access_token:
            logger.info("Using newer stored credential for %s", identity)
            return stored
        return credential

    def _persist_if_rotated(
        self, identity: str, previous: OAuthCredential, session: TokenSession
    ) -> None:
        current = OAuthCredential.from_token(session.token)
        if current.access_token == previous.access_token:
            return
        if not current.refresh_token:
            current = current.model_copy(update={"refresh_token": previous.refresh_token})

        token = self._codec.dumps(current)
        try:
            self._store.set_token(identity, token)
        except CredentialStoreError as exc:
            logger.critical(
                "Rotated credential for %s was not persisted; the account may need to be relinked: %s",
                identity,
                exc,
            )
            raise CredentialPersistError(
                f"Could not persist rotated credential for {identity}."
            ) from exc
        logger.info("Persisted rotated credential for %s", identity)


__all__ = ["SessionFactory", "TokenRefreshGuard", "TokenSession"]
