"""Pytest configuration shared across the suite."""

try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

from datetime import datetime
from typing import List, Optional

import pytest

from nyx.clients.fitbit_auth import OAuthStateEncoder
from nyx.core.config import OAuthSettings
from nyx.core.errors import CredentialStoreError
from nyx.models.credential import CredentialRecord
from nyx.services.credential_codec import CredentialCodec
from nyx.stores import CredentialStore, InMemoryCredentialStore, SQLiteCredentialStore


class CountingStore(CredentialStore):
    """Wrap a store, recording every upsert and optionally failing writes."""

    def __init__(self, inner: Optional[CredentialStore] = None) -> None:
        self.inner = inner or InMemoryCredentialStore()
        self.writes: List[CredentialRecord] = []
        self.fail_writes = False

    def upsert(self, record: CredentialRecord) -> None:
        if self.fail_writes:
            raise CredentialStoreError("disk full")
        self.writes.append(record)
        self.inner.upsert(record)

    def bind_state(
        self, identity: str, state: str, issued_at: Optional[datetime]
    ) -> CredentialRecord:
        if self.fail_writes:
            raise CredentialStoreError("disk full")
        record = self.inner.bind_state(identity, state, issued_at)
        self.writes.append(record)
        return record

    def set_token(self, identity: str, token: str) -> CredentialRecord:
        if self.fail_writes:
            raise CredentialStoreError("disk full")
        record = self.inner.set_token(identity, token)
        self.writes.append(record)
        return record

    def get_by_state(self, state: str) -> Optional[CredentialRecord]:
        return self.inner.get_by_state(state)

    def get_by_identity(self, identity: str) -> Optional[CredentialRecord]:
        return self.inner.get_by_identity(identity)

    def get_all(self) -> List[CredentialRecord]:
        return self.inner.get_all()


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path) -> CredentialStore:
    if request.param == "memory":
        return InMemoryCredentialStore()
    return SQLiteCredentialStore(str(tmp_path / "credentials.db"))


@pytest.fixture
def counting_store() -> CountingStore:
    return CountingStore()


@pytest.fixture
def codec() -> CredentialCodec:
    return CredentialCodec(secret="codec-secret")


@pytest.fixture
def oauth_settings() -> OAuthSettings:
    return OAuthSettings(OAUTH_STATE_TTL=900, HTTP_TIMEOUT_SECONDS=5)


@pytest.fixture
def state_encoder() -> OAuthStateEncoder:
    return OAuthStateEncoder(secret_key="state-secret")
