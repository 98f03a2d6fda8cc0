try:
    from . import _bootstrap  # noqa: F401
except Exception:  # pragma: no cover
    import _bootstrap  # type: ignore # noqa: F401

import base64
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional
from urllib.parse import parse_qs, urlparse

import pytest

from nyx.clients.fitbit_auth import OAuthStateEncoder
from nyx.core.errors import InvalidStateError, OAuthTokenExchangeError, TokenExchangeError
from nyx.models.credential import CredentialRecord, OAuthCredential
from nyx.services.handshake import AuthorizationHandshake
from nyx.stores import SQLiteCredentialStore


class DummyOAuthClient:
    def __init__(self) -> None:
        self.codes: list[str] = []
        self.fail = False
        self.during_exchange: Optional[Callable[[], None]] = None

    def build_authorization_url(self, state: str) -> str:
        return f"https://oauth.example.com/auth?state={state}"

    async def exchange_authorization_code(self, code: str) -> OAuthCredential:
        self.codes.append(code)
        if self.during_exchange is not None:
            self.during_exchange()
        if self.fail:
            raise OAuthTokenExchangeError("invalid_grant")
        return OAuthCredential(
            access_token=f"access-{code}",
            refresh_token=f"refresh-{code}",
            expires_at=datetime.now(timezone.utc) + timedelta(hours=8),
        )


@pytest.fixture
def oauth_client() -> DummyOAuthClient:
    return DummyOAuthClient()


@pytest.fixture
def handshake(
    counting_store, oauth_client, codec, state_encoder, oauth_settings
) -> AuthorizationHandshake:
    return AuthorizationHandshake(
        store=counting_store,
        oauth_client=oauth_client,
        codec=codec,
        state_encoder=state_encoder,
        oauth_settings=oauth_settings,
    )


def _state_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


@pytest.mark.parametrize(
    "email", ["ada@example.com", "  Bob@Example.com ", "carol+sleep@example.org"]
)
def test_begin_login_binds_state_to_identity(handshake, counting_store, email) -> None:
    redirect = handshake.begin_login(email)

    record = counting_store.get_by_state(redirect.state)
    assert record is not None
    assert record.identity == email.strip().lower()
    assert record.token == ""
    assert _state_from(redirect.authorization_url) == redirect.state
    assert len(counting_store.writes) == 1


def test_begin_login_rejects_blank_email(handshake, counting_store) -> None:
    with pytest.raises(ValueError):
        handshake.begin_login("   ")

    assert counting_store.writes == []


def test_begin_login_uses_form_state_when_unbound(handshake) -> None:
    state = handshake.issue_state()

    redirect = handshake.begin_login("ada@example.com", state=state)

    assert redirect.state == state


@pytest.mark.parametrize("supplied", ["", "short", "Z" * 32, "0" * 32, "%%%"])
def test_begin_login_replaces_unsigned_state(handshake, state_encoder, supplied) -> None:
    redirect = handshake.begin_login("victim@example.com", state=supplied)

    assert redirect.state != supplied
    assert state_encoder.decode(redirect.state)["nonce"]


def test_begin_login_replaces_state_signed_elsewhere(handshake) -> None:
    forged = OAuthStateEncoder(secret_key="attacker-secret").encode(
        {"nonce": "0" * 32, "issued_at": datetime.now(timezone.utc).isoformat()}
    )

    redirect = handshake.begin_login("victim@example.com", state=forged)

    assert redirect.state != forged


def test_begin_login_replaces_expired_form_state(handshake, state_encoder) -> None:
    stale = state_encoder.encode(
        {
            "nonce": "1" * 32,
            "issued_at": (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat(),
        }
    )

    redirect = handshake.begin_login("ada@example.com", state=stale)

    assert redirect.state != stale


def test_state_decoding_rejects_tampering(state_encoder) -> None:
    state = state_encoder.encode({"nonce": "abc", "issued_at": "2024-03-02T10:00:00+00:00"})
    raw = bytearray(base64.urlsafe_b64decode(state))
    raw[-2] ^= 1

    with pytest.raises(InvalidStateError):
        state_encoder.decode(base64.urlsafe_b64encode(bytes(raw)).decode())


def test_login_started_during_rotation_keeps_rotated_token(
    tmp_path, oauth_client, codec, state_encoder, oauth_settings
) -> None:
    db_path = str(tmp_path / "shared.db")
    worker = SQLiteCredentialStore(db_path)

    class WebStore(SQLiteCredentialStore):
        def bind_state(self, identity, state, issued_at):
            # The worker persists a rotation just before the web write lands.
            worker.set_token(identity, "r2")
            return super().bind_state(identity, state, issued_at)

    web = WebStore(db_path)
    web.upsert(CredentialRecord(identity="ada@example.com", token="r1"))
    handshake = AuthorizationHandshake(
        store=web,
        oauth_client=oauth_client,
        codec=codec,
        state_encoder=state_encoder,
        oauth_settings=oauth_settings,
    )

    redirect = handshake.begin_login("ada@example.com")

    record = worker.get_by_identity("ada@example.com")
    assert record.token == "r2"
    assert record.state == redirect.state


def test_begin_login_never_reuses_a_bound_state(handshake, counting_store) -> None:
    first = handshake.begin_login("ada@example.com")

    second = handshake.begin_login("bob@example.com", state=first.state)

    assert second.state != first.state
    assert counting_store.get_by_state(first.state).identity == "ada@example.com"


def test_new_login_replaces_pending_state(handshake, counting_store) -> None:
    first = handshake.begin_login("ada@example.com")
    second = handshake.begin_login("ada@example.com")

    assert counting_store.get_by_state(first.state) is None
    assert counting_store.get_by_state(second.state).identity == "ada@example.com"
    assert len(counting_store.get_all()) == 1


def test_begin_login_keeps_existing_token(handshake, counting_store) -> None:
    counting_store.upsert(CredentialRecord(identity="ada@example.com", token="linked"))

    redirect = handshake.begin_login("ada@example.com")

    record = counting_store.get_by_identity("ada@example.com")
    assert record.state == redirect.state
    assert record.token == "linked"


@pytest.mark.anyio
async def test_complete_login_attaches_credential(handshake, counting_store, codec, oauth_client) -> None:
    redirect = handshake.begin_login("ada@example.com")
    counting_store.writes.clear()

    record = await handshake.complete_login(redirect.state, "code-1")

    assert record.identity == "ada@example.com"
    assert oauth_client.codes == ["code-1"]
    assert len(counting_store.writes) == 1
    stored = counting_store.get_by_identity("ada@example.com")
    assert stored.state == ""
    assert codec.loads(stored.token).access_token == "access-code-1"
    assert counting_store.get_by_state(redirect.state) is None


@pytest.mark.anyio
async def test_replayed_callback_is_rejected(handshake, counting_store) -> None:
    redirect = handshake.begin_login("ada@example.com")
    await handshake.complete_login(redirect.state, "code-1")
    snapshot = counting_store.get_all()
    counting_store.writes.clear()

    with pytest.raises(InvalidStateError):
        await handshake.complete_login(redirect.state, "code-2")

    assert counting_store.writes == []
    assert counting_store.get_all() == snapshot


@pytest.mark.anyio
@pytest.mark.parametrize("state", ["", "0" * 32, "unknown"])
async def test_unknown_state_is_rejected_without_exchange(
    handshake, counting_store, oauth_client, state
) -> None:
    handshake.begin_login("ada@example.com")
    snapshot = counting_store.get_all()
    counting_store.writes.clear()

    with pytest.raises(InvalidStateError):
        await handshake.complete_login(state, "code-1")

    assert oauth_client.codes == []
    assert counting_store.writes == []
    assert counting_store.get_all() == snapshot


@pytest.mark.anyio
async def test_expired_state_is_rejected(handshake, counting_store, oauth_client) -> None:
    counting_store.upsert(
        CredentialRecord(
            identity="ada@example.com",
            state="a" * 32,
            state_issued_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
    )

    with pytest.raises(InvalidStateError):
        await handshake.complete_login("a" * 32, "code-1")

    assert oauth_client.codes == []


@pytest.mark.anyio
async def test_failed_exchange_leaves_store_untouched(handshake, counting_store, oauth_client) -> None:
    redirect = handshake.begin_login("ada@example.com")
    snapshot = counting_store.get_all()
    counting_store.writes.clear()
    oauth_client.fail = True

    with pytest.raises(TokenExchangeError):
        await handshake.complete_login(redirect.state, "code-1")

    assert counting_store.writes == []
    assert counting_store.get_all() == snapshot


@pytest.mark.anyio
async def test_missing_code_is_an_exchange_failure(handshake, counting_store, oauth_client) -> None:
    redirect = handshake.begin_login("ada@example.com")
    counting_store.writes.clear()

    with pytest.raises(TokenExchangeError):
        await handshake.complete_login(redirect.state, None)

    assert oauth_client.codes == []
    assert counting_store.writes == []
    assert counting_store.get_by_state(redirect.state) is not None


@pytest.mark.anyio
async def test_state_replaced_during_exchange_is_rejected(
    handshake, counting_store, oauth_client
) -> None:
    redirect = handshake.begin_login("ada@example.com")
    oauth_client.during_exchange = lambda: handshake.begin_login("ada@example.com")

    with pytest.raises(InvalidStateError):
        await handshake.complete_login(redirect.state, "code-1")

    assert counting_store.get_by_identity("ada@example.com").token == ""
