"""Serialize OAuth credentials to the opaque, encrypted token stored per user."""

from __future__ import annotations

import base64
import hashlib

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from nyx.core.errors import TokenDeserializeError
from nyx.models.credential import OAuthCredential


class CredentialCodec:
    """Encrypt credentials as JSON under a Fernet key derived from a secret."""

    def __init__(self, *, secret: str) -> None:
        if not secret:
            raise ValueError("Token encryption secret must be provided.")
        digest = hashlib.sha256(secret.encode("utf-8")).digest()
        self._fernet = Fernet(base64.urlsafe_b64encode(digest))

    def dumps(self, credential: OAuthCredential) -> str:
        """Return the ciphertext for ``credential``."""
        payload = credential.model_dump_json().encode("utf-8")
        return self._fernet.encrypt(payload).decode("utf-8")

    def loads(self, token: str) -> OAuthCredential:
        """Decrypt and parse a stored token.

        Raises ``TokenDeserializeError`` for anything that is not a token
        produced by ``dumps`` with the same secret.
        """
        try:
            payload = self._fernet.decrypt(token.encode("utf-8"))
        except InvalidToken as exc:
            raise TokenDeserializeError("Stored token could not be decrypted.") from exc
        try:
            return OAuthCredential.model_validate_json(payload)
        except ValidationError as exc:
            raise TokenDeserializeError("Stored token is not a valid credential.") from exc


__all__ = ["CredentialCodec"]
