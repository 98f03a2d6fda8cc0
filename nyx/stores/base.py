"""
Abstract interface for credential persistence.

Implementations must be safe to call from the HTTP handlers and the digest
worker at the same time, and must be interchangeable: same upsert/get
semantics, and a write is visible to every read issued after it returns.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional

from nyx.models.credential import CredentialRecord


class CredentialStore(ABC):
    """Durable mapping of user identity and pending state to credential records.

    Identity is the merge key for ``upsert``. ``state`` is a side index: a
    non-blank state belongs to at most one record, and a blank state never
    matches a lookup.
    """

    @abstractmethod
    def upsert(self, record: CredentialRecord) -> None:
        """
        Insert ``record`` or overwrite the record with the same identity.

        If another identity still holds ``record.state``, that record loses
        its state so the two users are never coalesced.

        Raises
        ------
        ValueError
            If ``record.identity`` is blank.
        CredentialStoreError
            If the backend fails.
        """
        ...

    @abstractmethod
    def bind_state(
        self, identity: str, state: str, issued_at: Optional[datetime]
    ) -> CredentialRecord:
        """
        Set the pending state of ``identity``, creating the record if needed.

        Only the state fields change, in one atomic step, so a token written
        concurrently by another process is never overwritten. Detaches
        ``state`` from any other identity like ``upsert``.
        """
        ...

    @abstractmethod
    def set_token(self, identity: str, token: str) -> CredentialRecord:
        """
        Replace the token of ``identity``, creating the record if needed.

        The pending state is left as stored, in one atomic step.
        """
        ...

    @abstractmethod
    def get_by_state(self, state: str) -> Optional[CredentialRecord]:
        """Return the record whose pending state is ``state``, or None."""
        ...

    @abstractmethod
    def get_by_identity(self, identity: str) -> Optional[CredentialRecord]:
        """Return the record for ``identity``, or None."""
        ...

    @abstractmethod
    def get_all(self) -> List[CredentialRecord]:
        """
        Return a snapshot of every record.

        The returned list is owned by the caller; later writes do not affect it.
        """
        ...

    @staticmethod
    def _require_identity(identity: str) -> None:
        if not identity:
            raise ValueError("Credential record must have an identity.")


__all__ = ["CredentialStore"]
