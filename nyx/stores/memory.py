"""Process-local credential store."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, List, Optional

from nyx.models.credential import CredentialRecord
from nyx.stores.base import CredentialStore

logger = logging.getLogger(__name__)


class InMemoryCredentialStore(CredentialStore):
    """Keep credential records in dictionaries guarded by a single lock.

    Records are immutable, so handing them out after the lock is released
    cannot expose a partially written record.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[str, CredentialRecord] = {}
        self._identity_by_state: Dict[str, str] = {}

    def upsert(self, record: CredentialRecord) -> None:
        self._require_identity(record.identity)
        with self._lock:
            self._put(record)

    def bind_state(
        self, identity: str, state: str, issued_at: Optional[datetime]
    ) -> CredentialRecord:
        self._require_identity(identity)
        with self._lock:
            current = self._records.get(identity) or CredentialRecord(identity=identity)
            record = current.model_copy(update={"state": state, "state_issued_at": issued_at})
            self._put(record)
        return record

    def set_token(self, identity: str, token: str) -> CredentialRecord:
        self._require_identity(identity)
        with self._lock:
            current = self._records.get(identity) or CredentialRecord(identity=identity)
            record = current.model_copy(update={"token": token})
            self._put(record)
        return record

    def _put(self, record: CredentialRecord) -> None:
        # Caller holds self._lock.
        previous = self._records.get(record.identity)
        if previous is not None and previous.state:
            self._identity_by_state.pop(previous.state, None)

        if record.state:
            holder = self._identity_by_state.get(record.state)
            if holder is not None and holder != record.identity:
                logger.warning(
                    "State already bound to another user; detaching it from %s",
                    holder,
                )
                self._records[holder] = self._records[holder].model_copy(
                    update={"state": "", "state_issued_at": None}
                )
            self._identity_by_state[record.state] = record.identity

        self._records[record.identity] = record

    def get_by_state(self, state: str) -> Optional[CredentialRecord]:
        if not state:
            return None
        with self._lock:
            identity = self._identity_by_state.get(state)
            if identity is None:
                return None
            return self._records.get(identity)

    def get_by_identity(self, identity: str) -> Optional[CredentialRecord]:
        with self._lock:
            return self._records.get(identity)

    def get_all(self) -> List[CredentialRecord]:
        with self._lock:
            return list(self._records.values())


__all__ = ["InMemoryCredentialStore"]
