"""Credential store implementations."""

from .base import CredentialStore
from .memory import InMemoryCredentialStore
from .sqlite import SQLiteCredentialStore

__all__ = [
    "CredentialStore",
    "InMemoryCredentialStore",
    "SQLiteCredentialStore",
]
