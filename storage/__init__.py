"""
Storage package — persisted servers, entities and cloud session.
"""

from storage.records import CloudSession
from storage.repository import CredentialRepository
from storage.store import JsonFileStore, MemoryStore

__all__ = ["CloudSession", "CredentialRepository", "JsonFileStore", "MemoryStore"]
