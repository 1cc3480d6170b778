"""
CredentialRepository — named-collection access to the persistent store.

Both paired collections are upserted by key (re-pairing overwrites) and
deletion never cascades: removing a server leaves its entities in place.
"""

import logging
from typing import Any, Dict, Optional

from storage.records import CloudSession
from storage.store import KeyValueStore

logger = logging.getLogger(__name__)

SERVERS_KEY = "servers"
ENTITIES_KEY = "entities"
SESSION_KEY = "cloudSession"


class CredentialRepository:
    """Repository over the servers, entities and cloudSession keys."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    # ------------------------------------------------------------------
    # Paired collections
    # ------------------------------------------------------------------

    def _collection(self, key: str) -> Dict[str, Any]:
        return self._store.get(key) or {}

    def _upsert(self, key: str, item_key: str, record: Dict[str, Any]) -> None:
        items = self._collection(key)
        items[item_key] = record
        self._store.set(key, items)

    def _delete(self, key: str, item_key: str) -> bool:
        items = self._collection(key)
        if item_key not in items:
            return False
        del items[item_key]
        self._store.set(key, items)
        return True

    def get_servers(self) -> Dict[str, Any]:
        return self._collection(SERVERS_KEY)

    def upsert_server(self, server_id: str, record: Dict[str, Any]) -> None:
        self._upsert(SERVERS_KEY, server_id, record)
        logger.info(f"Stored paired server {server_id}")

    def delete_server(self, server_id: str) -> bool:
        """Remove a server. Returns False if the key does not exist."""
        return self._delete(SERVERS_KEY, server_id)

    def get_entities(self) -> Dict[str, Any]:
        return self._collection(ENTITIES_KEY)

    def upsert_entity(self, entity_id: str, record: Dict[str, Any]) -> None:
        self._upsert(ENTITIES_KEY, entity_id, record)
        logger.info(f"Stored paired entity {entity_id}")

    def delete_entity(self, entity_id: str) -> bool:
        """Remove an entity. Returns False if the key does not exist."""
        return self._delete(ENTITIES_KEY, entity_id)

    # ------------------------------------------------------------------
    # Cloud session
    # ------------------------------------------------------------------

    def get_session(self) -> Optional[CloudSession]:
        return CloudSession.from_dict(self._store.get(SESSION_KEY))

    def get_session_data(self) -> Optional[Dict[str, Any]]:
        """Raw stored session, as handed to the UI."""
        return self._store.get(SESSION_KEY)

    def save_session(self, session: CloudSession) -> None:
        self._store.set(SESSION_KEY, session.to_dict())

    def clear_session(self) -> None:
        self._store.set(SESSION_KEY, None)
