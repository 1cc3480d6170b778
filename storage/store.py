"""
Durable key-value stores.

The application keeps three top-level keys: ``servers``, ``entities`` and
``cloudSession``. Components never use a store directly; they go through
``storage.repository.CredentialRepository``.
"""

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


def default_state() -> Dict[str, Any]:
    """Return the initial contents of a fresh store."""
    return {
        "servers": {},
        "entities": {},
        "cloudSession": None,
    }


class KeyValueStore(Protocol):
    """Minimal get/set/delete contract shared by all backends."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """In-memory store. Used for tests and ephemeral sessions."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None) -> None:
        self._data: Dict[str, Any] = default_state()
        if initial:
            self._data.update(copy.deepcopy(initial))

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """
    JSON-file backed store.

    The whole document is loaded once on construction and rewritten on every
    mutation. Values returned by get() are copies, so callers must set() a
    modified collection back for the change to persist.
    """

    def __init__(self, path: Path) -> None:
        """
        Initialise the store and load existing data.

        Args:
            path: Location of the JSON document.
        """
        self.path = Path(path)
        self._data: Dict[str, Any] = self._load()

    def _load(self) -> Dict[str, Any]:
        """
        Load the document from disk, falling back to defaults.

        Returns:
            Dict with at least the default keys present.
        """
        data = default_state()
        if not self.path.exists():
            return data

        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
        except (json.JSONDecodeError, IOError, OSError) as e:
            logger.warning(f"Failed to load store {self.path.name}, starting empty: {e}")
            return data

        if not isinstance(loaded, dict):
            logger.warning(f"Store {self.path.name} is not a JSON object, starting empty")
            return data

        data.update(loaded)
        logger.debug(f"Loaded store with keys: {sorted(data)}")
        return data

    def _save(self) -> None:
        """
        Write the document atomically (temp file, then replace).

        Raises:
            OSError: If the document cannot be written.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_fd, temp_path = tempfile.mkstemp(
            suffix='.tmp',
            prefix='store_',
            dir=self.path.parent
        )
        try:
            with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2)
            os.replace(temp_path, self.path)
        except Exception:
            # Clean up temp file on error
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise

    def get(self, key: str, default: Any = None) -> Any:
        if key not in self._data:
            return default
        return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)
        self._save()

    def delete(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._save()
