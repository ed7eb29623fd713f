import json
import logging
import os
from typing import Dict, Optional, Protocol

logger = logging.getLogger(__name__)

DEFAULT_SESSION_PATH = os.path.join("data", "spotify_session.json")


class StorageKeys:
    token = "spotify_token"
    expires = "spotify_token_expires"
    scopes = "spotify_token_scopes"
    client_id = "spotify_client_id"
    verifier = "spotify_code_verifier"


class KeyValueStore(Protocol):
    """String-valued persistence used by the auth session store."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store (tests, or when token caching is disabled)."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileStore:
    """Key-value pairs kept in a single JSON object on disk.

    Every write rewrites the whole file; a missing or unreadable file reads
    as an empty store.
    """

    def __init__(self, path: str = DEFAULT_SESSION_PATH):
        self.path = path

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable session file %s: %s", self.path, e)
            return {}

        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items() if v is not None}

    def _write(self, data: Dict[str, str]) -> None:
        if not data:
            if os.path.exists(self.path):
                os.remove(self.path)
            return

        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = str(value)
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)
