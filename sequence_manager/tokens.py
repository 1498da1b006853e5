"""Key to token lookup for destination services, persisted as JSON."""
import json
import logging
import threading

from .io_utils import read_json, write_json

logger = logging.getLogger(__name__)


class TokenStore:
    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        try:
            data = read_json(self.path, default={})
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable token store %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str) -> str | None:
        with self._lock:
            return self._load().get(key)

    def set(self, key: str, token: str) -> None:
        with self._lock:
            tokens = self._load()
            tokens[key] = token
            write_json(self.path, tokens)

    def keys(self) -> list[str]:
        with self._lock:
            return sorted(self._load())
