"""
Client storage tiers

Values are kept JSON-encoded under string keys, like browser storage.
Reading a missing or corrupt value gives None; a failed write is logged and
dropped. Nothing here raises to the caller.
"""

import json
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Optional, Union

from log import get_logger

logger = get_logger("client.storage")


class StorageKeys:
    USER = "storefront.user"
    TOKEN = "storefront.token"
    CART = "storefront.cart"
    WISHLIST = "storefront.wishlist"


class KeyValueStore(ABC):
    tier = "abstract"

    @abstractmethod
    def _read(self, key: str) -> Optional[str]: ...

    @abstractmethod
    def _write(self, key: str, raw: str) -> None: ...

    @abstractmethod
    def _remove(self, key: str) -> None: ...

    def get(self, key: str) -> Any:
        try:
            raw = self._read(key)
            return json.loads(raw) if raw else None
        except (OSError, TypeError, ValueError):
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            self._write(key, json.dumps(value, ensure_ascii=False))
        except (OSError, TypeError, ValueError):
            logger.warning("storage_write_failed", extra={"data": {"tier": self.tier, "key": key}}, exc_info=True)

    def delete(self, key: str) -> None:
        try:
            self._remove(key)
        except OSError:
            logger.warning("storage_delete_failed", extra={"data": {"tier": self.tier, "key": key}}, exc_info=True)


class EphemeralStore(KeyValueStore):
    """Lives as long as the process, like a browser tab's session storage."""

    tier = "ephemeral"

    def __init__(self):
        self._data: Dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write(self, key: str, raw: str) -> None:
        self._data[key] = raw

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)


class DurableStore(KeyValueStore):
    """A JSON file on disk; survives restarts."""

    tier = "durable"

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError):
            logger.warning("storage_file_unreadable", extra={"data": {"path": str(self.path)}})
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp, self.path)

    def _read(self, key: str) -> Optional[str]:
        value = self._load().get(key)
        return value if isinstance(value, str) else None

    def _write(self, key: str, raw: str) -> None:
        data = self._load()
        data[key] = raw
        self._save(data)

    def _remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)
