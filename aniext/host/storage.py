"""
Extension Storage - Namespaced key-value persistence for extensions.

Every extension gets an ExtensionStorage whose keys are transparently
prefixed with the extension identifier, so two extensions can use the
same key names without ever seeing each other's data. Values must be
JSON-serializable and the namespace is capped by a byte quota.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel

from aniext.core.exceptions import ConfigurationError, StorageQuotaExceeded, ValidationError


logger = logging.getLogger(__name__)

DEFAULT_QUOTA_BYTES = 5 * 1024 * 1024


class StorageUsage(BaseModel):
    """Usage report for one namespace."""

    used: int
    max: int
    percentage: float


class StorageBackend(ABC):
    """Persistence for whole namespaces."""

    @abstractmethod
    def load(self, namespace: str) -> Dict[str, str]:
        """Return the stored key/value pairs for a namespace."""

    @abstractmethod
    def save(self, namespace: str, data: Dict[str, str]) -> None:
        """Replace the stored contents of a namespace."""


class MemoryStore(StorageBackend):
    """Volatile backend used for tests and ephemeral hosts."""

    def __init__(self):
        self._data: Dict[str, Dict[str, str]] = {}
        self._lock = Lock()

    def load(self, namespace: str) -> Dict[str, str]:
        with self._lock:
            return dict(self._data.get(namespace, {}))

    def save(self, namespace: str, data: Dict[str, str]) -> None:
        with self._lock:
            self._data[namespace] = dict(data)


class JsonFileStore(StorageBackend):
    """One JSON file per namespace, written atomically."""

    def __init__(self, directory: Union[str, Path]):
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._lock = Lock()

    def _path(self, namespace: str) -> Path:
        safe = re.sub(r'[^A-Za-z0-9_-]', '_', namespace)
        return self.directory / f"{safe}.json"

    def load(self, namespace: str) -> Dict[str, str]:
        path = self._path(namespace)
        with self._lock:
            if not path.exists():
                return {}
            try:
                with open(path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            except json.JSONDecodeError as e:
                backup_path = path.with_suffix('.json.backup')
                path.replace(backup_path)
                logger.warning(f"Corrupted storage for {namespace} backed up to {backup_path}: {e}")
                return {}
        if not isinstance(data, dict):
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def save(self, namespace: str, data: Dict[str, str]) -> None:
        path = self._path(namespace)
        temp_file = path.with_suffix('.tmp')
        with self._lock:
            try:
                with open(temp_file, 'w', encoding='utf-8') as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                temp_file.replace(path)
            except OSError as e:
                if temp_file.exists():
                    temp_file.unlink()
                raise ConfigurationError(f"Failed to save storage for {namespace}: {e}", str(path))


class ExtensionStorage:
    """The ``storage`` object handed to one extension."""

    def __init__(self, extension_id: str, backend: Optional[StorageBackend] = None, quota_bytes: int = DEFAULT_QUOTA_BYTES):
        """
        Initialize namespaced storage.

        Args:
            extension_id: Owning extension; also the namespace name
            backend: Persistence backend (in-memory when omitted)
            quota_bytes: Maximum serialized size of the namespace
        """
        self.extension_id = extension_id
        self.prefix = f"aniext_{extension_id}_"
        self.quota_bytes = quota_bytes
        self._backend = backend or MemoryStore()
        self._entries = self._backend.load(extension_id)

    def _key(self, key: str) -> str:
        if not isinstance(key, str) or not key:
            raise ValidationError("Storage keys must be non-empty strings", field_name="key", invalid_value=key)
        return self.prefix + key

    @staticmethod
    def _size(entries: Dict[str, str]) -> int:
        return sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in entries.items())

    def get(self, key: str, default: Any = None) -> Any:
        raw = self._entries.get(self._key(key))
        if raw is None:
            return default
        return json.loads(raw)

    def set(self, key: str, value: Any) -> None:
        """
        Store a JSON-serializable value.

        Raises:
            ValidationError: If the value cannot be serialized
            StorageQuotaExceeded: If the write would exceed the quota
        """
        try:
            encoded = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Value for '{key}' is not JSON-serializable: {e}", field_name=key)

        candidate = dict(self._entries)
        candidate[self._key(key)] = encoded
        if self._size(candidate) > self.quota_bytes:
            raise StorageQuotaExceeded(
                "Storage quota exceeded",
                extension_id=self.extension_id,
                target=key,
            )
        self._entries = candidate
        self._backend.save(self.extension_id, self._entries)

    def remove(self, key: str) -> bool:
        removed = self._entries.pop(self._key(key), None) is not None
        if removed:
            self._backend.save(self.extension_id, self._entries)
        return removed

    def clear(self) -> None:
        """Drop every key in this namespace (and only this namespace)."""
        self._entries = {k: v for k, v in self._entries.items() if not k.startswith(self.prefix)}
        self._backend.save(self.extension_id, self._entries)

    def keys(self) -> List[str]:
        return sorted(k[len(self.prefix):] for k in self._entries if k.startswith(self.prefix))

    def usage(self) -> StorageUsage:
        used = self._size(self._entries)
        return StorageUsage(
            used=used,
            max=self.quota_bytes,
            percentage=round(used / self.quota_bytes * 100, 2) if self.quota_bytes else 100.0,
        )


# Export storage components
__all__ = [
    "StorageUsage",
    "StorageBackend",
    "MemoryStore",
    "JsonFileStore",
    "ExtensionStorage",
    "DEFAULT_QUOTA_BYTES",
]
