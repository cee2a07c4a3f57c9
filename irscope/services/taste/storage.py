"""Key-value storage primitives for taste documents.

Primitives never raise.  Every call returns a :class:`StorageResult` and the
caller decides how to degrade (``TasteStore`` treats a failed read as "no
data" and a failed write as a dropped update).

Backends
--------
- :class:`JsonFileBackend` - one UTF-8 file per key under a directory.
- :class:`MemoryBackend`   - dict-backed; can simulate read/write failures.
"""
from __future__ import annotations

import logging
import pathlib
import re
from dataclasses import dataclass
from typing import Generic, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSAFE_KEY_CHARS = re.compile(r"[^A-Za-z0-9._-]")


@dataclass(frozen=True)
class StorageError:
    """A single failed storage operation."""

    key: str
    op: str
    message: str

    def __str__(self) -> str:
        return f"{self.op} {self.key}: {self.message}"


@dataclass(frozen=True)
class StorageResult(Generic[T]):
    """Outcome of a storage primitive."""

    ok: bool
    value: Optional[T] = None
    error: Optional[StorageError] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "StorageResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, key: str, op: str, message: str) -> "StorageResult[T]":
        return cls(ok=False, error=StorageError(key=key, op=op, message=message))


class KeyValueBackend(Protocol):
    """Minimal string key-value store."""

    def get(self, key: str) -> StorageResult[str]: ...

    def set(self, key: str, value: str) -> StorageResult[None]: ...

    def delete(self, key: str) -> StorageResult[None]: ...


class MemoryBackend:
    """In-process backend.

    ``fail_reads`` / ``fail_writes`` make every read or write (set and delete)
    return a failure, for exercising the degrade path.
    """

    def __init__(self, initial: Optional[dict[str, str]] = None) -> None:
        self._data: dict[str, str] = dict(initial or {})
        self.fail_reads = False
        self.fail_writes = False

    def get(self, key: str) -> StorageResult[str]:
        if self.fail_reads:
            return StorageResult.failure(key, "get", "read disabled")
        return StorageResult.success(self._data.get(key))

    def set(self, key: str, value: str) -> StorageResult[None]:
        if self.fail_writes:
            return StorageResult.failure(key, "set", "quota exceeded")
        self._data[key] = value
        return StorageResult.success()

    def delete(self, key: str) -> StorageResult[None]:
        if self.fail_writes:
            return StorageResult.failure(key, "delete", "write disabled")
        self._data.pop(key, None)
        return StorageResult.success()

    def keys(self) -> list[str]:
        return sorted(self._data)

    def clear(self) -> None:
        """Clear all keys (for testing)."""
        self._data.clear()


class JsonFileBackend:
    """Stores each key as ``<root>/<key>.json``.

    The directory is created lazily on first write.  Keys are sanitized to a
    safe filename; distinct keys that sanitize identically share a file.
    """

    def __init__(self, root: pathlib.Path) -> None:
        self.root = pathlib.Path(root)

    def path_for(self, key: str) -> pathlib.Path:
        return self.root / f"{_UNSAFE_KEY_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> StorageResult[str]:
        path = self.path_for(key)
        if not path.exists():
            return StorageResult.success(None)
        try:
            return StorageResult.success(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            return StorageResult.failure(key, "get", str(exc))

    def set(self, key: str, value: str) -> StorageResult[None]:
        path = self.path_for(key)
        tmp = path.with_suffix(".json.tmp")
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            tmp.write_text(value, encoding="utf-8")
            tmp.replace(path)
        except OSError as exc:
            return StorageResult.failure(key, "set", str(exc))
        logger.debug("Wrote %s (%d bytes)", path, len(value))
        return StorageResult.success()

    def delete(self, key: str) -> StorageResult[None]:
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            return StorageResult.failure(key, "delete", str(exc))
        return StorageResult.success()
