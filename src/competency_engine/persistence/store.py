"""
competency-engine - key/value persistence

File: src/competency_engine/persistence/store.py

Purpose
- Local key -> JSON value storage backing forms, evidence, and the outbox.

What should be included in this file
- ``KeyValueStore`` protocol shared by every backend.
- ``InMemoryStore`` for tests and ephemeral sessions.
- ``JsonFileStore``: one JSON document, rewritten atomically on every write.

Functional requirements
- Values round-trip through canonical JSON so callers never share mutable state
  with the store.
- Async variants run blocking I/O off the event loop.

Non-functional requirements
- Single local writer; no versioning or transactional guarantees beyond an
  atomic file replace.
"""

from __future__ import annotations

import asyncio
import json
import threading
from pathlib import Path
from typing import Any, Final, Protocol, runtime_checkable

import structlog

from competency_engine.utils.fs import atomic_write, read_text_if_exists

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

STORE_DOCUMENT_VERSION: Final[int] = 1


class StoreError(ValueError):
    """Raised when a store cannot read, decode, or write its backing data."""


@runtime_checkable
class KeyValueStore(Protocol):
    def get(self, key: str) -> JSONValue | None: ...

    def set(self, key: str, value: JSONValue) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self, prefix: str = "") -> tuple[str, ...]: ...

    async def get_async(self, key: str) -> JSONValue | None: ...

    async def set_async(self, key: str, value: JSONValue) -> None: ...


class _BaseStore:
    def __init__(self, *, logger: Any | None = None) -> None:
        self._lock = threading.Lock()
        self._data: dict[str, str] = {}
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def get(self, key: str) -> JSONValue | None:
        _validate_key(key)
        with self._lock:
            raw = self._data.get(key)
        return None if raw is None else json.loads(raw)

    def set(self, key: str, value: JSONValue) -> None:
        _validate_key(key)
        encoded = _encode(value, key)
        with self._lock:
            previous = self._data.get(key)
            self._data[key] = encoded
            try:
                self._flush_locked()
            except StoreError:
                self._restore_locked(key, previous)
                raise

    def delete(self, key: str) -> None:
        _validate_key(key)
        with self._lock:
            previous = self._data.pop(key, None)
            if previous is None:
                return
            try:
                self._flush_locked()
            except StoreError:
                self._restore_locked(key, previous)
                raise

    def keys(self, prefix: str = "") -> tuple[str, ...]:
        with self._lock:
            return tuple(sorted(key for key in self._data if key.startswith(prefix)))

    async def get_async(self, key: str) -> JSONValue | None:
        return await asyncio.to_thread(self.get, key)

    async def set_async(self, key: str, value: JSONValue) -> None:
        await asyncio.to_thread(self.set, key, value)

    def _flush_locked(self) -> None:
        """Persist ``self._data``; caller holds the lock."""

    def _restore_locked(self, key: str, previous: str | None) -> None:
        if previous is None:
            self._data.pop(key, None)
        else:
            self._data[key] = previous


class InMemoryStore(_BaseStore):
    """Process-local store; contents vanish with the instance."""


class JsonFileStore(_BaseStore):
    """Single JSON document on disk, replaced atomically on each write."""

    def __init__(self, path: str | Path, *, logger: Any | None = None) -> None:
        super().__init__(logger=logger)
        self._path = Path(path).expanduser()
        self._data = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        try:
            text = read_text_if_exists(self._path)
        except OSError as exc:
            raise StoreError(f"{self._path}: unable to read store ({exc})") from exc
        if text is None or not text.strip():
            return {}
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StoreError(f"{self._path}: invalid JSON ({exc})") from exc

        if not isinstance(document, dict) or not isinstance(document.get("data"), dict):
            raise StoreError(f"{self._path}: expected object with a 'data' mapping")
        version = document.get("schema_version")
        if version != STORE_DOCUMENT_VERSION:
            raise StoreError(
                f"{self._path}: unsupported schema_version {version!r} "
                f"(expected {STORE_DOCUMENT_VERSION})"
            )
        return {str(key): _encode(value, str(key)) for key, value in document["data"].items()}

    def _flush_locked(self) -> None:
        document = {
            "schema_version": STORE_DOCUMENT_VERSION,
            "data": {key: json.loads(raw) for key, raw in self._data.items()},
        }
        text = json.dumps(document, sort_keys=True, indent=2, ensure_ascii=False) + "\n"
        try:
            atomic_write(self._path, text, create_parents=True)
        except OSError as exc:
            self._logger.error("store_write_failed", path=str(self._path), error=str(exc))
            raise StoreError(f"{self._path}: unable to write store ({exc})") from exc


def _validate_key(key: str) -> None:
    if not isinstance(key, str) or not key:
        raise StoreError(f"store key must be a non-empty string, got {key!r}")


def _encode(value: object, key: str) -> str:
    try:
        return json.dumps(
            value, sort_keys=True, separators=(",", ":"), ensure_ascii=False, allow_nan=False
        )
    except (TypeError, ValueError) as exc:
        raise StoreError(f"{key}: value is not JSON-serializable ({exc})") from exc


__all__ = [
    "STORE_DOCUMENT_VERSION",
    "InMemoryStore",
    "JSONValue",
    "JsonFileStore",
    "KeyValueStore",
    "StoreError",
]
