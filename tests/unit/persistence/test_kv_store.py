"""
competency-engine - unit tests for key/value stores

File: tests/unit/persistence/test_kv_store.py

Purpose
- Validate the in-memory and single-document JSON stores.

What this test file should cover
- Values round-trip and are never shared with callers.
- The JSON document is versioned and survives reopen.
- Corrupt or unwritable documents raise ``StoreError``.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from competency_engine.persistence import (
    STORE_DOCUMENT_VERSION,
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    StoreError,
)

pytestmark = pytest.mark.unit


@pytest.fixture(params=["memory", "json"])
def any_store(request: pytest.FixtureRequest, tmp_path: Path) -> KeyValueStore:
    if request.param == "memory":
        return InMemoryStore()
    return JsonFileStore(tmp_path / "store.json")


def test_stores_satisfy_the_protocol(any_store: KeyValueStore) -> None:
    assert isinstance(any_store, KeyValueStore)


def test_set_get_delete(any_store: KeyValueStore) -> None:
    any_store.set("form:a", {"title": "EPA", "level": 3})

    assert any_store.get("form:a") == {"title": "EPA", "level": 3}
    any_store.delete("form:a")
    assert any_store.get("form:a") is None
    any_store.delete("form:a")


def test_values_are_copies(any_store: KeyValueStore) -> None:
    value = {"links": ["ev1"]}
    any_store.set("k", value)
    value["links"].append("ev2")

    loaded = any_store.get("k")
    loaded["links"].append("ev3")

    assert any_store.get("k") == {"links": ["ev1"]}


def test_keys_are_sorted_and_prefix_filtered(any_store: KeyValueStore) -> None:
    for key in ("form:b", "evidence", "form:a"):
        any_store.set(key, True)

    assert any_store.keys("form:") == ("form:a", "form:b")
    assert any_store.keys() == ("evidence", "form:a", "form:b")


@pytest.mark.parametrize("key", ["", None])
def test_bad_keys(any_store: KeyValueStore, key: object) -> None:
    with pytest.raises(StoreError, match="non-empty string"):
        any_store.set(key, 1)  # type: ignore[arg-type]


def test_unserializable_values(any_store: KeyValueStore) -> None:
    with pytest.raises(StoreError, match="not JSON-serializable"):
        any_store.set("k", {"when": object()})
    with pytest.raises(StoreError):
        any_store.set("k", float("nan"))
    assert any_store.get("k") is None


async def test_async_variants(any_store: KeyValueStore) -> None:
    await any_store.set_async("k", [1, 2])

    assert await any_store.get_async("k") == [1, 2]


def test_json_document_layout_and_reopen(tmp_path: Path) -> None:
    path = tmp_path / "nested" / "store.json"
    JsonFileStore(path).set("form:a", {"status": "Draft"})

    document = json.loads(path.read_text(encoding="utf-8"))
    assert document == {
        "schema_version": STORE_DOCUMENT_VERSION,
        "data": {"form:a": {"status": "Draft"}},
    }
    assert JsonFileStore(path).get("form:a") == {"status": "Draft"}


def test_missing_or_empty_document_is_empty(tmp_path: Path) -> None:
    empty = tmp_path / "empty.json"
    empty.write_text("  \n", encoding="utf-8")

    assert JsonFileStore(tmp_path / "absent.json").keys() == ()
    assert JsonFileStore(empty).keys() == ()


@pytest.mark.parametrize(
    ("content", "message"),
    [
        ("{not json", "invalid JSON"),
        ('["a"]', "'data' mapping"),
        ('{"schema_version": 2, "data": {}}', "unsupported schema_version"),
        ('{"data": {}}', "unsupported schema_version"),
    ],
)
def test_corrupt_documents(tmp_path: Path, content: str, message: str) -> None:
    path = tmp_path / "store.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(StoreError, match=message):
        JsonFileStore(path)


def test_failed_write_keeps_previous_value(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    store = JsonFileStore(blocker / "store.json")
    blocker.write_text("a file, not a directory", encoding="utf-8")

    with pytest.raises(StoreError, match="unable to write store"):
        store.set("k", 1)

    assert store.get("k") is None
