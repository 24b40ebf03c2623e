from __future__ import annotations

from pathlib import Path

import pytest

from competency_engine.utils.fs import atomic_write, read_text_if_exists

pytestmark = pytest.mark.unit


def test_atomic_write_text_and_bytes(tmp_path: Path) -> None:
    target = tmp_path / "store.json"

    atomic_write(target, '{"a": 1}')
    assert target.read_text(encoding="utf-8") == '{"a": 1}'

    atomic_write(target, b"\x00\x01")
    assert target.read_bytes() == b"\x00\x01"


def test_atomic_write_leaves_no_temp_files(tmp_path: Path) -> None:
    target = tmp_path / "catalog.yaml"

    atomic_write(target, "levels: []\n")
    atomic_write(target, "levels: [1]\n")

    assert sorted(path.name for path in tmp_path.iterdir()) == ["catalog.yaml"]


def test_atomic_write_creates_parents_on_request(tmp_path: Path) -> None:
    target = tmp_path / "a" / "b" / "store.json"

    with pytest.raises(FileNotFoundError):
        atomic_write(target, "{}")

    atomic_write(target, "{}", create_parents=True)
    assert target.read_text(encoding="utf-8") == "{}"


def test_failed_write_cleans_up_and_keeps_previous_content(tmp_path: Path) -> None:
    target = tmp_path / "store.json"
    target.write_text("previous", encoding="utf-8")

    with pytest.raises(TypeError):
        atomic_write(target, 42)  # type: ignore[arg-type]

    assert target.read_text(encoding="utf-8") == "previous"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["store.json"]


def test_read_text_if_exists(tmp_path: Path) -> None:
    target = tmp_path / "notes.txt"

    assert read_text_if_exists(target) is None
    target.write_text("café", encoding="utf-8")
    assert read_text_if_exists(str(target)) == "café"
