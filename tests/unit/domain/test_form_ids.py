"""Unit tests for id helpers."""

from __future__ import annotations

import pytest

from competency_engine.domain import ids

pytestmark = pytest.mark.unit


def test_ids_do_not_collide() -> None:
    generated = {ids.generate_form_id() for _ in range(10_000)}
    assert len(generated) == 10_000


def test_each_kind_carries_its_prefix() -> None:
    form_id = ids.generate_form_id()
    evidence_id = ids.generate_evidence_id()
    event_id = ids.generate_event_id()

    assert form_id.startswith("frm-")
    assert len(form_id) == len("frm-") + 26
    assert ids.has_prefix(form_id, ids.FORM_ID_PREFIX)
    assert ids.has_prefix(evidence_id, ids.EVIDENCE_ID_PREFIX)
    assert ids.has_prefix(event_id, ids.EVENT_ID_PREFIX)
    assert ids.generate_session_id().startswith("cli-")
    assert not ids.has_prefix(form_id, ids.EVENT_ID_PREFIX)


@pytest.mark.parametrize("value", ["frm-short", "frm-" + "I" * 26, "frm-" + "8" * 26, None, 7])
def test_malformed_ids(value: object) -> None:
    assert not ids.has_prefix(value, ids.FORM_ID_PREFIX)


def test_ids_sort_by_creation_time() -> None:
    first = ids.new_id("x")
    later = [ids.new_id("x") for _ in range(50)]

    # Same-millisecond ids share the time prefix; only the random tail differs.
    assert all(item[2:12] >= first[2:12] for item in later)


@pytest.mark.parametrize("value", ["1234567", " 7654321 "])
def test_registration_numbers(value: str) -> None:
    assert ids.is_registration_number(value)


@pytest.mark.parametrize("value", ["123456", "12345678", "12a4567", "", None])
def test_invalid_registration_numbers(value: object) -> None:
    assert not ids.is_registration_number(value)
