from __future__ import annotations

from datetime import date

import pytest

from competency_engine.domain.models import EvidenceType, LifecycleStatus
from competency_engine.persistence import EvidenceRepository, InMemoryStore
from competency_engine.progress import compute_progress, migrate_legacy_attestations, parse_cell_key

pytestmark = pytest.mark.unit

PROFILE = {
    "curriculum_catch_up_completions": {"Glaucoma-3": True, "Uveitis-4": False},
    "fourteen_fish_completions": {"Neuro-ophthalmology-2": True, "bogus": True},
}


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("Glaucoma-3", ("Glaucoma", 3)),
        ("Neuro-ophthalmology-2", ("Neuro-ophthalmology", 2)),
        (" Cornea & Ocular Surface-1 ", ("Cornea & Ocular Surface", 1)),
        ("Glaucoma", None),
        ("Glaucoma-", None),
        ("-3", None),
        ("Glaucoma-0", None),
        ("Glaucoma-three", None),
    ],
)
def test_parse_cell_key(raw: str, expected: tuple[str, int] | None) -> None:
    assert parse_cell_key(raw) == expected


def test_only_true_flags_become_attestations() -> None:
    repo = EvidenceRepository(InMemoryStore())

    created = migrate_legacy_attestations(PROFILE, repo, today=date(2026, 2, 1))

    assert [(item.evidence_type, item.specialty, item.level) for item in created] == [
        (EvidenceType.CURRICULUM_CATCH_UP, "Glaucoma", 3),
        (EvidenceType.FOURTEEN_FISH, "Neuro-ophthalmology", 2),
    ]
    first = created[0]
    assert first.title == "Curriculum Catch Up: Glaucoma Level 3"
    assert first.status is LifecycleStatus.SIGNED_OFF
    assert first.date == "2026-02-01"
    assert first.id.startswith("ev-")
    assert repo.all() == list(created)


def test_migration_is_idempotent() -> None:
    repo = EvidenceRepository(InMemoryStore())
    migrate_legacy_attestations(PROFILE, repo)

    assert migrate_legacy_attestations(PROFILE, repo) == ()
    assert len(repo.all()) == 2


def test_truthy_non_boolean_flags_are_ignored() -> None:
    repo = EvidenceRepository(InMemoryStore())
    profile = {"curriculum_catch_up_completions": {"Glaucoma-3": "yes", "Uveitis-1": 1}}

    assert migrate_legacy_attestations(profile, repo) == ()


def test_malformed_field_is_skipped() -> None:
    repo = EvidenceRepository(InMemoryStore())
    profile = {"curriculum_catch_up_completions": ["Glaucoma-3"]}

    assert migrate_legacy_attestations(profile, repo) == ()


def test_migrated_attestations_show_in_progress() -> None:
    repo = EvidenceRepository(InMemoryStore())
    migrate_legacy_attestations(PROFILE, repo)

    matrix = compute_progress(repo.all())

    assert matrix.cell("Glaucoma", 3).attested
    assert matrix.cell("Neuro-ophthalmology", 2).attested
    assert not matrix.cell("Uveitis", 4).attested
