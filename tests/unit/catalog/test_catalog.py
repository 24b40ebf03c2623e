"""
competency-engine - unit tests for the requirements catalog

File: tests/unit/catalog/test_catalog.py

Purpose
- Validate resolution rules and document validation for the bundled catalog.

What this test file should cover
- Generic entries at levels 1-2, normalized matching with first-entry
  fallback at level 3, and lookup misses for unknown levels.
- Operating-list sentinel routing and shared entries.
- Zero-criteria sections never reach consumers.
- Malformed documents fail with ``CatalogLoadError``.

Functional requirements
- Offline and deterministic.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from competency_engine.catalog import (
    CatalogLoadError,
    RequirementsCatalog,
    is_operating_list,
    load_catalog,
    operating_list_subspecialty,
    requirements_to_dict,
)
from competency_engine.constants import GENERIC_SPECIALTY, GSAT_DOMAINS
from competency_engine.domain.models import FormType, RequirementKey

pytestmark = pytest.mark.unit


def _minimal(**overrides: object) -> dict[str, object]:
    document: dict[str, object] = {
        "schema_version": 1,
        "entries": [
            {
                "form_type": "EPA",
                "level": 3,
                "specialty": "Glaucoma",
                "sections": [{"letter": "B", "criteria": ["CRS Gonioscopy"]}],
            }
        ],
    }
    document.update(overrides)
    return document


@pytest.mark.parametrize("level", [1, 2])
@pytest.mark.parametrize("specialty", ["Glaucoma", "Oculoplastics", "", GENERIC_SPECIALTY])
def test_generic_levels_ignore_the_specialty(
    catalog: RequirementsCatalog, level: int, specialty: str
) -> None:
    resolved = catalog.resolve(level, specialty)

    assert resolved is not None
    assert resolved.specialty == GENERIC_SPECIALTY
    assert resolved.level == level


def test_level_three_matches_case_and_whitespace_insensitively(
    catalog: RequirementsCatalog,
) -> None:
    resolved = catalog.resolve(3, "  oculoplastics ")

    assert resolved is not None
    assert resolved.specialty == "Oculoplastics"
    assert [(s.letter, len(s.criteria)) for s in resolved.sections] == [
        ("B", 1),
        ("C", 2),
        ("D", 2),
        ("E", 4),
        ("F", 5),
    ]


def test_level_three_falls_back_to_the_first_entry(catalog: RequirementsCatalog) -> None:
    resolved = catalog.resolve(3, "Glaucoma")

    assert resolved is not None
    assert resolved.specialty == "Cataract Surgery"


def test_empty_sections_are_dropped(catalog: RequirementsCatalog) -> None:
    resolved = catalog.resolve(3, "Cataract Surgery")

    assert resolved is not None
    assert [section.letter for section in resolved.sections] == ["B", "D", "E", "F"]
    assert resolved.section("C") is None


@pytest.mark.parametrize("level", [0, -1, 4, 9])
def test_levels_without_entries_are_misses(catalog: RequirementsCatalog, level: int) -> None:
    assert catalog.resolve(level, "Glaucoma") is None


def test_resolution_is_memoized(catalog: RequirementsCatalog) -> None:
    assert catalog.resolve(3, "Oculoplastics") is catalog.resolve(3, "Oculoplastics")
    assert load_catalog() is catalog


def test_every_resolved_section_has_criteria(catalog: RequirementsCatalog) -> None:
    for form_type in FormType:
        for level in range(1, 5):
            for specialty in (*catalog.specialties(level, form_type), "Glaucoma"):
                resolved = catalog.resolve(level, specialty, form_type)
                if resolved is None:
                    continue
                assert resolved.sections
                assert all(section.criteria for section in resolved.sections)


def test_mandatory_evidence_section_always_asks_for_comments(
    catalog: RequirementsCatalog,
) -> None:
    for level in catalog.levels(FormType.EPA):
        for specialty in catalog.specialties(level):
            resolved = catalog.resolve(level, specialty)
            assert resolved is not None
            section = resolved.section("F")
            assert section is not None
            assert section.always_show_comment
            assert len(section.criteria) == 5


def test_operating_list_sentinel_routes_to_the_shared_entry(catalog: RequirementsCatalog) -> None:
    resolved = catalog.resolve(2, "Operating List - Glaucoma")

    assert resolved is not None
    assert resolved.form_type is FormType.EPA_OPERATING_LIST
    assert resolved.specialty == "Operating List - Glaucoma"
    assert [section.letter for section in resolved.sections] == ["B"]
    assert len(resolved.sections[0].criteria) == 10
    assert resolved.keys()[0].format() == "EPAOL-L2-Operating List - Glaucoma-B-0"


def test_operating_list_form_type_prefixes_the_subspecialty(
    catalog: RequirementsCatalog,
) -> None:
    resolved = catalog.resolve(2, "Glaucoma", FormType.EPA_OPERATING_LIST)

    assert resolved is not None
    assert resolved.specialty == "Operating List - Glaucoma"


def test_operating_list_helpers() -> None:
    assert is_operating_list("Operating List")
    assert is_operating_list(" Operating List - Uveitis ")
    assert not is_operating_list("Operating Lists")
    assert operating_list_subspecialty("Operating List - Uveitis") == "Uveitis"
    assert operating_list_subspecialty("Operating List") is None


@pytest.mark.parametrize(
    ("form_type", "shape"),
    [
        (FormType.OSATS, [("B", 8), ("C", 2)]),
        (FormType.DOPS, [("B", 9), ("C", 2)]),
        (FormType.CBD, [("B", 9)]),
    ],
)
def test_shared_workplace_assessments(
    catalog: RequirementsCatalog, form_type: FormType, shape: list[tuple[str, int]]
) -> None:
    resolved = catalog.resolve(4, "Glaucoma", form_type)

    assert resolved is not None
    assert resolved.specialty == "Glaucoma"
    assert [(s.letter, len(s.criteria)) for s in resolved.sections] == shape


@pytest.mark.parametrize("level", [1, 2, 3, 4])
def test_gsat_levels(catalog: RequirementsCatalog, level: int) -> None:
    resolved = catalog.resolve(level, "Non-patient Management", FormType.GSAT)

    assert resolved is not None
    assert [section.letter for section in resolved.sections] == ["B", "C", "D", "E", "F", "G"]
    assert tuple(section.title for section in resolved.sections) == GSAT_DOMAINS


def test_query_helpers(catalog: RequirementsCatalog) -> None:
    assert catalog.levels() == (1, 2, 3)
    assert catalog.levels(FormType.GSAT) == (1, 2, 3, 4)
    assert catalog.specialties(3) == (
        "Cataract Surgery",
        "Cornea & Ocular Surface Disease",
        "Oculoplastics",
    )
    assert catalog.default_specialty(1) == GENERIC_SPECIALTY
    assert catalog.default_specialty(3) == "Cataract Surgery"
    assert catalog.default_specialty(4) is None
    assert catalog.default_specialty(2, FormType.OSATS) == GENERIC_SPECIALTY
    assert catalog.is_valid_specialty(3, "cornea & ocular surface disease")
    assert not catalog.is_valid_specialty(3, "Glaucoma")
    assert catalog.is_valid_specialty(3, "Operating List - Glaucoma")
    assert not catalog.is_valid_specialty(1, "  ")


def test_requirements_to_dict_lists_keys(catalog: RequirementsCatalog) -> None:
    data = requirements_to_dict(catalog.resolve(1, GENERIC_SPECIALTY))

    assert data["specialty"] == GENERIC_SPECIALTY
    first = data["sections"][0]["criteria"][0]
    assert first == {"key": "EPA-L1-No attached SIA-B-0", "label": "CRS Consultation skills"}


def test_catalog_round_trips_through_to_dict(catalog: RequirementsCatalog) -> None:
    rebuilt = RequirementsCatalog.from_mapping(catalog.to_dict())

    for level in (1, 2, 3):
        for specialty in catalog.specialties(level):
            assert rebuilt.resolve(level, specialty) == catalog.resolve(level, specialty)


def test_keys_point_back_to_their_criteria(catalog: RequirementsCatalog) -> None:
    resolved = catalog.resolve(3, "Oculoplastics")
    key = RequirementKey(FormType.EPA, 3, "Oculoplastics", "E", 1)

    assert key in resolved
    assert resolved.criterion(key).label == "Tarsorrhaphy"
    assert resolved.criterion(key).always_show_comment


@pytest.mark.parametrize(
    ("document", "message"),
    [
        (_minimal(schema_version=2), "schema_version"),
        (_minimal(extra=True), "unexpected fields"),
        (
            _minimal(
                entries=[
                    {"form_type": "EPA", "level": 3, "specialty": "Glaucoma", "sections": []},
                    {"form_type": "EPA", "level": 3, "specialty": "glaucoma", "sections": []},
                ]
            ),
            "duplicate entry",
        ),
        (
            _minimal(
                entries=[{"form_type": "EPA", "level": 0, "specialty": "Glaucoma", "sections": []}]
            ),
            "expected positive integer",
        ),
        (
            _minimal(
                shared=[{"form_type": "CbD", "level": 1, "specialty": "x", "sections": []}]
            ),
            "shared entries apply to every level",
        ),
        (
            _minimal(
                entries=[
                    {
                        "form_type": "EPA",
                        "level": 3,
                        "specialty": "Glaucoma",
                        "sections": [{"letter": "A", "criteria": ["x"]}],
                    }
                ]
            ),
            "letter",
        ),
        (
            _minimal(
                entries=[{"form_type": "Essay", "level": 3, "specialty": "x", "sections": []}]
            ),
            "form_type",
        ),
        ("not a mapping", "expected mapping"),
    ],
)
def test_invalid_documents_are_rejected(document: object, message: str) -> None:
    with pytest.raises(CatalogLoadError, match=message):
        RequirementsCatalog.from_mapping(document)


def test_anchor_keys_are_ignored() -> None:
    catalog = RequirementsCatalog.from_mapping(_minimal(**{"x-anchors": [1, 2]}))

    assert catalog.specialties(3) == ("Glaucoma",)


def test_custom_catalog_file(tmp_path: Path) -> None:
    path = tmp_path / "catalog.yaml"
    path.write_text(
        "schema_version: 1\n"
        "entries:\n"
        "  - form_type: EPA\n"
        "    level: 3\n"
        "    specialty: Glaucoma\n"
        "    sections:\n"
        "      - letter: B\n"
        "        criteria: [CRS Gonioscopy]\n",
        encoding="utf-8",
    )

    catalog = load_catalog(path)

    assert catalog.source == "catalog.yaml"
    assert catalog.resolve(3, "anything").specialty == "Glaucoma"


def test_invalid_yaml_is_a_load_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("entries: [unclosed\n", encoding="utf-8")

    with pytest.raises(CatalogLoadError, match="invalid YAML"):
        RequirementsCatalog.from_file(path)


def test_missing_file_is_a_load_error(tmp_path: Path) -> None:
    with pytest.raises(CatalogLoadError, match="unable to read catalog"):
        RequirementsCatalog.from_file(tmp_path / "absent.yaml")
