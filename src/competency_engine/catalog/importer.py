"""Curriculum spreadsheet import and YAML export for the requirements catalog."""

from __future__ import annotations

import csv
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

import yaml

from competency_engine.catalog.catalog import (
    CatalogEntry,
    CatalogLoadError,
    RequirementsCatalog,
    SectionSpec,
)
from competency_engine.constants import (
    CRITERION_SECTIONS,
    DEFAULT_SECTION_TITLES,
    GENERIC_LEVELS,
    GENERIC_SPECIALTY,
)
from competency_engine.domain.models import FormType
from competency_engine.utils.fs import atomic_write

CSV_COLUMNS: Final[tuple[str, ...]] = (
    "Level",
    "Specialty",
    "Section",
    "Type",
    "Content",
    "HasBlurb",
    "ShowCommentsAlways",
    "Order",
)
ROW_LEARNING_OUTCOME: Final[str] = "LearningOutcome"
ROW_CRITERION: Final[str] = "Criterion"


@dataclass(slots=True)
class _SectionDraft:
    items: list[tuple[int, str]] = field(default_factory=list)
    has_blurb: bool = False
    always_show_comment: bool = False


@dataclass(slots=True)
class _EntryDraft:
    outcomes: list[tuple[int, str]] = field(default_factory=list)
    sections: dict[str, _SectionDraft] = field(default_factory=dict)


def import_catalog_rows(
    rows: Iterable[Mapping[str, str | None]],
    *,
    form_type: FormType = FormType.EPA,
    source: str = "<csv>",
) -> RequirementsCatalog:
    """Group spreadsheet rows into catalog entries.

    Rows are ordered by their ``Order`` column within each list; a section flag
    is set when any row of that section sets it.
    """
    grouped: dict[tuple[int, str], _EntryDraft] = {}
    for line, row in enumerate(rows, start=2):
        location = f"{source}:{line}"
        level = _parse_int(row.get("Level"), f"{location}.Level")
        specialty = (row.get("Specialty") or "").strip()
        if not specialty:
            if level not in GENERIC_LEVELS:
                raise CatalogLoadError(f"{location}.Specialty: required for level {level}")
            specialty = GENERIC_SPECIALTY
        row_type = (row.get("Type") or "").strip()
        content = (row.get("Content") or "").strip()
        if not content:
            raise CatalogLoadError(f"{location}.Content: must not be empty")
        order = _parse_int(row.get("Order"), f"{location}.Order")

        draft = grouped.setdefault((level, specialty), _EntryDraft())
        if row_type == ROW_LEARNING_OUTCOME:
            draft.outcomes.append((order, content))
        elif row_type == ROW_CRITERION:
            letter = (row.get("Section") or "").strip().upper()
            if letter not in CRITERION_SECTIONS:
                raise CatalogLoadError(
                    f"{location}.Section: expected one of {list(CRITERION_SECTIONS)}, got {letter!r}"
                )
            section = draft.sections.setdefault(letter, _SectionDraft())
            section.items.append((order, content))
            section.has_blurb = section.has_blurb or _parse_flag(row.get("HasBlurb"))
            section.always_show_comment = section.always_show_comment or _parse_flag(
                row.get("ShowCommentsAlways")
            )
        else:
            raise CatalogLoadError(
                f"{location}.Type: expected {ROW_LEARNING_OUTCOME!r} or {ROW_CRITERION!r}, "
                f"got {row_type!r}"
            )

    entries: list[CatalogEntry] = []
    for (level, specialty), draft in sorted(grouped.items(), key=lambda item: item[0][0]):
        sections = tuple(
            SectionSpec(
                letter=letter,
                title=DEFAULT_SECTION_TITLES.get(letter, f"Section {letter}"),
                criteria=tuple(text for _, text in sorted(section.items, key=lambda i: i[0])),
                has_blurb=section.has_blurb,
                always_show_comment=section.always_show_comment,
            )
            for letter, section in sorted(draft.sections.items())
        )
        entries.append(
            CatalogEntry(
                form_type=form_type,
                level=level,
                specialty=specialty,
                learning_outcomes=tuple(
                    text for _, text in sorted(draft.outcomes, key=lambda i: i[0])
                ),
                sections=sections,
            )
        )
    return RequirementsCatalog(entries, source=source)


def import_catalog_csv(path: str | Path, *, form_type: FormType = FormType.EPA) -> RequirementsCatalog:
    csv_path = Path(path)
    try:
        with csv_path.open("r", encoding="utf-8-sig", newline="") as handle:
            reader = csv.DictReader(handle)
            header = tuple(name.strip() for name in reader.fieldnames or ())
            missing = [column for column in CSV_COLUMNS if column not in header]
            if missing:
                raise CatalogLoadError(f"{csv_path.name}: missing columns {missing}")
            rows = [
                {key.strip(): value for key, value in row.items() if key is not None}
                for row in reader
            ]
    except OSError as exc:
        raise CatalogLoadError(f"{csv_path}: unable to read spreadsheet ({exc})") from exc
    return import_catalog_rows(rows, form_type=form_type, source=csv_path.name)


def dump_catalog_yaml(catalog: RequirementsCatalog, path: str | Path | None = None) -> str:
    """Render ``catalog`` as YAML, writing it atomically when ``path`` is given."""
    text = yaml.safe_dump(
        catalog.to_dict(),
        sort_keys=False,
        default_flow_style=False,
        allow_unicode=True,
        width=120,
    )
    if path is not None:
        atomic_write(path, text, create_parents=True)
    return text


def _parse_int(value: str | None, location: str) -> int:
    text = (value or "").strip()
    try:
        return int(text)
    except ValueError as exc:
        raise CatalogLoadError(f"{location}: expected integer, got {value!r}") from exc


def _parse_flag(value: str | None) -> bool:
    return (value or "").strip().upper() == "TRUE"


__all__ = [
    "CSV_COLUMNS",
    "dump_catalog_yaml",
    "import_catalog_csv",
    "import_catalog_rows",
]
