"""
competency-engine - requirements catalog.

File: src/competency_engine/catalog/catalog.py

Purpose
- Load the (form type, level, specialty) keyed requirements catalog and resolve
  it into the sections and criteria a form is graded against.

What should be included in this file
- Typed catalog entries parsed from the bundled YAML document or a custom file.
- Resolution rules: generic entry for levels 1-2, case-normalized match with
  first-entry fallback for levels >= 3, operating-list sentinel routing.
- Cached loader for the bundled catalog.

Functional requirements
- Sections with zero criteria never reach consumers.
- A level without entries is a lookup miss (``None``), never an exception.

Non-functional requirements
- Read-only after load; resolution is deterministic and memoized.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Final, cast

import structlog
import yaml

from competency_engine.constants import (
    CATALOG_SCHEMA_VERSION,
    CRITERION_SECTIONS,
    DEFAULT_SECTION_TITLES,
    GENERIC_LEVELS,
    GENERIC_SPECIALTY,
    OPERATING_LIST_SEPARATOR,
    OPERATING_LIST_SPECIALTY,
)
from competency_engine.domain.models import (
    Criterion,
    FormType,
    JSONValue,
    RequirementKey,
    SectionRequirements,
    SpecialtyRequirements,
)

_TOP_LEVEL_FIELDS: Final[frozenset[str]] = frozenset({"schema_version", "entries", "shared"})
_ENTRY_REQUIRED: Final[frozenset[str]] = frozenset({"form_type", "specialty", "sections"})
_ENTRY_OPTIONAL: Final[frozenset[str]] = frozenset({"level", "learning_outcomes"})
_SECTION_REQUIRED: Final[frozenset[str]] = frozenset({"letter", "criteria"})
_SECTION_OPTIONAL: Final[frozenset[str]] = frozenset({"title", "has_blurb", "always_show_comment"})
_WHITESPACE_RE: Final[re.Pattern[str]] = re.compile(r"\s+")


class CatalogLoadError(ValueError):
    """Raised when a catalog document cannot be read or fails validation."""


@dataclass(frozen=True, slots=True)
class SectionSpec:
    """Catalog section as authored; may hold zero criteria."""

    letter: str
    title: str
    criteria: tuple[str, ...]
    has_blurb: bool = False
    always_show_comment: bool = False

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"letter": self.letter}
        if self.title != DEFAULT_SECTION_TITLES.get(self.letter, ""):
            payload["title"] = self.title
        if self.has_blurb:
            payload["has_blurb"] = True
        if self.always_show_comment:
            payload["always_show_comment"] = True
        payload["criteria"] = list(self.criteria)
        return payload


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """One authored catalog entry. ``level`` is ``None`` for shared entries."""

    form_type: FormType
    level: int | None
    specialty: str
    learning_outcomes: tuple[str, ...]
    sections: tuple[SectionSpec, ...]

    @property
    def is_shared(self) -> bool:
        return self.level is None

    def materialize(self, level: int, specialty: str) -> SpecialtyRequirements:
        """Build keyed requirements, dropping sections without criteria."""
        sections: list[SectionRequirements] = []
        for spec in self.sections:
            if not spec.criteria:
                continue
            criteria = tuple(
                Criterion(
                    key=RequirementKey(self.form_type, level, specialty, spec.letter, index),
                    label=label,
                    has_blurb=spec.has_blurb,
                    always_show_comment=spec.always_show_comment,
                )
                for index, label in enumerate(spec.criteria)
            )
            sections.append(
                SectionRequirements(
                    letter=spec.letter,
                    title=spec.title,
                    criteria=criteria,
                    has_blurb=spec.has_blurb,
                    always_show_comment=spec.always_show_comment,
                )
            )
        return SpecialtyRequirements(
            form_type=self.form_type,
            level=level,
            specialty=specialty,
            learning_outcomes=self.learning_outcomes,
            sections=tuple(sections),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"form_type": self.form_type.value}
        if self.level is not None:
            payload["level"] = self.level
        payload["specialty"] = self.specialty
        payload["learning_outcomes"] = list(self.learning_outcomes)
        payload["sections"] = [section.to_dict() for section in self.sections]
        return payload


def is_operating_list(specialty: str) -> bool:
    """Return whether ``specialty`` is one of the operating-list sentinels."""
    text = specialty.strip()
    return text == OPERATING_LIST_SPECIALTY or text.startswith(
        OPERATING_LIST_SPECIALTY + OPERATING_LIST_SEPARATOR
    )


def operating_list_subspecialty(specialty: str) -> str | None:
    text = specialty.strip()
    prefix = OPERATING_LIST_SPECIALTY + OPERATING_LIST_SEPARATOR
    if not text.startswith(prefix):
        return None
    remainder = text[len(prefix) :].strip()
    return remainder or None


def normalize_catalog_name(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value.strip()).casefold()


class RequirementsCatalog:
    """Read-only lookup over catalog entries."""

    def __init__(
        self,
        entries: Sequence[CatalogEntry],
        shared: Sequence[CatalogEntry] = (),
        *,
        source: str = "<memory>",
        logger: Any | None = None,
    ) -> None:
        self._entries = tuple(entries)
        self._shared = {entry.form_type: entry for entry in shared}
        self._source = source
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._resolved: dict[tuple[FormType, int, str], SpecialtyRequirements | None] = {}

        seen: set[tuple[FormType, int | None, str]] = set()
        for entry in self._entries:
            if entry.is_shared:
                raise CatalogLoadError(f"{source}: level entry for {entry.form_type} has no level")
            identity = (entry.form_type, entry.level, normalize_catalog_name(entry.specialty))
            if identity in seen:
                raise CatalogLoadError(
                    f"{source}: duplicate entry for {entry.form_type} level {entry.level} "
                    f"specialty {entry.specialty!r}"
                )
            seen.add(identity)
        if len(self._shared) != len(tuple(shared)):
            raise CatalogLoadError(f"{source}: duplicate shared entry form types")

    @property
    def source(self) -> str:
        return self._source

    def entries(self) -> tuple[CatalogEntry, ...]:
        return self._entries

    def shared_entries(self) -> tuple[CatalogEntry, ...]:
        return tuple(self._shared.values())

    def levels(self, form_type: FormType = FormType.EPA) -> tuple[int, ...]:
        found = {entry.level for entry in self._entries if entry.form_type is form_type}
        return tuple(sorted(level for level in found if level is not None))

    def specialties(self, level: int, form_type: FormType = FormType.EPA) -> tuple[str, ...]:
        """Catalog specialty keys available at ``level``, in catalog order."""
        return tuple(
            entry.specialty
            for entry in self._entries
            if entry.form_type is form_type and entry.level == level
        )

    def default_specialty(self, level: int, form_type: FormType = FormType.EPA) -> str | None:
        if form_type in self._shared:
            return self._shared[form_type].specialty
        candidates = self.specialties(level, form_type)
        if not candidates:
            return None
        if form_type is FormType.EPA and level in GENERIC_LEVELS and GENERIC_SPECIALTY in candidates:
            return GENERIC_SPECIALTY
        return candidates[0]

    def is_valid_specialty(
        self, level: int, specialty: str, form_type: FormType = FormType.EPA
    ) -> bool:
        """Whether ``specialty`` is a catalog key (or sentinel) for ``level``."""
        text = specialty.strip() if isinstance(specialty, str) else ""
        if not text:
            return False
        if form_type is FormType.EPA and is_operating_list(text):
            return FormType.EPA_OPERATING_LIST in self._shared
        if form_type in self._shared:
            return True
        wanted = normalize_catalog_name(text)
        return any(
            normalize_catalog_name(candidate) == wanted
            for candidate in self.specialties(level, form_type)
        )

    def resolve(
        self,
        level: int,
        specialty: str,
        form_type: FormType = FormType.EPA,
    ) -> SpecialtyRequirements | None:
        """Resolve requirements for a form; ``None`` is a lookup miss."""
        if isinstance(level, bool) or not isinstance(level, int) or level < 1:
            self._logger.debug("catalog_lookup_miss", level=level, reason="invalid_level")
            return None
        requested = specialty.strip() if isinstance(specialty, str) else ""
        form_type = FormType(form_type)

        if form_type is FormType.EPA and is_operating_list(requested):
            form_type = FormType.EPA_OPERATING_LIST
        if form_type is FormType.EPA_OPERATING_LIST and not is_operating_list(requested):
            requested = (
                f"{OPERATING_LIST_SPECIALTY}{OPERATING_LIST_SEPARATOR}{requested}"
                if requested
                else OPERATING_LIST_SPECIALTY
            )

        cache_key = (form_type, level, requested)
        if cache_key in self._resolved:
            return self._resolved[cache_key]

        resolved = self._resolve_uncached(level, requested, form_type)
        if resolved is None:
            self._logger.debug(
                "catalog_lookup_miss",
                form_type=form_type.value,
                level=level,
                specialty=requested,
            )
        self._resolved[cache_key] = resolved
        return resolved

    def _resolve_uncached(
        self, level: int, requested: str, form_type: FormType
    ) -> SpecialtyRequirements | None:
        shared = self._shared.get(form_type)
        if shared is not None:
            return shared.materialize(level, requested or shared.specialty)

        candidates = [
            entry
            for entry in self._entries
            if entry.form_type is form_type and entry.level == level
        ]
        if not candidates:
            return None

        entry: CatalogEntry
        if form_type is FormType.EPA and level in GENERIC_LEVELS:
            entry = next(
                (item for item in candidates if item.specialty == GENERIC_SPECIALTY),
                candidates[0],
            )
        else:
            wanted = normalize_catalog_name(requested)
            entry = next(
                (item for item in candidates if normalize_catalog_name(item.specialty) == wanted),
                candidates[0],
            )
        return entry.materialize(level, entry.specialty)

    def to_dict(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "schema_version": CATALOG_SCHEMA_VERSION,
            "entries": [entry.to_dict() for entry in self._entries],
        }
        if self._shared:
            payload["shared"] = [entry.to_dict() for entry in self._shared.values()]
        return payload

    @classmethod
    def from_mapping(
        cls,
        data: object,
        *,
        source: str = "<memory>",
        logger: Any | None = None,
    ) -> RequirementsCatalog:
        root = _as_mapping(data, source)
        # Keys prefixed with "x-" hold YAML anchors only.
        fields = {key: value for key, value in root.items() if not key.startswith("x-")}
        unknown = sorted(set(fields) - _TOP_LEVEL_FIELDS)
        if unknown:
            raise CatalogLoadError(f"{source}: unexpected fields: {unknown}")

        version = fields.get("schema_version")
        if version != CATALOG_SCHEMA_VERSION:
            raise CatalogLoadError(
                f"{source}.schema_version: expected {CATALOG_SCHEMA_VERSION}, got {version!r}"
            )

        entries = [
            _parse_entry(item, f"{source}.entries[{index}]", shared=False)
            for index, item in enumerate(_as_list(fields.get("entries", []), f"{source}.entries"))
        ]
        shared = [
            _parse_entry(item, f"{source}.shared[{index}]", shared=True)
            for index, item in enumerate(_as_list(fields.get("shared", []), f"{source}.shared"))
        ]
        return cls(entries, shared, source=source, logger=logger)

    @classmethod
    def from_file(cls, path: Path, *, logger: Any | None = None) -> RequirementsCatalog:
        try:
            with path.open("r", encoding="utf-8") as handle:
                loaded = cast("object", yaml.safe_load(handle))
        except OSError as exc:
            raise CatalogLoadError(f"{path}: unable to read catalog ({exc})") from exc
        except yaml.YAMLError as exc:
            raise CatalogLoadError(f"{path}: invalid YAML ({exc})") from exc
        return cls.from_mapping(loaded, source=path.name, logger=logger)


def requirements_to_dict(requirements: SpecialtyRequirements) -> dict[str, JSONValue]:
    return {
        "form_type": requirements.form_type.value,
        "level": requirements.level,
        "specialty": requirements.specialty,
        "learning_outcomes": list(requirements.learning_outcomes),
        "sections": [
            {
                "letter": section.letter,
                "title": section.title,
                "has_blurb": section.has_blurb,
                "always_show_comment": section.always_show_comment,
                "criteria": [
                    {"key": item.key.format(), "label": item.label} for item in section.criteria
                ],
            }
            for section in requirements.sections
        ],
    }


def bundled_catalog_path() -> Path:
    return Path(__file__).resolve().with_name("requirements.yaml")


@lru_cache(maxsize=8)
def load_catalog(path: str | Path | None = None) -> RequirementsCatalog:
    """Load the requirements catalog from disk with deterministic caching."""

    resolved = bundled_catalog_path() if path is None else Path(path).expanduser().resolve()
    return RequirementsCatalog.from_file(resolved)


# ------------------------
# Parsing helpers
# ------------------------


def _parse_entry(value: object, location: str, *, shared: bool) -> CatalogEntry:
    parsed = _as_mapping(value, location)
    keys = set(parsed)
    missing = sorted(_ENTRY_REQUIRED - keys)
    if missing:
        raise CatalogLoadError(f"{location}: missing required fields: {missing}")
    unknown = sorted(keys - _ENTRY_REQUIRED - _ENTRY_OPTIONAL)
    if unknown:
        raise CatalogLoadError(f"{location}: unexpected fields: {unknown}")

    try:
        form_type = FormType(_as_text(parsed["form_type"], f"{location}.form_type"))
    except ValueError as exc:
        raise CatalogLoadError(f"{location}.form_type: {exc}") from exc

    level: int | None = None
    if shared:
        if "level" in parsed:
            raise CatalogLoadError(f"{location}.level: shared entries apply to every level")
    else:
        raw_level = parsed.get("level")
        if isinstance(raw_level, bool) or not isinstance(raw_level, int) or raw_level < 1:
            raise CatalogLoadError(f"{location}.level: expected positive integer, got {raw_level!r}")
        level = raw_level

    sections = tuple(
        _parse_section(item, f"{location}.sections[{index}]")
        for index, item in enumerate(_as_list(parsed["sections"], f"{location}.sections"))
    )
    letters = [section.letter for section in sections]
    if len(set(letters)) != len(letters):
        raise CatalogLoadError(f"{location}.sections: duplicate section letters {letters}")

    outcomes = tuple(
        _as_text(item, f"{location}.learning_outcomes[{index}]")
        for index, item in enumerate(
            _as_list(parsed.get("learning_outcomes", []), f"{location}.learning_outcomes")
        )
    )
    return CatalogEntry(
        form_type=form_type,
        level=level,
        specialty=_as_text(parsed["specialty"], f"{location}.specialty"),
        learning_outcomes=outcomes,
        sections=sections,
    )


def _parse_section(value: object, location: str) -> SectionSpec:
    parsed = _as_mapping(value, location)
    keys = set(parsed)
    missing = sorted(_SECTION_REQUIRED - keys)
    if missing:
        raise CatalogLoadError(f"{location}: missing required fields: {missing}")
    unknown = sorted(keys - _SECTION_REQUIRED - _SECTION_OPTIONAL)
    if unknown:
        raise CatalogLoadError(f"{location}: unexpected fields: {unknown}")

    letter = _as_text(parsed["letter"], f"{location}.letter")
    if letter not in CRITERION_SECTIONS:
        raise CatalogLoadError(
            f"{location}.letter: expected one of {list(CRITERION_SECTIONS)}, got {letter!r}"
        )
    title = parsed.get("title", DEFAULT_SECTION_TITLES.get(letter, f"Section {letter}"))
    criteria_raw = parsed["criteria"]
    criteria = tuple(
        _as_text(item, f"{location}.criteria[{index}]")
        for index, item in enumerate(
            [] if criteria_raw is None else _as_list(criteria_raw, f"{location}.criteria")
        )
    )
    return SectionSpec(
        letter=letter,
        title=_as_text(title, f"{location}.title"),
        criteria=criteria,
        has_blurb=_as_flag(parsed.get("has_blurb", False), f"{location}.has_blurb"),
        always_show_comment=_as_flag(
            parsed.get("always_show_comment", False), f"{location}.always_show_comment"
        ),
    )


def _as_mapping(value: object, location: str) -> dict[str, object]:
    if not isinstance(value, Mapping):
        raise CatalogLoadError(f"{location}: expected mapping, got {type(value).__name__}")
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise CatalogLoadError(f"{location}: keys must be strings")
        out[key] = item
    return out


def _as_list(value: object, location: str) -> list[object]:
    if not isinstance(value, list):
        raise CatalogLoadError(f"{location}: expected sequence, got {type(value).__name__}")
    return list(value)


def _as_text(value: object, location: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise CatalogLoadError(f"{location}: expected non-empty string")
    return value.strip()


def _as_flag(value: object, location: str) -> bool:
    if not isinstance(value, bool):
        raise CatalogLoadError(f"{location}: expected boolean, got {type(value).__name__}")
    return value


__all__ = [
    "CatalogEntry",
    "CatalogLoadError",
    "RequirementsCatalog",
    "SectionSpec",
    "bundled_catalog_path",
    "is_operating_list",
    "load_catalog",
    "normalize_catalog_name",
    "operating_list_subspecialty",
    "requirements_to_dict",
]
