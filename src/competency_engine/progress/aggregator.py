"""
competency-engine - progress aggregation

File: src/competency_engine/progress/aggregator.py

Purpose
- Derive the level x column completion matrix from evidence summaries.

What should be included in this file
- Column matching: the cross-domain GSAT column, generic EPA evidence for
  levels 1-2, specialty-matched EPA evidence for levels 3-4.
- One alias table for specialty spellings that differ between the catalog and
  the progress columns.
- Attestation overlay (catch-up and practice-log artifacts).

Functional requirements
- Cells are derived, never stored.
- Status precedence: SignedOff > Submitted > Draft > NotStarted.
- Attestation artifacts win over every other status; removing the artifact
  removes the overlay.

Non-functional requirements
- Pure function of the evidence list; no I/O.
"""

from __future__ import annotations

import re
import unicodedata
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final

import structlog

from competency_engine.constants import (
    CROSS_DOMAIN_COLUMN,
    GENERIC_LEVELS,
    LEVELS,
    PROGRESS_COLUMNS,
)
from competency_engine.domain.models import (
    EvidenceSummary,
    EvidenceType,
    JSONValue,
    ProgressCell,
    ProgressStatus,
)

# Column -> alternative spellings seen in evidence. Multi-word aliases match
# when the evidence specialty contains all of their significant words.
SPECIALTY_ALIASES: Final[dict[str, tuple[str, ...]]] = {
    "Cornea & Ocular Surface": ("Cornea & Ocular Surface", "Cornea Surface"),
    "Neuro-ophthalmology": ("Neuro Ophthalmology", "Neuro-ophthalmic"),
    "Paediatric Ophthalmology": ("Pediatric Ophthalmology",),
    "Vitreoretinal Surgery": ("Vitreo-retinal Surgery",),
}

_HYPHENS: Final[str] = "‐‑‒–—―−﹣－"
_HYPHEN_TABLE: Final[dict[int, str]] = {ord(char): "-" for char in _HYPHENS}
_WORD_RE: Final[re.Pattern[str]] = re.compile(r"[a-z0-9]+")
_STOP_WORDS: Final[frozenset[str]] = frozenset({"and", "the", "of", "for", "with", "in"})


def normalize_specialty(value: str | None) -> str:
    """Lower-case, trimmed, single-spaced, with unicode hyphens folded to ``-``."""
    if not value:
        return ""
    text = unicodedata.normalize("NFKC", value).translate(_HYPHEN_TABLE)
    return " ".join(text.casefold().split())


def significant_words(value: str) -> frozenset[str]:
    return frozenset(
        word
        for word in _WORD_RE.findall(normalize_specialty(value))
        if len(word) > 2 and word not in _STOP_WORDS
    )


@dataclass(frozen=True, slots=True)
class ProgressMatrix:
    """Cells for every (column, level) pair, in column-major display order."""

    levels: tuple[int, ...]
    columns: tuple[str, ...]
    cells: tuple[ProgressCell, ...]

    def cell(self, column: str, level: int) -> ProgressCell:
        for item in self.cells:
            if item.column == column and item.level == level:
                return item
        raise KeyError(f"no progress cell for ({column!r}, {level})")

    def row(self, level: int) -> tuple[ProgressCell, ...]:
        return tuple(self.cell(column, level) for column in self.columns)

    def counts(self) -> dict[ProgressStatus, int]:
        totals = {status: 0 for status in ProgressStatus}
        for item in self.cells:
            totals[item.status] += 1
        return totals

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "levels": list(self.levels),
            "columns": list(self.columns),
            "cells": [item.to_dict() for item in self.cells],
        }


class ProgressAggregator:
    def __init__(
        self,
        *,
        aliases: Mapping[str, Sequence[str]] | None = None,
        logger: Any | None = None,
    ) -> None:
        table = SPECIALTY_ALIASES if aliases is None else aliases
        self._aliases: dict[str, tuple[str, ...]] = {
            normalize_specialty(column): tuple(names) for column, names in table.items()
        }
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def matches_column(self, specialty: str | None, column: str) -> bool:
        """True when an evidence specialty belongs to a progress column."""
        candidate = normalize_specialty(specialty)
        if not candidate:
            return False
        target = normalize_specialty(column)
        if candidate == target:
            return True
        words = significant_words(candidate)
        for alias in self._aliases.get(target, ()):
            if candidate == normalize_specialty(alias):
                return True
            alias_words = significant_words(alias)
            if len(alias_words) > 1 and alias_words <= words:
                return True
        return False

    def compute(
        self,
        evidence: Iterable[EvidenceSummary],
        *,
        levels: Sequence[int] = LEVELS,
        columns: Sequence[str] = PROGRESS_COLUMNS,
    ) -> ProgressMatrix:
        items = tuple(item for item in evidence if item.level is not None)
        cells = tuple(
            self._cell(items, column, level) for level in levels for column in columns
        )
        self._logger.debug(
            "progress_computed",
            evidence_count=len(items),
            attested=sum(1 for item in cells if item.attested),
        )
        return ProgressMatrix(levels=tuple(levels), columns=tuple(columns), cells=cells)

    def _cell(self, evidence: tuple[EvidenceSummary, ...], column: str, level: int) -> ProgressCell:
        attestations = [
            item
            for item in evidence
            if item.evidence_type.is_attestation
            and item.level == level
            and self.matches_column(item.specialty, column)
        ]
        matches = [item for item in evidence if self._contributes(item, column, level)]
        sources = tuple(dict.fromkeys(item.id for item in (*matches, *attestations)))
        if attestations:
            return ProgressCell(column, level, ProgressStatus.SIGNED_OFF, sources, attested=True)

        status = ProgressStatus.NOT_STARTED
        for item in matches:
            candidate = ProgressStatus.from_lifecycle(item.status)
            if candidate.rank > status.rank:
                status = candidate
        return ProgressCell(column, level, status, sources)

    def _contributes(self, item: EvidenceSummary, column: str, level: int) -> bool:
        if item.level != level:
            return False
        if column == CROSS_DOMAIN_COLUMN:
            return item.evidence_type is EvidenceType.GSAT
        if item.evidence_type is not EvidenceType.EPA:
            return False
        if level in GENERIC_LEVELS:
            return True
        return self.matches_column(item.specialty, column)


def compute_progress(
    evidence: Iterable[EvidenceSummary],
    *,
    levels: Sequence[int] = LEVELS,
    columns: Sequence[str] = PROGRESS_COLUMNS,
) -> ProgressMatrix:
    return ProgressAggregator().compute(evidence, levels=levels, columns=columns)


__all__ = [
    "SPECIALTY_ALIASES",
    "ProgressAggregator",
    "ProgressMatrix",
    "compute_progress",
    "normalize_specialty",
    "significant_words",
]
