"""Per-form criterion grades and comments."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Final

from competency_engine.domain.models import (
    FULL_GRADE,
    SCALE_GRADES,
    Grade,
    GradeScale,
    JSONValue,
    RequirementKey,
    SpecialtyRequirements,
    grade_requires_comment,
)
from competency_engine.forms.permissions import (
    Capability,
    MutationReason,
    MutationResult,
    Permissions,
)

# Evidence-scale criteria need a substantive comment when nothing is linked.
EVIDENCE_COMMENT_MIN_CHARS: Final[int] = 6


@dataclass(slots=True)
class CriterionEntry:
    grade: Grade | None = None
    comment: str = ""

    @property
    def is_empty(self) -> bool:
        return self.grade is None and not self.comment

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "grade": None if self.grade is None else self.grade.value,
            "comment": self.comment,
        }


class GradingStore:
    """Map of requirement key to grade and comment, bound to resolved requirements.

    Keys are not checked against the bound requirements; the owning form
    decides which keys belong to it. Entries survive a rebind, so a level or
    specialty change keeps earlier work.
    """

    def __init__(
        self,
        requirements: SpecialtyRequirements | None,
        scale: GradeScale,
        entries: Mapping[RequirementKey, CriterionEntry] | None = None,
    ) -> None:
        self._requirements = requirements
        self._scale = GradeScale(scale)
        self._entries: dict[RequirementKey, CriterionEntry] = dict(entries or {})

    @property
    def scale(self) -> GradeScale:
        return self._scale

    @property
    def requirements(self) -> SpecialtyRequirements | None:
        return self._requirements

    def rebind(self, requirements: SpecialtyRequirements | None) -> None:
        self._requirements = requirements

    def grade(self, key: RequirementKey) -> Grade | None:
        entry = self._entries.get(key)
        return None if entry is None else entry.grade

    def comment(self, key: RequirementKey) -> str:
        entry = self._entries.get(key)
        return "" if entry is None else entry.comment

    def set_grade(
        self, key: RequirementKey, grade: Grade | None, *, permissions: Permissions
    ) -> MutationResult:
        """Set or clear a grade. A grade from another scale raises ``ValueError``."""
        gate = permissions.check(Capability.GRADE)
        if not gate.applied:
            return gate
        if grade is not None:
            self._check_scale(Grade(grade))
        self._entry(key).grade = None if grade is None else Grade(grade)
        self._prune(key)
        return gate

    def set_comment(
        self, key: RequirementKey, text: str, *, permissions: Permissions
    ) -> MutationResult:
        if not isinstance(text, str):
            raise ValueError(f"comment must be a string, got {type(text).__name__}")
        gate = permissions.check(Capability.COMMENT)
        if not gate.applied:
            return gate
        self._entry(key).comment = text
        self._prune(key)
        return gate

    def mark_all_yes(
        self, section_keys: Iterable[RequirementKey], *, permissions: Permissions
    ) -> MutationResult:
        """Grade every key with the scale's fully-meets grade; all or nothing."""
        if not permissions.allows(Capability.GRADE):
            return permissions.check(Capability.GRADE)
        full = FULL_GRADE[self._scale]
        if full is None:
            return MutationResult.rejected(MutationReason.NO_FULL_GRADE)
        for key in tuple(section_keys):
            self._entry(key).grade = full
        return MutationResult.ok()

    def is_complete(self, key: RequirementKey, *, has_evidence: bool = False) -> bool:
        """Completion rule for one criterion.

        Graded scales: a grade is set and either a comment is present or neither
        the grade nor the criterion demands one. Evidence scale: a substantive
        comment or at least one linked evidence item.
        """
        entry = self._entries.get(key)
        comment = "" if entry is None else entry.comment.strip()
        if self._scale is GradeScale.EVIDENCE:
            return has_evidence or len(comment) >= EVIDENCE_COMMENT_MIN_CHARS
        if entry is None or entry.grade is None:
            return False
        if comment:
            return True
        criterion = None if self._requirements is None else self._requirements.criterion(key)
        always_comment = criterion is not None and criterion.always_show_comment
        return not grade_requires_comment(entry.grade) and not always_comment

    def entries(self) -> dict[RequirementKey, CriterionEntry]:
        return {key: CriterionEntry(entry.grade, entry.comment) for key, entry in self._entries.items()}

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            key.format(): entry.to_dict()
            for key, entry in sorted(self._entries.items(), key=lambda item: item[0].format())
        }

    @staticmethod
    def parse_entries(data: Mapping[str, object], path: str) -> dict[RequirementKey, CriterionEntry]:
        parsed: dict[RequirementKey, CriterionEntry] = {}
        for raw_key, raw_entry in data.items():
            key = RequirementKey.parse(raw_key)
            if not isinstance(raw_entry, Mapping):
                raise ValueError(f"{path}.{raw_key}: expected object")
            raw_grade = raw_entry.get("grade")
            comment = raw_entry.get("comment", "")
            if not isinstance(comment, str):
                raise ValueError(f"{path}.{raw_key}.comment: expected string")
            try:
                grade = None if raw_grade is None else Grade(str(raw_grade))
            except ValueError as exc:
                raise ValueError(f"{path}.{raw_key}.grade: {exc}") from exc
            parsed[key] = CriterionEntry(grade=grade, comment=comment)
        return parsed

    def _check_scale(self, grade: Grade) -> None:
        allowed = SCALE_GRADES[self._scale]
        if grade not in allowed:
            options = ", ".join(item.value for item in allowed) or "none"
            raise ValueError(
                f"grade {grade.value!r} is not on the {self._scale.value} scale (allowed: {options})"
            )

    def _entry(self, key: RequirementKey) -> CriterionEntry:
        return self._entries.setdefault(key, CriterionEntry())

    def _prune(self, key: RequirementKey) -> None:
        entry = self._entries.get(key)
        if entry is not None and entry.is_empty:
            del self._entries[key]


__all__ = ["EVIDENCE_COMMENT_MIN_CHARS", "CriterionEntry", "GradingStore"]
