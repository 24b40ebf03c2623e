"""
competency-engine - form record aggregate

File: src/competency_engine/forms/record.py

Purpose
- The assessable unit (EPA, GSAT, operating list, OSATS/DOPS/CbD) holding its
  grades, evidence links, narrative, entrustment, identities, and status.

What should be included in this file
- Role-gated mutators delegating to the grading store and link registry.
- Level/specialty changes that keep the specialty a valid catalog key.
- Completion and submission-readiness checks.
- Canonical dict serialization for the key/value store.

Functional requirements
- Every mutator returns a ``MutationResult``; the mutability matrix decides.
- SignedOff records reject all writes.

Non-functional requirements
- No global "current form": callers pass the record explicitly.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Final

from competency_engine.catalog.catalog import RequirementsCatalog, is_operating_list
from competency_engine.constants import FORM_RECORD_SCHEMA_VERSION, GENERIC_SPECIALTY
from competency_engine.domain import ids
from competency_engine.domain.models import (
    ActorRole,
    AssessorIdentity,
    Countersignature,
    EvidenceSummary,
    EvidenceType,
    FormType,
    FormTypeProfile,
    Grade,
    JSONValue,
    LifecycleStatus,
    RequirementKey,
    SpecialtyRequirements,
    form_type_profile,
)
from competency_engine.forms.grading import GradingStore
from competency_engine.forms.linking import EvidenceLinkRegistry
from competency_engine.forms.permissions import (
    Capability,
    MutationReason,
    MutationResult,
    Permissions,
    permissions_for,
)

_REQUIRED_FIELDS: Final[frozenset[str]] = frozenset(
    {"schema_version", "id", "form_type", "level", "specialty", "status"}
)
_OPTIONAL_FIELDS: Final[frozenset[str]] = frozenset(
    {
        "title",
        "narrative",
        "entrustment",
        "assessor",
        "countersignature",
        "grades",
        "links",
        "created_at",
        "updated_at",
    }
)


def resolve_form_identity(
    catalog: RequirementsCatalog,
    form_type: FormType,
    level: int,
    specialty: str,
) -> tuple[FormType, str, SpecialtyRequirements | None]:
    """Constrain ``specialty`` to a catalog key for ``level`` and resolve requirements."""
    text = specialty.strip() if isinstance(specialty, str) else ""
    if form_type is FormType.EPA and is_operating_list(text):
        form_type = FormType.EPA_OPERATING_LIST
    if not catalog.is_valid_specialty(level, text, form_type):
        text = catalog.default_specialty(level, form_type) or text or GENERIC_SPECIALTY
    requirements = catalog.resolve(level, text, form_type)
    if requirements is not None:
        return requirements.form_type, requirements.specialty, requirements
    return form_type, text, None


@dataclass(slots=True)
class FormRecord:
    id: str
    form_type: FormType
    level: int
    specialty: str
    requirements: SpecialtyRequirements | None
    grading: GradingStore
    links: EvidenceLinkRegistry = field(default_factory=EvidenceLinkRegistry)
    title: str = ""
    narrative: str = ""
    entrustment: str | None = None
    assessor: AssessorIdentity | None = None
    countersignature: Countersignature | None = None
    status: LifecycleStatus = LifecycleStatus.DRAFT
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not self.title:
            self.title = default_title(self.form_type, self.level, self.specialty)

    @classmethod
    def new(
        cls,
        catalog: RequirementsCatalog,
        form_type: FormType,
        level: int,
        specialty: str,
        *,
        form_id: str | None = None,
        now: datetime | None = None,
    ) -> FormRecord:
        resolved_type, resolved_specialty, requirements = resolve_form_identity(
            catalog, FormType(form_type), level, specialty
        )
        timestamp = now if now is not None else datetime.now(UTC)
        return cls(
            id=form_id if form_id is not None else ids.generate_form_id(),
            form_type=resolved_type,
            level=level,
            specialty=resolved_specialty,
            requirements=requirements,
            grading=GradingStore(requirements, form_type_profile(resolved_type).scale),
            created_at=timestamp,
            updated_at=timestamp,
        )

    @property
    def profile(self) -> FormTypeProfile:
        return form_type_profile(self.form_type)

    @property
    def narrative_key(self) -> RequirementKey:
        return RequirementKey.narrative(self.form_type, self.level, self.specialty)

    def permissions(self, role: ActorRole) -> Permissions:
        return permissions_for(self.status, role)

    def owns_key(self, key: RequirementKey) -> bool:
        """True when ``key`` names this form's type, level and specialty.

        The criterion itself need not be in the catalog; stored links and grades
        are keyed by any requirement key of the form.
        """
        return (
            key.form_type is self.form_type
            and key.level == self.level
            and key.specialty == self.specialty
        )

    def touch(self, now: datetime | None = None) -> None:
        self.updated_at = now if now is not None else datetime.now(UTC)

    # ------------------------
    # Gated mutators
    # ------------------------

    def change_level(
        self, level: int, catalog: RequirementsCatalog, role: ActorRole
    ) -> MutationResult:
        """Move to ``level``; the specialty resets when it is not a key at that level."""
        return self._change_identity(level, self.specialty, catalog, role)

    def change_specialty(
        self, specialty: str, catalog: RequirementsCatalog, role: ActorRole
    ) -> MutationResult:
        return self._change_identity(self.level, specialty, catalog, role)

    def set_grade(self, key: RequirementKey, grade: Grade | None, role: ActorRole) -> MutationResult:
        permissions = self.permissions(role)
        gate = self._key_gate(key, Capability.GRADE, permissions)
        if not gate.applied:
            return gate
        return self._touched(self.grading.set_grade(key, grade, permissions=permissions))

    def set_comment(self, key: RequirementKey, text: str, role: ActorRole) -> MutationResult:
        permissions = self.permissions(role)
        gate = self._key_gate(key, Capability.COMMENT, permissions)
        if not gate.applied:
            return gate
        return self._touched(self.grading.set_comment(key, text, permissions=permissions))

    def mark_all_yes(
        self, section: str | Iterable[RequirementKey], role: ActorRole
    ) -> MutationResult:
        """Reviewer shortcut: fully-meets grade for a section letter or explicit keys."""
        permissions = self.permissions(role)
        gate = permissions.check(Capability.GRADE)
        if not gate.applied:
            return gate
        keys: tuple[RequirementKey, ...]
        if isinstance(section, str):
            found = None if self.requirements is None else self.requirements.section(section)
            if found is None:
                return MutationResult.rejected(MutationReason.UNKNOWN_SECTION)
            keys = found.keys
        else:
            keys = tuple(section)
            if not all(self.owns_key(key) for key in keys):
                return MutationResult.rejected(MutationReason.KEY_NOT_FOR_FORM)
        return self._touched(self.grading.mark_all_yes(keys, permissions=permissions))

    def link(self, key: RequirementKey, evidence_id: str, role: ActorRole) -> MutationResult:
        permissions = self.permissions(role)
        gate = self._key_gate(key, Capability.LINK, permissions)
        if not gate.applied:
            return gate
        return self._touched(self.links.link(key, evidence_id, permissions=permissions))

    def unlink(self, key: RequirementKey, evidence_id: str, role: ActorRole) -> MutationResult:
        return self._touched(self.links.unlink(key, evidence_id, permissions=self.permissions(role)))

    def list_linked(self, key: RequirementKey) -> tuple[str, ...]:
        return self.links.list_linked(key)

    def set_narrative(self, text: str, role: ActorRole) -> MutationResult:
        if not isinstance(text, str):
            raise ValueError(f"narrative must be a string, got {type(text).__name__}")
        gate = self.permissions(role).check(Capability.NARRATIVE)
        if gate.applied:
            self.narrative = text
        return self._touched(gate)

    def set_entrustment(self, value: str | None, role: ActorRole) -> MutationResult:
        options = self.profile.entrustment_options
        if value is not None and value not in options:
            raise ValueError(
                f"entrustment {value!r} is not valid for {self.form_type.value}; "
                f"expected one of: {list(options)}"
            )
        gate = self.permissions(role).check(Capability.ENTRUSTMENT)
        if gate.applied:
            self.entrustment = value
        return self._touched(gate)

    def set_assessor(self, assessor: AssessorIdentity | None, role: ActorRole) -> MutationResult:
        gate = self.permissions(role).check(Capability.ASSESSOR)
        if gate.applied:
            self.assessor = assessor
        return self._touched(gate)

    def set_countersignature(
        self, countersignature: Countersignature | None, role: ActorRole
    ) -> MutationResult:
        gate = self.permissions(role).check(Capability.COUNTERSIGN)
        if gate.applied:
            self.countersignature = countersignature
        return self._touched(gate)

    # ------------------------
    # Completion
    # ------------------------

    def is_complete(self, key: RequirementKey) -> bool:
        return self.grading.is_complete(key, has_evidence=self.links.has_links(key))

    def section_complete(self, letter: str) -> bool:
        section = None if self.requirements is None else self.requirements.section(letter)
        return section is not None and all(self.is_complete(key) for key in section.keys)

    def completeness(self) -> int:
        """Percentage of present sections whose criteria are all complete."""
        if self.requirements is None or not self.requirements.sections:
            return 0
        sections = self.requirements.sections
        done = sum(1 for section in sections if self.section_complete(section.letter))
        return round(done * 100 / len(sections))

    def submission_issues(self, assessor: AssessorIdentity | None) -> tuple[str, ...]:
        """Guard failures that block Draft -> Submitted; empty when ready."""
        problems: list[str] = []
        profile = self.profile
        if profile.entrustment_required:
            if not self.entrustment:
                problems.append("entrustment_missing")
            elif self.entrustment not in profile.entrustment_options:
                problems.append("entrustment_invalid")
        if profile.narrative_required and not self.narrative.strip():
            problems.append("narrative_missing")
        if assessor is None:
            problems.append("assessor_missing")
        else:
            problems.extend(assessor.issues())
        if profile.requires_all_graded and self.requirements is not None:
            if any(self.grading.grade(key) is None for key in self.requirements.keys()):
                problems.append("criteria_unrated")
        return tuple(problems)

    # ------------------------
    # Evidence projection and serialization
    # ------------------------

    def to_evidence_summary(self) -> EvidenceSummary:
        return EvidenceSummary(
            id=self.id,
            title=self.title,
            evidence_type=EvidenceType(self.form_type.value),
            status=self.status,
            date=self.created_at.date().isoformat(),
            specialty=self.specialty,
            level=self.level,
            form_id=self.id,
        )

    @staticmethod
    def summary_from_snapshot(snapshot: Mapping[str, JSONValue]) -> EvidenceSummary:
        """Evidence summary of a serialized record, as produced by ``to_dict``."""
        level = snapshot.get("level")
        return EvidenceSummary(
            id=str(snapshot["id"]),
            title=str(snapshot["title"]),
            evidence_type=EvidenceType(str(snapshot["form_type"])),
            status=LifecycleStatus(str(snapshot["status"])),
            date=str(snapshot["created_at"])[:10],
            specialty=str(snapshot["specialty"]),
            level=level if isinstance(level, int) else None,
            form_id=str(snapshot["id"]),
        )

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "schema_version": FORM_RECORD_SCHEMA_VERSION,
            "id": self.id,
            "form_type": self.form_type.value,
            "level": self.level,
            "specialty": self.specialty,
            "status": self.status.value,
            "title": self.title,
            "narrative": self.narrative,
            "entrustment": self.entrustment,
            "assessor": None if self.assessor is None else self.assessor.to_dict(),
            "countersignature": (
                None if self.countersignature is None else self.countersignature.to_dict()
            ),
            "grades": self.grading.to_dict(),
            "links": self.links.to_dict(),
            "created_at": _iso8601z(self.created_at),
            "updated_at": _iso8601z(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object], catalog: RequirementsCatalog) -> FormRecord:
        if not isinstance(data, Mapping):
            raise ValueError(f"FormRecord: expected object, got {type(data).__name__}")
        keys = set(data)
        missing = sorted(_REQUIRED_FIELDS - keys)
        if missing:
            raise ValueError(f"FormRecord: missing required fields: {missing}")
        unknown = sorted(keys - _REQUIRED_FIELDS - _OPTIONAL_FIELDS)
        if unknown:
            raise ValueError(f"FormRecord: unexpected fields: {unknown}")
        if data["schema_version"] != FORM_RECORD_SCHEMA_VERSION:
            raise ValueError(
                f"FormRecord.schema_version: expected {FORM_RECORD_SCHEMA_VERSION}, "
                f"got {data['schema_version']!r}"
            )

        form_type = FormType(_text(data["form_type"], "FormRecord.form_type"))
        level = data["level"]
        if isinstance(level, bool) or not isinstance(level, int) or level < 1:
            raise ValueError(f"FormRecord.level: expected positive integer, got {level!r}")
        specialty = _text(data["specialty"], "FormRecord.specialty")
        requirements = catalog.resolve(level, specialty, form_type)

        grades = data.get("grades") or {}
        links = data.get("links") or {}
        if not isinstance(grades, Mapping) or not isinstance(links, Mapping):
            raise ValueError("FormRecord: grades and links must be objects")

        assessor = data.get("assessor")
        countersignature = data.get("countersignature")
        now = datetime.now(UTC)
        return cls(
            id=_text(data["id"], "FormRecord.id"),
            form_type=form_type,
            level=level,
            specialty=specialty,
            requirements=requirements,
            grading=GradingStore(
                requirements,
                form_type_profile(form_type).scale,
                GradingStore.parse_entries(grades, "FormRecord.grades"),
            ),
            links=EvidenceLinkRegistry.from_dict(links, "FormRecord.links"),
            title=str(data.get("title") or ""),
            narrative=str(data.get("narrative") or ""),
            entrustment=_optional_text(data.get("entrustment"), "FormRecord.entrustment"),
            assessor=(
                None
                if assessor is None
                else AssessorIdentity.from_dict(_mapping(assessor, "FormRecord.assessor"))
            ),
            countersignature=(
                None
                if countersignature is None
                else Countersignature.from_dict(
                    _mapping(countersignature, "FormRecord.countersignature")
                )
            ),
            status=LifecycleStatus(_text(data["status"], "FormRecord.status")),
            created_at=_parse_datetime(data.get("created_at"), now, "FormRecord.created_at"),
            updated_at=_parse_datetime(data.get("updated_at"), now, "FormRecord.updated_at"),
        )

    # ------------------------
    # Internals
    # ------------------------

    def _change_identity(
        self,
        level: int,
        specialty: str,
        catalog: RequirementsCatalog,
        role: ActorRole,
    ) -> MutationResult:
        if isinstance(level, bool) or not isinstance(level, int) or level < 1:
            raise ValueError(f"level must be a positive integer, got {level!r}")
        gate = self.permissions(role).check(Capability.IDENTITY)
        if not gate.applied:
            return gate
        previous_default = default_title(self.form_type, self.level, self.specialty)
        form_type, resolved_specialty, requirements = resolve_form_identity(
            catalog, self.form_type, level, specialty
        )
        self.form_type = form_type
        self.level = level
        self.specialty = resolved_specialty
        self.requirements = requirements
        self.grading.rebind(requirements)
        if self.title == previous_default:
            self.title = default_title(form_type, level, resolved_specialty)
        return self._touched(gate)

    def _key_gate(
        self, key: RequirementKey, capability: Capability, permissions: Permissions
    ) -> MutationResult:
        gate = permissions.check(capability)
        if gate.applied and not self.owns_key(key):
            return MutationResult.rejected(MutationReason.KEY_NOT_FOR_FORM)
        return gate

    def _touched(self, result: MutationResult) -> MutationResult:
        if result.applied:
            self.touch()
        return result


def default_title(form_type: FormType, level: int, specialty: str) -> str:
    return f"{form_type.value} Level {level} - {specialty}"


def _iso8601z(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _parse_datetime(value: object, default: datetime, path: str) -> datetime:
    if value is None:
        return default
    if not isinstance(value, str):
        raise ValueError(f"{path}: expected ISO-8601 string")
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise ValueError(f"{path}: invalid ISO-8601 datetime {value!r}") from exc
    if parsed.tzinfo is None:
        raise ValueError(f"{path}: datetime must be timezone-aware")
    return parsed.astimezone(UTC)


def _text(value: object, path: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{path}: expected non-empty string")
    return value


def _optional_text(value: object, path: str) -> str | None:
    return None if value is None else _text(value, path)


def _mapping(value: object, path: str) -> Mapping[str, object]:
    if not isinstance(value, Mapping):
        raise ValueError(f"{path}: expected object, got {type(value).__name__}")
    return value


__all__ = ["FormRecord", "default_title", "resolve_form_identity"]
