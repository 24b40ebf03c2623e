"""Dataclass domain models with strict validation and canonical serialization."""

from __future__ import annotations

import json
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from enum import Enum, StrEnum
from typing import Final, NoReturn, TypeVar

from competency_engine.constants import (
    EPA_ENTRUSTMENT_OPTIONS,
    NARRATIVE_INDEX,
    NARRATIVE_SECTION,
    OPERATING_LIST_ENTRUSTMENT_LEVELS,
)
from competency_engine.domain import ids as domain_ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]

TModel = TypeVar("TModel", bound="CanonicalModel")
TEnum = TypeVar("TEnum", bound=Enum)

_MAX_TEXT = 8192
_MAX_LABEL = 1024
_MAX_COLLECTION = 512

_EMAIL_RE: Final[re.Pattern[str]] = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_KEY_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<tag>[A-Z]+)-L(?P<level>\d+)-(?P<specialty>.+)-(?P<section>[A-Z])-(?P<index>\d+|NARRATIVE)$"
)


class FormType(StrEnum):
    """Assessable form kinds; values match the evidence type labels."""

    EPA = "EPA"
    EPA_OPERATING_LIST = "EPA Operating List"
    GSAT = "GSAT"
    OSATS = "OSATs"
    DOPS = "DOPs"
    CBD = "CbD"

    @property
    def tag(self) -> str:
        return _FORM_TYPE_TAGS[self]

    @classmethod
    def from_tag(cls, tag: str) -> FormType:
        for form_type, candidate in _FORM_TYPE_TAGS.items():
            if candidate == tag:
                return form_type
        raise ValueError(f"unknown form type tag {tag!r}")


_FORM_TYPE_TAGS: Final[dict[FormType, str]] = {
    FormType.EPA: "EPA",
    FormType.EPA_OPERATING_LIST: "EPAOL",
    FormType.GSAT: "GSAT",
    FormType.OSATS: "OSATS",
    FormType.DOPS: "DOPS",
    FormType.CBD: "CBD",
}


class EvidenceType(StrEnum):
    CBD = "CbD"
    DOPS = "DOPs"
    OSATS = "OSATs"
    REFLECTION = "Reflection"
    CRS = "CRS"
    MAR = "MAR"
    OTHER = "Other"
    EPA = "EPA"
    EPA_OPERATING_LIST = "EPA Operating List"
    GSAT = "GSAT"
    QIP = "Quality Improvement and Audit"
    AWARD = "Prizes/Awards"
    COURSE = "Courses"
    SIGNIFICANT_EVENT = "Significant Event"
    RESEARCH = "Research"
    LEADERSHIP = "Leadership, management and teamwork"
    LOGBOOK = "Eye Logbook"
    ADDITIONAL = "Additional evidence"
    COMPLIMENT = "Compliments"
    MSF = "MSF"
    ARCP_PREP = "ARCP Preparation"
    CURRICULUM_CATCH_UP = "Curriculum Catch Up"
    FOURTEEN_FISH = "FourteenFish"

    @property
    def is_attestation(self) -> bool:
        return self in {EvidenceType.CURRICULUM_CATCH_UP, EvidenceType.FOURTEEN_FISH}


class LifecycleStatus(StrEnum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    SIGNED_OFF = "SignedOff"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK: Final[dict[LifecycleStatus, int]] = {
    LifecycleStatus.DRAFT: 1,
    LifecycleStatus.SUBMITTED: 2,
    LifecycleStatus.SIGNED_OFF: 3,
}


class ActorRole(StrEnum):
    """Acting role; the trainee authors, the supervisor approves."""

    TRAINEE = "Trainee"
    EDUCATIONAL_SUPERVISOR = "EducationalSupervisor"
    ARCP_PANEL_MEMBER = "ARCPPanelMember"


class GradeScale(StrEnum):
    ENTRUSTMENT = "entrustment"
    CONCERN = "concern"
    RATING = "rating"
    EVIDENCE = "evidence"


class Grade(StrEnum):
    YES = "Yes"
    RESERVATION = "Reservation"
    NO = "No"
    NO_EVIDENCE = "NoEvidence"
    MAJOR_CONCERN = "MajorConcern"
    MINOR_CONCERN = "MinorConcern"
    MEETS_EXPECTATIONS = "MeetsExpectations"
    CONCERN = "Concern"
    BORDERLINE = "Borderline"
    COMPETENT = "Competent"
    EXCELLENT = "Excellent"


SCALE_GRADES: Final[dict[GradeScale, tuple[Grade, ...]]] = {
    GradeScale.ENTRUSTMENT: (Grade.YES, Grade.RESERVATION, Grade.NO, Grade.NO_EVIDENCE),
    GradeScale.CONCERN: (Grade.MAJOR_CONCERN, Grade.MINOR_CONCERN, Grade.MEETS_EXPECTATIONS),
    GradeScale.RATING: (Grade.CONCERN, Grade.BORDERLINE, Grade.COMPETENT, Grade.EXCELLENT),
    GradeScale.EVIDENCE: (),
}

# Grades that cannot stand without a written justification.
COMMENT_REQUIRED_GRADES: Final[frozenset[Grade]] = frozenset(
    {
        Grade.RESERVATION,
        Grade.NO,
        Grade.NO_EVIDENCE,
        Grade.MAJOR_CONCERN,
        Grade.MINOR_CONCERN,
        Grade.CONCERN,
    }
)

FULL_GRADE: Final[dict[GradeScale, Grade | None]] = {
    GradeScale.ENTRUSTMENT: Grade.YES,
    GradeScale.CONCERN: Grade.MEETS_EXPECTATIONS,
    GradeScale.RATING: Grade.COMPETENT,
    GradeScale.EVIDENCE: None,
}


@dataclass(frozen=True, slots=True)
class FormTypeProfile:
    """Per-form-type grading and submission rules."""

    form_type: FormType
    scale: GradeScale
    entrustment_options: tuple[str, ...]
    narrative_required: bool
    requires_all_graded: bool

    @property
    def entrustment_required(self) -> bool:
        return bool(self.entrustment_options)


FORM_TYPE_PROFILES: Final[dict[FormType, FormTypeProfile]] = {
    FormType.EPA: FormTypeProfile(
        FormType.EPA, GradeScale.ENTRUSTMENT, EPA_ENTRUSTMENT_OPTIONS, False, False
    ),
    FormType.EPA_OPERATING_LIST: FormTypeProfile(
        FormType.EPA_OPERATING_LIST,
        GradeScale.RATING,
        OPERATING_LIST_ENTRUSTMENT_LEVELS,
        False,
        True,
    ),
    FormType.GSAT: FormTypeProfile(FormType.GSAT, GradeScale.EVIDENCE, (), False, False),
    FormType.OSATS: FormTypeProfile(FormType.OSATS, GradeScale.CONCERN, (), True, False),
    FormType.DOPS: FormTypeProfile(FormType.DOPS, GradeScale.CONCERN, (), True, False),
    FormType.CBD: FormTypeProfile(FormType.CBD, GradeScale.CONCERN, (), True, False),
}


def form_type_profile(form_type: FormType) -> FormTypeProfile:
    return FORM_TYPE_PROFILES[form_type]


def grade_requires_comment(grade: Grade | None) -> bool:
    return grade is not None and grade in COMMENT_REQUIRED_GRADES


class CanonicalModel:
    """Mixin for canonical dict/json serialization."""

    def to_dict(self) -> dict[str, JSONValue]:
        _fail(self.__class__.__name__, "to_dict is not implemented for this model type")

    def to_json(self) -> str:
        return _canonical_json(self.to_dict())

    @classmethod
    def from_json(cls: type[TModel], raw: str) -> TModel:
        if not isinstance(raw, str):
            _fail(cls.__name__, f"expected JSON string, got {type(raw).__name__}")
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as exc:
            _fail(cls.__name__, f"invalid JSON: {exc}")
        if not isinstance(parsed, dict):
            _fail(cls.__name__, "JSON root must be an object")
        return cls.from_dict(parsed)

    @classmethod
    def from_dict(cls: type[TModel], data: Mapping[str, object]) -> TModel:
        _fail(cls.__name__, "from_dict is not implemented for this model type")


@dataclass(frozen=True, slots=True)
class RequirementKey:
    """Structural identity of one assessable unit within a form.

    ``index`` is a zero-based criterion position, or ``"NARRATIVE"`` for the
    free-text block of section A. The string form exists only for persistence.
    """

    form_type: FormType
    level: int
    specialty: str
    section: str
    index: int | str

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "form_type", _as_enum(FormType, self.form_type, "RequirementKey.form_type")
        )
        _as_int(self.level, "RequirementKey.level", minimum=1)
        _as_str(self.specialty, "RequirementKey.specialty", max_len=_MAX_LABEL, strip=False)
        if not isinstance(self.section, str) or len(self.section) != 1 or not self.section.isupper():
            _fail("RequirementKey.section", f"expected single uppercase letter, got {self.section!r}")
        if isinstance(self.index, str):
            if self.index != NARRATIVE_INDEX or self.section != NARRATIVE_SECTION:
                _fail("RequirementKey.index", f"only section A may use {NARRATIVE_INDEX!r}")
        else:
            _as_int(self.index, "RequirementKey.index", minimum=0)

    @classmethod
    def narrative(cls, form_type: FormType, level: int, specialty: str) -> RequirementKey:
        return cls(form_type, level, specialty, NARRATIVE_SECTION, NARRATIVE_INDEX)

    @property
    def is_narrative(self) -> bool:
        return self.index == NARRATIVE_INDEX

    def format(self) -> str:
        return f"{self.form_type.tag}-L{self.level}-{self.specialty}-{self.section}-{self.index}"

    def __str__(self) -> str:
        return self.format()

    @classmethod
    def parse(cls, raw: str) -> RequirementKey:
        if not isinstance(raw, str):
            _fail("RequirementKey", f"expected string, got {type(raw).__name__}")
        match = _KEY_RE.fullmatch(raw)
        if match is None:
            _fail("RequirementKey", f"malformed key {raw!r}")
        try:
            form_type = FormType.from_tag(match.group("tag"))
        except ValueError as exc:
            _fail("RequirementKey.form_type", str(exc))
        raw_index = match.group("index")
        index: int | str = raw_index if raw_index == NARRATIVE_INDEX else int(raw_index)
        return cls(
            form_type,
            int(match.group("level")),
            match.group("specialty"),
            match.group("section"),
            index,
        )


@dataclass(frozen=True, slots=True)
class Criterion:
    key: RequirementKey
    label: str
    has_blurb: bool = False
    always_show_comment: bool = False


@dataclass(frozen=True, slots=True)
class SectionRequirements:
    letter: str
    title: str
    criteria: tuple[Criterion, ...]
    has_blurb: bool = False
    always_show_comment: bool = False

    @property
    def keys(self) -> tuple[RequirementKey, ...]:
        return tuple(item.key for item in self.criteria)


@dataclass(frozen=True, slots=True)
class SpecialtyRequirements:
    """Resolved catalog entry: learning outcomes plus non-empty sections."""

    form_type: FormType
    level: int
    specialty: str
    learning_outcomes: tuple[str, ...]
    sections: tuple[SectionRequirements, ...]
    _index: dict[RequirementKey, Criterion] = field(
        init=False, repr=False, compare=False, hash=False
    )

    def __post_init__(self) -> None:
        for section in self.sections:
            if not section.criteria:
                _fail(
                    "SpecialtyRequirements.sections",
                    f"section {section.letter} has no criteria and must be omitted",
                )
        object.__setattr__(
            self,
            "_index",
            {item.key: item for section in self.sections for item in section.criteria},
        )

    @property
    def narrative_key(self) -> RequirementKey:
        return RequirementKey.narrative(self.form_type, self.level, self.specialty)

    def section(self, letter: str) -> SectionRequirements | None:
        for candidate in self.sections:
            if candidate.letter == letter:
                return candidate
        return None

    def criterion(self, key: RequirementKey) -> Criterion | None:
        return self._index.get(key)

    def criteria(self) -> Iterator[Criterion]:
        for section in self.sections:
            yield from section.criteria

    def keys(self) -> tuple[RequirementKey, ...]:
        return tuple(self._index)

    def __contains__(self, key: object) -> bool:
        return key in self._index


@dataclass(frozen=True, slots=True)
class AssessorIdentity(CanonicalModel):
    """Approver identity captured at submission."""

    name: str
    email: str
    registration: str | None = None

    def issues(self) -> tuple[str, ...]:
        problems: list[str] = []
        if not isinstance(self.name, str) or not self.name.strip():
            problems.append("assessor_name_missing")
        if not isinstance(self.email, str) or not self.email.strip():
            problems.append("assessor_email_missing")
        elif not _EMAIL_RE.fullmatch(self.email.strip()):
            problems.append("assessor_email_invalid")
        if self.registration and not domain_ids.is_registration_number(self.registration):
            problems.append("assessor_registration_invalid")
        return tuple(problems)

    @property
    def is_valid(self) -> bool:
        return not self.issues()

    def to_dict(self) -> dict[str, JSONValue]:
        return {"name": self.name, "email": self.email, "registration": self.registration}

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> AssessorIdentity:
        parsed = _expect_object(
            data, "AssessorIdentity", required={"name", "email"}, optional={"registration"}
        )
        return cls(
            name=_as_str(parsed["name"], "AssessorIdentity.name", min_len=0),
            email=_as_str(parsed["email"], "AssessorIdentity.email", min_len=0),
            registration=_as_optional_str(
                parsed.get("registration"), "AssessorIdentity.registration"
            ),
        )


@dataclass(frozen=True, slots=True)
class Countersignature(CanonicalModel):
    name: str
    registration: str
    signature: str
    signed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def issues(self) -> tuple[str, ...]:
        problems: list[str] = []
        if not isinstance(self.name, str) or not self.name.strip():
            problems.append("countersignature_name_missing")
        if not isinstance(self.registration, str) or not self.registration.strip():
            problems.append("countersignature_registration_missing")
        if not isinstance(self.signature, str) or not self.signature.strip():
            problems.append("countersignature_signature_missing")
        return tuple(problems)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.name,
            "registration": self.registration,
            "signature": self.signature,
            "signed_at": _datetime_to_iso8601z(self.signed_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Countersignature:
        parsed = _expect_object(
            data,
            "Countersignature",
            required={"name", "registration", "signature", "signed_at"},
        )
        return cls(
            name=_as_str(parsed["name"], "Countersignature.name"),
            registration=_as_str(parsed["registration"], "Countersignature.registration"),
            signature=_as_str(parsed["signature"], "Countersignature.signature"),
            signed_at=_as_datetime(parsed["signed_at"], "Countersignature.signed_at"),
        )


@dataclass(slots=True)
class EvidenceSummary(CanonicalModel):
    """Display metadata for one item in the external evidence store."""

    id: str
    title: str
    evidence_type: EvidenceType
    status: LifecycleStatus = LifecycleStatus.DRAFT
    date: str = field(default_factory=lambda: date.today().isoformat())
    specialty: str | None = None
    level: int | None = None
    form_id: str | None = None
    file_name: str | None = None
    file_type: str | None = None

    def __post_init__(self) -> None:
        self.id = _as_str(self.id, "EvidenceSummary.id", max_len=_MAX_LABEL)
        self.title = _as_str(self.title, "EvidenceSummary.title", max_len=_MAX_LABEL)
        self.evidence_type = _as_enum(EvidenceType, self.evidence_type, "EvidenceSummary.type")
        self.status = _as_enum(LifecycleStatus, self.status, "EvidenceSummary.status")
        self.date = _as_iso_date(self.date, "EvidenceSummary.date")
        self.specialty = _as_optional_str(self.specialty, "EvidenceSummary.specialty")
        if self.level is not None:
            self.level = _as_int(self.level, "EvidenceSummary.level", minimum=1)
        self.form_id = _as_optional_str(self.form_id, "EvidenceSummary.form_id")
        self.file_name = _as_optional_str(self.file_name, "EvidenceSummary.file_name")
        self.file_type = _as_optional_str(self.file_type, "EvidenceSummary.file_type")

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "id": self.id,
            "title": self.title,
            "type": self.evidence_type.value,
            "status": self.status.value,
            "date": self.date,
            "specialty": self.specialty,
            "level": self.level,
            "form_id": self.form_id,
            "file_name": self.file_name,
            "file_type": self.file_type,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> EvidenceSummary:
        parsed = _expect_object(
            data,
            "EvidenceSummary",
            required={"id", "title", "type"},
            optional={
                "status",
                "date",
                "specialty",
                "level",
                "form_id",
                "file_name",
                "file_type",
            },
        )
        raw_level = parsed.get("level")
        return cls(
            id=_as_str(parsed["id"], "EvidenceSummary.id"),
            title=_as_str(parsed["title"], "EvidenceSummary.title"),
            evidence_type=_as_enum(EvidenceType, parsed["type"], "EvidenceSummary.type"),
            status=_as_enum(
                LifecycleStatus,
                parsed.get("status", LifecycleStatus.DRAFT.value),
                "EvidenceSummary.status",
            ),
            date=_as_iso_date(parsed.get("date", date.today().isoformat()), "EvidenceSummary.date"),
            specialty=_as_optional_str(parsed.get("specialty"), "EvidenceSummary.specialty"),
            level=None if raw_level is None else _as_int(raw_level, "EvidenceSummary.level"),
            form_id=_as_optional_str(parsed.get("form_id"), "EvidenceSummary.form_id"),
            file_name=_as_optional_str(parsed.get("file_name"), "EvidenceSummary.file_name"),
            file_type=_as_optional_str(parsed.get("file_type"), "EvidenceSummary.file_type"),
        )


class ProgressStatus(StrEnum):
    NOT_STARTED = "NotStarted"
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    SIGNED_OFF = "SignedOff"

    @property
    def rank(self) -> int:
        return _PROGRESS_RANK[self]

    @classmethod
    def from_lifecycle(cls, status: LifecycleStatus) -> ProgressStatus:
        return cls(status.value)


_PROGRESS_RANK: Final[dict[ProgressStatus, int]] = {
    ProgressStatus.NOT_STARTED: 0,
    ProgressStatus.DRAFT: 1,
    ProgressStatus.SUBMITTED: 2,
    ProgressStatus.SIGNED_OFF: 3,
}


@dataclass(frozen=True, slots=True)
class ProgressCell:
    """Derived completion status for one (column, level) cell."""

    column: str
    level: int
    status: ProgressStatus
    sources: tuple[str, ...] = ()
    attested: bool = False

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "column": self.column,
            "level": self.level,
            "status": self.status.value,
            "sources": list(self.sources),
            "attested": self.attested,
        }


# ------------------------
# Validation helpers
# ------------------------


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


def _canonical_json(value: JSONValue) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _expect_object(
    value: object,
    path: str,
    *,
    required: set[str],
    optional: set[str] | None = None,
) -> dict[str, object]:
    if not isinstance(value, Mapping):
        _fail(path, f"expected object, got {type(value).__name__}")

    parsed: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            _fail(path, f"object keys must be strings, got {type(key).__name__}")
        parsed[key] = item

    allowed = required | (optional or set())
    unknown = sorted(key for key in parsed if key not in allowed)
    if unknown:
        _fail(path, f"unexpected fields: {unknown}")

    missing = sorted(key for key in required if key not in parsed)
    if missing:
        _fail(path, f"missing required fields: {missing}")

    return parsed


def _as_str(
    value: object,
    path: str,
    *,
    min_len: int = 1,
    max_len: int = _MAX_TEXT,
    strip: bool = True,
) -> str:
    if not isinstance(value, str):
        _fail(path, f"expected string, got {type(value).__name__}")
    normalized = value.strip() if strip else value
    if len(normalized) < min_len:
        _fail(path, f"must be at least {min_len} character(s)")
    if len(normalized) > max_len:
        _fail(path, f"must be <= {max_len} characters")
    return normalized


def _as_optional_str(value: object, path: str, *, max_len: int = _MAX_TEXT) -> str | None:
    if value is None:
        return None
    return _as_str(value, path, max_len=max_len)


def _as_bool(value: object, path: str) -> bool:
    if isinstance(value, bool):
        return value
    _fail(path, f"expected boolean, got {type(value).__name__}")


def _as_int(value: object, path: str, *, minimum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        _fail(path, f"expected integer, got {type(value).__name__}")
    if minimum is not None and value < minimum:
        _fail(path, f"must be >= {minimum}")
    return value


def _as_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def _datetime_to_iso8601z(value: datetime) -> str:
    normalized = _as_datetime(value, "datetime")
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _as_iso_date(value: object, path: str) -> str:
    text = _as_str(value, path, max_len=32)
    try:
        return date.fromisoformat(text[:10]).isoformat()
    except ValueError as exc:
        _fail(path, f"invalid ISO-8601 date: {value!r} ({exc})")


def _as_enum(enum_type: type[TEnum], value: object, path: str) -> TEnum:
    if isinstance(value, enum_type):
        return value
    if not isinstance(value, str):
        _fail(path, f"expected string enum value, got {type(value).__name__}")
    try:
        return enum_type(value)
    except ValueError:
        allowed = ", ".join(sorted(str(item.value) for item in enum_type))
        _fail(path, f"invalid value {value!r}; expected one of: {allowed}")


def _as_sequence(value: object, path: str) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    _fail(path, f"expected array, got {type(value).__name__}")


def _as_str_tuple(
    value: object,
    path: str,
    *,
    allow_empty: bool,
    unique: bool,
    max_len: int = _MAX_TEXT,
) -> tuple[str, ...]:
    values = _as_sequence(value, path)
    if not allow_empty and not values:
        _fail(path, "must not be empty")
    if len(values) > _MAX_COLLECTION:
        _fail(path, f"too many items (>{_MAX_COLLECTION})")

    parsed = [_as_str(item, f"{path}[{index}]", max_len=max_len) for index, item in enumerate(values)]
    if unique and len(set(parsed)) != len(parsed):
        _fail(path, "contains duplicate values")
    return tuple(parsed)


__all__ = [
    "COMMENT_REQUIRED_GRADES",
    "FORM_TYPE_PROFILES",
    "FULL_GRADE",
    "SCALE_GRADES",
    "ActorRole",
    "AssessorIdentity",
    "CanonicalModel",
    "Countersignature",
    "Criterion",
    "EvidenceSummary",
    "EvidenceType",
    "FormType",
    "FormTypeProfile",
    "Grade",
    "GradeScale",
    "JSONValue",
    "LifecycleStatus",
    "ProgressCell",
    "ProgressStatus",
    "RequirementKey",
    "SectionRequirements",
    "SpecialtyRequirements",
    "form_type_profile",
    "grade_requires_comment",
]
