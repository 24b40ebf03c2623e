"""Field mutability by lifecycle status and acting role."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from competency_engine.domain.models import ActorRole, LifecycleStatus


class Capability(StrEnum):
    """Writable field groups on a form."""

    GRADE = "grade"
    COMMENT = "comment"
    NARRATIVE = "narrative"
    ENTRUSTMENT = "entrustment"
    LINK = "link"
    IDENTITY = "identity"
    ASSESSOR = "assessor"
    COUNTERSIGN = "countersign"


class MutationReason(StrEnum):
    FORM_SIGNED_OFF = "form_signed_off"
    ROLE_CANNOT_WRITE = "role_cannot_write"
    KEY_NOT_FOR_FORM = "key_not_for_form"
    UNKNOWN_SECTION = "unknown_section"
    NO_FULL_GRADE = "no_full_grade"
    FORM_NOT_FOUND = "form_not_found"


@dataclass(frozen=True, slots=True)
class MutationResult:
    """Outcome of a gated write. Rejections are values, never exceptions."""

    applied: bool
    reason: MutationReason | None = None

    def __bool__(self) -> bool:
        return self.applied

    @classmethod
    def ok(cls) -> MutationResult:
        return _APPLIED

    @classmethod
    def rejected(cls, reason: MutationReason) -> MutationResult:
        return cls(applied=False, reason=reason)


_APPLIED: Final[MutationResult] = MutationResult(applied=True)


@dataclass(frozen=True, slots=True)
class Permissions:
    status: LifecycleStatus
    role: ActorRole
    writable: frozenset[Capability]

    @property
    def read_only(self) -> bool:
        return not self.writable

    def allows(self, capability: Capability) -> bool:
        return capability in self.writable

    def check(self, capability: Capability) -> MutationResult:
        if capability in self.writable:
            return MutationResult.ok()
        if self.status is LifecycleStatus.SIGNED_OFF:
            return MutationResult.rejected(MutationReason.FORM_SIGNED_OFF)
        return MutationResult.rejected(MutationReason.ROLE_CANNOT_WRITE)


_AUTHOR_DRAFT: Final[frozenset[Capability]] = frozenset(Capability)
_APPROVER_SUBMITTED: Final[frozenset[Capability]] = frozenset(
    {
        Capability.GRADE,
        Capability.COMMENT,
        Capability.ENTRUSTMENT,
        Capability.COUNTERSIGN,
    }
)


def _build_matrix() -> dict[tuple[LifecycleStatus, ActorRole], Permissions]:
    matrix: dict[tuple[LifecycleStatus, ActorRole], Permissions] = {}
    for status in LifecycleStatus:
        for role in ActorRole:
            writable: frozenset[Capability] = frozenset()
            if status is LifecycleStatus.DRAFT and role is ActorRole.TRAINEE:
                writable = _AUTHOR_DRAFT
            elif (
                status is LifecycleStatus.SUBMITTED and role is ActorRole.EDUCATIONAL_SUPERVISOR
            ):
                writable = _APPROVER_SUBMITTED
            matrix[(status, role)] = Permissions(status, role, writable)
    return matrix


MUTABILITY_MATRIX: Final[dict[tuple[LifecycleStatus, ActorRole], Permissions]] = _build_matrix()


def permissions_for(status: LifecycleStatus, role: ActorRole) -> Permissions:
    return MUTABILITY_MATRIX[(LifecycleStatus(status), ActorRole(role))]


__all__ = [
    "MUTABILITY_MATRIX",
    "Capability",
    "MutationReason",
    "MutationResult",
    "Permissions",
    "permissions_for",
]
