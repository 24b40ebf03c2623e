"""Domain models, identifiers, and events for the competency engine."""

from competency_engine.domain.events import CompetencyEvent, EventType
from competency_engine.domain.models import (
    ActorRole,
    AssessorIdentity,
    Countersignature,
    Criterion,
    EvidenceSummary,
    EvidenceType,
    FormType,
    Grade,
    GradeScale,
    LifecycleStatus,
    ProgressCell,
    ProgressStatus,
    RequirementKey,
    SectionRequirements,
    SpecialtyRequirements,
)

__all__ = [
    "ActorRole",
    "AssessorIdentity",
    "CompetencyEvent",
    "Countersignature",
    "Criterion",
    "EventType",
    "EvidenceSummary",
    "EvidenceType",
    "FormType",
    "Grade",
    "GradeScale",
    "LifecycleStatus",
    "ProgressCell",
    "ProgressStatus",
    "RequirementKey",
    "SectionRequirements",
    "SpecialtyRequirements",
]
