"""Form records, grading, evidence links, lifecycle, and the form service."""

from competency_engine.forms.autosave import Autosaver
from competency_engine.forms.grading import EVIDENCE_COMMENT_MIN_CHARS, CriterionEntry, GradingStore
from competency_engine.forms.lifecycle import (
    LifecycleStateMachine,
    TransitionOutcome,
    TransitionPayload,
    TransitionResult,
)
from competency_engine.forms.linking import EvidenceLinkRegistry, EvidenceLookup
from competency_engine.forms.permissions import (
    MUTABILITY_MATRIX,
    Capability,
    MutationReason,
    MutationResult,
    Permissions,
    permissions_for,
)
from competency_engine.forms.record import FormRecord, default_title, resolve_form_identity
from competency_engine.forms.service import FormService

__all__ = [
    "EVIDENCE_COMMENT_MIN_CHARS",
    "MUTABILITY_MATRIX",
    "Autosaver",
    "Capability",
    "CriterionEntry",
    "EvidenceLinkRegistry",
    "EvidenceLookup",
    "FormRecord",
    "FormService",
    "GradingStore",
    "LifecycleStateMachine",
    "MutationReason",
    "MutationResult",
    "Permissions",
    "TransitionOutcome",
    "TransitionPayload",
    "TransitionResult",
    "default_title",
    "permissions_for",
    "resolve_form_identity",
]
