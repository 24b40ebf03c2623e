"""Convert legacy profile completion maps into attestation evidence."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import date
from typing import Any, Final, Protocol

import structlog

from competency_engine.domain import ids
from competency_engine.domain.models import EvidenceSummary, EvidenceType, LifecycleStatus
from competency_engine.progress.aggregator import normalize_specialty

LEGACY_ATTESTATION_FIELDS: Final[dict[str, EvidenceType]] = {
    "curriculum_catch_up_completions": EvidenceType.CURRICULUM_CATCH_UP,
    "fourteen_fish_completions": EvidenceType.FOURTEEN_FISH,
}


class AttestationStore(Protocol):
    def all(self) -> list[EvidenceSummary]: ...

    def upsert(self, evidence: EvidenceSummary) -> str: ...


def parse_cell_key(raw: str) -> tuple[str, int] | None:
    """Split ``"<column>-<level>"`` at the last hyphen; ``None`` when malformed."""
    column, separator, level_text = raw.strip().rpartition("-")
    column = column.strip()
    if not separator or not column or not level_text.strip().isdigit():
        return None
    level = int(level_text)
    return (column, level) if level >= 1 else None


def migrate_legacy_attestations(
    profile: Mapping[str, object],
    evidence_store: AttestationStore,
    *,
    today: date | None = None,
    logger: Any | None = None,
) -> tuple[EvidenceSummary, ...]:
    """Create one attestation artifact per true legacy flag not already present.

    Running the migration twice creates nothing the second time.
    """
    log = logger if logger is not None else structlog.get_logger(__name__)
    stamp = (today or date.today()).isoformat()
    existing = {
        (item.evidence_type, normalize_specialty(item.specialty), item.level)
        for item in evidence_store.all()
        if item.evidence_type.is_attestation
    }

    created: list[EvidenceSummary] = []
    for field_name, evidence_type in LEGACY_ATTESTATION_FIELDS.items():
        flags = profile.get(field_name)
        if flags is None:
            continue
        if not isinstance(flags, Mapping):
            log.warning("legacy_attestation_field_invalid", field=field_name)
            continue
        for raw_key, flag in flags.items():
            if flag is not True:
                continue
            cell = parse_cell_key(str(raw_key))
            if cell is None:
                log.warning("legacy_attestation_key_invalid", field=field_name, key=str(raw_key))
                continue
            column, level = cell
            identity = (evidence_type, normalize_specialty(column), level)
            if identity in existing:
                continue
            summary = EvidenceSummary(
                id=ids.generate_evidence_id(),
                title=f"{evidence_type.value}: {column} Level {level}",
                evidence_type=evidence_type,
                status=LifecycleStatus.SIGNED_OFF,
                date=stamp,
                specialty=column,
                level=level,
            )
            evidence_store.upsert(summary)
            existing.add(identity)
            created.append(summary)

    if created:
        log.info("legacy_attestations_migrated", count=len(created))
    return tuple(created)


__all__ = [
    "LEGACY_ATTESTATION_FIELDS",
    "AttestationStore",
    "migrate_legacy_attestations",
    "parse_cell_key",
]
