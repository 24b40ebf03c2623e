"""Progress matrix derivation and attestation migration."""

from competency_engine.progress.aggregator import (
    SPECIALTY_ALIASES,
    ProgressAggregator,
    ProgressMatrix,
    compute_progress,
    normalize_specialty,
)
from competency_engine.progress.migration import (
    LEGACY_ATTESTATION_FIELDS,
    migrate_legacy_attestations,
    parse_cell_key,
)

__all__ = [
    "LEGACY_ATTESTATION_FIELDS",
    "SPECIALTY_ALIASES",
    "ProgressAggregator",
    "ProgressMatrix",
    "compute_progress",
    "migrate_legacy_attestations",
    "normalize_specialty",
    "parse_cell_key",
]
