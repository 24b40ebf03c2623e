"""Stable constants shared across the competency engine."""

from __future__ import annotations

from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
CATALOG_SCHEMA_VERSION: Final[int] = 1
FORM_RECORD_SCHEMA_VERSION: Final[int] = 1

# Training levels, in order.
LEVELS: Final[tuple[int, ...]] = (1, 2, 3, 4)
GENERIC_LEVELS: Final[frozenset[int]] = frozenset({1, 2})

# Reserved specialty sentinels.
GENERIC_SPECIALTY: Final[str] = "No attached SIA"
OPERATING_LIST_SPECIALTY: Final[str] = "Operating List"
OPERATING_LIST_SEPARATOR: Final[str] = " - "
GSAT_SPECIALTY: Final[str] = "Non-patient Management"

# Specialty names offered when authoring a form.
SPECIALTIES: Final[tuple[str, ...]] = (
    "Oculoplastics",
    "Cornea & Ocular Surface Disease",
    "Cataract Surgery",
    "Glaucoma",
    "Uveitis",
    "Medical Retina",
    "Vitreoretinal Surgery",
    "Ocular Motility",
    "Neuro-Ophthalmology",
    "Paediatric Ophthalmology",
    "Urgent Eye Care",
)

# Progress matrix columns (specialty columns plus the cross-domain column).
SIA_COLUMNS: Final[tuple[str, ...]] = (
    "Cataract Surgery",
    "Community Ophthalmology",
    "Cornea & Ocular Surface",
    "Glaucoma",
    "Medical Retina",
    "Neuro-ophthalmology",
    "Ocular Motility",
    "Oculoplastics",
    "Paediatric Ophthalmology",
    "Urgent Eye Care",
    "Uveitis",
    "Vitreoretinal Surgery",
)
CROSS_DOMAIN_COLUMN: Final[str] = "GSAT"
PROGRESS_COLUMNS: Final[tuple[str, ...]] = (*SIA_COLUMNS, CROSS_DOMAIN_COLUMN)

# Section letters. "A" is reserved for the narrative block.
NARRATIVE_SECTION: Final[str] = "A"
NARRATIVE_INDEX: Final[str] = "NARRATIVE"
CRITERION_SECTIONS: Final[tuple[str, ...]] = ("B", "C", "D", "E", "F", "G")
DEFAULT_SECTION_TITLES: Final[dict[str, str]] = {
    "B": "Outpatients / clinical",
    "C": "Clinical skills",
    "D": "Surgical skills (OSATS/DOPS)",
    "E": "Procedures",
    "F": "Other mandatory evidence",
}

GSAT_DOMAINS: Final[tuple[str, ...]] = (
    "Research and Scholarship",
    "Education and Training",
    "Safeguarding and Holistic Patient Care",
    "Patient Safety and Quality Improvement",
    "Leadership and Team Working",
    "Health Promotion",
)

EPA_ENTRUSTMENT_OPTIONS: Final[tuple[str, ...]] = (
    "Competent to this level",
    "Not yet competent to this level",
)
OPERATING_LIST_ENTRUSTMENT_LEVELS: Final[tuple[str, ...]] = (
    "Unable to do",
    "Can do with direct supervision",
    "Can do with indirect supervision",
    "Can do unsupervised",
    "Can supervise others",
)

# Autosave and notification defaults.
DEFAULT_AUTOSAVE_PERIOD_SECONDS: Final[float] = 15.0
DEFAULT_APP_URL: Final[str] = "https://eyeportfolio.com"
MAGIC_LINK_TOKEN_BYTES: Final[int] = 32

# Persistence keys.
FORM_KEY_PREFIX: Final[str] = "form:"
EVIDENCE_KEY: Final[str] = "evidence"
OUTBOX_KEY: Final[str] = "outbox"

__all__ = [
    "CATALOG_SCHEMA_VERSION",
    "CONFIG_SCHEMA_VERSION",
    "CRITERION_SECTIONS",
    "CROSS_DOMAIN_COLUMN",
    "DEFAULT_APP_URL",
    "DEFAULT_AUTOSAVE_PERIOD_SECONDS",
    "DEFAULT_SECTION_TITLES",
    "EPA_ENTRUSTMENT_OPTIONS",
    "EVIDENCE_KEY",
    "FORM_KEY_PREFIX",
    "FORM_RECORD_SCHEMA_VERSION",
    "GENERIC_LEVELS",
    "GENERIC_SPECIALTY",
    "GSAT_DOMAINS",
    "GSAT_SPECIALTY",
    "LEVELS",
    "MAGIC_LINK_TOKEN_BYTES",
    "NARRATIVE_INDEX",
    "NARRATIVE_SECTION",
    "OPERATING_LIST_ENTRUSTMENT_LEVELS",
    "OPERATING_LIST_SEPARATOR",
    "OPERATING_LIST_SPECIALTY",
    "OUTBOX_KEY",
    "PROGRESS_COLUMNS",
    "SIA_COLUMNS",
    "SPECIALTIES",
]
