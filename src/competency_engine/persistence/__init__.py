"""Persistence layer: key/value stores and typed repositories."""

from competency_engine.persistence.repositories import EvidenceRepository, FormRepository
from competency_engine.persistence.store import (
    STORE_DOCUMENT_VERSION,
    InMemoryStore,
    JsonFileStore,
    KeyValueStore,
    StoreError,
)

__all__ = [
    "STORE_DOCUMENT_VERSION",
    "EvidenceRepository",
    "FormRepository",
    "InMemoryStore",
    "JsonFileStore",
    "KeyValueStore",
    "StoreError",
]
