"""
competency-engine - repositories

File: src/competency_engine/persistence/repositories.py

Purpose
- Typed access to forms and evidence summaries on top of a ``KeyValueStore``.

What should be included in this file
- ``FormRepository``: one key per form (``form:<id>``).
- ``EvidenceRepository``: the evidence collection stored under one key, with
  find / upsert / delete / all.

Functional requirements
- Lookups of unknown ids return ``None`` rather than raising.
- Stored payloads that fail validation raise ``StoreError`` with the key.

Non-functional requirements
- Single local writer; each write replaces the stored value whole.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import structlog

from competency_engine.catalog.catalog import RequirementsCatalog
from competency_engine.constants import EVIDENCE_KEY, FORM_KEY_PREFIX
from competency_engine.domain.models import EvidenceSummary, EvidenceType
from competency_engine.persistence.store import JSONValue, KeyValueStore, StoreError

if TYPE_CHECKING:
    from competency_engine.forms.record import FormRecord


class FormRepository:
    def __init__(
        self,
        store: KeyValueStore,
        catalog: RequirementsCatalog,
        *,
        logger: Any | None = None,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    @staticmethod
    def key_for(form_id: str) -> str:
        return f"{FORM_KEY_PREFIX}{form_id}"

    def get(self, form_id: str) -> FormRecord | None:
        return self._decode(form_id, self._store.get(self.key_for(form_id)))

    async def get_async(self, form_id: str) -> FormRecord | None:
        return self._decode(form_id, await self._store.get_async(self.key_for(form_id)))

    def save(self, form: FormRecord) -> FormRecord:
        self._store.set(self.key_for(form.id), form.to_dict())
        return form

    async def save_snapshot_async(self, form_id: str, snapshot: dict[str, JSONValue]) -> None:
        await self._store.set_async(self.key_for(form_id), snapshot)
        self._logger.debug("form_saved", form_id=form_id, status=snapshot.get("status"))

    def ids(self) -> tuple[str, ...]:
        return tuple(key[len(FORM_KEY_PREFIX) :] for key in self._store.keys(FORM_KEY_PREFIX))

    def list(self) -> list[FormRecord]:
        forms: list[FormRecord] = []
        for form_id in self.ids():
            form = self.get(form_id)
            if form is not None:
                forms.append(form)
        return sorted(forms, key=lambda item: (item.created_at, item.id))

    def _decode(self, form_id: str, raw: JSONValue | None) -> FormRecord | None:
        if raw is None:
            return None
        if not isinstance(raw, dict):
            raise StoreError(f"{self.key_for(form_id)}: expected object, got {type(raw).__name__}")
        # forms imports this module; resolve the record type at call time.
        from competency_engine.forms.record import FormRecord

        try:
            return FormRecord.from_dict(raw, self._catalog)
        except ValueError as exc:
            raise StoreError(f"{self.key_for(form_id)}: {exc}") from exc


class EvidenceRepository:
    """Evidence store collaborator: summaries keyed by id, in insertion order.

    The collection lives under one key, so every read-modify-write holds
    ``_write_lock``; concurrent saves from worker threads must not drop each
    other's summaries.
    """

    def __init__(self, store: KeyValueStore, *, logger: Any | None = None) -> None:
        self._store = store
        self._write_lock = threading.Lock()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def find(self, evidence_id: str) -> EvidenceSummary | None:
        for item in self.all():
            if item.id == evidence_id:
                return item
        return None

    def all(self) -> list[EvidenceSummary]:
        raw = self._store.get(EVIDENCE_KEY)
        if raw is None:
            return []
        if not isinstance(raw, list):
            raise StoreError(f"{EVIDENCE_KEY}: expected array, got {type(raw).__name__}")
        items: list[EvidenceSummary] = []
        for index, entry in enumerate(raw):
            if not isinstance(entry, dict):
                raise StoreError(f"{EVIDENCE_KEY}[{index}]: expected object")
            try:
                items.append(EvidenceSummary.from_dict(entry))
            except ValueError as exc:
                raise StoreError(f"{EVIDENCE_KEY}[{index}]: {exc}") from exc
        return items

    def of_type(self, *types: EvidenceType) -> list[EvidenceSummary]:
        wanted = set(types)
        return [item for item in self.all() if item.evidence_type in wanted]

    def upsert(self, evidence: EvidenceSummary) -> str:
        with self._write_lock:
            items = self.all()
            for index, item in enumerate(items):
                if item.id == evidence.id:
                    items[index] = evidence
                    break
            else:
                items.append(evidence)
            self._write(items)
        return evidence.id

    def upsert_many(self, evidence: Iterable[EvidenceSummary]) -> tuple[str, ...]:
        with self._write_lock:
            items = self.all()
            positions = {item.id: index for index, item in enumerate(items)}
            written: list[str] = []
            for summary in evidence:
                if summary.id in positions:
                    items[positions[summary.id]] = summary
                else:
                    positions[summary.id] = len(items)
                    items.append(summary)
                written.append(summary.id)
            if written:
                self._write(items)
        return tuple(written)

    def delete(self, evidence_id: str) -> bool:
        with self._write_lock:
            items = self.all()
            remaining = [item for item in items if item.id != evidence_id]
            if len(remaining) == len(items):
                return False
            self._write(remaining)
        self._logger.info("evidence_deleted", evidence_id=evidence_id)
        return True

    def _write(self, items: list[EvidenceSummary]) -> None:
        self._store.set(EVIDENCE_KEY, [item.to_dict() for item in items])


__all__ = ["EvidenceRepository", "FormRepository"]
