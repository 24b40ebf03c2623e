"""
competency-engine - form service

File: src/competency_engine/forms/service.py

Purpose
- The produced surface: create, load, edit, link, transition, and save forms,
  and derive progress from the evidence they project.

What should be included in this file
- ``FormService`` wiring the catalog, repositories, lifecycle state machine,
  event bus, and progress aggregator.
- Id-addressed mutators returning ``MutationResult`` values.
- Evidence summary sync whenever a form is persisted.
- Optional per-form autosave loops.
- ``FormService.from_config`` building the dispatcher and autosave defaults
  from the ``autosave`` and ``notifications`` config sections.

Functional requirements
- Unknown form ids are a lookup miss (``form_not_found``), never an exception.
- Transitions persist through the state machine hook so a failed write leaves
  the stored and in-memory record unchanged.

Non-functional requirements
- Single logical actor per form; open forms are cached by id.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

import structlog

from competency_engine.catalog.catalog import RequirementsCatalog
from competency_engine.constants import (
    DEFAULT_APP_URL,
    DEFAULT_AUTOSAVE_PERIOD_SECONDS,
    LEVELS,
    PROGRESS_COLUMNS,
)
from competency_engine.domain.events import EventType
from competency_engine.domain.models import (
    ActorRole,
    AssessorIdentity,
    Countersignature,
    EvidenceSummary,
    FormType,
    Grade,
    JSONValue,
    LifecycleStatus,
    RequirementKey,
    SpecialtyRequirements,
)
from competency_engine.forms.autosave import Autosaver
from competency_engine.forms.lifecycle import (
    DEFAULT_DISPATCH_TIMEOUT_SECONDS,
    LifecycleStateMachine,
    TransitionOutcome,
    TransitionPayload,
    TransitionResult,
)
from competency_engine.forms.permissions import MutationReason, MutationResult
from competency_engine.forms.record import FormRecord
from competency_engine.notifications.dispatch import (
    NotificationDispatcher,
    NullDispatcher,
    OutboxDispatcher,
)
from competency_engine.observability.events import EventBus
from competency_engine.persistence.repositories import EvidenceRepository, FormRepository
from competency_engine.persistence.store import KeyValueStore
from competency_engine.progress.aggregator import ProgressAggregator, ProgressMatrix

_NOT_FOUND = MutationResult.rejected(MutationReason.FORM_NOT_FOUND)


class FormService:
    def __init__(
        self,
        catalog: RequirementsCatalog,
        store: KeyValueStore,
        *,
        dispatcher: NotificationDispatcher | None = None,
        events: EventBus | None = None,
        aggregator: ProgressAggregator | None = None,
        dispatch_timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS,
        autosave_enabled: bool = True,
        autosave_period_seconds: float = DEFAULT_AUTOSAVE_PERIOD_SECONDS,
        logger: Any | None = None,
    ) -> None:
        self._catalog = catalog
        self._autosave_enabled = autosave_enabled
        self._autosave_period_seconds = autosave_period_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._events = events if events is not None else EventBus()
        self._forms = FormRepository(store, catalog, logger=self._logger)
        self._evidence = EvidenceRepository(store, logger=self._logger)
        self._aggregator = aggregator if aggregator is not None else ProgressAggregator()
        self._lifecycle = LifecycleStateMachine(
            dispatcher if dispatcher is not None else NullDispatcher(),
            events=self._events,
            dispatch_timeout_seconds=dispatch_timeout_seconds,
            logger=self._logger,
        )
        self._open: dict[str, FormRecord] = {}
        self._autosavers: dict[str, Autosaver] = {}

    @classmethod
    def from_config(
        cls,
        catalog: RequirementsCatalog,
        store: KeyValueStore,
        config: Mapping[str, Any],
        *,
        events: EventBus | None = None,
        logger: Any | None = None,
    ) -> FormService:
        """Build a service from a validated config mapping.

        ``notifications.enabled`` selects the outbox dispatcher (magic links
        under ``notifications.app_url``) over the null one. ``autosave`` sets
        whether ``start_autosave`` runs and its default period.
        """
        autosave = config.get("autosave") or {}
        notifications = config.get("notifications") or {}
        dispatcher: NotificationDispatcher
        if notifications.get("enabled", True):
            app_url = str(notifications.get("app_url") or DEFAULT_APP_URL)
            dispatcher = OutboxDispatcher(store, app_url=app_url, logger=logger)
        else:
            dispatcher = NullDispatcher()
        return cls(
            catalog,
            store,
            dispatcher=dispatcher,
            events=events,
            dispatch_timeout_seconds=float(
                notifications.get("dispatch_timeout_seconds", DEFAULT_DISPATCH_TIMEOUT_SECONDS)
            ),
            autosave_enabled=bool(autosave.get("enabled", True)),
            autosave_period_seconds=float(
                autosave.get("period_seconds", DEFAULT_AUTOSAVE_PERIOD_SECONDS)
            ),
            logger=logger,
        )

    @property
    def catalog(self) -> RequirementsCatalog:
        return self._catalog

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def evidence(self) -> EvidenceRepository:
        return self._evidence

    @property
    def forms(self) -> FormRepository:
        return self._forms

    # ------------------------
    # Requirements and form lifecycle
    # ------------------------

    def resolve_requirements(
        self, level: int, specialty: str, form_type: FormType = FormType.EPA
    ) -> SpecialtyRequirements | None:
        return self._catalog.resolve(level, specialty, FormType(form_type))

    def create_form(
        self,
        form_type: FormType,
        level: int,
        specialty: str,
        *,
        title: str | None = None,
        form_id: str | None = None,
    ) -> FormRecord:
        form = FormRecord.new(self._catalog, FormType(form_type), level, specialty, form_id=form_id)
        if title:
            form.title = title
        self._forms.save(form)
        self._evidence.upsert(form.to_evidence_summary())
        self._open[form.id] = form
        self._logger.info(
            "form_created",
            form_id=form.id,
            form_type=form.form_type.value,
            level=form.level,
            specialty=form.specialty,
            resolved=form.requirements is not None,
        )
        self._events.emit(
            EventType.FORM_CREATED,
            {"form_type": form.form_type.value, "level": form.level, "specialty": form.specialty},
            form_id=form.id,
        )
        return form

    def load_form(self, form_id: str) -> FormRecord | None:
        form = self._open.get(form_id)
        if form is not None:
            return form
        form = self._forms.get(form_id)
        if form is None:
            self._logger.debug("form_lookup_miss", form_id=form_id)
            return None
        self._open[form.id] = form
        return form

    def list_forms(self) -> list[FormRecord]:
        stored = {form.id: form for form in self._forms.list()}
        for form_id in stored.keys() & self._open.keys():
            stored[form_id] = self._open[form_id]
        return sorted(stored.values(), key=lambda item: (item.created_at, item.id))

    async def save_form(self, form_id: str) -> bool:
        """Persist the open form now; shares sequencing with its autosave loop."""
        form = self.load_form(form_id)
        if form is None:
            return False
        autosaver = self._autosavers.get(form_id)
        if autosaver is not None:
            await autosaver.save_now()
            return True
        await self._persist(form)
        return True

    def close_form(self, form_id: str) -> None:
        self.stop_autosave(form_id)
        self._open.pop(form_id, None)

    # ------------------------
    # Autosave
    # ------------------------

    def start_autosave(
        self,
        form_id: str,
        *,
        role: ActorRole = ActorRole.TRAINEE,
        period_seconds: float | None = None,
    ) -> Autosaver | None:
        """Start the form's save loop; ``None`` for unknown ids or when autosave is off."""
        if not self._autosave_enabled:
            self._logger.debug("autosave_disabled", form_id=form_id)
            return None
        form = self.load_form(form_id)
        if form is None:
            return None
        existing = self._autosavers.get(form_id)
        if existing is not None and existing.running:
            return existing
        autosaver = Autosaver(
            form,
            self._write_snapshot,
            role=role,
            period_seconds=(
                self._autosave_period_seconds if period_seconds is None else period_seconds
            ),
            logger=self._logger,
        )
        autosaver.start()
        self._autosavers[form_id] = autosaver
        return autosaver

    def stop_autosave(self, form_id: str) -> None:
        autosaver = self._autosavers.pop(form_id, None)
        if autosaver is not None:
            autosaver.stop()

    def shutdown(self) -> None:
        for form_id in tuple(self._autosavers):
            self.stop_autosave(form_id)

    # ------------------------
    # Gated mutators
    # ------------------------

    def change_level(self, form_id: str, level: int, role: ActorRole) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.change_level(level, self._catalog, ActorRole(role))

    def change_specialty(self, form_id: str, specialty: str, role: ActorRole) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.change_specialty(specialty, self._catalog, ActorRole(role))

    def set_grade(
        self, form_id: str, key: RequirementKey | str, grade: Grade | None, role: ActorRole
    ) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.set_grade(_as_key(key), grade, ActorRole(role))

    def set_comment(
        self, form_id: str, key: RequirementKey | str, text: str, role: ActorRole
    ) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.set_comment(_as_key(key), text, ActorRole(role))

    def mark_all_yes(
        self, form_id: str, section: str | Iterable[RequirementKey], role: ActorRole
    ) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.mark_all_yes(section, ActorRole(role))

    def set_narrative(self, form_id: str, text: str, role: ActorRole) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.set_narrative(text, ActorRole(role))

    def set_entrustment(self, form_id: str, value: str | None, role: ActorRole) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.set_entrustment(value, ActorRole(role))

    def set_assessor(
        self, form_id: str, assessor: AssessorIdentity | None, role: ActorRole
    ) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.set_assessor(assessor, ActorRole(role))

    def set_countersignature(
        self, form_id: str, countersignature: Countersignature | None, role: ActorRole
    ) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.set_countersignature(countersignature, ActorRole(role))

    # ------------------------
    # Evidence links
    # ------------------------

    def link(
        self, form_id: str, key: RequirementKey | str, evidence_id: str, role: ActorRole
    ) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.link(_as_key(key), evidence_id, ActorRole(role))

    def unlink(
        self, form_id: str, key: RequirementKey | str, evidence_id: str, role: ActorRole
    ) -> MutationResult:
        form = self.load_form(form_id)
        if form is None:
            return _NOT_FOUND
        return form.unlink(_as_key(key), evidence_id, ActorRole(role))

    def list_linked(self, form_id: str, key: RequirementKey | str) -> tuple[str, ...]:
        form = self.load_form(form_id)
        if form is None:
            return ()
        return form.list_linked(_as_key(key))

    def resolve_linked(
        self, form_id: str, key: RequirementKey | str
    ) -> tuple[EvidenceSummary, ...]:
        form = self.load_form(form_id)
        if form is None:
            return ()
        return form.links.resolve_linked(_as_key(key), self._evidence)

    # ------------------------
    # Transitions and progress
    # ------------------------

    async def transition(
        self,
        form_id: str,
        target: LifecycleStatus,
        actor_role: ActorRole,
        payload: TransitionPayload | None = None,
    ) -> TransitionResult:
        form = self.load_form(form_id)
        if form is None:
            self._logger.info("form_transition_rejected", form_id=form_id, reasons=["form_not_found"])
            return TransitionResult(
                TransitionOutcome.ILLEGAL_TRANSITION,
                LifecycleStatus.DRAFT,
                (MutationReason.FORM_NOT_FOUND.value,),
            )
        return await self._lifecycle.transition(
            form, target, actor_role, payload, persist=self._persist
        )

    def compute_progress(
        self,
        *,
        levels: Sequence[int] = LEVELS,
        columns: Sequence[str] = PROGRESS_COLUMNS,
    ) -> ProgressMatrix:
        return self._aggregator.compute(self._evidence.all(), levels=levels, columns=columns)

    # ------------------------
    # Internals
    # ------------------------

    async def _persist(self, form: FormRecord) -> None:
        await self._store_snapshot(form.to_dict(), autosave=False)

    async def _write_snapshot(self, form: FormRecord, snapshot: dict[str, JSONValue]) -> None:
        await self._store_snapshot(snapshot, autosave=True)

    async def _store_snapshot(self, snapshot: dict[str, JSONValue], *, autosave: bool) -> None:
        """Write the record and its evidence summary, both derived from one snapshot."""
        summary = FormRecord.summary_from_snapshot(snapshot)
        await self._forms.save_snapshot_async(summary.id, snapshot)
        await asyncio.to_thread(self._evidence.upsert, summary)
        payload: dict[str, JSONValue] = {"status": summary.status.value}
        if autosave:
            payload["autosave"] = True
        await self._events.emit_async(EventType.FORM_SAVED, payload, form_id=summary.id)


def _as_key(key: RequirementKey | str) -> RequirementKey:
    return key if isinstance(key, RequirementKey) else RequirementKey.parse(key)


__all__ = ["FormService"]
