"""
competency-engine - form lifecycle state machine

File: src/competency_engine/forms/lifecycle.py

Purpose
- Govern Draft -> Submitted -> SignedOff transitions, including the in-person
  Draft -> SignedOff shortcut for the author.

What should be included in this file
- Guard evaluation for submission and sign-off.
- Awaiting the notification collaborator before a submission takes effect.
- Optional persistence hook; a failed write rolls the record back.
- Domain events for applied and rejected transitions.

Functional requirements
- Outcomes are values (``TransitionResult``), never exceptions.
- Status and identities change only when every guard, the dispatch, and the
  persistence hook succeed.

Non-functional requirements
- Deterministic rejection reasons, suitable for display and tests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Any

import structlog

from competency_engine.domain import ids
from competency_engine.domain.events import EventType
from competency_engine.domain.models import (
    ActorRole,
    AssessorIdentity,
    Countersignature,
    LifecycleStatus,
)
from competency_engine.forms.record import FormRecord
from competency_engine.notifications.dispatch import DispatchResult, NotificationDispatcher
from competency_engine.observability.events import EventBus

PersistHook = Callable[[FormRecord], Awaitable[None]]

DEFAULT_DISPATCH_TIMEOUT_SECONDS = 30.0
IN_PERSON_SIGNATURE_PREFIX = "gmc:"


class TransitionOutcome(StrEnum):
    APPLIED = "Applied"
    VALIDATION_FAILURE = "ValidationFailure"
    DISPATCH_FAILURE = "DispatchFailure"
    ILLEGAL_TRANSITION = "IllegalTransition"


@dataclass(frozen=True, slots=True)
class TransitionPayload:
    """Identities supplied with a transition request."""

    assessor: AssessorIdentity | None = None
    countersignature: Countersignature | None = None


@dataclass(frozen=True, slots=True)
class TransitionResult:
    outcome: TransitionOutcome
    status: LifecycleStatus
    reasons: tuple[str, ...] = ()
    magic_link: str | None = None

    @property
    def applied(self) -> bool:
        return self.outcome is TransitionOutcome.APPLIED

    @property
    def retryable(self) -> bool:
        return self.outcome is TransitionOutcome.DISPATCH_FAILURE


class LifecycleStateMachine:
    """Evaluates and applies lifecycle transitions on a ``FormRecord``."""

    def __init__(
        self,
        dispatcher: NotificationDispatcher,
        *,
        events: EventBus | None = None,
        dispatch_timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS,
        logger: Any | None = None,
    ) -> None:
        if dispatch_timeout_seconds <= 0:
            raise ValueError("dispatch_timeout_seconds must be > 0")
        self._dispatcher = dispatcher
        self._events = events
        self._dispatch_timeout = dispatch_timeout_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    async def transition(
        self,
        form: FormRecord,
        target: LifecycleStatus,
        actor: ActorRole,
        payload: TransitionPayload | None = None,
        *,
        persist: PersistHook | None = None,
    ) -> TransitionResult:
        target = LifecycleStatus(target)
        actor = ActorRole(actor)
        payload = payload or TransitionPayload()

        illegal = self._illegal_reason(form, target, actor)
        if illegal is not None:
            return await self._reject(
                form, target, actor, TransitionOutcome.ILLEGAL_TRANSITION, (illegal,)
            )

        if target is LifecycleStatus.SUBMITTED:
            return await self._submit(form, actor, payload, persist)
        return await self._sign_off(form, actor, payload, persist)

    def _illegal_reason(
        self, form: FormRecord, target: LifecycleStatus, actor: ActorRole
    ) -> str | None:
        if form.status is LifecycleStatus.SIGNED_OFF:
            return "form_signed_off"
        if target.rank <= form.status.rank:
            return "backward_transition"
        if target is LifecycleStatus.SUBMITTED:
            return None if actor is ActorRole.TRAINEE else "role_cannot_submit"
        # target is SignedOff
        if form.status is LifecycleStatus.SUBMITTED:
            return None if actor is ActorRole.EDUCATIONAL_SUPERVISOR else "role_cannot_sign_off"
        return None if actor is ActorRole.TRAINEE else "role_cannot_sign_off_in_person"

    async def _submit(
        self,
        form: FormRecord,
        actor: ActorRole,
        payload: TransitionPayload,
        persist: PersistHook | None,
    ) -> TransitionResult:
        target = LifecycleStatus.SUBMITTED
        assessor = payload.assessor or form.assessor
        issues = form.submission_issues(assessor)
        if issues or assessor is None:
            return await self._reject(
                form, target, actor, TransitionOutcome.VALIDATION_FAILURE, issues
            )

        dispatch = await self._dispatch(form, assessor)
        if not dispatch.success:
            reason = dispatch.reason or "dispatch_failed"
            return await self._reject(
                form, target, actor, TransitionOutcome.DISPATCH_FAILURE, (reason,)
            )

        failure = await self._commit(form, target, assessor, form.countersignature, persist)
        if failure is not None:
            return await self._reject(
                form, target, actor, TransitionOutcome.DISPATCH_FAILURE, (failure,)
            )

        self._logger.info(
            "form_submitted", form_id=form.id, form_type=form.form_type.value, level=form.level
        )
        await self._emit(
            EventType.FORM_SUBMITTED,
            form,
            {"recipient_email": assessor.email, "magic_link": dispatch.magic_link},
        )
        return TransitionResult(TransitionOutcome.APPLIED, form.status, (), dispatch.magic_link)

    async def _sign_off(
        self,
        form: FormRecord,
        actor: ActorRole,
        payload: TransitionPayload,
        persist: PersistHook | None,
    ) -> TransitionResult:
        target = LifecycleStatus.SIGNED_OFF
        in_person = form.status is LifecycleStatus.DRAFT
        assessor = payload.assessor or form.assessor
        countersignature = payload.countersignature or form.countersignature

        problems: list[str] = []
        if in_person:
            problems.extend(form.submission_issues(assessor))
        elif assessor is None:
            problems.append("assessor_missing")
        else:
            problems.extend(assessor.issues())

        if countersignature is None:
            problems.append("countersignature_missing")
        else:
            if in_person:
                if ids.is_registration_number(countersignature.registration):
                    registration = countersignature.registration.strip()
                    countersignature = replace(
                        countersignature,
                        registration=registration,
                        signature=f"{IN_PERSON_SIGNATURE_PREFIX}{registration}",
                    )
                else:
                    problems.append("countersignature_registration_invalid")
            problems.extend(countersignature.issues())

        if problems or assessor is None or countersignature is None:
            return await self._reject(
                form,
                target,
                actor,
                TransitionOutcome.VALIDATION_FAILURE,
                tuple(dict.fromkeys(problems)),
            )

        failure = await self._commit(form, target, assessor, countersignature, persist)
        if failure is not None:
            return await self._reject(
                form, target, actor, TransitionOutcome.DISPATCH_FAILURE, (failure,)
            )

        self._logger.info("form_signed_off", form_id=form.id, in_person=in_person)
        await self._emit(
            EventType.FORM_SIGNED_OFF,
            form,
            {"in_person": in_person, "registration": countersignature.registration},
        )
        return TransitionResult(TransitionOutcome.APPLIED, form.status)

    async def _dispatch(self, form: FormRecord, assessor: AssessorIdentity) -> DispatchResult:
        try:
            return await asyncio.wait_for(
                self._dispatcher.send(
                    form.id,
                    assessor.email.strip(),
                    form.form_type,
                    assessor.registration,
                ),
                self._dispatch_timeout,
            )
        except TimeoutError:
            self._logger.warning("notification_dispatch_timeout", form_id=form.id)
            return DispatchResult.failed("dispatch_timeout")
        except Exception as exc:  # noqa: BLE001
            self._logger.warning(
                "notification_dispatch_failed",
                form_id=form.id,
                error_type=exc.__class__.__name__,
                error=str(exc),
            )
            return DispatchResult.failed("dispatch_error")

    async def _commit(
        self,
        form: FormRecord,
        target: LifecycleStatus,
        assessor: AssessorIdentity,
        countersignature: Countersignature | None,
        persist: PersistHook | None,
    ) -> str | None:
        """Apply the transition; roll back and return a reason if persisting fails."""
        snapshot = (form.status, form.assessor, form.countersignature, form.updated_at)
        form.status = target
        form.assessor = assessor
        form.countersignature = countersignature
        form.touch()
        if persist is None:
            return None
        try:
            await persist(form)
        except Exception as exc:  # noqa: BLE001
            form.status, form.assessor, form.countersignature, form.updated_at = snapshot
            self._logger.error(
                "form_transition_persist_failed",
                form_id=form.id,
                target=target.value,
                error_type=exc.__class__.__name__,
                error=str(exc),
            )
            return "persistence_failed"
        return None

    async def _reject(
        self,
        form: FormRecord,
        target: LifecycleStatus,
        actor: ActorRole,
        outcome: TransitionOutcome,
        reasons: tuple[str, ...],
    ) -> TransitionResult:
        self._logger.info(
            "form_transition_rejected",
            form_id=form.id,
            status=form.status.value,
            target=target.value,
            actor=actor.value,
            outcome=outcome.value,
            reasons=list(reasons),
        )
        await self._emit(
            EventType.TRANSITION_REJECTED,
            form,
            {
                "target": target.value,
                "actor": actor.value,
                "outcome": outcome.value,
                "reasons": list(reasons),
            },
        )
        return TransitionResult(outcome, form.status, reasons)

    async def _emit(
        self, event_type: EventType, form: FormRecord, payload: dict[str, object]
    ) -> None:
        if self._events is None:
            return
        await self._events.emit_async(
            event_type,
            {"status": form.status.value, "form_type": form.form_type.value, **payload},
            form_id=form.id,
        )


__all__ = [
    "DEFAULT_DISPATCH_TIMEOUT_SECONDS",
    "IN_PERSON_SIGNATURE_PREFIX",
    "LifecycleStateMachine",
    "PersistHook",
    "TransitionOutcome",
    "TransitionPayload",
    "TransitionResult",
]
