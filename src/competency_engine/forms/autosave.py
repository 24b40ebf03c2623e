"""
competency-engine - periodic form autosave

File: src/competency_engine/forms/autosave.py

Purpose
- Snapshot an open form to persistence on a fixed period while it is editable.

What should be included in this file
- A cancellable background loop woken early by a stop ``asyncio.Event``.
- Coalescing: unchanged snapshots are not rewritten.
- Sequenced writes so that an older snapshot never lands after a newer one.

Functional requirements
- The loop stops once the form is read-only for the editing role.
- ``stop()`` cancels the loop without waiting for an in-flight write.
- Write failures are logged and the loop keeps running.

Non-functional requirements
- One loop per open form; no threads of its own.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

import structlog

from competency_engine.constants import DEFAULT_AUTOSAVE_PERIOD_SECONDS
from competency_engine.domain.models import ActorRole, JSONValue
from competency_engine.forms.record import FormRecord

SnapshotWriter = Callable[[FormRecord, dict[str, JSONValue]], Awaitable[None]]


class Autosaver:
    """Fire-and-forget periodic saver for a single ``FormRecord``."""

    def __init__(
        self,
        form: FormRecord,
        writer: SnapshotWriter,
        *,
        role: ActorRole = ActorRole.TRAINEE,
        period_seconds: float = DEFAULT_AUTOSAVE_PERIOD_SECONDS,
        logger: Any | None = None,
    ) -> None:
        if period_seconds <= 0:
            raise ValueError("period_seconds must be > 0")
        self._form = form
        self._writer = writer
        self._role = ActorRole(role)
        self._period = period_seconds
        self._logger = logger if logger is not None else structlog.get_logger(__name__)
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self._write_lock = asyncio.Lock()
        self._next_sequence = 0
        self._written_sequence = -1
        self._last_snapshot: dict[str, JSONValue] | None = None
        self._saves = 0

    @property
    def form(self) -> FormRecord:
        return self._form

    @property
    def period_seconds(self) -> float:
        return self._period

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def saves(self) -> int:
        """Number of snapshots actually written."""
        return self._saves

    def start(self) -> None:
        if self.running:
            return
        if self._stop.is_set():
            self._stop = asyncio.Event()
        self._task = asyncio.create_task(self._run(), name=f"autosave:{self._form.id}")

    def stop(self) -> None:
        """Cancel the loop; an in-flight write is abandoned, not awaited."""
        self._stop.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def save_now(self) -> bool:
        """Write the latest snapshot; ``False`` when coalesced or superseded."""
        sequence = self._next_sequence
        self._next_sequence += 1
        snapshot = self._form.to_dict()
        async with self._write_lock:
            if sequence < self._written_sequence:
                return False
            if snapshot == self._last_snapshot:
                return False
            await self._writer(self._form, snapshot)
            self._written_sequence = sequence
            self._last_snapshot = snapshot
            self._saves += 1
        return True

    async def _run(self) -> None:
        self._logger.debug("autosave_started", form_id=self._form.id, period=self._period)
        while not self._stop.is_set():
            if await self._stopped_within(self._period):
                break
            if self._form.permissions(self._role).read_only:
                self._logger.info(
                    "autosave_stopped_read_only",
                    form_id=self._form.id,
                    status=self._form.status.value,
                )
                break
            try:
                await self.save_now()
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                self._logger.warning(
                    "autosave_failed",
                    form_id=self._form.id,
                    error_type=exc.__class__.__name__,
                    error=str(exc),
                )

    async def _stopped_within(self, seconds: float) -> bool:
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=seconds)
        except TimeoutError:
            return False
        return True

    async def wait_stopped(self) -> None:
        """Await loop exit after a read-only stop; used by tests and shutdown."""
        task = self._task
        if task is None:
            return
        with suppress(asyncio.CancelledError):
            await task


__all__ = ["Autosaver", "SnapshotWriter"]
