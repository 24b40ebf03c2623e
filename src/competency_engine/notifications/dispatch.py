"""
competency-engine - approver notification dispatch

File: src/competency_engine/notifications/dispatch.py

Purpose
- Notify the approver that a form awaits review and hand them a one-time link.

What should be included in this file
- ``NotificationDispatcher`` protocol awaited by the lifecycle state machine.
- ``OutboxDispatcher``: records magic-link requests in the key/value store
  instead of sending mail; the delivery worker lives outside the engine.
- ``NullDispatcher`` for deployments with notifications disabled.

Functional requirements
- A send only reports success once its outbox record is persisted.
- Tokens are 64 hex characters and redeemable exactly once.

Non-functional requirements
- Recipient addresses and tokens never appear unmasked in log events.
"""

from __future__ import annotations

import asyncio
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

import structlog

from competency_engine.constants import DEFAULT_APP_URL, MAGIC_LINK_TOKEN_BYTES, OUTBOX_KEY
from competency_engine.domain.models import FormType, JSONValue
from competency_engine.persistence.store import KeyValueStore, StoreError


@dataclass(frozen=True, slots=True)
class DispatchResult:
    success: bool
    reason: str | None = None
    magic_link: str | None = None

    @classmethod
    def ok(cls, magic_link: str | None = None) -> DispatchResult:
        return cls(success=True, magic_link=magic_link)

    @classmethod
    def failed(cls, reason: str) -> DispatchResult:
        return cls(success=False, reason=reason)


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def send(
        self,
        evidence_id: str,
        recipient_email: str,
        form_type: FormType,
        recipient_registration: str | None = None,
    ) -> DispatchResult: ...


@dataclass(frozen=True, slots=True)
class MagicLinkRecord:
    token: str
    evidence_id: str
    recipient_email: str
    form_type: str
    created_at: datetime
    recipient_registration: str | None = None
    used_at: datetime | None = None

    @property
    def used(self) -> bool:
        return self.used_at is not None

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "token": self.token,
            "evidence_id": self.evidence_id,
            "recipient_email": self.recipient_email,
            "recipient_registration": self.recipient_registration,
            "form_type": self.form_type,
            "created_at": _iso(self.created_at),
            "used": self.used,
            "used_at": None if self.used_at is None else _iso(self.used_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> MagicLinkRecord:
        used_at = data.get("used_at")
        return cls(
            token=str(data["token"]),
            evidence_id=str(data["evidence_id"]),
            recipient_email=str(data["recipient_email"]),
            recipient_registration=data.get("recipient_registration"),
            form_type=str(data["form_type"]),
            created_at=_parse_iso(str(data["created_at"])),
            used_at=None if used_at is None else _parse_iso(str(used_at)),
        )


class NullDispatcher:
    """Reports success without recording anything."""

    async def send(
        self,
        evidence_id: str,
        recipient_email: str,
        form_type: FormType,
        recipient_registration: str | None = None,
    ) -> DispatchResult:
        if not recipient_email.strip():
            return DispatchResult.failed("recipient_missing")
        return DispatchResult.ok()


class OutboxDispatcher:
    """Persists one magic-link record per send under the ``outbox`` key."""

    def __init__(
        self,
        store: KeyValueStore,
        *,
        app_url: str = DEFAULT_APP_URL,
        token_factory: Callable[[], str] | None = None,
        clock: Callable[[], datetime] | None = None,
        logger: Any | None = None,
    ) -> None:
        if not app_url.strip():
            raise ValueError("app_url must be non-empty")
        self._store = store
        self._app_url = app_url.strip()
        self._token_factory = token_factory or (lambda: secrets.token_hex(MAGIC_LINK_TOKEN_BYTES))
        self._clock = clock or (lambda: datetime.now(UTC))
        self._lock = asyncio.Lock()
        self._logger = logger if logger is not None else structlog.get_logger(__name__)

    def magic_link(self, token: str) -> str:
        return f"{self._app_url}?token={token}"

    async def send(
        self,
        evidence_id: str,
        recipient_email: str,
        form_type: FormType,
        recipient_registration: str | None = None,
    ) -> DispatchResult:
        if not isinstance(recipient_email, str) or not recipient_email.strip():
            self._logger.warning(
                "notification_refused", evidence_id=evidence_id, reason="recipient_missing"
            )
            return DispatchResult.failed("recipient_missing")

        record = MagicLinkRecord(
            token=self._token_factory(),
            evidence_id=evidence_id,
            recipient_email=recipient_email.strip(),
            recipient_registration=recipient_registration or None,
            form_type=FormType(form_type).value,
            created_at=self._clock(),
        )
        async with self._lock:
            try:
                records = await self._load_async()
                records.append(record)
                await self._store.set_async(OUTBOX_KEY, [item.to_dict() for item in records])
            except StoreError as exc:
                self._logger.error(
                    "notification_outbox_write_failed", evidence_id=evidence_id, error=str(exc)
                )
                return DispatchResult.failed("outbox_write_failed")

        self._logger.info(
            "notification_queued",
            evidence_id=evidence_id,
            form_type=record.form_type,
            recipient_email=record.recipient_email,
        )
        return DispatchResult.ok(self.magic_link(record.token))

    def records(self) -> tuple[MagicLinkRecord, ...]:
        return tuple(self._load())

    def pending(self) -> tuple[MagicLinkRecord, ...]:
        return tuple(record for record in self._load() if not record.used)

    def redeem(self, token: str) -> MagicLinkRecord | None:
        """Mark ``token`` used; ``None`` when unknown or already redeemed."""
        records = self._load()
        for index, record in enumerate(records):
            if record.token != token:
                continue
            if record.used:
                self._logger.warning("magic_link_reused", evidence_id=record.evidence_id)
                return None
            redeemed = replace(record, used_at=self._clock())
            records[index] = redeemed
            self._store.set(OUTBOX_KEY, [item.to_dict() for item in records])
            self._logger.info("magic_link_redeemed", evidence_id=record.evidence_id)
            return redeemed
        return None

    def _load(self) -> list[MagicLinkRecord]:
        return _parse_records(self._store.get(OUTBOX_KEY))

    async def _load_async(self) -> list[MagicLinkRecord]:
        return _parse_records(await self._store.get_async(OUTBOX_KEY))


def _parse_records(raw: object) -> list[MagicLinkRecord]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise StoreError(f"{OUTBOX_KEY}: expected array, got {type(raw).__name__}")
    try:
        return [MagicLinkRecord.from_dict(item) for item in raw if isinstance(item, Mapping)]
    except (KeyError, ValueError) as exc:
        raise StoreError(f"{OUTBOX_KEY}: malformed magic-link record ({exc})") from exc


def _iso(value: datetime) -> str:
    return value.astimezone(UTC).isoformat(timespec="microseconds").replace("+00:00", "Z")


def _parse_iso(value: str) -> datetime:
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    return datetime.fromisoformat(text).astimezone(UTC)


__all__ = [
    "DispatchResult",
    "MagicLinkRecord",
    "NotificationDispatcher",
    "NullDispatcher",
    "OutboxDispatcher",
]
