"""Events published while forms are created, saved and moved through their lifecycle."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from competency_engine.domain import ids

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


class EventType(StrEnum):
    FORM_CREATED = "FormCreated"
    FORM_SUBMITTED = "FormSubmitted"
    FORM_SIGNED_OFF = "FormSignedOff"
    TRANSITION_REJECTED = "TransitionRejected"
    FORM_SAVED = "FormSaved"
    ATTESTATION_MIGRATED = "AttestationMigrated"


@dataclass(slots=True)
class CompetencyEvent:
    """One event; ``form_id`` is also the correlation id for log lines about it."""

    event_type: EventType
    form_id: str | None = None
    payload: dict[str, JSONValue] = field(default_factory=dict)
    event_id: str = field(default_factory=ids.generate_event_id)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __post_init__(self) -> None:
        if not ids.has_prefix(self.event_id, ids.EVENT_ID_PREFIX):
            raise ValueError(
                f"CompetencyEvent.event_id: expected prefix '{ids.EVENT_ID_PREFIX}-', "
                f"got {self.event_id!r}"
            )
        if self.event_type not in EventType.__members__.values():
            raise ValueError(f"CompetencyEvent.event_type: unsupported event type {self.event_type!r}")
        self.event_type = EventType(self.event_type)
        if self.timestamp.tzinfo is None:
            raise ValueError("CompetencyEvent.timestamp: must be timezone-aware")
        self.timestamp = self.timestamp.astimezone(UTC)
        self.payload = _json_object(self.payload)

    def to_dict(self) -> dict[str, JSONValue]:
        return {
            "event_id": self.event_id,
            "event_type": self.event_type.value,
            "timestamp": self.timestamp.isoformat(timespec="microseconds").replace("+00:00", "Z"),
            "form_id": self.form_id,
            "payload": dict(self.payload),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _json_object(payload: Any) -> dict[str, JSONValue]:
    # A dumps/loads pass both validates the payload and detaches it from the caller.
    try:
        decoded = json.loads(json.dumps(payload, allow_nan=False))
    except TypeError as exc:
        raise ValueError(f"CompetencyEvent.payload: not JSON-serializable ({exc})") from exc
    except ValueError as exc:
        raise ValueError(f"CompetencyEvent.payload: numbers must be finite ({exc})") from exc
    if not isinstance(decoded, dict):
        raise ValueError("CompetencyEvent.payload: expected a JSON object")
    return decoded


__all__ = ["CompetencyEvent", "EventType", "JSONValue"]
