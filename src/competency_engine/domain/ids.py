"""Identifiers: ``<prefix>-<ULID>`` ids for forms, evidence, events and CLI sessions.

The ULID part is 48 bits of Unix milliseconds followed by 80 random bits, in
Crockford base32, so ids of one kind sort by creation time.
"""

from __future__ import annotations

import re
import secrets
import time
from typing import Final

FORM_ID_PREFIX: Final[str] = "frm"
EVIDENCE_ID_PREFIX: Final[str] = "ev"
EVENT_ID_PREFIX: Final[str] = "evt"
SESSION_ID_PREFIX: Final[str] = "cli"

_BASE32: Final[str] = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"
_ULID_CHARS: Final[int] = 26
_PREFIXED_RE: Final[re.Pattern[str]] = re.compile(r"([a-z]+)-([0-7][0-9A-HJKMNP-TV-Z]{25})")
_REGISTRATION_RE: Final[re.Pattern[str]] = re.compile(r"\d{7}")


def new_id(prefix: str) -> str:
    value = (time.time_ns() // 1_000_000) << 80 | secrets.randbits(80)
    chars = []
    for _ in range(_ULID_CHARS):
        value, digit = divmod(value, 32)
        chars.append(_BASE32[digit])
    return f"{prefix}-{''.join(reversed(chars))}"


def has_prefix(value: object, prefix: str) -> bool:
    """True when ``value`` is a well-formed id minted with ``prefix``."""
    if not isinstance(value, str):
        return False
    match = _PREFIXED_RE.fullmatch(value)
    return match is not None and match.group(1) == prefix


def generate_form_id() -> str:
    return new_id(FORM_ID_PREFIX)


def generate_evidence_id() -> str:
    return new_id(EVIDENCE_ID_PREFIX)


def generate_event_id() -> str:
    return new_id(EVENT_ID_PREFIX)


def generate_session_id() -> str:
    return new_id(SESSION_ID_PREFIX)


def is_registration_number(value: object) -> bool:
    """Seven-digit practitioner registration (GMC style); surrounding blanks allowed."""
    return isinstance(value, str) and _REGISTRATION_RE.fullmatch(value.strip()) is not None


__all__ = [
    "EVENT_ID_PREFIX",
    "EVIDENCE_ID_PREFIX",
    "FORM_ID_PREFIX",
    "SESSION_ID_PREFIX",
    "generate_event_id",
    "generate_evidence_id",
    "generate_form_id",
    "generate_session_id",
    "has_prefix",
    "is_registration_number",
    "new_id",
]
