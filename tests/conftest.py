"""Shared fixtures for competency-engine tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, field

import pytest

from competency_engine.catalog import RequirementsCatalog, load_catalog
from competency_engine.domain.models import AssessorIdentity, Countersignature, FormType
from competency_engine.forms import FormService
from competency_engine.notifications import DispatchResult
from competency_engine.observability import EventBus, configure_structlog
from competency_engine.persistence import InMemoryStore, StoreError

APPROVER_EMAIL = "approver@example.org"
APPROVER_REGISTRATION = "7654321"
MAGIC_LINK = "https://eyeportfolio.com?token=" + "ab" * 32


@dataclass
class RecordingDispatcher:
    """Dispatcher double that records every send and answers with ``result``."""

    result: DispatchResult = field(default_factory=lambda: DispatchResult.ok(MAGIC_LINK))
    delay_seconds: float = 0.0
    error: Exception | None = None
    calls: list[tuple[str, str, FormType, str | None]] = field(default_factory=list)

    async def send(
        self,
        evidence_id: str,
        recipient_email: str,
        form_type: FormType,
        recipient_registration: str | None = None,
    ) -> DispatchResult:
        self.calls.append((evidence_id, recipient_email, form_type, recipient_registration))
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.error is not None:
            raise self.error
        return self.result


class FlakyStore(InMemoryStore):
    """In-memory store whose writes fail while ``failing`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.failing = False

    def set(self, key: str, value: object) -> None:  # type: ignore[override]
        if self.failing:
            raise StoreError(f"{key}: simulated write failure")
        super().set(key, value)  # type: ignore[arg-type]


@pytest.fixture(scope="session", autouse=True)
def _route_structlog_to_stdlib() -> None:
    configure_structlog()


@pytest.fixture
def catalog() -> RequirementsCatalog:
    return load_catalog()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def flaky_store() -> FlakyStore:
    return FlakyStore()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def make_dispatcher() -> Callable[..., RecordingDispatcher]:
    return RecordingDispatcher


@pytest.fixture
def events() -> EventBus:
    return EventBus(buffer_size=64)


@pytest.fixture
def service(
    catalog: RequirementsCatalog,
    store: InMemoryStore,
    dispatcher: RecordingDispatcher,
    events: EventBus,
) -> FormService:
    return FormService(catalog, store, dispatcher=dispatcher, events=events)


@pytest.fixture
def assessor() -> AssessorIdentity:
    return AssessorIdentity(
        name="Dr Ada Approver", email=APPROVER_EMAIL, registration=APPROVER_REGISTRATION
    )


@pytest.fixture
def countersignature() -> Countersignature:
    return Countersignature(
        name="Dr Ada Approver", registration=APPROVER_REGISTRATION, signature="signed:ada"
    )
