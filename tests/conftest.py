"""Pytest configuration and fixtures."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from uuid import UUID, uuid4

import pytest

from salesteam.engine import ParticipationEngine
from salesteam.records import (
    LINE_OF_BUSINESS,
    PACKAGE,
    PROJECT,
    PROJECT_HIERARCHY,
    ROLE,
    SYSTEM_USER,
    TEAM,
    EntityReference,
    Record,
)
from salesteam.store.memory import MemoryRecordStore
from salesteam.trace import LoggingTracer

CLOCK_START = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic clock: each call returns a time one minute later."""

    def __init__(self, start: datetime = CLOCK_START, step: timedelta = timedelta(minutes=1)):
        self.now = start
        self.step = step
        self.calls: list[datetime] = []

    def __call__(self) -> datetime:
        value = self.now
        self.now += self.step
        self.calls.append(value)
        return value


@dataclass(frozen=True)
class Refs:
    """References to the records seeded into the fixture store."""

    user: EntityReference
    user_role_only: EntityReference
    user_bare: EntityReference
    team: EntityReference
    lead: EntityReference
    prelead: EntityReference
    opportunity: EntityReference
    project: EntityReference
    hierarchy: EntityReference
    package: EntityReference


def _ref(logical_name: str) -> EntityReference:
    return EntityReference(logical_name, uuid4())


@pytest.fixture
def refs() -> Refs:
    return Refs(
        user=_ref(SYSTEM_USER),
        user_role_only=_ref(SYSTEM_USER),
        user_bare=_ref(SYSTEM_USER),
        team=_ref(TEAM),
        lead=_ref("lead"),
        prelead=_ref("zox_prelead"),
        opportunity=_ref("opportunity"),
        project=_ref(PROJECT),
        hierarchy=_ref(PROJECT),
        package=_ref(PACKAGE),
    )


@pytest.fixture
def store(refs: Refs) -> MemoryRecordStore:
    """Store seeded with users and one record of each target type."""
    store = MemoryRecordStore()

    def seed(ref: EntityReference, attributes: dict) -> UUID:
        return store.seed(Record(ref.logical_name, ref.id, attributes))

    seed(refs.user, {ROLE: 100000001, LINE_OF_BUSINESS: 100000002})
    seed(refs.user_role_only, {ROLE: 100000003})
    seed(refs.user_bare, {})
    seed(refs.lead, {PROJECT: refs.project, PACKAGE: refs.package})
    seed(refs.prelead, {PROJECT: refs.project, PACKAGE: None})
    seed(refs.opportunity, {PROJECT_HIERARCHY: refs.hierarchy, PACKAGE: refs.package})
    return store


@pytest.fixture
def tracer() -> LoggingTracer:
    return LoggingTracer()


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def engine(store: MemoryRecordStore, tracer: LoggingTracer, clock: StepClock) -> ParticipationEngine:
    return ParticipationEngine(store, tracer, clock=clock)
