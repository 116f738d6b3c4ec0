"""
Participation decision engine.

Per (principal, target) pair an interval moves NO_INTERVAL -> OPEN on grant
and OPEN -> CLOSED on revoke. A closed interval is terminal; a later grant
opens a new one.

Grant is guarded by a query-before-create: an open interval makes it a no-op,
which also absorbs duplicate delivery of the same event. The query and the
write are not atomic, so two concurrent grants for one pair can both create.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable
from uuid import UUID

from .composer import IntervalAction, compose_interval
from .events import GrantEvent, MessageName, RevokeEvent
from .queries import open_interval_for_grant, open_interval_for_revoke, run_query
from .records import (
    END_DATE,
    NIL_ID,
    SALES_TEAM,
    START_DATE,
    SYSTEM_USER,
    EntityReference,
    Record,
    spec_for,
)
from .resolver import resolve_target
from .store.base import RecordStore
from .trace import TracingService

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IntervalState(str, Enum):
    NO_INTERVAL = "no_interval"
    OPEN = "open"
    CLOSED = "closed"


def interval_state(row: Record | None) -> IntervalState:
    """State of a ledger row as returned by one of the interval queries."""
    if row is None or not row.has_value(START_DATE):
        return IntervalState.NO_INTERVAL
    if row.has_value(END_DATE):
        return IntervalState.CLOSED
    return IntervalState.OPEN


class Outcome(str, Enum):
    CREATED = "created"
    ALREADY_OPEN = "already_open"
    CLOSED = "closed"
    RECLOSED = "reclosed"
    NOTHING_TO_CLOSE = "nothing_to_close"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class Decision:
    """What the engine did for one event."""

    outcome: Outcome
    interval_id: UUID | None = None
    reason: str | None = None

    @property
    def mutated(self) -> bool:
        return self.outcome in (Outcome.CREATED, Outcome.CLOSED, Outcome.RECLOSED)

    def to_dict(self) -> dict[str, str | None]:
        return {
            "outcome": self.outcome.value,
            "interval_id": str(self.interval_id) if self.interval_id else None,
            "reason": self.reason,
        }


class ParticipationEngine:
    """Open and close participation intervals in response to access events."""

    def __init__(
        self,
        store: RecordStore,
        tracer: TracingService,
        *,
        clock: Clock = utcnow,
        require_open_on_revoke: bool = False,
    ):
        self.store = store
        self.tracer = tracer
        self.clock = clock
        self.require_open_on_revoke = require_open_on_revoke

    def _skip(self, reason: str) -> Decision:
        self.tracer.trace(reason)
        return Decision(Outcome.SKIPPED, reason=reason)

    def _check_pair(
        self,
        message: MessageName,
        principal: EntityReference,
        target: EntityReference,
    ) -> str | None:
        """Soft-validation reason for a (principal, target) pair, or None if trackable."""
        if principal.id == NIL_ID:
            return f"{message.value}: principal id is empty."
        if principal.logical_name and principal.logical_name != SYSTEM_USER:
            return (
                f"{message.value}: principal {principal} is not a user; "
                "sales team participation is tracked for users only."
            )
        if spec_for(target) is None:
            return f"{message.value}: target type {target.logical_name!r} is not tracked."
        return None

    # -------------------------------------------------------------------------
    # Grant: NO_INTERVAL -> OPEN
    # -------------------------------------------------------------------------

    def handle_grant(self, event: GrantEvent) -> Decision:
        if event.target is None or event.principal_access is None:
            return self._skip("Missing required input parameters for GrantAccess.")

        target = event.target
        principal = event.principal_access.principal
        reason = self._check_pair(MessageName.GRANT_ACCESS, principal, target)
        if reason:
            return self._skip(reason)

        self.tracer.trace(
            f"GrantAccess: User/Team ID={principal.id}, LogicalName={principal.logical_name}, "
            f"AccessMask={event.principal_access.access_mask!s}, Target ID={target.id}"
        )
        context = resolve_target(self.store, target, self.tracer)

        existing = run_query(self.store, open_interval_for_grant(principal.id, target))
        if existing:
            logger.debug("Open interval %s already tracks %s on %s", existing[0].id, principal, target)
            return Decision(Outcome.ALREADY_OPEN, existing[0].id)

        entry = compose_interval(
            self.store,
            self.tracer,
            principal.id,
            IntervalAction.GRANT,
            target,
            context,
            self.clock(),
        )
        interval_id = self.store.create(entry)
        self.tracer.trace(f"Created sales team record for User/Team ID={principal.id}, Target ID={target.id}")
        return Decision(Outcome.CREATED, interval_id)

    # -------------------------------------------------------------------------
    # Revoke: OPEN -> CLOSED
    # -------------------------------------------------------------------------

    def handle_revoke(self, event: RevokeEvent) -> Decision:
        if event.target is None or event.revokee is None:
            return self._skip("Missing required input parameters for RevokeAccess.")

        target = event.target
        revokee = event.revokee
        reason = self._check_pair(MessageName.REVOKE_ACCESS, revokee, target)
        if reason:
            return self._skip(reason)

        self.tracer.trace(
            f"RevokeAccess: Revokee ID={revokee.id}, LogicalName={revokee.logical_name}, Target ID={target.id}"
        )
        query = open_interval_for_revoke(
            revokee.id, target, require_open=self.require_open_on_revoke
        )
        existing = run_query(self.store, query)
        row = existing[0] if existing else None
        state = interval_state(row)
        if row is None or state == IntervalState.NO_INTERVAL:
            return Decision(Outcome.NOTHING_TO_CLOSE)

        # CLOSED is only found without require_open; its end date moves to now
        outcome = Outcome.CLOSED if state == IntervalState.OPEN else Outcome.RECLOSED
        if outcome == Outcome.RECLOSED:
            logger.debug("Latest interval %s is already closed; re-closing", row.id)
        self.close_interval(row.id)  # type: ignore[arg-type]
        return Decision(outcome, row.id)

    def close_interval(self, interval_id: UUID) -> None:
        """Set the end date on one interval; no other field is touched."""
        if interval_id is None or interval_id == NIL_ID:
            raise ValueError("Invalid sales team record ID for update.")
        self.store.update(Record(SALES_TEAM, interval_id, {END_DATE: self.clock()}))
        self.tracer.trace(f"Updated end date for sales team record ID={interval_id}")
