"""
Ledger entry composer.

Assembles every field of a new zox_salesteam row so it is written in a single
create call: who, when, which target, copied hierarchy/package context and the
principal's role and line of business.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from .records import (
    END_DATE,
    NIL_ID,
    PACKAGE,
    PROFILE_COLUMNS,
    PROJECT,
    SALES_TEAM,
    START_DATE,
    SYSTEM_USER,
    USER,
    EntityReference,
    Record,
    spec_for,
)
from .resolver import TargetContext
from .store.base import RecordStore
from .trace import TracingService


class IntervalAction(str, Enum):
    GRANT = "Grant"
    REVOKE = "Revoke"


def set_target_fields(entry: Record, target: EntityReference, context: TargetContext) -> None:
    """Set the correlation field and copy hierarchy/package links."""
    spec = spec_for(target)
    if spec is not None:
        entry[spec.correlation_field] = target

    if context.hierarchy is not None:
        entry[PROJECT] = EntityReference(PROJECT, context.hierarchy.id)
    if context.package is not None:
        entry[PACKAGE] = EntityReference(
            context.package.logical_name or PACKAGE, context.package.id
        )


def copy_profile(store: RecordStore, entry: Record, principal_id: UUID) -> None:
    """Copy role and line of business when the user has them; never null them."""
    profile = store.retrieve(SYSTEM_USER, principal_id, PROFILE_COLUMNS)
    for column in PROFILE_COLUMNS:
        if profile.has_value(column):
            entry[column] = profile[column]


def compose_interval(
    store: RecordStore,
    tracer: TracingService,
    principal_id: UUID,
    action: IntervalAction,
    target: EntityReference | None,
    context: TargetContext,
    now: datetime,
) -> Record:
    """Build (but do not persist) a zox_salesteam entry."""
    if principal_id == NIL_ID or target is None:
        tracer.trace("Invalid parameters for compose_interval.")
        raise ValueError("compose_interval requires a principal id and a target")

    entry = Record(SALES_TEAM)
    entry[USER] = EntityReference(SYSTEM_USER, principal_id)

    if action == IntervalAction.GRANT:
        entry[START_DATE] = now
    else:
        entry[END_DATE] = now

    set_target_fields(entry, target, context)
    copy_profile(store, entry, principal_id)
    return entry
