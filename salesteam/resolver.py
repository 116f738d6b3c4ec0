"""
Target resolver: fetch the context a ledger entry copies from its target.

Opportunities keep their hierarchy in `zox_projecthierarchy`; the other target
types keep it in `zox_project`. Both land in TargetContext.hierarchy.
"""

from __future__ import annotations

from dataclasses import dataclass

from .records import (
    DEFAULT_CONTEXT_COLUMNS,
    PACKAGE,
    PROJECT,
    EntityReference,
    Record,
    spec_for,
)
from .store.base import RecordStore
from .trace import TracingService


@dataclass(frozen=True)
class TargetContext:
    """Read-only snapshot of a target's hierarchy and package links."""

    hierarchy: EntityReference | None = None
    package: EntityReference | None = None

    @classmethod
    def empty(cls) -> TargetContext:
        return cls()

    @property
    def is_empty(self) -> bool:
        return self.hierarchy is None and self.package is None


def _reference(record: Record, column: str) -> EntityReference | None:
    value = record.get(column)
    return value if isinstance(value, EntityReference) else None


def resolve_target(
    store: RecordStore,
    target: EntityReference | None,
    tracer: TracingService,
) -> TargetContext:
    """Fetch the TargetContext for a target; empty context for a bad reference."""
    if target is None or not target.logical_name:
        tracer.trace("Invalid target entity reference.")
        return TargetContext.empty()

    spec = spec_for(target)
    if spec is not None:
        columns = spec.context_columns
        hierarchy_column, package_column = spec.hierarchy_column, spec.package_column
    else:
        columns = DEFAULT_CONTEXT_COLUMNS
        hierarchy_column, package_column = PROJECT, PACKAGE

    record = store.retrieve(target.logical_name, target.id, columns)
    return TargetContext(
        hierarchy=_reference(record, hierarchy_column),
        package=_reference(record, package_column),
    )
