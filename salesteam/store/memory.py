"""
In-memory record store.

Evaluates QueryExpressions directly: filter, sort, project, distinct, top.
Every create/update is journaled in `writes` so callers can account for
exactly which mutations an event caused.
"""

from __future__ import annotations

import copy
from typing import Any, Iterable, Sequence
from uuid import UUID, uuid4

from ..errors import RecordNotFoundError, StoreError
from ..records import EntityReference, Record, encode_value
from .query import Order, QueryExpression, attribute_value


def _sort_key(value: Any) -> tuple[bool, Any]:
    # None sorts lowest: first ascending, last descending
    if isinstance(value, EntityReference):
        value = str(value.id)
    elif isinstance(value, UUID):
        value = str(value)
    return (value is not None, value)


def sort_records(records: list[Record], orders: Sequence[Order]) -> list[Record]:
    """Stable multi-key sort; the first order is the primary key."""
    result = list(records)
    for order in reversed(orders):
        result.sort(
            key=lambda r: _sort_key(attribute_value(r, order.attribute)),
            reverse=order.descending,
        )
    return result


def project(record: Record, columns: Sequence[str]) -> Record:
    """Copy of a record restricted to the requested columns."""
    if not columns:
        return copy.deepcopy(record)
    attributes = {
        name: copy.deepcopy(record.attributes[name]) for name in columns if name in record.attributes
    }
    return Record(record.logical_name, record.id, attributes)


def _distinct_key(record: Record, columns: Sequence[str]) -> tuple:
    names = columns or sorted(record.attributes)
    return tuple(repr(encode_value(attribute_value(record, name))) for name in names)


class MemoryRecordStore:
    """Dict-backed RecordStore."""

    def __init__(self, records: Iterable[Record] | None = None):
        self._records: dict[str, dict[UUID, Record]] = {}
        # (operation, logical_name, id) for every create/update
        self.writes: list[tuple[str, str, UUID]] = []
        for record in records or []:
            self.seed(record)

    # -------------------------------------------------------------------------
    # Fixture helpers
    # -------------------------------------------------------------------------

    def seed(self, record: Record) -> UUID:
        """Load a record without journaling it as a write."""
        record_id = record.id or uuid4()
        self._put(Record(record.logical_name, record_id, dict(record.attributes)))
        return record_id

    def records(self, logical_name: str) -> list[Record]:
        """Copies of all records of one entity, in insertion order."""
        return [copy.deepcopy(r) for r in self._records.get(logical_name, {}).values()]

    def get(self, logical_name: str, record_id: UUID) -> Record | None:
        record = self._records.get(logical_name, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    def _put(self, record: Record) -> None:
        assert record.id is not None
        self._records.setdefault(record.logical_name, {})[record.id] = record

    # -------------------------------------------------------------------------
    # RecordStore
    # -------------------------------------------------------------------------

    def retrieve(self, logical_name: str, record_id: UUID, columns: Sequence[str]) -> Record:
        record = self._records.get(logical_name, {}).get(record_id)
        if record is None:
            raise RecordNotFoundError(logical_name, record_id)
        return project(record, columns)

    def _check_create(self, record: Record) -> UUID:
        """Id the record will be created under; raises if it is taken."""
        record_id = record.id or uuid4()
        if record_id in self._records.get(record.logical_name, {}):
            raise StoreError(
                f"{record.logical_name} with id {record_id} already exists",
                {"logical_name": record.logical_name, "id": str(record_id)},
            )
        return record_id

    def _check_update(self, record: Record) -> Record:
        """Stored record an update applies to; raises if there is none."""
        if record.id is None:
            raise StoreError(f"Cannot update {record.logical_name} without an id")
        existing = self._records.get(record.logical_name, {}).get(record.id)
        if existing is None:
            raise RecordNotFoundError(record.logical_name, record.id)
        return existing

    def create(self, record: Record) -> UUID:
        record_id = self._check_create(record)
        self._put(Record(record.logical_name, record_id, copy.deepcopy(record.attributes)))
        self.writes.append(("create", record.logical_name, record_id))
        return record_id

    def update(self, record: Record) -> None:
        existing = self._check_update(record)
        existing.attributes.update(copy.deepcopy(record.attributes))
        self.writes.append(("update", record.logical_name, record.id))

    def retrieve_multiple(self, query: QueryExpression) -> list[Record]:
        candidates = self._records.get(query.entity_name, {}).values()
        matched = [r for r in candidates if query.matches(r)]
        rows = [project(r, query.columns) for r in sort_records(matched, query.orders)]

        if query.distinct:
            seen: set[tuple] = set()
            unique: list[Record] = []
            for row in rows:
                key = _distinct_key(row, query.columns)
                if key in seen:
                    continue
                seen.add(key)
                unique.append(row)
            rows = unique

        if query.top_count is not None:
            rows = rows[: query.top_count]
        return rows
