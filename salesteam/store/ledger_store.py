"""
Append-only file record store.

Records live in a JSON Lines file of record events, one per line. Lines are
never rewritten: a create appends `record.created`, an update appends
`record.updated` with only the changed attributes. Current state is the fold
of all events, rebuilt when the store is opened.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator
from uuid import UUID, uuid4

from ..errors import StoreError
from ..records import Record
from .memory import MemoryRecordStore

logger = logging.getLogger(__name__)

RECORD_CREATED = "record.created"
RECORD_UPDATED = "record.updated"

RECORD_EVENT_TYPES = frozenset({RECORD_CREATED, RECORD_UPDATED})


@dataclass(frozen=True)
class RecordEvent:
    """One line of the record ledger."""

    event_type: str
    timestamp: datetime
    record: Record

    def __post_init__(self) -> None:
        if self.event_type not in RECORD_EVENT_TYPES:
            raise ValueError(f"Invalid event_type: {self.event_type}")

    def to_json(self) -> str:
        return json.dumps(
            {
                "event_type": self.event_type,
                "timestamp": self.timestamp.isoformat(),
                "record": self.record.to_dict(),
            },
            separators=(",", ":"),
        )

    @classmethod
    def from_json(cls, line: str) -> RecordEvent:
        data: dict[str, Any] = json.loads(line)
        return cls(
            event_type=data["event_type"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            record=Record.from_dict(data["record"]),
        )


class LedgerRecordStore(MemoryRecordStore):
    """
    MemoryRecordStore persisted as an append-only event file.

    INVARIANT: existing lines are never modified; the only file write is an
    append.
    """

    def __init__(self, path: Path):
        super().__init__()
        self.path = path
        self._fold(self.iter_events())

    def iter_events(self) -> Iterator[RecordEvent]:
        """Iterate over ledger events in append order."""
        if not self.path.exists():
            return
        with self.path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    yield RecordEvent.from_json(line)
                except (ValueError, KeyError) as e:
                    raise StoreError(
                        f"Corrupt record ledger line {lineno} in {self.path}: {e}"
                    ) from e

    def _fold(self, events: Iterator[RecordEvent]) -> None:
        count = 0
        for event in events:
            record = event.record
            if event.event_type == RECORD_CREATED:
                self._put(record)
            else:
                existing = self._records.get(record.logical_name, {}).get(record.id)  # type: ignore[arg-type]
                if existing is None:
                    raise StoreError(f"Update for unknown record {record.logical_name}({record.id})")
                existing.attributes.update(record.attributes)
            count += 1
        logger.debug("Folded %d record events from %s", count, self.path)

    def _append(self, event_type: str, record: Record) -> None:
        event = RecordEvent(event_type, datetime.now(timezone.utc), record)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(event.to_json() + "\n")
        except OSError as e:
            raise StoreError(f"Failed to append to record ledger {self.path}: {e}") from e

    # -------------------------------------------------------------------------
    # Writes: validate, append, then apply to memory
    # -------------------------------------------------------------------------

    def seed(self, record: Record) -> UUID:
        stored = Record(record.logical_name, record.id or uuid4(), dict(record.attributes))
        self._append(RECORD_CREATED, stored)
        return super().seed(stored)

    def create(self, record: Record) -> UUID:
        stored = Record(record.logical_name, self._check_create(record), dict(record.attributes))
        self._append(RECORD_CREATED, stored)
        return super().create(stored)

    def update(self, record: Record) -> None:
        self._check_update(record)
        self._append(RECORD_UPDATED, record)
        super().update(record)
