"""Record store protocol: the data-access capability the core depends on."""

from __future__ import annotations

from typing import Protocol, Sequence, runtime_checkable
from uuid import UUID

from ..records import Record
from .query import QueryExpression


@runtime_checkable
class RecordStore(Protocol):
    """
    Synchronous, blocking record access.

    Every operation may fail independently; failures raise StoreError (or
    RecordNotFoundError for retrieve) and are never retried here.
    """

    def retrieve(self, logical_name: str, record_id: UUID, columns: Sequence[str]) -> Record:
        """Fetch one record with the requested columns."""
        ...

    def create(self, record: Record) -> UUID:
        """Create a record in one call and return its id."""
        ...

    def update(self, record: Record) -> None:
        """Set the given attributes on an existing record; others are untouched."""
        ...

    def retrieve_multiple(self, query: QueryExpression) -> list[Record]:
        """Run a query and return the matching rows."""
        ...
