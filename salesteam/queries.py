"""
Ledger query builder.

Builds the lookups that find the interval a grant or revoke applies to. Both
return at most one row, most recent start first. A nil principal id or an
absent target is the degenerate case: the builders return None and
run_query() treats that as an empty result.
"""

from __future__ import annotations

from uuid import UUID

from .records import (
    END_DATE,
    NIL_ID,
    SALES_TEAM,
    SALES_TEAM_ID,
    START_DATE,
    USER,
    EntityReference,
    Record,
    spec_for,
)
from .store.base import RecordStore
from .store.query import ConditionOperator, QueryExpression


def add_target_condition(query: QueryExpression, target: EntityReference) -> QueryExpression:
    """Filter on the correlation field for the target's type (none if unsupported)."""
    spec = spec_for(target)
    if spec is not None:
        query.add_condition(spec.correlation_field, ConditionOperator.EQUAL, target.id)
    return query


def open_interval_for_grant(
    principal_id: UUID,
    target: EntityReference | None,
) -> QueryExpression | None:
    """Open interval (start set, end unset) for a principal on a target."""
    if principal_id == NIL_ID or target is None:
        return None

    query = QueryExpression(
        SALES_TEAM,
        columns=(USER, START_DATE, END_DATE, SALES_TEAM_ID),
        top_count=1,
        distinct=True,
    )
    query.add_condition(USER, ConditionOperator.EQUAL, principal_id)
    query.add_condition(START_DATE, ConditionOperator.NOT_NULL)
    query.add_condition(END_DATE, ConditionOperator.NULL)
    query.add_order(START_DATE, descending=True)
    return add_target_condition(query, target)


def open_interval_for_revoke(
    principal_id: UUID,
    target: EntityReference | None,
    *,
    require_open: bool = False,
) -> QueryExpression | None:
    """
    Latest started interval for a principal on a target.

    By default the end date is unconstrained, so an already-closed interval
    is found when it is the latest one. require_open=True adds the same
    end-date filter as the grant side.
    """
    if principal_id == NIL_ID or target is None:
        return None

    query = QueryExpression(
        SALES_TEAM,
        columns=(USER, START_DATE, END_DATE, SALES_TEAM_ID),
        top_count=1,
    )
    query.add_condition(USER, ConditionOperator.EQUAL, principal_id)
    query.add_condition(START_DATE, ConditionOperator.NOT_NULL)
    if require_open:
        query.add_condition(END_DATE, ConditionOperator.NULL)
    query.add_order(START_DATE, descending=True)
    return add_target_condition(query, target)


def run_query(store: RecordStore, query: QueryExpression | None) -> list[Record]:
    """Execute a built query; the degenerate (None) query yields no rows."""
    if query is None:
        return []
    return store.retrieve_multiple(query)
