"""
Query expressions over a record store.

A QueryExpression is data: an entity name, the columns to return, an AND-ed
list of conditions, sort orders, an optional top count and a distinct flag.
Stores either evaluate it directly (matches()) or translate it to their own
query language.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from ..records import Record, encode_value, reference_id


class ConditionOperator(str, Enum):
    """Supported condition operators."""

    EQUAL = "eq"
    NULL = "null"
    NOT_NULL = "not-null"


@dataclass(frozen=True)
class Condition:
    attribute: str
    operator: ConditionOperator
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"attribute": self.attribute, "operator": self.operator.value}
        if self.operator == ConditionOperator.EQUAL:
            d["value"] = encode_value(self.value)
        return d


@dataclass(frozen=True)
class Order:
    attribute: str
    descending: bool = False


def attribute_value(record: Record, attribute: str) -> Any:
    """Read an attribute, mapping the primary key column to record.id."""
    if attribute == f"{record.logical_name}id":
        return record.id
    return record.get(attribute)


def _equals(actual: Any, expected: Any) -> bool:
    if isinstance(expected, UUID):
        return reference_id(actual) == expected
    return actual == expected


@dataclass
class QueryExpression:
    """Declarative query over one entity."""

    entity_name: str
    columns: tuple[str, ...] = ()  # empty = all columns
    conditions: list[Condition] = field(default_factory=list)
    orders: list[Order] = field(default_factory=list)
    top_count: int | None = None
    distinct: bool = False

    def add_condition(
        self,
        attribute: str,
        operator: ConditionOperator,
        value: Any = None,
    ) -> QueryExpression:
        self.conditions.append(Condition(attribute, operator, value))
        return self

    def add_order(self, attribute: str, *, descending: bool = False) -> QueryExpression:
        self.orders.append(Order(attribute, descending))
        return self

    def condition_for(self, attribute: str) -> Condition | None:
        """First condition on an attribute, if any."""
        for condition in self.conditions:
            if condition.attribute == attribute:
                return condition
        return None

    def matches(self, record: Record) -> bool:
        """Evaluate all conditions (AND) against a full record."""
        if record.logical_name != self.entity_name:
            return False
        for condition in self.conditions:
            actual = attribute_value(record, condition.attribute)
            if condition.operator == ConditionOperator.EQUAL:
                if not _equals(actual, condition.value):
                    return False
            elif condition.operator == ConditionOperator.NULL:
                if actual is not None:
                    return False
            elif condition.operator == ConditionOperator.NOT_NULL:
                if actual is None:
                    return False
        return True

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logging and JSON output."""
        result: dict[str, Any] = {
            "entity_name": self.entity_name,
            "columns": list(self.columns),
            "conditions": [c.to_dict() for c in self.conditions],
            "orders": [
                {"attribute": o.attribute, "descending": o.descending} for o in self.orders
            ],
        }
        if self.top_count is not None:
            result["top_count"] = self.top_count
        if self.distinct:
            result["distinct"] = True
        return result
