"""
Record stores.

- base: the RecordStore protocol the core depends on
- query: QueryExpression and friends
- memory: dict-backed store (tests, replay)
- ledger_store: append-only JSON Lines store
- webapi: Dataverse Web API client
"""

from .base import RecordStore
from .ledger_store import LedgerRecordStore
from .memory import MemoryRecordStore
from .query import Condition, ConditionOperator, Order, QueryExpression
from .webapi import WebApiConfig, WebApiRecordStore

__all__ = [
    "Condition",
    "ConditionOperator",
    "LedgerRecordStore",
    "MemoryRecordStore",
    "Order",
    "QueryExpression",
    "RecordStore",
    "WebApiConfig",
    "WebApiRecordStore",
]
