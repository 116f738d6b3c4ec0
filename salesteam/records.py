"""
Record references, attribute bags and the supported target type table.

The ledger entity is ``zox_salesteam``: one row per (user, target record)
participation interval. Target record types are a closed set; everything
type-specific (which correlation field to filter on, which context columns to
fetch) lives in TARGET_SPECS so a new type is one table entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterator
from uuid import UUID

# Nil/empty identifier sentinel
NIL_ID = UUID(int=0)

# Ledger entity
SALES_TEAM = "zox_salesteam"
SALES_TEAM_ID = "zox_salesteamid"
USER = "zox_user"
START_DATE = "zox_startdate"
END_DATE = "zox_enddate"
PRELEAD = "zox_prelead"
LEAD = "zox_lead"
OPPORTUNITY = "zox_opportunity"
PROJECT = "zox_project"
PACKAGE = "zox_package"
ROLE = "zox_role"
LINE_OF_BUSINESS = "zox_lob"

# Principals
SYSTEM_USER = "systemuser"
TEAM = "team"
PROFILE_COLUMNS = (ROLE, LINE_OF_BUSINESS)

# Hierarchy context as stored on opportunities
PROJECT_HIERARCHY = "zox_projecthierarchy"


@dataclass(frozen=True)
class EntityReference:
    """Typed pointer to a record: (logical name, id)."""

    logical_name: str
    id: UUID
    name: str | None = None

    def __str__(self) -> str:
        return f"{self.logical_name}({self.id})"

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"LogicalName": self.logical_name, "Id": str(self.id)}
        if self.name:
            d["Name"] = self.name
        return d

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EntityReference:
        """Parse the platform's {"LogicalName", "Id"} shape."""
        return cls(
            logical_name=str(data.get("LogicalName", "")),
            id=UUID(str(data.get("Id") or NIL_ID)),
            name=data.get("Name"),
        )


@dataclass
class Record:
    """
    Attribute bag for one record.

    Used for reads (retrieve / retrieve_multiple rows) and writes (create /
    update payloads). Attributes missing from the bag were either not
    requested or not set; a present attribute may still be None.
    """

    logical_name: str
    id: UUID | None = None
    attributes: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.attributes[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self.attributes

    def __iter__(self) -> Iterator[str]:
        return iter(self.attributes)

    def get(self, key: str, default: Any = None) -> Any:
        return self.attributes.get(key, default)

    def has_value(self, key: str) -> bool:
        """True when the attribute is present and not None."""
        return self.attributes.get(key) is not None

    def to_reference(self) -> EntityReference:
        if self.id is None:
            raise ValueError(f"{self.logical_name} record has no id")
        return EntityReference(self.logical_name, self.id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict (tagged attribute values)."""
        return {
            "logical_name": self.logical_name,
            "id": str(self.id) if self.id is not None else None,
            "attributes": {k: encode_value(v) for k, v in self.attributes.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Record:
        raw_id = data.get("id")
        return cls(
            logical_name=data["logical_name"],
            id=UUID(raw_id) if raw_id else None,
            attributes={k: decode_value(v) for k, v in (data.get("attributes") or {}).items()},
        )


def encode_value(value: Any) -> Any:
    """Encode an attribute value for JSON storage."""
    if isinstance(value, EntityReference):
        return {"$ref": value.to_dict()}
    if isinstance(value, datetime):
        return {"$datetime": value.isoformat()}
    if isinstance(value, UUID):
        return {"$uuid": str(value)}
    return value


def decode_value(value: Any) -> Any:
    """Inverse of encode_value()."""
    if isinstance(value, dict) and len(value) == 1:
        if "$ref" in value:
            return EntityReference.from_dict(value["$ref"])
        if "$datetime" in value:
            return datetime.fromisoformat(value["$datetime"])
        if "$uuid" in value:
            return UUID(value["$uuid"])
    return value


def reference_id(value: Any) -> UUID | None:
    """Id carried by a lookup value (reference, UUID or UUID string)."""
    if isinstance(value, EntityReference):
        return value.id
    if isinstance(value, UUID):
        return value
    if isinstance(value, str):
        try:
            return UUID(value)
        except ValueError:
            return None
    return None


# -----------------------------------------------------------------------------
# Supported target record types
# -----------------------------------------------------------------------------


class TargetType(str, Enum):
    """Record types whose sharing is tracked on the ledger."""

    PRELEAD = "zox_prelead"
    LEAD = "lead"
    OPPORTUNITY = "opportunity"


@dataclass(frozen=True)
class TargetSpec:
    """Everything the ledger needs to know about one target type."""

    type: TargetType
    correlation_field: str  # ledger attribute pointing at the target
    hierarchy_column: str  # target attribute holding hierarchy context
    package_column: str = PACKAGE

    @property
    def context_columns(self) -> tuple[str, ...]:
        return (self.hierarchy_column, self.package_column)


TARGET_SPECS: dict[TargetType, TargetSpec] = {
    TargetType.PRELEAD: TargetSpec(TargetType.PRELEAD, PRELEAD, hierarchy_column=PROJECT),
    TargetType.LEAD: TargetSpec(TargetType.LEAD, LEAD, hierarchy_column=PROJECT),
    TargetType.OPPORTUNITY: TargetSpec(
        TargetType.OPPORTUNITY, OPPORTUNITY, hierarchy_column=PROJECT_HIERARCHY
    ),
}

# Columns fetched for record types outside the table
DEFAULT_CONTEXT_COLUMNS = (PROJECT, PACKAGE)

CORRELATION_FIELDS = tuple(s.correlation_field for s in TARGET_SPECS.values())


def spec_for(target: EntityReference | None) -> TargetSpec | None:
    """Look up the TargetSpec for a target reference (None if unsupported)."""
    if target is None or not target.logical_name:
        return None
    try:
        return TARGET_SPECS[TargetType(target.logical_name)]
    except ValueError:
        return None
