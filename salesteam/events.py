"""
Access-control events delivered by the platform.

The host hands the dispatcher an ExecutionContext: a message name plus the
platform's input parameters. GrantAccess carries `Target` and
`PrincipalAccess`; RevokeAccess carries `Target` and `Revokee`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntFlag
from typing import Any
from uuid import UUID

from .errors import EventFormatError
from .records import NIL_ID, EntityReference

TARGET = "Target"
PRINCIPAL_ACCESS = "PrincipalAccess"
REVOKEE = "Revokee"


class MessageName(str, Enum):
    """Platform messages the handler is registered on."""

    GRANT_ACCESS = "GrantAccess"
    REVOKE_ACCESS = "RevokeAccess"


class AccessRights(IntFlag):
    """Access mask bits carried by PrincipalAccess."""

    NONE = 0
    READ = 1
    WRITE = 2
    APPEND = 4
    APPEND_TO = 16
    CREATE = 32
    DELETE = 65536
    SHARE = 262144
    ASSIGN = 524288


@dataclass(frozen=True)
class PrincipalAccess:
    principal: EntityReference
    access_mask: AccessRights = AccessRights.READ

    def to_dict(self) -> dict[str, Any]:
        return {"Principal": self.principal.to_dict(), "AccessMask": int(self.access_mask)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PrincipalAccess:
        return cls(
            principal=EntityReference.from_dict(data.get("Principal") or {}),
            access_mask=AccessRights(int(data.get("AccessMask", AccessRights.READ))),
        )


@dataclass(frozen=True)
class GrantEvent:
    """A principal was granted access to a target record."""

    target: EntityReference | None
    principal_access: PrincipalAccess | None

    @property
    def principal(self) -> EntityReference | None:
        return self.principal_access.principal if self.principal_access else None


@dataclass(frozen=True)
class RevokeEvent:
    """A principal's access to a target record was removed."""

    target: EntityReference | None
    revokee: EntityReference | None


@dataclass
class ExecutionContext:
    """Event-source handle passed to the dispatcher for one event."""

    message_name: str
    input_parameters: dict[str, Any] = field(default_factory=dict)
    initiating_user_id: UUID = NIL_ID
    correlation_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for key, value in self.input_parameters.items():
            params[key] = value.to_dict() if hasattr(value, "to_dict") else value
        d: dict[str, Any] = {
            "MessageName": self.message_name,
            "InitiatingUserId": str(self.initiating_user_id),
            "InputParameters": params,
        }
        if self.correlation_id:
            d["CorrelationId"] = self.correlation_id
        return d


def _typed(context: ExecutionContext, key: str, expected: type) -> Any:
    """Read an input parameter, failing hard on a wrong type."""
    value = context.input_parameters.get(key)
    if value is not None and not isinstance(value, expected):
        raise TypeError(
            f"Input parameter {key!r} must be {expected.__name__}, got {type(value).__name__}"
        )
    return value


def grant_event(context: ExecutionContext) -> GrantEvent:
    """Read a GrantEvent from a context; missing parameters become None."""
    return GrantEvent(
        target=_typed(context, TARGET, EntityReference),
        principal_access=_typed(context, PRINCIPAL_ACCESS, PrincipalAccess),
    )


def revoke_event(context: ExecutionContext) -> RevokeEvent:
    """Read a RevokeEvent from a context; missing parameters become None."""
    return RevokeEvent(
        target=_typed(context, TARGET, EntityReference),
        revokee=_typed(context, REVOKEE, EntityReference),
    )


def context_from_dict(data: dict[str, Any]) -> ExecutionContext:
    """
    Parse the JSON form of an ExecutionContext (see ExecutionContext.to_dict).

    Raises:
        EventFormatError: the document is not an object, or an id or access
            mask in it cannot be parsed.
    """
    if not isinstance(data, dict):
        raise EventFormatError(f"Event must be a JSON object, got {type(data).__name__}")
    message_name = str(data.get("MessageName", ""))
    raw_params = data.get("InputParameters") or {}
    if not isinstance(raw_params, dict):
        raise EventFormatError("InputParameters must be a JSON object", {"message_name": message_name})

    try:
        params: dict[str, Any] = {}
        for key, value in raw_params.items():
            if key in (TARGET, REVOKEE) and isinstance(value, dict):
                params[key] = EntityReference.from_dict(value)
            elif key == PRINCIPAL_ACCESS and isinstance(value, dict):
                params[key] = PrincipalAccess.from_dict(value)
            else:
                params[key] = value
        initiating_user_id = UUID(str(data.get("InitiatingUserId") or NIL_ID))
    except (ValueError, TypeError, AttributeError) as e:
        raise EventFormatError(
            f"Malformed {message_name or 'event'}: {e}", {"message_name": message_name}
        ) from e

    return ExecutionContext(
        message_name=message_name,
        input_parameters=params,
        initiating_user_id=initiating_user_id,
        correlation_id=data.get("CorrelationId"),
    )
