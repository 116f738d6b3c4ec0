"""Dataverse Web API record store (small, dependency-free).

Targets the OData endpoint under /api/data/v9.2/:
  - retrieve:          GET   /{entityset}({id})?$select=...
  - retrieve_multiple: GET   /{entityset}?$select=&$filter=&$orderby=&$top=
  - create:            POST  /{entityset}           (id from OData-EntityId)
  - update:            PATCH /{entityset}({id})

Lookup columns are written with `<attr>@odata.bind` and read back from
`_<attr>_value` plus the lookuplogicalname annotation.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Sequence
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urlencode
from urllib.request import Request, urlopen
from uuid import UUID

from ..errors import RecordNotFoundError, StoreError
from ..records import (
    END_DATE,
    LEAD,
    OPPORTUNITY,
    PACKAGE,
    PRELEAD,
    PROJECT,
    PROJECT_HIERARCHY,
    START_DATE,
    USER,
    EntityReference,
    Record,
)
from .query import ConditionOperator, QueryExpression

logger = logging.getLogger(__name__)

DEFAULT_ENTITY_SETS = {
    "zox_salesteam": "zox_salesteams",
    "zox_prelead": "zox_preleads",
    "zox_project": "zox_projects",
    "zox_package": "zox_packages",
    "lead": "leads",
    "opportunity": "opportunities",
    "systemuser": "systemusers",
    "team": "teams",
}

DEFAULT_LOOKUP_COLUMNS = frozenset(
    {USER, PRELEAD, LEAD, OPPORTUNITY, PROJECT, PACKAGE, PROJECT_HIERARCHY}
)
DEFAULT_DATETIME_COLUMNS = frozenset({START_DATE, END_DATE})

_LOOKUP_LOGICAL_NAME = "@Microsoft.Dynamics.CRM.lookuplogicalname"
_ENTITY_ID_RE = re.compile(r"\(([0-9a-fA-F-]{36})\)\s*$")


@dataclass(frozen=True)
class WebApiConfig:
    url: str
    token: str
    api_version: str = "9.2"
    timeout_s: float = 10.0
    entity_sets: dict[str, str] = field(default_factory=lambda: dict(DEFAULT_ENTITY_SETS))
    lookup_columns: frozenset[str] = DEFAULT_LOOKUP_COLUMNS
    datetime_columns: frozenset[str] = DEFAULT_DATETIME_COLUMNS


def _format_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _parse_datetime(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class WebApiRecordStore:
    """RecordStore over the Dataverse Web API."""

    def __init__(self, cfg: WebApiConfig) -> None:
        self._cfg = cfg
        self._base = f"{cfg.url.rstrip('/')}/api/data/v{cfg.api_version}"

    # -------------------------------------------------------------------------
    # Naming
    # -------------------------------------------------------------------------

    def entity_set(self, logical_name: str) -> str:
        try:
            return self._cfg.entity_sets[logical_name]
        except KeyError:
            raise StoreError(f"No entity set configured for {logical_name!r}") from None

    def _column(self, attribute: str) -> str:
        """Column name as it appears in $select/$filter/$orderby."""
        if attribute in self._cfg.lookup_columns:
            return f"_{attribute}_value"
        return attribute

    def _select(self, columns: Sequence[str]) -> str:
        return ",".join(self._column(c) for c in columns)

    # -------------------------------------------------------------------------
    # Payload translation
    # -------------------------------------------------------------------------

    def _encode_body(self, record: Record) -> dict[str, Any]:
        body: dict[str, Any] = {}
        for name, value in record.attributes.items():
            if isinstance(value, EntityReference):
                body[f"{name}@odata.bind"] = f"/{self.entity_set(value.logical_name)}({value.id})"
            elif isinstance(value, datetime):
                body[name] = _format_datetime(value)
            elif isinstance(value, UUID):
                body[name] = str(value)
            else:
                body[name] = value
        return body

    def _decode_row(self, logical_name: str, row: dict[str, Any]) -> Record:
        primary = f"{logical_name}id"
        raw_id = row.get(primary)
        record = Record(logical_name, UUID(raw_id) if raw_id else None)
        for key, value in row.items():
            if "@" in key or key == primary:
                continue
            if key.startswith("_") and key.endswith("_value"):
                name = key[1:-len("_value")]
                if value is None:
                    record[name] = None
                else:
                    target = row.get(f"{key}{_LOOKUP_LOGICAL_NAME}", "")
                    record[name] = EntityReference(target, UUID(value))
            elif key in self._cfg.datetime_columns and isinstance(value, str):
                record[key] = _parse_datetime(value)
            else:
                record[key] = value
        return record

    def _filter(self, query: QueryExpression) -> str:
        clauses: list[str] = []
        for condition in query.conditions:
            column = self._column(condition.attribute)
            if condition.operator == ConditionOperator.NULL:
                clauses.append(f"{column} eq null")
            elif condition.operator == ConditionOperator.NOT_NULL:
                clauses.append(f"{column} ne null")
            else:
                clauses.append(f"{column} eq {self._literal(condition.value)}")
        return " and ".join(clauses)

    @staticmethod
    def _literal(value: Any) -> str:
        if isinstance(value, EntityReference):
            return str(value.id)
        if isinstance(value, (UUID, int, float)) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, datetime):
            return _format_datetime(value)
        if value is None:
            return "null"
        return "'" + str(value).replace("'", "''") + "'"

    # -------------------------------------------------------------------------
    # HTTP
    # -------------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        params: dict[str, str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[dict[str, Any] | None, dict[str, str]]:
        url = f"{self._base}/{path}"
        if params:
            url += "?" + urlencode(params, quote_via=quote, safe="$,()'")
        data = json.dumps(body).encode("utf-8") if body is not None else None
        req = Request(
            url,
            data=data,
            method=method,
            headers={
                "Authorization": f"Bearer {self._cfg.token}",
                "Accept": "application/json",
                "Content-Type": "application/json; charset=utf-8",
                "OData-MaxVersion": "4.0",
                "OData-Version": "4.0",
                "Prefer": f'odata.include-annotations="{_LOOKUP_LOGICAL_NAME[1:]}"',
            } | (headers or {}),
        )
        logger.debug("%s %s", method, url)
        try:
            with urlopen(req, timeout=self._cfg.timeout_s) as resp:
                raw = resp.read()
                headers = {k.lower(): v for k, v in resp.headers.items()}
        except HTTPError as e:
            raise self._http_error(e) from e
        except URLError as e:
            raise StoreError(f"Web API connection error: {e.reason}") from e

        payload = json.loads(raw.decode("utf-8")) if raw else None
        return payload, headers

    @staticmethod
    def _http_error(e: HTTPError) -> StoreError:
        message = e.reason
        try:
            detail = json.loads(e.read().decode("utf-8"))
            message = detail.get("error", {}).get("message") or message
        except (ValueError, AttributeError, OSError):
            pass
        return StoreError(f"Web API HTTP error {e.code}: {message}", {"status": e.code})

    # -------------------------------------------------------------------------
    # RecordStore
    # -------------------------------------------------------------------------

    def retrieve(self, logical_name: str, record_id: UUID, columns: Sequence[str]) -> Record:
        params = {"$select": self._select(columns)} if columns else None
        try:
            payload, _ = self._request(
                "GET", f"{self.entity_set(logical_name)}({record_id})", params=params
            )
        except StoreError as e:
            if e.details.get("status") == 404:
                raise RecordNotFoundError(logical_name, record_id) from e
            raise
        return self._decode_row(logical_name, payload or {})

    def create(self, record: Record) -> UUID:
        body = self._encode_body(record)
        if record.id is not None:
            body[f"{record.logical_name}id"] = str(record.id)
        _, headers = self._request("POST", self.entity_set(record.logical_name), body=body)
        entity_id = headers.get("odata-entityid", "")
        match = _ENTITY_ID_RE.search(entity_id)
        if not match:
            if record.id is not None:
                return record.id
            raise StoreError(f"Create returned no OData-EntityId for {record.logical_name}")
        return UUID(match.group(1))

    def update(self, record: Record) -> None:
        if record.id is None:
            raise StoreError(f"Cannot update {record.logical_name} without an id")
        # If-Match: * turns the PATCH into a strict update instead of an upsert
        try:
            self._request(
                "PATCH",
                f"{self.entity_set(record.logical_name)}({record.id})",
                body=self._encode_body(record),
                headers={"If-Match": "*"},
            )
        except StoreError as e:
            if e.details.get("status") == 404:
                raise RecordNotFoundError(record.logical_name, record.id) from e
            raise

    def retrieve_multiple(self, query: QueryExpression) -> list[Record]:
        params: dict[str, str] = {}
        if query.columns:
            params["$select"] = self._select(query.columns)
        if query.conditions:
            params["$filter"] = self._filter(query)
        if query.orders:
            params["$orderby"] = ",".join(
                f"{self._column(o.attribute)} {'desc' if o.descending else 'asc'}"
                for o in query.orders
            )
        if query.top_count is not None:
            params["$top"] = str(query.top_count)
        # Rows are unique by primary key, so distinct needs no translation
        payload, _ = self._request("GET", self.entity_set(query.entity_name), params=params)
        rows = (payload or {}).get("value") or []
        return [self._decode_row(query.entity_name, row) for row in rows]
