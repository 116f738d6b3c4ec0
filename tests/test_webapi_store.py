"""Tests for the Dataverse Web API record store (HTTP stubbed at urlopen)."""

from __future__ import annotations

import io
import json
from datetime import datetime, timezone
from urllib.error import HTTPError, URLError
from urllib.parse import parse_qs, urlsplit
from uuid import uuid4

import pytest

from salesteam.errors import RecordNotFoundError, StoreError
from salesteam.queries import open_interval_for_grant
from salesteam.records import (
    END_DATE,
    LEAD,
    SALES_TEAM,
    START_DATE,
    USER,
    EntityReference,
    Record,
)
from salesteam.store import webapi
from salesteam.store.webapi import WebApiConfig, WebApiRecordStore

BASE = "https://org.example.com/api/data/v9.2"
T0 = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class FakeResponse:
    def __init__(self, payload=None, headers=None):
        self._raw = json.dumps(payload).encode("utf-8") if payload is not None else b""
        self.headers = headers or {}

    def read(self) -> bytes:
        return self._raw

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


class FakeTransport:
    """Records requests and replays queued responses or errors."""

    def __init__(self):
        self.requests = []
        self.responses = []

    def queue(self, response) -> None:
        self.responses.append(response)

    def __call__(self, req, timeout=None):
        body = json.loads(req.data.decode("utf-8")) if req.data else None
        self.requests.append(
            {"method": req.get_method(), "url": req.full_url, "body": body, "headers": dict(req.header_items())}
        )
        response = self.responses.pop(0) if self.responses else FakeResponse()
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def transport(monkeypatch) -> FakeTransport:
    fake = FakeTransport()
    monkeypatch.setattr(webapi, "urlopen", fake)
    return fake


@pytest.fixture
def api() -> WebApiRecordStore:
    return WebApiRecordStore(WebApiConfig(url="https://org.example.com/", token="tok"))


def _query(url: str) -> dict[str, str]:
    return {k: v[0] for k, v in parse_qs(urlsplit(url).query).items()}


# -----------------------------------------------------------------------------
# retrieve
# -----------------------------------------------------------------------------


def test_retrieve_decodes_lookups(transport, api):
    lead_id, project_id = uuid4(), uuid4()
    transport.queue(
        FakeResponse(
            {
                "@odata.context": "ignored",
                "leadid": str(lead_id),
                "_zox_project_value": str(project_id),
                "_zox_project_value@Microsoft.Dynamics.CRM.lookuplogicalname": "zox_project",
                "_zox_package_value": None,
            }
        )
    )

    record = api.retrieve("lead", lead_id, ("zox_project", "zox_package"))

    request = transport.requests[0]
    assert request["method"] == "GET"
    assert urlsplit(request["url"]).path == f"/api/data/v9.2/leads({lead_id})"
    assert _query(request["url"]) == {"$select": "_zox_project_value,_zox_package_value"}
    assert request["headers"]["Authorization"] == "Bearer tok"
    assert record.id == lead_id
    assert record.attributes == {
        "zox_project": EntityReference("zox_project", project_id),
        "zox_package": None,
    }


def test_retrieve_404_is_record_not_found(transport, api):
    transport.queue(
        HTTPError(
            f"{BASE}/leads(x)",
            404,
            "Not Found",
            {},
            io.BytesIO(b'{"error": {"message": "lead With Id = x Does Not Exist"}}'),
        )
    )

    with pytest.raises(RecordNotFoundError) as excinfo:
        api.retrieve("lead", uuid4(), ())
    assert "Does Not Exist" in excinfo.value.__cause__.message


def test_http_error_becomes_store_error(transport, api):
    transport.queue(HTTPError(f"{BASE}/leads", 500, "Server Error", {}, io.BytesIO(b"oops")))

    with pytest.raises(StoreError) as excinfo:
        api.retrieve("lead", uuid4(), ())
    assert not isinstance(excinfo.value, RecordNotFoundError)
    assert excinfo.value.details == {"status": 500}


def test_connection_error_becomes_store_error(transport, api):
    transport.queue(URLError("connection refused"))

    with pytest.raises(StoreError, match="connection refused"):
        api.retrieve("lead", uuid4(), ())


def test_unknown_entity_set_raises(transport, api):
    with pytest.raises(StoreError):
        api.retrieve("account", uuid4(), ())
    assert transport.requests == []


# -----------------------------------------------------------------------------
# create / update
# -----------------------------------------------------------------------------


def test_create_binds_lookups_and_reads_entity_id(transport, api):
    new_id, user_id, lead_id = uuid4(), uuid4(), uuid4()
    transport.queue(FakeResponse(headers={"OData-EntityId": f"{BASE}/zox_salesteams({new_id})"}))
    record = Record(
        SALES_TEAM,
        attributes={
            USER: EntityReference("systemuser", user_id),
            START_DATE: T0,
            LEAD: EntityReference("lead", lead_id),
            "zox_role": 100000001,
        },
    )

    assert api.create(record) == new_id

    request = transport.requests[0]
    assert request["method"] == "POST"
    assert request["url"] == f"{BASE}/zox_salesteams"
    assert request["body"] == {
        "zox_user@odata.bind": f"/systemusers({user_id})",
        "zox_startdate": "2026-03-02T09:00:00Z",
        "zox_lead@odata.bind": f"/leads({lead_id})",
        "zox_role": 100000001,
    }


def test_create_without_entity_id_header_raises(transport, api):
    transport.queue(FakeResponse(headers={}))

    with pytest.raises(StoreError):
        api.create(Record(SALES_TEAM, attributes={START_DATE: T0}))


def test_update_patches_only_given_fields(transport, api):
    interval_id = uuid4()

    api.update(Record(SALES_TEAM, interval_id, {END_DATE: T0}))

    request = transport.requests[0]
    assert request["method"] == "PATCH"
    assert request["url"] == f"{BASE}/zox_salesteams({interval_id})"
    assert request["body"] == {"zox_enddate": "2026-03-02T09:00:00Z"}
    # urllib normalises header names with str.capitalize()
    assert request["headers"]["If-match"] == "*"


def test_update_of_missing_record_is_not_an_upsert(transport, api):
    interval_id = uuid4()
    transport.queue(
        HTTPError(f"{BASE}/zox_salesteams({interval_id})", 404, "Not Found", {}, io.BytesIO(b""))
    )

    with pytest.raises(RecordNotFoundError):
        api.update(Record(SALES_TEAM, interval_id, {END_DATE: T0}))


def test_reads_do_not_send_if_match(transport, api):
    api.retrieve("lead", uuid4(), ())

    assert "If-match" not in transport.requests[0]["headers"]


# -----------------------------------------------------------------------------
# retrieve_multiple
# -----------------------------------------------------------------------------


def test_interval_query_translation(transport, api):
    user_id, row_id = uuid4(), uuid4()
    lead = EntityReference("lead", uuid4())
    transport.queue(
        FakeResponse(
            {
                "value": [
                    {
                        "zox_salesteamid": str(row_id),
                        "_zox_user_value": str(user_id),
                        "_zox_user_value@Microsoft.Dynamics.CRM.lookuplogicalname": "systemuser",
                        "zox_startdate": "2026-03-02T09:00:00Z",
                        "zox_enddate": None,
                    }
                ]
            }
        )
    )

    rows = api.retrieve_multiple(open_interval_for_grant(user_id, lead))

    params = _query(transport.requests[0]["url"])
    assert params["$select"] == "_zox_user_value,zox_startdate,zox_enddate,zox_salesteamid"
    assert params["$filter"] == (
        f"_zox_user_value eq {user_id} and zox_startdate ne null "
        f"and zox_enddate eq null and _zox_lead_value eq {lead.id}"
    )
    assert params["$orderby"] == "zox_startdate desc"
    assert params["$top"] == "1"
    assert len(rows) == 1
    assert rows[0].id == row_id
    assert rows[0][USER] == EntityReference("systemuser", user_id)
    assert rows[0][START_DATE] == T0
    assert rows[0][END_DATE] is None


def test_string_literals_are_quoted():
    assert WebApiRecordStore._literal("O'Brien") == "'O''Brien'"
    assert WebApiRecordStore._literal(True) == "true"
    assert WebApiRecordStore._literal(5) == "5"
