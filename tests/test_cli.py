"""CLI integration tests: load records, replay events, inspect intervals."""

from __future__ import annotations

import json
from pathlib import Path
from uuid import uuid4

import pytest
from click.testing import CliRunner

from salesteam.cli import cli
from salesteam.records import EntityReference, Record
from salesteam.store.ledger_store import LedgerRecordStore


@pytest.fixture
def workspace(tmp_path: Path) -> dict:
    """Config with a ledger store, plus one user and one lead to share."""
    config = tmp_path / "salesteam.yml"
    config.write_text(
        "store:\n  kind: ledger\n  path: records.jsonl\nlog_level: WARNING\n",
        encoding="utf-8",
    )
    user = EntityReference("systemuser", uuid4())
    project = EntityReference("zox_project", uuid4())
    lead = EntityReference("lead", uuid4())

    records = tmp_path / "records-seed.jsonl"
    records.write_text(
        "\n".join(
            json.dumps(r.to_dict())
            for r in (
                Record("systemuser", user.id, {"zox_role": 100000001, "zox_lob": 100000002}),
                Record("lead", lead.id, {"zox_project": project}),
            )
        ),
        encoding="utf-8",
    )
    return {"root": tmp_path, "config": config, "records": records, "user": user, "lead": lead}


def _event(message: str, target: EntityReference, principal: EntityReference) -> dict:
    params = {"Target": target.to_dict()}
    if message == "GrantAccess":
        params["PrincipalAccess"] = {"Principal": principal.to_dict(), "AccessMask": 1}
    else:
        params["Revokee"] = principal.to_dict()
    return {"MessageName": message, "InputParameters": params}


def _invoke(workspace: dict, *args: str):
    runner = CliRunner()
    return runner.invoke(cli, ["--config", str(workspace["config"]), *args], obj={})


def _load(workspace: dict) -> None:
    result = _invoke(workspace, "load-records", str(workspace["records"]))
    assert result.exit_code == 0, result.output
    assert "Loaded 2 records." in result.output


def _dispatch(workspace: dict, events: list[dict]) -> tuple[int, list[dict]]:
    path = workspace["root"] / "events.json"
    path.write_text(json.dumps(events), encoding="utf-8")
    result = _invoke(workspace, "dispatch", str(path), "--json")
    return result.exit_code, json.loads(result.output)


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------


def test_grant_and_revoke_round_trip(workspace):
    _load(workspace)
    user, lead = workspace["user"], workspace["lead"]

    code, results = _dispatch(
        workspace,
        [
            _event("GrantAccess", lead, user),
            _event("GrantAccess", lead, user),
            _event("Create", lead, user),
        ],
    )

    assert code == 0
    assert [r["outcome"] for r in results] == ["created", "already_open", "ignored"]
    interval_id = results[0]["interval_id"]

    result = _invoke(workspace, "intervals", "--open-only", "--json")
    rows = json.loads(result.output)
    assert [r["id"] for r in rows] == [interval_id]
    assert rows[0]["attributes"]["zox_lead"]["$ref"]["Id"] == str(lead.id)
    assert rows[0]["attributes"]["zox_role"] == 100000001

    code, results = _dispatch(workspace, [_event("RevokeAccess", lead, user)])
    assert code == 0
    assert results[0] == {
        "message_name": "RevokeAccess",
        "outcome": "closed",
        "interval_id": interval_id,
        "reason": None,
    }

    result = _invoke(workspace, "intervals", "--open-only", "--json")
    assert json.loads(result.output) == []


def test_state_persists_in_ledger_file(workspace):
    _load(workspace)
    _dispatch(workspace, [_event("GrantAccess", workspace["lead"], workspace["user"])])

    store = LedgerRecordStore(workspace["root"] / "records.jsonl")

    assert len(store.records("zox_salesteam")) == 1


def test_failed_event_sets_exit_code(workspace):
    _load(workspace)
    ghost = EntityReference("lead", uuid4())

    code, results = _dispatch(
        workspace,
        [
            _event("GrantAccess", ghost, workspace["user"]),
            _event("GrantAccess", workspace["lead"], workspace["user"]),
        ],
    )

    assert code == 1
    assert results[0]["error"] == "PluginExecutionError"
    assert results[0]["details"]["error_type"] == "RecordNotFoundError"
    assert results[1]["outcome"] == "created"


def test_intervals_filters_by_user_and_target(workspace):
    _load(workspace)
    _dispatch(workspace, [_event("GrantAccess", workspace["lead"], workspace["user"])])

    by_user = _invoke(workspace, "intervals", "--user", str(workspace["user"].id), "--json")
    by_other_target = _invoke(workspace, "intervals", "--target", str(uuid4()), "--json")

    assert len(json.loads(by_user.output)) == 1
    assert json.loads(by_other_target.output) == []


def test_intervals_table_output(workspace):
    _load(workspace)
    _dispatch(workspace, [_event("GrantAccess", workspace["lead"], workspace["user"])])

    result = _invoke(workspace, "intervals")

    assert result.exit_code == 0
    assert "Sales team intervals (1)" in result.output


def test_config_command_prints_effective_settings(workspace):
    result = _invoke(workspace, "config")

    assert result.exit_code == 0
    assert "kind: ledger" in result.output
    assert "require_open: false" in result.output


def test_invalid_config_is_a_usage_error(tmp_path):
    config = tmp_path / "salesteam.yml"
    config.write_text("store:\n  kind: sqlite\n", encoding="utf-8")

    result = CliRunner().invoke(cli, ["--config", str(config), "config"], obj={})

    assert result.exit_code == 1
    assert "store.kind" in result.output


def test_malformed_event_counts_as_failure(workspace):
    _load(workspace)
    bad = _event("GrantAccess", workspace["lead"], workspace["user"])
    bad["InputParameters"]["Target"]["Id"] = "not-a-uuid"

    code, results = _dispatch(
        workspace,
        [bad, _event("GrantAccess", workspace["lead"], workspace["user"])],
    )

    assert code == 1
    assert results[0]["error"] == "EventFormatError"
    assert results[0]["message_name"] == "GrantAccess"
    assert results[1]["outcome"] == "created"


def test_invalid_json_line_is_a_usage_error(workspace):
    path = workspace["root"] / "events.jsonl"
    good = json.dumps(_event("GrantAccess", workspace["lead"], workspace["user"]))
    path.write_text(good + "\n{broken\n", encoding="utf-8")

    result = _invoke(workspace, "dispatch", str(path))

    assert result.exit_code == 1
    assert "line 2" in result.output
    assert "Traceback" not in result.output


def test_invalid_record_document_is_a_usage_error(workspace):
    path = workspace["root"] / "bad-records.jsonl"
    path.write_text(json.dumps({"id": str(uuid4())}) + "\n", encoding="utf-8")

    result = _invoke(workspace, "load-records", str(path))

    assert result.exit_code == 1
    assert "invalid record #1" in result.output
