import argparse
import builtins
import json
from datetime import datetime, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

from policyadmin_cli.apps.policyadmin_cli import app
from policyadmin_cli.cli_shared import GlobalOpts, OpError, UsageError
from policyadmin_cli.policy_api import Policy
from policyadmin_cli.policy_commands import (
    cmd_policy_create,
    cmd_policy_decide,
    cmd_policy_delete,
    cmd_policy_list,
    cmd_policy_logs,
    cmd_policy_update,
)
from policyadmin_cli.transport import HttpError


def _g() -> GlobalOpts:
    return GlobalOpts(token="tok", quiet=True)


def _args(**kwargs) -> argparse.Namespace:
    base = {"owner_id": "owner-1", "policy_base_url": "https://policy.example.invalid"}
    base.update(kwargs)
    return argparse.Namespace(**base)


class _FakeClient:
    def __init__(self, log_pages=None, error=None):
        self.calls: list[tuple] = []
        self.log_pages = list(log_pages or [])
        self.error = error

    def _maybe_fail(self):
        if self.error is not None:
            raise self.error

    def list_policies(self, owner_id, active=None):
        self.calls.append(("list", owner_id, active))
        self._maybe_fail()
        return [Policy(id="p1", name="one", owner_id=owner_id, active=True)]

    def create_policy(self, owner_id, request):
        self.calls.append(("create", owner_id, request))
        self._maybe_fail()
        return Policy(id="p2", name=request.name, owner_id=owner_id, context=request.context, content=request.content)

    def delete_policy(self, owner_id, policy_id):
        self.calls.append(("delete", owner_id, policy_id))
        self._maybe_fail()

    def update_policy(self, owner_id, policy_id, request):
        self.calls.append(("update", owner_id, policy_id, request))
        self._maybe_fail()
        return Policy(id=policy_id, name=request.name or "kept", active=bool(request.active))

    def get_decision_logs(self, owner_id, request):
        self.calls.append(("logs", owner_id, request))
        self._maybe_fail()
        return self.log_pages.pop(0) if self.log_pages else []

    def make_decision(self, owner_id, request):
        self.calls.append(("decide", owner_id, request))
        self._maybe_fail()
        return {"status": "PASS"}


def _install(monkeypatch, client):
    monkeypatch.setattr("policyadmin_cli.policy_commands.build_policy_client", lambda _url, _g: client)
    return client


def test_cmd_policy_list_passes_active_filter(monkeypatch, capsys):
    client = _install(monkeypatch, _FakeClient())

    assert cmd_policy_list(_args(active=False), _g()) == 0

    out = json.loads(capsys.readouterr().out)
    assert out[0]["id"] == "p1"
    assert client.calls == [("list", "owner-1", False)]


def test_cmd_policy_list_wraps_remote_error(monkeypatch):
    _install(monkeypatch, _FakeClient(error=HttpError(500, "boom")))
    with pytest.raises(OpError, match="^failed to list policies: unexpected status-code: 500 - boom$"):
        cmd_policy_list(_args(active=None), _g())


def test_cmd_policy_create_reads_policy_file(monkeypatch, tmp_path, capsys):
    client = _install(monkeypatch, _FakeClient())
    src = Path(tmp_path) / "policy.rego"
    src.write_text("package org\n", encoding="utf-8")

    assert cmd_policy_create(_args(name="n", context="config", policy=str(src)), _g()) == 0

    out = json.loads(capsys.readouterr().out)
    assert out["content"] == "package org\n"
    request = client.calls[0][2]
    assert (request.name, request.context, request.content) == ("n", "config", "package org\n")


def test_cmd_policy_create_unreadable_file_makes_no_call(monkeypatch, tmp_path):
    client = _install(monkeypatch, _FakeClient())
    with pytest.raises(OpError, match="failed to read policy file"):
        cmd_policy_create(_args(name="n", context="config", policy=str(tmp_path / "missing.rego")), _g())
    assert client.calls == []


def test_cmd_policy_delete_prints_success(monkeypatch, capsys):
    _install(monkeypatch, _FakeClient())
    assert cmd_policy_delete(_args(policy_id="p1"), _g()) == 0
    assert capsys.readouterr().out == "Deleted Successfully\n"


def test_cmd_policy_update_without_fields_fails_before_network(monkeypatch):
    def _no_client(_url, _g):
        raise AssertionError("client must not be built")

    monkeypatch.setattr("policyadmin_cli.policy_commands.build_policy_client", _no_client)
    with pytest.raises(UsageError, match="one of policy, active, context, or name must be set"):
        cmd_policy_update(_args(policy_id="p1", policy=None, active=None, context=None, name=None), _g())


def test_cmd_policy_update_sends_false_active(monkeypatch, capsys):
    client = _install(monkeypatch, _FakeClient())

    assert cmd_policy_update(_args(policy_id="p1", policy=None, active=False, context=None, name=None), _g()) == 0

    request = client.calls[0][3]
    assert request.to_payload() == {"active": False}
    assert json.loads(capsys.readouterr().out)["active"] is False


def test_cmd_policy_logs_writes_all_pages_to_out_file(monkeypatch, tmp_path, capsys):
    client = _install(monkeypatch, _FakeClient(log_pages=[[{"n": 1}, {"n": 2}], [{"n": 3}]]))
    out_path = Path(tmp_path) / "logs.json"

    args = _args(after=None, before=None, branch="main", project_id=None, out=str(out_path))
    assert cmd_policy_logs(args, _g()) == 0

    assert capsys.readouterr().out == ""
    assert json.loads(out_path.read_text(encoding="utf-8")) == [{"n": 1}, {"n": 2}, {"n": 3}]
    assert [c[2].offset for c in client.calls] == [0, 2, 3]


def test_cmd_policy_logs_bad_date_names_flag(monkeypatch):
    client = _install(monkeypatch, _FakeClient())
    args = _args(after=None, before="03/04/2022", branch=None, project_id=None, out=None)
    with pytest.raises(UsageError, match="error in parsing --before value"):
        cmd_policy_logs(args, _g())
    assert client.calls == []


def test_cmd_policy_logs_error_discards_partial_results(monkeypatch, tmp_path, capsys):
    client = _FakeClient(log_pages=[[{"n": 1}]])
    real_get = client.get_decision_logs

    def flaky(owner_id, request):
        if request.offset:
            raise HttpError(502, "bad gateway")
        return real_get(owner_id, request)

    client.get_decision_logs = flaky
    _install(monkeypatch, client)

    args = _args(after=None, before=None, branch=None, project_id=None, out=None)
    with pytest.raises(OpError, match="failed to get policy decision logs"):
        cmd_policy_logs(args, _g())
    assert capsys.readouterr().out == ""


def test_cmd_policy_logs_error_closes_out_file_without_writing(monkeypatch, tmp_path):
    client = _FakeClient(log_pages=[[{"n": 1}]])
    real_get = client.get_decision_logs

    def flaky(owner_id, request):
        if request.offset:
            raise HttpError(502, "bad gateway")
        return real_get(owner_id, request)

    client.get_decision_logs = flaky
    _install(monkeypatch, client)

    handles = []

    def recording_open(*a, **kw):
        fh = builtins.open(*a, **kw)
        handles.append(fh)
        return fh

    monkeypatch.setattr("policyadmin_cli.policy_commands.open", recording_open, raising=False)
    out_path = Path(tmp_path) / "logs.json"

    args = _args(after=None, before=None, branch=None, project_id=None, out=str(out_path))
    with pytest.raises(OpError, match="failed to get policy decision logs"):
        cmd_policy_logs(args, _g())

    assert len(handles) == 1
    assert handles[0].closed
    assert out_path.read_text(encoding="utf-8") == ""


def test_cmd_policy_decide_reads_input(monkeypatch, tmp_path, capsys):
    client = _install(monkeypatch, _FakeClient())
    src = Path(tmp_path) / "config.yml"
    src.write_text("version: 2.1\n", encoding="utf-8")

    assert cmd_policy_decide(_args(context="config", input=str(src)), _g()) == 0

    assert json.loads(capsys.readouterr().out) == {"status": "PASS"}
    assert client.calls[0][2].input == "version: 2.1\n"


def test_cmd_policy_decide_missing_input_file(monkeypatch, tmp_path):
    _install(monkeypatch, _FakeClient())
    with pytest.raises(OpError, match="failed to read file"):
        cmd_policy_decide(_args(context="config", input=str(tmp_path / "nope.yml")), _g())


def test_policy_logs_cli_parses_dates_as_midnight_utc(monkeypatch):
    client = _install(monkeypatch, _FakeClient())

    runner = CliRunner()
    result = runner.invoke(
        app,
        [
            "--quiet",
            "policy",
            "logs",
            "--owner-id",
            "owner-1",
            "--after",
            "2022/03/14",
            "--before",
            "2022/03/15",
        ],
    )

    assert result.exit_code == 0, result.output
    request = client.calls[0][2]
    assert request.after == datetime(2022, 3, 14, tzinfo=timezone.utc)
    assert request.before == datetime(2022, 3, 15, tzinfo=timezone.utc)
    assert json.loads(result.stdout) == []


def test_policy_update_cli_requires_a_field(monkeypatch):
    client = _install(monkeypatch, _FakeClient())

    runner = CliRunner()
    result = runner.invoke(app, ["policy", "update", "p1", "--owner-id", "owner-1"])

    assert result.exit_code == 2
    assert "one of policy, active, context, or name must be set" in result.output
    assert client.calls == []


def test_policy_list_cli_inactive_flag(monkeypatch):
    client = _install(monkeypatch, _FakeClient())

    runner = CliRunner()
    result = runner.invoke(app, ["policy", "list", "--owner-id", "owner-1", "--inactive"])

    assert result.exit_code == 0, result.output
    assert client.calls == [("list", "owner-1", False)]


def test_policy_get_cli_requires_owner_id():
    runner = CliRunner()
    result = runner.invoke(app, ["policy", "get", "p1"])
    assert result.exit_code == 2
    assert "--owner-id" in result.output


def test_policy_group_accepts_owner_id_before_subcommand(monkeypatch):
    client = _install(monkeypatch, _FakeClient())

    result = CliRunner().invoke(app, ["policy", "--owner-id", "owner-1", "list"])

    assert result.exit_code == 0, result.output
    assert client.calls == [("list", "owner-1", None)]


def test_policy_subcommand_owner_id_overrides_group(monkeypatch):
    client = _install(monkeypatch, _FakeClient())

    result = CliRunner().invoke(app, ["policy", "--owner-id", "group-owner", "delete", "p1", "--owner-id", "cmd-owner"])

    assert result.exit_code == 0, result.output
    assert client.calls == [("delete", "cmd-owner", "p1")]


def test_policy_group_base_url_reaches_client(monkeypatch):
    seen: list[str] = []
    client = _FakeClient()

    def factory(url, _g):
        seen.append(url)
        return client

    monkeypatch.setattr("policyadmin_cli.policy_commands.build_policy_client", factory)
    runner = CliRunner()

    runner.invoke(app, ["policy", "--policy-base-url", "https://policy.example.invalid", "--owner-id", "o", "list"])
    runner.invoke(app, ["policy", "list", "--owner-id", "o"])

    assert seen == ["https://policy.example.invalid", "https://internal.circleci.com"]
