from __future__ import annotations

import json
from typing import Any

import pytest

from prcli import __version__, cli
from prcli.core.config import Settings
from prcli.core.errors import ExecutionFailedError
from prcli.models.options import RunOptions
from prcli.models.results import ExecutionResult
from prcli.services import dispatch
from prcli.services.executor.profiles import CliProfile

RUN_ARGS = [
    "run",
    "--token",
    "tok",
    "--owner",
    "acme",
    "--repo",
    "widgets",
    "--pr-num",
    "42",
    "--comment-sender",
    "bob",
    "--trigger-comment",
    "/lgtm",
]


class FakeDispatch:
    def __init__(self, result: ExecutionResult) -> None:
        self.result = result
        self.calls: list[tuple[RunOptions, Any]] = []

    def __call__(self, options: RunOptions, profile: Any, **kwargs: Any) -> ExecutionResult:
        self.calls.append((options, profile))
        return self.result


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "settings", Settings(_env_file=None))


def _read_json_output(capsys) -> dict:  # noqa: ANN001
    out = capsys.readouterr().out.strip()
    assert out
    return json.loads(out)


def test_cli_version(capsys) -> None:  # noqa: ANN001
    assert cli.main(["version", "--output-json"]) == 0
    assert _read_json_output(capsys) == {"version": __version__}


def test_cli_parse_prints_command(capsys) -> None:  # noqa: ANN001
    assert cli.main(["parse", '/label "needs review" bug']) == 0

    payload = _read_json_output(capsys)
    assert payload["kind"] == "SINGLE"
    assert payload["command"] == "label"
    assert payload["args"] == ["needs review", "bug"]


def test_cli_parse_rejects_invalid_comment(capsys) -> None:  # noqa: ANN001
    assert cli.main(["parse", "lgtm"]) == 1
    assert capsys.readouterr().err.strip() == "command failed: comment must start with /"


def test_cli_run_requires_configuration(capsys) -> None:  # noqa: ANN001
    assert cli.main(["run", "--owner", "acme"]) == 1
    assert capsys.readouterr().err.strip() == "command failed: token is required"


def test_cli_run_dispatches_with_cli_profile(monkeypatch: pytest.MonkeyPatch, capsys) -> None:  # noqa: ANN001
    fake = FakeDispatch(ExecutionResult.ok("SINGLE"))
    monkeypatch.setattr(dispatch, "dispatch_comment", fake)

    code = cli.main([*RUN_ARGS, "--debug", "--lgtm-permissions", "admin, maintain", "--output-json"])

    assert code == 0
    assert _read_json_output(capsys)["success"] is True
    options, profile = fake.calls[0]
    assert profile == CliProfile(debug=True)
    assert options.lgtm_permissions == ["admin", "maintain"]
    assert options.trigger_comment == "/lgtm"
    assert options.pr_num == 42


def test_cli_run_failure_exits_non_zero_with_redacted_error(monkeypatch: pytest.MonkeyPatch, capsys) -> None:  # noqa: ANN001
    error = ExecutionFailedError("rebase", "push with ghp_abcdef1234567890 rejected")
    monkeypatch.setattr(dispatch, "dispatch_comment", FakeDispatch(ExecutionResult.failed("SINGLE", error)))

    assert cli.main(RUN_ARGS) == 1

    err = capsys.readouterr().err
    assert err.startswith("command failed: ")
    assert "ghp_abcdef1234567890" not in err
    assert "[TOKEN_REDACTED]" in err


def test_cli_run_handled_failure_without_error_exits_zero(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(dispatch, "dispatch_comment", FakeDispatch(ExecutionResult.failed("SINGLE", None)))

    assert cli.main(RUN_ARGS) == 0


def test_cli_rejects_unknown_subcommand() -> None:
    with pytest.raises(SystemExit):
        cli.main(["deploy"])
