import subprocess
import sys

import pytest

from pctbatch.errors import ConfigurationError
from pctbatch.services.pct import PctClient, parse_snapshot_names


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None


class ScriptedRunner:
    """Returns queued results and records every command."""

    def __init__(self, results=None):
        self.results = list(results or [])
        self.calls = []

    def __call__(self, cmd, input_text=None, **_kwargs):
        self.calls.append({"cmd": cmd, "input_text": input_text})
        returncode, stdout = self.results.pop(0) if self.results else (0, "")
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")


def build_client(runner, sleeps=None):
    return PctClient(
        run_cmd=runner,
        logger=DummyLogger(),
        binary="pct",
        sleep=(sleeps.append if sleeps is not None else lambda _seconds: None),
    )


def test_status_parses_pct_output():
    runner = ScriptedRunner([(0, "status: running\n"), (0, "status: stopped\n")])
    client = build_client(runner)

    assert client.status("100") == "running"
    assert client.status("101") == "stopped"
    assert runner.calls[0]["cmd"] == ["pct", "status", "100"]


def test_status_returns_none_for_missing_container():
    client = build_client(ScriptedRunner([(2, "")]))

    assert client.status("999") is None


def test_exec_separates_container_arguments_and_passes_stdin():
    runner = ScriptedRunner([(0, "")])
    client = build_client(runner)

    client.exec("100", ["chpasswd"], input_text="alice:secret\n")

    assert runner.calls[0]["cmd"] == ["pct", "exec", "100", "--", "chpasswd"]
    assert runner.calls[0]["input_text"] == "alice:secret\n"


def test_read_file_returns_none_on_failure():
    client = build_client(ScriptedRunner([(1, ""), (0, "Etc/UTC\n")]))

    assert client.read_file("100", "/etc/missing") is None
    assert client.read_file("100", "/etc/timezone") == "Etc/UTC\n"


def test_create_snapshot_adds_description():
    runner = ScriptedRunner([(0, "")])
    client = build_client(runner)

    client.create_snapshot("100", "pre-upgrade", "before upgrade")

    assert runner.calls[0]["cmd"] == [
        "pct",
        "snapshot",
        "100",
        "pre-upgrade",
        "--description",
        "before upgrade",
    ]


def test_wait_for_status_polls_within_bounds():
    sleeps = []
    runner = ScriptedRunner([(0, "status: stopped\n"), (0, "status: stopped\n"), (0, "status: running\n")])
    client = build_client(runner, sleeps)

    assert client.wait_for_status("100", "running", attempts=5, interval=2, initial_delay=3) is True
    assert sleeps == [3, 2, 2]


def test_wait_for_status_gives_up_after_attempts():
    sleeps = []
    runner = ScriptedRunner([(0, "status: stopped\n")] * 4)
    client = build_client(runner, sleeps)

    assert client.wait_for_status("100", "running", attempts=4, interval=1) is False
    assert len(runner.calls) == 4
    assert sleeps == [1, 1, 1, 1]


def test_parse_snapshot_names_drops_current():
    output = (
        "`-> pre-upgrade                 2024-05-01 10:00:00     before upgrade\n"
        "  `-> nightly                   2024-05-02 02:00:00     no-description\n"
        "     `-> current                                         You are here!\n"
    )

    assert parse_snapshot_names(output) == ["pre-upgrade", "nightly"]


def test_ensure_available_rejects_missing_binary():
    client = PctClient(run_cmd=ScriptedRunner(), logger=DummyLogger(), binary="pctbatch-missing-binary")

    with pytest.raises(ConfigurationError, match="pctbatch-missing-binary"):
        client.ensure_available()


def test_ensure_available_accepts_existing_binary():
    client = PctClient(run_cmd=ScriptedRunner(), logger=DummyLogger(), binary=sys.executable)

    client.ensure_available()
