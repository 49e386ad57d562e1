import pytest
from click.testing import CliRunner

import pctbatch.cli as cli_module
from pctbatch.errors import ConfigurationError

KEY = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIExampleKeyMaterial admin@pve"


@pytest.fixture
def captured(monkeypatch):
    captured = {"exit_code": 0}

    class FakeApp:
        def __init__(self, **kwargs):
            captured["settings"] = kwargs

        def run(self, request, container_ids):
            captured["request"] = request
            captured["container_ids"] = container_ids
            return captured["exit_code"]

    monkeypatch.setattr(cli_module, "PctBatch", FakeApp)
    return captured


@pytest.fixture
def key_file(tmp_path):
    path = tmp_path / "id_ed25519.pub"
    path.write_text(f"{KEY}\n", encoding="utf-8")
    return path


def test_cli_uses_config_and_allows_cli_override(tmp_path, captured):
    config_file = tmp_path / ".pctbatch.yml"
    config_file.write_text(
        "pct_binary: /usr/sbin/pct\n" "command_timeout: 30\n" "report_file: config.json\n",
        encoding="utf-8",
    )

    runner = CliRunner()
    result = runner.invoke(
        cli_module.main,
        [
            "--config",
            str(config_file),
            "--report-file",
            "cli.json",
            "timezone",
            "-c",
            "100",
            "101",
            "-t",
            "UTC",
        ],
    )

    assert result.exit_code == 0, result.output
    assert captured["settings"]["pct_binary"] == "/usr/sbin/pct"
    assert captured["settings"]["command_timeout"] == 30.0
    assert captured["settings"]["report_file"] == "cli.json"
    assert captured["container_ids"] == ("100", "101")
    assert captured["request"].kind == "timezone"
    assert captured["request"].params.timezone == "UTC"


def test_cli_uses_default_config_file_when_present(tmp_path, monkeypatch, captured):
    (tmp_path / ".pctbatch.yml").write_text("disk_threshold: 70\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["health", "-c", "100", "-m", "50"])

    assert result.exit_code == 0, result.output
    assert captured["request"].params.disk_threshold == 70
    assert captured["request"].params.memory_threshold == 50
    assert captured["settings"]["pct_binary"] == "pct"


def test_cli_rejects_unknown_config_keys(tmp_path, captured):
    config_file = tmp_path / "bad.yml"
    config_file.write_text("containers: [100]\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["--config", str(config_file), "audit", "-c", "100"])

    assert result.exit_code == 1
    assert "Unknown configuration keys: containers" in result.output
    assert "request" not in captured


def test_cli_reports_non_numeric_threshold_in_config(tmp_path, captured):
    config_file = tmp_path / "bad.yml"
    config_file.write_text("disk_threshold: eighty\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["--config", str(config_file), "health", "-c", "100"])

    assert result.exit_code == 1
    assert "Invalid disk_threshold" in result.output
    assert not isinstance(result.exception, ValueError)
    assert "request" not in captured


def test_container_option_takes_values_until_next_flag(captured):
    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["update", "-c", "100", "101", "102", "-y", "-r"])

    assert result.exit_code == 0, result.output
    assert captured["container_ids"] == ("100", "101", "102")
    assert captured["request"].params.auto_yes is True
    assert captured["request"].params.reboot_if_needed is True
    assert captured["request"].params.update_only is False


def test_container_option_keeps_duplicates_in_order(captured):
    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["audit", "-c", "102", "100", "102"])

    assert result.exit_code == 0, result.output
    assert captured["container_ids"] == ("102", "100", "102")
    assert captured["request"].params is None


def test_repeated_container_option_accumulates_ids(captured):
    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["update", "-c", "100", "-y", "-c", "101", "102"])

    assert result.exit_code == 0, result.output
    assert captured["container_ids"] == ("100", "101", "102")
    assert captured["request"].params.auto_yes is True


def test_exit_code_comes_from_batch_result(captured):
    captured["exit_code"] = 1

    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["control", "-c", "100", "-a", "restart"])

    assert result.exit_code == 1
    assert captured["request"].params.action == "restart"


@pytest.mark.parametrize(
    "args",
    [
        ["-h"],
        ["--help"],
        ["snapshot", "-h"],
        [],
    ],
)
def test_help_exits_with_status_one(args, captured):
    runner = CliRunner()
    result = runner.invoke(cli_module.main, args)

    assert result.exit_code == 1
    assert "Usage:" in result.output
    assert "request" not in captured


@pytest.mark.parametrize(
    "args",
    [
        ["update", "-c", "100", "--bogus"],
        ["update"],
        ["control", "-c", "100", "-a", "pause"],
        ["timezone", "-c", "100"],
        ["frobnicate", "-c", "100"],
    ],
)
def test_usage_errors_exit_with_status_one(args, captured):
    runner = CliRunner()
    result = runner.invoke(cli_module.main, args)

    assert result.exit_code == 1
    assert "request" not in captured


def test_root_login_policy_flags(captured):
    runner = CliRunner()

    result = runner.invoke(cli_module.main, ["root-login", "-c", "100"])
    assert result.exit_code == 0, result.output
    assert captured["request"].params.policy == "prohibit-password"

    result = runner.invoke(cli_module.main, ["root-login", "-c", "100", "-s"])
    assert captured["request"].params.policy == "no"

    result = runner.invoke(cli_module.main, ["root-login", "-c", "100", "-e"])
    assert captured["request"].params.policy == "yes"


def test_root_login_rejects_enable_with_strict(captured):
    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["root-login", "-c", "100", "-e", "-s"])

    assert result.exit_code == 1
    assert "cannot be used together" in result.output
    assert "request" not in captured


def test_ssh_key_reads_key_file(key_file, captured):
    runner = CliRunner()
    result = runner.invoke(
        cli_module.main,
        ["ssh-key", "-c", "100", "101", "-u", "deploy", "-k", str(key_file), "-r"],
    )

    assert result.exit_code == 0, result.output
    params = captured["request"].params
    assert params.username == "deploy"
    assert params.key == KEY
    assert params.remove is True


def test_ssh_key_rejects_file_with_several_keys(tmp_path, captured):
    key_path = tmp_path / "keys.pub"
    key_path.write_text(f"{KEY}\n{KEY.replace('admin', 'other')}\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["ssh-key", "-c", "100", "-u", "deploy", "-k", str(key_path)])

    assert result.exit_code == 1
    assert "exactly one public key" in result.output
    assert "request" not in captured


def test_user_setup_defaults_to_root_public_key(monkeypatch, key_file, captured):
    monkeypatch.setattr(cli_module, "DEFAULT_SSH_KEY", str(key_file))

    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["user-setup", "-c", "100", "-u", "alice", "-n"])

    assert result.exit_code == 0, result.output
    params = captured["request"].params
    assert params.key == KEY
    assert params.password is None
    assert params.sudo_nopasswd is True


def test_user_setup_with_generated_password_needs_no_key(captured):
    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["user-setup", "-c", "100", "-u", "alice", "-g"])

    assert result.exit_code == 0, result.output
    params = captured["request"].params
    assert params.key is None
    assert params.generate_password is True


def test_user_setup_rejects_password_with_generate(captured):
    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["user-setup", "-c", "100", "-u", "alice", "-p", "pw", "-g"])

    assert result.exit_code == 1
    assert "cannot be used together" in result.output


def test_deploy_file_and_snapshot_options(tmp_path, captured):
    source = tmp_path / "motd"
    source.write_text("welcome\n", encoding="utf-8")

    runner = CliRunner()
    result = runner.invoke(
        cli_module.main,
        ["deploy-file", "-c", "100", "-f", str(source), "-d", "/etc/motd", "-o", "root:root", "-p", "644", "-n"],
    )
    assert result.exit_code == 0, result.output
    params = captured["request"].params
    assert params.destination == "/etc/motd"
    assert params.owner == "root:root"
    assert params.mode == "644"
    assert params.backup is False

    result = runner.invoke(
        cli_module.main,
        ["snapshot", "-c", "100", "101", "-a", "create", "-s", "pre-upgrade", "-d", "before upgrade"],
    )
    assert result.exit_code == 0, result.output
    params = captured["request"].params
    assert (params.action, params.name, params.description) == ("create", "pre-upgrade", "before upgrade")


def test_unattended_upgrades_options(captured):
    runner = CliRunner()
    result = runner.invoke(
        cli_module.main,
        ["unattended-upgrades", "-c", "100", "-e", "ops@example.com", "-r"],
    )

    assert result.exit_code == 0, result.output
    assert captured["request"].params.email == "ops@example.com"
    assert captured["request"].params.auto_reboot is True


def test_configuration_errors_become_click_errors(monkeypatch):
    class FailingApp:
        def __init__(self, **_kwargs):
            pass

        def run(self, request, container_ids):
            raise ConfigurationError("Invalid container ID: abc")

    monkeypatch.setattr(cli_module, "PctBatch", FailingApp)

    runner = CliRunner()
    result = runner.invoke(cli_module.main, ["audit", "-c", "abc"])

    assert result.exit_code == 1
    assert "Invalid container ID: abc" in result.output
