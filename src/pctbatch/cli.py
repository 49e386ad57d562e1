import logging
import os

import click
from rich.logging import RichHandler

from .constants import CONFIG_FILE_NAME, DEFAULT_DISK_THRESHOLD, DEFAULT_MEMORY_THRESHOLD, DEFAULT_SSH_KEY
from .core import PctBatch
from .errors import ConfigurationError, PctBatchError
from .errors_catalog import actionable_error
from .models import OperationRequest
from .operations.deploy_file import DeployFileParams
from .operations.health import HealthParams
from .operations.lifecycle import ACTIONS as CONTROL_ACTIONS
from .operations.lifecycle import LifecycleParams
from .operations.root_login import RootLoginParams
from .operations.snapshot import ACTIONS as SNAPSHOT_ACTIONS
from .operations.snapshot import SnapshotParams
from .operations.ssh_keys import SshKeyParams, load_public_key
from .operations.timezone import TimezoneParams
from .operations.unattended_upgrades import UnattendedUpgradesParams
from .operations.update import UpdateParams
from .operations.user_setup import UserSetupParams
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


class ContainerIdsOption(click.Option):
    """``-c 100 101 102``: takes every value up to the next flag.

    Repeating the flag adds to the list: ``-c 100 -y -c 101`` targets both.
    """

    def add_to_parser(self, parser, ctx):
        result = super().add_to_parser(parser, ctx)
        for name in self.opts:
            option_parser = parser._long_opt.get(name) or parser._short_opt.get(name)
            if option_parser is None:
                continue
            previous_process = option_parser.process

            def process(value, state, previous_process=previous_process):
                values = [value]
                while state.rargs and not state.rargs[0].startswith("-"):
                    values.append(state.rargs.pop(0))
                previous_process(tuple(values), state)

            option_parser.process = process
        return result

    def type_cast_value(self, ctx, value):
        if value is None:
            return None
        if isinstance(value, str):
            value = (value,)

        container_ids = []
        for item in value:
            if isinstance(item, (list, tuple)):
                container_ids.extend(str(ctid) for ctid in item)
            else:
                container_ids.append(str(item))
        return tuple(container_ids)


class BatchGroup(click.Group):
    """Every usage error exits with status 1."""

    def main(self, *args, **kwargs):
        kwargs["standalone_mode"] = False
        try:
            rv = super().main(*args, **kwargs)
        except click.ClickException as exc:
            exc.show()
            raise SystemExit(1) from exc
        except click.Abort as exc:
            click.echo("Aborted!", err=True)
            raise SystemExit(1) from exc
        raise SystemExit(rv if isinstance(rv, int) else 0)


def _show_help(ctx, param, value):
    if not value or ctx.resilient_parsing:
        return
    click.echo(ctx.get_help())
    ctx.exit(1)


help_option = click.option(
    "-h",
    "--help",
    is_flag=True,
    expose_value=False,
    is_eager=True,
    callback=_show_help,
    help="Show this message and exit.",
)

container_option = click.option(
    "-c",
    "container_ids",
    cls=ContainerIdsOption,
    multiple=True,
    required=True,
    metavar="ID [ID...]",
    help="Container IDs to process, e.g. -c 100 101 102.",
)

CONTEXT_SETTINGS = {"help_option_names": []}


def _run(ctx, request: OperationRequest, container_ids):
    settings = ctx.obj
    try:
        app = PctBatch(
            verbose=settings["verbose"],
            pct_binary=settings["pct_binary"],
            command_timeout=settings["command_timeout"],
            report_file=settings["report_file"],
        )
        exit_code = app.run(request, container_ids)
    except PctBatchError as exc:
        raise click.ClickException(str(exc)) from exc

    raise SystemExit(exit_code)


def _load_key(path: str) -> str:
    try:
        return load_public_key(path)
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group(cls=BatchGroup, context_settings=CONTEXT_SETTINGS, invoke_without_command=True)
@help_option
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {CONFIG_FILE_NAME} if present.",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--report-file",
    type=click.Path(),
    help="Write a JSON result file with one record per container.",
)
@click.option("--pct-binary", required=False, help="Path to the pct tool (default: pct).")
@click.option(
    "--command-timeout",
    required=False,
    type=float,
    default=None,
    help="Timeout in seconds for each pct invocation.",
)
@click.pass_context
def main(ctx, config, verbose, log_file, report_file, pct_binary, command_timeout):
    """Run one operation across many Proxmox LXC containers."""
    logger = logging.getLogger("pctbatch")

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit(1)

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), CONFIG_FILE_NAME)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except PctBatchError as exc:
        raise click.ClickException(str(exc)) from exc

    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    report_file = _resolve_option(report_file, config_values, "report_file")
    pct_binary = str(_resolve_option(pct_binary, config_values, "pct_binary", default="pct"))
    command_timeout = _resolve_option(command_timeout, config_values, "command_timeout")
    if command_timeout is not None:
        command_timeout = float(command_timeout)

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    ctx.obj = {
        "config": config_values,
        "verbose": verbose,
        "report_file": report_file,
        "pct_binary": pct_binary,
        "command_timeout": command_timeout,
    }


@main.command(context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-y", "auto_yes", is_flag=True, help="Answer yes to apt prompts.")
@click.option("-r", "reboot_if_needed", is_flag=True, help="Reboot containers that need it afterwards.")
@click.option("-u", "update_only", is_flag=True, help="Only refresh package lists, do not upgrade.")
@click.pass_context
def update(ctx, container_ids, auto_yes, reboot_if_needed, update_only):
    """Update packages in the containers."""
    params = UpdateParams(auto_yes=auto_yes, reboot_if_needed=reboot_if_needed, update_only=update_only)
    _run(ctx, OperationRequest("update", params), container_ids)


@main.command(context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.pass_context
def audit(ctx, container_ids):
    """Audit container security settings (read-only)."""
    _run(ctx, OperationRequest("audit"), container_ids)


@main.command(context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-d", "disk_threshold", type=int, default=None, help="Disk usage warning threshold (%).")
@click.option("-m", "memory_threshold", type=int, default=None, help="Memory usage warning threshold (%).")
@click.pass_context
def health(ctx, container_ids, disk_threshold, memory_threshold):
    """Check disk, memory and SSH health (read-only)."""
    config_values = ctx.obj["config"]
    params = HealthParams(
        disk_threshold=int(
            _resolve_option(disk_threshold, config_values, "disk_threshold", default=DEFAULT_DISK_THRESHOLD)
        ),
        memory_threshold=int(
            _resolve_option(memory_threshold, config_values, "memory_threshold", default=DEFAULT_MEMORY_THRESHOLD)
        ),
    )
    _run(ctx, OperationRequest("health", params), container_ids)


@main.command("ssh-key", context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-u", "username", required=True, help="User whose authorized_keys is changed.")
@click.option("-k", "key_file", required=True, type=click.Path(), help="Public key file on the host.")
@click.option("-r", "remove", is_flag=True, help="Remove the key instead of adding it.")
@click.pass_context
def ssh_key(ctx, container_ids, username, key_file, remove):
    """Add or remove an SSH public key."""
    params = SshKeyParams(username=username, key=_load_key(key_file), remove=remove)
    _run(ctx, OperationRequest("ssh-key", params), container_ids)


@main.command("root-login", context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-e", "enable", is_flag=True, help="Allow root login with a password (PermitRootLogin yes).")
@click.option("-s", "strict", is_flag=True, help="Deny root login entirely (PermitRootLogin no).")
@click.pass_context
def root_login(ctx, container_ids, enable, strict):
    """Set the root SSH login policy (default: prohibit-password)."""
    if enable and strict:
        raise click.ClickException(actionable_error("conflicting_options", first="-e", second="-s"))

    policy = "prohibit-password"
    if enable:
        policy = "yes"
    elif strict:
        policy = "no"
    _run(ctx, OperationRequest("root-login", RootLoginParams(policy=policy)), container_ids)


@main.command(context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-a", "action", required=True, type=click.Choice(CONTROL_ACTIONS), help="Action to perform.")
@click.pass_context
def control(ctx, container_ids, action):
    """Start, stop, shut down or restart containers."""
    _run(ctx, OperationRequest("control", LifecycleParams(action=action)), container_ids)


@main.command(context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-a", "action", required=True, type=click.Choice(SNAPSHOT_ACTIONS), help="Action to perform.")
@click.option("-s", "name", required=True, help="Snapshot name.")
@click.option("-d", "description", required=False, help="Snapshot description.")
@click.pass_context
def snapshot(ctx, container_ids, action, name, description):
    """Create or delete a named snapshot."""
    params = SnapshotParams(action=action, name=name, description=description)
    _run(ctx, OperationRequest("snapshot", params), container_ids)


@main.command(context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-t", "timezone", required=True, help="IANA timezone, e.g. Europe/London.")
@click.pass_context
def timezone(ctx, container_ids, timezone):
    """Set the timezone in the containers."""
    _run(ctx, OperationRequest("timezone", TimezoneParams(timezone=timezone)), container_ids)


@main.command("deploy-file", context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-f", "source", required=True, type=click.Path(), help="File on the host to deploy.")
@click.option("-d", "destination", required=True, help="Absolute destination path in the container.")
@click.option("-o", "owner", required=False, help="Owner as user or user:group.")
@click.option("-p", "mode", required=False, help="Permissions in octal, e.g. 644.")
@click.option("-n", "no_backup", is_flag=True, help="Do not back up an existing destination file.")
@click.pass_context
def deploy_file(ctx, container_ids, source, destination, owner, mode, no_backup):
    """Copy a file from the host into the containers."""
    params = DeployFileParams(
        source=source,
        destination=destination,
        owner=owner,
        mode=mode,
        backup=not no_backup,
    )
    _run(ctx, OperationRequest("deploy-file", params), container_ids)


@main.command("unattended-upgrades", context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-e", "email", required=False, help="Send upgrade reports to this address.")
@click.option("-r", "auto_reboot", is_flag=True, help="Reboot automatically when required.")
@click.pass_context
def unattended_upgrades(ctx, container_ids, email, auto_reboot):
    """Install and configure unattended-upgrades."""
    params = UnattendedUpgradesParams(email=email, auto_reboot=auto_reboot)
    _run(ctx, OperationRequest("unattended-upgrades", params), container_ids)


@main.command("user-setup", context_settings=CONTEXT_SETTINGS)
@help_option
@container_option
@click.option("-u", "username", required=True, help="User to create.")
@click.option("-k", "key_file", required=False, type=click.Path(), help="Public key file on the host.")
@click.option("-p", "password", required=False, help="Password for the user (prefer -g).")
@click.option("-g", "generate_password", is_flag=True, help="Generate a random password per container.")
@click.option("-n", "sudo_nopasswd", is_flag=True, help="Allow sudo without a password.")
@click.pass_context
def user_setup(ctx, container_ids, username, key_file, password, generate_password, sudo_nopasswd):
    """Create a sudo user with SSH access."""
    logger = logging.getLogger("pctbatch")

    if password and generate_password:
        raise click.ClickException(actionable_error("conflicting_options", first="-p", second="-g"))

    if not password and not generate_password and not key_file:
        logger.warning("No password given; the user can only log in with an SSH key.")
        logger.warning("No SSH key given, using default: %s", DEFAULT_SSH_KEY)
        key_file = DEFAULT_SSH_KEY

    params = UserSetupParams(
        username=username,
        key=_load_key(key_file) if key_file else None,
        password=password,
        generate_password=generate_password,
        sudo_nopasswd=sudo_nopasswd,
    )
    _run(ctx, OperationRequest("user-setup", params), container_ids)


if __name__ == "__main__":
    main()
