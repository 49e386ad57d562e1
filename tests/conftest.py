import hashlib
import re
import subprocess
from pathlib import Path

import pytest

from pctbatch.errors import CommandTimeout
from pctbatch.operations.root_login import PREPEND_LINE_SCRIPT
from pctbatch.operations.ssh_keys import APPEND_SCRIPT, REMOVE_SCRIPT
from pctbatch.operations.unattended_upgrades import WRITE_SCRIPT
from pctbatch.services.pct import PctClient


class FakeContainer:
    """In-memory stand-in for one LXC container."""

    def __init__(self, status="running"):
        self.status = status
        self.files = {}
        self.modes = {}
        self.owners = {}
        self.dirs = set()
        self.users = {"root": "/root"}
        self.groups = {"sudo": []}
        self.passwords = {}
        self.packages = set()
        self.upgradable = []
        self.reboot_required_after_upgrade = False
        self.snapshots = []
        self.timezone = "Etc/UTC"
        self.zoneinfo = {"UTC", "Etc/UTC", "Europe/London", "America/New_York"}
        self.services = {"ssh"}
        self.reloaded = []
        self.ip = "10.0.0.5"
        self.frozen_paths = set()
        self.ignore_timezone_writes = False
        self.start_hangs = False
        self.reboot_hangs = False
        self.shutdown_hangs = False
        self.stop_sticks = False
        self.responses = {}

    def write(self, path, content):
        if path not in self.frozen_paths:
            self.files[path] = content

    def run(self, args, input_text):
        key = tuple(args)
        if key in self.responses:
            return self.responses[key]

        name = args[0]
        handler = getattr(self, f"cmd_{name.replace('-', '_')}", None)
        if handler is None:
            return 127, "", f"{name}: command not found"
        return handler(args[1:], input_text)

    def cmd_test(self, args, _input):
        path = args[1]
        zone = path[len("/usr/share/zoneinfo/"):] if path.startswith("/usr/share/zoneinfo/") else None
        exists = path in self.files or zone in self.zoneinfo
        return (0 if args[0] == "-f" and exists else 1), "", ""

    def cmd_cat(self, args, _input):
        if args[0] not in self.files:
            return 1, "", f"cat: {args[0]}: No such file or directory"
        return 0, self.files[args[0]], ""

    def cmd_cp(self, args, _input):
        source, destination = args[-2], args[-1]
        if source not in self.files:
            return 1, "", "cp: cannot stat"
        self.files[destination] = self.files[source]
        return 0, "", ""

    def cmd_sed(self, args, _input):
        expression, path = args[1], args[2]
        if path not in self.files:
            return 2, "", "sed: can't read"
        pattern = expression.strip("/")[: -len("/d")]
        kept = [line for line in self.files[path].splitlines(True) if not re.match(pattern, line)]
        self.write(path, "".join(kept))
        return 0, "", ""

    def cmd_sh(self, args, input_text):
        script, params = args[1], args[3:]
        path = params[0]
        if script == PREPEND_LINE_SCRIPT:
            if path not in self.files:
                return 1, "", ""
            self.write(path, f"{params[1]}\n{self.files[path]}")
        elif script == APPEND_SCRIPT:
            current = self.files.get(path, "")
            if current and not current.endswith("\n"):
                current += "\n"
            self.write(path, current + (input_text or ""))
        elif script == REMOVE_SCRIPT:
            if path not in self.files:
                return 2, "", ""
            drop = (input_text or "").rstrip("\n")
            kept = [line for line in self.files[path].splitlines(True) if line.rstrip("\n") != drop]
            self.write(path, "".join(kept))
        elif script == WRITE_SCRIPT:
            self.write(path, input_text or "")
        else:
            return 127, "", "unknown script"
        return 0, "", ""

    def cmd_mkdir(self, args, _input):
        self.dirs.add(args[-1])
        return 0, "", ""

    def cmd_chmod(self, args, _input):
        self.modes[args[-1]] = args[-2]
        return 0, "", ""

    def cmd_chown(self, args, _input):
        self.owners[args[-1]] = args[-2]
        return 0, "", ""

    def cmd_sha256sum(self, args, _input):
        if args[0] not in self.files:
            return 1, "", "sha256sum: No such file or directory"
        digest = hashlib.sha256(self.files[args[0]].encode("utf-8")).hexdigest()
        return 0, f"{digest}  {args[0]}\n", ""

    def cmd_stat(self, args, _input):
        path = args[-1]
        if path not in self.files:
            return 1, "", ""
        mode = self.modes.get(path, "644").lstrip("0") or "0"
        return 0, f"{mode} {self.owners.get(path, 'root:root')}\n", ""

    def cmd_grep(self, args, input_text):
        path = args[-1]
        if path not in self.files:
            return 2, "", ""
        wanted = (input_text or "").rstrip("\n")
        lines = [line.rstrip("\n") for line in self.files[path].splitlines()]
        return (0 if wanted in lines else 1), "", ""

    def cmd_id(self, args, _input):
        return (0 if args[0] in self.users else 1), "", ""

    def cmd_getent(self, args, _input):
        database, name = args
        if database == "passwd" and name in self.users:
            return 0, f"{name}:x:1000:1000::{self.users[name]}:/bin/bash\n", ""
        if database == "group" and name in self.groups:
            return 0, f"{name}:x:27:{','.join(self.groups[name])}\n", ""
        return 2, "", ""

    def cmd_adduser(self, args, _input):
        username = args[-1]
        if username in self.users:
            return 1, "", "adduser: The user already exists."
        self.users[username] = f"/home/{username}"
        return 0, "", ""

    def cmd_chpasswd(self, _args, input_text):
        username, password = (input_text or "").rstrip("\n").split(":", 1)
        self.passwords[username] = password
        return 0, "", ""

    def cmd_usermod(self, args, _input):
        self.groups.setdefault(args[-2], []).append(args[-1])
        return 0, "", ""

    def cmd_timedatectl(self, args, _input):
        if args[0] == "show":
            return 0, f"{self.timezone}\n", ""
        if args[0] == "set-timezone":
            if args[1] not in self.zoneinfo:
                return 1, "", "Invalid time zone"
            if not self.ignore_timezone_writes:
                self.timezone = args[1]
            return 0, "", ""
        return 1, "", ""

    def cmd_apt_get(self, args, _input):
        if "upgrade" in args:
            self.upgradable = []
            if self.reboot_required_after_upgrade:
                self.files["/var/run/reboot-required"] = "*** System restart required ***\n"
        if "install" in args:
            self.packages.add(args[-1])
        return 0, "", ""

    def cmd_apt(self, args, _input):
        lines = ["Listing..."] + [f"{name}/stable 2.0 amd64 [upgradable from: 1.0]" for name in self.upgradable]
        return 0, "\n".join(lines) + "\n", ""

    def cmd_env(self, args, input_text):
        return self.run(args[1:], input_text)

    def cmd_dpkg_query(self, args, _input):
        if args[-1] in self.packages:
            return 0, "install ok installed", ""
        return 1, "", "dpkg-query: no packages found"

    def cmd_systemctl(self, args, _input):
        service = args[-1]
        if args[0] == "is-active":
            return (0 if service in self.services else 3), "", ""
        if args[0] in ("reload", "restart"):
            if service not in self.services:
                return 5, "", ""
            self.reloaded.append(service)
            return 0, "", ""
        if args[0] == "enable":
            known = service in self.services or service in self.packages
            return (0 if known else 1), "", ""
        return 1, "", ""

    def cmd_hostname(self, _args, _input):
        return 0, f"{self.ip} fd00::5\n", ""


class FakeHost:
    """Emulates `pct` on a Proxmox node, dispatching `pct exec` to containers."""

    def __init__(self):
        self.containers = {}
        self.calls = []
        self.timeouts = set()
        self.explode = set()

    def add(self, ctid, status="running"):
        container = FakeContainer(status=status)
        self.containers[str(ctid)] = container
        return container

    def run(self, cmd, timeout=None, input_text=None, **_kwargs):
        self.calls.append((list(cmd), input_text))
        action, args = cmd[1], list(cmd[2:])
        ctid = args[0] if args else None

        if ctid in self.timeouts:
            raise CommandTimeout(f"Command timed out after 1s: {' '.join(cmd)}")
        if ctid in self.explode:
            raise RuntimeError("unexpected failure")

        container = self.containers.get(ctid)
        if container is None:
            return self._result(cmd, 2, "", f"Configuration file 'nodes/pve/lxc/{ctid}.conf' does not exist")

        handler = getattr(self, f"pct_{action}")
        returncode, stdout, stderr = handler(container, args[1:], input_text)
        return self._result(cmd, returncode, stdout, stderr)

    @staticmethod
    def _result(cmd, returncode, stdout, stderr):
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr=stderr)

    def commands_for(self, ctid):
        return [cmd for cmd, _ in self.calls if len(cmd) > 2 and cmd[2] == str(ctid)]

    def pct_status(self, container, _args, _input):
        return 0, f"status: {container.status}\n", ""

    def pct_exec(self, container, args, input_text):
        if container.status != "running":
            return 255, "", "container not running"
        return container.run(args[1:], input_text)

    def pct_push(self, container, args, _input):
        source, destination = args
        container.write(destination, Path(source).read_text(encoding="utf-8"))
        return 0, "", ""

    def pct_start(self, container, _args, _input):
        if not container.start_hangs:
            container.status = "running"
        return 0, "", ""

    def pct_stop(self, container, _args, _input):
        if not container.stop_sticks:
            container.status = "stopped"
        return 0, "", ""

    def pct_shutdown(self, container, _args, _input):
        if not container.shutdown_hangs:
            container.status = "stopped"
        return 0, "", ""

    def pct_reboot(self, container, _args, _input):
        container.status = "stopped" if container.reboot_hangs else "running"
        return 0, "", ""

    def pct_listsnapshot(self, container, _args, _input):
        lines = [f"`-> {name}                 2024-05-01 10:00:00     snap" for name in container.snapshots]
        lines.append(" `-> current                                    You are here!")
        return 0, "\n".join(lines) + "\n", ""

    def pct_snapshot(self, container, args, _input):
        container.snapshots.append(args[0])
        return 0, "", ""

    def pct_delsnapshot(self, container, args, _input):
        container.snapshots.remove(args[0])
        return 0, "", ""


class DummyLogger:
    def debug(self, *_args, **_kwargs):
        return None

    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None

    def exception(self, *_args, **_kwargs):
        return None


class DummyConsole:
    def __init__(self):
        self.messages = []

    def print(self, *args, **_kwargs):
        self.messages.append(" ".join(str(arg) for arg in args))


@pytest.fixture
def fake_host():
    return FakeHost()


@pytest.fixture
def pct(fake_host):
    return PctClient(run_cmd=fake_host.run, logger=DummyLogger(), sleep=lambda _seconds: None)


@pytest.fixture
def make_operation(pct):
    """Builds an operation wired to the fake host and a recording console."""

    def factory(operation_cls):
        return operation_cls(pct=pct, logger=DummyLogger(), console=DummyConsole())

    return factory
