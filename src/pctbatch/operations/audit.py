"""Read-only security audit of containers."""

from typing import Dict, List

from pctbatch.constants import SSHD_CONFIG
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation
from pctbatch.operations.root_login import parse_permit_root_login

EMPTY_PASSWORD_PROGRAM = '($2 == "" || $2 == "!") && $1 != "root" {print $1}'
WORLD_WRITABLE_LIMIT = 5


def parse_listening_ports(ss_output: str) -> List[str]:
    ports = set()
    for line in ss_output.splitlines():
        parts = line.split()
        if len(parts) < 4 or parts[0] != "LISTEN":
            continue
        port = parts[3].rsplit(":", 1)[-1]
        if port.isdigit():
            ports.add(int(port))
    return [str(port) for port in sorted(ports)]


def parse_ufw_status(ufw_output: str) -> str:
    for line in ufw_output.splitlines():
        if line.lower().startswith("status:"):
            return line.split(":", 1)[1].strip().lower()
    return "unknown"


class AuditOperation(Operation):
    """Collects security signals; never changes anything."""

    kind = "audit"
    title = "Running security audit"
    read_only = True

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        issues = []
        ctid = target.ctid

        self.say(target, "Checking sudo users...")
        ok, output = self.pct.output(ctid, ["getent", "group", "sudo"])
        sudo_users = output.split(":")[3] if ok and output.count(":") >= 3 else ""
        facts["sudo_users"] = sudo_users
        if sudo_users:
            self.say(target, f"Sudo users: {sudo_users}")

        self.say(target, "Checking SSH root login...")
        content = self.pct.read_file(ctid, SSHD_CONFIG)
        root_login = parse_permit_root_login(content or "")[0] or "not-set"
        facts["root_login"] = root_login
        if root_login.lower() == "yes":
            self.say(target, "⚠ Root SSH login enabled", style="yellow")
            issues.append("Root SSH enabled")
        elif root_login == "not-set":
            self.say(target, "Root SSH login: default (check distribution default)")
        else:
            self.say(target, f"Root SSH login: {root_login}")

        self.say(target, "Checking for empty passwords...")
        _, output = self.pct.output(ctid, ["awk", "-F:", EMPTY_PASSWORD_PROGRAM, "/etc/shadow"])
        empty_users = " ".join(output.split())
        if empty_users:
            self.say(target, f"⚠ Users with empty/locked passwords: {empty_users}", style="yellow")
            issues.append(f"Empty passwords: {empty_users}")

        self.say(target, "Checking listening services...")
        _, output = self.pct.output(ctid, ["ss", "-tln"])
        ports = parse_listening_ports(output)
        facts["listening_ports"] = " ".join(ports)
        if ports:
            self.say(target, f"Listening ports: {' '.join(ports)}")

        self.say(target, "Checking world-writable files in /etc...")
        _, output = self.pct.output(ctid, ["find", "/etc", "-type", "f", "-perm", "-002"])
        writable = [line for line in output.splitlines() if line.strip()][:WORLD_WRITABLE_LIMIT]
        if writable:
            facts["world_writable"] = " ".join(writable)
            self.say(target, "⚠ World-writable files found in /etc", style="yellow")
            issues.append("World-writable /etc files")

        self.say(target, "Checking SUID binaries...")
        _, output = self.pct.output(ctid, ["find", "/usr", "/bin", "/sbin", "-type", "f", "-perm", "-4000"])
        suid_count = len([line for line in output.splitlines() if line.strip()])
        facts["suid_count"] = str(suid_count)
        self.say(target, f"SUID binaries found: {suid_count}")

        self.say(target, "Checking firewall status...")
        ok, output = self.pct.output(ctid, ["ufw", "status"])
        firewall = parse_ufw_status(output) if ok else "not-installed"
        facts["firewall"] = firewall
        if firewall in ("inactive", "not-installed", "unknown"):
            self.say(target, "⚠ Firewall not active", style="yellow")
            issues.append("No firewall")
        else:
            self.say(target, f"Firewall: {firewall}")

        self.say(target, "Checking unattended upgrades...")
        if self.package_installed(target, "unattended-upgrades"):
            self.say(target, "Unattended upgrades: installed")
        else:
            self.say(target, "⚠ Unattended upgrades not installed", style="yellow")
            issues.append("No auto-updates")

        if not issues:
            self.say(target, "Audit completed - no major issues", style="green")
            return Outcome.clean("no major issues", facts=facts)

        self.say(target, f"Audit completed - {len(issues)} issue(s) found", style="yellow")
        return Outcome.warning(issues, facts=facts)
