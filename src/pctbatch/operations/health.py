"""Read-only health checks of containers."""

from dataclasses import dataclass
from typing import Dict, Optional

from pctbatch.constants import DEFAULT_DISK_THRESHOLD, DEFAULT_MEMORY_THRESHOLD
from pctbatch.errors import ConfigurationError
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation


@dataclass(frozen=True)
class HealthParams:
    disk_threshold: int = DEFAULT_DISK_THRESHOLD
    memory_threshold: int = DEFAULT_MEMORY_THRESHOLD


def parse_disk_usage(df_output: str) -> Optional[int]:
    lines = [line for line in df_output.splitlines() if line.strip()]
    if len(lines) < 2:
        return None
    parts = lines[-1].split()
    if len(parts) < 5 or not parts[4].endswith("%"):
        return None
    try:
        return int(parts[4].rstrip("%"))
    except ValueError:
        return None


def parse_memory_usage(free_output: str) -> Optional[int]:
    for line in free_output.splitlines():
        parts = line.split()
        if parts and parts[0] == "Mem:" and len(parts) >= 3:
            try:
                total = float(parts[1])
                used = float(parts[2])
            except ValueError:
                return None
            if total <= 0:
                return None
            return int(round(used / total * 100.0))
    return None


class HealthOperation(Operation):
    kind = "health"
    title = "Running health checks"
    read_only = True

    def validate(self, request: OperationRequest):
        super().validate(request)
        for label, value in (
            ("disk threshold", request.params.disk_threshold),
            ("memory threshold", request.params.memory_threshold),
        ):
            if not 1 <= int(value) <= 100:
                raise ConfigurationError(
                    actionable_error(
                        "invalid_value",
                        label=label,
                        value=str(value),
                        hint="Use a percentage between 1 and 100.",
                    )
                )

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        params: HealthParams = request.params
        ctid = target.ctid
        issues = []

        self.say(target, "Checking disk usage...")
        _, output = self.pct.output(ctid, ["df", "-P", "/"])
        disk = parse_disk_usage(output)
        if disk is None:
            self.say(target, "Disk usage: unavailable", style="yellow")
            issues.append("Disk usage unknown")
        elif disk >= params.disk_threshold:
            facts["disk_usage"] = f"{disk}%"
            self.say(target, f"Disk usage: {disk}% (threshold: {params.disk_threshold}%)", style="yellow")
            issues.append(f"Disk {disk}%")
        else:
            facts["disk_usage"] = f"{disk}%"
            self.say(target, f"Disk usage: {disk}%")

        self.say(target, "Checking memory usage...")
        _, output = self.pct.output(ctid, ["free"])
        memory = parse_memory_usage(output)
        if memory is None:
            self.say(target, "Memory usage: unavailable", style="yellow")
            issues.append("Memory usage unknown")
        elif memory >= params.memory_threshold:
            facts["memory_usage"] = f"{memory}%"
            self.say(
                target,
                f"Memory usage: {memory}% (threshold: {params.memory_threshold}%)",
                style="yellow",
            )
            issues.append(f"Memory {memory}%")
        else:
            facts["memory_usage"] = f"{memory}%"
            self.say(target, f"Memory usage: {memory}%")

        self.say(target, "Checking SSH service...")
        ssh_running = self.detect_ssh_service(target) is not None
        if not ssh_running:
            ssh_running = self.pct.exec(ctid, ["pgrep", "-f", "sshd"]).returncode == 0
        facts["ssh"] = "running" if ssh_running else "not running"
        if ssh_running:
            self.say(target, "SSH service: running")
        else:
            self.say(target, "SSH service: not running", style="yellow")
            issues.append("SSH not running")

        self.say(target, "Checking system load...")
        ok, output = self.pct.output(ctid, ["cat", "/proc/loadavg"])
        if ok and output:
            facts["load_1m"] = output.split()[0]
            self.say(target, f"Load average (1m): {facts['load_1m']}")

        ok, output = self.pct.output(ctid, ["uptime", "-p"])
        if ok and output:
            facts["uptime"] = output
            self.say(target, f"Uptime: {output}")

        if not issues:
            self.say(target, "Health check passed", style="green")
            return Outcome.clean("all checks passed", facts=facts)

        self.say(target, "Health check completed with warnings", style="yellow")
        return Outcome.warning(issues, facts=facts)
