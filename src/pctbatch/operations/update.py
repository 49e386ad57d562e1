"""Package update and upgrade across containers."""

from dataclasses import dataclass
from typing import Dict, Optional

from pctbatch.constants import REBOOT_AFTER_UPDATE_POLL, REBOOT_REQUIRED_FLAG, STATUS_RUNNING
from pctbatch.errors import MutationFailed
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation


@dataclass(frozen=True)
class UpdateParams:
    auto_yes: bool = False
    reboot_if_needed: bool = False
    update_only: bool = False


def count_upgradable(apt_list_output: str) -> int:
    return sum(1 for line in apt_list_output.splitlines() if "[upgradable" in line)


class UpdateOperation(Operation):
    kind = "update"
    title = "Updating and upgrading packages"

    def describe(self, request: OperationRequest) -> str:
        if request.params.update_only:
            return "Updating package lists"
        return self.title

    def prepare(self, target: Target, request: OperationRequest, facts: Dict[str, str]):
        # Package lists are refreshed before the upgradable count is read.
        self.say(target, "Updating package lists...")
        result = self.pct.exec(target.ctid, ["apt-get", "update", "-qq"])
        if result.returncode != 0:
            self.say(target, "Package list update completed with warnings", style="yellow")

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        if request.params.update_only:
            return None

        ok, output = self.pct.output(target.ctid, ["apt", "list", "--upgradable"])
        upgradable = count_upgradable(output) if ok else 0
        facts["upgradable"] = str(upgradable)
        if upgradable == 0:
            return "already up to date"
        self.say(target, f"Found {upgradable} package(s) to upgrade")
        return None

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        params: UpdateParams = request.params
        if params.update_only:
            self.say(target, "Package lists updated (skipping upgrade)", style="green")
            return Outcome.success("updated lists only", facts=facts)

        command = ["env", "DEBIAN_FRONTEND=noninteractive", "apt-get", "upgrade", "-qq"]
        if params.auto_yes:
            command.append("-y")

        self.say(target, "Upgrading packages...")
        self.run_or_fail(target, command, "upgrade failed")
        detail = f"{facts['upgradable']} package(s) upgraded"
        self.say(target, "Packages upgraded successfully", style="green")

        if not self.pct.file_exists(target.ctid, REBOOT_REQUIRED_FLAG):
            return Outcome.success(detail, facts=facts)

        self.say(target, "Reboot required", style="yellow")
        if not params.reboot_if_needed:
            facts["reboot"] = "needed"
            return Outcome.success(f"{detail}, reboot needed", facts=facts)

        self.say(target, "Rebooting container...")
        if self.pct.reboot(target.ctid).returncode != 0:
            raise MutationFailed("reboot failed")

        delay, attempts, interval = REBOOT_AFTER_UPDATE_POLL
        if self.pct.wait_for_status(target.ctid, STATUS_RUNNING, attempts, interval, initial_delay=delay):
            self.say(target, "Container rebooted successfully", style="green")
            facts["reboot"] = "done"
            return Outcome.success(f"{detail}, rebooted", facts=facts)

        self.say(target, "Container taking longer than expected to start", style="yellow")
        facts["reboot"] = "slow"
        return Outcome.success(f"{detail}, reboot slow", degraded=True, facts=facts)
