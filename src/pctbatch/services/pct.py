"""Thin wrapper around the Proxmox `pct` tool."""

import shutil
import subprocess
import time
from typing import Callable, List, Optional, Sequence, Tuple

from pctbatch.errors import ConfigurationError
from pctbatch.errors_catalog import actionable_error


class PctClient:
    """Issues `pct` commands for a single host.

    Every call goes through ``run_cmd`` (normally ``CommandRunner.run``); callers
    decide what a non-zero exit means.
    """

    def __init__(self, run_cmd: Callable, logger, binary: str = "pct", sleep=time.sleep):
        self.run_cmd = run_cmd
        self.logger = logger
        self.binary = binary
        self.sleep = sleep

    def ensure_available(self):
        if shutil.which(self.binary) is None:
            raise ConfigurationError(actionable_error("pct_not_found", binary=self.binary))

    def _pct(self, *args: str, input_text: Optional[str] = None) -> subprocess.CompletedProcess:
        return self.run_cmd([self.binary, *args], input_text=input_text)

    def status(self, ctid: str) -> Optional[str]:
        """Returns the lifecycle state, or None when the container does not exist."""
        result = self._pct("status", ctid)
        if result.returncode != 0:
            return None

        output = (result.stdout or "").strip().lower()
        if output.startswith("status:"):
            return output.split(":", 1)[1].strip() or "unknown"
        if "running" in output:
            return "running"
        if "stopped" in output:
            return "stopped"
        return "unknown"

    def exec(
        self,
        ctid: str,
        args: Sequence[str],
        input_text: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        return self._pct("exec", ctid, "--", *args, input_text=input_text)

    def output(self, ctid: str, args: Sequence[str]) -> Tuple[bool, str]:
        result = self.exec(ctid, args)
        return result.returncode == 0, (result.stdout or "").strip()

    def file_exists(self, ctid: str, path: str) -> bool:
        return self.exec(ctid, ["test", "-f", path]).returncode == 0

    def read_file(self, ctid: str, path: str) -> Optional[str]:
        result = self.exec(ctid, ["cat", path])
        if result.returncode != 0:
            return None
        return result.stdout or ""

    def push(self, ctid: str, source: str, destination: str) -> subprocess.CompletedProcess:
        return self._pct("push", ctid, source, destination)

    def start(self, ctid: str) -> subprocess.CompletedProcess:
        return self._pct("start", ctid)

    def stop(self, ctid: str) -> subprocess.CompletedProcess:
        return self._pct("stop", ctid)

    def shutdown(self, ctid: str) -> subprocess.CompletedProcess:
        return self._pct("shutdown", ctid)

    def reboot(self, ctid: str) -> subprocess.CompletedProcess:
        return self._pct("reboot", ctid)

    def list_snapshots(self, ctid: str) -> List[str]:
        result = self._pct("listsnapshot", ctid)
        if result.returncode != 0:
            return []
        return parse_snapshot_names(result.stdout or "")

    def create_snapshot(
        self,
        ctid: str,
        name: str,
        description: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        args = ["snapshot", ctid, name]
        if description:
            args += ["--description", description]
        return self._pct(*args)

    def delete_snapshot(self, ctid: str, name: str) -> subprocess.CompletedProcess:
        return self._pct("delsnapshot", ctid, name)

    def wait_for_status(
        self,
        ctid: str,
        desired: str,
        attempts: int,
        interval: float,
        initial_delay: float = 0,
    ) -> bool:
        if initial_delay:
            self.sleep(initial_delay)

        for _ in range(attempts):
            if self.status(ctid) == desired:
                return True
            self.sleep(interval)

        self.logger.debug("Container %s did not reach '%s' after %s checks", ctid, desired, attempts)
        return False


def parse_snapshot_names(output: str) -> List[str]:
    """Extracts snapshot names from `pct listsnapshot` output.

    Lines look like ``\\`-> pre-update   2024-05-01 10:00:00   description``;
    the ``current`` pseudo snapshot is dropped.
    """
    names = []
    for line in output.splitlines():
        clean = line.strip().lstrip("`-> ").strip()
        if not clean:
            continue
        name = clean.split()[0]
        if name != "current":
            names.append(name)
    return names
