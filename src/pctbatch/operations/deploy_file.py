"""Host-to-container file deployment."""

import hashlib
import posixpath
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from pctbatch.errors import ConfigurationError, MutationFailed, VerificationFailed
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation

MODE_PATTERN = re.compile(r"^[0-7]{3,4}$")
OWNER_PATTERN = re.compile(r"^[A-Za-z0-9._-]+(:[A-Za-z0-9._-]+)?$")


@dataclass(frozen=True)
class DeployFileParams:
    source: str
    destination: str
    owner: Optional[str] = None
    mode: Optional[str] = None
    backup: bool = True


def file_sha256(path: str) -> str:
    hasher = hashlib.sha256()
    with open(path, "rb") as file_obj:
        for chunk in iter(lambda: file_obj.read(8192), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def owner_matches(wanted: str, actual: str) -> bool:
    """``wanted`` may omit the group; ``actual`` is ``user:group``."""
    if ":" in wanted:
        return wanted == actual
    return actual.split(":", 1)[0] == wanted


class DeployFileOperation(Operation):
    kind = "deploy-file"
    title = "Deploying file"

    def __init__(self, pct, logger, console):
        super().__init__(pct, logger, console)
        self._digests: Dict[str, str] = {}

    def validate(self, request: OperationRequest):
        super().validate(request)
        params: DeployFileParams = request.params

        if not Path(params.source).is_file():
            raise ConfigurationError(
                actionable_error("file_not_found", label="Source file", path=params.source)
            )
        if not params.destination.startswith("/") or params.destination.endswith("/"):
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="destination path",
                    value=params.destination,
                    hint="Give an absolute file path inside the container, e.g. /etc/motd.",
                )
            )
        if params.mode is not None and not MODE_PATTERN.match(params.mode):
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="permissions",
                    value=params.mode,
                    hint="Use octal notation such as 644 or 0755.",
                )
            )
        if params.owner is not None and not OWNER_PATTERN.match(params.owner):
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="owner",
                    value=params.owner,
                    hint="Use user or user:group, e.g. root:root.",
                )
            )

    def describe(self, request: OperationRequest) -> str:
        return f"Deploying file to '{request.params.destination}'"

    def local_digest(self, source: str) -> str:
        if source not in self._digests:
            self._digests[source] = file_sha256(source)
        return self._digests[source]

    def remote_digest(self, target: Target, path: str) -> Optional[str]:
        ok, output = self.pct.output(target.ctid, ["sha256sum", path])
        if not ok or not output:
            return None
        return output.split()[0]

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        params: DeployFileParams = request.params
        if self.remote_digest(target, params.destination) != self.local_digest(params.source):
            return None

        ok, output = self.pct.output(target.ctid, ["stat", "-c", "%a %U:%G", params.destination])
        if not ok or " " not in output:
            return None
        mode, owner = output.split(" ", 1)
        if params.mode is not None and int(mode, 8) != int(params.mode, 8):
            return None
        if params.owner is not None and not owner_matches(params.owner, owner):
            return None
        return "already up to date"

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        params: DeployFileParams = request.params
        ctid = target.ctid
        destination = params.destination

        if params.backup and self.pct.file_exists(ctid, destination):
            facts["backup"] = self.backup_file(target, destination)

        self.run_or_fail(
            target,
            ["mkdir", "-p", posixpath.dirname(destination)],
            "could not create destination directory",
        )

        self.say(target, "Copying file...")
        if self.pct.push(ctid, params.source, destination).returncode != 0:
            raise MutationFailed("copy failed")

        if params.owner:
            self.say(target, f"Setting owner to {params.owner}")
            self.run_or_fail(target, ["chown", params.owner, destination], "could not set owner")
        if params.mode:
            self.say(target, f"Setting permissions to {params.mode}")
            self.run_or_fail(target, ["chmod", params.mode, destination], "could not set permissions")

        if self.remote_digest(target, destination) != self.local_digest(params.source):
            raise VerificationFailed("content mismatch after copy")

        self.say(target, "File deployed successfully", style="green")
        detail = "deployed"
        if "backup" in facts:
            detail = f"deployed, previous copy at {facts['backup']}"
        return Outcome.success(detail, facts=facts)
