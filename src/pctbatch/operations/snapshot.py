"""Named snapshot creation and deletion."""

import re
from dataclasses import dataclass
from typing import Dict, Optional

from pctbatch.errors import ConfigurationError, MutationFailed, VerificationFailed
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation

ACTIONS = ("create", "delete")
# Proxmox config IDs: a letter first, at most 40 characters.
SNAPSHOT_NAME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9_-]{1,39}$")


@dataclass(frozen=True)
class SnapshotParams:
    action: str
    name: str
    description: Optional[str] = None


class SnapshotOperation(Operation):
    kind = "snapshot"
    title = "Managing snapshot"
    required_status = None

    def validate(self, request: OperationRequest):
        super().validate(request)
        params: SnapshotParams = request.params
        if params.action not in ACTIONS:
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="action",
                    value=params.action,
                    hint="Use 'create' or 'delete'.",
                )
            )
        if not SNAPSHOT_NAME_PATTERN.match(params.name or ""):
            raise ConfigurationError(
                actionable_error(
                    "invalid_value",
                    label="snapshot name",
                    value=params.name or "''",
                    hint="Start with a letter and use letters, digits, '-' or '_' (2-40 characters).",
                )
            )

    def describe(self, request: OperationRequest) -> str:
        verb = "Creating" if request.params.action == "create" else "Deleting"
        return f"{verb} snapshot '{request.params.name}'"

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        params: SnapshotParams = request.params
        exists = params.name in self.pct.list_snapshots(target.ctid)
        if params.action == "create" and exists:
            return "snapshot already exists"
        if params.action == "delete" and not exists:
            return "snapshot not present"
        return None

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        params: SnapshotParams = request.params
        ctid = target.ctid

        if params.action == "create":
            if self.pct.create_snapshot(ctid, params.name, params.description).returncode != 0:
                raise MutationFailed("snapshot creation failed")
            if params.name not in self.pct.list_snapshots(ctid):
                raise VerificationFailed("snapshot not listed after create")
            self.say(target, "Snapshot created successfully", style="green")
            return Outcome.success(f"snapshot '{params.name}' created", facts=facts)

        if self.pct.delete_snapshot(ctid, params.name).returncode != 0:
            raise MutationFailed("snapshot deletion failed")
        if params.name in self.pct.list_snapshots(ctid):
            raise VerificationFailed("snapshot still listed after delete")
        self.say(target, "Snapshot deleted successfully", style="green")
        return Outcome.success(f"snapshot '{params.name}' deleted", facts=facts)
