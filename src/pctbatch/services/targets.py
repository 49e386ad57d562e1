"""Container ID resolution for pctbatch."""

import re
from typing import Iterable, List

from pctbatch.errors import ConfigurationError
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import Target

_CTID_PATTERN = re.compile(r"^[1-9][0-9]*$")


class TargetResolver:
    """Turns raw operator input into an ordered list of targets.

    Only the shape of each ID is checked here. Whether a container exists is
    decided per target when the operation runs.
    """

    def resolve(self, raw_ids: Iterable[str]) -> List[Target]:
        targets = []
        for position, raw in enumerate(raw_ids):
            ctid = str(raw).strip()
            if not _CTID_PATTERN.match(ctid):
                raise ConfigurationError(actionable_error("invalid_target", ctid=ctid or "''"))
            targets.append(Target(ctid=ctid, position=position))

        if not targets:
            raise ConfigurationError(actionable_error("missing_targets"))
        return targets
