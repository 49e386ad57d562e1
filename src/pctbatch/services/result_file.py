"""Machine-readable result file for batch runs."""

import json
import os
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

from pctbatch.models import BatchReport


class ResultFileService:
    """Collects run metadata and writes per-target result records as JSON."""

    def __init__(self, result_file: str, logger):
        self.result_file = result_file
        self.logger = logger
        self.document: Dict[str, Any] = {
            "operation": None,
            "params": {},
            "status": "running",
            "started_at": None,
            "finished_at": None,
            "duration_seconds": None,
            "targets": [],
            "counts": {},
            "exit_code": None,
        }

    def start_run(self, operation: str, params: Dict[str, Any]):
        self.document["operation"] = operation
        self.document["params"] = params
        self.document["status"] = "running"
        self.document["started_at"] = self._now()

    def finalize(self, report: BatchReport, redact: Tuple[str, ...] = ()) -> Optional[str]:
        self.document["operation"] = report.request.kind
        self.document["params"] = report.request.describe_params(redact=redact)
        self.document["status"] = "interrupted" if report.interrupted else "completed"
        self.document["finished_at"] = self._now()
        if self.document.get("started_at"):
            started_at = datetime.fromisoformat(self.document["started_at"])
            finished_at = datetime.fromisoformat(self.document["finished_at"])
            self.document["duration_seconds"] = (finished_at - started_at).total_seconds()
        self.document["targets"] = [result.to_dict() for result in report.results]
        self.document["counts"] = report.counts
        self.document["exit_code"] = report.exit_code
        return self.write()

    def write(self) -> Optional[str]:
        directory = os.path.dirname(os.path.abspath(self.result_file))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(prefix="pctbatch-result-", suffix=".json", dir=directory)
        except OSError as exc:
            self.logger.warning("Could not write result file '%s': %s", self.result_file, exc)
            return None

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
                json.dump(self.document, file_obj, indent=2, sort_keys=True, default=str)
                file_obj.write("\n")
            os.replace(temp_path, self.result_file)
        except OSError as exc:
            self.logger.warning("Could not write result file '%s': %s", self.result_file, exc)
            try:
                os.remove(temp_path)
            except OSError:
                pass
            return None
        return self.result_file

    @staticmethod
    def _now() -> str:
        return datetime.now(timezone.utc).isoformat()
