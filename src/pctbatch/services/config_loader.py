"""Configuration loader for pctbatch."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from pctbatch.errors import ConfigurationError
from pctbatch.errors_catalog import actionable_error


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "verbose",
        "log_file",
        "report_file",
        "pct_binary",
        "command_timeout",
        "disk_threshold",
        "memory_threshold",
    }
    NUMERIC_KEYS = ("command_timeout", "disk_threshold", "memory_threshold")

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ConfigurationError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ConfigurationError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ConfigurationError(f"Unknown configuration keys: {unknown_list}")

        for key in self.NUMERIC_KEYS:
            value = parsed.get(key)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(
                    actionable_error(
                        "invalid_value",
                        label=f"{key} in {config_path}",
                        value=str(value),
                        hint=f"Set `{key}` to a number.",
                    )
                )

        return parsed
