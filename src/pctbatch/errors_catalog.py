"""Actionable error catalog for pctbatch."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "missing_targets": {
        "what": "No container IDs were given.",
        "next": "Pass one or more IDs with `-c`, for example `-c 100 101 102`.",
    },
    "invalid_target": {
        "what": "Invalid container ID: {ctid}",
        "next": "Container IDs are numeric VMIDs as shown by `pct list`.",
    },
    "pct_not_found": {
        "what": "Required command not found: {binary}",
        "next": "Run pctbatch on a Proxmox VE node or point `--pct-binary` at the `pct` tool.",
    },
    "file_not_found": {
        "what": "{label} not found: {path}",
        "next": "Check the path on the Proxmox host and retry.",
    },
    "invalid_key_file": {
        "what": "SSH key file must contain exactly one public key: {path}",
        "next": "Split the file and run once per key.",
    },
    "invalid_value": {
        "what": "Invalid {label}: {value}",
        "next": "{hint}",
    },
    "conflicting_options": {
        "what": "Options {first} and {second} cannot be used together.",
        "next": "Pick one of them.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
