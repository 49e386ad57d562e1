"""Subprocess execution service for pctbatch."""

import subprocess
from typing import List, Optional

from pctbatch.errors import CommandTimeout, RemoteCommandError


class CommandRunner:
    """Runs host commands and hands the completed process back to the caller.

    A non-zero exit is not an error here; only a missing binary, an OS-level
    failure or a timeout raise.
    """

    def __init__(self, logger, default_timeout: Optional[float] = None):
        self.logger = logger
        self.default_timeout = default_timeout

    def run(
        self,
        cmd: List[str],
        timeout: Optional[float] = None,
        input_text: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        effective_timeout = timeout if timeout is not None else self.default_timeout
        try:
            result = subprocess.run(
                cmd,
                text=True,
                capture_output=True,
                timeout=effective_timeout,
                input=input_text,
            )
        except FileNotFoundError as exc:
            raise RemoteCommandError(
                f"Required command not found: {cmd[0]}. Please install it and try again.",
                returncode=127,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeout(f"Command timed out after {effective_timeout}s: {cmd_str}") from exc
        except OSError as exc:
            raise RemoteCommandError(f"Failed to execute command: {cmd_str}. {exc}") from exc

        if result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            self.logger.debug("Command exited with %s: %s %s", result.returncode, cmd_str, stderr)
        return result
