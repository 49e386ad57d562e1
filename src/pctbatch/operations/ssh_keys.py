"""SSH public key deployment for existing users."""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from pctbatch.errors import ConfigurationError, MutationFailed, PreconditionFailed, VerificationFailed
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation

USERNAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")

# Adds a missing trailing newline before appending stdin to $1.
APPEND_SCRIPT = 'if [ -s "$1" ] && [ -n "$(tail -c 1 "$1")" ]; then echo >> "$1"; fi; cat >> "$1"'
# Drops every line of $1 equal to the line read from stdin.
REMOVE_SCRIPT = (
    'grep -Fxv -f - "$1" > "$1.tmp"; rc=$?; '
    'if [ "$rc" -le 1 ]; then cat "$1.tmp" > "$1"; rm -f "$1.tmp"; '
    'else rm -f "$1.tmp"; exit "$rc"; fi'
)


def load_public_key(path: str) -> str:
    """Reads a single public key line from a host file."""
    key_path = Path(path).expanduser()
    if not key_path.is_file():
        raise ConfigurationError(actionable_error("file_not_found", label="SSH key file", path=path))

    try:
        lines = key_path.read_text(encoding="utf-8").splitlines()
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigurationError(f"Could not read SSH key file '{path}': {exc}") from exc

    keys = [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]
    if len(keys) != 1:
        raise ConfigurationError(actionable_error("invalid_key_file", path=path))
    return keys[0]


def validate_username(username: str):
    if not username or not USERNAME_PATTERN.match(username):
        raise ConfigurationError(
            actionable_error(
                "invalid_value",
                label="username",
                value=username or "''",
                hint="Use a lowercase POSIX user name (letters, digits, '-' and '_').",
            )
        )


class AuthorizedKeys:
    """Reads and edits ~/.ssh/authorized_keys inside a container."""

    def __init__(self, pct):
        self.pct = pct

    def home_dir(self, ctid: str, username: str) -> Optional[str]:
        ok, output = self.pct.output(ctid, ["getent", "passwd", username])
        if not ok or output.count(":") < 6:
            return None
        return output.splitlines()[0].split(":")[5] or None

    @staticmethod
    def path_for(home: str) -> str:
        return f"{home.rstrip('/')}/.ssh/authorized_keys"

    def contains(self, ctid: str, path: str, key: str) -> bool:
        result = self.pct.exec(ctid, ["grep", "-Fxq", "-f", "-", path], input_text=f"{key}\n")
        return result.returncode == 0

    def add(self, ctid: str, username: str, home: str, key: str):
        ssh_dir = f"{home.rstrip('/')}/.ssh"
        path = self.path_for(home)
        steps = (
            (["mkdir", "-p", ssh_dir], None, "could not create .ssh directory"),
            (["chmod", "700", ssh_dir], None, "could not secure .ssh directory"),
            (["sh", "-c", APPEND_SCRIPT, "sh", path], f"{key}\n", "could not write authorized_keys"),
            (["chmod", "600", path], None, "could not secure authorized_keys"),
            (["chown", "-R", f"{username}:", ssh_dir], None, "could not set .ssh ownership"),
        )
        for args, input_text, reason in steps:
            if self.pct.exec(ctid, args, input_text=input_text).returncode != 0:
                raise MutationFailed(reason)

        if not self.contains(ctid, path, key):
            raise VerificationFailed("key not present after write")

    def remove(self, ctid: str, path: str, key: str):
        result = self.pct.exec(ctid, ["sh", "-c", REMOVE_SCRIPT, "sh", path], input_text=f"{key}\n")
        if result.returncode != 0:
            raise MutationFailed("could not rewrite authorized_keys")
        if self.pct.exec(ctid, ["chmod", "600", path]).returncode != 0:
            raise MutationFailed("could not secure authorized_keys")
        if self.contains(ctid, path, key):
            raise VerificationFailed("key still present after removal")


@dataclass(frozen=True)
class SshKeyParams:
    username: str
    key: str
    remove: bool = False


class SshKeyOperation(Operation):
    kind = "ssh-key"
    title = "Managing SSH key"

    def __init__(self, pct, logger, console):
        super().__init__(pct, logger, console)
        self.authorized_keys = AuthorizedKeys(pct)

    def validate(self, request: OperationRequest):
        super().validate(request)
        validate_username(request.params.username)
        if not request.params.key or "\n" in request.params.key:
            raise ConfigurationError("SSH key must be a single non-empty line.")

    def describe(self, request: OperationRequest) -> str:
        action = "Removing" if request.params.remove else "Adding"
        return f"{action} SSH key for user '{request.params.username}'"

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        params: SshKeyParams = request.params
        ctid = target.ctid

        if self.pct.exec(ctid, ["id", params.username]).returncode != 0:
            raise PreconditionFailed("user not found")

        home = self.authorized_keys.home_dir(ctid, params.username)
        if not home:
            raise PreconditionFailed("home directory not found")
        path = self.authorized_keys.path_for(home)
        facts["home"] = home
        facts["authorized_keys"] = path

        if params.remove:
            if not self.pct.file_exists(ctid, path):
                return "no authorized_keys file"
            if not self.authorized_keys.contains(ctid, path, params.key):
                return "key not present"
            return None

        if self.authorized_keys.contains(ctid, path, params.key):
            return "key already present"
        return None

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        params: SshKeyParams = request.params
        if params.remove:
            self.authorized_keys.remove(target.ctid, facts["authorized_keys"], params.key)
            self.say(target, "SSH key removed successfully", style="green")
            return Outcome.success("key removed", facts=facts)

        self.authorized_keys.add(target.ctid, params.username, facts["home"], params.key)
        self.say(target, "SSH key added successfully", style="green")
        return Outcome.success("key added", facts=facts)
