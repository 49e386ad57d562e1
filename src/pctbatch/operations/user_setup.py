"""Sudo user provisioning with optional SSH key and password."""

import secrets
from dataclasses import dataclass
from typing import Dict, Optional

from pctbatch.constants import SSH_SERVICES, SUDOERS_DIR
from pctbatch.errors import ConfigurationError, VerificationFailed
from pctbatch.errors_catalog import actionable_error
from pctbatch.models import OperationRequest, Outcome, Target
from pctbatch.operations.base import Operation
from pctbatch.operations.ssh_keys import AuthorizedKeys, validate_username

WRITE_SCRIPT = 'cat > "$1"'


def generate_password() -> str:
    return secrets.token_urlsafe(12)


@dataclass(frozen=True)
class UserSetupParams:
    username: str
    key: Optional[str] = None
    password: Optional[str] = None
    generate_password: bool = False
    sudo_nopasswd: bool = False


class UserSetupOperation(Operation):
    """Creates a new sudo user; an existing account is left untouched."""

    kind = "user-setup"
    title = "Creating user"
    secret_params = ("password",)

    def __init__(self, pct, logger, console):
        super().__init__(pct, logger, console)
        self.authorized_keys = AuthorizedKeys(pct)

    def validate(self, request: OperationRequest):
        super().validate(request)
        params: UserSetupParams = request.params
        validate_username(params.username)
        if params.password and params.generate_password:
            raise ConfigurationError(actionable_error("conflicting_options", first="-p", second="-g"))
        if params.password is not None and (not params.password or "\n" in params.password):
            raise ConfigurationError("Password must be a single non-empty line.")
        if params.key is not None and (not params.key or "\n" in params.key):
            raise ConfigurationError("SSH key must be a single non-empty line.")

    def describe(self, request: OperationRequest) -> str:
        return f"Creating user '{request.params.username}'"

    def precheck(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Optional[str]:
        if self.pct.exec(target.ctid, ["id", request.params.username]).returncode == 0:
            return "user already exists"
        return None

    def apply(self, target: Target, request: OperationRequest, facts: Dict[str, str]) -> Outcome:
        params: UserSetupParams = request.params
        ctid = target.ctid
        username = params.username

        self.run_or_fail(
            target,
            ["adduser", "--disabled-password", "--gecos", "", username],
            "user creation failed",
        )

        password = generate_password() if params.generate_password else params.password
        if password:
            self.say(target, f"Setting password for user '{username}'...")
            self.run_or_fail(
                target, ["chpasswd"], "could not set password", input_text=f"{username}:{password}\n"
            )
            facts["password"] = "generated" if params.generate_password else "set"

        self.say(target, f"Adding user '{username}' to sudo group...")
        self.run_or_fail(target, ["usermod", "-aG", "sudo", username], "could not add user to sudo group")

        if params.sudo_nopasswd:
            self.say(target, "Configuring passwordless sudo...")
            sudoers_path = f"{SUDOERS_DIR}/{username}"
            self.run_or_fail(
                target,
                ["sh", "-c", WRITE_SCRIPT, "sh", sudoers_path],
                "could not write sudoers entry",
                input_text=f"{username} ALL=(ALL) NOPASSWD:ALL\n",
            )
            self.run_or_fail(target, ["chmod", "0440", sudoers_path], "could not secure sudoers entry")
            facts["sudo"] = "nopasswd"
        else:
            facts["sudo"] = "password"

        if params.key:
            self.say(target, "Configuring SSH key authentication...")
            home = self.authorized_keys.home_dir(ctid, username) or f"/home/{username}"
            self.authorized_keys.add(ctid, username, home, params.key)
            facts["ssh_key"] = "configured"

        if not self.enable_ssh(target):
            self.say(target, "SSH service not found, you may need to install openssh-server", style="yellow")
            facts["ssh_service"] = "missing"

        if self.pct.exec(ctid, ["id", username]).returncode != 0:
            raise VerificationFailed("user not present after creation")

        self.say(target, "User setup completed successfully", style="green")
        if params.generate_password:
            # Shown once, never logged or written to the result file.
            self.console.print(
                f"[blue]\\[LXC {ctid}][/blue] Password for '{username}': [bold]{password}[/bold]"
            )
            self.say(target, "Save this password securely, it will not be displayed again", style="yellow")

        detail = "user created"
        ok, output = self.pct.output(ctid, ["hostname", "-I"])
        if ok and output.split():
            facts["ip"] = output.split()[0]
            detail = f"user created, ssh {username}@{facts['ip']}"
        return Outcome.success(detail, facts=facts)

    def enable_ssh(self, target: Target) -> Optional[str]:
        for service in SSH_SERVICES:
            if self.pct.exec(target.ctid, ["systemctl", "enable", "--now", service]).returncode == 0:
                return service
        return None
