"""OS account management for hostprov."""

import os
import secrets
from typing import Callable, List, Optional

from hostprov.constants import (
    CREDENTIALS_DIR_MODE,
    GENERATED_PASSWORD_ALPHABET,
    GENERATED_PASSWORD_LENGTH,
)
from hostprov.models import CredentialRecord


def generate_password(length: int = GENERATED_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(GENERATED_PASSWORD_ALPHABET) for _ in range(length))


def split_groups(groups: Optional[str]) -> List[str]:
    """``"staff;docker"`` -> ``["staff", "docker"]``."""
    if not groups:
        return []
    return [group.strip() for group in groups.split(";") if group.strip()]


class AccountService:
    """Wraps useradd, chpasswd, usermod, userdel and groupadd."""

    def __init__(self, logger, run_cmd: Callable, filesystem_service):
        self.logger = logger
        self.run_cmd = run_cmd
        self.filesystem_service = filesystem_service

    def create_account(self, username: str, shell: str):
        self.logger.info("Create account for user: %s ...", username)
        self.run_cmd(["useradd", username, "-s", shell, "-m"])

    def set_password(self, username: str, password: str):
        self.logger.info("Set password for user: %s ...", username)
        self.run_cmd(["chpasswd"], input=f"{username}:{password}\n")

    def add_to_group(self, username: str, group: str):
        self.logger.info("Add user %s to group: %s ...", username, group)
        self.run_cmd(["usermod", "-a", "-G", group, username])

    def add_to_groups(self, username: str, groups: Optional[str]):
        for group in split_groups(groups):
            self.add_to_group(username, group)

    def create_group(self, group: str):
        self.logger.info("Adding group %s", group)
        self.run_cmd(["groupadd", group])

    def delete_account(self, username: str):
        self.logger.info("Delete account of user: %s ...", username)
        self.run_cmd(["userdel", username])

    def write_credentials(self, output_dir: str, record: CredentialRecord) -> str:
        """Persist ``record`` as ``<output_dir>/.<username>.pwd`` in a mode 700 directory."""
        self.filesystem_service.ensure_dir(output_dir, mode=CREDENTIALS_DIR_MODE)
        self.filesystem_service.set_permissions(output_dir, CREDENTIALS_DIR_MODE)
        path = os.path.join(output_dir, f".{record.username}.pwd")
        self.logger.info("Write credentials to: %s ...", output_dir)
        self.filesystem_service.write_text(path, record.render(), mode=0o600)
        return path

    def read_credentials(self, path: str) -> CredentialRecord:
        with open(path, "r", encoding="utf-8") as file_obj:
            return CredentialRecord.parse(file_obj.read())
