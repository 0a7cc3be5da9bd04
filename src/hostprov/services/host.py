"""Host-level configuration: root password, sshd, firewall, ssh keys."""

import os
import shutil
from typing import Callable, List

from hostprov.constants import UFW_ALLOWED
from hostprov.errors import PreconditionError
from hostprov.errors_catalog import actionable_error


class HostService:
    def __init__(self, logger, run_cmd: Callable, filesystem_service):
        self.logger = logger
        self.run_cmd = run_cmd
        self.filesystem_service = filesystem_service

    def change_root_password(self, password: str):
        self.logger.info("Change root password ...")
        self.run_cmd(["chpasswd"], input=f"root:{password}\n")

    def deny_ssh_root(self, sshd_config: str):
        """Rewrite sshd_config from its pristine ``.org`` copy with root login disabled."""
        original = f"{sshd_config}.org"
        if not os.path.exists(original):
            if not os.path.isfile(sshd_config):
                raise PreconditionError(f"Cannot find sshd config: {sshd_config}")
            self.logger.info("Copy away the original ssh config file ...")
            shutil.copy2(sshd_config, original)

        self.logger.info("Deny ssh access to root ...")
        with open(original, "r", encoding="utf-8") as file_obj:
            content = file_obj.read()
        self.filesystem_service.write_text(
            sshd_config,
            content.replace("PermitRootLogin yes", "PermitRootLogin no"),
        )
        self.run_cmd(["/etc/init.d/ssh", "restart"])

    def allow_firewall_ports(self):
        for rule in UFW_ALLOWED:
            self.run_cmd(["ufw", "allow", rule])
        self.logger.info("Enable ufw with: yes | ufw enable ...")
        self.logger.info("Check the status with: ufw status ...")

    def clear_known_host(self, known_hosts: str, server: str) -> int:
        """Drop every line mentioning ``server``, keeping a ``.org`` copy; return lines removed."""
        if not os.path.isfile(known_hosts):
            raise PreconditionError(actionable_error("known_hosts_not_found", path=known_hosts))

        original = f"{known_hosts}.org"
        shutil.copy2(known_hosts, original)
        with open(original, "r", encoding="utf-8") as file_obj:
            lines = file_obj.readlines()

        kept = [line for line in lines if server not in line]
        self.filesystem_service.write_text(known_hosts, "".join(kept))
        removed = len(lines) - len(kept)
        self.logger.info("Removed %s entries for %s from %s", removed, server, known_hosts)
        return removed

    def generate_backup_key(self, ssh_dir: str, authorized_keys_export: str) -> List[str]:
        """Create the root RSA key plus its RFC4716 export and collect both for the storage box."""
        self.filesystem_service.ensure_dir(ssh_dir, mode=0o700)
        key_path = os.path.join(ssh_dir, "id_rsa")

        self.logger.info("Running ssh-keygen ...")
        self.run_cmd(["ssh-keygen", "-f", key_path, "-N", ""], input="y\n")
        exported = self.run_cmd(["ssh-keygen", "-e", "-f", f"{key_path}.pub"], capture_output=True)
        rfc_lines = [line for line in (exported.stdout or "").splitlines(keepends=True) if "Comment:" not in line]
        rfc_path = os.path.join(ssh_dir, "id_rsa_rfc.pub")
        self.filesystem_service.write_text(rfc_path, "".join(rfc_lines))

        self.logger.info("Write local authorized keys ...")
        for public_key in (f"{key_path}.pub", rfc_path):
            with open(public_key, "r", encoding="utf-8") as file_obj:
                self.filesystem_service.append_text(authorized_keys_export, file_obj.read())
        return [f"{key_path}.pub", rfc_path]
