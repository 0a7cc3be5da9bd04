"""Shared domain models for hostprov."""

import os
from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .constants import DEFAULT_SHELL, LOG_TIMESTAMP_FORMAT


def option(flag: Optional[str] = None, default: Any = None, required: bool = False, parameter: Optional[str] = None):
    """Declare a task option with its CLI flag and parameter-file key."""
    return field(
        default=default,
        metadata={"flag": flag, "required": required, "parameter": parameter},
    )


class InstallMode(str, Enum):
    ALL = "all"
    APT = "apt"
    CURL = "curl"
    LOCAL = "local"
    RSTUDIO = "rstudio"

    def includes(self, mode: "InstallMode") -> bool:
        return self is InstallMode.ALL or self is mode


class Verdict(Enum):
    ALREADY_SATISFIED = "already_satisfied"
    NEEDS_ACTION = "needs_action"


class TaskStatus(Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SiteConfig:
    """Host-level paths and defaults, loaded from the YAML site config."""

    admin_root: str = "/root"
    home_root: str = "/home"
    archive_dir: str = "."
    backup_root: str = "/root/backup"
    profile_fragment: str = "/etc/profile.d/apps-bin-path.sh"
    nginx_template: str = "/etc/hostprov/nginx.template"
    nginx_sites_dir: str = "/etc/nginx/sites-enabled"
    autosetup_template: str = "/etc/hostprov/autosetup.template"
    ssmtp_template: str = "/etc/hostprov/ssmtp.conf.template"
    ssmtp_config: str = "/etc/ssmtp/ssmtp.conf"
    sshd_config: str = "/etc/ssh/sshd_config"
    ssh_dir: str = "/root/.ssh"
    authorized_keys_export: str = "/root/storagebox_authorized_keys"
    known_hosts: str = "~/.ssh/known_hosts"
    mail_command: str = "/usr/sbin/ssmtp"
    local_tools_owner: str = "root:root"
    admin_user: str = "admin"
    restore_target: str = "/tmp/restic_restore"

    @property
    def user_admin_dir(self) -> str:
        return os.path.join(self.admin_root, "user_admin")

    @property
    def credentials_dir(self) -> str:
        return os.path.join(self.user_admin_dir, "created")

    @property
    def backup_parameter_file(self) -> str:
        return os.path.join(self.backup_root, "par", "restic_backup.par")

    @property
    def backup_job_file(self) -> str:
        return os.path.join(self.backup_root, "job", "restic_backup.job")

    @property
    def backup_exclude_file(self) -> str:
        return os.path.join(self.backup_root, "job", "restic_exclude.txt")

    @property
    def backup_log_dir(self) -> str:
        return os.path.join(self.backup_root, "log")

    def home_dir(self, username: str) -> str:
        return os.path.join(self.home_root, username)


@dataclass(frozen=True)
class RepositoryLocator:
    """Address of a remote restic repository, e.g. ``sftp:u123@host:/srv/repo``."""

    user: str
    host: str
    path: str
    scheme: str = "sftp"

    def __str__(self) -> str:
        return f"{self.scheme}:{self.user}@{self.host}:{self.path}"


@dataclass(frozen=True)
class CredentialRecord:
    username: str
    secret: str

    def render(self) -> str:
        return f"{self.username},{self.secret}\n"

    @classmethod
    def parse(cls, text: str) -> "CredentialRecord":
        line = text.strip().splitlines()[0] if text.strip() else ""
        separator = "," if "," in line else ":"
        username, sep, secret = line.partition(separator)
        if not sep or not username or not secret:
            raise ValueError(f"Malformed credential record: {line!r}")
        return cls(username=username, secret=secret)


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    caller: str
    message: str

    def render(self) -> str:
        return f"[{self.timestamp.strftime(LOG_TIMESTAMP_FORMAT)} -- {self.caller}] {self.message}"


@dataclass(frozen=True)
class CreateUserOptions:
    username: str = option("-u", required=True)
    password: str = option("-p", required=True)
    shell: str = option("-s", default=DEFAULT_SHELL, required=True)
    groups: Optional[str] = option("-g")
    output_dir: str = option("-o", required=True)


@dataclass(frozen=True)
class DeleteUserOptions:
    username: str = option("-u", required=True)


@dataclass(frozen=True)
class MigrateUsersOptions:
    user_file: str = option("-u", required=True)
    shell: str = option("-s", default=DEFAULT_SHELL, required=True)


@dataclass(frozen=True)
class InitHostOptions:
    root_password: str = option("-r", required=True)
    admin_user: str = option("-u", required=True)
    admin_password: str = option("-p", required=True)
    group: Optional[str] = option("-g")
    apt_package_file: Optional[str] = option("-a")


@dataclass(frozen=True)
class InstallOptions:
    fqdn: str = option("-q", required=True)
    mode: InstallMode = option("-m", default=InstallMode.ALL, required=True)
    apt_package_file: Optional[str] = option("-a")
    curl_input: Optional[str] = option("-c")
    r_key_file: Optional[str] = option("-k")
    local_source: Optional[str] = option("-l")
    r_package_file: Optional[str] = option("-r")
    nginx_template: str = option("-t", required=True)


@dataclass(frozen=True)
class RenderTemplateOptions:
    fqdn: str = option("-q", required=True)
    template: str = option("-t", required=True)
    output: str = option("-o", default="autosetup", required=True)


@dataclass(frozen=True)
class ConfigNginxOptions:
    fqdn: str = option("-q", required=True)
    template: str = option("-t", required=True)


@dataclass(frozen=True)
class InitMailOptions:
    config_target: str = option("-c", required=True)
    host_machine: str = option("-m", required=True)
    auth_password: str = option("-p", required=True)
    template: str = option("-t", required=True)


@dataclass(frozen=True)
class ClearKnownHostsOptions:
    server: str = option("-q", required=True)
    known_hosts: str = option("-s", required=True)


@dataclass(frozen=True)
class BackupOptions:
    repository: str = option("-r", required=True, parameter="RESTICREPOSITORY")
    password: str = option("-w", required=True, parameter="RESTICPASSWORD")
    job_file: str = option("-j", required=True, parameter="JOBFILE")
    log_file: str = option("-l", required=True, parameter="RESTICLOGFILE")
    backup_dir: Optional[str] = option("-d", parameter="BCKUPDIR")
    exclude_file: Optional[str] = option("-e", parameter="RESTICEXCLUDEFILE")
    email: Optional[str] = option("-m", parameter="EMAILADDRESS")
    verbose: bool = option("-v", default=False, parameter="VERBOSE")


@dataclass(frozen=True)
class RestoreOptions:
    repository: str = option(required=True, parameter="RESTICREPOSITORY")
    password: str = option(required=True, parameter="RESTICPASSWORD")
    target: str = option("-t", required=True)
    job_file: Optional[str] = option("-j", parameter="JOBFILE")
    backup_dir: Optional[str] = option("-d")
    snapshot_id: Optional[str] = option("-s")


@dataclass(frozen=True)
class FindOptions:
    item_path: str = option("-f", required=True)
    repository: str = option(required=True, parameter="RESTICREPOSITORY")
    password: str = option(required=True, parameter="RESTICPASSWORD")


@dataclass(frozen=True)
class UnlockOptions:
    repository: str = option("-r", required=True, parameter="RESTICREPOSITORY")
    password: str = option("-w", required=True, parameter="RESTICPASSWORD")


@dataclass(frozen=True)
class InitBackupOptions:
    repository_user: str = option("-u", required=True)
    repository_host: str = option("-r", required=True)
    repository_path: str = option("-q", required=True)
    password: str = option("-w", required=True)
    parameter_file: str = option("-p", required=True)
    job_file: Optional[str] = option("-j")
    exclude_file: Optional[str] = option("-e")
    email: Optional[str] = option("-m")
    init_repository: bool = option("-i", default=False)

    @property
    def locator(self) -> RepositoryLocator:
        return RepositoryLocator(
            user=self.repository_user,
            host=self.repository_host,
            path=self.repository_path,
        )


@dataclass(frozen=True)
class InitBackupKeyOptions:
    repository_host: str = option("-r", required=True)
    repository_user: str = option("-u", required=True)


ROOT_ONLY_TASKS = (
    DeleteUserOptions,
    RestoreOptions,
    FindOptions,
    InitBackupKeyOptions,
)


def task_name(options: Any) -> str:
    """``CreateUserOptions`` -> ``create-user``."""
    name = type(options).__name__[: -len("Options")]
    parts = []
    for char in name:
        if char.isupper() and parts:
            parts.append("-")
        parts.append(char.lower())
    return "".join(parts)


def parameter_keys(options_cls) -> Dict[str, str]:
    """Map parameter-file keys to option field names."""
    return {
        f.metadata["parameter"]: f.name
        for f in fields(options_cls)
        if f.metadata.get("parameter")
    }
