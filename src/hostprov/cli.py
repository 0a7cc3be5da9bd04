import logging
import os
import socket
from datetime import datetime

import click
from rich.logging import RichHandler

from .constants import LOG_TIMESTAMP_FORMAT
from .core import TaskRunner
from .errors import ProvisioningError
from .models import (
    BackupOptions,
    ClearKnownHostsOptions,
    ConfigNginxOptions,
    CreateUserOptions,
    DeleteUserOptions,
    FindOptions,
    InitBackupKeyOptions,
    InitBackupOptions,
    InitHostOptions,
    InitMailOptions,
    InstallMode,
    InstallOptions,
    MigrateUsersOptions,
    RenderTemplateOptions,
    RestoreOptions,
    UnlockOptions,
)
from .services.accounts import generate_password
from .services.config_loader import ConfigLoader
from .services.resolver import OptionResolver

CONTEXT_SETTINGS = {"help_option_names": ["-h", "--help"]}
SYSTEM_CONFIG_PATH = "/etc/hostprov.yml"

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


class _UsageExitCode:
    """Report malformed command lines with exit status 1."""

    def parse_args(self, ctx, args):
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise


class TaskCommand(_UsageExitCode, click.Command):
    pass


class TaskGroup(_UsageExitCode, click.Group):
    command_class = TaskCommand

    def resolve_command(self, ctx, args):
        try:
            return super().resolve_command(ctx, args)
        except click.UsageError as exc:
            exc.exit_code = 1
            raise


def _default_config_path():
    local_config = os.path.join(os.getcwd(), ".hostprov.yml")
    if os.path.exists(local_config):
        return local_config
    if os.path.exists(SYSTEM_CONFIG_PATH):
        return SYSTEM_CONFIG_PATH
    return None


def _configure_logging(verbose, log_file):
    logger = logging.getLogger("hostprov")
    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(
            logging.Formatter("[%(asctime)s -- %(funcName)s] %(message)s", datefmt=LOG_TIMESTAMP_FORMAT)
        )
        logger.addHandler(file_handler)


def _execute(ctx, options_cls, flags, parameter_file=None, defaults=None):
    resolver = OptionResolver(logger=logging.getLogger("hostprov"))
    try:
        options = resolver.resolve(options_cls, flags, parameter_file=parameter_file, defaults=defaults)
    except click.UsageError as exc:
        exc.ctx = ctx
        raise
    except ProvisioningError as exc:
        raise click.ClickException(str(exc)) from exc

    runner = TaskRunner(site=ctx.obj["site"])
    raise SystemExit(runner.run(options))


@click.group(cls=TaskGroup, context_settings=CONTEXT_SETTINGS)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help="Path to a YAML site configuration. Defaults to .hostprov.yml, then /etc/hostprov.yml.",
)
@click.option("--verbose", is_flag=True, default=False, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.pass_context
def main(ctx, config, verbose, log_file):
    """Provision and maintain Linux hosts: accounts, software, configs and restic backups."""
    try:
        site = ConfigLoader().load_site(config if config is not None else _default_config_path())
    except ProvisioningError as exc:
        raise click.ClickException(str(exc)) from exc

    _configure_logging(verbose, log_file)
    ctx.obj = {"site": site}


# accounts


@main.command("create-user")
@click.option("-u", "username", help="Name of the new account.")
@click.option("-p", "password", help="Password; a random one is generated when omitted.")
@click.option("-s", "shell", help="Login shell (default: /bin/bash).")
@click.option("-g", "groups", help="Semicolon separated list of groups.")
@click.option("-o", "output_dir", help="Directory receiving the credential record.")
@click.pass_context
def create_user(ctx, **flags):
    """Create an account with a home directory and store its credentials."""
    site = ctx.obj["site"]
    defaults = {"password": generate_password(), "output_dir": site.credentials_dir}
    _execute(ctx, CreateUserOptions, flags, defaults=defaults)


@main.command("delete-user")
@click.option("-u", "username", help="Name of the account to remove.")
@click.pass_context
def delete_user(ctx, **flags):
    """Archive the home directory, then delete the account and its home."""
    _execute(ctx, DeleteUserOptions, flags)


@main.command("migrate-users")
@click.option("-u", "user_file", help="File listing <server>:<path> credential records.")
@click.option("-s", "shell", help="Login shell for the migrated accounts.")
@click.pass_context
def migrate_users(ctx, **flags):
    """Recreate accounts from credential records fetched from another host."""
    _execute(ctx, MigrateUsersOptions, flags)


@main.command("init-host")
@click.option("-r", "root_password", help="New root password.")
@click.option("-u", "admin_user", help="Name of the admin account.")
@click.option("-p", "admin_password", help="Password of the admin account.")
@click.option("-g", "group", help="Shared group to create and join.")
@click.option("-a", "apt_package_file", help="File with apt packages to install.")
@click.pass_context
def init_host(ctx, **flags):
    """First-boot setup: root password, admin user, sshd and firewall."""
    site = ctx.obj["site"]
    defaults = {"admin_user": site.admin_user, "admin_password": generate_password()}
    _execute(ctx, InitHostOptions, flags, defaults=defaults)


# software and configuration


@main.command("install")
@click.option("-a", "apt_package_file", help="File with apt packages, one per line.")
@click.option("-c", "curl_input", help="Parameter file with *_URL, *_ROOT and *_PATH entries.")
@click.option("-k", "r_key_file", help="File overriding KEYSERVER, RECVKEY and REPO for R.")
@click.option("-l", "local_source", help="<server>:<dir> or a file listing such entries.")
@click.option(
    "-m",
    "mode",
    type=click.Choice([mode.value for mode in InstallMode]),
    help="Installation mode (default: all).",
)
@click.option("-q", "fqdn", help="Fully qualified domain name of the host.")
@click.option("-r", "r_package_file", help="File with R packages, one per line.")
@click.option("-t", "nginx_template", help="nginx template used for the rstudio mode.")
@click.pass_context
def install(ctx, **flags):
    """Install software through apt, downloads, scp and .deb packages."""
    site = ctx.obj["site"]
    defaults = {"fqdn": socket.getfqdn(), "nginx_template": site.nginx_template}
    _execute(ctx, InstallOptions, flags, defaults=defaults)


@main.command("render-template")
@click.option("-q", "fqdn", help="Hostname replacing every {FQDNAME}.")
@click.option("-t", "template", help="Template file.")
@click.option("-o", "output", help="Output file (default: autosetup).")
@click.pass_context
def render_template(ctx, **flags):
    """Render a template, replacing every {FQDNAME} with the hostname."""
    _execute(ctx, RenderTemplateOptions, flags, defaults={"template": ctx.obj["site"].autosetup_template})


@main.command("config-nginx")
@click.option("-q", "fqdn", help="Fully qualified domain name of the host.")
@click.option("-t", "template", help="nginx site template.")
@click.pass_context
def config_nginx(ctx, **flags):
    """Create the nginx site config from a template."""
    _execute(ctx, ConfigNginxOptions, flags, defaults={"template": ctx.obj["site"].nginx_template})


@main.command("init-ssmtp")
@click.option("-c", "config_target", help="Mail relay config to write.")
@click.option("-m", "host_machine", help="Hostname replacing {HOSTNAME}.")
@click.option("-p", "auth_password", help="Relay password replacing {AUTHPASS}.")
@click.option("-t", "template", help="Mail relay config template.")
@click.pass_context
def init_ssmtp(ctx, **flags):
    """Write the ssmtp relay configuration from a template."""
    site = ctx.obj["site"]
    defaults = {
        "config_target": site.ssmtp_config,
        "host_machine": socket.gethostname(),
        "template": site.ssmtp_template,
    }
    _execute(ctx, InitMailOptions, flags, defaults=defaults)


@main.command("clear-known-hosts")
@click.option("-q", "server", help="Server whose entries are removed.")
@click.option("-s", "known_hosts", help="Known hosts file (default: ~/.ssh/known_hosts).")
@click.pass_context
def clear_known_hosts(ctx, **flags):
    """Remove every known_hosts line mentioning a server."""
    _execute(ctx, ClearKnownHostsOptions, flags, defaults={"known_hosts": ctx.obj["site"].known_hosts})


# backups


@main.command("backup")
@click.option("-d", "backup_dir", help="Single directory to back up instead of the job file.")
@click.option("-e", "exclude_file", help="restic exclude file.")
@click.option("-j", "job_file", help="Job file listing directories to back up.")
@click.option("-l", "log_file", help="Backup log file.")
@click.option("-m", "email", help="Address receiving the backup log.")
@click.option("-p", "parameter_file", help="Parameter file with RESTIC* settings.")
@click.option("-r", "repository", help="restic repository.")
@click.option("-w", "password", help="restic repository password.")
@click.option("-v", "verbose", is_flag=True, default=None, help="Echo the backup log.")
@click.pass_context
def backup(ctx, parameter_file, **flags):
    """Back up directories with restic, prune, check and log the result."""
    site = ctx.obj["site"]
    log_name = f"{datetime.now().strftime(LOG_TIMESTAMP_FORMAT)}_restic_backup.log"
    defaults = {
        "job_file": site.backup_job_file,
        "log_file": os.path.join(site.backup_log_dir, log_name),
    }
    _execute(ctx, BackupOptions, flags, parameter_file=parameter_file or site.backup_parameter_file, defaults=defaults)


@main.command("restore")
@click.option("-d", "backup_dir", help="Restore the latest snapshot of this directory.")
@click.option("-j", "job_file", help="Job file listing directories to restore.")
@click.option("-p", "parameter_file", help="Parameter file with RESTIC* settings.")
@click.option("-s", "snapshot_id", help="Snapshot id to restore.")
@click.option("-t", "target", help="Restore target directory.")
@click.pass_context
def restore(ctx, parameter_file, **flags):
    """Restore snapshots into a target directory."""
    site = ctx.obj["site"]
    defaults = {"job_file": site.backup_job_file, "target": site.restore_target}
    _execute(ctx, RestoreOptions, flags, parameter_file=parameter_file or site.backup_parameter_file, defaults=defaults)


@main.command("find")
@click.option("-f", "item_path", help="File or directory to look for.")
@click.option("-p", "parameter_file", help="Parameter file with RESTIC* settings.")
@click.pass_context
def find(ctx, parameter_file, **flags):
    """Search the repository snapshots for a path."""
    site = ctx.obj["site"]
    _execute(ctx, FindOptions, flags, parameter_file=parameter_file or site.backup_parameter_file)


@main.command("unlock")
@click.option("-p", "parameter_file", help="Parameter file with RESTIC* settings.")
@click.option("-r", "repository", help="restic repository.")
@click.option("-w", "password", help="restic repository password.")
@click.pass_context
def unlock(ctx, parameter_file, **flags):
    """Remove stale locks from the repository."""
    site = ctx.obj["site"]
    _execute(ctx, UnlockOptions, flags, parameter_file=parameter_file or site.backup_parameter_file)


@main.command("init-backup")
@click.option("-e", "exclude_file", help="Exclude file to fill interactively.")
@click.option("-i", "init_repository", is_flag=True, default=None, help="Run restic init on the repository.")
@click.option("-j", "job_file", help="Job file to fill interactively.")
@click.option("-m", "email", help="Address receiving backup logs.")
@click.option("-p", "parameter_file", help="Parameter file to write.")
@click.option("-q", "repository_path", help="Repository path on the backup host.")
@click.option("-r", "repository_host", help="Backup host.")
@click.option("-u", "repository_user", help="User on the backup host.")
@click.option("-w", "password", help="restic repository password.")
@click.pass_context
def init_backup(ctx, **flags):
    """Prepare the backup layout, parameter file and restic repository."""
    site = ctx.obj["site"]
    defaults = {
        "parameter_file": site.backup_parameter_file,
        "repository_path": f"/{socket.gethostname()}/restic-repo",
    }
    _execute(ctx, InitBackupOptions, flags, defaults=defaults)


@main.command("init-backup-key")
@click.option("-r", "repository_host", help="Backup host.")
@click.option("-u", "repository_user", help="User on the backup host.")
@click.pass_context
def init_backup_key(ctx, **flags):
    """Generate the root ssh key and collect it for the backup host."""
    _execute(ctx, InitBackupKeyOptions, flags)


if __name__ == "__main__":
    main()
