import logging
import os
import shlex
import shutil
import socket
import subprocess
from datetime import datetime
from typing import Callable, List, Mapping, Optional

import requests
from rich.console import Console
from rich.prompt import Prompt

from .constants import (
    AUTHPASS_PLACEHOLDER,
    BACKUP_SUBDIRS,
    BANNER_TIMESTAMP_FORMAT,
    CRAN_MIRROR,
    CREDENTIALS_DIR_MODE,
    DEFAULT_SHELL,
    FQDN_PLACEHOLDER,
    HOSTNAME_PLACEHOLDER,
    LOG_TIMESTAMP_FORMAT,
    RSTUDIO_SERVER_DEB_URL,
    SHINY_SERVER_DEB_URL,
)
from .errors import ExternalCommandError, PreconditionError, ProvisioningError
from .errors_catalog import actionable_error
from .models import (
    ROOT_ONLY_TASKS,
    BackupOptions,
    ClearKnownHostsOptions,
    ConfigNginxOptions,
    CreateUserOptions,
    CredentialRecord,
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
    SiteConfig,
    TaskStatus,
    UnlockOptions,
    Verdict,
    task_name,
)
from .services.accounts import AccountService
from .services.archive import ArchiveService
from .services.command_runner import CommandRunner
from .services.config_loader import ParameterFileLoader
from .services.download import DownloadService
from .services.filesystem import FileSystemService
from .services.guard import IdempotencyGuard
from .services.host import HostService
from .services.notifier import MailNotifier
from .services.packages import PackageService
from .services.restic import ResticService, truncate_listing
from .services.task_log import TaskLog
from .services.template import TemplateService, render_text

console = Console()
logger = logging.getLogger("hostprov")


def _ask_path(message: str) -> str:
    return Prompt.ask(message, console=console)


class TaskRunner:
    """Runs one provisioning task: guard, act, log."""

    def __init__(
        self,
        site: Optional[SiteConfig] = None,
        command_runner: Optional[CommandRunner] = None,
        server: Optional[str] = None,
        prompt: Callable[[str], str] = _ask_path,
        requests_module=requests,
    ):
        self.site = site or SiteConfig()
        self.server = server or socket.gethostname()
        self.prompt = prompt

        self.command_runner = command_runner or CommandRunner(logger=logger)
        self.filesystem_service = FileSystemService(logger=logger, console=console)
        self.archive_service = ArchiveService()
        self.parameter_loader = ParameterFileLoader()
        self.guard = IdempotencyGuard(logger=logger, run_cmd=self._run_cmd)
        self.account_service = AccountService(
            logger=logger,
            run_cmd=self._run_cmd,
            filesystem_service=self.filesystem_service,
        )
        self.template_service = TemplateService(logger=logger, filesystem_service=self.filesystem_service)
        self.host_service = HostService(
            logger=logger,
            run_cmd=self._run_cmd,
            filesystem_service=self.filesystem_service,
        )
        self.download_service = DownloadService(
            logger=logger,
            console=console,
            requests_module=requests_module,
        )
        self.package_service = PackageService(
            logger=logger,
            run_cmd=self._run_cmd,
            filesystem_service=self.filesystem_service,
            archive_service=self.archive_service,
            download_service=self.download_service,
            guard=self.guard,
            parameter_loader=self.parameter_loader,
            which=shutil.which,
        )
        self.notifier = MailNotifier(
            logger=logger,
            run_cmd=self._run_cmd,
            mail_command=self.site.mail_command,
            sender=self.server,
        )

        self.handlers = {
            CreateUserOptions: self.create_user,
            DeleteUserOptions: self.delete_user,
            MigrateUsersOptions: self.migrate_users,
            InitHostOptions: self.init_host,
            InstallOptions: self.install,
            RenderTemplateOptions: self.render_template,
            ConfigNginxOptions: self.config_nginx,
            InitMailOptions: self.init_mail,
            ClearKnownHostsOptions: self.clear_known_hosts,
            BackupOptions: self.backup,
            RestoreOptions: self.restore,
            FindOptions: self.find,
            UnlockOptions: self.unlock,
            InitBackupOptions: self.init_backup,
            InitBackupKeyOptions: self.init_backup_key,
        }

    def _run_cmd(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        input: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        return self.command_runner.run(
            cmd,
            check=check,
            capture_output=capture_output,
            input=input,
            env=env,
        )

    def _restic(self, repository: str, password: str) -> ResticService:
        return ResticService(logger=logger, run_cmd=self._run_cmd, repository=repository, password=password)

    def ensure_root(self, name: str):
        if os.geteuid() != 0:
            raise PreconditionError(actionable_error("not_root", task=name))

    def _start_msg(self, name: str):
        now = datetime.now().strftime(BANNER_TIMESTAMP_FORMAT)
        console.print(f"[bold blue]Starting {name} at: {now}[/bold blue]")
        console.print(f"[dim]Server: {self.server}[/dim]")
        logger.debug("Starting %s on %s", name, self.server)

    def _end_msg(self, name: str):
        now = datetime.now().strftime(BANNER_TIMESTAMP_FORMAT)
        console.print(f"[bold blue]End of {name} at: {now}[/bold blue]")

    # account tasks

    def _create_account(
        self,
        username: str,
        password: str,
        shell: str,
        groups: Optional[str],
        output_dir: str,
    ) -> TaskStatus:
        home = self.site.home_dir(username)
        if self.guard.home_directory(home) is Verdict.ALREADY_SATISFIED:
            logger.info("Found existing home directory %s, account %s is left as is.", home, username)
            return TaskStatus.SKIPPED

        self.account_service.create_account(username, shell)
        self.account_service.set_password(username, password)
        self.account_service.write_credentials(output_dir, CredentialRecord(username=username, secret=password))
        self.account_service.add_to_groups(username, groups)
        return TaskStatus.COMPLETED

    def create_user(self, options: CreateUserOptions) -> TaskStatus:
        return self._create_account(
            options.username,
            options.password,
            options.shell,
            options.groups,
            options.output_dir,
        )

    def delete_user(self, options: DeleteUserOptions) -> TaskStatus:
        home = self.site.home_dir(options.username)
        home_exists = self.guard.home_directory(home) is Verdict.ALREADY_SATISFIED
        account_exists = self.guard.account(options.username) is Verdict.ALREADY_SATISFIED
        if not home_exists and not account_exists:
            logger.info("Neither account nor home directory of %s exist.", options.username)
            return TaskStatus.SKIPPED

        if home_exists:
            archive_path = os.path.join(self.site.archive_dir, f"{options.username}.tgz")
            logger.info("Backup home directory of %s to %s ...", options.username, archive_path)
            self.archive_service.create_tarball(home, archive_path)

        if account_exists:
            self.account_service.delete_account(options.username)

        if home_exists:
            logger.info("Delete home directory of %s ...", options.username)
            self.filesystem_service.remove_tree(home)
        return TaskStatus.COMPLETED

    def migrate_users(self, options: MigrateUsersOptions) -> TaskStatus:
        entries = self.filesystem_service.read_list(options.user_file)
        self.filesystem_service.ensure_dir(self.site.user_admin_dir, mode=CREDENTIALS_DIR_MODE)

        for entry in entries:
            logger.info("Running input %s ...", entry)
            self._run_cmd(["scp", entry, self.site.user_admin_dir])
            remote_path = entry.partition(":")[2] or entry
            fetched = os.path.join(self.site.user_admin_dir, os.path.basename(remote_path))
            try:
                record = self.account_service.read_credentials(fetched)
            except (OSError, ValueError) as exc:
                raise ProvisioningError(f"Could not read credential record {fetched}: {exc}") from exc

            self._create_account(record.username, record.secret, options.shell, None, self.site.credentials_dir)
            os.remove(fetched)
        return TaskStatus.COMPLETED

    def init_host(self, options: InitHostOptions) -> TaskStatus:
        self.host_service.change_root_password(options.root_password)

        if options.group and self.guard.group(options.group) is Verdict.NEEDS_ACTION:
            self.account_service.create_group(options.group)

        groups = "sudo" if not options.group else f"sudo;{options.group}"
        self._create_account(
            options.admin_user,
            options.admin_password,
            DEFAULT_SHELL,
            groups,
            self.site.credentials_dir,
        )

        if options.apt_package_file:
            logger.info("Install system software ...")
            self.package_service.install_apt_packages(options.apt_package_file)

        self.host_service.deny_ssh_root(self.site.sshd_config)
        self.host_service.allow_firewall_ports()
        return TaskStatus.COMPLETED

    # installation and configuration tasks

    def install(self, options: InstallOptions) -> TaskStatus:
        mode = InstallMode(options.mode)

        if mode.includes(InstallMode.APT):
            console.print("[blue]Apt tools installation ...[/blue]")
            self.package_service.install_apt_packages(options.apt_package_file, options.r_key_file)
            self.package_service.install_r_packages(options.r_package_file)
            self.package_service.install_pip_packages()

        if mode.includes(InstallMode.CURL) and options.curl_input:
            console.print("[blue]Curl tools installation ...[/blue]")
            self.package_service.install_curl_tools(options.curl_input, self.site.profile_fragment)

        if mode.includes(InstallMode.LOCAL) and options.local_source:
            if os.path.isfile(options.local_source):
                sources = self.filesystem_service.read_list(options.local_source)
            else:
                sources = [options.local_source]
            for source in sources:
                console.print(f"[blue]Local tools installation of {source} ...[/blue]")
                self.package_service.install_local_tools(
                    source,
                    self.site.local_tools_owner,
                    self.site.profile_fragment,
                )

        if mode.includes(InstallMode.RSTUDIO):
            console.print("[blue]Install RStudio-server ...[/blue]")
            self.package_service.ensure_gdebi()
            self.package_service.install_service_deb("rstudio-server", RSTUDIO_SERVER_DEB_URL)
            console.print("[blue]Install shiny server ...[/blue]")
            self.package_service.install_service_deb(
                "shiny-server",
                SHINY_SERVER_DEB_URL,
                prepare=[["R", "-e", f"install.packages('shiny', repos='{CRAN_MIRROR}')"]],
            )
            console.print("[blue]Configure nginx ...[/blue]")
            self._configure_nginx(options.fqdn, options.nginx_template)

        return TaskStatus.COMPLETED

    def render_template(self, options: RenderTemplateOptions) -> TaskStatus:
        self.template_service.render_file(options.template, options.output, {FQDN_PLACEHOLDER: options.fqdn})
        return TaskStatus.COMPLETED

    def _configure_nginx(self, fqdn: str, template: str) -> TaskStatus:
        template_text = self.template_service.read_template(template)
        config_path = os.path.join(self.site.nginx_sites_dir, fqdn.split(".")[0])

        if self.guard.path_present(config_path) is Verdict.ALREADY_SATISFIED:
            logger.info("nginx config file %s already exists", config_path)
            status = TaskStatus.SKIPPED
        else:
            logger.info("Create nginx config %s from template ...", config_path)
            self.filesystem_service.write_text(config_path, render_text(template_text, {FQDN_PLACEHOLDER: fqdn}))
            default_config = os.path.join(self.site.nginx_sites_dir, "default")
            if os.path.lexists(default_config):
                logger.info("Remove default config: %s ...", default_config)
                os.remove(default_config)
            status = TaskStatus.COMPLETED

        self.template_service.missing_certificates(config_path)
        return status

    def config_nginx(self, options: ConfigNginxOptions) -> TaskStatus:
        return self._configure_nginx(options.fqdn, options.template)

    def init_mail(self, options: InitMailOptions) -> TaskStatus:
        content = render_text(
            self.template_service.read_template(options.template),
            {HOSTNAME_PLACEHOLDER: options.host_machine, AUTHPASS_PLACEHOLDER: options.auth_password},
        )
        if os.path.exists(options.config_target):
            self.filesystem_service.move_aside(options.config_target, datetime.now().strftime(LOG_TIMESTAMP_FORMAT))

        logger.info("Writing %s ...", options.config_target)
        self.filesystem_service.write_text(options.config_target, content, mode=0o640)
        self._run_cmd(["chown", "root:root", options.config_target])
        return TaskStatus.COMPLETED

    def clear_known_hosts(self, options: ClearKnownHostsOptions) -> TaskStatus:
        removed = self.host_service.clear_known_host(os.path.expanduser(options.known_hosts), options.server)
        return TaskStatus.COMPLETED if removed else TaskStatus.SKIPPED

    # backup tasks

    @staticmethod
    def _log_result(log: TaskLog, result: subprocess.CompletedProcess, check: bool = True, stdout: Optional[str] = None):
        log.output(result.stdout if stdout is None else stdout)
        log.output(result.stderr)
        if check and result.returncode != 0:
            cmd = result.args if isinstance(result.args, str) else " ".join(result.args)
            raise ExternalCommandError(f"Command failed ({result.returncode}): {cmd}", returncode=result.returncode)

    def _backup_directory(self, restic: ResticService, log: TaskLog, directory: str, exclude_file: Optional[str]):
        if not os.path.isdir(directory):
            log.entry("backup_directory", f" * Cannot find path to backup source: {directory}")
            logger.warning("Cannot find path to backup source: %s", directory)
            return

        logger.info("Backup of %s ...", directory)
        result = restic.backup(directory, exclude_file)
        self._log_result(log, result, check=False)
        if result.returncode != 0:
            log.entry("backup_directory", f" * Backup of {directory} failed with status {result.returncode}")
            logger.warning("Backup of %s failed with status %s", directory, result.returncode)

    def backup(self, options: BackupOptions) -> TaskStatus:
        if options.exclude_file and not os.path.isfile(options.exclude_file):
            raise PreconditionError(actionable_error("exclude_file_not_found", path=options.exclude_file))
        exclude_file = options.exclude_file
        if not exclude_file and os.path.isfile(self.site.backup_exclude_file):
            exclude_file = self.site.backup_exclude_file

        if options.backup_dir:
            directories = [options.backup_dir]
        elif os.path.isfile(options.job_file):
            directories = self.filesystem_service.read_list(options.job_file)
        else:
            raise PreconditionError(actionable_error("job_file_not_found", path=options.job_file))

        restic = self._restic(options.repository, options.password)
        log = TaskLog(options.log_file, "backup", self.server)
        if options.verbose:
            console.print(f"[dim]Writing backup log to {options.log_file}[/dim]")
        log.start()

        for directory in directories:
            self._backup_directory(restic, log, directory, exclude_file)

        log.blank()
        log.entry("backup", " * Prune old snapshots ...")
        self._log_result(log, restic.forget())

        log.blank()
        log.entry("backup", " * List of snapshots ...")
        snapshots = restic.snapshots()
        self._log_result(log, snapshots, stdout=truncate_listing(snapshots.stdout or ""))

        log.blank()
        log.entry("backup", " * Checking backup data integrity ...")
        self._log_result(log, restic.check())

        log.blank()
        log.entry("backup", " * Disk free status of backup-host ...")
        self._log_result(log, restic.disk_free())

        log.end()
        if options.verbose:
            console.print(log.read(), markup=False)
        if options.email:
            self.notifier.send(options.email, log.read())
        return TaskStatus.COMPLETED

    def restore(self, options: RestoreOptions) -> TaskStatus:
        self.filesystem_service.ensure_dir(options.target)
        restic = self._restic(options.repository, options.password)

        if options.snapshot_id:
            restic.restore(options.snapshot_id, options.target)
            return TaskStatus.COMPLETED

        if options.backup_dir:
            paths = [options.backup_dir]
        elif options.job_file and os.path.isfile(options.job_file):
            paths = self.filesystem_service.read_list(options.job_file)
        else:
            raise PreconditionError(actionable_error("job_file_not_found", path=options.job_file or "<none>"))

        for path in paths:
            logger.info("Restore data from %s ...", path)
            restic.restore(restic.latest_snapshot(path), options.target)
        return TaskStatus.COMPLETED

    def find(self, options: FindOptions) -> TaskStatus:
        self._restic(options.repository, options.password).find(options.item_path)
        return TaskStatus.COMPLETED

    def unlock(self, options: UnlockOptions) -> TaskStatus:
        self._restic(options.repository, options.password).unlock()
        return TaskStatus.COMPLETED

    def _collect_paths(self, path: str, question: str):
        logger.info("Writing %s ...", path)
        while True:
            answer = self.prompt(f" * {question} [q - to quit]").strip()
            if answer == "q":
                break
            if answer:
                self.filesystem_service.append_text(path, f"{answer}\n")

    def init_backup(self, options: InitBackupOptions) -> TaskStatus:
        repository = str(options.locator)
        logger.info("Restic repo assigned as: %s", repository)

        for subdir in BACKUP_SUBDIRS:
            self.filesystem_service.ensure_dir(os.path.join(self.site.backup_root, subdir))

        if self.guard.path_present(options.parameter_file) is Verdict.ALREADY_SATISFIED:
            logger.warning("Parameter file %s already exists and is left untouched.", options.parameter_file)
        else:
            logger.info("Writing parameters to %s ...", options.parameter_file)
            lines = [
                "# restic parameter file created by hostprov",
                f"RESTICREPOSITORY={shlex.quote(repository)}",
                f"RESTICPASSWORD={shlex.quote(options.password)}",
                f"JOBFILE={shlex.quote(options.job_file or self.site.backup_job_file)}",
                f"EMAILADDRESS={shlex.quote(options.email or '')}",
            ]
            self.filesystem_service.write_text(options.parameter_file, "\n".join(lines) + "\n", mode=0o600)

        if options.job_file:
            self._collect_paths(options.job_file, "Full path of directory to be backed up")
        if options.exclude_file:
            self._collect_paths(options.exclude_file, "Full path of directory to be excluded")

        if options.init_repository:
            logger.info("Initialise restic repository ...")
            self._restic(repository, options.password).init()
        return TaskStatus.COMPLETED

    def init_backup_key(self, options: InitBackupKeyOptions) -> TaskStatus:
        self.host_service.generate_backup_key(self.site.ssh_dir, self.site.authorized_keys_export)
        remote = f"{options.repository_user}@{options.repository_host}"
        console.print("[yellow]Upload the new authorized keys by running as root:[/yellow]")
        console.print(
            f'echo -e "mkdir /.ssh \\n put {self.site.authorized_keys_export} /.ssh/authorized_keys '
            f'\\n chmod 600 /.ssh/authorized_keys" | sftp {remote}',
            markup=False,
        )
        return TaskStatus.COMPLETED

    def run(self, options) -> int:
        name = task_name(options)
        handler = self.handlers.get(type(options))
        if handler is None:
            raise ProvisioningError(f"Unsupported task options: {type(options).__name__}")

        exit_code = 1
        self._start_msg(name)
        try:
            if isinstance(options, ROOT_ONLY_TASKS):
                self.ensure_root(name)

            status = handler(options)
            if status is TaskStatus.SKIPPED:
                console.print("[yellow]Target state already holds, nothing changed.[/yellow]")
                logger.info("Task %s skipped: target state already holds.", name)
            else:
                console.print(f"[green]Task {name} completed.[/green]")
            exit_code = 0
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Operation cancelled by user.[/bold red]")
            logger.info("Operation cancelled by user")
            exit_code = 1
            return exit_code
        except ProvisioningError as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            logger.error(str(exc))
            exit_code = exc.exit_code
            return exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {exc}")
            logger.exception("Unexpected error")
            exit_code = 1
            return exit_code
        finally:
            self._end_msg(name)
