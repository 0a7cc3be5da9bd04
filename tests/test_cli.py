import os
import subprocess

from click.testing import CliRunner

import hostprov.cli as cli_module
from hostprov.core import TaskRunner
from hostprov.models import BackupOptions, CreateUserOptions, InstallMode, InstallOptions


class RecordingTaskRunner:
    def __init__(self, captured, exit_code=0):
        self.captured = captured
        self.exit_code = exit_code

    def __call__(self, site):
        self.captured["site"] = site
        return self

    def run(self, options):
        self.captured["options"] = options
        return self.exit_code


def install_fake_runner(monkeypatch, exit_code=0):
    captured = {}
    monkeypatch.setattr(cli_module, "TaskRunner", RecordingTaskRunner(captured, exit_code))
    return captured


def test_cli_missing_required_flag_is_usage_error(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    captured = install_fake_runner(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["delete-user"])

    assert result.exit_code == 1
    assert "-u <username> not defined" in result.output
    assert captured == {}


def test_cli_unknown_option_exits_with_one(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    install_fake_runner(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["delete-user", "-x", "alice"])

    assert result.exit_code == 1
    assert "No such option" in result.output


def test_cli_unknown_task_exits_with_one(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["reboot-everything"])

    assert result.exit_code == 1


def test_cli_short_help_flag(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["backup", "-h"])

    assert result.exit_code == 0
    assert "Usage:" in result.output
    assert "-w TEXT" in result.output


def test_cli_flag_beats_parameter_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    parameter_file = tmp_path / "restic_backup.par"
    parameter_file.write_text(
        "RESTICREPOSITORY=sftp:u1@backup.example.com:/from-file\n"
        "RESTICPASSWORD=file-pw\n"
        "EMAILADDRESS=ops@example.com\n",
        encoding="utf-8",
    )
    captured = install_fake_runner(monkeypatch)

    result = CliRunner().invoke(
        cli_module.main,
        ["backup", "-p", str(parameter_file), "-r", "sftp:u1@backup.example.com:/from-flag", "-v"],
    )

    assert result.exit_code == 0
    options = captured["options"]
    assert isinstance(options, BackupOptions)
    assert options.repository == "sftp:u1@backup.example.com:/from-flag"
    assert options.password == "file-pw"
    assert options.email == "ops@example.com"
    assert options.verbose is True
    assert options.job_file == "/root/backup/job/restic_backup.job"
    assert options.log_file.startswith("/root/backup/log/")


def test_cli_uses_default_config_file_when_present(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".hostprov.yml").write_text(
        f"admin_root: {tmp_path / 'admin'}\nnginx_template: /srv/templates/nginx.template\n",
        encoding="utf-8",
    )
    captured = install_fake_runner(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["create-user", "-u", "alice"])

    assert result.exit_code == 0
    options = captured["options"]
    assert isinstance(options, CreateUserOptions)
    assert options.output_dir == str(tmp_path / "admin" / "user_admin" / "created")
    assert options.shell == "/bin/bash"
    assert len(options.password) == 8
    assert captured["site"].nginx_template == "/srv/templates/nginx.template"


def test_cli_rejects_unknown_config_keys(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "site.yml"
    config_file.write_text("retry_count: 3\n", encoding="utf-8")

    result = CliRunner().invoke(cli_module.main, ["--config", str(config_file), "unlock"])

    assert result.exit_code == 1
    assert "Unknown configuration keys" in result.output


def test_cli_install_mode_choice(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    captured = install_fake_runner(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["install", "-m", "curl", "-q", "web01.example.com", "-c", "c.par"])

    assert result.exit_code == 0
    options = captured["options"]
    assert isinstance(options, InstallOptions)
    assert InstallMode(options.mode) is InstallMode.CURL

    rejected = CliRunner().invoke(cli_module.main, ["install", "-m", "snap"])
    assert rejected.exit_code == 1


def test_cli_propagates_task_exit_code(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    install_fake_runner(monkeypatch, exit_code=5)

    result = CliRunner().invoke(cli_module.main, ["unlock", "-r", "repo", "-w", "pw"])

    assert result.exit_code == 5


def test_cli_create_user_end_to_end(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config_file = tmp_path / "site.yml"
    config_file.write_text(
        f"home_root: {tmp_path / 'home'}\nadmin_root: {tmp_path / 'admin'}\n",
        encoding="utf-8",
    )
    commands = []

    class FakeCommandRunner:
        def run(self, cmd, check=True, capture_output=False, input=None, env=None):
            commands.append((cmd, input))
            if cmd[0] == "useradd":
                os.makedirs(tmp_path / "home" / cmd[1])
            return subprocess.CompletedProcess(cmd, 0, stdout="", stderr="")

    monkeypatch.setattr(
        cli_module,
        "TaskRunner",
        lambda site: TaskRunner(site=site, command_runner=FakeCommandRunner(), server="web01"),
    )

    args = ["--config", str(config_file), "create-user", "-u", "alice", "-p", "s3cret", "-g", "staff"]
    first = CliRunner().invoke(cli_module.main, args)
    second = CliRunner().invoke(cli_module.main, args)

    assert first.exit_code == 0
    assert second.exit_code == 0
    assert commands == [
        (["useradd", "alice", "-s", "/bin/bash", "-m"], None),
        (["chpasswd"], "alice:s3cret\n"),
        (["usermod", "-a", "-G", "staff", "alice"], None),
    ]
    record = tmp_path / "admin" / "user_admin" / "created" / ".alice.pwd"
    assert record.read_text(encoding="utf-8") == "alice,s3cret\n"
