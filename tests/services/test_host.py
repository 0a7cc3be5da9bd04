import subprocess

import pytest
from rich.console import Console

from hostprov.errors import PreconditionError
from hostprov.services.filesystem import FileSystemService
from hostprov.services.host import HostService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class RecordingRunner:
    def __init__(self, stdout=""):
        self.stdout = stdout
        self.calls = []

    def __call__(self, cmd, check=True, capture_output=False, input=None, env=None):
        self.calls.append((cmd, input))
        return subprocess.CompletedProcess(cmd, 0, stdout=self.stdout, stderr="")


def build_service(runner):
    logger = DummyLogger()
    return HostService(logger, runner, FileSystemService(logger=logger, console=Console(record=True)))


def test_deny_ssh_root_rewrites_from_pristine_copy(tmp_path):
    sshd_config = tmp_path / "sshd_config"
    sshd_config.write_text("Port 22\nPermitRootLogin yes\n", encoding="utf-8")
    runner = RecordingRunner()
    service = build_service(runner)

    service.deny_ssh_root(str(sshd_config))
    service.deny_ssh_root(str(sshd_config))

    assert sshd_config.read_text(encoding="utf-8") == "Port 22\nPermitRootLogin no\n"
    assert (tmp_path / "sshd_config.org").read_text(encoding="utf-8") == "Port 22\nPermitRootLogin yes\n"
    assert runner.calls[0] == (["/etc/init.d/ssh", "restart"], None)


def test_firewall_allows_ssh_and_web():
    runner = RecordingRunner()

    build_service(runner).allow_firewall_ports()

    assert [cmd for cmd, _ in runner.calls] == [
        ["ufw", "allow", "ssh"],
        ["ufw", "allow", "443/tcp"],
        ["ufw", "allow", "80/tcp"],
    ]


def test_clear_known_host_drops_matching_lines(tmp_path):
    known_hosts = tmp_path / "known_hosts"
    known_hosts.write_text(
        "web01.example.com ssh-ed25519 AAAA1\n"
        "db01.example.com ssh-ed25519 AAAA2\n"
        "web01.example.com,10.0.0.1 ssh-rsa AAAA3\n",
        encoding="utf-8",
    )

    removed = build_service(RecordingRunner()).clear_known_host(str(known_hosts), "web01.example.com")

    assert removed == 2
    assert known_hosts.read_text(encoding="utf-8") == "db01.example.com ssh-ed25519 AAAA2\n"
    assert "AAAA3" in (tmp_path / "known_hosts.org").read_text(encoding="utf-8")


def test_clear_known_host_missing_file(tmp_path):
    with pytest.raises(PreconditionError, match="known hosts"):
        build_service(RecordingRunner()).clear_known_host(str(tmp_path / "absent"), "web01")


def test_generate_backup_key_collects_both_formats(tmp_path):
    ssh_dir = tmp_path / ".ssh"
    export = tmp_path / "storagebox_authorized_keys"
    runner = RecordingRunner(
        stdout=(
            "---- BEGIN SSH2 PUBLIC KEY ----\n"
            'Comment: "2048-bit RSA, converted by root@web01"\n'
            "AAAAB3NzaC1yc2E\n"
            "---- END SSH2 PUBLIC KEY ----\n"
        )
    )
    service = build_service(runner)
    ssh_dir.mkdir()
    (ssh_dir / "id_rsa.pub").write_text("ssh-rsa AAAAB3NzaC1yc2E root@web01\n", encoding="utf-8")

    service.generate_backup_key(str(ssh_dir), str(export))

    assert runner.calls[0] == (["ssh-keygen", "-f", str(ssh_dir / "id_rsa"), "-N", ""], "y\n")
    rfc = (ssh_dir / "id_rsa_rfc.pub").read_text(encoding="utf-8")
    assert "Comment:" not in rfc
    exported = export.read_text(encoding="utf-8")
    assert exported.startswith("ssh-rsa AAAAB3NzaC1yc2E root@web01\n")
    assert "---- BEGIN SSH2 PUBLIC KEY ----" in exported
