import subprocess

import pytest

from hostprov.errors import PreconditionError
from hostprov.services.restic import (
    ResticService,
    latest_snapshot_id,
    restic_environment,
    sftp_remote,
    truncate_listing,
)


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None


class RecordingRunner:
    def __init__(self, stdout=""):
        self.stdout = stdout
        self.calls = []

    def __call__(self, cmd, check=True, capture_output=False, input=None, env=None):
        self.calls.append({"cmd": cmd, "check": check, "input": input, "env": env})
        return subprocess.CompletedProcess(cmd, 0, stdout=self.stdout, stderr="")


SNAPSHOTS = (
    "ID        Time                 Host   Tags  Paths\n"
    "------------------------------------------------------\n"
    "4bba301e  2024-01-01 02:00:01  web01        /home\n"
    "8c2f1a0b  2024-01-01 02:05:12  web01        /etc\n"
    "d0e1f2a3  2024-01-02 02:00:03  web01        /home\n"
    "------------------------------------------------------\n"
    "3 snapshots\n"
)


def test_restic_environment_exports_repository_and_password():
    env = restic_environment("sftp:u1@host:/repo", "pw", base={"PATH": "/usr/bin"})

    assert env == {"PATH": "/usr/bin", "RESTIC_REPOSITORY": "sftp:u1@host:/repo", "RESTIC_PASSWORD": "pw"}


def test_sftp_remote_extracts_user_and_host():
    assert sftp_remote("sftp:u123@u123.your-storagebox.de:/web01/restic-repo") == "u123@u123.your-storagebox.de"


def test_truncate_listing_keeps_head_and_tail():
    listing = "".join(f"line {number}\n" for number in range(1, 131))

    lines = truncate_listing(listing).splitlines()

    assert len(lines) == 100
    assert lines[0] == "line 1"
    assert lines[49] == "line 50"
    assert lines[50] == "line 81"
    assert lines[-1] == "line 130"


def test_truncate_listing_leaves_short_listing():
    listing = "".join(f"line {number}\n" for number in range(1, 101))

    assert truncate_listing(listing) == listing


def test_latest_snapshot_id_takes_last_match():
    assert latest_snapshot_id(SNAPSHOTS, "/home") == "d0e1f2a3"
    assert latest_snapshot_id(SNAPSHOTS, "/srv") is None


def test_forget_uses_retention_policy():
    runner = RecordingRunner()

    ResticService(DummyLogger(), runner, "repo", "pw").forget()

    assert runner.calls[0]["cmd"] == [
        "restic",
        "forget",
        "--prune",
        "--keep-daily",
        "7",
        "--keep-weekly",
        "5",
        "--keep-monthly",
        "12",
        "--keep-yearly",
        "10",
    ]
    assert runner.calls[0]["env"]["RESTIC_PASSWORD"] == "pw"


def test_backup_passes_exclude_file():
    runner = RecordingRunner()

    ResticService(DummyLogger(), runner, "repo", "pw").backup("/home", "/root/backup/job/restic_exclude.txt")

    assert runner.calls[0]["cmd"] == ["restic", "backup", "--exclude-file=/root/backup/job/restic_exclude.txt", "/home"]
    assert runner.calls[0]["check"] is False


def test_latest_snapshot_missing_path_is_precondition_error():
    service = ResticService(DummyLogger(), RecordingRunner(stdout=SNAPSHOTS), "repo", "pw")

    assert service.latest_snapshot("/etc") == "8c2f1a0b"
    with pytest.raises(PreconditionError, match="No snapshot found containing /srv"):
        service.latest_snapshot("/srv")


def test_disk_free_runs_df_over_sftp():
    runner = RecordingRunner()

    ResticService(DummyLogger(), runner, "sftp:u1@backup.example.com:/repo", "pw").disk_free()

    assert runner.calls[0]["cmd"] == ["sftp", "u1@backup.example.com"]
    assert runner.calls[0]["input"] == "df -h\n"


def test_find_streams_output_to_the_terminal():
    runner = RecordingRunner()

    ResticService(DummyLogger(), runner, "repo", "pw").find("/etc/nginx")

    assert runner.calls[0]["cmd"] == ["restic", "find", "/etc/nginx"]
    assert runner.calls[0]["check"] is True


def test_latest_snapshot_id_credits_continuation_lines_to_their_snapshot():
    listing = (
        "ID        Time                 Host   Tags  Paths\n"
        "------------------------------------------------------\n"
        "1a2b3c4d  2024-01-01 02:00:01  web01        /var/www\n"
        "4bba301e  2024-01-02 02:00:01  web01        /etc\n"
        "                                            /home\n"
        "8c2f1a0b  2024-01-02 02:05:12  web01        /srv\n"
        "------------------------------------------------------\n"
        "3 snapshots\n"
    )

    assert latest_snapshot_id(listing, "/home") == "4bba301e"
    assert latest_snapshot_id(listing, "/etc") == "4bba301e"
    assert latest_snapshot_id(listing, "/srv") == "8c2f1a0b"
    assert latest_snapshot_id(listing, "snapshots") is None
