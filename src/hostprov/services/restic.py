"""restic backup-tool wrapper for hostprov."""

import os
import re
import subprocess
from typing import Callable, List, Mapping, Optional

from hostprov.constants import RETENTION_POLICY, SNAPSHOT_LISTING_EDGE, SNAPSHOT_LISTING_LIMIT
from hostprov.errors import PreconditionError
from hostprov.errors_catalog import actionable_error

_SNAPSHOT_ID = re.compile(r"^([0-9a-f]{8,64})\s")


def restic_environment(repository: str, password: str, base: Optional[Mapping[str, str]] = None):
    env = dict(os.environ if base is None else base)
    env["RESTIC_REPOSITORY"] = repository
    env["RESTIC_PASSWORD"] = password
    return env


def sftp_remote(repository: str) -> str:
    """``sftp:u123@backup.example.com:/srv/repo`` -> ``u123@backup.example.com``."""
    parts = repository.split(":")
    if len(parts) < 2:
        return repository
    return parts[1]


def truncate_listing(listing: str, limit: int = SNAPSHOT_LISTING_LIMIT, edge: int = SNAPSHOT_LISTING_EDGE) -> str:
    lines = listing.splitlines()
    if len(lines) <= limit:
        return listing
    return "\n".join(lines[:edge] + lines[-edge:]) + "\n"


def latest_snapshot_id(listing: str, path: str) -> Optional[str]:
    """Id of the last snapshot whose listing mentions ``path``.

    Snapshots with several paths continue on indented lines without an id;
    those lines belong to the id above them.
    """
    current_id = None
    found = None
    for line in listing.splitlines():
        match = _SNAPSHOT_ID.match(line)
        if match:
            current_id = match.group(1)
        elif line[:1] not in (" ", "\t"):
            current_id = None
        if current_id and path in line:
            found = current_id
    return found


class ResticService:
    """Runs restic sub-commands with the repository and secret exported."""

    def __init__(self, logger, run_cmd: Callable, repository: str, password: str):
        self.logger = logger
        self.run_cmd = run_cmd
        self.repository = repository
        self.env = restic_environment(repository, password)

    def run(self, args: List[str], check: bool = True, capture_output: bool = True) -> subprocess.CompletedProcess:
        return self.run_cmd(["restic"] + args, check=check, capture_output=capture_output, env=self.env)

    def backup(self, directory: str, exclude_file: Optional[str] = None) -> subprocess.CompletedProcess:
        args = ["backup"]
        if exclude_file:
            args.append(f"--exclude-file={exclude_file}")
        args.append(directory)
        return self.run(args, check=False)

    def forget(self) -> subprocess.CompletedProcess:
        args = ["forget", "--prune"]
        for flag, count in RETENTION_POLICY:
            args.extend([flag, str(count)])
        return self.run(args, check=False)

    def snapshots(self) -> subprocess.CompletedProcess:
        return self.run(["snapshots"], check=False)

    def check(self) -> subprocess.CompletedProcess:
        return self.run(["check"], check=False)

    def find(self, item_path: str) -> subprocess.CompletedProcess:
        return self.run(["find", item_path], capture_output=False)

    def restore(self, snapshot_id: str, target: str) -> subprocess.CompletedProcess:
        self.logger.info("Restore snapshot %s into %s ...", snapshot_id, target)
        return self.run(["restore", snapshot_id, "--target", target], capture_output=False)

    def unlock(self) -> subprocess.CompletedProcess:
        return self.run(["unlock"], capture_output=False)

    def init(self) -> subprocess.CompletedProcess:
        return self.run(["init"], capture_output=False)

    def latest_snapshot(self, path: str) -> str:
        self.logger.info("Determine id of most recent snapshot for %s ...", path)
        listing = self.run(["snapshots"]).stdout or ""
        snapshot_id = latest_snapshot_id(listing, path)
        if snapshot_id is None:
            raise PreconditionError(actionable_error("snapshot_not_found", path=path))
        self.logger.info("Snapshot ID: %s ...", snapshot_id)
        return snapshot_id

    def disk_free(self) -> subprocess.CompletedProcess:
        return self.run_cmd(
            ["sftp", sftp_remote(self.repository)],
            check=False,
            capture_output=True,
            input="df -h\n",
        )
