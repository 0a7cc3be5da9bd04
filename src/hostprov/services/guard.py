"""State checks performed before mutating actions.

The checks are not transactional: a concurrent change between check and
action is not detected. hostprov assumes one operator running one task at a
time on a host.
"""

import grp
import os
import pwd
from typing import Callable

from hostprov.models import Verdict


def _verdict(satisfied: bool) -> Verdict:
    return Verdict.ALREADY_SATISFIED if satisfied else Verdict.NEEDS_ACTION


class IdempotencyGuard:
    def __init__(self, logger, run_cmd: Callable):
        self.logger = logger
        self.run_cmd = run_cmd

    def home_directory(self, home_dir: str) -> Verdict:
        return _verdict(os.path.isdir(home_dir))

    def path_present(self, path: str) -> Verdict:
        return _verdict(os.path.exists(path))

    def account(self, username: str) -> Verdict:
        try:
            pwd.getpwnam(username)
        except KeyError:
            return Verdict.NEEDS_ACTION
        return Verdict.ALREADY_SATISFIED

    def group(self, group_name: str) -> Verdict:
        try:
            grp.getgrnam(group_name)
        except KeyError:
            return Verdict.NEEDS_ACTION
        return Verdict.ALREADY_SATISFIED

    def service(self, service_name: str) -> Verdict:
        """A service counts as installed once ``service <name> status`` prints anything."""
        result = self.run_cmd(["service", service_name, "status"], check=False, capture_output=True)
        return _verdict(bool((result.stdout or "").strip()))

    def debian_package(self, package: str) -> Verdict:
        result = self.run_cmd(["dpkg", "-l", package], check=False, capture_output=True)
        installed = any(
            line.startswith("ii") and package in line.split()
            for line in (result.stdout or "").splitlines()
        )
        return _verdict(installed)
