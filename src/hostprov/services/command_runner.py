"""Subprocess execution service for hostprov."""

import subprocess
from typing import List, Mapping, Optional

from hostprov.errors import ExternalCommandError


class CommandRunner:
    """Runs external commands with consistent error handling.

    Every OS side effect of a task goes through :meth:`run`, so tests can swap
    in a recording double instead of calling package managers or restic.
    """

    def __init__(self, logger):
        self.logger = logger

    def run(
        self,
        cmd: List[str],
        check: bool = True,
        capture_output: bool = False,
        input: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> subprocess.CompletedProcess:
        cmd_str = " ".join(cmd)
        self.logger.debug("Executing: %s", cmd_str)

        try:
            result = subprocess.run(
                cmd,
                text=True,
                capture_output=capture_output,
                input=input,
                env=dict(env) if env is not None else None,
            )
        except FileNotFoundError as exc:
            raise ExternalCommandError(
                f"Required command not found: {cmd[0]}. Please install it and try again.",
                returncode=127,
            ) from exc
        except OSError as exc:
            raise ExternalCommandError(f"Failed to execute command: {cmd_str}. {exc}", returncode=126) from exc

        if capture_output and result.stdout:
            self.logger.debug("Command output: %s", result.stdout.strip())

        if result.returncode == 0:
            return result

        stderr = (result.stderr or "").strip() if capture_output else ""
        message = f"Command failed ({result.returncode}): {cmd_str}"
        if stderr:
            message = f"{message}\n{stderr}"

        if check:
            raise ExternalCommandError(message, returncode=result.returncode)

        self.logger.warning(message)
        return result
