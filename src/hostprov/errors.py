"""Domain errors for hostprov."""

import click


class ProvisioningError(RuntimeError):
    """Raised when a provisioning task cannot continue safely."""

    exit_code = 1


class PreconditionError(ProvisioningError):
    """A required file or directory is absent before any side effect ran."""


class ExternalCommandError(ProvisioningError):
    """An external command exited with a non-zero status."""

    def __init__(self, message: str, returncode: int):
        super().__init__(message)
        self.returncode = returncode
        self.exit_code = returncode if returncode > 0 else 1


class UsageError(click.UsageError):
    """Bad or missing command-line input."""

    exit_code = 1


class MissingRequiredField(UsageError):
    """A required option resolved to an empty value."""

    def __init__(self, flag: str, ctx=None):
        super().__init__(f"{flag} not defined (pass it on the command line or in the parameter file)", ctx=ctx)
        self.flag = flag
