"""Mail notification through the host's outbound relay command."""

import shlex
from datetime import datetime
from typing import Callable, Optional

from hostprov.errors import ProvisioningError


class MailNotifier:
    """Pipes a plain-text message into a sendmail-compatible relay (``ssmtp``).

    Delivery is best effort: a relay failure is logged, never raised.
    """

    def __init__(self, logger, run_cmd: Callable, mail_command: str, sender: str):
        self.logger = logger
        self.run_cmd = run_cmd
        self.mail_command = mail_command
        self.sender = sender

    def build_message(self, address: str, subject: str, body: str) -> str:
        return f"To: {address}\nFrom: {self.sender}\nSubject: {subject}\n\n{body}"

    def send(self, address: str, body: str, subject: Optional[str] = None) -> bool:
        subject = subject or f"restic log from {datetime.now().strftime('%a %b %d %H:%M:%S %Y')}"
        message = self.build_message(address, subject, body)
        self.logger.info("Sending log to %s", address)

        cmd = shlex.split(self.mail_command) + [address]
        try:
            result = self.run_cmd(cmd, check=False, capture_output=True, input=message)
        except ProvisioningError as exc:
            self.logger.warning("Could not send mail to %s: %s", address, exc)
            return False

        if result.returncode != 0:
            self.logger.warning("Mail relay exited with %s for %s", result.returncode, address)
            return False
        return True
