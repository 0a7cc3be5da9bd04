"""Cumulative log file written by long-running tasks such as backups."""

import os
from datetime import datetime
from typing import Callable

from hostprov.constants import BANNER_TIMESTAMP_FORMAT
from hostprov.models import LogEntry


class TaskLog:
    """Append-only log of one task run.

    Holds timestamped ``[<ts> -- <caller>] message`` entries interleaved with
    the raw output of the external commands the task ran.
    """

    def __init__(self, path: str, task_name: str, server: str, clock: Callable[[], datetime] = datetime.now):
        self.path = path
        self.task_name = task_name
        self.server = server
        self.clock = clock

    def _append(self, text: str):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as file_obj:
            file_obj.write(text)

    def start(self):
        now = self.clock().strftime(BANNER_TIMESTAMP_FORMAT)
        self._append(f"Starting {self.task_name} at: {now}\nServer:  {self.server}\n\n")

    def end(self):
        now = self.clock().strftime(BANNER_TIMESTAMP_FORMAT)
        self._append(f"\nEnd of {self.task_name} at: {now}\n")

    def blank(self):
        self._append("\n")

    def entry(self, caller: str, message: str):
        self._append(LogEntry(timestamp=self.clock(), caller=caller, message=message).render() + "\n")

    def output(self, text: str):
        if not text:
            return
        self._append(text if text.endswith("\n") else text + "\n")

    def read(self) -> str:
        if not os.path.exists(self.path):
            return ""
        with open(self.path, "r", encoding="utf-8") as file_obj:
            return file_obj.read()
