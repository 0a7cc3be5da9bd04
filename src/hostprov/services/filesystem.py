"""Filesystem helpers for hostprov."""

import logging
import os
import shutil
import sys
from typing import List, Optional

from rich.console import Console

from hostprov.errors import PreconditionError, ProvisioningError


class FileSystemService:
    """Encapsulates file and directory side effects."""

    def __init__(self, logger: logging.Logger, console: Console):
        self.logger = logger
        self.console = console

    def set_permissions(self, path: str, mode: int):
        if sys.platform == "win32":
            return

        try:
            os.chmod(path, mode)
        except OSError as exc:
            self.logger.warning("Could not set permissions on %s: %s", path, exc)

    def ensure_dir(self, path: str, mode: Optional[int] = None) -> bool:
        """Create ``path`` if missing; return True when it was created."""
        if os.path.isdir(path):
            self.logger.info("Found directory %s", path)
            return False

        self.logger.info("Create directory %s", path)
        os.makedirs(path, exist_ok=True)
        if mode is not None:
            self.set_permissions(path, mode)
        return True

    def remove_tree(self, path: str):
        if not os.path.exists(path):
            return
        try:
            shutil.rmtree(path)
        except OSError as exc:
            message = f"Could not remove {path}: {exc}"
            self.console.print(f"[yellow]Warning: {message}[/yellow]")
            raise ProvisioningError(message) from exc
        self.logger.debug("Removed directory: %s", path)

    def read_list(self, path: str) -> List[str]:
        """One entry per line; blank lines and ``#`` comments are ignored."""
        if not os.path.isfile(path):
            raise PreconditionError(f"Cannot find list file: {path}")
        with open(path, "r", encoding="utf-8") as file_obj:
            entries = [line.strip() for line in file_obj]
        return [entry for entry in entries if entry and not entry.startswith("#")]

    def write_text(self, path: str, content: str, mode: Optional[int] = None):
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "w", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(content)
        if mode is not None:
            self.set_permissions(path, mode)

    def append_text(self, path: str, content: str):
        parent = os.path.dirname(path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "a", encoding="utf-8", newline="\n") as file_obj:
            file_obj.write(content)

    def contains_marker(self, path: str, marker: str) -> bool:
        if not os.path.exists(path):
            return False
        with open(path, "r", encoding="utf-8") as file_obj:
            return any(marker in line for line in file_obj)

    def append_if_marker_absent(self, path: str, marker: str, snippet: str) -> bool:
        """Append ``snippet`` unless a line of ``path`` already contains ``marker``."""
        if self.contains_marker(path, marker):
            self.logger.info("%s already present in %s", marker, path)
            return False

        self.logger.info("Adding %s to %s", marker, path)
        self.append_text(path, snippet)
        return True

    def move_aside(self, path: str, suffix: str) -> str:
        target = f"{path}.{suffix}"
        self.logger.info("Saving away old version of %s to %s", path, target)
        shutil.move(path, target)
        return target
