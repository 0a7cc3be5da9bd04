"""Tarball creation and extraction helpers for hostprov."""

import os
import tarfile
from pathlib import Path

from hostprov.errors import ProvisioningError


class ArchiveService:
    """Encapsulates home-directory archiving and safe tarball extraction."""

    def is_within_dir(self, base_dir: Path, candidate: Path) -> bool:
        try:
            return os.path.commonpath([str(base_dir), str(candidate)]) == str(base_dir)
        except ValueError:
            return False

    def create_tarball(self, source_dir: str, archive_path: str):
        """Pack ``source_dir`` into a gzip tarball, keeping its path like ``tar -czf``."""
        source = Path(source_dir).resolve()
        arcname = str(source).lstrip("/") or "."
        try:
            with tarfile.open(archive_path, "w:gz") as tar_ref:
                tar_ref.add(str(source), arcname=arcname)
        except (OSError, tarfile.TarError) as exc:
            if os.path.exists(archive_path):
                os.remove(archive_path)
            raise ProvisioningError(f"Could not archive {source_dir} into {archive_path}: {exc}") from exc

    def safe_extract_tar(self, archive_path: str, destination_dir: str):
        base = Path(destination_dir).resolve()

        try:
            with tarfile.open(archive_path, "r:*") as tar_ref:
                members = tar_ref.getmembers()
                for member in members:
                    target_path = (base / member.name).resolve()
                    if not self.is_within_dir(base, target_path):
                        raise ProvisioningError(
                            f"Unsafe archive entry detected: `{member.name}`. "
                            "Archive extraction aborted to prevent path traversal."
                        )

                    if member.islnk() or member.issym():
                        link_target = (target_path.parent / member.linkname).resolve()
                        if member.islnk():
                            link_target = (base / member.linkname).resolve()
                        if not self.is_within_dir(base, link_target):
                            raise ProvisioningError(
                                f"Unsafe archive entry detected: `{member.name}` links outside the target."
                            )

                    if member.isdev():
                        raise ProvisioningError(
                            f"Unsafe archive entry detected: `{member.name}` is a device file."
                        )

                extract_kwargs = {"filter": "tar"} if hasattr(tarfile, "tar_filter") else {}
                tar_ref.extractall(base, members=members, **extract_kwargs)
        except tarfile.TarError as exc:
            raise ProvisioningError(f"Invalid tar archive: {archive_path}") from exc
