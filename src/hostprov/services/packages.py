"""Software installation through apt, R, pip, direct downloads and scp."""

import os
import tempfile
from typing import Callable, Dict, List, Optional

from hostprov.constants import (
    CRAN_MIRROR,
    CURL_ARCHIVE_TOOLS,
    DEFAULT_APT_PACKAGES,
    DEFAULT_R_PACKAGES,
    PIP3_PACKAGES,
    PIP3_PATH,
    R_KEYSERVER,
    R_RECV_KEY,
    R_REPOSITORY,
)
from hostprov.errors import PreconditionError
from hostprov.models import Verdict


def path_snippet(name: str, bin_path: str) -> str:
    """Shell fragment that appends ``bin_path`` to PATH once; ``<name>_path`` is its marker."""
    variable = f"{name}_path"
    return (
        f"\n# Adding {name} to path\n"
        f"{variable}={bin_path}\n"
        f'\nif [ -n "${{PATH##*${{{variable}}}}}" -a -n "${{PATH##*${{{variable}}}:*}}" ]; then\n'
        f"   export PATH=$PATH:${{{variable}}}\n"
        "fi\n"
    )


def r_install_expression(package: str) -> str:
    return (
        f"if (! '{package}' %in% installed.packages()) {{"
        f" cat(' *** R: install.package: {package} \\n');"
        f" install.packages('{package}', repos='{CRAN_MIRROR}', dependencies = TRUE)}}"
    )


def r_bulk_install_expression(packages) -> str:
    quoted = ", ".join(f"'{package}'" for package in packages)
    return f"install.packages(c({quoted}), repos='{CRAN_MIRROR}', dependencies = TRUE)"


class PackageService:
    def __init__(
        self,
        logger,
        run_cmd: Callable,
        filesystem_service,
        archive_service,
        download_service,
        guard,
        parameter_loader,
        which: Callable[[str], Optional[str]],
    ):
        self.logger = logger
        self.run_cmd = run_cmd
        self.filesystem_service = filesystem_service
        self.archive_service = archive_service
        self.download_service = download_service
        self.guard = guard
        self.parameter_loader = parameter_loader
        self.which = which

    def apt_refresh(self):
        self.run_cmd(["apt", "update"])
        self.run_cmd(["apt", "upgrade", "-y"])

    def register_r_repository(self, key_file: Optional[str] = None):
        settings = {"KEYSERVER": R_KEYSERVER, "RECVKEY": R_RECV_KEY, "REPO": R_REPOSITORY}
        if key_file:
            self.logger.info("Reading R repository key settings from %s ...", key_file)
            if not os.path.isfile(key_file):
                raise PreconditionError(f"Cannot find R key file: {key_file}")
            settings.update(self.parameter_loader.load(key_file))

        self.logger.info("Specify keyserver: %s with key: %s ...", settings["KEYSERVER"], settings["RECVKEY"])
        self.run_cmd(["apt-key", "adv", "--keyserver", settings["KEYSERVER"], "--recv-keys", settings["RECVKEY"]])
        self.logger.info("Adding repository: %s ...", settings["REPO"])
        self.run_cmd(["add-apt-repository", settings["REPO"]])
        self.run_cmd(["apt", "update"])

    def install_apt_packages(self, package_file: Optional[str] = None, key_file: Optional[str] = None):
        packages = self.filesystem_service.read_list(package_file) if package_file else list(DEFAULT_APT_PACKAGES)

        self.apt_refresh()
        if any("r-base" in package for package in packages):
            self.logger.info("Add key and repo for R")
            self.register_r_repository(key_file)

        if package_file:
            for package in packages:
                self.logger.info("Installing pkg %s ...", package)
                self.run_cmd(["apt", "install", "-y", package])
        else:
            self.logger.info("Installing built-in package list ...")
            self.run_cmd(["apt", "install", "-y"] + packages)
        self.apt_refresh()

    def install_r_packages(self, package_file: Optional[str] = None):
        if self.which("R") is None:
            self.logger.warning("Cannot find R and therefore cannot install r-packages")
            return

        if not package_file:
            self.logger.info("Install built-in R packages ...")
            self.run_cmd(["R", "-e", r_bulk_install_expression(DEFAULT_R_PACKAGES)])
            return

        for package in self.filesystem_service.read_list(package_file):
            self.logger.info("Install r-pkg: %s ...", package)
            self.run_cmd(["R", "-e", r_install_expression(package)])

    def install_pip_packages(self, pip_path: str = PIP3_PATH):
        if not os.path.isfile(pip_path):
            self.logger.info("%s not found, skipping python packages", pip_path)
            return
        self.logger.info("Install %s ...", " and ".join(PIP3_PACKAGES))
        for package in PIP3_PACKAGES:
            self.run_cmd([pip_path, "install", package])

    def read_curl_input(self, curl_input: str) -> Dict[str, str]:
        if not os.path.isfile(curl_input):
            raise PreconditionError(f"Cannot find curl input file: {curl_input}")
        return self.parameter_loader.load(curl_input)

    def install_archive_tool(self, name: str, url: str, root: str, bin_path: str, profile_fragment: str):
        self.logger.info("Install %s ...", name)
        with tempfile.TemporaryDirectory(prefix=f"hostprov-{name}-") as work_dir:
            archive_path = os.path.join(work_dir, self.download_service.filename_for(url, f"{name}.tar.gz"))
            self.download_service.download_file(url, archive_path, f"Downloading {name}...")
            self.filesystem_service.ensure_dir(root)
            self.archive_service.safe_extract_tar(archive_path, root)

        self.filesystem_service.append_if_marker_absent(
            profile_fragment,
            f"{name}_path",
            path_snippet(name, bin_path),
        )

    def install_curl_tools(self, curl_input: str, profile_fragment: str):
        settings = self.read_curl_input(curl_input)

        for prefix, name in CURL_ARCHIVE_TOOLS:
            url = settings.get(f"{prefix}_URL")
            root = settings.get(f"{prefix}_ROOT")
            bin_path = settings.get(f"{prefix}_PATH")
            if url and root and bin_path:
                self.install_archive_tool(name, url, root, bin_path, profile_fragment)

        if settings.get("SIMG_URL"):
            self.logger.info("Install singularity-container ...")
            self.install_deb(settings["SIMG_URL"])

    def ensure_gdebi(self):
        if self.guard.debian_package("gdebi-core") is Verdict.ALREADY_SATISFIED:
            return
        self.logger.info("Install gdebi-core ...")
        self.run_cmd(["apt-get", "update", "-y"])
        self.run_cmd(["apt-get", "install", "-y", "gdebi-core"])

    def install_deb(self, url: str):
        self.ensure_gdebi()
        with tempfile.TemporaryDirectory(prefix="hostprov-deb-") as work_dir:
            deb_path = os.path.join(work_dir, self.download_service.filename_for(url, "package.deb"))
            self.download_service.download_file(url, deb_path, f"Downloading {os.path.basename(deb_path)}...")
            self.run_cmd(["gdebi", "--n", deb_path])

    def install_service_deb(self, service_name: str, url: str, prepare: Optional[List[List[str]]] = None) -> bool:
        """Install a ``.deb`` that registers ``service_name``; skipped when already registered."""
        if self.guard.service(service_name) is Verdict.ALREADY_SATISFIED:
            self.logger.info("%s already seems to be installed...", service_name)
            return False

        for cmd in prepare or []:
            self.run_cmd(cmd)
        self.install_deb(url)
        return True

    def install_local_tools(self, source: str, owner: str, profile_fragment: str):
        server, sep, local_dir = source.partition(":")
        if not sep or not server or not local_dir:
            raise PreconditionError(f"Local tools source must look like <server>:<directory>, got: {source}")

        if self.guard.path_present(local_dir) is Verdict.ALREADY_SATISFIED:
            self.logger.info("Local tools already exist in %s", local_dir)
        else:
            self.logger.info("Installation of local tools from %s ...", source)
            parent = os.path.dirname(local_dir.rstrip("/")) or "/"
            self.filesystem_service.ensure_dir(parent)
            self.run_cmd(["scp", "-rp", source, parent])
            self.logger.info("Change owner of %s ...", local_dir)
            self.run_cmd(["chown", "-R", owner, local_dir])

        self.filesystem_service.append_if_marker_absent(
            profile_fragment,
            "linux_bin_path",
            path_snippet("linux_bin", local_dir),
        )
