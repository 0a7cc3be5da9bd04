"""Configuration loaders for hostprov."""

import shlex
from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from hostprov.errors import ProvisioningError
from hostprov.models import SiteConfig


class ConfigLoader:
    """Loads the YAML site configuration holding host paths and defaults."""

    SUPPORTED_KEYS = {f.name for f in fields(SiteConfig)}

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise ProvisioningError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise ProvisioningError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise ProvisioningError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise ProvisioningError(f"Unknown configuration keys: {unknown_list}")

        return parsed

    def load_site(self, config_path: Optional[str]) -> SiteConfig:
        values = self.load(config_path)
        return SiteConfig(**{key: str(value) for key, value in values.items()})


class ParameterFileLoader:
    """Reads shell-style ``KEY=value`` parameter files without sourcing them."""

    def load(self, parameter_path: str) -> Dict[str, str]:
        path = Path(parameter_path)
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise ProvisioningError(f"Could not read parameter file '{parameter_path}': {exc}") from exc

        values: Dict[str, str] = {}
        for number, raw_line in enumerate(lines, start=1):
            line = raw_line.strip()
            if not line or line.startswith("#"):
                continue
            if line.startswith("export "):
                line = line[len("export "):].lstrip()

            key, sep, raw_value = line.partition("=")
            key = key.strip()
            if not sep or not key.isidentifier():
                raise ProvisioningError(
                    f"Invalid line {number} in parameter file '{parameter_path}': {raw_line}"
                )

            try:
                tokens = shlex.split(raw_value, comments=True)
            except ValueError as exc:
                raise ProvisioningError(
                    f"Invalid value on line {number} in parameter file '{parameter_path}': {exc}"
                ) from exc
            values[key] = " ".join(tokens)

        return values
