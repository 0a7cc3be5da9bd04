"""Merges flags, parameter files and defaults into task options."""

import os
from dataclasses import MISSING, fields
from typing import Any, Dict, Mapping, Optional, Type, TypeVar

from hostprov.errors import MissingRequiredField
from hostprov.models import parameter_keys
from hostprov.services.config_loader import ParameterFileLoader

T = TypeVar("T")

_TRUE_VALUES = {"true", "1", "yes", "y", "on"}


class OptionResolver:
    """Builds an immutable options record.

    Precedence is explicit flag, then parameter-file value, then the
    ``defaults`` mapping, then the dataclass default.
    """

    def __init__(self, logger, parameter_loader: Optional[ParameterFileLoader] = None):
        self.logger = logger
        self.parameter_loader = parameter_loader or ParameterFileLoader()

    def load_parameters(self, parameter_file: Optional[str]) -> Dict[str, str]:
        if not parameter_file:
            return {}
        if not os.path.isfile(parameter_file):
            self.logger.warning("Parameter file %s not found, using flags and defaults only.", parameter_file)
            return {}
        self.logger.debug("Reading parameters from %s", parameter_file)
        return self.parameter_loader.load(parameter_file)

    def resolve(
        self,
        options_cls: Type[T],
        flags: Mapping[str, Any],
        parameter_file: Optional[str] = None,
        defaults: Optional[Mapping[str, Any]] = None,
    ) -> T:
        parameters = self.load_parameters(parameter_file)
        from_parameters = {
            field_name: parameters[key]
            for key, field_name in parameter_keys(options_cls).items()
            if key in parameters
        }
        defaults = defaults or {}

        values: Dict[str, Any] = {}
        for option_field in fields(options_cls):
            name = option_field.name
            if flags.get(name) is not None:
                value = flags[name]
            elif name in from_parameters:
                value = from_parameters[name]
            elif defaults.get(name) is not None:
                value = defaults[name]
            elif option_field.default is not MISSING:
                value = option_field.default
            else:
                value = None

            if isinstance(option_field.default, bool) and isinstance(value, str):
                value = value.strip().lower() in _TRUE_VALUES

            if option_field.metadata.get("required") and (value is None or value == ""):
                raise MissingRequiredField(self._describe(option_field))

            values[name] = value

        return options_cls(**values)

    @staticmethod
    def _describe(option_field) -> str:
        flag = option_field.metadata.get("flag")
        parameter = option_field.metadata.get("parameter")
        label = option_field.name.replace("_", "-")
        if flag and parameter:
            return f"{flag} <{label}> (or {parameter})"
        if flag:
            return f"{flag} <{label}>"
        return parameter or label
