"""Placeholder substitution for configuration templates."""

import os
from typing import List, Mapping

from hostprov.errors import PreconditionError
from hostprov.errors_catalog import actionable_error


def render_text(template: str, replacements: Mapping[str, str]) -> str:
    """Replace every literal placeholder; no escaping, no template language."""
    rendered = template
    for placeholder, value in replacements.items():
        rendered = rendered.replace(placeholder, value)
    return rendered


def certificate_references(config_text: str) -> List[str]:
    """Paths named by ``ssl_certificate`` / ``ssl_certificate_key`` directives."""
    paths = []
    for line in config_text.splitlines():
        tokens = line.split()
        if len(tokens) < 2 or not tokens[0].startswith("ssl_certificate"):
            continue
        paths.append(tokens[-1].rstrip(";"))
    return paths


class TemplateService:
    def __init__(self, logger, filesystem_service):
        self.logger = logger
        self.filesystem_service = filesystem_service

    def read_template(self, template_path: str) -> str:
        if not os.path.isfile(template_path):
            raise PreconditionError(actionable_error("template_not_found", path=template_path))
        with open(template_path, "r", encoding="utf-8") as file_obj:
            return file_obj.read()

    def render_file(self, template_path: str, destination: str, replacements: Mapping[str, str]) -> str:
        content = render_text(self.read_template(template_path), replacements)
        self.logger.info("Replace placeholders of %s into %s ...", template_path, destination)
        self.filesystem_service.write_text(destination, content)
        return content

    def missing_certificates(self, config_path: str) -> List[str]:
        with open(config_path, "r", encoding="utf-8") as file_obj:
            references = certificate_references(file_obj.read())

        missing = []
        for path in references:
            if os.path.isfile(path):
                self.logger.info("Found certificate file: %s", path)
            else:
                self.logger.warning(actionable_error("missing_certificate", path=path))
                missing.append(path)
        return missing
