"""Actionable error catalog for hostprov."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "template_not_found": {
        "what": "Cannot find template: {path}",
        "next": "Check the template path passed with `-t` or set it in the site config.",
    },
    "exclude_file_not_found": {
        "what": "Cannot find restic exclude file: {path}",
        "next": "Create the exclude file or drop the `-e` option.",
    },
    "job_file_not_found": {
        "what": "Cannot find job file: {path}",
        "next": "Create the job file with one directory per line or pass `-d <dir>`.",
    },
    "missing_certificate": {
        "what": "Cannot find certificate file {path}.",
        "next": "Run `letsencrypt certonly` to generate the certificates.",
    },
    "not_root": {
        "what": "Task `{task}` can only run as root.",
        "next": "Re-run the command with sudo or from a root shell.",
    },
    "snapshot_not_found": {
        "what": "No snapshot found containing {path}.",
        "next": "List the snapshots with `restic snapshots` and pass the id with `-s`.",
    },
    "known_hosts_not_found": {
        "what": "Cannot find ssh known hosts file: {path}",
        "next": "Pass an existing known hosts file with `-s`.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
