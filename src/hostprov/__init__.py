"""
hostprov - provisioning task runner for Linux hosts
"""

__version__ = "0.1.0"

from .core import TaskRunner
from .errors import ProvisioningError

__all__ = ["TaskRunner", "ProvisioningError"]
