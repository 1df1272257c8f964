"""
Configuration components: provisioner settings and the agent's documents.
"""
from .configuration import (
    ProvisionerSettings,
    find_default_config,
    load_config_file,
    load_settings,
)

__all__ = [
    "ProvisionerSettings",
    "find_default_config",
    "load_config_file",
    "load_settings",
]
