"""
Settings for the provisioner itself, with validation.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from ..error.exceptions import ConfigurationError, ErrorContext

logger = logging.getLogger(__name__)

ENV_PREFIX = "PROVISIONER_"

DEFAULT_CONFIG_PATHS = [
    "./provisioning_agent.yaml",
    "~/.provisioning_agent/config.yaml",
    "/etc/provisioning_agent/config.yaml",
]


class ProvisionerSettings(BaseModel):
    """Tunables for a provisioning run."""

    # General settings
    log_level: str = "INFO"
    log_file: Optional[str] = None
    structured_logging: bool = False

    # Input policy
    credential_policy: str = Field(default="lenient", description="lenient or strict api key length check")

    # Rendered configuration
    agent_version_tag: str = Field(default="1.0.0", description="Value of the version: tag")

    # Installer
    download_timeout: float = Field(default=60.0, description="Bootstrap download timeout in seconds", gt=0)
    install_timeout: Optional[float] = Field(default=None, description="Bootstrap execution timeout in seconds")

    # Service supervision
    health_poll_attempts: int = Field(default=30, ge=1, le=1000)
    health_poll_interval: float = Field(default=2.0, ge=0)
    startup_grace_seconds: float = Field(default=5.0, ge=0)
    stop_settle_seconds: float = Field(default=2.0, ge=0)
    process_kill_timeout: float = Field(default=5.0, ge=0)
    direct_start_timeout: float = Field(default=15.0, gt=0)

    require_root: bool = True

    class Config:
        frozen = True

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        value_upper = value.upper()
        if value_upper not in valid_levels:
            raise ValueError(f"Invalid log level '{value}'. Must be one of: {valid_levels}")
        return value_upper

    @field_validator("credential_policy")
    @classmethod
    def validate_credential_policy(cls, value: str) -> str:
        """Validate credential policy."""
        valid_policies = {"lenient", "strict"}
        if value.lower() not in valid_policies:
            raise ValueError(f"Invalid credential policy '{value}'. Must be one of: {valid_policies}")
        return value.lower()

    @property
    def strict_credentials(self) -> bool:
        return self.credential_policy == "strict"


def find_default_config() -> Optional[str]:
    """Find the default settings file."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load settings from a YAML file."""
    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(
            f"Error loading config file {config_path}: {e}",
            context=ErrorContext(component="ProvisionerSettings", operation="load_config_file"),
        )
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return data


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
    """Collect PROVISIONER_* environment variables as settings overrides."""
    environ = os.environ if environ is None else environ
    overrides = {}
    for name in ProvisionerSettings.model_fields:
        key = f"{ENV_PREFIX}{name.upper()}"
        if key in environ:
            overrides[name] = environ[key]
    return overrides


def load_settings(
    config_path: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    environ: Optional[Dict[str, str]] = None,
) -> ProvisionerSettings:
    """
    Build settings from a file, the environment and explicit overrides.

    Precedence, lowest first: defaults, settings file, PROVISIONER_* variables,
    explicit overrides.

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    values: Dict[str, Any] = {}

    path = config_path or find_default_config()
    if path:
        logger.debug(f"Loading settings from {path}")
        values.update(load_config_file(path))

    values.update(env_overrides(environ))
    values.update({k: v for k, v in (overrides or {}).items() if v is not None})

    try:
        return ProvisionerSettings(**values)
    except PydanticValidationError as e:
        raise ConfigurationError(
            f"Invalid provisioner settings: {e}",
            context=ErrorContext(component="ProvisionerSettings", operation="load_settings"),
        )
