"""Writes the rendered agent configuration to disk."""
import logging
import shutil
import socket
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

import yaml
from pydantic import BaseModel

from ..core.request import ProvisioningRequest
from ..error.exceptions import ConfigurationError, ErrorContext
from ..utils.platform_manager import PlatformProfile
from .configuration import ProvisionerSettings
from .documents import build_logs_config, build_main_config, to_yaml

logger = logging.getLogger(__name__)

BACKUP_TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"
REQUIRED_MAIN_KEYS = ("api_key", "logs_enabled", "apm_config")


class WrittenConfiguration(BaseModel):
    main_path: Path
    logs_path: Path
    backup_path: Optional[Path] = None

    class Config:
        frozen = True


class ConfigurationWriter:
    """Renders both documents and replaces the files on disk."""

    def __init__(
        self,
        profile: PlatformProfile,
        settings: Optional[ProvisionerSettings] = None,
        hostname: Optional[str] = None,
        now: Callable[[], datetime] = datetime.now,
    ):
        self.profile = profile
        self.settings = settings or ProvisionerSettings()
        self.hostname = hostname or socket.gethostname()
        self.now = now

    def write(self, request: ProvisioningRequest) -> WrittenConfiguration:
        """
        Back up and replace ``datadog.yaml``, then write the logs integration file.

        Raises:
            ConfigurationError: If either document cannot be written
        """
        logger.info("Configuring Datadog agent...")
        backup_path = self.backup_existing()

        main = build_main_config(request, self.hostname, self.settings.agent_version_tag)
        self._write(self.profile.main_config_path, to_yaml(main, header="Datadog Agent Configuration"))
        logger.info("Main Datadog configuration created!")

        logger.info(f"Configuring log collection for directory: {request.logs_dir}")
        try:
            self.profile.logs_config_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                "Failed to create configuration directory",
                context=ErrorContext(component="ConfigurationWriter", operation="write"),
                details={"path": str(self.profile.logs_config_dir), "error": str(e)},
            )
        self._write(self.profile.logs_config_path, to_yaml(build_logs_config(request)))
        logger.info("Log collection and Node.js integration configured!")

        return WrittenConfiguration(
            main_path=self.profile.main_config_path,
            logs_path=self.profile.logs_config_path,
            backup_path=backup_path,
        )

    def backup_existing(self) -> Optional[Path]:
        """Copy an existing main configuration aside; failure only warns."""
        source = self.profile.main_config_path
        if not source.is_file():
            return None

        target = source.with_name(f"{source.name}.backup.{self.now().strftime(BACKUP_TIMESTAMP_FORMAT)}")
        try:
            shutil.copy2(source, target)
        except OSError as e:
            logger.warning(f"Failed to backup existing configuration: {e}")
            return None
        logger.info(f"Backed up existing configuration to {target}")
        return target

    def _write(self, path: Path, content: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to write configuration file {path}",
                context=ErrorContext(component="ConfigurationWriter", operation="write"),
                details={"error": str(e)},
            )


def validate_configuration(path: Path) -> dict:
    """
    Check that a written main configuration parses and has its key sections.

    Raises:
        ConfigurationError: If the file is missing, unreadable, not YAML or
            missing a required section
    """
    logger.info("Validating Datadog configuration...")
    context = ErrorContext(component="ConfigurationWriter", operation="validate_configuration")
    if not path.is_file():
        raise ConfigurationError(f"Configuration file not found: {path}", context=context)

    try:
        document = yaml.safe_load(path.read_text())
    except OSError as e:
        raise ConfigurationError(f"Configuration file is not readable: {path}", context=context, details={"error": str(e)})
    except yaml.YAMLError as e:
        raise ConfigurationError(f"YAML configuration validation failed: {e}", context=context)

    missing = [key for key in REQUIRED_MAIN_KEYS if not isinstance(document, dict) or key not in document]
    if missing:
        raise ConfigurationError(
            f"Configuration file appears to be missing required sections: {', '.join(missing)}",
            context=context,
            details={"path": str(path)},
        )

    logger.info("Configuration validation passed!")
    return document
