"""
Input resolution: validate what the operator supplied, prompt for the rest.
"""
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pydantic import BaseModel

from ..config.configuration import ProvisionerSettings
from ..core.request import ProvisioningRequest
from ..core.state import Site
from ..error.exceptions import ConfigurationError, ErrorContext, ValidationError
from . import validators
from .prompter import Prompter

logger = logging.getLogger(__name__)

DEFAULT_LOGS_DIR = "~/.pm2/logs"
DEFAULT_PORT = "3000"
DEFAULT_SITE = Site.US1.value

SITE_DESCRIPTIONS = {
    Site.US1: "US1 - default",
    Site.US3: "US3",
    Site.US5: "US5",
    Site.EU1: "EU1",
    Site.AP1: "AP1",
}


class RawInputs(BaseModel):
    """Unvalidated values from flags or the environment."""
    api_key: Optional[str] = None
    logs_dir: Optional[str] = None
    service_name: Optional[str] = None
    environment: Optional[str] = None
    port: Optional[str] = None
    site: Optional[str] = None

    class Config:
        frozen = True

    @property
    def non_interactive(self) -> bool:
        """All of api key, service name and environment were supplied."""
        return bool(self.api_key and self.service_name and self.environment)


class InputResolver:
    """Turns :class:`RawInputs` into a validated :class:`ProvisioningRequest`."""

    def __init__(self, prompter: Prompter, settings: Optional[ProvisionerSettings] = None):
        self.prompter = prompter
        self.settings = settings or ProvisionerSettings()

    def resolve(self, raw: RawInputs) -> ProvisioningRequest:
        """
        Resolve every field of the request.

        Supplied values are checked before anything is prompted for or
        created, so a bad flag fails fast.

        Raises:
            ValidationError: If a supplied value is invalid or the operator
                declines a required confirmation
            ConfigurationError: If the logs directory cannot be created
        """
        logger.info("Validating and collecting configuration...")
        non_interactive = raw.non_interactive
        supplied = self._validate_supplied(raw, non_interactive)

        api_key = supplied.get("api_key") or self._prompt_api_key()

        if "logs_dir" in supplied:
            logs_dir = supplied["logs_dir"]
        elif non_interactive:
            logs_dir = validators.validate_logs_dir(DEFAULT_LOGS_DIR)
        else:
            logs_dir = self._prompt_logs_dir()
        self._ensure_logs_dir(logs_dir, non_interactive)

        service_name = supplied.get("service_name") or self._prompt_until_valid(
            "Enter service name (e.g., pm2-docker-app)", validators.validate_service_name
        )
        environment = supplied.get("environment") or self._prompt_until_valid(
            "Enter environment (development/production/sandbox)", validators.validate_environment
        )

        if "port" in supplied:
            port = supplied["port"]
        elif non_interactive:
            port = validators.validate_port(DEFAULT_PORT)
        else:
            port = self._prompt_until_valid(
                "Enter Node.js application port", validators.validate_port, default=DEFAULT_PORT
            )

        if "site" in supplied:
            site = supplied["site"]
        elif non_interactive:
            site = validators.validate_site(DEFAULT_SITE)
        else:
            site = self._prompt_site()

        request = ProvisioningRequest(
            api_key=api_key,
            site=site,
            service_name=service_name,
            environment=environment,
            logs_dir=logs_dir,
            port=port,
        )
        logger.info("Configuration collected successfully!")
        return request

    def _validate_supplied(self, raw: RawInputs, non_interactive: bool) -> Dict[str, Any]:
        supplied: Dict[str, Any] = {}
        if raw.api_key:
            logger.info("Using provided API key")
            key = validators.validate_api_key(raw.api_key)
            if not self._accept_key_length(key, non_interactive):
                raise ValidationError("Please provide a valid API key")
            supplied["api_key"] = key
        if raw.logs_dir:
            logger.info(f"Using provided logs directory: {raw.logs_dir}")
            supplied["logs_dir"] = validators.validate_logs_dir(raw.logs_dir)
        if raw.service_name:
            logger.info(f"Using provided service name: {raw.service_name}")
            supplied["service_name"] = validators.validate_service_name(raw.service_name)
        if raw.environment:
            logger.info(f"Using provided environment: {raw.environment}")
            supplied["environment"] = validators.validate_environment(raw.environment)
        if raw.port:
            logger.info(f"Using provided Node.js port: {raw.port}")
            supplied["port"] = validators.validate_port(raw.port)
        if raw.site:
            logger.info(f"Using provided Datadog site: {raw.site}")
            supplied["site"] = validators.validate_site(raw.site)
        return supplied

    def _accept_key_length(self, key: str, non_interactive: bool) -> bool:
        if validators.has_expected_key_length(key):
            return True
        if self.settings.strict_credentials:
            raise ValidationError(
                f"API Key must be {validators.API_KEY_LENGTH} characters long"
            )
        logger.warning(f"API Key should be {validators.API_KEY_LENGTH} characters long. Please verify.")
        if non_interactive:
            return True
        return self.prompter.confirm("Continue with this API key?", default=False)

    def _prompt_api_key(self) -> str:
        while True:
            answer = self.prompter.ask("Enter your Datadog API Key", password=True)
            try:
                key = validators.validate_api_key(answer)
            except ValidationError as e:
                logger.error(str(e))
                continue
            if self._accept_key_length(key, non_interactive=False):
                return key

    def _prompt_logs_dir(self) -> Path:
        self.prompter.note(f"Default PM2 logs directory is typically: {DEFAULT_LOGS_DIR}")
        return self._prompt_until_valid(
            "Enter logs directory path", validators.validate_logs_dir, default=DEFAULT_LOGS_DIR
        )

    def _prompt_site(self):
        lines = ["Available Datadog sites:"]
        for index, site in enumerate(Site, start=1):
            lines.append(f"  {index}. {site.value} ({SITE_DESCRIPTIONS[site]})")
        self.prompter.note("\n".join(lines))
        return self._prompt_until_valid("Enter Datadog site", validators.validate_site, default=DEFAULT_SITE)

    def _prompt_until_valid(self, message: str, validate: Callable[[str], Any], default: Optional[str] = None):
        while True:
            answer = self.prompter.ask(message, default=default)
            try:
                return validate(answer)
            except ValidationError as e:
                logger.error(str(e))

    def _ensure_logs_dir(self, logs_dir: Path, non_interactive: bool) -> None:
        if logs_dir.is_dir():
            return

        logger.warning(f"Directory {logs_dir} does not exist.")
        if non_interactive:
            logger.info("Creating directory automatically in non-interactive mode")
        elif not self.prompter.confirm("Do you want to create it?", default=False):
            raise ValidationError("Logs directory is required. Exiting.")

        try:
            logs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise ConfigurationError(
                f"Failed to create directory: {logs_dir}",
                context=ErrorContext(component="InputResolver", operation="ensure_logs_dir"),
                details={"error": str(e)},
            )
        logger.info(f"Created directory: {logs_dir}")
