"""
The resolved, validated input of a provisioning run.
"""
from pathlib import Path

from pydantic import BaseModel, SecretStr, field_validator

from ..inputs import validators
from .state import Environment, Site


class ProvisioningRequest(BaseModel):
    """Immutable request; every field is valid once constructed."""
    api_key: SecretStr
    site: Site
    service_name: str
    environment: Environment
    logs_dir: Path
    port: int

    class Config:
        frozen = True

    @field_validator("api_key", mode="before")
    @classmethod
    def check_api_key(cls, value):
        if isinstance(value, SecretStr):
            value = value.get_secret_value()
        return SecretStr(validators.validate_api_key(value))

    @field_validator("site", mode="before")
    @classmethod
    def check_site(cls, value):
        return validators.validate_site(value.value if isinstance(value, Site) else value)

    @field_validator("service_name")
    @classmethod
    def check_service_name(cls, value: str) -> str:
        return validators.validate_service_name(value)

    @field_validator("environment", mode="before")
    @classmethod
    def check_environment(cls, value):
        return validators.validate_environment(value.value if isinstance(value, Environment) else value)

    @field_validator("logs_dir", mode="before")
    @classmethod
    def check_logs_dir(cls, value):
        return validators.validate_logs_dir(value)

    @field_validator("port", mode="before")
    @classmethod
    def check_port(cls, value):
        return validators.validate_port(value)

    @property
    def secret(self) -> str:
        """The api key in clear text, for the installer environment and config file only."""
        return self.api_key.get_secret_value()

    def summary(self) -> dict:
        """Redacted view of the request for display."""
        return {
            "API Key": "[HIDDEN]",
            "Datadog Site": self.site.value,
            "Service": self.service_name,
            "Environment": self.environment.value,
            "Logs Directory": str(self.logs_dir),
            "Node.js Port": self.port,
        }
