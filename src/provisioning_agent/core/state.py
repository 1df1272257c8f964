"""
Core value types shared across the provisioning workflow.
"""
from enum import Enum
from typing import Any, Dict

from pydantic import BaseModel, Field


class Site(str, Enum):
    """Regional Datadog endpoints the agent can report to."""
    US1 = "datadoghq.com"
    US3 = "us3.datadoghq.com"
    US5 = "us5.datadoghq.com"
    EU1 = "eu1.datadoghq.com"
    AP1 = "ap1.datadoghq.com"


class Environment(str, Enum):
    """Deployment environments accepted for the env: tag."""
    DEVELOPMENT = "development"
    PRODUCTION = "production"
    SANDBOX = "sandbox"


class ServiceHealth(str, Enum):
    """Observed state of the managed agent service."""
    ABSENT = "absent"
    INSTALLED_UNHEALTHY = "installed_unhealthy"
    INSTALLED_HEALTHY = "installed_healthy"


class FailurePolicy(str, Enum):
    """What a failed best-effort step leads to."""
    FATAL = "fatal"
    WARN = "warn"
    FALLBACK = "fallback"


class CommandResult(BaseModel):
    """Represents output from a command execution."""
    exit_code: int = 0
    stdout: str = ""
    stderr: str = ""

    class Config:
        frozen = True

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def timed_out(self) -> bool:
        return self.exit_code == 124

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as an operator would see it."""
        if self.stdout and self.stderr:
            return f"{self.stdout.rstrip()}\n{self.stderr}"
        return self.stdout or self.stderr


class StepResult(BaseModel):
    """Outcome of a single idempotent host mutation or probe."""
    step: str
    success: bool
    message: str = ""
    details: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True

    @classmethod
    def from_command(cls, step: str, result: CommandResult, message: str = "") -> "StepResult":
        return cls(
            step=step,
            success=result.ok,
            message=message or result.stderr.strip(),
            details={"exit_code": result.exit_code},
        )
