import logging
import re
from typing import Optional

from ..core.state import CommandResult, ServiceHealth
from ..utils.platform_manager import PlatformProfile
from ..utils.subprocess_utils import CommandRunner

logger = logging.getLogger(__name__)

# Text of a status check that failed because the credential or site is wrong.
AUTH_FAILURE_PATTERN = re.compile(r"api.*key.*invalid|403|unauthorized", re.IGNORECASE)

STATUS_SUMMARY_PATTERN = re.compile(r"Agent|Logs|APM|Status")

DEFAULT_STATUS_TIMEOUT = 60


class AgentVerifier:
    """Health probe over the agent's own status command."""

    def __init__(self, profile: PlatformProfile, runner: CommandRunner, status_timeout: Optional[float] = DEFAULT_STATUS_TIMEOUT):
        self.profile = profile
        self.runner = runner
        self.status_timeout = status_timeout

    def is_installed(self) -> bool:
        return self.runner.which(self.profile.agent_binary) is not None

    def status(self) -> CommandResult:
        return self.runner.run(
            [self.profile.agent_binary, "status"],
            privileged=True,
            timeout=self.status_timeout,
        )

    def is_healthy(self) -> bool:
        return self.status().ok

    def health(self) -> ServiceHealth:
        if not self.is_installed():
            return ServiceHealth.ABSENT
        if self.is_healthy():
            return ServiceHealth.INSTALLED_HEALTHY
        return ServiceHealth.INSTALLED_UNHEALTHY


def is_auth_failure(output: str) -> bool:
    """Whether status output carries an authentication-error signature."""
    return bool(AUTH_FAILURE_PATTERN.search(output or ""))


def status_summary(output: str, limit: int = 10) -> list:
    """The status lines an operator cares about first."""
    return [line for line in (output or "").splitlines() if STATUS_SUMMARY_PATTERN.search(line)][:limit]
