"""
Detection and installation of the monitoring agent.

The vendor bootstrap script is downloaded to a private temporary file and run
with the credential injected through the child's environment only.
"""
import logging
import os
import tempfile
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional

import requests

from ..config.configuration import ProvisionerSettings
from ..core.request import ProvisioningRequest
from ..core.state import ServiceHealth
from ..error.exceptions import ErrorContext, InstallError
from ..inputs.prompter import Prompter
from ..utils.platform_manager import PlatformProfile
from ..utils.subprocess_utils import CommandRunner
from ..verification.verifier import AgentVerifier

logger = logging.getLogger(__name__)

TEMP_FILE_PREFIX = "datadog_install."


class InstallState(str, Enum):
    ABSENT = "absent"
    PRESENT = "present"


class InstallDecision(str, Enum):
    INSTALL = "install"
    RECONFIGURE = "reconfigure"
    ABORT = "abort"


def temp_dir_candidates() -> List[str]:
    """Preferred locations for temporary files, most preferred first."""
    return [
        os.environ.get("TMPDIR", ""),
        "/tmp",
        "/var/tmp",
        str(Path.home() / ".cache"),
        os.getcwd(),
    ]


def select_temp_dir(candidates: Optional[List[str]] = None) -> str:
    """
    Pick the first existing, writable directory.

    Raises:
        InstallError: If no candidate is usable
    """
    for candidate in candidates if candidates is not None else temp_dir_candidates():
        if candidate and os.path.isdir(candidate) and os.access(candidate, os.W_OK):
            return candidate
    raise InstallError(
        "Failed to create temporary file: no writable temporary directory",
        context=ErrorContext(component="AgentInstaller", operation="select_temp_dir"),
    )


@contextmanager
def secure_temp_file(candidates: Optional[List[str]] = None, prefix: str = TEMP_FILE_PREFIX) -> Iterator[Path]:
    """Create an owner-only (0600) temporary file, removed on exit."""
    directory = select_temp_dir(candidates)
    try:
        fd, name = tempfile.mkstemp(prefix=prefix, dir=directory)
    except OSError as e:
        raise InstallError(f"Failed to create temporary file in {directory}: {e}")
    os.close(fd)
    path = Path(name)
    try:
        yield path
    finally:
        try:
            path.unlink()
        except FileNotFoundError:
            pass


class AgentInstaller:
    """Checks for an existing agent and installs it when absent."""

    def __init__(
        self,
        profile: PlatformProfile,
        runner: CommandRunner,
        settings: Optional[ProvisionerSettings] = None,
        verifier: Optional[AgentVerifier] = None,
        session: Optional[requests.Session] = None,
        temp_dirs: Optional[List[str]] = None,
    ):
        self.profile = profile
        self.runner = runner
        self.settings = settings or ProvisionerSettings()
        self.verifier = verifier or AgentVerifier(profile, runner)
        self.session = session or requests.Session()
        self.temp_dirs = temp_dirs

    def is_installed(self) -> InstallState:
        if self.verifier.is_installed():
            return InstallState.PRESENT
        return InstallState.ABSENT

    def health(self) -> ServiceHealth:
        return self.verifier.health()

    def decide(self, prompter: Prompter, non_interactive: bool) -> InstallDecision:
        """
        Decide between a fresh install, an in-place reconfiguration or no-op.

        A healthy agent is only reconfigured when the operator agrees;
        non-interactive runs agree implicitly.
        """
        logger.info("Checking if Datadog agent is already installed...")
        if self.is_installed() == InstallState.ABSENT:
            logger.info("Datadog agent not found. Will proceed with installation.")
            return InstallDecision.INSTALL

        logger.info("Datadog agent found. Checking status...")
        health = self.health()
        if health == ServiceHealth.INSTALLED_HEALTHY:
            logger.info("Datadog agent is already installed and running!")
            if non_interactive or prompter.confirm("Do you want to reconfigure it?", default=False):
                return InstallDecision.RECONFIGURE
            logger.info("Exiting without changes.")
            return InstallDecision.ABORT

        logger.warning("Datadog agent is installed but not running properly.")
        return InstallDecision.RECONFIGURE

    def download_bootstrap(self, destination: Path) -> None:
        """
        Fetch the vendor bootstrap script into ``destination``.

        Raises:
            InstallError: On any transport error or an empty body
        """
        url = self.profile.install_script_url
        context = ErrorContext(component="AgentInstaller", operation="download_bootstrap")
        logger.info(f"Downloading installation script for {self.profile.os_name}...")
        try:
            response = self.session.get(url, timeout=self.settings.download_timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise InstallError(
                f"Failed to download installation script from {url}",
                context=context,
                details={"error": str(e)},
            )

        if not response.content or not response.content.strip():
            raise InstallError("Downloaded script is empty", context=context, details={"url": url})

        destination.write_bytes(response.content)

    def install(self, request: ProvisioningRequest) -> None:
        """
        Download and execute the vendor bootstrap script.

        Raises:
            InstallError: If download or execution fails
        """
        logger.info(f"Installing Datadog agent for {self.profile.os_name}...")
        env = {
            "DD_API_KEY": request.secret,
            "DD_SITE": request.site.value,
            "DD_ENV": request.environment.value,
        }
        with secure_temp_file(self.temp_dirs) as script_path:
            self.download_bootstrap(script_path)
            result = self.runner.run(
                ["bash", str(script_path)],
                env=env,
                timeout=self.settings.install_timeout,
            )

        if not result.ok:
            raise InstallError(
                f"Failed to install Datadog agent on {self.profile.os_name}!",
                context=ErrorContext(component="AgentInstaller", operation="install"),
                details={"exit_code": result.exit_code, "stderr": result.stderr[-2000:]},
            )
        logger.info(f"Datadog agent installed successfully on {self.profile.os_name}!")
