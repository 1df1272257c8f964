"""Platform detection and the OS-specific facts the provisioner relies on."""
import logging
import os
import platform
import shutil
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from pydantic import BaseModel

from ..error.exceptions import ErrorContext, HostEnvironmentError, PlatformError

logger = logging.getLogger(__name__)

AGENT_BINARY = "datadog-agent"
LINUX_INSTALL_SCRIPT_URL = "https://s3.amazonaws.com/dd-agent/scripts/install_script_agent7.sh"
MACOS_INSTALL_SCRIPT_URL = "https://install.datadoghq.com/scripts/install_mac_os.sh"
LOGS_INTEGRATION_DIR = Path("conf.d") / "nodejs.d"


class PlatformType(Enum):
    """Supported platform types."""
    LINUX = "linux"
    MACOS = "macos"
    UNKNOWN = "unknown"


class PlatformProfile(BaseModel):
    """Read-only OS facts selected once at startup."""
    platform_type: PlatformType
    service_manager: str
    service_manager_command: str
    start_command: List[str]
    agent_binary: str = AGENT_BINARY
    agent_user: str
    agent_group: str
    install_script_url: str
    config_root: Path
    owner_query_command: List[str]
    group_query_command: List[str]
    group_membership_command: List[str]
    can_create_accounts: bool
    log_hint: str

    class Config:
        frozen = True

    @property
    def os_name(self) -> str:
        return self.platform_type.value

    @property
    def main_config_path(self) -> Path:
        return self.config_root / "datadog.yaml"

    @property
    def logs_config_dir(self) -> Path:
        return self.config_root / LOGS_INTEGRATION_DIR

    @property
    def logs_config_path(self) -> Path:
        return self.logs_config_dir / "conf.yaml"

    def membership_command(self, group: str, user: Optional[str] = None) -> List[str]:
        """Render the command adding ``user`` (default: the agent account) to ``group``."""
        user = user or self.agent_user
        return [part.format(group=group, user=user) for part in self.group_membership_command]


def detect_platform_type(system: Optional[str] = None) -> PlatformType:
    """Map a ``platform.system()`` style string to a platform type."""
    system = (system if system is not None else platform.system()).lower()
    if "linux" in system:
        return PlatformType.LINUX
    elif "darwin" in system or "mac" in system:
        return PlatformType.MACOS
    return PlatformType.UNKNOWN


def build_platform_profile(system: str, config_root: Optional[Path] = None) -> PlatformProfile:
    """
    Build the profile for a host identification string.

    Args:
        system: Value of ``platform.system()`` (``Linux``, ``Darwin``)
        config_root: Override of the agent configuration directory

    Raises:
        PlatformError: If the platform is not supported
    """
    platform_type = detect_platform_type(system)

    if platform_type == PlatformType.LINUX:
        return PlatformProfile(
            platform_type=platform_type,
            service_manager="systemd",
            service_manager_command="systemctl",
            start_command=["systemctl", "start", AGENT_BINARY],
            agent_user="dd-agent",
            agent_group="dd-agent",
            install_script_url=LINUX_INSTALL_SCRIPT_URL,
            config_root=config_root or Path("/etc/datadog-agent"),
            owner_query_command=["stat", "-c", "%U"],
            group_query_command=["stat", "-c", "%G"],
            group_membership_command=["usermod", "-a", "-G", "{group}", "{user}"],
            can_create_accounts=True,
            log_hint=f"sudo journalctl -u {AGENT_BINARY} -f",
        )

    if platform_type == PlatformType.MACOS:
        return PlatformProfile(
            platform_type=platform_type,
            service_manager="launchd",
            service_manager_command="launchctl",
            start_command=["launchctl", "start", "com.datadoghq.agent"],
            agent_user="datadog-agent",
            agent_group="datadog-agent",
            install_script_url=MACOS_INSTALL_SCRIPT_URL,
            config_root=config_root or Path("/opt/datadog-agent/etc"),
            owner_query_command=["stat", "-f", "%Su"],
            group_query_command=["stat", "-f", "%Sg"],
            group_membership_command=["dscl", ".", "-append", "/Groups/{group}", "GroupMembership", "{user}"],
            can_create_accounts=False,
            log_hint=f"sudo {AGENT_BINARY} logs",
        )

    raise PlatformError(
        f"Unsupported platform: {system}. Supported: Linux (systemd) and macOS",
        context=ErrorContext(component="PlatformManager", operation="build_platform_profile"),
        details={"system": system},
    )


class PlatformManager:
    """Detects the host once and exposes its profile."""

    def __init__(self, system: Optional[str] = None, config_root: Optional[Path] = None):
        self._system = system if system is not None else platform.system()
        self._profile = build_platform_profile(self._system, config_root=config_root)
        logger.debug(f"Detected platform {self._profile.os_name} ({self._system})")

    @property
    def platform_type(self) -> PlatformType:
        return self._profile.platform_type

    @property
    def profile(self) -> PlatformProfile:
        return self._profile

    def is_admin(self) -> bool:
        """Check if current process has root privileges."""
        return hasattr(os, "geteuid") and os.geteuid() == 0

    def validate_requirements(
        self,
        require_root: bool = True,
        which: Callable[[str], Optional[str]] = shutil.which,
    ) -> None:
        """
        Check that the host can be provisioned.

        Raises:
            HostEnvironmentError: If the service manager is missing or the
                process lacks root privileges
        """
        context = ErrorContext(component="PlatformManager", operation="validate_requirements")
        command = self._profile.service_manager_command
        if which(command) is None:
            raise HostEnvironmentError(
                f"{command} is required for {self._profile.service_manager} service management.",
                context=context,
                details={"missing_command": command},
            )

        if require_root and not self.is_admin():
            raise HostEnvironmentError(
                "This command requires root privileges. Re-run it with sudo.",
                context=context,
            )

        logger.info(f"System requirements check passed for {self._profile.os_name}!")
