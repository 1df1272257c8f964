"""
End-to-end provisioning run: resolve inputs, install, configure, reconcile
permissions, restart and verify.
"""
import logging
from typing import Callable, Optional

import requests
from rich.console import Console

from .config.configuration import ProvisionerSettings
from .config.writer import ConfigurationWriter, validate_configuration
from .core.request import ProvisioningRequest
from .error.exceptions import HealthCheckTimeout
from .inputs.prompter import Prompter
from .inputs.resolver import InputResolver, RawInputs
from .installer.installer import AgentInstaller, InstallDecision
from .permissions.reconciler import PermissionReconciler
from .reporting.reporter import Reporter
from .service.supervisor import Clock, ServiceSupervisor
from .utils.platform_manager import PlatformManager
from .utils.subprocess_utils import CommandRunner
from .verification.verifier import AgentVerifier

logger = logging.getLogger(__name__)


class ProvisioningWorkflow:
    """Wires the provisioning components together for a single run."""

    def __init__(
        self,
        settings: Optional[ProvisionerSettings] = None,
        console: Optional[Console] = None,
        runner: Optional[CommandRunner] = None,
        prompter: Optional[Prompter] = None,
        platform: Optional[PlatformManager] = None,
        clock: Optional[Clock] = None,
        session: Optional[requests.Session] = None,
        hostname: Optional[str] = None,
        register_secret: Optional[Callable[[str], None]] = None,
    ):
        self.settings = settings or ProvisionerSettings()
        self.console = console or Console()
        self.runner = runner or CommandRunner()
        self.prompter = prompter or Prompter(self.console)
        self.platform = platform
        self.clock = clock
        self.session = session
        self.hostname = hostname
        self.register_secret = register_secret

    def run(self, raw: RawInputs) -> int:
        """
        Provision the host.

        Returns:
            Process exit code: 0 on success or when the operator declines to
            reconfigure a healthy agent

        Raises:
            ProvisioningError: Any fatal failure, for the caller to report
        """
        platform = self.platform or PlatformManager()
        profile = platform.profile
        logger.info(f"Detected OS: {profile.os_name}")

        logger.info("Checking system requirements...")
        platform.validate_requirements(require_root=self.settings.require_root, which=self.runner.which)

        request = InputResolver(self.prompter, self.settings).resolve(raw)
        if self.register_secret:
            self.register_secret(request.secret)

        verifier = AgentVerifier(profile, self.runner)
        installer = AgentInstaller(
            profile, self.runner, settings=self.settings, verifier=verifier, session=self.session
        )
        decision = installer.decide(self.prompter, non_interactive=raw.non_interactive)
        if decision == InstallDecision.ABORT:
            return 0
        if decision == InstallDecision.INSTALL:
            installer.install(request)

        self.configure(profile, request)

        reporter = Reporter(profile, verifier, console=self.console, settings=self.settings)
        supervisor = ServiceSupervisor(
            profile, self.runner, settings=self.settings, verifier=verifier, clock=self.clock
        )
        try:
            supervisor.restart_and_verify()
        except HealthCheckTimeout as e:
            reporter.show_diagnostics(e.diagnostics)
            raise

        reporter.verify_installation(request)
        reporter.show_nodejs_instructions(request)
        return 0

    def configure(self, profile, request: ProvisioningRequest) -> None:
        """Write both documents, reconcile permissions and validate the result."""
        writer = ConfigurationWriter(profile, settings=self.settings, hostname=self.hostname)
        written = writer.write(request)

        reconciler = PermissionReconciler(profile, self.runner)
        reconciler.reconcile_config_tree()
        reconciler.reconcile_logs_dir(request.logs_dir)
        for failure in reconciler.report.failures:
            logger.debug(f"Permission step {failure.step} did not succeed: {failure.message}")

        validate_configuration(written.main_path)
