"""Operator-facing output: summaries, guidance and failure diagnostics."""
import logging
from typing import Optional

from rich.console import Console
from rich.markup import escape

from ..config.configuration import ProvisionerSettings
from ..core.request import ProvisioningRequest
from ..core.state import Site
from ..error.exceptions import ErrorContext, VerificationError
from ..inputs.validators import API_KEY_LENGTH
from ..service.supervisor import DiagnosticBundle
from ..utils.platform_manager import PlatformProfile
from ..verification.verifier import AgentVerifier, is_auth_failure, status_summary
from . import templates

logger = logging.getLogger(__name__)

SITE_HINTS = [
    (Site.US1.value, "US1: app.datadoghq.com"),
    (Site.US3.value, "US3: us3.datadoghq.com"),
    (Site.US5.value, "US5: us5.datadoghq.com"),
    (Site.EU1.value, "EU1: app.datadoghq.eu"),
    (Site.AP1.value, "AP1: ap1.datadoghq.com"),
]


class Reporter:
    """Prints the outcome of a provisioning run; never echoes the api key."""

    def __init__(
        self,
        profile: PlatformProfile,
        verifier: AgentVerifier,
        console: Optional[Console] = None,
        settings: Optional[ProvisionerSettings] = None,
    ):
        self.profile = profile
        self.verifier = verifier
        self.console = console or Console()
        self.settings = settings or ProvisionerSettings()

    def verify_installation(self, request: ProvisioningRequest) -> None:
        """
        Run a final status check and report on it.

        Raises:
            VerificationError: If the status check fails
        """
        logger.info("Verifying Datadog agent installation...")
        result = self.verifier.status()

        if not result.ok:
            self.console.print("[bold red]Datadog agent status check failed![/bold red]")
            self.console.print("Status output:")
            self.console.print(escape(result.output))
            if is_auth_failure(result.output):
                self.show_auth_troubleshooting()
            else:
                self.console.print(templates.render(templates.GENERIC_TROUBLESHOOTING, log_hint=self.profile.log_hint))
            raise VerificationError(
                "Datadog agent status check failed!",
                context=ErrorContext(component="Reporter", operation="verify_installation"),
                details={"exit_code": result.exit_code},
            )

        self.console.print("[bold green]Datadog agent status check passed![/bold green]")
        lines = status_summary(result.stdout)
        if lines:
            self.console.print("\n[bold blue]=== Datadog Agent Status Summary ===[/bold blue]")
            for line in lines:
                self.console.print(escape(line))
        else:
            logger.warning("Could not extract status summary")

        self.console.print("\n[bold green]Installation and configuration completed successfully![/bold green]\n")
        self.show_summary(request)

    def show_summary(self, request: ProvisioningRequest) -> None:
        self.console.print(templates.render(templates.SUMMARY, summary=request.summary()))
        self.console.print(
            templates.render(templates.NEXT_STEPS, binary=self.profile.agent_binary, site=request.site.value)
        )

    def show_nodejs_instructions(self, request: ProvisioningRequest) -> None:
        self.console.print(
            templates.render(
                templates.NODEJS_INSTRUCTIONS,
                service=request.service_name,
                environment=request.environment.value,
                version=self.settings.agent_version_tag,
            )
        )

    def show_auth_troubleshooting(self) -> None:
        self.console.print(
            templates.render(
                templates.AUTH_TROUBLESHOOTING,
                key_length=API_KEY_LENGTH,
                site_hints=SITE_HINTS,
                binary=self.profile.agent_binary,
                config_path=self.profile.main_config_path,
            )
        )

    def show_diagnostics(self, bundle: Optional[DiagnosticBundle]) -> None:
        self.console.print(
            templates.render(
                templates.HEALTH_TIMEOUT,
                binary=self.profile.agent_binary,
                log_hint=self.profile.log_hint,
                config_root=self.profile.config_root,
                bundle=bundle or DiagnosticBundle(),
            )
        )

