"""Command line entry point."""
import logging
from pathlib import Path
from typing import Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.markup import escape

from . import __version__
from .config.configuration import load_settings
from .error.exceptions import ProvisioningError
from .inputs.resolver import RawInputs
from .logging.config import LogConfig
from .workflow import ProvisioningWorkflow

# Load environment variables (DD_* inputs, PROVISIONER_* settings)
load_dotenv()

app = typer.Typer(
    help="Install, configure and verify the Datadog agent for a Node.js service.",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

console = Console()
logger = logging.getLogger("provisioning-agent")


def version_callback(value: bool):
    if value:
        console.print(f"provisioning-agent {__version__}")
        raise typer.Exit()


@app.command()
def provision(
    api_key: Optional[str] = typer.Option(
        None, "--api-key", "-k", envvar="DD_API_KEY", show_envvar=False, help="Datadog API key (32 characters)"
    ),
    logs_dir: Optional[str] = typer.Option(
        None, "--logs-dir", "-l", envvar="DD_LOGS_DIR", help="Directory holding the PM2 log files"
    ),
    service_name: Optional[str] = typer.Option(
        None, "--service-name", "-s", envvar="DD_SERVICE", help="Service name for the service: tag"
    ),
    environment: Optional[str] = typer.Option(
        None, "--environment", "-e", envvar="DD_ENV", help="development, production or sandbox"
    ),
    port: Optional[str] = typer.Option(
        None, "--port", "-p", envvar="DD_APP_PORT", help="Node.js application port (default 3000)"
    ),
    site: Optional[str] = typer.Option(
        None,
        "--site",
        "-t",
        envvar="DD_SITE",
        help="Datadog site (datadoghq.com|us3.datadoghq.com|us5.datadoghq.com|eu1.datadoghq.com|ap1.datadoghq.com)",
    ),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to a provisioner settings file"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
    version: Optional[bool] = typer.Option(
        None, "--version", callback=version_callback, is_eager=True, help="Show the version and exit"
    ),
):
    """
    Provision the Datadog agent.

    Runs non-interactively when the api key, service name and environment are
    all supplied; prompts for anything missing otherwise.
    """
    try:
        settings = load_settings(
            config_path=str(config_path) if config_path else None,
            overrides={"log_level": log_level},
        )
    except ProvisioningError as e:
        console.print(f"[bold red][ERROR][/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    log_config = LogConfig(
        log_level=settings.log_level,
        log_file=settings.log_file,
        json_logging=settings.structured_logging,
        console=console,
        secrets=[api_key] if api_key else [],
    )
    log_config.configure()

    raw = RawInputs(
        api_key=api_key,
        logs_dir=logs_dir,
        service_name=service_name,
        environment=environment,
        port=port,
        site=site,
    )
    workflow = ProvisioningWorkflow(settings=settings, console=console, register_secret=log_config.add_secret)

    try:
        code = workflow.run(raw)
    except ProvisioningError as e:
        logger.debug("Provisioning failed", exc_info=True)
        console.print(f"[bold red][ERROR][/bold red] {escape(str(e))}")
        raise typer.Exit(code=1)

    raise typer.Exit(code=code)

