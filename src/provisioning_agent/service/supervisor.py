"""
Restart of the agent service and bounded polling for health.
"""
import logging
import os
import time
from typing import List, Optional, Set

import psutil
from pydantic import BaseModel, Field

from ..config.configuration import ProvisionerSettings
from ..error.exceptions import ErrorContext, HealthCheckTimeout
from ..utils.platform_manager import PlatformProfile
from ..utils.subprocess_utils import CommandRunner
from ..verification.verifier import AgentVerifier

logger = logging.getLogger(__name__)

PROGRESS_EVERY = 5
CONFIGCHECK_LINES = 10
LOG_TAIL_LINES = 5


class Clock:
    """Real time source; tests substitute a fake."""

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)


class DiagnosticBundle(BaseModel):
    """What the operator sees when the agent never became healthy."""
    processes: List[str] = Field(default_factory=list)
    configcheck: List[str] = Field(default_factory=list)
    log_tail: List[str] = Field(default_factory=list)


def _own_lineage() -> Set[int]:
    pids = {os.getpid()}
    try:
        pids.update(parent.pid for parent in psutil.Process().parents())
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        pass
    return pids


def find_agent_processes(binary: str) -> List[psutil.Process]:
    """Processes whose name or command line mentions the agent binary, excluding this process and its ancestors."""
    own = _own_lineage()
    matches = []
    for proc in psutil.process_iter(["pid", "name", "cmdline"]):
        if proc.pid in own:
            continue
        try:
            cmdline = " ".join(proc.info.get("cmdline") or [])
            if binary in (proc.info.get("name") or "") or binary in cmdline:
                matches.append(proc)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            continue
    return matches


def describe_process(proc: psutil.Process) -> str:
    try:
        cmdline = " ".join(proc.cmdline()) or proc.name()
        return f"{proc.pid} {proc.username()} {cmdline}"
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return f"{proc.pid} <unavailable>"


class ServiceSupervisor:
    """Stops, starts and waits for the agent service."""

    def __init__(
        self,
        profile: PlatformProfile,
        runner: CommandRunner,
        settings: Optional[ProvisionerSettings] = None,
        verifier: Optional[AgentVerifier] = None,
        clock: Optional[Clock] = None,
    ):
        self.profile = profile
        self.runner = runner
        self.settings = settings or ProvisionerSettings()
        self.verifier = verifier or AgentVerifier(profile, runner)
        self.clock = clock or Clock()

    def stop(self) -> None:
        """Graceful stop, then terminate and kill leftover agent processes."""
        logger.info("Stopping any existing Datadog agent...")
        result = self.runner.run([self.profile.agent_binary, "stop"], privileged=True)
        if not result.ok:
            logger.debug(f"Graceful stop returned {result.exit_code}")

        procs = find_agent_processes(self.profile.agent_binary)
        if procs:
            logger.info(f"Force stopping {len(procs)} remaining agent process(es)")
            for proc in procs:
                try:
                    proc.terminate()
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    pass
            _, alive = psutil.wait_procs(procs, timeout=self.settings.process_kill_timeout)
            for proc in alive:
                try:
                    proc.kill()
                except (psutil.NoSuchProcess, psutil.AccessDenied):
                    pass

        self.clock.sleep(self.settings.stop_settle_seconds)

    def start(self) -> str:
        """
        Start the agent, falling back from the service manager to a direct,
        then a detached start.

        Returns:
            Name of the mechanism that was used
        """
        logger.info("Starting Datadog agent...")
        binary = self.profile.agent_binary

        if self.runner.which(self.profile.service_manager_command):
            logger.info(f"Using {self.profile.service_manager_command} to start agent...")
            if self.runner.run(self.profile.start_command, privileged=True).ok:
                logger.info(f"Agent started via {self.profile.service_manager_command}")
                return "service_manager"
            logger.info(f"{self.profile.service_manager_command} failed, trying direct start...")

        direct = self.runner.run([binary, "start"], privileged=True, timeout=self.settings.direct_start_timeout)
        if direct.ok:
            return "direct"

        if direct.timed_out:
            logger.info("Direct start timed out, trying background start...")
        else:
            logger.info(f"Direct start failed with exit code {direct.exit_code}, trying background start...")
        self.runner.spawn_detached([binary, "start"], privileged=True)
        return "background"

    def wait_until_healthy(self) -> int:
        """
        Poll the agent status until it succeeds.

        Returns:
            The attempt number that succeeded

        Raises:
            HealthCheckTimeout: If every attempt failed
        """
        self.clock.sleep(self.settings.startup_grace_seconds)
        logger.info("Waiting for agent to start...")

        max_attempts = self.settings.health_poll_attempts
        for attempt in range(1, max_attempts + 1):
            if self.verifier.is_healthy():
                logger.info("Datadog agent is running!")
                return attempt
            self.clock.sleep(self.settings.health_poll_interval)
            if attempt % PROGRESS_EVERY == 0:
                logger.info(f"Still waiting... (attempt {attempt}/{max_attempts})")

        logger.error(f"Failed to start Datadog agent after {max_attempts} attempts!")
        raise HealthCheckTimeout(
            f"Failed to start Datadog agent after {max_attempts} attempts!",
            diagnostics=self.collect_diagnostics(),
            context=ErrorContext(component="ServiceSupervisor", operation="wait_until_healthy"),
            details={"attempts": max_attempts},
        )

    def restart_and_verify(self) -> int:
        logger.info("Starting Datadog agent service...")
        self.stop()
        self.start()
        return self.wait_until_healthy()

    def collect_diagnostics(self) -> DiagnosticBundle:
        binary = self.profile.agent_binary
        processes = [describe_process(p) for p in find_agent_processes(binary)]

        configcheck = self.runner.run([binary, "configcheck"], privileged=True, timeout=30)
        configcheck_lines = configcheck.output.splitlines()[:CONFIGCHECK_LINES] if configcheck.ok else []

        logs = self.runner.run([binary, "logs"], privileged=True, timeout=30)
        log_lines = logs.output.splitlines()[-LOG_TAIL_LINES:] if logs.ok else []

        return DiagnosticBundle(
            processes=processes or ["No datadog processes found"],
            configcheck=configcheck_lines or ["Config check failed"],
            log_tail=log_lines or ["Could not retrieve logs"],
        )
