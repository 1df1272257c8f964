"""Pytest configuration and fixtures."""
import io
from typing import Dict, List, NamedTuple, Optional

import pytest
import requests
from rich.console import Console

from provisioning_agent.config.configuration import ProvisionerSettings
from provisioning_agent.core.request import ProvisioningRequest
from provisioning_agent.core.state import CommandResult
from provisioning_agent.error.exceptions import ValidationError
from provisioning_agent.service import supervisor
from provisioning_agent.utils.platform_manager import PlatformManager, build_platform_profile

API_KEY = "A" * 32


class Call(NamedTuple):
    args: List[str]
    privileged: bool
    as_user: Optional[str]
    env: Optional[Dict[str, str]]
    timeout: Optional[float]


class FakeRunner:
    """
    Scripted stand-in for CommandRunner.

    Results are keyed by argument prefix; the longest matching prefix wins.
    Queued results are consumed in order and the last one repeats. Commands
    with no script succeed with empty output.
    """

    def __init__(self, available=None):
        self.calls: List[Call] = []
        self.spawned: List[List[str]] = []
        self.available = dict(available if available is not None else {"systemctl": "/usr/bin/systemctl"})
        self._scripts: Dict[tuple, List[CommandResult]] = {}

    def on(self, *prefix, exit_code=0, stdout="", stderr=""):
        self._scripts.setdefault(tuple(str(p) for p in prefix), []).append(
            CommandResult(exit_code=exit_code, stdout=stdout, stderr=stderr)
        )
        return self

    def run(self, args, privileged=False, as_user=None, env=None, timeout=None):
        args = [str(a) for a in args]
        self.calls.append(Call(args, privileged, as_user, env, timeout))
        best = None
        for prefix in self._scripts:
            if tuple(args[:len(prefix)]) == prefix and (best is None or len(prefix) > len(best)):
                best = prefix
        if best is None:
            return CommandResult()
        queue = self._scripts[best]
        return queue.pop(0) if len(queue) > 1 else queue[0]

    def spawn_detached(self, args, privileged=False):
        self.spawned.append([str(a) for a in args])

    def which(self, command):
        return self.available.get(command)

    def commands(self) -> List[List[str]]:
        return [call.args for call in self.calls]

    def calls_for(self, *prefix) -> List[Call]:
        return [call for call in self.calls if tuple(call.args[:len(prefix)]) == prefix]


class FakeClock:
    def __init__(self):
        self.sleeps: List[float] = []

    def sleep(self, seconds):
        self.sleeps.append(seconds)


class FakePrompter:
    """Scripted answers; running out behaves like end of input."""

    def __init__(self, answers=None, confirms=None):
        self.answers = list(answers or [])
        self.confirms = list(confirms or [])
        self.questions: List[str] = []
        self.notes: List[str] = []

    def ask(self, message, default=None, password=False):
        self.questions.append(message)
        if not self.answers:
            raise ValidationError(f"No input available for: {message}")
        answer = self.answers.pop(0)
        return default if answer is None else answer

    def confirm(self, message, default=False):
        self.questions.append(message)
        if not self.confirms:
            raise ValidationError(f"No input available for: {message}")
        return self.confirms.pop(0)

    def note(self, message):
        self.notes.append(message)


class FakeResponse:
    def __init__(self, content=b"#!/bin/bash\necho installing\n", status_code=200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response or FakeResponse()
        self.error = error
        self.requests = []

    def get(self, url, timeout=None):
        self.requests.append((url, timeout))
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return ProvisionerSettings(
        require_root=False,
        health_poll_attempts=3,
        health_poll_interval=0.5,
        startup_grace_seconds=1.0,
        stop_settle_seconds=0.5,
    )


@pytest.fixture
def config_root(tmp_path):
    root = tmp_path / "etc" / "datadog-agent"
    root.mkdir(parents=True)
    return root


@pytest.fixture
def profile(config_root):
    """Linux profile whose configuration root lives under tmp_path."""
    return build_platform_profile("Linux", config_root=config_root)


@pytest.fixture
def macos_profile(config_root):
    return build_platform_profile("Darwin", config_root=config_root)


@pytest.fixture
def platform(config_root):
    return PlatformManager(system="Linux", config_root=config_root)


@pytest.fixture
def logs_dir(tmp_path):
    path = tmp_path / "var" / "log" / "myapp"
    path.mkdir(parents=True)
    return path


@pytest.fixture
def request_model(logs_dir):
    return ProvisioningRequest(
        api_key=API_KEY,
        site="datadoghq.com",
        service_name="myapp",
        environment="production",
        logs_dir=str(logs_dir),
        port=8080,
    )


@pytest.fixture
def console():
    return Console(file=io.StringIO(), width=200, color_system=None)


@pytest.fixture
def no_agent_processes(monkeypatch):
    """Keep the process scan away from the real process table."""
    monkeypatch.setattr(supervisor, "find_agent_processes", lambda binary: [])
