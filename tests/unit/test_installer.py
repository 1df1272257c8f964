import os
import stat
from pathlib import Path

import pytest
import requests

from provisioning_agent.error.exceptions import InstallError
from provisioning_agent.installer import (
    AgentInstaller,
    InstallDecision,
    InstallState,
    secure_temp_file,
    select_temp_dir,
)

from conftest import API_KEY, FakePrompter, FakeResponse, FakeRunner, FakeSession


class RecordingRunner(FakeRunner):
    """Captures the bootstrap script while it still exists."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.script_seen = None
        self.script_mode = None

    def run(self, args, **kwargs):
        if args and args[0] == "bash":
            path = args[1]
            self.script_seen = Path(path).read_bytes()
            self.script_mode = stat.S_IMODE(os.stat(path).st_mode)
        return super().run(args, **kwargs)


def make_installer(profile, runner, settings, tmp_path, session=None):
    scratch = tmp_path / "scratch"
    scratch.mkdir(exist_ok=True)
    return AgentInstaller(
        profile,
        runner,
        settings=settings,
        session=session or FakeSession(),
        temp_dirs=[str(scratch)],
    )


def test_absent_agent_is_installed(profile, runner, settings, tmp_path):
    installer = make_installer(profile, runner, settings, tmp_path)
    assert installer.is_installed() == InstallState.ABSENT
    assert installer.decide(FakePrompter(), non_interactive=False) == InstallDecision.INSTALL


def test_healthy_agent_reconfigures_non_interactively(profile, runner, settings, tmp_path):
    runner.available["datadog-agent"] = "/usr/bin/datadog-agent"
    installer = make_installer(profile, runner, settings, tmp_path)
    assert installer.decide(FakePrompter(), non_interactive=True) == InstallDecision.RECONFIGURE


def test_healthy_agent_asks_before_reconfiguring(profile, runner, settings, tmp_path):
    runner.available["datadog-agent"] = "/usr/bin/datadog-agent"
    installer = make_installer(profile, runner, settings, tmp_path)

    assert installer.decide(FakePrompter(confirms=[True]), non_interactive=False) == InstallDecision.RECONFIGURE
    assert installer.decide(FakePrompter(confirms=[False]), non_interactive=False) == InstallDecision.ABORT


def test_unhealthy_agent_is_reconfigured_without_asking(profile, runner, settings, tmp_path):
    runner.available["datadog-agent"] = "/usr/bin/datadog-agent"
    runner.on("datadog-agent", "status", exit_code=1, stderr="not running")
    prompter = FakePrompter()
    installer = make_installer(profile, runner, settings, tmp_path)

    assert installer.decide(prompter, non_interactive=False) == InstallDecision.RECONFIGURE
    assert prompter.questions == []


def test_install_injects_credentials_through_environment(profile, settings, tmp_path, request_model):
    runner = RecordingRunner()
    session = FakeSession(FakeResponse(content=b"#!/bin/bash\necho ok\n"))
    installer = make_installer(profile, runner, settings, tmp_path, session=session)

    installer.install(request_model)

    call = runner.calls_for("bash")[0]
    assert call.env == {"DD_API_KEY": API_KEY, "DD_SITE": "datadoghq.com", "DD_ENV": "production"}
    assert API_KEY not in " ".join(call.args)
    assert runner.script_seen == b"#!/bin/bash\necho ok\n"
    assert runner.script_mode == 0o600
    assert session.requests == [(profile.install_script_url, settings.download_timeout)]
    # temporary script is removed afterwards
    assert list((tmp_path / "scratch").iterdir()) == []


def test_failed_install_is_fatal_and_cleans_up(profile, runner, settings, tmp_path, request_model):
    runner.on("bash", exit_code=1, stderr="boom")
    installer = make_installer(profile, runner, settings, tmp_path)

    with pytest.raises(InstallError, match="Failed to install"):
        installer.install(request_model)
    assert list((tmp_path / "scratch").iterdir()) == []


def test_download_error_is_fatal(profile, runner, settings, tmp_path, request_model):
    session = FakeSession(error=requests.ConnectionError("no route"))
    installer = make_installer(profile, runner, settings, tmp_path, session=session)

    with pytest.raises(InstallError, match="Failed to download"):
        installer.install(request_model)
    assert runner.calls_for("bash") == []
    assert list((tmp_path / "scratch").iterdir()) == []


def test_http_error_is_fatal(profile, runner, settings, tmp_path, request_model):
    session = FakeSession(FakeResponse(status_code=404))
    installer = make_installer(profile, runner, settings, tmp_path, session=session)

    with pytest.raises(InstallError, match="Failed to download"):
        installer.install(request_model)


def test_empty_script_is_fatal(profile, runner, settings, tmp_path, request_model):
    session = FakeSession(FakeResponse(content=b"  \n"))
    installer = make_installer(profile, runner, settings, tmp_path, session=session)

    with pytest.raises(InstallError, match="empty"):
        installer.install(request_model)
    assert runner.calls_for("bash") == []


def test_select_temp_dir_skips_unusable_candidates(tmp_path):
    assert select_temp_dir(["", str(tmp_path / "missing"), str(tmp_path)]) == str(tmp_path)


def test_select_temp_dir_fails_without_candidates(tmp_path):
    with pytest.raises(InstallError, match="temporary"):
        select_temp_dir([str(tmp_path / "missing")])


def test_secure_temp_file_is_removed_on_error(tmp_path):
    with pytest.raises(RuntimeError):
        with secure_temp_file([str(tmp_path)]) as path:
            assert path.exists()
            assert path.name.startswith("datadog_install.")
            raise RuntimeError("interrupted")
    assert not path.exists()
