import pytest

from provisioning_agent.error.exceptions import VerificationError
from provisioning_agent.reporting import Reporter
from provisioning_agent.service import DiagnosticBundle
from provisioning_agent.verification import AgentVerifier, is_auth_failure, status_summary

from conftest import API_KEY

STATUS_OUTPUT = """\
===============
Agent (v7.52.0)
===============
  Status date: 2024-05-17
  Pid: 4242
Logs Agent
==========
  Sending compressed logs in HTTPS
APM Agent
=========
  Receiver (previous minute)
"""


@pytest.fixture
def reporter(profile, runner, console, settings):
    return Reporter(profile, AgentVerifier(profile, runner), console=console, settings=settings)


def output(console):
    return console.file.getvalue()


@pytest.mark.parametrize("text", [
    "API Key invalid, dropping transaction",
    "Error: 403 Forbidden",
    "request was Unauthorized",
    "api_key is INVALID",
])
def test_auth_failure_signatures(text):
    assert is_auth_failure(text)


def test_other_failures_are_not_auth_failures():
    assert not is_auth_failure("connection refused")
    assert not is_auth_failure("")


def test_status_summary_picks_relevant_lines():
    lines = status_summary(STATUS_OUTPUT)
    assert "Agent (v7.52.0)" in lines
    assert "Logs Agent" in lines
    assert "  Pid: 4242" not in lines


def test_status_summary_is_bounded():
    assert len(status_summary("Agent\n" * 50)) == 10


def test_success_prints_redacted_summary(reporter, runner, console, request_model, logs_dir):
    runner.on("datadog-agent", "status", stdout=STATUS_OUTPUT)

    reporter.verify_installation(request_model)

    text = output(console)
    assert "Datadog agent status check passed!" in text
    assert "Agent (v7.52.0)" in text
    assert "API Key: [HIDDEN]" in text
    assert "Service: myapp" in text
    assert f"Logs Directory: {logs_dir}" in text
    assert "Node.js Port: 8080" in text
    assert "https://app.datadoghq.com" in text
    assert API_KEY not in text


def test_auth_failure_prints_troubleshooting_guide(reporter, runner, console, request_model, profile):
    runner.on("datadog-agent", "status", exit_code=1, stdout="API Key invalid")

    with pytest.raises(VerificationError):
        reporter.verify_installation(request_model)

    text = output(console)
    assert "API Key Troubleshooting Guide" in text
    assert "EU1: app.datadoghq.eu → use eu1.datadoghq.com" in text
    assert str(profile.main_config_path) in text
    assert "journalctl" not in text


def test_other_failure_points_at_logs(reporter, runner, console, request_model):
    runner.on("datadog-agent", "status", exit_code=1, stderr="connection refused")

    with pytest.raises(VerificationError):
        reporter.verify_installation(request_model)

    text = output(console)
    assert "connection refused" in text
    assert "sudo journalctl -u datadog-agent -f" in text
    assert "Troubleshooting Guide" not in text


def test_status_output_with_brackets_is_printed_verbatim(reporter, runner, console, request_model):
    runner.on("datadog-agent", "status", exit_code=1, stdout="[ERROR] [bold] something broke")

    with pytest.raises(VerificationError):
        reporter.verify_installation(request_model)

    assert "[ERROR] [bold] something broke" in output(console)


def test_nodejs_instructions(reporter, console, request_model):
    reporter.show_nodejs_instructions(request_model)

    text = output(console)
    assert "service: 'myapp'" in text
    assert "env: 'production'" in text
    assert "DD_VERSION=1.0.0" in text


def test_diagnostics_are_printed(reporter, console):
    bundle = DiagnosticBundle(
        processes=["No datadog processes found"],
        configcheck=["Config check failed"],
        log_tail=["2024-05-17 ERROR | forwarder: 403"],
    )
    reporter.show_diagnostics(bundle)

    text = output(console)
    assert "Troubleshooting Information" in text
    assert "No datadog processes found" in text
    assert "2024-05-17 ERROR | forwarder: 403" in text
