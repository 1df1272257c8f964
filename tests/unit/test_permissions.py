import os
import stat

import pytest

from provisioning_agent.core.state import FailurePolicy
from provisioning_agent.error.exceptions import ConfigurationError, PermissionReconcileError
from provisioning_agent.permissions import POLICY_TABLE, PermissionReconciler


def mode(path):
    return stat.S_IMODE(os.stat(path).st_mode)


@pytest.fixture
def config_tree(profile):
    profile.main_config_path.write_text("api_key: x\n")
    profile.logs_config_dir.mkdir(parents=True)
    profile.logs_config_path.write_text("logs: []\n")
    os.chmod(profile.main_config_path, 0o600)
    return profile


def test_config_tree_modes(config_tree, runner):
    reconciler = PermissionReconciler(config_tree, runner)
    report = reconciler.reconcile_config_tree()

    assert mode(config_tree.config_root) == 0o755
    assert mode(config_tree.logs_config_dir) == 0o755
    assert mode(config_tree.main_config_path) == 0o644
    assert mode(config_tree.logs_config_path) == 0o644
    assert report.get("probe_config_readable").success
    probe = runner.calls_for("test", "-r")[0]
    assert probe.as_user == "dd-agent"
    assert probe.args == ["test", "-r", str(config_tree.main_config_path)]


def test_missing_accounts_are_created_on_linux(config_tree, runner):
    runner.on("id", "dd-agent", exit_code=1)
    runner.on("getent", "group", "dd-agent", exit_code=2)

    PermissionReconciler(config_tree, runner).reconcile_config_tree()

    assert ["useradd", "-r", "-s", "/bin/false", "dd-agent"] in runner.commands()
    assert ["groupadd", "dd-agent"] in runner.commands()
    assert runner.calls_for("useradd")[0].privileged


def test_existing_accounts_are_left_alone(config_tree, runner):
    PermissionReconciler(config_tree, runner).reconcile_config_tree()
    assert runner.calls_for("useradd") == []
    assert runner.calls_for("groupadd") == []


def test_macos_never_creates_accounts(macos_profile, runner):
    macos_profile.main_config_path.write_text("api_key: x\n")
    PermissionReconciler(macos_profile, runner).reconcile_config_tree()
    assert runner.calls_for("id") == []
    assert runner.calls_for("useradd") == []


def test_chown_failure_only_warns(config_tree, runner, monkeypatch):
    def refuse(path, user=None, group=None):
        raise LookupError(f"no such user: {user}")

    monkeypatch.setattr("provisioning_agent.permissions.reconciler.shutil.chown", refuse)
    report = PermissionReconciler(config_tree, runner).reconcile_config_tree()

    assert not report.get("chown_config_tree").success
    assert report.get("probe_config_readable").success


def test_failed_steps_are_logged_with_their_name(config_tree, runner, monkeypatch, caplog):
    def refuse(path, user=None, group=None):
        raise LookupError(f"no such user: {user}")

    monkeypatch.setattr("provisioning_agent.permissions.reconciler.shutil.chown", refuse)
    with caplog.at_level("WARNING", logger="provisioning_agent.permissions"):
        PermissionReconciler(config_tree, runner).reconcile_config_tree()

    assert "chown_config_tree" in [getattr(record, "step", None) for record in caplog.records]


def test_unreadable_config_is_widened(config_tree, runner):
    main = str(config_tree.main_config_path)
    runner.on("test", "-r", main, exit_code=1)
    runner.on("test", "-r", main, exit_code=0)

    report = PermissionReconciler(config_tree, runner).reconcile_config_tree()

    assert mode(config_tree.main_config_path) == 0o666
    assert report.get("widen_main_config").success
    assert report.get("probe_config_readable_widened").success


def test_still_unreadable_config_is_fatal(config_tree, runner):
    runner.on("test", "-r", exit_code=1)

    with pytest.raises(PermissionReconcileError, match="cannot read"):
        PermissionReconciler(config_tree, runner).reconcile_config_tree()


def test_fatal_permission_error_is_a_configuration_error(config_tree, runner):
    runner.on("test", "-r", exit_code=1)
    with pytest.raises(ConfigurationError):
        PermissionReconciler(config_tree, runner).reconcile_config_tree()


def test_policy_can_be_overridden(config_tree, runner):
    runner.on("id", "dd-agent", exit_code=1)
    runner.on("useradd", exit_code=9, stderr="useradd: cannot lock /etc/passwd")
    reconciler = PermissionReconciler(config_tree, runner, policy={"ensure_user": FailurePolicy.FATAL})

    with pytest.raises(PermissionReconcileError):
        reconciler.reconcile_config_tree()
    assert POLICY_TABLE["ensure_user"] == FailurePolicy.WARN


def test_logs_dir_joins_owning_group(profile, runner, logs_dir):
    runner.on("stat", "-c", "%U", exit_code=0, stdout="node\n")
    runner.on("stat", "-c", "%G", exit_code=0, stdout="staff\n")

    PermissionReconciler(profile, runner).reconcile_logs_dir(logs_dir)

    join = runner.calls_for("usermod")[0]
    assert join.args == ["usermod", "-a", "-G", "staff", "dd-agent"]
    assert join.privileged


def test_logs_dir_owned_by_agent_needs_no_group(profile, runner, logs_dir):
    runner.on("stat", "-c", "%U", stdout="dd-agent\n")
    PermissionReconciler(profile, runner).reconcile_logs_dir(logs_dir)
    assert runner.calls_for("usermod") == []


def test_logs_dir_modes_and_ancestors(profile, runner, logs_dir):
    runner.on("stat", stdout="dd-agent\n")
    log_file = logs_dir / "out-0.log"
    log_file.write_text("2024-01-01 started\n")
    os.chmod(log_file, 0o600)
    os.chmod(logs_dir.parent, 0o700)

    report = PermissionReconciler(profile, runner).reconcile_logs_dir(logs_dir)

    assert mode(logs_dir) == 0o755
    assert mode(log_file) == 0o644
    assert mode(logs_dir.parent) & 0o111 == 0o111
    assert report.get("probe_log_file_readable").success


def test_unreadable_log_files_are_widened(profile, runner, logs_dir):
    runner.on("stat", stdout="dd-agent\n")
    first = logs_dir / "error-0.log"
    second = logs_dir / "out-0.log"
    first.write_text("x\n")
    second.write_text("y\n")
    runner.on("test", "-r", str(first), exit_code=1)

    report = PermissionReconciler(profile, runner).reconcile_logs_dir(logs_dir)

    assert mode(first) == 0o666
    assert mode(second) == 0o666
    assert not report.get("probe_log_file_readable").success
    assert report.get("widen_log_files").success


def test_missing_logs_dir_is_skipped(profile, runner, tmp_path):
    report = PermissionReconciler(profile, runner).reconcile_logs_dir(tmp_path / "missing")
    assert report.results == []
    assert runner.calls == []


def test_owner_query_failure_only_warns(profile, runner, logs_dir):
    runner.on("stat", exit_code=1, stderr="stat: cannot stat")
    report = PermissionReconciler(profile, runner).reconcile_logs_dir(logs_dir)
    assert not report.get("query_logs_owner").success
    assert report.get("probe_logs_dir_readable").success
