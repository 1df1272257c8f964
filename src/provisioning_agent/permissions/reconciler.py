"""
Ownership and permission reconciliation for the agent's files.

Each step returns a :class:`StepResult`; :data:`POLICY_TABLE` decides whether
a failure is fatal, only warned about, or triggers a documented fallback.
All steps are idempotent and safe to repeat.
"""
import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from ..core.state import FailurePolicy, StepResult
from ..error.exceptions import ErrorContext, PermissionReconcileError
from ..utils.platform_manager import PlatformProfile
from ..utils.subprocess_utils import CommandRunner

logger = logging.getLogger(__name__)

DIR_MODE = 0o755
FILE_MODE = 0o644
WIDE_FILE_MODE = 0o666
EXEC_BITS = stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH

POLICY_TABLE: Dict[str, FailurePolicy] = {
    # configuration tree
    "ensure_user": FailurePolicy.WARN,
    "ensure_group": FailurePolicy.WARN,
    "chown_config_tree": FailurePolicy.WARN,
    "chmod_config_tree": FailurePolicy.WARN,
    "chmod_main_config": FailurePolicy.WARN,
    "probe_config_readable": FailurePolicy.FALLBACK,
    "probe_config_readable_widened": FailurePolicy.FATAL,
    # log directory
    "query_logs_owner": FailurePolicy.WARN,
    "join_logs_group": FailurePolicy.WARN,
    "chmod_logs_tree": FailurePolicy.WARN,
    "traverse_ancestors": FailurePolicy.WARN,
    "probe_logs_dir_readable": FailurePolicy.FALLBACK,
    "probe_log_file_readable": FailurePolicy.FALLBACK,
    # fallbacks
    "widen_main_config": FailurePolicy.WARN,
    "widen_logs_dir": FailurePolicy.WARN,
    "widen_log_files": FailurePolicy.WARN,
}


class PermissionReport(BaseModel):
    """Every step result of a reconciliation pass, in order."""
    results: List[StepResult] = Field(default_factory=list)

    def add(self, result: StepResult) -> None:
        self.results.append(result)

    @property
    def failures(self) -> List[StepResult]:
        return [r for r in self.results if not r.success]

    def get(self, step: str) -> Optional[StepResult]:
        for result in reversed(self.results):
            if result.step == step:
                return result
        return None


class PermissionReconciler:
    """Makes the configuration tree and log directory readable by the agent account."""

    def __init__(
        self,
        profile: PlatformProfile,
        runner: CommandRunner,
        policy: Optional[Dict[str, FailurePolicy]] = None,
    ):
        self.profile = profile
        self.runner = runner
        self.policy = dict(POLICY_TABLE, **(policy or {}))
        self.report = PermissionReport()

    # -- policy ------------------------------------------------------------

    def _apply(self, result: StepResult, fallback: Optional[Callable[[], None]] = None) -> StepResult:
        self.report.add(result)
        if result.success:
            logger.debug(f"{result.step}: ok", extra={"step": result.step})
            return result

        policy = self.policy.get(result.step, FailurePolicy.WARN)
        if policy == FailurePolicy.FATAL:
            raise PermissionReconcileError(
                result.message or f"Permission step {result.step} failed",
                context=ErrorContext(component="PermissionReconciler", operation=result.step),
                details=result.details,
            )
        if policy == FailurePolicy.FALLBACK and fallback is not None:
            logger.warning(f"{result.message}; applying fallback", extra={"step": result.step})
            fallback()
        else:
            logger.warning(result.message or f"Permission step {result.step} failed", extra={"step": result.step})
        return result

    # -- configuration tree -----------------------------------------------

    def reconcile_config_tree(self) -> PermissionReport:
        """
        Give the agent account ownership of, and read access to, its configuration.

        Raises:
            PermissionReconcileError: If the agent account still cannot read
                ``datadog.yaml`` after widening its mode
        """
        logger.info("Fixing configuration file permissions...")
        root = self.profile.config_root
        main = self.profile.main_config_path

        if self.profile.can_create_accounts:
            self._apply(self._ensure_user())
            self._apply(self._ensure_group())

        self._apply(self._chown_tree("chown_config_tree", root))
        self._apply(self._chmod_tree("chmod_config_tree", root, DIR_MODE, FILE_MODE))
        self._apply(self._chmod("chmod_main_config", main, FILE_MODE))

        logger.info("Verifying configuration readability...")

        def widen_and_reprobe():
            self._apply(self._chmod("widen_main_config", main, WIDE_FILE_MODE))
            self._apply(self._probe("probe_config_readable_widened", main))

        self._apply(self._probe("probe_config_readable", main), fallback=widen_and_reprobe)
        logger.info("Agent can read configuration file")
        return self.report

    def _ensure_user(self) -> StepResult:
        user = self.profile.agent_user
        if self.runner.run(["id", user]).ok:
            return StepResult(step="ensure_user", success=True, message=f"user {user} exists")
        logger.info(f"Creating {user} user...")
        return StepResult.from_command(
            "ensure_user",
            self.runner.run(["useradd", "-r", "-s", "/bin/false", user], privileged=True),
            message=f"Could not create user {user}",
        )

    def _ensure_group(self) -> StepResult:
        group = self.profile.agent_group
        if self.runner.run(["getent", "group", group]).ok:
            return StepResult(step="ensure_group", success=True, message=f"group {group} exists")
        logger.info(f"Creating {group} group...")
        return StepResult.from_command(
            "ensure_group",
            self.runner.run(["groupadd", group], privileged=True),
            message=f"Could not create group {group}",
        )

    def _chown_tree(self, step: str, root: Path) -> StepResult:
        user, group = self.profile.agent_user, self.profile.agent_group
        try:
            shutil.chown(root, user, group)
            for dirpath, dirnames, filenames in os.walk(root):
                for name in dirnames + filenames:
                    shutil.chown(os.path.join(dirpath, name), user, group)
        except (LookupError, OSError) as e:
            return StepResult(
                step=step,
                success=False,
                message=f"Could not set ownership to {user}:{group} ({e})",
            )
        return StepResult(step=step, success=True, message=f"Set ownership to {user}:{group}")

    # -- log directory -----------------------------------------------------

    def reconcile_logs_dir(self, logs_dir: Path) -> PermissionReport:
        """Make ``logs_dir`` traversable and its log files readable by the agent account."""
        logger.info("Fixing log directory permissions for Datadog agent...")
        if not logs_dir.is_dir():
            logger.warning(f"Logs directory does not exist: {logs_dir}")
            return self.report

        self._join_owning_group(logs_dir)
        self._apply(self._chmod_tree("chmod_logs_tree", logs_dir, DIR_MODE, FILE_MODE))
        self._apply(self._traverse_ancestors(logs_dir))

        logger.info("Testing if agent can access log directory...")
        self._apply(
            self._probe("probe_logs_dir_readable", logs_dir),
            fallback=lambda: self._apply(self._chmod("widen_logs_dir", logs_dir, DIR_MODE)),
        )

        log_files = sorted(logs_dir.rglob("*.log"))
        if log_files:
            logger.info("Testing if agent can read log files...")
            self._apply(
                self._probe("probe_log_file_readable", log_files[0]),
                fallback=lambda: self._widen_log_files(logs_dir),
            )

        logger.info("Log directory permissions fixed!")
        return self.report

    def _join_owning_group(self, logs_dir: Path) -> None:
        owner = self.runner.run(self.profile.owner_query_command + [str(logs_dir)], privileged=True)
        if not owner.ok:
            self._apply(StepResult.from_command("query_logs_owner", owner, "Could not determine logs directory owner"))
            return
        owner_name = owner.stdout.strip()
        logger.info(f"Log directory owner: {owner_name}")
        if owner_name == self.profile.agent_user:
            return

        group = self.runner.run(self.profile.group_query_command + [str(logs_dir)], privileged=True)
        if not group.ok:
            self._apply(StepResult.from_command("query_logs_owner", group, "Could not determine logs directory group"))
            return
        group_name = group.stdout.strip()
        logger.info(f"Adding {self.profile.agent_user} to group: {group_name}")
        self._apply(
            StepResult.from_command(
                "join_logs_group",
                self.runner.run(self.profile.membership_command(group_name), privileged=True),
                message=f"Could not add {self.profile.agent_user} to group {group_name}",
            )
        )

    def _traverse_ancestors(self, path: Path) -> StepResult:
        failed = []
        current = path
        while str(current) not in ("/", "."):
            try:
                mode = current.stat().st_mode
                if mode & EXEC_BITS != EXEC_BITS:
                    os.chmod(current, stat.S_IMODE(mode) | EXEC_BITS)
            except OSError:
                failed.append(str(current))
            current = current.parent
        if failed:
            return StepResult(
                step="traverse_ancestors",
                success=False,
                message=f"Could not set execute permissions on: {', '.join(failed)}",
                details={"paths": failed},
            )
        return StepResult(step="traverse_ancestors", success=True)

    def _widen_log_files(self, logs_dir: Path) -> None:
        logger.warning("Agent cannot read log files, setting more permissive permissions...")
        for log_file in logs_dir.glob("*.log"):
            self._apply(self._chmod("widen_log_files", log_file, WIDE_FILE_MODE))

    # -- primitives --------------------------------------------------------

    def _probe(self, step: str, path: Path) -> StepResult:
        """Read probe impersonating the agent account."""
        result = self.runner.run(["test", "-r", str(path)], as_user=self.profile.agent_user)
        return StepResult.from_command(
            step,
            result,
            message=f"Agent cannot read {path} - permission issue detected",
        )

    def _chmod(self, step: str, path: Path, mode: int) -> StepResult:
        try:
            os.chmod(path, mode)
        except OSError as e:
            return StepResult(step=step, success=False, message=f"Could not set {path} permissions to {mode:o} ({e})")
        return StepResult(step=step, success=True, message=f"Set {path} permissions to {mode:o}")

    def _chmod_tree(self, step: str, root: Path, dir_mode: int, file_mode: int) -> StepResult:
        failed = []
        for dirpath, dirnames, filenames in os.walk(root):
            targets = [(dirpath, dir_mode)]
            targets += [(os.path.join(dirpath, d), dir_mode) for d in dirnames]
            targets += [(os.path.join(dirpath, f), file_mode) for f in filenames]
            for target, mode in targets:
                try:
                    os.chmod(target, mode)
                except OSError:
                    failed.append(target)
        if failed:
            return StepResult(
                step=step,
                success=False,
                message=f"Could not set permissions under {root}",
                details={"paths": sorted(set(failed))},
            )
        return StepResult(step=step, success=True, message=f"Set permissions under {root}")
