"""
Secure subprocess execution utilities to prevent command injection.

Commands are always executed as argument lists; nothing is passed through a
shell, and environment values handed to a child are never logged.
"""
import logging
import os
import shlex
import shutil
import subprocess
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.state import CommandResult

logger = logging.getLogger(__name__)

TIMEOUT_EXIT_CODE = 124


def secure_join_args(args: Sequence[str]) -> str:
    """
    Join command arguments for display.

    Args:
        args: List of command arguments

    Returns:
        Joined command as string
    """
    return ' '.join(shlex.quote(str(arg)) for arg in args)


def secure_shell_execute(
    command: Sequence[str],
    env: Optional[Dict[str, str]] = None,
    cwd: Optional[str] = None,
    timeout: Optional[float] = None
) -> Tuple[int, str, str]:
    """
    Execute a command securely.

    Args:
        command: Command to execute as a list of arguments
        env: Extra environment variables for the child only
        cwd: Working directory
        timeout: Command timeout in seconds

    Returns:
        Tuple of (exit_code, stdout, stderr)
    """
    cmd_args = [str(arg) for arg in command]
    cmd_str = secure_join_args(cmd_args)

    logger.debug(f"Executing command: {cmd_str}")

    full_env = os.environ.copy()
    if env:
        full_env.update(env)

    try:
        result = subprocess.run(
            cmd_args,
            env=full_env,
            cwd=cwd,
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except subprocess.TimeoutExpired:
        logger.error(f"Command timed out after {timeout} seconds: {cmd_str}")
        return TIMEOUT_EXIT_CODE, "", f"Command timed out after {timeout} seconds"
    except OSError as e:
        logger.error(f"Command execution failed: {e}")
        return 127, "", str(e)

    if result.returncode != 0:
        logger.debug(f"Command exited with non-zero code {result.returncode}: {cmd_str}")
        logger.debug(f"Command stderr: {result.stderr}")

    return result.returncode, result.stdout, result.stderr


class CommandRunner:
    """Runs host commands, elevating through ``sudo -n`` when not already root."""

    def __init__(self, use_sudo: Optional[bool] = None):
        if use_sudo is None:
            use_sudo = hasattr(os, "geteuid") and os.geteuid() != 0
        self.use_sudo = use_sudo

    def build_command(
        self,
        args: Sequence[str],
        privileged: bool = False,
        as_user: Optional[str] = None,
    ) -> List[str]:
        """Prefix ``args`` for privilege elevation or impersonation."""
        args = [str(arg) for arg in args]
        if as_user:
            return ["sudo", "-n", "-u", as_user] + args
        if privileged and self.use_sudo:
            return ["sudo", "-n"] + args
        return args

    def run(
        self,
        args: Sequence[str],
        privileged: bool = False,
        as_user: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        exit_code, stdout, stderr = secure_shell_execute(
            self.build_command(args, privileged=privileged, as_user=as_user),
            env=env,
            timeout=timeout,
        )
        return CommandResult(exit_code=exit_code, stdout=stdout, stderr=stderr)

    def spawn_detached(self, args: Sequence[str], privileged: bool = False) -> None:
        """Start a command in its own session without waiting for it."""
        cmd_args = self.build_command(args, privileged=privileged)
        logger.debug(f"Spawning detached command: {secure_join_args(cmd_args)}")
        subprocess.Popen(
            cmd_args,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )

    def which(self, command: str) -> Optional[str]:
        return shutil.which(command)
