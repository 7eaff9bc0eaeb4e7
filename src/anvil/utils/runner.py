#!/usr/bin/env python3
"""
External command execution for Anvil.

Commands run synchronously with a bounded timeout. A non-zero exit status is
reported in the result, never raised; only a command that cannot be started
or that outlives its timeout raises.
"""

import os
import re
import signal
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from ..errors import CommandStartError, CommandTimeout
from .logger import get_logger

# Network operations (clone, push) can legitimately take minutes.
DEFAULT_TIMEOUT = 300

_CREDENTIALS_RE = re.compile(r'(://)[^/@\s]+@')

logger = get_logger(__name__)


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    command: List[str]
    exit_code: int
    stdout: str
    stderr: str

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, stripped."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)


def mask_credentials(text: str) -> str:
    """Hide userinfo embedded in URLs (tokens in clone URLs)."""
    return _CREDENTIALS_RE.sub(r'\1***@', text)


def _kill_process_tree(process: subprocess.Popen):
    try:
        if os.name == 'posix':
            os.killpg(process.pid, signal.SIGKILL)
        else:
            process.kill()
    except (ProcessLookupError, PermissionError):
        process.kill()


def run_command(
    command: str,
    args: Sequence[str] = (),
    timeout: float = DEFAULT_TIMEOUT,
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
) -> CommandResult:
    """
    Run a command and capture its exit code and output.

    Args:
        command: Executable name or path
        args: Arguments passed to the executable
        timeout: Seconds before the process tree is killed
        cwd: Working directory for the child process only
        env: Extra environment variables merged over ``os.environ``

    Returns:
        CommandResult, whatever the exit code

    Raises:
        CommandStartError: the executable could not be started
        CommandTimeout: the timeout elapsed
    """
    cmd = [command] + list(args)
    display = mask_credentials(" ".join(cmd))

    child_env = os.environ.copy()
    if env:
        child_env.update(env)

    logger.debug(f"Running: {display} (cwd={cwd or os.getcwd()})")

    try:
        process = subprocess.Popen(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            env=child_env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=(os.name == 'posix'),
        )
    except OSError as e:
        raise CommandStartError(f"Failed to start '{command}': {e}", operation=display)

    try:
        stdout, stderr = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_process_tree(process)
        process.communicate()
        raise CommandTimeout(f"Command timed out after {timeout}s: {display}", operation=display)

    result = CommandResult(cmd, process.returncode, stdout or "", stderr or "")
    if not result.succeeded:
        logger.debug(f"Exit {result.exit_code}: {display}: {mask_credentials(result.stderr.strip())}")
    return result


class CommandRunner:
    """Runs commands with a fixed working directory, timeout and environment."""

    def __init__(
        self,
        cwd: Optional[Union[str, Path]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        env: Optional[Dict[str, str]] = None,
    ):
        self.cwd = cwd
        self.timeout = timeout
        self.env = dict(env or {})

    def run(
        self,
        command: str,
        args: Sequence[str] = (),
        timeout: Optional[float] = None,
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> CommandResult:
        merged_env = dict(self.env)
        if env:
            merged_env.update(env)
        return run_command(
            command,
            args,
            timeout=timeout if timeout is not None else self.timeout,
            cwd=cwd if cwd is not None else self.cwd,
            env=merged_env or None,
        )
