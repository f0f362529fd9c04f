"""Standardized async subprocess utilities for command execution."""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

# Keeps git's messages in English so stderr signatures stay stable, and makes
# credential prompts fail fast instead of blocking on a terminal we don't have.
GIT_ENV_OVERRIDES = {
    "LC_ALL": "C",
    "LANGUAGE": "C",
    "GIT_TERMINAL_PROMPT": "0",
}


class SubprocessError(Exception):
    """Exception raised when a subprocess command fails or times out."""

    def __init__(
        self,
        cmd: str,
        returncode: int,
        stderr: str,
        stdout: str = "",
        cwd: Optional[Path] = None,
        timed_out: bool = False,
    ):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        self.stdout = stdout
        self.cwd = cwd
        self.timed_out = timed_out

        where = f" (in {cwd})" if cwd else ""
        if timed_out:
            message = f"Command timed out{where}: {cmd}"
        else:
            message = f"Command failed with exit code {returncode}{where}: {cmd}\nstderr: {stderr}"
        super().__init__(message)


@dataclass
class CommandResult:
    """Outcome of a finished subprocess."""
    args: List[str]
    returncode: int
    stdout: str
    stderr: str


async def run_command(
    cmd: Sequence[str],
    *,
    cwd: Optional[Path] = None,
    check: bool = True,
    timeout: Optional[float] = None,
    env: Optional[Dict[str, str]] = None,
) -> CommandResult:
    """
    Run a command with standardized error handling.

    Args:
        cmd: Command argument vector
        cwd: Working directory
        check: Raise exception on non-zero exit
        timeout: Timeout in seconds (None waits forever)
        env: Environment variables (defaults to the current environment)

    Returns:
        CommandResult with stdout, stderr, returncode

    Raises:
        SubprocessError: If check=True and command fails, or on timeout
    """
    args = [str(part) for part in cmd]
    cmd_str = " ".join(args)

    process = await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd) if cwd else None,
        env=env,
    )

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError:
        logger.error(f"Command timed out after {timeout}s: {cmd_str}")
        process.kill()
        # Reap the child so it doesn't linger as a zombie
        await process.wait()
        raise SubprocessError(
            cmd=cmd_str, returncode=-1, stderr="", cwd=cwd, timed_out=True
        )

    result = CommandResult(
        args=args,
        returncode=process.returncode,
        stdout=stdout_bytes.decode(errors="replace"),
        stderr=stderr_bytes.decode(errors="replace"),
    )

    if check and result.returncode != 0:
        raise SubprocessError(
            cmd=cmd_str,
            returncode=result.returncode,
            stderr=result.stderr,
            stdout=result.stdout,
            cwd=cwd,
        )

    return result


def git_environment() -> Dict[str, str]:
    """Environment for git subprocesses."""
    env = os.environ.copy()
    env.update(GIT_ENV_OVERRIDES)
    return env


async def run_git_command(
    args: List[str],
    *,
    cwd: Optional[Path] = None,
    check: bool = True,
    timeout: Optional[float] = 30,
) -> CommandResult:
    """
    Run a git command with standardized error handling.

    Args:
        args: Git command arguments (without 'git' prefix)
        cwd: Working directory (git repo)
        check: Raise exception on non-zero exit
        timeout: Timeout in seconds (default: 30)

    Raises:
        SubprocessError: If check=True and command fails, or on timeout
    """
    try:
        return await run_command(
            ["git"] + list(args),
            cwd=cwd,
            check=check,
            timeout=timeout,
            env=git_environment(),
        )
    except SubprocessError:
        logger.debug(f"Git command failed in {cwd}: git {' '.join(args)}")
        raise


async def run_with_retry(
    args: List[str],
    *,
    cwd: Optional[Path] = None,
    timeout: Optional[float] = None,
    backoff: Sequence[float] = (0.25, 1.0),
    retry_on: Optional[Callable[[SubprocessError], bool]] = None,
) -> CommandResult:
    """
    Run a git command, retrying transient failures.

    One attempt is made per backoff entry plus the initial one. Failures that
    ``retry_on`` rejects are raised immediately.

    Args:
        args: Git command arguments (without 'git' prefix)
        cwd: Working directory
        timeout: Timeout per attempt
        backoff: Delays in seconds before each retry
        retry_on: Predicate deciding whether a failure is worth retrying

    Raises:
        SubprocessError: The last failure once retries are exhausted
    """
    delays = list(backoff)
    attempts = len(delays) + 1

    for attempt in range(attempts):
        try:
            return await run_git_command(args, cwd=cwd, check=True, timeout=timeout)
        except SubprocessError as e:
            if retry_on is not None and not retry_on(e):
                raise
            if attempt == attempts - 1:
                logger.error(f"git {' '.join(args)} failed after {attempts} attempts")
                raise
            delay = delays[attempt]
            logger.warning(
                f"git {' '.join(args)} failed (attempt {attempt + 1}/{attempts}), "
                f"retrying in {delay}s"
            )
            await asyncio.sleep(delay)
