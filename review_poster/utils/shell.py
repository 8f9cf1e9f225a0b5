"""Subprocess helpers used by the Azure CLI client and config discovery."""

import asyncio
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from review_poster.utils.logger import get_logger

logger = get_logger(__name__)


class ShellError(Exception):
    """Shell command execution error."""

    def __init__(self, message: str, returncode: int, stdout: str = "", stderr: str = ""):
        """Initialize shell error.

        Args:
            message: Error message
            returncode: Process return code
            stdout: Standard output
            stderr: Standard error
        """
        super().__init__(message)
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class ShellResult:
    """Result of a finished command."""

    def __init__(self, returncode: int, stdout: str, stderr: str, command: str):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.command = command

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.returncode == 0

    def check(self) -> "ShellResult":
        """Raise ShellError if the command failed.

        Returns:
            Self for chaining
        """
        if not self.success:
            raise ShellError(
                f"Command failed: {self.command}",
                self.returncode,
                self.stdout,
                self.stderr,
            )
        return self


def _describe(command: Sequence[str]) -> str:
    # Never echo request bodies; --in-file only carries a path
    return " ".join(command)


def run_command(
    command: List[str],
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
    check: bool = False,
    timeout: Optional[float] = None,
) -> ShellResult:
    """Run a command synchronously.

    Args:
        command: Program and arguments
        cwd: Working directory
        env: Environment variables
        check: Raise exception on failure
        timeout: Command timeout in seconds

    Returns:
        Command result

    Raises:
        ShellError: If the command is missing, times out, or fails and check=True
    """
    command_str = _describe(command)
    logger.debug(f"Running command: {command_str}")

    try:
        completed = subprocess.run(
            list(command),
            cwd=Path(cwd) if cwd else None,
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired as e:
        logger.error(f"Command timed out after {timeout}s: {command_str}")
        raise ShellError(f"Command timed out: {command_str}", -1, "", str(e)) from e
    except FileNotFoundError as e:
        logger.error(f"Command not found: {command_str}")
        raise ShellError(f"Command not found: {command_str}", -1, "", str(e)) from e

    result = ShellResult(
        returncode=completed.returncode,
        stdout=completed.stdout or "",
        stderr=completed.stderr or "",
        command=command_str,
    )
    if not result.success:
        logger.debug(f"Command failed with code {result.returncode}: {command_str}")

    if check:
        result.check()
    return result


async def run_command_async(
    command: List[str],
    cwd: Optional[Union[str, Path]] = None,
    env: Optional[Dict[str, str]] = None,
    check: bool = False,
    timeout: Optional[float] = None,
) -> ShellResult:
    """Run a command without blocking the event loop.

    Args:
        command: Program and arguments
        cwd: Working directory
        env: Environment variables
        check: Raise exception on failure
        timeout: Command timeout in seconds

    Returns:
        Command result

    Raises:
        ShellError: If the command is missing, times out, or fails and check=True
    """
    command_str = _describe(command)
    logger.debug(f"Running async command: {command_str}")

    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            cwd=Path(cwd) if cwd else None,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        logger.error(f"Async command not found: {command_str}")
        raise ShellError(f"Command not found: {command_str}", -1, "", str(e)) from e

    try:
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            process.communicate(), timeout=timeout
        )
    except asyncio.TimeoutError as e:
        logger.error(f"Async command timed out after {timeout}s: {command_str}")
        process.kill()
        await process.wait()
        raise ShellError(f"Command timed out: {command_str}", -1, "", "Timeout") from e

    result = ShellResult(
        returncode=process.returncode or 0,
        stdout=stdout_bytes.decode(errors="replace") if stdout_bytes else "",
        stderr=stderr_bytes.decode(errors="replace") if stderr_bytes else "",
        command=command_str,
    )
    if not result.success:
        logger.debug(f"Async command failed with code {result.returncode}: {command_str}")

    if check:
        result.check()
    return result


def check_command_exists(command: str) -> bool:
    """Check if a command exists in PATH."""
    return shutil.which(command) is not None


def get_git_root() -> Optional[Path]:
    """Get git repository root directory.

    Returns:
        Git root path or None if not in a git repo
    """
    try:
        result = run_command(["git", "rev-parse", "--show-toplevel"], check=True)
        return Path(result.stdout.strip())
    except ShellError:
        return None
