"""External process invocation for VMBackup."""

import subprocess
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .utils import NotificationManager


@dataclass(frozen=True)
class ProcessResult:
    """Captured outcome of one external command."""

    command: List[str]
    returncode: Optional[int]
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False
    error: Optional[str] = None

    def describe(self) -> str:
        """Short human readable description of a failed command."""
        if self.error:
            return f"could not start {self.command[0]}: {self.error}"
        if self.timed_out:
            return f"{self.command[0]} timed out"
        message = (self.stderr or self.stdout).strip().splitlines()
        tail = f": {message[-1]}" if message else ""
        return f"{self.command[0]} exited with status {self.returncode}{tail}"


class ProcessRunner:
    """Runs commands as explicit argument lists, never through a shell."""

    def __init__(self, timeout: Optional[float] = None,
                 notifier: Optional[NotificationManager] = None):
        self.timeout = timeout
        self.notifier = notifier

    def run(self, command: Sequence[str]) -> ProcessResult:
        """Run command with timeout and error handling.

        Blocks until the command exits or the timeout expires; a timed out
        command is killed.
        """
        command = [str(part) for part in command]
        if self.notifier:
            self.notifier.debug(f"Running: {subprocess.list2cmdline(command)}")
        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                errors='replace',
                timeout=self.timeout,
                check=False
            )
        except subprocess.TimeoutExpired as e:
            if self.notifier:
                self.notifier.error(f"Command timeout after {self.timeout}s: {command[0]}")
            return ProcessResult(command, None, _text(e.stdout), _text(e.stderr), timed_out=True)
        except OSError as e:
            if self.notifier:
                self.notifier.error(f"Command execution failed: {e}")
            return ProcessResult(command, None, error=str(e))

        return ProcessResult(command, result.returncode, result.stdout or "", result.stderr or "")


def _text(value) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode('utf-8', errors='replace')
    return value
