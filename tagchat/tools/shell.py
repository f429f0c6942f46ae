"""Foreground shell command execution."""

import os
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from ..logger import get_logger

_log = get_logger(__name__)

TRUNCATION_MARKER = "\n...(truncated)...\n"


def shell_argv(command: str) -> List[str]:
    """Argument vector that runs ``command`` through the platform shell."""
    if sys.platform == "win32":
        return ["cmd.exe", "/c", command]
    return ["bash", "-c", command]


def shell_env() -> dict:
    return {**os.environ, "TERM": "dumb"}


def truncate_output(text: str, limit: int) -> str:
    """Keep the head and tail of ``text`` when it exceeds ``limit`` characters."""
    if limit <= 0 or len(text) <= limit:
        return text
    half = limit // 2
    return text[:half] + TRUNCATION_MARKER + text[-half:]


def combine_output(stdout: str, stderr: str) -> str:
    """stdout followed by a ``STDERR:`` section when stderr is non-empty."""
    return stdout + (f"\nSTDERR:\n{stderr}" if stderr else "")


class ShellExecutor:
    """Run a command to completion and return its combined output as text."""

    def __init__(self, project_root: str, timeout: Optional[int] = None,
                 max_output_chars: int = 20000):
        self.project_root = Path(project_root).resolve()
        self.timeout = timeout or None
        self.max_output_chars = max_output_chars

    def run(self, command: str) -> str:
        _log.debug("Executing command: %s", command[:100])

        try:
            result = subprocess.run(
                shell_argv(command),
                capture_output=True,
                text=True,
                errors="replace",
                timeout=self.timeout,
                cwd=str(self.project_root),
                env=shell_env(),
            )
        except subprocess.TimeoutExpired:
            _log.warning("Command timed out after %ss: %s", self.timeout, command[:100])
            return f"Error executing command: timed out after {self.timeout}s"
        except OSError as e:
            _log.warning("Command failed to start: %s", e)
            return f"Error executing command: {e}"

        output = combine_output(result.stdout or "", result.stderr or "")
        if not output:
            return f"Process completed with exit code: {result.returncode}"
        return truncate_output(output, self.max_output_chars)
