"""Subprocess execution for the pytest runner and ``eyes scan``.

Commands are always argument lists. A run never raises: timeouts, missing
executables and permission problems come back on the ExecResult.
"""

from __future__ import annotations

import logging
import shlex
import shutil
import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .timeline import utc_now_iso


logger = logging.getLogger(__name__)

# Matches UnitTestConfig.timeout_seconds
DEFAULT_TIMEOUT = 1800

# Characters of stdout/stderr kept on a result; the log file has everything
MAX_STORED_OUTPUT = 100000


@dataclass
class ExecResult:
    """Result of a subprocess execution."""
    command: str
    exit_code: int
    stdout: str
    stderr: str
    duration_ms: int
    timed_out: bool = False
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """Combined stdout and stderr."""
        return "\n".join(part for part in (self.stdout, self.stderr) if part)

    def tail(self, max_chars: int = 2000) -> str:
        """Last ``max_chars`` characters of combined output."""
        output = self.output
        if len(output) <= max_chars:
            return output
        return "..." + output[-max_chars:]

    def write_log(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        header = [
            f"$ {self.command}",
            f"# {utc_now_iso()} exit={self.exit_code} duration={self.duration_ms}ms",
        ]
        if self.error:
            header.append(f"# error: {self.error}")
        body = self.stdout
        if self.stderr:
            body += "\n# stderr\n" + self.stderr
        path.write_text("\n".join(header) + "\n" + body, encoding="utf-8")


def _as_text(data) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data or ""


def _clip(text: str) -> str:
    if len(text) <= MAX_STORED_OUTPUT:
        return text
    return f"[{len(text) - MAX_STORED_OUTPUT} characters dropped]\n" + text[-MAX_STORED_OUTPUT:]


def run_command(
    args: Sequence[str],
    cwd: Optional[Path] = None,
    timeout: Optional[int] = None,
    log_path: Optional[Path] = None,
) -> ExecResult:
    """Run ``args`` and capture its output.

    Args:
        args: Program and arguments.
        cwd: Working directory.
        timeout: Seconds before the process is killed (default: DEFAULT_TIMEOUT).
        log_path: Where to write the full, unclipped output.

    Returns:
        ExecResult. Launch failures use exit code 127 (not found) or
        126 (permission denied) and set ``error``.
    """
    timeout = timeout or DEFAULT_TIMEOUT
    command = " ".join(shlex.quote(a) for a in args)
    logger.debug("Running %s in %s", command, cwd or ".")

    started = time.monotonic()
    stdout = stderr = ""
    exit_code = -1
    timed_out = False
    error = None
    try:
        proc = subprocess.run(
            list(args),
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
        )
        exit_code, stdout, stderr = proc.returncode, proc.stdout, proc.stderr
    except subprocess.TimeoutExpired as e:
        # Keep whatever was printed before the kill
        timed_out = True
        error = f"Command timed out after {timeout}s"
        stdout, stderr = _as_text(e.stdout), _as_text(e.stderr)
    except FileNotFoundError as e:
        exit_code, error = 127, f"Command not found: {e}"
    except PermissionError as e:
        exit_code, error = 126, f"Permission denied: {e}"

    result = ExecResult(
        command=command,
        exit_code=exit_code,
        stdout=stdout or "",
        stderr=stderr or "",
        duration_ms=int((time.monotonic() - started) * 1000),
        timed_out=timed_out,
        error=error,
    )
    if log_path:
        result.write_log(log_path)
    if error:
        logger.warning("%s: %s", command, error)

    result.stdout = _clip(result.stdout)
    result.stderr = _clip(result.stderr)
    return result


def tool_version(cmd: str) -> Optional[str]:
    """First line of ``cmd --version``, or None when missing or failing."""
    if shutil.which(cmd) is None:
        return None
    result = run_command([cmd, "--version"], timeout=5)
    if not result.success:
        return None
    lines = (result.stdout.strip() or result.stderr.strip()).splitlines()
    return lines[0] if lines else None
