"""Host-side collaborators injected into the runner: a shell executor and a disk writer."""

from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Protocol

from .errors import ShellError
from .fs import atomic_write_bytes
from .logging_utils import log_event

logger = logging.getLogger("kata_runner.shell")


class ShellLike(Protocol):
    success: int

    def exec(
        self,
        command: str,
        *,
        stdin: bytes | None = None,
        timeout: float | None = None,
        quiet: bool = False,
    ) -> tuple[str, str, int]: ...

    def assert_exec(
        self,
        command: str,
        *,
        stdin: bytes | None = None,
        timeout: float | None = None,
    ) -> tuple[str, str]: ...


class DiskLike(Protocol):
    def write(self, path: Path | str, content: str | bytes) -> None: ...


class Shell:
    """Run shell command lines on the host and report ``(stdout, stderr, status)``."""

    success = 0
    timed_out_status = 124

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._logger = log or logger

    def exec(
        self,
        command: str,
        *,
        stdin: bytes | None = None,
        timeout: float | None = None,
        quiet: bool = False,
    ) -> tuple[str, str, int]:
        try:
            completed = subprocess.run(
                command,
                shell=True,
                input=stdin,
                stdin=None if stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            stdout = _decode(exc.stdout)
            stderr = _decode(exc.stderr)
            if not quiet:
                self._log_failure(command, self.timed_out_status, stderr or "timeout")
            return stdout, stderr, self.timed_out_status
        stdout = _decode(completed.stdout)
        stderr = _decode(completed.stderr)
        if completed.returncode != self.success and not quiet:
            self._log_failure(command, completed.returncode, stderr)
        return stdout, stderr, completed.returncode

    def assert_exec(
        self,
        command: str,
        *,
        stdin: bytes | None = None,
        timeout: float | None = None,
    ) -> tuple[str, str]:
        stdout, stderr, status = self.exec(command, stdin=stdin, timeout=timeout)
        if status != self.success:
            raise ShellError(command, status, stdout, stderr)
        return stdout, stderr

    def _log_failure(self, command: str, status: int, stderr: str) -> None:
        log_event(
            self._logger,
            "shell.exec.failed",
            level=logging.WARNING,
            command=command,
            status=status,
            stderr=stderr[:500],
        )


class DiskWriter:
    """Write files onto the host filesystem; used only for staging."""

    def write(self, path: Path | str, content: str | bytes) -> None:
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        atomic_write_bytes(Path(path), data)


def _decode(raw: bytes | str | None) -> str:
    if raw is None:
        return ""
    if isinstance(raw, str):
        return raw
    return raw.decode("utf-8", errors="replace")
