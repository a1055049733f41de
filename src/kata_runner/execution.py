"""Deadline-bounded execution of a host command, with output capture.

The host-side deadline only stops the host process group that issued the
exec-into-sandbox call. Processes already running inside the sandbox are
left to the in-sandbox supervisor script, and ultimately to ``kata_old``.

A host descendant that leaves the process group (e.g. via ``setsid``) and
keeps a pipe open survives the group kill; its reader thread and pipe fd then
live until that descendant exits. The call itself still returns after the
drain grace period.
"""

from __future__ import annotations

import enum
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass

from .text import bounded

TIMED_OUT = "timed_out"
TIMED_OUT_STATUS = 137
DRAIN_GRACE_SECONDS = 0.5
_CHUNK = 64 * 1024


class RunState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class Execution:
    stdout: str
    stderr: str
    status: int
    state: RunState

    @property
    def timed_out(self) -> bool:
        return self.state is RunState.TIMED_OUT


class _Pump:
    """Reads one pipe to EOF on a daemon thread, keeping at most ``limit`` bytes.

    ``overflowed`` is set once any byte has been dropped.
    """

    def __init__(self, stream, limit: int) -> None:
        self._stream = stream
        self._limit = limit
        self._chunks: list[bytes] = []
        self._size = 0
        self.overflowed = False
        self._lock = threading.Lock()
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self) -> None:
        fd = self._stream.fileno()
        try:
            while True:
                chunk = os.read(fd, _CHUNK)
                if not chunk:
                    break
                with self._lock:
                    room = self._limit - self._size
                    if room < len(chunk):
                        self.overflowed = True
                    if room > 0:
                        kept = chunk[:room]
                        self._chunks.append(kept)
                        self._size += len(kept)
        except OSError:
            pass
        finally:
            self._stream.close()

    def join(self, timeout: float) -> None:
        self._thread.join(max(0.0, timeout))

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def snapshot(self) -> bytes:
        with self._lock:
            return b"".join(self._chunks)


class BoundedExecution:
    """One run of a command under a wall-clock deadline.

    ``idle -> running -> completed | timed_out``. An instance runs once.
    """

    def __init__(self, command: str, max_seconds: float, *, max_output_kb: int = 10) -> None:
        self.command = command
        self.max_seconds = max_seconds
        self.max_output_kb = max_output_kb
        self.state = RunState.IDLE

    def run(self) -> Execution:
        if self.state is not RunState.IDLE:
            raise RuntimeError(f"execution already {self.state.value}")
        limit = self.max_output_kb * 1024
        process = subprocess.Popen(
            self.command,
            shell=True,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
        self.state = RunState.RUNNING
        deadline = time.monotonic() + self.max_seconds
        pumps: list[_Pump] = []
        try:
            pumps = [_Pump(process.stdout, limit), _Pump(process.stderr, limit)]
            try:
                status = process.wait(timeout=self.max_seconds)
            except subprocess.TimeoutExpired:
                _kill_group(process)
                _detach(process)
                for pump in pumps:
                    pump.join(DRAIN_GRACE_SECONDS)
                self.state = RunState.TIMED_OUT
                return self._result(pumps, TIMED_OUT_STATUS)

            for pump in pumps:
                pump.join(max(deadline - time.monotonic(), DRAIN_GRACE_SECONDS))
            if any(pump.alive for pump in pumps):
                # A leftover descendant still holds a pipe open.
                _kill_group(process)
                for pump in pumps:
                    pump.join(DRAIN_GRACE_SECONDS)
            self.state = RunState.COMPLETED
            return self._result(pumps, _exit_status(status))
        except BaseException:
            if process.poll() is None:
                _kill_group(process)
                _detach(process)
            raise
        finally:
            if not pumps:
                for stream in (process.stdout, process.stderr):
                    if stream is not None:
                        stream.close()

    def _result(self, pumps: list[_Pump], status: int) -> Execution:
        stdout, stderr = (
            bounded(pump.snapshot(), self.max_output_kb, overflowed=pump.overflowed) for pump in pumps
        )
        return Execution(stdout=stdout, stderr=stderr, status=status, state=self.state)


def run_timeout(command: str, max_seconds: float, *, max_output_kb: int = 10) -> Execution:
    return BoundedExecution(command, max_seconds, max_output_kb=max_output_kb).run()


def _kill_group(process: subprocess.Popen) -> None:
    # The command leads its own session, so its pid is also its process group id.
    try:
        os.killpg(process.pid, signal.SIGKILL)
    except (ProcessLookupError, PermissionError):
        pass


def _detach(process: subprocess.Popen) -> None:
    """Reap ``process`` on a daemon thread so the caller never blocks on its exit."""
    threading.Thread(target=process.wait, daemon=True).start()


def _exit_status(returncode: int) -> int:
    # Popen reports death-by-signal as -N; report it the way a shell does.
    return 128 - returncode if returncode < 0 else returncode
