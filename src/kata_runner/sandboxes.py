"""Per-kata sandbox lifecycle: one protocol, two docker strategies.

Container strategy (``:shared_process`` images)
    A long-lived container per kata. Every command is a ``docker exec`` into
    it, so avatars can share processes as well as files. Fastest run, but
    holds host resources for the lifetime of the kata.

Volume strategy (default, ``:shared_disk`` images)
    A named volume per kata. Every command is a fresh ``docker run --rm``
    container with the volume mounted, so nothing runs between commands.
"""

from __future__ import annotations

import logging
import shlex
import uuid
from pathlib import Path
from typing import Protocol

from .errors import fail_kata_id
from .externals import ShellLike
from .fs import file_lock
from .identity import SANDBOXES_ROOT
from .logging_utils import log_event
from .policy import resource_limits

BIN_DIR = "/usr/local/bin"
SUPERVISOR_NAME = "timeout_kata.sh"
SUPERVISOR_PATH = f"{BIN_DIR}/{SUPERVISOR_NAME}"
STARTUP_HOOK_PATH = f"{BIN_DIR}/kata_startup.sh"
HOST_SUPERVISOR = Path(__file__).resolve().parent / "scripts" / SUPERVISOR_NAME

CONTAINER_PREFIX = "kata_container_runner_"
VOLUME_PREFIX = "kata_volume_runner_"
KEEP_ALIVE = "sleep 3h"

logger = logging.getLogger("kata_runner.sandboxes")


class Sandbox(Protocol):
    """The isolated environment backing one kata."""

    name: str
    image_name: str
    kata_id: str

    def exists(self) -> bool: ...

    def create(self) -> None: ...

    def destroy(self) -> None: ...

    def command(self, sh_cmd: str, *, user: str = "root", interactive: bool = False) -> str:
        """Return a host command line that runs ``sh_cmd`` inside the sandbox."""
        ...


class ContainerSandbox:
    def __init__(self, shell: ShellLike, image_name: str, kata_id: str, *, docker: str = "docker") -> None:
        self.shell = shell
        self.image_name = image_name
        self.kata_id = kata_id
        self.docker = docker
        self.name = CONTAINER_PREFIX + kata_id

    def exists(self) -> bool:
        cmd = " ".join(
            [
                f"{self.docker} ps",
                "--quiet",
                "--all",
                "--filter status=running",
                f"--filter name={self.name}",
            ]
        )
        stdout, _ = self.shell.assert_exec(cmd)
        return stdout.strip() != ""

    def create(self) -> None:
        # An exited container whose volume was not yet collected keeps the name.
        self.shell.exec(self._remove_cmd(), quiet=True)
        args = " ".join(
            [
                "--detach",
                "--init",
                "--interactive",
                f"--name={self.name}",
                *resource_limits(),
                "--user=root",
                f"--volume {self.name}:{SANDBOXES_ROOT}:rw",
            ]
        )
        self.shell.assert_exec(f"{self.docker} run {args} {self.image_name} sh -c {shlex.quote(KEEP_ALIVE)}")
        self.shell.assert_exec(f"{self.docker} cp {shlex.quote(str(HOST_SUPERVISOR))} {self.name}:{BIN_DIR}")
        hook = f"if [ -x {STARTUP_HOOK_PATH} ]; then {STARTUP_HOOK_PATH}; fi"
        self.shell.assert_exec(self.command(hook))

    def destroy(self) -> None:
        self.shell.assert_exec(self._remove_cmd())

    def command(self, sh_cmd: str, *, user: str = "root", interactive: bool = False) -> str:
        parts = [f"{self.docker} exec"]
        if interactive:
            parts.append("--interactive")
        parts += [f"--user={user}", self.name, "sh -c", shlex.quote(sh_cmd)]
        return " ".join(parts)

    def _remove_cmd(self) -> str:
        return f"{self.docker} rm --force --volumes {self.name}"


class VolumeSandbox:
    def __init__(self, shell: ShellLike, image_name: str, kata_id: str, *, docker: str = "docker") -> None:
        self.shell = shell
        self.image_name = image_name
        self.kata_id = kata_id
        self.docker = docker
        self.name = VOLUME_PREFIX + kata_id

    def exists(self) -> bool:
        stdout, _ = self.shell.assert_exec(f"{self.docker} volume ls --quiet --filter name={self.name}")
        return self.name in stdout.split()

    def create(self) -> None:
        self.shell.assert_exec(f"{self.docker} volume create --name {self.name}")

    def destroy(self) -> None:
        self.shell.assert_exec(f"{self.docker} volume rm --force {self.name}")

    def command(self, sh_cmd: str, *, user: str = "root", interactive: bool = False) -> str:
        parts = [f"{self.docker} run", "--rm", "--init"]
        if interactive:
            parts.append("--interactive")
        parts += [
            f"--name={self.name}_{uuid.uuid4().hex[:8]}",
            f"--user={user}",
            *resource_limits(),
            f"--volume {self.name}:{SANDBOXES_ROOT}:rw",
            f"--volume {shlex.quote(str(HOST_SUPERVISOR))}:{SUPERVISOR_PATH}:ro",
            self.image_name,
            "sh -c",
            shlex.quote(sh_cmd),
        ]
        return " ".join(parts)


STRATEGIES: dict[str, type] = {
    "shared_process": ContainerSandbox,
    "shared_disk": VolumeSandbox,
}
DEFAULT_STRATEGY = "shared_disk"


def sandbox_for(shell: ShellLike, image_name: str, kata_id: str, tag: str, *, docker: str = "docker") -> Sandbox:
    """Pick the strategy named by the image tag; unknown or missing tags get the default."""
    strategy = STRATEGIES.get(tag, STRATEGIES[DEFAULT_STRATEGY])
    return strategy(shell, image_name, kata_id, docker=docker)


class SandboxLifecycle:
    """Enforces ``absent -> created -> removed`` around a sandbox strategy.

    The existence check and the create/destroy run under an exclusive
    per-kata file lock, so same-host callers racing on one kata id are
    serialized. Callers on different hosts must not create the same id.
    """

    def __init__(self, sandbox: Sandbox, lock_dir: Path, log: logging.Logger | None = None) -> None:
        self.sandbox = sandbox
        self.lock_path = lock_dir / f"{sandbox.kata_id}.lock"
        self._logger = log or logger

    def exists(self) -> bool:
        return self.sandbox.exists()

    def create(self) -> None:
        with file_lock(self.lock_path):
            if self.sandbox.exists():
                raise fail_kata_id("exists")
            self.sandbox.create()
        log_event(self._logger, "kata.new", kata_id=self.sandbox.kata_id, sandbox=self.sandbox.name)

    def destroy(self) -> None:
        with file_lock(self.lock_path):
            if not self.sandbox.exists():
                raise fail_kata_id("!exists")
            self.sandbox.destroy()
        log_event(self._logger, "kata.old", kata_id=self.sandbox.kata_id, sandbox=self.sandbox.name)

    def assert_exists(self) -> None:
        if not self.sandbox.exists():
            raise fail_kata_id("!exists")
