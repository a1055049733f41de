"""Per-avatar working directories inside a kata's sandbox."""

from __future__ import annotations

import logging

from .errors import fail_avatar_name
from .externals import ShellLike
from .identity import GID, GROUP, SHARED_DIR, avatar_dir, user_id
from .logging_utils import log_event
from .sandboxes import Sandbox

logger = logging.getLogger("kata_runner.avatars")


class AvatarDirectories:
    def __init__(self, shell: ShellLike, sandbox: Sandbox, log: logging.Logger | None = None) -> None:
        self.shell = shell
        self.sandbox = sandbox
        self._logger = log or logger

    def exists(self, avatar_name: str) -> bool:
        # Probe the directory, not /etc/passwd: images may pre-create the users.
        cmd = self.sandbox.command(f"[ -d {avatar_dir(avatar_name)} ]")
        _stdout, _stderr, status = self.shell.exec(cmd, quiet=True)
        return status == self.shell.success

    def create(self, avatar_name: str) -> None:
        if self.exists(avatar_name):
            raise fail_avatar_name("exists")
        self.make_shared_dir()
        directory = avatar_dir(avatar_name)
        self._assert_in_sandbox(f"mkdir -m 700 {directory}")
        self._assert_in_sandbox(f"chown {user_id(avatar_name)}:{GID} {directory}")
        log_event(self._logger, "avatar.new", kata_id=self.sandbox.kata_id, avatar_name=avatar_name)

    def destroy(self, avatar_name: str) -> None:
        if not self.exists(avatar_name):
            raise fail_avatar_name("!exists")
        self._assert_in_sandbox(f"rm -rf {avatar_dir(avatar_name)}")
        log_event(self._logger, "avatar.old", kata_id=self.sandbox.kata_id, avatar_name=avatar_name)

    def assert_exists(self, avatar_name: str) -> None:
        if not self.exists(avatar_name):
            raise fail_avatar_name("!exists")

    def make_shared_dir(self) -> None:
        """Create the kata's shared dir; safe to repeat and to race."""
        self._assert_in_sandbox(f"mkdir -m 775 {SHARED_DIR} || true")
        self._assert_in_sandbox(f"chown root:{GROUP} {SHARED_DIR} && chmod 775 {SHARED_DIR}")

    def _assert_in_sandbox(self, sh_cmd: str) -> None:
        self.shell.assert_exec(self.sandbox.command(sh_cmd))
