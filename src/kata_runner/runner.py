"""Kata runner: orchestrates sandbox, avatars, file sync, execution and verdict."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import asdict, dataclass
from typing import Any, Iterable, Mapping

from .avatars import AvatarDirectories
from .config import RunnerSettings
from .errors import BadArgument, fail_avatar_name, fail_image_name, fail_kata_id
from .execution import TIMED_OUT, run_timeout
from .externals import DiskLike, DiskWriter, Shell, ShellLike
from .identity import GID, image_tag, valid_avatar_name, valid_image_name, valid_kata_id
from .identity import avatar_dir as _avatar_dir
from .identity import user_id as _user_id
from .images import ImageStore
from .logging_utils import log_event
from .path_rules import validate_relative_path
from .sandboxes import SUPERVISOR_PATH, SandboxLifecycle, sandbox_for
from .sync import FileSynchronizer
from .verdict import VerdictClassifier

logger = logging.getLogger("kata_runner")


@dataclass(frozen=True)
class RunResult:
    stdout: str
    stderr: str
    status: int
    colour: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class KataRunner:
    """The public operations for one (image, kata) pair.

    The image tag picks the sandbox strategy (see ``sandboxes``). Shell, disk
    writer, settings and logger are injected so tests can substitute them.
    """

    def __init__(
        self,
        image_name: str,
        kata_id: str,
        *,
        shell: ShellLike | None = None,
        disk: DiskLike | None = None,
        settings: RunnerSettings | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        if not valid_image_name(image_name):
            raise fail_image_name("invalid")
        if not valid_kata_id(kata_id):
            raise fail_kata_id("invalid")
        self.image_name = image_name
        self.kata_id = kata_id
        self.settings = settings or RunnerSettings()
        self._logger = log or logger
        self.shell = shell or Shell(self._logger)
        self.disk = disk or DiskWriter()

        self.images = ImageStore(self.shell, docker=self.settings.docker)
        self.sandbox = sandbox_for(self.shell, image_name, kata_id, image_tag(image_name), docker=self.settings.docker)
        self.lifecycle = SandboxLifecycle(self.sandbox, self.settings.lock_dir, self._logger)
        self.avatars = AvatarDirectories(self.shell, self.sandbox, self._logger)
        self.files = FileSynchronizer(self.shell, self.disk, self.sandbox)
        self.classifier = VerdictClassifier(
            self.shell,
            self.sandbox,
            timeout_s=self.settings.classifier_timeout_s,
            log=self._logger,
        )

    # image

    def image_pulled(self) -> bool:
        return self.images.pulled(self.image_name)

    def image_pull(self) -> bool:
        return self.images.pull(self.image_name)

    # kata

    def kata_exists(self) -> bool:
        return self.lifecycle.exists()

    def kata_new(self) -> None:
        self.lifecycle.create()

    def kata_old(self) -> None:
        self.lifecycle.destroy()

    # avatar

    def avatar_exists(self, avatar_name: str) -> bool:
        self._assert_valid_avatar_name(avatar_name)
        self.lifecycle.assert_exists()
        return self.avatars.exists(avatar_name)

    def avatar_new(self, avatar_name: str, starting_files: Mapping[str, str | bytes]) -> None:
        self._assert_valid_avatar_name(avatar_name)
        _assert_valid_paths(starting_files)
        self.lifecycle.assert_exists()
        self.avatars.create(avatar_name)
        self.files.write_files(avatar_name, starting_files)

    def avatar_old(self, avatar_name: str) -> None:
        self._assert_valid_avatar_name(avatar_name)
        self.lifecycle.assert_exists()
        self.avatars.destroy(avatar_name)

    # run

    def run(
        self,
        avatar_name: str,
        deleted_filenames: Iterable[str],
        changed_files: Mapping[str, str | bytes],
        max_seconds: float,
    ) -> RunResult:
        self._assert_valid_avatar_name(avatar_name)
        if isinstance(max_seconds, bool) or not isinstance(max_seconds, (int, float)) or max_seconds <= 0:
            raise BadArgument("max_seconds", "invalid")
        deleted_filenames = list(deleted_filenames)
        _assert_valid_paths(deleted_filenames)
        _assert_valid_paths(changed_files)
        self.lifecycle.assert_exists()
        self.avatars.assert_exists(avatar_name)

        self.files.delete_files(avatar_name, deleted_filenames)
        self.files.write_files(avatar_name, changed_files)

        start = time.monotonic()
        execution = run_timeout(
            self._supervisor_cmd(avatar_name, max_seconds),
            max_seconds,
            max_output_kb=self.settings.max_output_kb,
        )
        if execution.timed_out:
            colour = TIMED_OUT
        else:
            colour = self.classifier.colour(execution.stdout, execution.stderr, execution.status)

        log_event(
            self._logger,
            "kata.run",
            kata_id=self.kata_id,
            avatar_name=avatar_name,
            status=execution.status,
            colour=colour,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return RunResult(stdout=execution.stdout, stderr=execution.stderr, status=execution.status, colour=colour)

    # helpers

    def user_id(self, avatar_name: str) -> int:
        return _user_id(avatar_name)

    def avatar_dir(self, avatar_name: str) -> str:
        return _avatar_dir(avatar_name)

    def _supervisor_cmd(self, avatar_name: str, max_seconds: float) -> str:
        # The supervisor kills the in-sandbox process tree; run_timeout only
        # bounds the host-side exec. Rounded up so the in-sandbox kill never
        # lands before the host deadline.
        seconds = max(1, math.ceil(max_seconds))
        sh_cmd = f"sh {SUPERVISOR_PATH} {self.kata_id} {avatar_name} {seconds}"
        return self.sandbox.command(sh_cmd, user=f"{_user_id(avatar_name)}:{GID}")

    @staticmethod
    def _assert_valid_avatar_name(avatar_name: str) -> None:
        if not valid_avatar_name(avatar_name):
            raise fail_avatar_name("invalid")


def _assert_valid_paths(paths: Iterable[str]) -> None:
    """Reject bad file paths before any sandbox command runs."""
    for path in paths:
        validate_relative_path(path)
