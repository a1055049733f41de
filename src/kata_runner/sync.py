"""File synchronization from the host into an avatar's sandbox directory."""

from __future__ import annotations

import os
import shlex
import tempfile
from pathlib import Path
from typing import Iterable, Mapping

from .externals import DiskLike, ShellLike
from .identity import GID, avatar_dir, user_id
from .path_rules import validate_relative_path
from .sandboxes import Sandbox


class FileSynchronizer:
    """Deletes and writes avatar files inside a running sandbox.

    Writes are staged into a fresh host temp dir and then tar-piped into the
    sandbox in one transfer. Timing shows one tar pipe beats per-file copies
    even when a single file changed. The tar ownership flags set uid:gid on
    every entry while packing, so no chown pass is needed afterwards.

    tar stores mtimes to the whole second; on base images whose tar lacks
    extended timestamps the sub-second part always lands as zero.
    """

    def __init__(self, shell: ShellLike, disk: DiskLike, sandbox: Sandbox) -> None:
        self.shell = shell
        self.disk = disk
        self.sandbox = sandbox

    def delete_files(self, avatar_name: str, paths: Iterable[str]) -> None:
        relative = [validate_relative_path(path) for path in paths]
        if not relative:
            return
        directory = avatar_dir(avatar_name)
        targets = " ".join(shlex.quote(f"{directory}/{path}") for path in relative)
        user = f"{user_id(avatar_name)}:{GID}"
        self.shell.assert_exec(self.sandbox.command(f"rm {targets}", user=user))

    def write_files(self, avatar_name: str, files: Mapping[str, str | bytes]) -> None:
        if not files:
            return
        staged = {validate_relative_path(path): content for path, content in files.items()}
        directory = avatar_dir(avatar_name)
        uid = user_id(avatar_name)
        with tempfile.TemporaryDirectory(prefix="kata-runner-") as tmp_dir:
            for path, content in staged.items():
                self.disk.write(Path(tmp_dir) / path, content)
            os.chmod(tmp_dir, 0o755)
            unpack = self.sandbox.command(
                f"cd {directory} && tar -zxf - -C .",
                user=f"{uid}:{GID}",
                interactive=True,
            )
            tar_pipe = " ".join(
                [
                    f"cd {shlex.quote(tmp_dir)}",
                    "&& tar",
                    f"--owner={uid}",
                    f"--group={GID}",
                    "-zcf",  # compressed archive
                    "-",  # to stdout
                    ".",  # of the staging dir
                    "|",
                    unpack,
                ]
            )
            self.shell.assert_exec(tar_pipe)
