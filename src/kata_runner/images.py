"""Docker image presence and pulling."""

from __future__ import annotations

from .errors import fail_image_name
from .externals import ShellLike
from .identity import image_repository, valid_image_name

_NOT_FOUND_HINTS = ("not found", "not exist")


class ImageStore:
    def __init__(self, shell: ShellLike, *, docker: str = "docker") -> None:
        self.shell = shell
        self.docker = docker

    def names(self) -> list[str]:
        """Repository names known to the local daemon, untagged dangling images excluded."""
        stdout, _ = self.shell.assert_exec(f'{self.docker} images --format "{{{{.Repository}}}}"')
        names = dict.fromkeys(line.strip() for line in stdout.splitlines())
        return [name for name in names if name and name != "<none>"]

    def pulled(self, image_name: str) -> bool:
        _assert_valid(image_name)
        return image_repository(image_name) in self.names()

    def pull(self, image_name: str) -> bool:
        """Pull ``image_name``; False when the registry does not know it."""
        _assert_valid(image_name)
        _stdout, stderr, status = self.shell.exec(f"{self.docker} pull {image_name}", quiet=True)
        if status == self.shell.success:
            return True
        # stderr wording differs between docker versions.
        if any(hint in stderr for hint in _NOT_FOUND_HINTS):
            return False
        raise fail_image_name("invalid")


def _assert_valid(image_name: str) -> None:
    if not valid_image_name(image_name):
        raise fail_image_name("invalid")
