"""Runner error definitions."""

from __future__ import annotations


class BadArgument(ValueError):
    """Raised when a caller-supplied argument is invalid or violates a precondition.

    The message is always ``"<field>:<reason>"``, e.g. ``kata_id:!exists``.
    """

    def __init__(self, field: str, reason: str) -> None:
        super().__init__(f"{field}:{reason}")
        self.field = field
        self.reason = reason


class ShellError(RuntimeError):
    """Raised when an asserted shell command exits non-zero."""

    def __init__(self, command: str, status: int, stdout: str = "", stderr: str = "") -> None:
        detail = (stderr or stdout).strip()[:200]
        super().__init__(f"command failed ({status}): {command}" + (f"\n{detail}" if detail else ""))
        self.command = command
        self.status = status
        self.stdout = stdout
        self.stderr = stderr


def fail_kata_id(reason: str) -> BadArgument:
    return BadArgument("kata_id", reason)


def fail_avatar_name(reason: str) -> BadArgument:
    return BadArgument("avatar_name", reason)


def fail_image_name(reason: str) -> BadArgument:
    return BadArgument("image_name", reason)
