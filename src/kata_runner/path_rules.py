"""Pure path validation rules for files synced into an avatar directory."""

from __future__ import annotations

from pathlib import PurePosixPath


def validate_relative_path(path: str) -> str:
    """Validate and normalize a path relative to an avatar directory."""
    raw = path if isinstance(path, str) else ""
    if not raw.strip():
        raise ValueError("path 不可為空")
    if "\x00" in raw:
        raise ValueError("path 不可包含 NUL")

    normalized = raw.replace("\\", "/")
    if normalized.startswith("/"):
        raise ValueError(f"僅允許相對路徑：{raw}")
    parts = normalized.split("/")
    if any(part in {"", ".", ".."} for part in parts):
        raise ValueError(f"path 包含不合法 segment：{raw}")

    return PurePosixPath(normalized).as_posix()
