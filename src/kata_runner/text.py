"""Sanitizing and bounding of captured process output."""

from __future__ import annotations

import unicodedata

TRUNCATED_MARKER = "\noutput truncated by kata-runner"
_KEPT_CONTROLS = {"\n", "\r", "\t"}


def cleaned(raw: bytes | str) -> str:
    """Decode as UTF-8 dropping invalid bytes, then strip non-printable control characters."""
    text = raw.decode("utf-8", errors="ignore") if isinstance(raw, bytes) else raw
    return "".join(char for char in text if char in _KEPT_CONTROLS or not _is_control(char))


def truncated(text: str, max_kb: int) -> str:
    """Cut ``text`` to ``max_kb`` KiB of UTF-8 and append a marker when cut."""
    if max_kb <= 0:
        return ""
    raw = text.encode("utf-8")
    limit = max_kb * 1024
    if len(raw) <= limit:
        return text
    return raw[:limit].decode("utf-8", errors="ignore") + TRUNCATED_MARKER


def bounded(raw: bytes | str, max_kb: int, *, overflowed: bool = False) -> str:
    """Clean then truncate ``raw``.

    ``overflowed`` means bytes were already dropped before cleaning, so the
    marker is appended even when the cleaned text fits.
    """
    text = cleaned(raw)
    cut = truncated(text, max_kb)
    if overflowed and max_kb > 0 and cut == text:
        cut += TRUNCATED_MARKER
    return cut


def _is_control(char: str) -> bool:
    # Cc covers C0/C1 controls, Cf covers bidi overrides and zero-width marks.
    return unicodedata.category(char) in {"Cc", "Cf"}
