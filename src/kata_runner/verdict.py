"""Red/amber/green classification of a completed run.

The sandbox image ships ``/usr/local/bin/red_amber_green``. It is run inside
the sandbox as an ordinary process, reads ``{"stdout", "stderr", "status"}``
as JSON on stdin and prints one of ``red``, ``amber`` or ``green``. Nothing it
prints is ever evaluated on the host.
"""

from __future__ import annotations

import json
import logging

from .errors import ShellError
from .externals import ShellLike
from .logging_utils import log_event
from .sandboxes import BIN_DIR, Sandbox

CLASSIFIER_PATH = f"{BIN_DIR}/red_amber_green"
COLOURS = ("red", "amber", "green")
FALLBACK_COLOUR = "amber"

logger = logging.getLogger("kata_runner.verdict")


class VerdictClassifier:
    def __init__(
        self,
        shell: ShellLike,
        sandbox: Sandbox,
        *,
        timeout_s: float = 10.0,
        log: logging.Logger | None = None,
    ) -> None:
        self.shell = shell
        self.sandbox = sandbox
        self.timeout_s = timeout_s
        self._logger = log or logger

    def colour(self, stdout: str, stderr: str, status: int) -> str:
        """Return the image's verdict, or ``amber`` when it cannot be obtained."""
        payload = json.dumps({"stdout": stdout, "stderr": stderr, "status": status}).encode("utf-8")
        cmd = self.sandbox.command(CLASSIFIER_PATH, interactive=True)
        try:
            out, _err = self.shell.assert_exec(cmd, stdin=payload, timeout=self.timeout_s)
        except (ShellError, OSError) as exc:
            # e.g. the sandbox is too damaged to answer after a fork bomb.
            self._degrade("classifier_failed", error=str(exc)[:200])
            return FALLBACK_COLOUR
        return parse_colour(out) or self._degrade("unrecognised_output", output=out[:80])

    def _degrade(self, reason: str, **fields: object) -> str:
        log_event(
            self._logger,
            "verdict.degraded",
            level=logging.WARNING,
            kata_id=self.sandbox.kata_id,
            reason=reason,
            **fields,
        )
        return FALLBACK_COLOUR


def parse_colour(output: str) -> str | None:
    tokens = output.split()
    if len(tokens) == 1 and tokens[0] in COLOURS:
        return tokens[0]
    return None
