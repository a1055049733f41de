"""Multi-tenant kata sandbox runner."""

from .config import RunnerSettings, load_settings
from .errors import BadArgument, ShellError
from .execution import TIMED_OUT, Execution, run_timeout
from .images import ImageStore
from .runner import KataRunner, RunResult

__all__ = [
    "BadArgument",
    "Execution",
    "ImageStore",
    "KataRunner",
    "RunResult",
    "RunnerSettings",
    "ShellError",
    "TIMED_OUT",
    "load_settings",
    "run_timeout",
]
