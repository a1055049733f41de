"""Fixed resource-limit policy applied to every sandbox."""

from __future__ import annotations

from dataclasses import dataclass

_MB = 1024 * 1024
_GB = 1024 * _MB


@dataclass(frozen=True)
class ResourcePolicy:
    # No cpu ulimit: RLIMIT_CPU is not normalized per core, so on
    # hyperthreaded hosts it kills runs early. The wall-clock deadline is
    # the only time bound.
    pids_limit: int = 128
    nproc: int = 128
    nofile: int = 128
    locks: int = 128
    core_blocks: int = 0
    fsize_bytes: int = 16 * _MB
    data_bytes: int = 4 * _GB
    stack_bytes: int = 8 * _MB
    memory: str = "384m"
    memory_swap: str = "384m"

    def flags(self) -> tuple[str, ...]:
        return (
            "--net=none",
            f"--pids-limit={self.pids_limit}",
            "--security-opt=no-new-privileges",
            f"--memory={self.memory}",
            f"--memory-swap={self.memory_swap}",
            _ulimit("core", self.core_blocks),
            _ulimit("data", self.data_bytes),
            _ulimit("fsize", self.fsize_bytes),
            _ulimit("locks", self.locks),
            _ulimit("nofile", self.nofile),
            _ulimit("nproc", self.nproc),
            _ulimit("stack", self.stack_bytes),
        )


RESOURCE_POLICY = ResourcePolicy()


def resource_limits() -> tuple[str, ...]:
    """Return the docker flags of the fixed policy."""
    return RESOURCE_POLICY.flags()


def _ulimit(name: str, value: int) -> str:
    return f"--ulimit {name}={value}:{value}"
