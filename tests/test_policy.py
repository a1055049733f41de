import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from kata_runner.policy import ResourcePolicy, resource_limits  # noqa: E402


class ResourcePolicyTests(unittest.TestCase):
    def test_fixed_flags(self) -> None:
        flags = resource_limits()
        for flag in (
            "--net=none",
            "--pids-limit=128",
            "--security-opt=no-new-privileges",
            "--ulimit core=0:0",
            "--ulimit fsize=16777216:16777216",
            "--ulimit locks=128:128",
            "--ulimit nofile=128:128",
            "--ulimit nproc=128:128",
            "--ulimit stack=8388608:8388608",
            "--ulimit data=4294967296:4294967296",
        ):
            self.assertIn(flag, flags)

    def test_no_cpu_ulimit(self) -> None:
        self.assertFalse([flag for flag in resource_limits() if "cpu" in flag])

    def test_policy_is_immutable(self) -> None:
        policy = ResourcePolicy()
        with self.assertRaises(AttributeError):
            policy.pids_limit = 1  # type: ignore[misc]


if __name__ == "__main__":
    unittest.main()
