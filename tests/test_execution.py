import sys
import time
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from kata_runner.execution import (  # noqa: E402
    TIMED_OUT_STATUS,
    BoundedExecution,
    RunState,
    run_timeout,
)
from kata_runner.externals import Shell  # noqa: E402
from kata_runner.text import TRUNCATED_MARKER  # noqa: E402


class RunTimeoutTests(unittest.TestCase):
    def test_completed_run_reports_exit_status_and_output(self) -> None:
        result = run_timeout("echo out; echo err >&2; exit 3", 5)
        self.assertEqual(result.stdout, "out\n")
        self.assertEqual(result.stderr, "err\n")
        self.assertEqual(result.status, 3)
        self.assertEqual(result.state, RunState.COMPLETED)
        self.assertFalse(result.timed_out)

    def test_silent_infinite_loop_times_out_near_deadline(self) -> None:
        start = time.monotonic()
        result = run_timeout("while :; do :; done", 2)
        elapsed = time.monotonic() - start

        self.assertTrue(result.timed_out)
        self.assertEqual(result.status, TIMED_OUT_STATUS)
        self.assertEqual(result.stdout, "")
        self.assertEqual(result.stderr, "")
        self.assertGreaterEqual(elapsed, 2)
        self.assertLess(elapsed, 4)

    def test_chatty_infinite_loop_keeps_partial_bounded_output(self) -> None:
        result = run_timeout("while :; do echo Hello; done", 1, max_output_kb=1)
        self.assertTrue(result.timed_out)
        self.assertTrue(result.stdout.startswith("Hello\n"))
        self.assertTrue(result.stdout.endswith(TRUNCATED_MARKER))

    def test_control_character_flood_is_marked_truncated(self) -> None:
        result = run_timeout("head -c 20000 /dev/zero | tr '\\000' '\\001'; echo tail", 5)
        self.assertEqual(result.stdout, TRUNCATED_MARKER)
        self.assertEqual(result.state, RunState.COMPLETED)

    def test_background_child_holding_pipes_does_not_block_past_deadline(self) -> None:
        start = time.monotonic()
        result = run_timeout("sleep 30 & echo started", 1)
        elapsed = time.monotonic() - start

        self.assertEqual(result.stdout, "started\n")
        self.assertLess(elapsed, 3)

    def test_spawning_process_tree_is_killed_within_bound(self) -> None:
        start = time.monotonic()
        result = run_timeout("i=0; while [ $i -lt 50 ]; do sleep 30 & i=$((i+1)); done; while :; do :; done", 1)
        elapsed = time.monotonic() - start

        self.assertTrue(result.timed_out)
        self.assertLess(elapsed, 3)

    def test_output_is_cleaned(self) -> None:
        result = run_timeout("printf 'a\\001b\\033c\\n'", 5)
        self.assertEqual(result.stdout, "abc\n")

    def test_signal_death_reports_shell_style_status(self) -> None:
        result = run_timeout("kill -9 $$", 5)
        self.assertEqual(result.status, 137)
        self.assertFalse(result.timed_out)

    def test_execution_runs_once(self) -> None:
        execution = BoundedExecution("true", 5)
        execution.run()
        with self.assertRaises(RuntimeError):
            execution.run()


class ShellTests(unittest.TestCase):
    def test_exec_reports_stdout_stderr_and_status(self) -> None:
        stdout, stderr, status = Shell().exec("echo hi; echo oops >&2; exit 4", quiet=True)
        self.assertEqual((stdout, stderr, status), ("hi\n", "oops\n", 4))

    def test_exec_passes_stdin(self) -> None:
        stdout, _stderr, status = Shell().exec("cat", stdin=b"payload")
        self.assertEqual((stdout, status), ("payload", 0))

    def test_exec_timeout_reports_timed_out_status(self) -> None:
        shell = Shell()
        with self.assertLogs("kata_runner.shell", level="WARNING"):
            _stdout, _stderr, status = shell.exec("sleep 5", timeout=0.5)
        self.assertEqual(status, shell.timed_out_status)

    def test_assert_exec_raises_shell_error(self) -> None:
        from kata_runner.errors import ShellError

        with self.assertRaises(ShellError) as ctx:
            Shell().assert_exec("echo nope >&2; exit 1")
        self.assertEqual(ctx.exception.status, 1)
        self.assertEqual(ctx.exception.stderr, "nope\n")


if __name__ == "__main__":
    unittest.main()
