import json
import logging
import sys
import tempfile
import threading
import time
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from kata_runner.fs import atomic_write_bytes, file_lock  # noqa: E402
from kata_runner.logging_utils import JsonFormatter, log_event, setup_logger  # noqa: E402


class FsTests(unittest.TestCase):
    def test_atomic_write_creates_parents_and_replaces(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            target = Path(temp_dir) / "a" / "b" / "hiker.c"
            atomic_write_bytes(target, b"one")
            atomic_write_bytes(target, b"two")
            self.assertEqual(target.read_bytes(), b"two")
            self.assertEqual(sorted(p.name for p in target.parent.iterdir()), ["hiker.c"])

    def test_file_lock_serializes_threads(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            lock_path = Path(temp_dir) / "locks" / "ABCDEF0123.lock"
            events: list[str] = []

            def worker(tag: str) -> None:
                with file_lock(lock_path):
                    events.append(f"{tag}-in")
                    time.sleep(0.05)
                    events.append(f"{tag}-out")

            threads = [threading.Thread(target=worker, args=(tag,)) for tag in ("a", "b")]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

        self.assertEqual(len(events), 4)
        self.assertEqual(events[0][0], events[1][0])
        self.assertEqual(events[2][0], events[3][0])


class LoggingUtilsTests(unittest.TestCase):
    def test_setup_logger_writes_json_lines(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            logger = setup_logger("kata_runner.test_json", Path(temp_dir))
            try:
                log_event(logger, "kata.new", kata_id="ABCDEF0123")
                for handler in logger.handlers:
                    handler.flush()
                line = (Path(temp_dir) / "kata-runner.log").read_text(encoding="utf-8").strip().splitlines()[-1]
            finally:
                for handler in list(logger.handlers):
                    handler.close()
                    logger.removeHandler(handler)

        record = json.loads(line)
        self.assertEqual(record["level"], "INFO")
        self.assertEqual(json.loads(record["message"]), {"event": "kata.new", "kata_id": "ABCDEF0123"})

    def test_json_formatter_includes_exception(self) -> None:
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", None, sys.exc_info())
        payload = json.loads(JsonFormatter().format(record))
        self.assertIn("RuntimeError: boom", payload["exc_info"])


if __name__ == "__main__":
    unittest.main()
