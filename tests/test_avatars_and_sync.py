import sys
import unittest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))
sys.path.insert(0, str(Path(__file__).resolve().parent))

from fake_shell import FakeDisk, FakeShell  # noqa: E402
from kata_runner.avatars import AvatarDirectories  # noqa: E402
from kata_runner.errors import BadArgument, ShellError  # noqa: E402
from kata_runner.sandboxes import ContainerSandbox  # noqa: E402
from kata_runner.sync import FileSynchronizer  # noqa: E402

KATA_ID = "ABCDEF0123"


def _sandbox(shell: FakeShell) -> ContainerSandbox:
    return ContainerSandbox(shell, "cyberdojo/gcc_assert:shared_process", KATA_ID)


class AvatarDirectoriesTests(unittest.TestCase):
    def setUp(self) -> None:
        self.shell = FakeShell()
        self.avatars = AvatarDirectories(self.shell, _sandbox(self.shell))

    def test_exists_probes_the_directory(self) -> None:
        self.shell.respond("[ -d /sandboxes/lion ]", status=1)
        self.assertFalse(self.avatars.exists("lion"))
        self.shell.respond("[ -d /sandboxes/lion ]", status=0)
        self.assertTrue(self.avatars.exists("lion"))

    def test_create_makes_owner_only_dir_owned_by_avatar(self) -> None:
        self.shell.respond("[ -d /sandboxes/salmon ]", status=1)
        self.avatars.create("salmon")
        self.assertTrue(self.shell.ran("mkdir -m 700 /sandboxes/salmon"))
        self.assertTrue(self.shell.ran("chown 40045:5000 /sandboxes/salmon"))
        self.assertTrue(self.shell.ran("chown root:cyber-dojo /sandboxes/shared && chmod 775 /sandboxes/shared"))

    def test_create_existing_avatar_raises(self) -> None:
        with self.assertRaises(BadArgument) as ctx:
            self.avatars.create("lion")
        self.assertEqual(str(ctx.exception), "avatar_name:exists")
        self.assertFalse(self.shell.ran("mkdir"))

    def test_destroy_absent_avatar_raises(self) -> None:
        self.shell.respond("[ -d /sandboxes/lion ]", status=1)
        with self.assertRaises(BadArgument) as ctx:
            self.avatars.destroy("lion")
        self.assertEqual(str(ctx.exception), "avatar_name:!exists")

    def test_destroy_removes_directory(self) -> None:
        self.avatars.destroy("lion")
        self.assertTrue(self.shell.ran("rm -rf /sandboxes/lion"))

    def test_shared_dir_is_idempotent(self) -> None:
        # mkdir of an existing dir fails inside the sandbox; the || true absorbs it.
        self.avatars.make_shared_dir()
        self.avatars.make_shared_dir()
        self.assertEqual(len(self.shell.ran("mkdir -m 775 /sandboxes/shared || true")), 2)

    def test_failing_chown_surfaces_as_shell_error(self) -> None:
        self.shell.respond("[ -d /sandboxes/lion ]", status=1)
        self.shell.respond("chown 40028", stderr="Operation not permitted", status=1)
        with self.assertRaises(ShellError):
            self.avatars.create("lion")


class FileSynchronizerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.shell = FakeShell()
        self.disk = FakeDisk()
        self.sync = FileSynchronizer(self.shell, self.disk, _sandbox(self.shell))

    def test_empty_inputs_issue_no_commands(self) -> None:
        self.sync.delete_files("lion", [])
        self.sync.write_files("lion", {})
        self.assertEqual(self.shell.commands, [])
        self.assertEqual(self.disk.writes, {})

    def test_delete_is_one_rm_as_the_avatar(self) -> None:
        self.sync.delete_files("lion", ["hiker.c", "sub dir/x.h"])
        self.assertEqual(len(self.shell.commands), 1)
        command = self.shell.commands[0]
        self.assertIn("--user=40028:5000", command)
        self.assertIn("rm /sandboxes/lion/hiker.c", command)
        self.assertIn("sub dir/x.h", command)

    def test_write_is_one_tar_pipe_owned_by_the_avatar(self) -> None:
        self.sync.write_files("lion", {"hiker.c": "int main;", "cyber-dojo.sh": "make"})

        self.assertEqual(self.disk.writes, {"hiker.c": "int main;", "cyber-dojo.sh": "make"})
        self.assertEqual(len(self.shell.commands), 1)
        command = self.shell.commands[0]
        self.assertIn("tar --owner=40028 --group=5000 -zcf - . |", command)
        self.assertIn("docker exec --interactive --user=40028:5000", command)
        self.assertIn("cd /sandboxes/lion && tar -zxf - -C .", command)

    def test_paths_escaping_the_avatar_dir_are_rejected_before_any_command(self) -> None:
        with self.assertRaises(ValueError):
            self.sync.write_files("lion", {"../salmon/hiker.c": "x"})
        with self.assertRaises(ValueError):
            self.sync.delete_files("lion", ["/etc/passwd"])
        self.assertEqual(self.shell.commands, [])

    def test_unknown_avatar_is_rejected(self) -> None:
        with self.assertRaises(BadArgument):
            self.sync.write_files("unicorn", {"a": "b"})


if __name__ == "__main__":
    unittest.main()
