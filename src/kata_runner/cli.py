"""Command line interface for the kata runner."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from .config import load_settings
from .errors import BadArgument, ShellError
from .externals import Shell
from .images import ImageStore
from .logging_utils import setup_logger
from .runner import KataRunner

EXIT_SHELL_ERROR = 1
EXIT_BAD_ARGUMENT = 2


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kata-runner", description="Kata 程式碼沙箱執行器 CLI")
    parser.add_argument("--config", default=None, help="指定 YAML 設定檔（預設讀取 KATA_RUNNER_CONFIG）")

    subparsers = parser.add_subparsers(dest="command")

    image_parser = subparsers.add_parser("image", help="映像檔管理")
    image_sub = image_parser.add_subparsers(dest="image_command")
    for name, help_text in (("pulled", "檢查映像檔是否已在本機"), ("pull", "下載映像檔")):
        image_cmd = image_sub.add_parser(name, help=help_text)
        image_cmd.add_argument("image_name", help="映像檔名稱（例如 cyberdojo/gcc_assert:shared_disk）")

    kata_parser = subparsers.add_parser("kata", help="Kata 沙箱管理")
    kata_sub = kata_parser.add_subparsers(dest="kata_command")
    for name, help_text in (("new", "建立沙箱"), ("old", "移除沙箱"), ("exists", "檢查沙箱是否存在")):
        kata_cmd = kata_sub.add_parser(name, help=help_text)
        _add_kata_arguments(kata_cmd)

    avatar_parser = subparsers.add_parser("avatar", help="Avatar 目錄管理")
    avatar_sub = avatar_parser.add_subparsers(dest="avatar_command")
    for name, help_text in (("new", "建立 avatar 目錄"), ("old", "移除 avatar 目錄"), ("exists", "檢查 avatar 目錄是否存在")):
        avatar_cmd = avatar_sub.add_parser(name, help=help_text)
        _add_kata_arguments(avatar_cmd)
        avatar_cmd.add_argument("avatar_name", help="Avatar 名稱（例如 lion）")
        if name == "new":
            avatar_cmd.add_argument("--files", default=None, help="起始檔案 JSON（{路徑: 內容}）")

    run_parser = subparsers.add_parser("run", help="同步檔案並執行 cyber-dojo.sh")
    _add_kata_arguments(run_parser)
    run_parser.add_argument("avatar_name", help="Avatar 名稱（例如 lion）")
    run_parser.add_argument("--deleted", action="append", default=[], help="要刪除的檔案（可重複指定）")
    run_parser.add_argument("--changed", default=None, help="變更檔案 JSON（{路徑: 內容}）")
    run_parser.add_argument("--max-seconds", type=int, required=True, help="執行時間上限（秒）")

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    settings = load_settings(Path(args.config).expanduser() if args.config else None)
    logger = setup_logger("kata_runner", settings.log_dir)

    try:
        result = _dispatch(args, settings, logger)
    except ValueError as exc:
        # BadArgument, or a rejected file path.
        print(str(exc), file=sys.stderr)
        sys.exit(EXIT_BAD_ARGUMENT)
    except ShellError as exc:
        logger.error("指令執行失敗：%s", exc)
        print(str(exc), file=sys.stderr)
        sys.exit(EXIT_SHELL_ERROR)

    if result is None:
        parser.print_help()
        return
    print(json.dumps(result, ensure_ascii=False, indent=2))


def _dispatch(args: argparse.Namespace, settings, logger) -> dict[str, Any] | None:
    if args.command == "image":
        images = ImageStore(Shell(logger), docker=settings.docker)
        if args.image_command == "pulled":
            return {"image_pulled": images.pulled(args.image_name)}
        if args.image_command == "pull":
            return {"image_pull": images.pull(args.image_name)}
        return None

    if args.command not in {"kata", "avatar", "run"}:
        return None
    runner = KataRunner(args.image_name, args.kata_id, settings=settings, log=logger)

    if args.command == "kata":
        return _handle_kata(runner, args.kata_command)
    if args.command == "avatar":
        return _handle_avatar(runner, args)
    result = runner.run(
        args.avatar_name,
        args.deleted,
        _read_files(args.changed),
        args.max_seconds,
    )
    return result.to_dict()


def _handle_kata(runner: KataRunner, command: str | None) -> dict[str, Any] | None:
    if command == "new":
        runner.kata_new()
        return {"kata_new": runner.kata_id}
    if command == "old":
        runner.kata_old()
        return {"kata_old": runner.kata_id}
    if command == "exists":
        return {"kata_exists": runner.kata_exists()}
    return None


def _handle_avatar(runner: KataRunner, args: argparse.Namespace) -> dict[str, Any] | None:
    if args.avatar_command == "new":
        runner.avatar_new(args.avatar_name, _read_files(args.files))
        return {"avatar_new": args.avatar_name}
    if args.avatar_command == "old":
        runner.avatar_old(args.avatar_name)
        return {"avatar_old": args.avatar_name}
    if args.avatar_command == "exists":
        return {"avatar_exists": runner.avatar_exists(args.avatar_name)}
    return None


def _add_kata_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("image_name", help="映像檔名稱（tag 決定沙箱策略）")
    parser.add_argument("kata_id", help="Kata ID（10 碼大寫十六進位）")


def _read_files(path: str | None) -> dict[str, str]:
    if not path:
        return {}
    try:
        payload = json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise BadArgument("files", "invalid") from exc
    if not isinstance(payload, dict) or not all(
        isinstance(key, str) and isinstance(value, str) for key, value in payload.items()
    ):
        raise BadArgument("files", "invalid")
    return payload


if __name__ == "__main__":
    main()
