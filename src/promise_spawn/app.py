"""promise-spawn 命令行入口。

运行一条命令，等待其完全结束，以 JSON 输出结果。

用法:
    promise-spawn [--cwd DIR] [--inherit] [--extra KEY=VALUE ...] command [args ...]

退出码:
    子进程的退出码；被信号终止、启动失败或流错误时为 1
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from collections.abc import Sequence
from typing import Any

from . import __version__
from .config import Config, get_config
from .coordinator import spawn
from .stdio import INHERIT, PIPE
from .types import SpawnOptions, SpawnOutcome

__all__ = ["main", "build_parser", "run_command"]

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _configure_logging(config: Config) -> None:
    """配置日志输出。"""
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        # LOG_DEBUG 模式：输出到临时文件
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        # 默认模式：输出到 stderr
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = logging.INFO

    # 配置 root logger（第三方库）为 WARNING，减少噪音
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    # 只对 promise_spawn 命名空间启用详细日志
    logging.getLogger("promise_spawn").setLevel(log_level)


def _parse_extra(items: Sequence[str]) -> dict[str, Any]:
    """解析 KEY=VALUE 形式的附加字段，值优先按 JSON 解析。"""
    extra: dict[str, Any] = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise argparse.ArgumentTypeError(f"Expected KEY=VALUE, got {item!r}")
        try:
            extra[key] = json.loads(value)
        except json.JSONDecodeError:
            extra[key] = value
    return extra


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promise-spawn",
        description="Run a command and print its outcome as JSON.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--cwd", help="working directory for the command")
    parser.add_argument(
        "--inherit",
        action="store_true",
        help="share all stdio with this process instead of capturing output",
    )
    parser.add_argument(
        "--extra",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="field merged into the outcome (repeatable)",
    )
    parser.add_argument("command", help="executable to run")
    parser.add_argument("args", nargs=argparse.REMAINDER, help="arguments for the command")
    return parser


async def run_command(
    command: str,
    args: Sequence[str],
    options: SpawnOptions,
    extra: dict[str, Any],
) -> SpawnOutcome:
    """运行命令并返回结果（不抛出 SpawnError）。"""
    promise = spawn(command, args, options, extra)
    logger.debug(f"Running {promise!r}")
    return await promise.outcome()


def _exit_code(outcome: SpawnOutcome) -> int:
    if outcome.kind == "success":
        return 0
    if outcome.code:
        return outcome.code
    return 1


def main(argv: Sequence[str] | None = None) -> int:
    """主入口点。"""
    config = get_config()
    _configure_logging(config)

    parser = build_parser()
    ns = parser.parse_args(argv)
    try:
        extra = _parse_extra(ns.extra)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))

    options = SpawnOptions(
        cwd=ns.cwd,
        # stdin stays shared so interactive commands can still read it
        stdio=INHERIT if ns.inherit else [INHERIT, PIPE, PIPE],
        stdio_string=True,
    )

    outcome = asyncio.run(run_command(ns.command, ns.args, options, extra))
    # Caller extra fields are stored unvalidated, do not warn about their types
    data = outcome.model_dump(mode="json", warnings=False)
    print(json.dumps(data, ensure_ascii=False, indent=2))
    return _exit_code(outcome)


if __name__ == "__main__":
    sys.exit(main())
