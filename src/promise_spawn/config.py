"""promise-spawn 环境变量配置管理。

环境变量:
    PROMISE_SPAWN_ENCODING: stdio_string 解码使用的文本编码
        - 默认 utf-8
        - 无效的编码名回退到默认值

    PROMISE_SPAWN_READ_SIZE: 每次从管道读取的最大字节数
        - 默认 65536
        - 限制在 1 字节 - 16 MiB 范围

    PROMISE_SPAWN_LOG_DEBUG: 日志调试模式（仅命令行入口）
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import codecs
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

DEFAULT_ENCODING = "utf-8"
DEFAULT_READ_SIZE = 64 * 1024
MAX_READ_SIZE = 16 * 1024 * 1024


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔值环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_encoding(value: str | None) -> str:
    """解析编码名，无效时返回默认编码。"""
    if not value or not value.strip():
        return DEFAULT_ENCODING
    try:
        return codecs.lookup(value.strip()).name
    except LookupError:
        return DEFAULT_ENCODING


def _parse_read_size(value: str | None) -> int:
    """解析管道读取块大小。"""
    if not value:
        return DEFAULT_READ_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_READ_SIZE
    return max(1, min(size, MAX_READ_SIZE))


def _generate_log_file_path() -> str:
    """生成日志文件路径。

    Returns:
        临时目录下的日志文件绝对路径
    """
    log_dir = Path(tempfile.gettempdir()) / "promise-spawn"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"spawn_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """promise-spawn 配置。

    Attributes:
        encoding: stdio_string 使用的默认文本编码
        read_size: 每次管道读取的最大字节数
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（当 log_debug=True 时自动设置）
    """

    encoding: str = DEFAULT_ENCODING
    read_size: int = DEFAULT_READ_SIZE
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(encoding={self.encoding}, "
            f"read_size={self.read_size}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("PROMISE_SPAWN_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        encoding=_parse_encoding(os.environ.get("PROMISE_SPAWN_ENCODING")),
        read_size=_parse_read_size(os.environ.get("PROMISE_SPAWN_READ_SIZE")),
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置实例。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
