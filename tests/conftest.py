"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from unittest import mock

import pytest

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试辅助脚本和模拟启动器目录
FIXTURES_DIR = PROJECT_ROOT / "tests" / "fixtures"
if str(FIXTURES_DIR) not in sys.path:
    sys.path.insert(0, str(FIXTURES_DIR))

FAKE_CLI_PATH = FIXTURES_DIR / "fake_cli.py"


@pytest.fixture
def project_root() -> Path:
    """项目根目录。"""
    return PROJECT_ROOT


@pytest.fixture
def fake_cli() -> list[str]:
    """运行 fake_cli.py 的命令前缀 (可执行文件 + 脚本路径)。"""
    return [sys.executable, str(FAKE_CLI_PATH)]


@pytest.fixture(autouse=True)
def clean_config():
    """每个测试使用默认配置，避免环境变量互相影响。"""
    from promise_spawn import config

    env = {k: v for k, v in os.environ.items() if not k.startswith("PROMISE_SPAWN_")}
    with mock.patch.dict(os.environ, env, clear=True):
        config.reload_config()
        yield
    config.reload_config()
