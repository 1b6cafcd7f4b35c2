"""Pytest 配置和 fixtures。"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent

# 添加 src 目录到 Python 路径
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

# 测试用子进程程序目录
FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture
def fake_child() -> list[str]:
    """运行模拟子进程程序的 argv 前缀。"""
    return [sys.executable, str(FIXTURES_DIR / "fake_child.py")]


@pytest.fixture(autouse=True)
def clean_config(monkeypatch: pytest.MonkeyPatch):
    """每个测试都使用默认配置运行。"""
    from catsh.config import reload_config

    for name in list(os.environ):
        if name.startswith("CATSH_"):
            monkeypatch.delenv(name, raising=False)
    reload_config()
    yield
    reload_config()


@pytest.fixture
def open_fds():
    """当前进程已打开描述符的快照（仅 Linux）。"""
    fd_dir = Path("/proc/self/fd")
    if not fd_dir.exists():
        pytest.skip("/proc/self/fd not available")

    def snapshot() -> set[int]:
        return {int(name) for name in os.listdir(fd_dir)}

    return snapshot
