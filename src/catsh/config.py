"""catsh 环境变量配置管理。

环境变量:
    CATSH_TUNE_PIPES: 是否把管道缓冲区调到 /proc/sys/fs/pipe-max-size
        - true/1/yes = 开启 (默认)
        - false/0/no = 关闭，使用内核默认容量

    CATSH_POLL_INTERVAL: 等待流就绪期间检查子进程是否退出的间隔（秒）
        - 空/未设置/0 = 一直阻塞直到有流就绪 (默认)
        - 限制在 0.01-60 秒之间
        - 命令留下后台任务占用管道时有用

    CATSH_NULL_DEVICE: 未接管道的标准流所连接的设备
        - 默认 os.devnull

    CATSH_LOG_DEBUG: 命令行入口的日志调试模式
        - true/1/yes = 开启 (日志输出到临时文件)
        - false/0/no = 关闭 (默认，日志输出到 stderr)
"""

from __future__ import annotations

import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config"]

MIN_POLL_INTERVAL = 0.01
MAX_POLL_INTERVAL = 60.0


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """解析布尔类型的环境变量。"""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_poll_interval(value: str | None) -> float | None:
    """解析 CATSH_POLL_INTERVAL。

    Args:
        value: 环境变量值（秒）

    Returns:
        间隔秒数；None 表示一直阻塞
    """
    if not value:
        return None
    try:
        interval = float(value)
    except ValueError:
        return None
    if interval <= 0:
        return None
    return max(MIN_POLL_INTERVAL, min(interval, MAX_POLL_INTERVAL))


@dataclass
class Config:
    """catsh 配置。

    Attributes:
        tune_pipes: 传输前尝试调大管道容量
        poll_interval: 检查子进程退出的间隔秒数（None = 阻塞）
        null_device: 未接管道的流打开的设备路径
        log_debug: 日志调试模式（输出到临时文件）
        log_file: 日志文件路径（log_debug 开启时设置）
    """

    tune_pipes: bool = True
    poll_interval: float | None = None
    null_device: str = os.devnull
    log_debug: bool = False
    log_file: str | None = None

    def __repr__(self) -> str:
        return (
            f"Config(tune_pipes={self.tune_pipes}, "
            f"poll_interval={self.poll_interval}, "
            f"null_device={self.null_device}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file})"
        )


def _generate_log_file_path() -> str:
    """在临时目录下生成带时间戳的日志文件路径。"""
    log_dir = Path(tempfile.gettempdir()) / "catsh"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"catsh_debug_{timestamp}.log"

    return str(log_file.resolve())


def load_config() -> Config:
    """从环境变量加载配置。"""
    log_debug = _parse_bool(os.environ.get("CATSH_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        tune_pipes=_parse_bool(os.environ.get("CATSH_TUNE_PIPES"), default=True),
        poll_interval=_parse_poll_interval(os.environ.get("CATSH_POLL_INTERVAL")),
        null_device=os.environ.get("CATSH_NULL_DEVICE") or os.devnull,
        log_debug=log_debug,
        log_file=log_file,
    )


# 全局配置实例（延迟加载）
_config: Config | None = None


def get_config() -> Config:
    """获取全局配置。"""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """重新加载全局配置（用于测试）。"""
    global _config
    _config = load_config()
    return _config
