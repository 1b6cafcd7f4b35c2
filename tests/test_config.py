"""Config 模块测试。

覆盖 CATSH_* 环境变量解析和全局配置实例。
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest import mock

import pytest

from catsh.config import (
    MAX_POLL_INTERVAL,
    MIN_POLL_INTERVAL,
    Config,
    get_config,
    load_config,
    reload_config,
)


class TestTunePipes:
    """CATSH_TUNE_PIPES 解析测试。"""

    @pytest.mark.parametrize("value", ["true", "True", "TRUE", "1", "yes", "Yes", "on"])
    def test_truthy_values(self, value: str):
        """真值开启调整。"""
        with mock.patch.dict(os.environ, {"CATSH_TUNE_PIPES": value}, clear=False):
            config = load_config()
            assert config.tune_pipes is True

    @pytest.mark.parametrize("value", ["false", "False", "0", "no", "off", ""])
    def test_falsy_values(self, value: str):
        """其它值关闭调整。"""
        with mock.patch.dict(os.environ, {"CATSH_TUNE_PIPES": value}, clear=False):
            config = load_config()
            assert config.tune_pipes is False

    def test_default_true(self):
        """未设置时默认开启。"""
        config = load_config()
        assert config.tune_pipes is True


class TestPollInterval:
    """CATSH_POLL_INTERVAL 解析测试。"""

    def test_unset_blocks(self):
        """未设置时一直阻塞到有流就绪。"""
        assert load_config().poll_interval is None

    @pytest.mark.parametrize("value", ["0", "-1", "abc", ""])
    def test_invalid_or_zero_blocks(self, value: str):
        """0、负数和非法值都退回阻塞模式。"""
        with mock.patch.dict(os.environ, {"CATSH_POLL_INTERVAL": value}, clear=False):
            assert load_config().poll_interval is None

    def test_valid_value(self):
        with mock.patch.dict(os.environ, {"CATSH_POLL_INTERVAL": "0.5"}, clear=False):
            assert load_config().poll_interval == 0.5

    def test_clamped(self):
        """超出范围的值被限制在边界。"""
        with mock.patch.dict(os.environ, {"CATSH_POLL_INTERVAL": "0.0001"}, clear=False):
            assert load_config().poll_interval == MIN_POLL_INTERVAL
        with mock.patch.dict(os.environ, {"CATSH_POLL_INTERVAL": "3600"}, clear=False):
            assert load_config().poll_interval == MAX_POLL_INTERVAL


class TestNullDevice:
    """CATSH_NULL_DEVICE 解析测试。"""

    def test_default_devnull(self):
        assert load_config().null_device == os.devnull

    def test_override(self, tmp_path: Path):
        target = str(tmp_path / "sink")
        with mock.patch.dict(os.environ, {"CATSH_NULL_DEVICE": target}, clear=False):
            assert load_config().null_device == target


class TestLogDebug:
    """CATSH_LOG_DEBUG 解析测试。"""

    def test_default_off(self):
        config = load_config()
        assert config.log_debug is False
        assert config.log_file is None

    def test_on_sets_log_file(self, tmp_path: Path):
        """调试模式在临时目录下生成带时间戳的日志文件。"""
        with mock.patch.dict(os.environ, {"CATSH_LOG_DEBUG": "1"}, clear=False):
            with mock.patch("catsh.config.tempfile.gettempdir", return_value=str(tmp_path)):
                config = load_config()
        assert config.log_debug is True
        assert config.log_file is not None
        log_file = Path(config.log_file)
        assert log_file.parent == (tmp_path / "catsh").resolve()
        assert log_file.name.startswith("catsh_debug_")


class TestConfigMethods:
    """Config 类方法测试。"""

    def test_repr(self):
        config = Config(tune_pipes=False, poll_interval=0.25)
        repr_str = repr(config)
        assert "tune_pipes=False" in repr_str
        assert "poll_interval=0.25" in repr_str


class TestGlobalConfig:
    """全局配置实例测试。"""

    def test_get_config_returns_same_instance(self):
        reload_config()
        config1 = get_config()
        config2 = get_config()
        assert config1 is config2

    def test_reload_config_creates_new_instance(self):
        config1 = get_config()
        config2 = reload_config()
        assert config1 is not config2

    def test_reload_picks_up_environment(self):
        with mock.patch.dict(os.environ, {"CATSH_TUNE_PIPES": "no"}, clear=False):
            assert reload_config().tune_pipes is False
            assert get_config().tune_pipes is False
