from __future__ import annotations

from pathlib import Path

import pytest

from env_utils import env_path, parse_bool_env
from logger import filtered_logger
from logger.filtered_logger import FilteredLogger, LogChannel
from style_engine.config.log_config import apply_log_config, load_log_config


@pytest.mark.parametrize("raw", ["1", "true", "YES", " on ", "1;"])
def test_parse_bool_env_truthy(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("STYLE_TEST_FLAG", raw)
    assert parse_bool_env("STYLE_TEST_FLAG") is True


def test_parse_bool_env_default(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STYLE_TEST_FLAG", raising=False)
    assert parse_bool_env("STYLE_TEST_FLAG") is False
    assert parse_bool_env("STYLE_TEST_FLAG", "1") is True


def test_env_path_ignores_blank(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("STYLE_TEST_PATH", "   ")
    assert env_path("STYLE_TEST_PATH", "fallback") == "fallback"
    monkeypatch.setenv("STYLE_TEST_PATH", " cfg.yaml ")
    assert env_path("STYLE_TEST_PATH") == "cfg.yaml"


def test_debug_output_follows_channel_flags(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    for name in ("STYLE_ENGINE_DEBUG", "ENGINE_DEBUG_LOGS", "BINDING_DEBUG_LOGS", "CODEC_DEBUG_LOGS"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("BINDING_DEBUG_LOGS", "1")
    log = FilteredLogger()

    log.debug(LogChannel.CODEC, "hidden")
    log.debug(LogChannel.BINDING, "trying a -> b")
    log.warning(LogChannel.ENGINE, "first\nsecond")

    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "[DEBUG] [BINDING] trying a -> b",
        "[WARN] [ENGINE] first",
        "[WARN] [ENGINE] second",
    ]


def test_log_config_switches_channels_on(tmp_path: Path) -> None:
    config_file = tmp_path / "log.yaml"
    config_file.write_text("channels:\n  engine: true\n  codec: false\n", encoding="utf-8")
    shared = filtered_logger._shared_logger
    saved = (shared.global_debug, shared.engine_debug, shared.binding_debug, shared.codec_debug)
    try:
        shared.configure(engine_debug=False, codec_debug=True)
        apply_log_config(config_file)

        assert shared.engine_debug is True
        # false in the file leaves an already enabled channel alone
        assert shared.codec_debug is True
    finally:
        shared.configure(
            global_debug=saved[0], engine_debug=saved[1], binding_debug=saved[2], codec_debug=saved[3]
        )


def test_packaged_log_config_has_all_channels() -> None:
    assert set(load_log_config()["channels"]) == {"global", "engine", "binding", "codec"}
