from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import yaml

from logger.filtered_logger import configure_logger


_LOG_CONFIG_FILE = Path(__file__).parent / "log.yaml"


def load_log_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load the log configuration that defines active debug channels."""
    config_file = Path(path) if path is not None else _LOG_CONFIG_FILE
    if not config_file.exists():
        raise FileNotFoundError(f"Missing log config: {config_file}")
    with config_file.open("r", encoding="utf-8") as stream:
        return yaml.safe_load(stream) or {}


def apply_log_config(path: str | Path | None = None) -> None:
    """Apply the channel flags via the shared filtered logger.

    Channels set to false in the file do not override a debug flag that was
    already switched on through the environment.
    """
    config = load_log_config(path)
    channels: Dict[str, bool] = config.get("channels", {}) or {}
    configure_logger(
        global_debug=channels.get("global") or None,
        engine_debug=channels.get("engine") or None,
        binding_debug=channels.get("binding") or None,
        codec_debug=channels.get("codec") or None,
    )
