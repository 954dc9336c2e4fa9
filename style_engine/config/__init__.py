from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from env_utils import env_path
from style_engine.config.settings import EngineSettings


_CONFIG_FILE = Path(__file__).parent / "engine.yaml"


def load_engine_config(path: str | Path | None = None) -> dict[str, Any]:
    """Load the engine configuration.

    Resolution order: ``path``, then the ``STYLE_ENGINE_CONFIG`` environment
    variable, then the packaged ``engine.yaml``.
    """
    if path is None:
        path = env_path("STYLE_ENGINE_CONFIG", _CONFIG_FILE)
    config_file = Path(path)
    if not config_file.exists():
        raise FileNotFoundError(f"Missing engine config: {config_file}")
    with config_file.open("r", encoding="utf-8") as stream:
        return yaml.safe_load(stream) or {}


def load_engine_settings(path: str | Path | None = None) -> EngineSettings:
    """Load and validate the engine configuration."""
    return EngineSettings.from_config(load_engine_config(path))


__all__ = ["EngineSettings", "load_engine_config", "load_engine_settings"]
