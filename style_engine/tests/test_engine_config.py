from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest
import yaml

from style_engine.config import load_engine_config, load_engine_settings
from style_engine.config.settings import EngineSettings
from style_engine.core.image_size import ImageSize
from style_engine.enums import ExecutionMode, ModelBackend


def test_packaged_engine_config_loads(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("STYLE_ENGINE_CONFIG", raising=False)

    settings = load_engine_settings()

    assert settings.model_location == "models/arbitrary_style_transfer.onnx"
    assert settings.backend == ModelBackend.AUTO
    assert settings.providers == ("CUDAExecutionProvider", "CPUExecutionProvider")
    assert settings.logical_size == ImageSize(640, 480)
    assert settings.style_size == ImageSize(256, 256)
    assert settings.mode == ExecutionMode.BACKGROUND
    assert settings.gpu_memory_fraction == 0.9
    assert settings.candidates.inputs[0] == ("serving_default_placeholder", "serving_default_placeholder_1")
    assert len(settings.candidates.inputs) == 9
    assert settings.candidates.outputs[0] == "StatefulPartitionedCall"


def test_empty_config_uses_defaults() -> None:
    settings = EngineSettings.from_config({})

    assert settings == EngineSettings()


def test_config_overrides(tmp_path: Path) -> None:
    config_file = tmp_path / "engine.yaml"
    config_file.write_text(
        yaml.safe_dump(
            {
                "model": {"location": "models/style.engine", "backend": "TensorRT"},
                "size": {"width": 1280, "height": 720, "alignment": 64},
                "bindings": {"inputs": [["content", "style"]], "outputs": ["stylized"]},
                "execution": {"mode": "blocking", "idle_wait_s": 0.01},
                "gpu": {"memory_fraction": None, "required": True},
            }
        ),
        encoding="utf-8",
    )

    settings = load_engine_settings(config_file)

    assert settings.backend == ModelBackend.TENSORRT
    assert settings.logical_size == ImageSize(1280, 720)
    assert settings.alignment == 64
    assert settings.candidates.inputs == (("content", "style"),)
    assert settings.candidates.outputs == ("stylized",)
    assert settings.mode == ExecutionMode.BLOCKING
    assert settings.gpu_memory_fraction is None
    assert settings.gpu_required is True


def test_environment_selects_config_file(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    config_file = tmp_path / "custom.yaml"
    config_file.write_text("model:\n  location: elsewhere.onnx\n", encoding="utf-8")
    monkeypatch.setenv("STYLE_ENGINE_CONFIG", str(config_file))

    assert load_engine_config()["model"]["location"] == "elsewhere.onnx"


def test_missing_config_file(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError, match="Missing engine config"):
        load_engine_config(tmp_path / "absent.yaml")


@pytest.mark.parametrize(
    ("config", "message"),
    [
        ({"execution": {"mode": "threaded"}}, "Unsupported execution.mode"),
        ({"model": {"backend": "tflite"}}, "Unsupported model.backend"),
        ({"model": {"location": "  "}}, "model.location cannot be empty"),
        ({"model": {"providers": "CPUExecutionProvider"}}, "model.providers"),
        ({"size": {"width": 0}}, "size.width must be a positive integer"),
        ({"style": {"height": -1}}, "style.height must be a positive integer"),
        ({"gpu": {"memory_fraction": 1.5}}, r"gpu.memory_fraction must be in \(0, 1\]"),
        ({"execution": {"idle_wait_s": 0}}, "execution.idle_wait_s must be positive"),
        ({"size": [640, 480]}, "'size' section must be a mapping"),
        ({"bindings": {"inputs": ["content"]}}, "pair"),
    ],
)
def test_invalid_config_values(config: dict[str, Any], message: str) -> None:
    with pytest.raises(ValueError, match=message):
        EngineSettings.from_config(config)
