from __future__ import annotations

from contextlib import nullcontext
from pathlib import Path
from typing import Any

import numpy as np
import pytest
import torch

from style_engine.core.errors import BindingRejected, InferenceError, ModelLoadError
from style_engine.infrastructure.image_codec import ImageCodec
from style_engine.infrastructure.tensorrt_engine_loader import TensorRTEngineLoader
from style_engine.infrastructure.tensorrt_style_model import TensorRTStyleModel


class _FakeEngineLoader:
    def __init__(self, available: bool = True) -> None:
        self.engine = None
        self.released = False
        self._metadata: dict[str, Any] = {
            "available": available,
            "reason": "ok" if available else "deserialize_cuda_engine returned None",
            "io_tensors": [
                {"name": "content_image", "mode": "input", "dtype": "FLOAT", "shape": (1, -1, -1, 3)},
                {"name": "style_image", "mode": "input", "dtype": "FLOAT", "shape": (1, 256, 256, 3)},
                {"name": "stylized_image", "mode": "output", "dtype": "FLOAT", "shape": (1, -1, -1, 3)},
            ],
        }

    def load(self) -> dict[str, Any]:
        return self._metadata

    def tensor_names(self, mode: str) -> list[str]:
        return [entry["name"] for entry in self._metadata["io_tensors"] if entry["mode"] == mode]

    def release(self) -> None:
        self.released = True


def test_configure_checks_engine_tensor_names() -> None:
    model = TensorRTStyleModel("style.engine", loader=_FakeEngineLoader())

    with pytest.raises(BindingRejected, match="No input tensor"):
        model.configure("serving_default_placeholder", "style_image", "stylized_image")
    with pytest.raises(BindingRejected, match="No output tensor"):
        model.configure("content_image", "style_image", "StatefulPartitionedCall")
    with pytest.raises(BindingRejected):
        model.configure("style_image", "style_image", "stylized_image")
    model.configure("content_image", "style_image", "stylized_image")


def test_unavailable_engine_is_a_load_error() -> None:
    with pytest.raises(ModelLoadError, match="deserialize_cuda_engine"):
        TensorRTStyleModel("style.engine", loader=_FakeEngineLoader(available=False))


def test_infer_without_engine_raises_inference_error() -> None:
    codec = ImageCodec()
    model = TensorRTStyleModel("style.engine", loader=_FakeEngineLoader())
    content = codec.to_tensor(np.zeros((8, 8, 3), dtype=np.uint8))

    with pytest.raises(InferenceError, match="not configured"):
        model.infer(content, content)

    model.configure("content_image", "style_image", "stylized_image")
    with pytest.raises(InferenceError):
        model.infer(content, content)


def test_close_releases_loader() -> None:
    loader = _FakeEngineLoader()
    model = TensorRTStyleModel("style.engine", loader=loader)

    model.close()

    assert loader.released


def test_loader_reports_missing_engine_file(tmp_path: Path) -> None:
    loader = TensorRTEngineLoader(str(tmp_path / "missing.engine"))

    metadata = loader.load()

    assert metadata["available"] is False
    assert metadata["reason"] == "engine file not found"
    assert loader.tensor_names("input") == []
    assert loader.engine is None


class _RecordingStream:
    cuda_stream = 0

    def __init__(self, events: list[tuple[str, Any]]) -> None:
        self._events = events

    def wait_stream(self, stream: Any) -> None:
        self._events.append(("wait_stream", stream))

    def synchronize(self) -> None:
        self._events.append(("synchronize", None))


class _RecordingContext:
    def __init__(self, events: list[tuple[str, Any]]) -> None:
        self._events = events

    def set_input_shape(self, name: str, shape: tuple[int, ...]) -> None:
        self._events.append(("set_input_shape", name))

    def set_tensor_address(self, name: str, address: int) -> None:
        self._events.append(("set_tensor_address", name))

    def get_tensor_shape(self, name: str) -> tuple[int, ...]:
        return (1, 8, 8, 3)

    def execute_async_v3(self, stream_handle: int) -> bool:
        self._events.append(("execute_async_v3", stream_handle))
        return True


def test_execution_stream_waits_for_caller_stream(monkeypatch: pytest.MonkeyPatch) -> None:
    events: list[tuple[str, Any]] = []
    monkeypatch.setattr(torch.cuda, "current_stream", lambda *args, **kwargs: "caller-stream")
    monkeypatch.setattr(torch.cuda, "stream", lambda stream: nullcontext())
    codec = ImageCodec()
    model = TensorRTStyleModel("style.engine", loader=_FakeEngineLoader(), device="cpu")
    model.configure("content_image", "style_image", "stylized_image")
    model._context = _RecordingContext(events)
    model._stream = _RecordingStream(events)
    content = codec.to_tensor(np.full((8, 8, 3), 50, dtype=np.uint8))

    result = model.infer(content, content)

    names = [name for name, _ in events]
    assert events[0] == ("wait_stream", "caller-stream")
    assert names.index("execute_async_v3") > names.index("set_tensor_address")
    assert names[-1] == "synchronize"
    assert result.shape == (1, 8, 8, 3)
