from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import numpy as np

try:
    import onnxruntime as ort
except Exception:  # pragma: no cover
    ort = None  # type: ignore[assignment]

from logger.filtered_logger import LogChannel, info as log_info, warning as log_warning
from style_engine.core.errors import BindingRejected, InferenceError, ModelLoadError
from style_engine.core.style_model import StyleModel
from style_engine.core.tensor_buffer import TensorBuffer


class OnnxStyleModel(StyleModel):
    """Style-transfer model executed with an onnxruntime ``InferenceSession``.

    Slot names are the graph's input and output names. Tensors cross the
    boundary as float32 NHWC numpy arrays.
    """

    def __init__(self, location: str, providers: Sequence[str] | None = None) -> None:
        if ort is None:
            raise ModelLoadError("onnxruntime python package unavailable")
        path = Path(location)
        if not path.is_file():
            raise ModelLoadError(f"ONNX model not found: {location}")
        self._location = str(location)
        available = set(ort.get_available_providers())
        requested = [name for name in (providers or ()) if name in available]
        if providers and not requested:
            log_warning(LogChannel.ENGINE, f"None of {list(providers)} available, using {sorted(available)}")
        try:
            self._session: Any | None = ort.InferenceSession(str(path), providers=requested or None)
        except Exception as exc:
            raise ModelLoadError(f"Failed to load ONNX model from {location}: {exc}") from exc
        self._inputs = {node.name: node for node in self._session.get_inputs()}
        self._outputs = {node.name: node for node in self._session.get_outputs()}
        self._slots: tuple[str, str, str] | None = None
        log_info(
            LogChannel.ENGINE,
            f"Loaded {location} on {self._session.get_providers()} "
            f"(inputs={list(self._inputs)}, outputs={list(self._outputs)})",
        )

    @property
    def location(self) -> str:
        return self._location

    @property
    def input_names(self) -> list[str]:
        return list(self._inputs)

    @property
    def output_names(self) -> list[str]:
        return list(self._outputs)

    def configure(self, content_slot: str, style_slot: str, output_slot: str) -> None:
        if content_slot == style_slot:
            raise BindingRejected(f"content and style slots must differ, got '{content_slot}' twice")
        for slot in (content_slot, style_slot):
            if slot not in self._inputs:
                raise BindingRejected(f"No input named '{slot}'; available: {list(self._inputs)}")
        if output_slot not in self._outputs:
            raise BindingRejected(f"No output named '{output_slot}'; available: {list(self._outputs)}")
        self._slots = (content_slot, style_slot, output_slot)

    def infer(self, content: TensorBuffer, style: TensorBuffer) -> TensorBuffer:
        if self._session is None:
            raise InferenceError("ONNX session closed")
        if self._slots is None:
            raise InferenceError("model slots not configured")
        content_slot, style_slot, output_slot = self._slots
        feeds = {
            content_slot: content.to_numpy(),
            style_slot: style.to_numpy(),
        }
        try:
            (result,) = self._session.run([output_slot], feeds)
        except Exception as exc:
            raise InferenceError(f"ONNX inference failed: {exc}") from exc
        result = np.asarray(result)
        if result.ndim == 3:
            result = result[np.newaxis]
        try:
            return TensorBuffer.from_numpy(result, device=content.device)
        except ValueError as exc:
            raise InferenceError(f"Unexpected output shape {result.shape}: {exc}") from exc

    def close(self) -> None:
        self._session = None
