from __future__ import annotations

import time
from typing import Any

import torch

try:
    import tensorrt as trt
except Exception:  # pragma: no cover
    trt = None  # type: ignore[assignment]

from logger.filtered_logger import LogChannel, debug as log_debug
from style_engine.core.errors import BindingRejected, InferenceError, ModelLoadError
from style_engine.core.style_model import StyleModel
from style_engine.core.tensor_buffer import TensorBuffer
from style_engine.infrastructure.tensorrt_engine_loader import TensorRTEngineLoader


class TensorRTStyleModel(StyleModel):
    """Style-transfer model executed from a serialized TensorRT engine.

    Both inputs are bound with dynamic shapes on every call, so one engine
    serves any content size its optimization profile allows.
    """

    def __init__(
        self,
        location: str,
        loader: TensorRTEngineLoader | None = None,
        device: str = "cuda",
    ) -> None:
        self._location = str(location)
        self._device = device
        self.engine_loader = loader or TensorRTEngineLoader(self._location)
        self._metadata = self.engine_loader.load()
        if not self._metadata.get("available"):
            raise ModelLoadError(f"TensorRT engine {location} unusable: {self._metadata.get('reason')}")
        self._context: Any | None = None
        self._stream: Any | None = None
        self._slots: tuple[str, str, str] | None = None

    @property
    def location(self) -> str:
        return self._location

    def configure(self, content_slot: str, style_slot: str, output_slot: str) -> None:
        inputs = self.engine_loader.tensor_names("input")
        outputs = self.engine_loader.tensor_names("output")
        if content_slot == style_slot:
            raise BindingRejected(f"content and style slots must differ, got '{content_slot}' twice")
        for slot in (content_slot, style_slot):
            if slot not in inputs:
                raise BindingRejected(f"No input tensor named '{slot}'; engine inputs: {inputs}")
        if output_slot not in outputs:
            raise BindingRejected(f"No output tensor named '{output_slot}'; engine outputs: {outputs}")
        self._slots = (content_slot, style_slot, output_slot)

    def infer(self, content: TensorBuffer, style: TensorBuffer) -> TensorBuffer:
        if self._slots is None:
            raise InferenceError("model slots not configured")
        self._ensure_context()
        content_slot, style_slot, output_slot = self._slots
        content_tensor = content.tensor.to(self._device, dtype=torch.float32).contiguous()
        style_tensor = style.tensor.to(self._device, dtype=torch.float32).contiguous()

        context = self._context
        # inputs were produced on the caller stream
        self._stream.wait_stream(torch.cuda.current_stream())
        with torch.cuda.stream(self._stream):
            for name, tensor in ((content_slot, content_tensor), (style_slot, style_tensor)):
                context.set_input_shape(name, tuple(int(x) for x in tensor.shape))
                context.set_tensor_address(name, int(tensor.data_ptr()))
            output_shape = tuple(int(x) for x in context.get_tensor_shape(output_slot))
            if not output_shape or any(dim <= 0 for dim in output_shape):
                raise InferenceError(f"unresolved output shape for {output_slot}: {output_shape}")
            output_tensor = torch.empty(output_shape, device=self._device, dtype=torch.float32)
            context.set_tensor_address(output_slot, int(output_tensor.data_ptr()))

            enqueue_start_ns = time.perf_counter_ns()
            ok = bool(context.execute_async_v3(int(self._stream.cuda_stream)))
            if not ok:
                raise InferenceError("execute_async_v3 failed")
            self._stream.synchronize()
        log_debug(
            LogChannel.ENGINE,
            f"TensorRT cycle {output_shape} -> {(time.perf_counter_ns() - enqueue_start_ns) / 1e6:.2f} ms",
        )
        try:
            return TensorBuffer(output_tensor.to(content.device))
        except ValueError as exc:
            raise InferenceError(f"Unexpected output shape {output_shape}: {exc}") from exc

    def close(self) -> None:
        self._context = None
        self._stream = None
        self.engine_loader.release()

    def _ensure_context(self) -> None:
        if self._context is not None:
            return
        if trt is None or not torch.cuda.is_available():
            raise InferenceError("TensorRT execution requires tensorrt and CUDA")
        engine = self.engine_loader.engine
        if engine is None:
            raise InferenceError(self._metadata.get("reason", "no engine"))
        self._context = engine.create_execution_context()
        if self._context is None:
            raise InferenceError("create_execution_context returned None")
        self._stream = torch.cuda.Stream()
