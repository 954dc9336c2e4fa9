from __future__ import annotations

from pathlib import Path
from typing import Any

try:
    import tensorrt as trt
    # TRT keeps the first logger handed to trt.Runtime() as a process-global
    # singleton; it has to outlive every runtime and engine.
    _TRT_LOGGER: "trt.Logger | None" = trt.Logger(trt.Logger.WARNING)
except Exception:  # pragma: no cover
    trt = None  # type: ignore[assignment]
    _TRT_LOGGER = None

from logger.filtered_logger import LogChannel, info as log_info


class TensorRTEngineLoader:
    """Deserializes a TensorRT engine blob and caches its IO tensor metadata."""

    def __init__(self, engine_path: str) -> None:
        self.engine_path = engine_path
        self._metadata: dict[str, Any] = {}
        self._runtime: Any | None = None
        self._engine: Any | None = None

    @property
    def engine(self) -> Any | None:
        return self._engine

    def load(self) -> dict[str, Any]:
        """Deserialize the engine and cache tensor names/modes/shapes.

        The returned metadata always carries ``available`` and ``reason`` so
        callers can report why an engine could not be used.
        """
        if not self._metadata:
            resolved = Path(self.engine_path)
            metadata: dict[str, Any] = {
                "path": str(resolved),
                "available": False,
                "reason": "engine unavailable",
                "io_tensors": [],
            }
            if not resolved.is_file():
                metadata["reason"] = "engine file not found"
                self._metadata = metadata
                return self._metadata
            if trt is None:
                metadata["reason"] = "tensorrt python package unavailable"
                self._metadata = metadata
                return self._metadata

            runtime = trt.Runtime(_TRT_LOGGER or trt.Logger(trt.Logger.WARNING))
            try:
                engine = runtime.deserialize_cuda_engine(resolved.read_bytes())
            except Exception as exc:
                metadata["reason"] = f"deserialize_cuda_engine failed: {exc}"
                self._metadata = metadata
                return self._metadata
            if engine is None:
                metadata["reason"] = "deserialize_cuda_engine returned None"
                self._metadata = metadata
                return self._metadata

            io_tensors: list[dict[str, Any]] = []
            for index in range(int(engine.num_io_tensors)):
                name = engine.get_tensor_name(index)
                mode = engine.get_tensor_mode(name)
                io_tensors.append(
                    {
                        "name": name,
                        "mode": "input" if mode == trt.TensorIOMode.INPUT else "output",
                        "dtype": str(engine.get_tensor_dtype(name)),
                        "shape": tuple(int(x) for x in engine.get_tensor_shape(name)),
                    }
                )

            self._runtime = runtime
            self._engine = engine
            metadata.update({"available": True, "reason": "ok", "io_tensors": io_tensors})
            self._metadata = metadata
            log_info(LogChannel.ENGINE, f"Deserialized TensorRT engine {resolved.name} with {len(io_tensors)} IO tensors")
        return self._metadata

    def tensor_names(self, mode: str) -> list[str]:
        """Names of the cached IO tensors with the given mode ("input" or "output")."""
        return [entry["name"] for entry in self.load().get("io_tensors", []) if entry["mode"] == mode]

    def release(self) -> None:
        self._engine = None
        self._runtime = None
        self._metadata = {}
