from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

from logger.filtered_logger import LogChannel, info as log_info
from style_engine.core.errors import ModelLoadError
from style_engine.core.style_model import StyleModel
from style_engine.enums import ModelBackend

_SUFFIX_BACKENDS = {
    ".onnx": ModelBackend.ONNX,
    ".engine": ModelBackend.TENSORRT,
    ".plan": ModelBackend.TENSORRT,
    ".trt": ModelBackend.TENSORRT,
}


def detect_backend(location: str) -> ModelBackend:
    """Infer the runtime from the model file suffix."""
    suffix = Path(location).suffix.lower()
    backend = _SUFFIX_BACKENDS.get(suffix)
    if backend is None:
        raise ModelLoadError(
            f"Cannot infer model backend from '{location}'; "
            f"expected one of {sorted(_SUFFIX_BACKENDS)} or an explicit backend"
        )
    return backend


def load_style_model(
    location: str,
    backend: ModelBackend | str = ModelBackend.AUTO,
    options: Mapping[str, Any] | None = None,
) -> StyleModel:
    """Open the model at ``location`` with the requested (or detected) runtime.

    Raises:
        ModelLoadError: location missing, backend unknown or runtime unavailable.
    """
    options = dict(options or {})
    if not location or not Path(location).exists():
        raise ModelLoadError(f"Model not found: {location!r}")
    try:
        selected = ModelBackend(str(getattr(backend, "value", backend)).strip().lower())
    except ValueError as exc:
        raise ModelLoadError(f"Unsupported model backend: {backend}") from exc
    if selected == ModelBackend.AUTO:
        selected = detect_backend(location)

    log_info(LogChannel.ENGINE, f"Loading model from: {location} ({selected.value})")
    if selected == ModelBackend.ONNX:
        from style_engine.infrastructure.onnx_style_model import OnnxStyleModel

        return OnnxStyleModel(location, providers=options.get("providers"))

    from style_engine.infrastructure.tensorrt_style_model import TensorRTStyleModel

    return TensorRTStyleModel(location)
