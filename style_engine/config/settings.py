from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from style_engine.application.binding_resolver import BindingCandidates
from style_engine.core.image_size import MODEL_ALIGNMENT, STYLE_SIZE, ImageSize
from style_engine.enums import ExecutionMode, ModelBackend


@dataclass(frozen=True, slots=True)
class EngineSettings:
    """Validated view of ``engine.yaml``."""

    model_location: str = "models/arbitrary_style_transfer.onnx"
    backend: ModelBackend = ModelBackend.AUTO
    providers: tuple[str, ...] = ("CPUExecutionProvider",)
    logical_size: ImageSize = ImageSize(640, 480)
    alignment: int = MODEL_ALIGNMENT
    style_size: ImageSize = STYLE_SIZE
    candidates: BindingCandidates = field(default_factory=BindingCandidates)
    mode: ExecutionMode = ExecutionMode.BACKGROUND
    idle_wait_s: float = 0.05
    stop_timeout_s: float = 2.0
    device: str = "cpu"
    gpu_memory_fraction: float | None = 0.9
    gpu_required: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "EngineSettings":
        if not isinstance(config, Mapping):
            raise ValueError("engine configuration must be a mapping")
        model_cfg = cls._section(config, "model")
        size_cfg = cls._section(config, "size")
        style_cfg = cls._section(config, "style")
        bindings_cfg = cls._section(config, "bindings")
        execution_cfg = cls._section(config, "execution")
        codec_cfg = cls._section(config, "codec")
        gpu_cfg = cls._section(config, "gpu")
        defaults = cls()

        location = str(model_cfg.get("location", defaults.model_location)).strip()
        if not location:
            raise ValueError("model.location cannot be empty")
        providers = model_cfg.get("providers", defaults.providers)
        if isinstance(providers, str) or not all(isinstance(p, str) for p in providers):
            raise ValueError("model.providers must be a list of provider names")

        alignment = cls._positive_int(size_cfg, "size.alignment", "alignment", defaults.alignment)
        logical_size = ImageSize(
            cls._positive_int(size_cfg, "size.width", "width", defaults.logical_size.width),
            cls._positive_int(size_cfg, "size.height", "height", defaults.logical_size.height),
        )
        style_size = ImageSize(
            cls._positive_int(style_cfg, "style.width", "width", defaults.style_size.width),
            cls._positive_int(style_cfg, "style.height", "height", defaults.style_size.height),
        )

        candidates = defaults.candidates
        if bindings_cfg:
            candidates = BindingCandidates.from_lists(
                bindings_cfg.get("inputs", defaults.candidates.inputs),
                bindings_cfg.get("outputs", defaults.candidates.outputs),
            )

        idle_wait_s = float(execution_cfg.get("idle_wait_s", defaults.idle_wait_s))
        stop_timeout_s = float(execution_cfg.get("stop_timeout_s", defaults.stop_timeout_s))
        if idle_wait_s <= 0:
            raise ValueError("execution.idle_wait_s must be positive")
        if stop_timeout_s < 0:
            raise ValueError("execution.stop_timeout_s cannot be negative")

        fraction = gpu_cfg.get("memory_fraction", defaults.gpu_memory_fraction)
        if fraction is not None:
            fraction = float(fraction)
            if not 0.0 < fraction <= 1.0:
                raise ValueError("gpu.memory_fraction must be in (0, 1]")

        return cls(
            model_location=location,
            backend=cls._parse_enum(ModelBackend, model_cfg.get("backend", defaults.backend.value), "model.backend"),
            providers=tuple(providers),
            logical_size=logical_size,
            alignment=alignment,
            style_size=style_size,
            candidates=candidates,
            mode=cls._parse_enum(ExecutionMode, execution_cfg.get("mode", defaults.mode.value), "execution.mode"),
            idle_wait_s=idle_wait_s,
            stop_timeout_s=stop_timeout_s,
            device=str(codec_cfg.get("device", defaults.device)),
            gpu_memory_fraction=fraction,
            gpu_required=bool(gpu_cfg.get("required", defaults.gpu_required)),
        )

    @staticmethod
    def _section(config: Mapping[str, Any], name: str) -> Mapping[str, Any]:
        section = config.get(name) or {}
        if not isinstance(section, Mapping):
            raise ValueError(f"'{name}' section must be a mapping")
        return section

    @staticmethod
    def _positive_int(section: Mapping[str, Any], label: str, key: str, default: int) -> int:
        value = int(section.get(key, default))
        if value <= 0:
            raise ValueError(f"{label} must be a positive integer")
        return value

    @staticmethod
    def _parse_enum(enum_type: Any, value: Any, label: str) -> Any:
        normalized = str(getattr(value, "value", value)).strip().lower()
        try:
            return enum_type(normalized)
        except ValueError as exc:
            raise ValueError(f"Unsupported {label}: {value}") from exc
