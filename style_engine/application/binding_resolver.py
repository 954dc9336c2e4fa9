from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator, Sequence

from logger.filtered_logger import (
    LogChannel,
    debug as log_debug,
    info as log_info,
    warning as log_warning,
)
from style_engine.core.errors import BindingNotFound, BindingRejected
from style_engine.core.style_model import StyleModel


# Slot names seen in common arbitrary-style-transfer exports, most specific first.
DEFAULT_INPUT_CANDIDATES: tuple[tuple[str, str], ...] = (
    ("serving_default_placeholder", "serving_default_placeholder_1"),
    ("serving_default_placeholder_1", "serving_default_placeholder"),
    ("placeholder", "placeholder_1"),
    ("placeholder_1", "placeholder"),
    ("serving_default_input_1", "serving_default_input_2"),
    ("serving_default_content_image", "serving_default_style_image"),
    ("input_1", "input_2"),
    ("content_image", "style_image"),
    ("content", "style"),
)

DEFAULT_OUTPUT_CANDIDATES: tuple[str, ...] = (
    "StatefulPartitionedCall",
    "output_0",
    "serving_default_output",
    "output",
    "stylized_image",
)


@dataclass(frozen=True, slots=True)
class Binding:
    """Committed slot names used for every inference call."""

    content_slot: str
    style_slot: str
    output_slot: str

    def __str__(self) -> str:
        return f"{self.content_slot}, {self.style_slot} -> {self.output_slot}"


@dataclass(frozen=True, slots=True)
class BindingAttempt:
    """Diagnostic record of one rejected combination."""

    binding: Binding
    reason: str


@dataclass(frozen=True, slots=True)
class BindingCandidates:
    """Priority-ordered (content, style) pairs and output names to negotiate with the model."""

    inputs: tuple[tuple[str, str], ...] = DEFAULT_INPUT_CANDIDATES
    outputs: tuple[str, ...] = DEFAULT_OUTPUT_CANDIDATES

    def __post_init__(self) -> None:
        inputs = tuple((str(pair[0]), str(pair[1])) for pair in self.inputs)
        outputs = tuple(str(name) for name in self.outputs)
        if not inputs:
            raise ValueError("at least one (content, style) input candidate is required")
        if not outputs:
            raise ValueError("at least one output candidate is required")
        object.__setattr__(self, "inputs", inputs)
        object.__setattr__(self, "outputs", outputs)

    @classmethod
    def from_lists(cls, inputs: Sequence[Sequence[str]], outputs: Sequence[str]) -> "BindingCandidates":
        pairs: list[tuple[str, str]] = []
        for entry in inputs:
            if isinstance(entry, str) or len(entry) != 2:
                raise ValueError(f"input candidate must be a (content, style) pair, got {entry!r}")
            pairs.append((entry[0], entry[1]))
        return cls(inputs=tuple(pairs), outputs=tuple(outputs))

    def __iter__(self) -> Iterator[Binding]:
        for content_slot, style_slot in self.inputs:
            for output_slot in self.outputs:
                yield Binding(content_slot, style_slot, output_slot)


class BindingResolver:
    """Finds the first slot combination the model accepts, trying candidates in priority order."""

    def __init__(
        self,
        candidates: BindingCandidates | None = None,
        on_rejected: Callable[[BindingAttempt], None] | None = None,
    ) -> None:
        self.candidates = candidates or BindingCandidates()
        self._on_rejected = on_rejected

    def resolve(self, model: StyleModel) -> Binding:
        """Configure ``model`` with the first accepted candidate and return it.

        Raises:
            BindingNotFound: every combination was rejected.
        """
        attempts: list[BindingAttempt] = []
        last_reason: str | None = None
        for binding in self.candidates:
            log_debug(LogChannel.BINDING, f"Trying input names: {binding.content_slot}, {binding.style_slot} | output: {binding.output_slot}")
            try:
                model.configure(binding.content_slot, binding.style_slot, binding.output_slot)
            except BindingRejected as exc:
                last_reason = str(exc)
                attempt = BindingAttempt(binding, last_reason)
                attempts.append(attempt)
                log_warning(LogChannel.BINDING, f"Rejected {binding}: {last_reason}")
                if self._on_rejected is not None:
                    self._on_rejected(attempt)
                continue
            log_info(LogChannel.BINDING, f"Configured {model.location} with {binding}")
            return binding
        raise BindingNotFound(last_reason, attempts)
