from __future__ import annotations

from typing import Sequence, TYPE_CHECKING

if TYPE_CHECKING:
    from style_engine.application.binding_resolver import BindingAttempt


class StyleEngineError(RuntimeError):
    """Base class for every error raised by the style engine."""


class SetupError(StyleEngineError):
    """Engine construction failed; the engine is unusable."""


class ModelLoadError(SetupError):
    """The model location is missing, unreadable or of an unknown format."""


class BindingNotFound(SetupError):
    """No candidate (content, style, output) slot combination was accepted by the model."""

    def __init__(self, last_reason: str | None, attempts: Sequence["BindingAttempt"] = ()) -> None:
        self.last_reason = last_reason
        self.attempts = tuple(attempts)
        super().__init__(
            f"no slot binding accepted after {len(self.attempts)} attempt(s); last error: {last_reason}"
        )


class BindingRejected(StyleEngineError):
    """Raised by a model's ``configure`` when it does not accept a slot combination."""


class UnsupportedPixelFormat(StyleEngineError, ValueError):
    """Pixel buffer is not an 8-bit RGB or RGBA image."""


class InferenceError(StyleEngineError):
    """A single inference cycle failed; the staged input is kept for a retry."""


class EngineStateError(StyleEngineError):
    """An engine operation was called in a state that does not allow it."""
