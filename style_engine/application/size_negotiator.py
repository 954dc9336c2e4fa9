from __future__ import annotations

from threading import Lock

from logger.filtered_logger import LogChannel, debug as log_debug, info as log_info
from style_engine.core.image_size import MODEL_ALIGNMENT, ImageSize, compute_model_size


class SizeNegotiator:
    """Tracks the caller's logical size, the aligned model size and deferred resizes.

    :meth:`delivery_size` always returns the current logical size. The engine
    calls it right before it publishes a result and allocates a fresh output
    array at that size every cycle, so a change made while a cycle is in flight
    lands on that cycle's output. ``change_pending`` only reports that such a
    deferred change has not been delivered yet.
    """

    def __init__(self, width: int, height: int, alignment: int = MODEL_ALIGNMENT) -> None:
        if alignment <= 0:
            raise ValueError("alignment must be a positive integer")
        self._alignment = alignment
        self._lock = Lock()
        self._logical = ImageSize(width, height)
        self._model = compute_model_size(self._logical, alignment)
        self._change_pending = False

    @property
    def alignment(self) -> int:
        return self._alignment

    @property
    def logical_size(self) -> ImageSize:
        with self._lock:
            return self._logical

    @property
    def model_size(self) -> ImageSize:
        with self._lock:
            return self._model

    @property
    def change_pending(self) -> bool:
        with self._lock:
            return self._change_pending

    def set_size(self, width: int, height: int, *, in_flight: bool = False) -> bool:
        """Update the logical size. Returns True when the output resize was deferred."""
        logical = ImageSize(width, height)
        model = compute_model_size(logical, self._alignment)
        with self._lock:
            changed = logical != self._logical
            self._logical = logical
            self._model = model
            if changed and in_flight:
                self._change_pending = True
        if model != logical:
            log_debug(LogChannel.ENGINE, f"{logical} not a multiple of {self._alignment}, model runs at {model}")
        if changed:
            log_info(LogChannel.ENGINE, f"Logical size set to {logical} (model {model}){' - deferred' if in_flight else ''}")
        return changed and in_flight

    def delivery_size(self) -> ImageSize:
        """Return the size for the next published output, honoring a deferred change."""
        with self._lock:
            if self._change_pending:
                self._change_pending = False
                log_debug(LogChannel.ENGINE, f"Reallocating output buffer at {self._logical}")
            return self._logical
