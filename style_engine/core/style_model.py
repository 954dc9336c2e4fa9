from __future__ import annotations

from abc import ABC, abstractmethod

from style_engine.core.tensor_buffer import TensorBuffer


class StyleModel(ABC):
    """Contract for an opaque style-transfer model with named tensor slots."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Opaque model location the model was loaded from."""

    @abstractmethod
    def configure(self, content_slot: str, style_slot: str, output_slot: str) -> None:
        """Select the slots used by ``infer``.

        Raises:
            BindingRejected: the model has no such slots or they have the wrong role.
        """

    @abstractmethod
    def infer(self, content: TensorBuffer, style: TensorBuffer) -> TensorBuffer:
        """Run the model on a content/style pair and return the NHWC output.

        Raises:
            InferenceError: the runtime failed to execute.
        """

    @abstractmethod
    def close(self) -> None:
        """Release runtime sessions and device memory."""
