from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import torch

from style_engine.core.image_size import ImageSize


@dataclass(frozen=True, slots=True)
class TensorBuffer:
    """Immutable float image tensor exchanged between codec, engine and model.

    Notes:
    - Layout is NHWC with a batch dimension of exactly 1, matching the slot
      layout style-transfer exports use for both content and style inputs.
    - The wrapped tensor is detached at construction. Nothing in the engine
      writes into it afterwards; new data always means a new buffer.
    """

    tensor: torch.Tensor

    def __post_init__(self) -> None:
        tensor = self.tensor
        if not isinstance(tensor, torch.Tensor):
            raise TypeError(f"TensorBuffer wraps a torch.Tensor, got {type(tensor).__name__}")
        if tensor.ndim != 4 or int(tensor.shape[0]) != 1:
            raise ValueError(f"expected a (1, H, W, C) tensor, got shape {tuple(tensor.shape)}")
        object.__setattr__(self, "tensor", tensor.detach())

    @classmethod
    def from_numpy(cls, array: Any, device: str | torch.device = "cpu") -> "TensorBuffer":
        """Wrap a float NHWC array (e.g. a runtime output) without rescaling."""
        data = np.ascontiguousarray(array, dtype=np.float32)
        return cls(torch.from_numpy(data).to(device))

    @property
    def shape(self) -> tuple[int, ...]:
        return tuple(int(dim) for dim in self.tensor.shape)

    @property
    def height(self) -> int:
        return int(self.tensor.shape[1])

    @property
    def width(self) -> int:
        return int(self.tensor.shape[2])

    @property
    def channels(self) -> int:
        return int(self.tensor.shape[3])

    @property
    def size(self) -> ImageSize:
        return ImageSize(self.width, self.height)

    @property
    def device(self) -> torch.device:
        return self.tensor.device

    def to_numpy(self) -> np.ndarray:
        return self.tensor.to("cpu", dtype=torch.float32).contiguous().numpy()
