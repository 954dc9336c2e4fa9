from __future__ import annotations

from dataclasses import dataclass

MODEL_ALIGNMENT = 32


@dataclass(frozen=True, slots=True)
class ImageSize:
    """Width/height pair in pixels. Both dimensions must be positive."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if int(self.width) <= 0 or int(self.height) <= 0:
            raise ValueError(f"image dimensions must be positive, got {self.width}x{self.height}")
        object.__setattr__(self, "width", int(self.width))
        object.__setattr__(self, "height", int(self.height))

    def as_hw(self) -> tuple[int, int]:
        return self.height, self.width

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


STYLE_SIZE = ImageSize(256, 256)


def round_up(n: int, multiple: int) -> int:
    """Round ``n`` up to the nearest multiple of ``multiple`` (positive values only)."""
    if n <= 0 or multiple <= 0:
        raise ValueError(f"round_up expects positive values, got n={n}, multiple={multiple}")
    return n + multiple - 1 - (n + multiple - 1) % multiple


def compute_model_size(logical: ImageSize, alignment: int = MODEL_ALIGNMENT) -> ImageSize:
    """Return the size the model requires for ``logical``: each side rounded up to ``alignment``."""
    return ImageSize(round_up(logical.width, alignment), round_up(logical.height, alignment))
