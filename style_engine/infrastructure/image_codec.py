from __future__ import annotations

from typing import Any

import numpy as np
import torch
import torch.nn.functional as F

from logger.filtered_logger import LogChannel, debug as log_debug
from style_engine.core.errors import UnsupportedPixelFormat
from style_engine.core.image_size import ImageSize
from style_engine.core.tensor_buffer import TensorBuffer

_SUPPORTED_CHANNELS = (3, 4)


class ImageCodec:
    """Converts 8-bit RGB/RGBA pixel arrays to normalized float tensors and back.

    Pixels are numpy ``uint8`` arrays shaped (H, W, 3) or (H, W, 4). Tensors are
    float32 NHWC with values in [0, 1]. Resizing is bicubic with corners aligned,
    so the corner pixels of the result sample exactly the corner pixels of the
    source.
    """

    def __init__(self, device: str | torch.device = "cpu") -> None:
        self.device = torch.device(device)

    def to_tensor(self, pixels: Any, size: ImageSize | None = None) -> TensorBuffer:
        """Normalize ``pixels`` into a (1, H, W, 3) tensor, resized to ``size`` when it differs."""
        rgb = self._as_rgb(pixels)
        tensor = torch.from_numpy(np.ascontiguousarray(rgb)).to(self.device)
        tensor = tensor.to(torch.float32).mul_(1.0 / 255.0).unsqueeze(0)
        buffer = TensorBuffer(tensor)
        if size is not None and size != buffer.size:
            log_debug(LogChannel.CODEC, f"Resizing input {buffer.size} -> {size}")
            buffer = self.resize(buffer, size)
        return buffer

    def from_tensor(self, buffer: TensorBuffer, size: ImageSize | None = None) -> np.ndarray:
        """Convert a normalized tensor to (H, W, C) ``uint8`` pixels at ``size``.

        The resize runs on the float values; scaling, clamping and rounding
        come after it so bicubic overshoot cannot wrap around.
        """
        if size is not None and size != buffer.size:
            log_debug(LogChannel.CODEC, f"Resizing output {buffer.size} -> {size}")
            buffer = self.resize(buffer, size)
        scaled = buffer.tensor[0].to(torch.float32).mul(255.0).clamp_(0.0, 255.0).round_()
        return scaled.to(torch.uint8).cpu().numpy()

    def resize(self, buffer: TensorBuffer, size: ImageSize) -> TensorBuffer:
        """Bicubic, corner-aligned resize of an NHWC buffer."""
        nchw = buffer.tensor.to(torch.float32).permute(0, 3, 1, 2)
        resized = F.interpolate(nchw, size=size.as_hw(), mode="bicubic", align_corners=True)
        return TensorBuffer(resized.permute(0, 2, 3, 1).contiguous())

    @staticmethod
    def _as_rgb(pixels: Any) -> np.ndarray:
        array = np.asarray(pixels)
        if array.ndim != 3 or array.shape[2] not in _SUPPORTED_CHANNELS:
            channels = array.shape[2] if array.ndim == 3 else 1
            raise UnsupportedPixelFormat(
                f"Unsupported pixel format with {channels} channel(s); expected RGB or RGBA"
            )
        if array.dtype != np.uint8:
            raise UnsupportedPixelFormat(f"Unsupported pixel dtype {array.dtype}; expected uint8")
        if array.shape[0] == 0 or array.shape[1] == 0:
            raise UnsupportedPixelFormat(f"Empty pixel buffer with shape {array.shape}")
        if array.shape[2] == 4:
            # drop alpha, keep R,G,B order
            return array[:, :, :3]
        return array
