from __future__ import annotations

import torch

from logger.filtered_logger import LogChannel, info as log_info, warning as log_warning
from style_engine.core.errors import SetupError


def configure_gpu_memory(fraction: float | None, required: bool = False, device: int = 0) -> bool:
    """Cap the CUDA caching allocator at ``fraction`` of device memory.

    Returns True when the cap was applied. Without CUDA, setup fails if a GPU
    is ``required`` and otherwise continues on the CPU.
    """
    if not torch.cuda.is_available():
        if required:
            raise SetupError("GPU acceleration required but CUDA is not available")
        log_warning(LogChannel.GLOBAL, "CUDA not available; running style transfer on the CPU")
        return False
    if fraction is None:
        return False
    if not 0.0 < fraction <= 1.0:
        raise SetupError(f"GPU memory fraction must be in (0, 1], got {fraction}")
    torch.cuda.set_per_process_memory_fraction(fraction, device)
    log_info(LogChannel.GLOBAL, f"GPU memory configured for {fraction:.0%} usage on cuda:{device}")
    return True
