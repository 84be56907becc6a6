"""
Slice Backends

Provides the CPU resampler and the GPU slice extractor.
"""

from typing import Optional, Sequence
import numpy as np

from config import DEFAULT_SLICING, SlicingConfig
from .base import SliceBackend
from .cpu_backend import CPUBackend
from .gpu_backend import GPUSliceExtractor, GPUContext, HAS_CUPY


def get_backend(
    config: SlicingConfig = DEFAULT_SLICING,
    volume_data: Optional[np.ndarray] = None,
    spacing: Optional[Sequence[float]] = None,
    gpu_context: Optional[GPUContext] = None
) -> SliceBackend:
    """
    Get the slice backend for a request.

    Args:
        config: Slicing configuration
        volume_data: Volume to upload (required with gpu_context)
        spacing: Physical voxel size (x, y, z) (required with gpu_context)
        gpu_context: Acquired GPU; selects the GPU extractor

    Returns:
        GPUSliceExtractor when a context is given, else CPUBackend

    Raises:
        DeviceUnavailableError: If the GPU extractor cannot be created
    """
    if gpu_context is not None:
        if volume_data is None or spacing is None:
            raise ValueError("volume_data and spacing are required for the GPU backend")
        return GPUSliceExtractor(
            volume_data,
            spacing,
            gpu_context,
            block_size=config.gpu_block_size
        )
    return CPUBackend(max_workers=config.cpu_workers, rows_per_task=config.rows_per_task)


__all__ = [
    'SliceBackend',
    'CPUBackend',
    'GPUSliceExtractor',
    'GPUContext',
    'HAS_CUPY',
    'get_backend',
]
