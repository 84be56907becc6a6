"""
Slicing package.

Contains the volume representation, the resampling math and the
CPU/GPU slice backends.
"""

from .resampling import (
    isotropic_dimensions,
    bilinear_sample,
    bilinear_resample,
    source_coordinates,
    normalize_to_u8,
    plane_dimensions,
)
from .volume import Volume, Spacing
from .backends import CPUBackend, GPUSliceExtractor, GPUContext, HAS_CUPY, get_backend

__all__ = [
    "Volume",
    "Spacing",
    "isotropic_dimensions",
    "bilinear_sample",
    "bilinear_resample",
    "source_coordinates",
    "normalize_to_u8",
    "plane_dimensions",
    "CPUBackend",
    "GPUSliceExtractor",
    "GPUContext",
    "HAS_CUPY",
    "get_backend",
]
