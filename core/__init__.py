"""
Core Package

Contains the image DTO, shared enums, error types and abstract interfaces.
"""

from .base import (
    SliceImage,
    BaseLoader,
    BaseExporter,
)
from .types import Orientation, Interpolation, SortBy
from .errors import (
    SlicingError,
    VolumeError,
    IndexOutOfRangeError,
    BufferAssemblyError,
    GPUError,
    DeviceUnavailableError,
    DeviceLostError,
    LoaderError,
    NoValidImagesError,
    InconsistentDimensionsError,
    MissingSpacingError,
)

__all__ = [
    'SliceImage',
    'BaseLoader',
    'BaseExporter',
    'Orientation',
    'Interpolation',
    'SortBy',
    'SlicingError',
    'VolumeError',
    'IndexOutOfRangeError',
    'BufferAssemblyError',
    'GPUError',
    'DeviceUnavailableError',
    'DeviceLostError',
    'LoaderError',
    'NoValidImagesError',
    'InconsistentDimensionsError',
    'MissingSpacingError',
]
