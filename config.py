"""
Volume Slicer Configuration

Contains constants and default settings for the slicing engine,
the series loader and the image exporter.
"""

from dataclasses import dataclass, field
from typing import Optional

from core.types import Interpolation, SortBy


# Full-scale value of the 16-bit voxel data
VOXEL_MAX = 65535.0

# Full-scale value of the 8-bit output images
PIXEL_MAX = 255.0


@dataclass
class SlicingConfig:
    """Configuration for slice extraction."""
    interpolation: Interpolation = Interpolation.BILINEAR  # Applied to coronal/sagittal planes
    cpu_workers: Optional[int] = None  # Thread pool size (None = executor default)
    rows_per_task: int = 64  # Output rows resampled per CPU task
    gpu_device_id: int = 0  # CUDA device ordinal
    gpu_block_size: int = 8  # Kernel block edge (8x8 threads)
    gpu_tolerance: int = 2  # Max per-pixel 8-bit difference between CPU and GPU output


@dataclass
class LoaderConfig:
    """Configuration for DICOM series loading."""
    sort_by: SortBy = SortBy.IMAGE_POSITION_PATIENT
    extensions: frozenset = field(default_factory=lambda: frozenset({".dcm"}))
    max_workers: Optional[int] = None  # Parallel file reads (None = executor default)


@dataclass
class ExportConfig:
    """Configuration for image export."""
    image_format: str = "PNG"
    filename_template: str = "{orientation}_{index:04d}.png"


# Default configurations
DEFAULT_SLICING = SlicingConfig()
DEFAULT_LOADER = LoaderConfig()
DEFAULT_EXPORT = ExportConfig()
