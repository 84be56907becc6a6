"""
Volume Data Structure

Owns the 3D voxel array and its physical spacing, and extracts
axial, coronal and sagittal slices with optional isotropic resampling
on the CPU or the GPU.
"""

from typing import NamedTuple, Optional, Sequence, Tuple
import logging
import math
import operator
import time
import numpy as np

from config import DEFAULT_SLICING, SlicingConfig
from core.base import SliceImage
from core.errors import IndexOutOfRangeError, VolumeError
from core.types import Orientation, Interpolation
from .backends import GPUSliceExtractor, GPUContext, SliceBackend, get_backend
from .resampling import FIXED_AXIS, isotropic_dimensions, normalize_to_u8, plane_dimensions


class Spacing(NamedTuple):
    """Physical distance between voxel centers along each axis."""
    x: float
    y: float
    z: float


class Volume:
    """
    3D scalar volume assembled from a stack of axial images.

    Attributes:
        data: uint16 array of shape (depth, height, width), i.e. (Z, Y, X)
        spacing: Physical voxel size (x, y, z)
        isotropic_dim: (depth, height, width) after resampling every axis
            to the smallest spacing; fixed at construction

    The GPU extractor is created on the first GPU request and reused until
    close(). It keeps its own copy of the voxels, so the array must not be
    modified after that first request.
    """

    def __init__(
        self,
        data: np.ndarray,
        spacing: Sequence[float],
        config: SlicingConfig = DEFAULT_SLICING
    ):
        """
        Initialize volume.

        Args:
            data: 3D uint16 array (depth, height, width)
            spacing: Physical voxel size (x, y, z), all positive
            config: Slicing configuration

        Raises:
            VolumeError: If data is not a 3D uint16 array or spacing is invalid
        """
        data = np.asarray(data)
        if data.ndim != 3:
            raise VolumeError(f"Volume data must be 3D, got shape {data.shape}")
        if data.dtype != np.uint16:
            raise VolumeError(f"Volume data must be uint16, got {data.dtype}")
        if 0 in data.shape:
            raise VolumeError(f"Volume data must not be empty, got shape {data.shape}")

        spacing = tuple(float(s) for s in spacing)
        if len(spacing) != 3:
            raise VolumeError(f"Spacing must have three components, got {len(spacing)}")
        if not all(math.isfinite(s) and s > 0 for s in spacing):
            raise VolumeError(f"Spacing components must be positive, got {spacing}")

        self._data = data
        self.spacing = Spacing(*spacing)
        self.isotropic_dim: Tuple[int, int, int] = isotropic_dimensions(self.spacing, data.shape)
        self.config = config

        self._cpu_backend = get_backend(config)
        self._gpu_extractor: Optional[GPUSliceExtractor] = None

    @classmethod
    def from_slices(
        cls,
        slices: Sequence[np.ndarray],
        spacing: Sequence[float],
        config: SlicingConfig = DEFAULT_SLICING
    ) -> "Volume":
        """
        Stack equally sized 2D images, in order, into a volume.

        Args:
            slices: Ordered 2D uint16 images (height, width)
            spacing: Physical voxel size (x, y, z)
            config: Slicing configuration
        """
        if len(slices) == 0:
            raise VolumeError("At least one slice is required")
        return cls(np.stack(slices, axis=0), spacing, config)

    @property
    def data(self) -> np.ndarray:
        """The voxel array. May be modified in place before first GPU use."""
        return self._data

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self._data.shape

    @property
    def dim(self) -> Tuple[int, int, int]:
        """(depth, height, width) of the volume."""
        return self._data.shape

    @property
    def has_gpu_extractor(self) -> bool:
        return self._gpu_extractor is not None

    def extent(self, orientation: Orientation) -> int:
        """Number of slices along the axis fixed by an orientation."""
        return self._data.shape[FIXED_AXIS[orientation]]

    def is_valid_index(self, index: int, orientation: Orientation) -> bool:
        return 0 <= index < self.extent(orientation)

    def _check_index(self, index: int, orientation: Orientation) -> int:
        index = operator.index(index)
        if not self.is_valid_index(index, orientation):
            raise IndexOutOfRangeError(index, orientation, self.extent(orientation))
        return index

    def get_slice(self, index: int, orientation: Orientation) -> np.ndarray:
        """
        Get a read-only view of one plane.

        Axial planes are (Y, X), coronal planes (Z, X) and sagittal
        planes (Z, Y).

        Raises:
            IndexOutOfRangeError: If index is outside the fixed axis
        """
        index = self._check_index(index, orientation)

        if orientation is Orientation.AXIAL:
            plane = self._data[index, :, :]
        elif orientation is Orientation.CORONAL:
            plane = self._data[:, index, :]
        else:
            plane = self._data[:, :, index]

        plane = plane.view()
        plane.flags.writeable = False
        return plane

    def plane_size(
        self,
        orientation: Orientation,
        interpolation: Interpolation = Interpolation.NONE
    ) -> Tuple[int, int]:
        """(width, height) of the image get_image returns for these settings."""
        return plane_dimensions(orientation, self._data.shape, self.isotropic_dim, interpolation)

    def gpu_extractor(self, gpu_context: GPUContext) -> GPUSliceExtractor:
        """
        Get the GPU extractor, creating it on first use.

        The context passed on the first call is adopted for the lifetime
        of the volume; later contexts are ignored.
        """
        if self._gpu_extractor is None:
            start = time.perf_counter()
            self._gpu_extractor = get_backend(
                self.config,
                volume_data=self._data,
                spacing=self.spacing,
                gpu_context=gpu_context
            )
            logging.debug(f"GPU extractor init: {time.perf_counter() - start:.4f}s")
        return self._gpu_extractor

    def get_image(
        self,
        index: int,
        orientation: Orientation,
        interpolation: Interpolation = Interpolation.NONE,
        gpu_context: Optional[GPUContext] = None
    ) -> SliceImage:
        """
        Extract a plane as a normalized 8-bit image.

        Coronal and sagittal planes are resampled to the isotropic
        dimensions when bilinear interpolation is requested; axial planes
        are always returned at native size.

        Args:
            index: Slice index along the fixed axis
            orientation: Plane orientation
            interpolation: Resampling mode
            gpu_context: Run the resampling on this GPU instead of the CPU

        Returns:
            SliceImage of the plane

        Raises:
            IndexOutOfRangeError: If index is outside the fixed axis
            DeviceUnavailableError: If the GPU extractor cannot be created
            DeviceLostError: If the GPU fails during extraction
        """
        plane = self.get_slice(index, orientation)
        index = operator.index(index)

        if interpolation is Interpolation.NONE or orientation is Orientation.AXIAL:
            height, width = plane.shape
            return SliceImage.from_raw(width, height, normalize_to_u8(plane))

        width, height = self.plane_size(orientation, interpolation)
        backend: SliceBackend
        if gpu_context is not None:
            backend = self.gpu_extractor(gpu_context)
        else:
            backend = self._cpu_backend

        return backend.extract_image(plane, index, orientation, width, height)

    def close(self) -> None:
        """Release the GPU extractor, if one was created."""
        if self._gpu_extractor is not None:
            self._gpu_extractor.release()
            self._gpu_extractor = None

    def __enter__(self) -> "Volume":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"Volume(shape={self.shape}, spacing=({self.spacing.x}, "
            f"{self.spacing.y}, {self.spacing.z}), isotropic_dim={self.isotropic_dim})"
        )
