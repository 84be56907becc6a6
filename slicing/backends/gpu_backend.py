"""
GPU Backend for Slice Extraction

Uploads the whole volume once as a CUDA 3D texture and extracts
interpolated planes with a compute kernel, using CuPy.
"""

from dataclasses import dataclass
import logging
import time
from typing import Sequence, Tuple
import numpy as np

try:
    import cupy as cp
    import cupyx
    from cupy.cuda import runtime
    from cupy.cuda.compiler import CompileException
    from cupy.cuda.texture import (
        ChannelFormatDescriptor,
        CUDAarray,
        ResourceDescriptor,
        TextureDescriptor,
        TextureObject,
    )
    HAS_CUPY = True
except ImportError:
    HAS_CUPY = False
    cp = None

from core.base import SliceImage
from core.errors import (
    DeviceUnavailableError,
    DeviceLostError,
    GPUError,
    IndexOutOfRangeError,
)
from core.types import Orientation
from .base import SliceBackend
from .slice_kernels import VOLUME_SLICE_KERNEL, SLICE_KERNEL_NAME, SLICE_PARAMS_FIELDS


@dataclass
class GPUContext:
    """
    Acquired CUDA device and the stream slice work is queued on.

    Attributes:
        device: cupy.cuda.Device the volume texture lives on
        stream: cupy.cuda.Stream used for uploads, launches and readback
    """
    device: "cp.cuda.Device"
    stream: "cp.cuda.Stream"

    @property
    def device_id(self) -> int:
        return self.device.id

    @classmethod
    def acquire(cls, device_id: int = 0) -> "GPUContext":
        """
        Acquire a CUDA device and create a stream on it.

        Args:
            device_id: CUDA device ordinal

        Returns:
            GPUContext for the device

        Raises:
            DeviceUnavailableError: If CuPy is missing or the device cannot be used
        """
        if not HAS_CUPY:
            raise DeviceUnavailableError(
                "CuPy is required for GPU slicing. "
                "Install with: pip install cupy-cuda12x (or appropriate version)"
            )
        try:
            device_count = runtime.getDeviceCount()
            if device_id < 0 or device_id >= device_count:
                raise DeviceUnavailableError(
                    f"CUDA device {device_id} not found ({device_count} available)"
                )
            device = cp.cuda.Device(device_id)
            with device:
                stream = cp.cuda.Stream(non_blocking=True)
        except DeviceUnavailableError:
            raise
        except (RuntimeError, OSError) as e:
            raise DeviceUnavailableError(f"Failed to acquire CUDA device {device_id}: {e}") from e

        logging.info(f"Acquired CUDA device {device_id}")
        return cls(device=device, stream=stream)


class GPUSliceExtractor(SliceBackend):
    """
    GPU slice extractor.

    Holds the volume texture, the sampler configuration and the compiled
    kernel for the lifetime of the owning Volume. Parameter, output and
    staging buffers are allocated per extraction.

    The texture is never refreshed: voxel changes made after construction
    are not seen by later extractions.
    """

    def __init__(
        self,
        volume_data: np.ndarray,
        spacing: Sequence[float],
        gpu_context: GPUContext,
        block_size: int = 8
    ):
        """
        Upload the volume and build the sampling pipeline.

        Args:
            volume_data: 3D uint16 array (depth, height, width)
            spacing: Physical voxel size (x, y, z)
            gpu_context: Acquired device and stream
            block_size: Edge of the square thread block

        Raises:
            DeviceUnavailableError: If CuPy is missing or the upload/compile fails
        """
        if not HAS_CUPY:
            raise DeviceUnavailableError(
                "CuPy is required for GPU slicing. "
                "Install with: pip install cupy-cuda12x (or appropriate version)"
            )

        depth, height, width = volume_data.shape
        self.dimensions: Tuple[int, int, int] = (depth, height, width)
        self.block_size = int(block_size)
        self._context = gpu_context
        self._released = False

        try:
            with gpu_context.device:
                # Little-endian uint16 viewed as bytes: (low, high) per voxel
                host = np.ascontiguousarray(volume_data, dtype="<u2").view(np.uint8)

                channels = ChannelFormatDescriptor(
                    8, 8, 0, 0, runtime.cudaChannelFormatKindUnsigned
                )
                self._array = CUDAarray(channels, width, height, depth)
                self._array.copy_from(host, stream=gpu_context.stream)
                gpu_context.stream.synchronize()

                resource = ResourceDescriptor(runtime.cudaResourceTypeArray, cuArr=self._array)
                self._sampler = TextureDescriptor(
                    addressModes=(
                        runtime.cudaAddressModeClamp,
                        runtime.cudaAddressModeClamp,
                        runtime.cudaAddressModeClamp,
                    ),
                    filterMode=runtime.cudaFilterModeLinear,
                    readMode=runtime.cudaReadModeNormalizedFloat,
                    normalizedCoords=0,
                )
                self._texture = TextureObject(resource, self._sampler)

                self._kernel = cp.RawKernel(VOLUME_SLICE_KERNEL, SLICE_KERNEL_NAME)
                self._kernel.compile()
        except (RuntimeError, OSError, MemoryError, CompileException) as e:
            raise DeviceUnavailableError(f"Failed to initialize GPU slice extractor: {e}") from e

        logging.info(
            f"GPU slice extractor ready: {width}x{height}x{depth} volume, "
            f"spacing {tuple(float(s) for s in spacing)}, on device {gpu_context.device_id}"
        )

    @property
    def name(self) -> str:
        return f"GPU (CuPy, device {self._context.device_id})"

    @property
    def is_released(self) -> bool:
        return self._released

    def _extent(self, orientation: Orientation) -> int:
        depth, height, width = self.dimensions
        if orientation is Orientation.AXIAL:
            return depth
        elif orientation is Orientation.CORONAL:
            return height
        else:
            return width

    def extract_slice(
        self,
        index: int,
        orientation: Orientation,
        width: int,
        height: int
    ) -> np.ndarray:
        """
        Sample one plane of the volume texture.

        Blocks until the device has finished and the result is in host
        memory. There is no timeout.

        Args:
            index: Slice index along the fixed axis
            orientation: Plane orientation
            width: Output width
            height: Output height

        Returns:
            Flat uint8 array of width * height pixels, row-major

        Raises:
            IndexOutOfRangeError: If index is past the fixed axis
            DeviceLostError: If the launch or readback fails
        """
        if self._released:
            raise GPUError("GPU slice extractor has been released")

        extent = self._extent(orientation)
        if index < 0 or index >= extent:
            raise IndexOutOfRangeError(index, orientation, extent)

        depth, vol_height, vol_width = self.dimensions
        params = np.zeros(SLICE_PARAMS_FIELDS, dtype=np.uint32)
        params[:7] = (index, orientation.value, width, height, vol_width, vol_height, depth)

        lanes = width * height
        nbytes = lanes * np.dtype(np.uint32).itemsize
        block = (self.block_size, self.block_size, 1)
        grid = (
            (width + self.block_size - 1) // self.block_size,
            (height + self.block_size - 1) // self.block_size,
            1,
        )
        stream = self._context.stream

        try:
            with self._context.device, stream:
                uniform_buffer = cp.asarray(params)
                output_buffer = cp.empty(lanes, dtype=cp.uint32)
                staging_buffer = cupyx.empty_pinned((lanes,), dtype=np.uint32)

                self._kernel(grid, block, (self._texture, output_buffer, uniform_buffer))
                output_buffer.data.copy_to_host_async(
                    staging_buffer.ctypes.data, nbytes, stream=stream
                )

                # Single completion signal for the whole batch
                done = stream.record()
                done.synchronize()
        except (RuntimeError, OSError, MemoryError) as e:
            raise DeviceLostError(
                f"GPU extraction of {orientation.name.lower()}[{index}] failed: {e}"
            ) from e

        pixel_data = (staging_buffer & 0xFF).astype(np.uint8)
        del staging_buffer, output_buffer, uniform_buffer
        return pixel_data

    def extract_image(
        self,
        plane: np.ndarray,
        index: int,
        orientation: Orientation,
        width: int,
        height: int
    ) -> SliceImage:
        start = time.perf_counter()
        pixel_data = self.extract_slice(index, orientation, width, height)
        logging.debug(
            f"{self.name} extract {orientation.name.lower()}[{index}] -> {width}x{height}: "
            f"{time.perf_counter() - start:.4f}s"
        )
        return SliceImage.from_raw(width, height, pixel_data)

    def release(self) -> None:
        """Drop the texture, device array and kernel."""
        if self._released:
            return
        self._texture = None
        self._sampler = None
        self._array = None
        self._kernel = None
        self._released = True
        logging.debug("GPU slice extractor released")
