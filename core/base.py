"""
Core Base Classes

Provides the image DTO returned by slice extraction and the abstract
interfaces implemented by series loaders and image exporters.
"""

from dataclasses import dataclass
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Tuple, Union
import numpy as np

from .errors import BufferAssemblyError


@dataclass
class SliceImage:
    """
    Normalized 8-bit single-channel image of one volume plane.

    Attributes:
        width: Number of columns
        height: Number of rows
        pixels: uint8 array of shape (height, width), row-major
    """
    width: int
    height: int
    pixels: np.ndarray

    @classmethod
    def from_raw(
        cls,
        width: int,
        height: int,
        data: Union[bytes, bytearray, memoryview, np.ndarray]
    ) -> "SliceImage":
        """
        Assemble an image from a flat row-major pixel buffer.

        Args:
            width: Image width in pixels
            height: Image height in pixels
            data: width * height bytes of 8-bit pixel data

        Returns:
            SliceImage wrapping the data

        Raises:
            BufferAssemblyError: If the buffer length does not match width * height
        """
        if isinstance(data, np.ndarray):
            flat = np.ascontiguousarray(data, dtype=np.uint8).reshape(-1)
        else:
            flat = np.frombuffer(data, dtype=np.uint8)

        expected = int(width) * int(height)
        if flat.size != expected:
            raise BufferAssemblyError(
                f"Pixel buffer holds {flat.size} bytes, expected {expected} "
                f"for a {width}x{height} image"
            )
        return cls(width=int(width), height=int(height), pixels=flat.reshape(height, width))

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width) of the image."""
        return (self.height, self.width)

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()


class BaseLoader(ABC):
    """Abstract base class for series loaders."""

    @abstractmethod
    def load(self, source: Union[str, Path]):
        """
        Load a volume from a source.

        Args:
            source: Path to the data source

        Returns:
            Volume assembled from the source
        """
        pass

    def can_load(self, source: Union[str, Path]) -> bool:
        """
        Check if this loader can handle the given source.

        Args:
            source: Path to check

        Returns:
            True if this loader can handle the source
        """
        return True


class BaseExporter(ABC):
    """Abstract base class for slice image exporters."""

    @abstractmethod
    def export(self, image: SliceImage, path: Union[str, Path]) -> Path:
        """
        Write an image to disk.

        Args:
            image: SliceImage to write
            path: Destination file

        Returns:
            Path of the written file
        """
        pass
