"""
Base Slice Backend

Abstract interface for the resamplers that turn a plane request
into an interpolated 8-bit image.
"""

from abc import ABC, abstractmethod
import numpy as np

from core.base import SliceImage
from core.types import Orientation


class SliceBackend(ABC):
    """Abstract base class for slice backends."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Backend name for logging."""
        pass

    @abstractmethod
    def extract_image(
        self,
        plane: np.ndarray,
        index: int,
        orientation: Orientation,
        width: int,
        height: int
    ) -> SliceImage:
        """
        Produce the interpolated image of one plane.

        Args:
            plane: Raw 2D view of the requested plane. Backends holding
                their own copy of the volume may sample that instead.
            index: Slice index along the fixed axis
            orientation: Plane orientation
            width: Target image width
            height: Target image height

        Returns:
            SliceImage of size (width, height)
        """
        pass

    def release(self) -> None:
        """Free backend resources. No-op for stateless backends."""
        pass
