"""
CPU Backend for Slice Extraction

Vectorized NumPy bilinear resampling, fanned out over bands of
output rows with a thread pool.
"""

import concurrent.futures
import logging
import time
from typing import Optional
import numpy as np

from core.base import SliceImage
from core.types import Orientation
from ..resampling import bilinear_resample, normalize_to_u8
from .base import SliceBackend


class CPUBackend(SliceBackend):
    """
    CPU resampler.

    Each band of output rows is computed independently from the shared,
    read-only source plane and written into its own rows of the output,
    so the result does not depend on completion order.
    """

    def __init__(self, max_workers: Optional[int] = None, rows_per_task: int = 64):
        """
        Initialize CPU backend.

        Args:
            max_workers: Thread pool size (None = executor default)
            rows_per_task: Output rows computed per submitted task
        """
        self.max_workers = max_workers
        self.rows_per_task = max(1, int(rows_per_task))

    @property
    def name(self) -> str:
        return "CPU (NumPy)"

    def resample(self, plane: np.ndarray, width: int, height: int) -> np.ndarray:
        """
        Resample a plane to (height, width) and normalize it to 8-bit.

        Args:
            plane: 2D uint16 view of the source plane
            width: Target width
            height: Target height

        Returns:
            uint8 array of shape (height, width)
        """
        output = np.empty((height, width), dtype=np.uint8)
        bands = [
            (start, min(start + self.rows_per_task, height))
            for start in range(0, height, self.rows_per_task)
        ]

        def resample_band(start, stop):
            values = bilinear_resample(plane, width, height, start, stop)
            return start, stop, normalize_to_u8(values)

        if len(bands) == 1:
            output[:, :] = normalize_to_u8(bilinear_resample(plane, width, height))
            return output

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = [executor.submit(resample_band, start, stop) for start, stop in bands]

            for future in concurrent.futures.as_completed(futures):
                start, stop, band = future.result()
                output[start:stop, :] = band

        return output

    def extract_image(
        self,
        plane: np.ndarray,
        index: int,
        orientation: Orientation,
        width: int,
        height: int
    ) -> SliceImage:
        start = time.perf_counter()
        pixels = self.resample(plane, width, height)
        logging.debug(
            f"{self.name} resample {orientation.name.lower()}[{index}] "
            f"{plane.shape[1]}x{plane.shape[0]} -> {width}x{height}: "
            f"{time.perf_counter() - start:.4f}s"
        )
        return SliceImage.from_raw(width, height, pixels)
