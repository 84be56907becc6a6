"""
Resampling Math

Isotropic-dimension computation, the orientation-to-axis table and
bilinear interpolation shared by the CPU and GPU slice paths.

Axis indices below refer to the (depth=Z, height=Y, width=X) layout
of the voxel array.
"""

import math
from typing import Optional, Sequence, Tuple
import numpy as np

from config import VOXEL_MAX, PIXEL_MAX
from core.types import Orientation, Interpolation


# Axis held fixed by each orientation
FIXED_AXIS = {
    Orientation.AXIAL: 0,
    Orientation.CORONAL: 1,
    Orientation.SAGITTAL: 2,
}

# (width axis, height axis) of the extracted plane.
# The GPU kernel hard-codes the same table; keep them in sync.
PLANE_AXES = {
    Orientation.AXIAL: (2, 1),     # rows Y, cols X
    Orientation.CORONAL: (2, 0),   # rows Z, cols X
    Orientation.SAGITTAL: (1, 0),  # rows Z, cols Y
}


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def isotropic_dimensions(
    spacing: Sequence[float],
    original_dim: Sequence[int]
) -> Tuple[int, int, int]:
    """
    Compute the (z, y, x) size of the volume resampled to isotropic voxels.

    The smallest physical spacing becomes the common voxel edge; every
    axis is scaled by its spacing relative to it and rounded half up.

    Args:
        spacing: Physical voxel size (x, y, z)
        original_dim: Voxel array shape (depth, height, width)

    Returns:
        Isotropic dimensions (depth, height, width)
    """
    x_spacing, y_spacing, z_spacing = (float(s) for s in spacing)
    depth, height, width = (int(d) for d in original_dim)
    min_spacing = min(x_spacing, y_spacing, z_spacing)

    return (
        _round_half_up(depth * z_spacing / min_spacing),
        _round_half_up(height * y_spacing / min_spacing),
        _round_half_up(width * x_spacing / min_spacing),
    )


def plane_dimensions(
    orientation: Orientation,
    dims: Sequence[int],
    isotropic_dim: Sequence[int],
    interpolation: Interpolation = Interpolation.BILINEAR
) -> Tuple[int, int]:
    """
    Look up the (width, height) of the image produced for an orientation.

    Axial planes and non-interpolated requests keep the native plane size.
    """
    width_axis, height_axis = PLANE_AXES[orientation]
    if interpolation is Interpolation.NONE or orientation is Orientation.AXIAL:
        source = dims
    else:
        source = isotropic_dim
    return int(source[width_axis]), int(source[height_axis])


def source_coordinates(target_size: int, source_size: int) -> np.ndarray:
    """
    Map target pixel centers onto fractional source coordinates.

    Uses the half-pixel-center convention
    src = (t + 0.5) / target_size * source_size - 0.5, clamped to
    [0, source_size - 1]. Evaluated in float32 like the GPU kernel.
    """
    t = np.arange(target_size, dtype=np.float32)
    src = (t + np.float32(0.5)) / np.float32(target_size) * np.float32(source_size) - np.float32(0.5)
    return np.clip(src, np.float32(0.0), np.float32(source_size - 1))


def bilinear_sample(plane: np.ndarray, y: float, x: float) -> float:
    """
    Bilinearly interpolate a 2D array at a fractional (y, x) position.

    Corners past the last row/column are clamped to it. The blend runs
    along x for both rows first, then along y between the two row results.

    Args:
        plane: 2D scalar array (height, width)
        y: Fractional row coordinate
        x: Fractional column coordinate

    Returns:
        Interpolated value
    """
    height, width = plane.shape

    y_floor = math.floor(y)
    x_floor = math.floor(x)
    y0 = min(max(y_floor, 0), height - 1)
    x0 = min(max(x_floor, 0), width - 1)
    y1 = min(max(y_floor + 1, 0), height - 1)
    x1 = min(max(x_floor + 1, 0), width - 1)

    dy = np.float32(y - y_floor)
    dx = np.float32(x - x_floor)
    one = np.float32(1.0)

    v00 = np.float32(plane[y0, x0])
    v01 = np.float32(plane[y0, x1])
    v10 = np.float32(plane[y1, x0])
    v11 = np.float32(plane[y1, x1])

    v0 = v00 * (one - dx) + v01 * dx
    v1 = v10 * (one - dx) + v11 * dx

    return float(v0 * (one - dy) + v1 * dy)


def bilinear_resample(
    plane: np.ndarray,
    width: int,
    height: int,
    row_start: int = 0,
    row_stop: Optional[int] = None
) -> np.ndarray:
    """
    Resample a plane to (height, width) with bilinear interpolation.

    Vectorized counterpart of bilinear_sample with the same evaluation
    order. A band of output rows can be requested so callers can split
    the work.

    Args:
        plane: 2D scalar array (source height, source width)
        width: Target width
        height: Target height
        row_start: First output row to compute
        row_stop: One past the last output row (default: height)

    Returns:
        float32 array of shape (row_stop - row_start, width)
    """
    src_h, src_w = plane.shape
    ys = source_coordinates(height, src_h)[row_start:row_stop]
    xs = source_coordinates(width, src_w)

    y_floor = np.floor(ys)
    x_floor = np.floor(xs)
    dy = (ys - y_floor)[:, np.newaxis]
    dx = (xs - x_floor)[np.newaxis, :]

    y0 = y_floor.astype(np.intp)
    x0 = x_floor.astype(np.intp)
    y1 = np.minimum(y0 + 1, src_h - 1)[:, np.newaxis]
    x1 = np.minimum(x0 + 1, src_w - 1)[np.newaxis, :]
    y0 = y0[:, np.newaxis]
    x0 = x0[np.newaxis, :]

    v00 = plane[y0, x0].astype(np.float32)
    v01 = plane[y0, x1].astype(np.float32)
    v10 = plane[y1, x0].astype(np.float32)
    v11 = plane[y1, x1].astype(np.float32)

    one = np.float32(1.0)
    v0 = v00 * (one - dx) + v01 * dx
    v1 = v10 * (one - dx) + v11 * dx

    return v0 * (one - dy) + v1 * dy


def normalize_to_u8(values: np.ndarray) -> np.ndarray:
    """
    Scale 16-bit intensities to 8-bit: round(clamp(v / 65535 * 255, 0, 255)).

    Rounding is half-to-even, matching rintf in the GPU kernel.
    """
    scaled = np.asarray(values, dtype=np.float32) / np.float32(VOXEL_MAX) * np.float32(PIXEL_MAX)
    return np.rint(np.clip(scaled, np.float32(0.0), np.float32(PIXEL_MAX))).astype(np.uint8)
