"""
Slicing Types

Enums shared by the volume, the backends and the loaders.
"""

from enum import Enum


class Orientation(Enum):
    """Anatomical plane to extract. The value is the kernel selector."""
    AXIAL = 0     # fixes depth (Z)
    CORONAL = 1   # fixes height (Y)
    SAGITTAL = 2  # fixes width (X)

    @classmethod
    def from_name(cls, name: str) -> "Orientation":
        return cls[name.strip().upper()]


class Interpolation(Enum):
    """Resampling applied to off-axis planes."""
    NONE = "none"
    BILINEAR = "bilinear"


class SortBy(Enum):
    """Attribute used to order the images of a series."""
    IMAGE_POSITION_PATIENT = "image_position_patient"
    TABLE_POSITION = "table_position"
    INSTANCE_NUMBER = "instance_number"
    NONE = "none"
