"""
Loaders Package

Contains the DICOM series loader that assembles volumes.
"""

from .dicom_loader import DICOMSeriesLoader, HAS_PYDICOM

__all__ = [
    'DICOMSeriesLoader',
    'HAS_PYDICOM',
]
