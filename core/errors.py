"""
Error Types

Exceptions raised by the slicing engine and the series loader.
"""


class SlicingError(Exception):
    """Base class for slicing engine failures."""


class VolumeError(SlicingError, ValueError):
    """Volume data or spacing does not satisfy the construction invariants."""


class IndexOutOfRangeError(SlicingError, IndexError):
    """Slice index is past the extent of the fixed axis."""

    def __init__(self, index: int, orientation, extent: int):
        self.index = index
        self.orientation = orientation
        self.extent = extent
        super().__init__(
            f"Slice index {index} out of range for {orientation.name.lower()} "
            f"orientation (extent {extent})"
        )


class BufferAssemblyError(SlicingError, RuntimeError):
    """Pixel byte count does not match the declared image size."""


class GPUError(SlicingError, RuntimeError):
    """Base class for GPU path failures."""


class DeviceUnavailableError(GPUError):
    """No usable GPU device could be acquired."""


class DeviceLostError(GPUError):
    """The GPU failed while an extraction was in flight."""


class LoaderError(Exception):
    """Base class for series loading failures."""


class NoValidImagesError(LoaderError):
    """No decodable images were found."""

    def __init__(self, message: str = "No valid DICOM images found"):
        super().__init__(message)


class InconsistentDimensionsError(LoaderError):
    """Images of the series do not share one shape."""


class MissingSpacingError(LoaderError):
    """No image carries both pixel spacing and slice thickness."""

    def __init__(self, message: str = "Missing spacing information"):
        super().__init__(message)
