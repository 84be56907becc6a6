"""
DICOM Series Loader

Reads a stack of axial DICOM images into a Volume: orders the images,
decodes them to 16-bit intensities and derives the voxel spacing.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union
import concurrent.futures
import logging
import numpy as np

try:
    import pydicom
    from pydicom.errors import InvalidDicomError
    from pydicom.multival import MultiValue
    from pydicom.pixels import apply_modality_lut
    HAS_PYDICOM = True
except ImportError:
    HAS_PYDICOM = False

from config import DEFAULT_LOADER, DEFAULT_SLICING, LoaderConfig, SlicingConfig, VOXEL_MAX
from core.base import BaseLoader
from core.errors import (
    LoaderError,
    NoValidImagesError,
    InconsistentDimensionsError,
    MissingSpacingError,
)
from core.types import SortBy
from slicing.volume import Volume


# Sort key of a dataset dropped from the stack
_UNSORTABLE = object()


def _first_value(value) -> Optional[float]:
    """First entry of a possibly multi-valued numeric element."""
    if value is None:
        return None
    if isinstance(value, (MultiValue, list, tuple)):
        if len(value) == 0:
            return None
        value = value[0]
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class DICOMSeriesLoader(BaseLoader):
    """
    Loads a single axial DICOM series as a Volume.

    Images are expected to come from one series and acquisition and to
    share one size. Only the first frame (and first sample) of each image
    is used.
    """

    def __init__(
        self,
        sort_by: Optional[SortBy] = None,
        config: LoaderConfig = DEFAULT_LOADER,
        slicing_config: SlicingConfig = DEFAULT_SLICING
    ):
        """
        Initialize loader.

        Args:
            sort_by: Attribute ordering the images (default: config.sort_by)
            config: Loader configuration
            slicing_config: Configuration handed to the created Volume
        """
        if not HAS_PYDICOM:
            raise ImportError(
                "pydicom is required for DICOM loading. "
                "Install it with: pip install pydicom"
            )
        self.sort_by = sort_by if sort_by is not None else config.sort_by
        self.config = config
        self.slicing_config = slicing_config

    def load(self, source: Union[str, Path]) -> Volume:
        return self.load_from_directory(source)

    def can_load(self, source: Union[str, Path]) -> bool:
        return Path(source).is_dir()

    def load_from_datasets(self, datasets: Sequence["pydicom.Dataset"]) -> Volume:
        """
        Build a volume from already parsed datasets.

        Args:
            datasets: Parsed DICOM datasets, in any order

        Returns:
            Volume with the images stacked in sort order

        Raises:
            NoValidImagesError: If no dataset yields an image
            InconsistentDimensionsError: If the images differ in size
            MissingSpacingError: If no dataset carries spacing
        """
        entries: List[Tuple[Optional[float], np.ndarray]] = []
        for ds in datasets:
            entry = self._extract_image_with_order(ds)
            if entry is not None:
                entries.append(entry)

        if not entries:
            raise NoValidImagesError()

        self._sort_images(entries)
        images = [image for _, image in entries]
        self._validate_dimensions(images)

        spacing = self._get_spacing(datasets)
        volume = Volume(np.stack(images, axis=0), spacing, self.slicing_config)

        skipped = len(datasets) - len(images)
        if skipped:
            logging.warning(f"Skipped {skipped} DICOM objects without usable images")
        logging.info(f"Volume assembled: {volume.shape}, spacing {tuple(volume.spacing)}")
        return volume

    def load_from_files(self, paths: Sequence[Union[str, Path]]) -> Volume:
        """
        Read DICOM files in parallel and build a volume from them.

        Raises:
            LoaderError: If a file cannot be read as DICOM
        """
        paths = [Path(p) for p in paths]

        def read(path: Path):
            try:
                return pydicom.dcmread(path)
            except (InvalidDicomError, OSError) as e:
                raise LoaderError(f"Failed to read DICOM file {path}: {e}") from e

        with concurrent.futures.ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            datasets = list(executor.map(read, paths))

        logging.info(f"Read {len(datasets)} DICOM files")
        return self.load_from_datasets(datasets)

    def load_from_directory(self, path: Union[str, Path]) -> Volume:
        """
        Load every DICOM file directly inside a directory.

        Raises:
            FileNotFoundError: If the directory does not exist
            NoValidImagesError: If it holds no DICOM files
        """
        path = Path(path)
        if not path.is_dir():
            raise FileNotFoundError(f"DICOM directory not found: {path}")

        extensions = {ext.lower() for ext in self.config.extensions}
        paths = sorted(
            p for p in path.iterdir()
            if p.is_file() and p.suffix.lower() in extensions
        )
        if not paths:
            raise NoValidImagesError(f"No DICOM files found in {path}")

        return self.load_from_files(paths)

    def _extract_image_with_order(self, ds) -> Optional[Tuple[Optional[float], np.ndarray]]:
        if not self._has_sort_attribute(ds):
            return None
        order = self._get_sort_order(ds)
        if order is _UNSORTABLE:
            return None
        image = self._decode_image(ds)
        if image is None:
            return None
        return order, image

    def _has_sort_attribute(self, ds) -> bool:
        if self.sort_by is SortBy.IMAGE_POSITION_PATIENT:
            return "ImagePositionPatient" in ds
        elif self.sort_by is SortBy.TABLE_POSITION:
            return "TablePosition" in ds
        elif self.sort_by is SortBy.INSTANCE_NUMBER:
            return "InstanceNumber" in ds
        return True

    def _get_sort_order(self, ds):
        """
        Sort key of a dataset.

        Returns None when the key is missing from a parsed attribute, and
        _UNSORTABLE when ImagePositionPatient holds non-numeric values.
        """
        if self.sort_by is SortBy.IMAGE_POSITION_PATIENT:
            try:
                position = ds.ImagePositionPatient
            except ValueError:
                return _UNSORTABLE
            if position is None or position == "":
                position = []
            elif not isinstance(position, (MultiValue, list, tuple)):
                position = [position]
            coordinates = [_first_value(value) for value in position]
            if any(value is None for value in coordinates):
                return _UNSORTABLE
            if len(coordinates) < 3:
                return None
            return coordinates[2]
        elif self.sort_by is SortBy.TABLE_POSITION:
            return _first_value(ds.TablePosition)
        elif self.sort_by is SortBy.INSTANCE_NUMBER:
            return _first_value(ds.InstanceNumber)
        return 0.0

    def _decode_image(self, ds) -> Optional[np.ndarray]:
        """Decode the first frame to uint16 with modality and VOI LUTs applied."""
        if "PixelData" not in ds:
            return None
        try:
            pixels = ds.pixel_array
        except (AttributeError, ValueError, NotImplementedError, RuntimeError) as e:
            logging.warning(f"Failed to decode pixel data: {e}")
            return None

        samples = int(ds.get("SamplesPerPixel", 1) or 1)
        if pixels.ndim == 4:
            pixels = pixels[0, :, :, 0]
        elif pixels.ndim == 3:
            pixels = pixels[:, :, 0] if samples > 1 else pixels[0]

        values = np.asarray(apply_modality_lut(pixels, ds), dtype=np.float64)
        return self._window_to_uint16(values, ds)

    @staticmethod
    def _window_to_uint16(values: np.ndarray, ds) -> np.ndarray:
        """
        Map the first VOI window onto the full 16-bit range.

        Uses the DICOM LINEAR window function (PS3.3 C.11.2.1.2): values
        at or below c - 0.5 - (w - 1) / 2 map to 0, values above
        c - 0.5 + (w - 1) / 2 map to 65535, and values in between follow
        ((x - (c - 0.5)) / (w - 1) + 0.5) scaled to the output range.

        Without a window (or with a width below 1), values are clipped
        into the uint16 range.
        """
        center = _first_value(ds.get("WindowCenter"))
        width = _first_value(ds.get("WindowWidth"))

        if center is None or width is None or width < 1:
            return np.clip(np.rint(values), 0, VOXEL_MAX).astype(np.uint16)

        lower = center - 0.5 - (width - 1) / 2
        upper = center - 0.5 + (width - 1) / 2

        if width == 1:
            # Degenerate window is a threshold at c - 0.5
            normalized = (values > lower).astype(np.float64)
        else:
            normalized = (values - (center - 0.5)) / (width - 1) + 0.5
            normalized = np.where(values <= lower, 0.0, normalized)
            normalized = np.where(values > upper, 1.0, normalized)

        return np.rint(np.clip(normalized, 0.0, 1.0) * VOXEL_MAX).astype(np.uint16)

    def _sort_images(self, entries: List[Tuple[Optional[float], np.ndarray]]) -> None:
        if self.sort_by is not SortBy.NONE:
            # Missing keys first, then ascending
            entries.sort(key=lambda entry: (entry[0] is not None, entry[0] or 0.0))

        # Patient Z grows towards the head; stack from the top down
        if self.sort_by is SortBy.IMAGE_POSITION_PATIENT:
            entries.reverse()

    @staticmethod
    def _validate_dimensions(images: Sequence[np.ndarray]) -> None:
        first_shape = images[0].shape
        for image in images:
            if image.shape != first_shape:
                raise InconsistentDimensionsError(
                    f"Inconsistent image dimensions: {image.shape} != {first_shape}"
                )

    @staticmethod
    def _get_spacing(datasets) -> Tuple[float, float, float]:
        """(x, y, z) spacing from the first dataset carrying all of it."""
        for ds in datasets:
            pixel_spacing = ds.get("PixelSpacing")
            thickness = _first_value(ds.get("SliceThickness"))
            if pixel_spacing is None or thickness is None or len(pixel_spacing) < 2:
                continue
            try:
                # PixelSpacing is (row spacing, column spacing) = (y, x)
                return float(pixel_spacing[1]), float(pixel_spacing[0]), thickness
            except (TypeError, ValueError):
                continue
        raise MissingSpacingError()
