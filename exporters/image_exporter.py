"""
Slice Image Exporter

Writes extracted slice images as 8-bit grayscale image files.
"""

from pathlib import Path
from typing import Union
import logging

try:
    from PIL import Image
    HAS_PIL = True
except ImportError:
    HAS_PIL = False

from config import DEFAULT_EXPORT, ExportConfig
from core.base import BaseExporter, SliceImage


class SliceImageExporter(BaseExporter):
    """Exports SliceImage objects through Pillow."""

    def __init__(self, config: ExportConfig = DEFAULT_EXPORT):
        if not HAS_PIL:
            raise ImportError(
                "Pillow is required for image export. "
                "Install it with: pip install Pillow"
            )
        self.config = config

    def export(self, image: SliceImage, path: Union[str, Path]) -> Path:
        """
        Write an image to disk.

        Args:
            image: SliceImage to write
            path: Destination file; parent directories are created

        Returns:
            Path of the written file
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        Image.fromarray(image.pixels).save(path, format=self.config.image_format)
        logging.info(f"Saved {image.width}x{image.height} slice to {path}")
        return path

    def default_filename(self, orientation, index: int) -> str:
        """File name for a slice built from the configured template."""
        return self.config.filename_template.format(
            orientation=orientation.name.lower(),
            index=index
        )
