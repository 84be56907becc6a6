import tempfile
import unittest
from pathlib import Path
import numpy as np
from PIL import Image

from config import ExportConfig
from core.base import SliceImage
from core.types import Orientation
from exporters import SliceImageExporter


class TestSliceImageExporter(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        pixels = np.arange(6 * 9, dtype=np.uint8).reshape(6, 9) * 4
        self.image = SliceImage.from_raw(9, 6, pixels.tobytes())

    def tearDown(self):
        self._tmp.cleanup()

    def test_export_png(self):
        path = SliceImageExporter().export(self.image, self.tmp / "nested" / "slice.png")
        self.assertTrue(path.exists())

        with Image.open(path) as saved:
            self.assertEqual(saved.mode, "L")
            self.assertEqual(saved.size, (9, 6))
            np.testing.assert_array_equal(np.asarray(saved), self.image.pixels)

    def test_export_to_string_path(self):
        path = SliceImageExporter().export(self.image, str(self.tmp / "plain.png"))
        self.assertIsInstance(path, Path)
        self.assertTrue(path.exists())

    def test_configured_format(self):
        exporter = SliceImageExporter(ExportConfig(image_format="TIFF"))
        path = exporter.export(self.image, self.tmp / "slice.tif")
        with Image.open(path) as saved:
            self.assertEqual(saved.format, "TIFF")

    def test_default_filename(self):
        exporter = SliceImageExporter()
        self.assertEqual(exporter.default_filename(Orientation.CORONAL, 7), "coronal_0007.png")
        custom = SliceImageExporter(ExportConfig(filename_template="{index}-{orientation}.png"))
        self.assertEqual(custom.default_filename(Orientation.SAGITTAL, 12), "12-sagittal.png")


if __name__ == '__main__':
    unittest.main()
