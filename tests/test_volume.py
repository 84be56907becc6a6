import concurrent.futures
import unittest
import numpy as np

from config import SlicingConfig
from core.base import SliceImage
from core.errors import BufferAssemblyError, IndexOutOfRangeError, VolumeError
from core.types import Orientation, Interpolation
from slicing.resampling import normalize_to_u8
from slicing.volume import Volume, Spacing


def make_volume(shape=(6, 8, 10), spacing=(1.0, 1.0, 1.0), seed=0, config=None):
    rng = np.random.default_rng(seed)
    data = rng.integers(0, 65535, size=shape, dtype=np.uint16)
    if config is None:
        return Volume(data, spacing)
    return Volume(data, spacing, config)


class TestVolumeConstruction(unittest.TestCase):
    def test_initialization(self):
        vol = make_volume(spacing=(0.5, 0.5, 2.0))
        self.assertEqual(vol.dim, (6, 8, 10))
        self.assertEqual(vol.spacing, Spacing(0.5, 0.5, 2.0))
        self.assertEqual(vol.isotropic_dim, (24, 8, 10))
        self.assertFalse(vol.has_gpu_extractor)

    def test_rejects_non_positive_spacing(self):
        data = np.zeros((2, 2, 2), dtype=np.uint16)
        for spacing in [(0.0, 1.0, 1.0), (1.0, -1.0, 1.0), (1.0, 1.0, float('nan'))]:
            with self.assertRaises(VolumeError):
                Volume(data, spacing)

    def test_rejects_wrong_shape_or_dtype(self):
        with self.assertRaises(VolumeError):
            Volume(np.zeros((4, 4), dtype=np.uint16), (1.0, 1.0, 1.0))
        with self.assertRaises(VolumeError):
            Volume(np.zeros((2, 4, 4), dtype=np.float32), (1.0, 1.0, 1.0))
        with self.assertRaises(VolumeError):
            Volume(np.zeros((2, 4, 4), dtype=np.uint16), (1.0, 1.0))

    def test_from_slices_stacks_in_order(self):
        slices = [np.full((3, 4), i, dtype=np.uint16) for i in range(5)]
        vol = Volume.from_slices(slices, (1.0, 1.0, 3.0))
        self.assertEqual(vol.dim, (5, 3, 4))
        np.testing.assert_array_equal(vol.data[:, 0, 0], np.arange(5))
        self.assertEqual(vol.isotropic_dim, (15, 3, 4))

    def test_from_slices_rejects_empty(self):
        with self.assertRaises(VolumeError):
            Volume.from_slices([], (1.0, 1.0, 1.0))

    def test_isotropic_dim_fixed_at_construction(self):
        vol = make_volume(spacing=(1.0, 1.0, 2.0))
        before = vol.isotropic_dim
        vol.data[...] = 0
        self.assertEqual(vol.isotropic_dim, before)


class TestGetSlice(unittest.TestCase):
    def setUp(self):
        self.vol = make_volume()

    def test_plane_axes(self):
        data = self.vol.data
        np.testing.assert_array_equal(self.vol.get_slice(2, Orientation.AXIAL), data[2, :, :])
        np.testing.assert_array_equal(self.vol.get_slice(3, Orientation.CORONAL), data[:, 3, :])
        np.testing.assert_array_equal(self.vol.get_slice(4, Orientation.SAGITTAL), data[:, :, 4])

        self.assertEqual(self.vol.get_slice(0, Orientation.AXIAL).shape, (8, 10))
        self.assertEqual(self.vol.get_slice(0, Orientation.CORONAL).shape, (6, 10))
        self.assertEqual(self.vol.get_slice(0, Orientation.SAGITTAL).shape, (6, 8))

    def test_returns_read_only_view(self):
        plane = self.vol.get_slice(1, Orientation.CORONAL)
        self.assertTrue(np.shares_memory(plane, self.vol.data))
        self.assertFalse(plane.flags.writeable)
        with self.assertRaises(ValueError):
            plane[0, 0] = 1

    def test_view_tracks_owner_mutation(self):
        plane = self.vol.get_slice(0, Orientation.AXIAL)
        self.vol.data[0, 0, 0] = 1234
        self.assertEqual(plane[0, 0], 1234)

    def test_index_one_past_end_fails_for_every_orientation(self):
        for orientation in Orientation:
            extent = self.vol.extent(orientation)
            with self.assertRaises(IndexOutOfRangeError) as ctx:
                self.vol.get_slice(extent, orientation)
            self.assertEqual(ctx.exception.extent, extent)
            self.assertIs(ctx.exception.orientation, orientation)
            with self.assertRaises(IndexOutOfRangeError):
                self.vol.get_image(extent, orientation, Interpolation.BILINEAR)

    def test_negative_index_fails(self):
        with self.assertRaises(IndexOutOfRangeError):
            self.vol.get_slice(-1, Orientation.AXIAL)

    def test_index_error_is_an_index_error(self):
        with self.assertRaises(IndexError):
            self.vol.get_slice(100, Orientation.SAGITTAL)

    def test_extents(self):
        self.assertEqual(self.vol.extent(Orientation.AXIAL), 6)
        self.assertEqual(self.vol.extent(Orientation.CORONAL), 8)
        self.assertEqual(self.vol.extent(Orientation.SAGITTAL), 10)
        self.assertTrue(self.vol.is_valid_index(9, Orientation.SAGITTAL))
        self.assertFalse(self.vol.is_valid_index(9, Orientation.CORONAL))


class TestGetImage(unittest.TestCase):
    def setUp(self):
        self.vol = make_volume(shape=(5, 12, 16), spacing=(0.5, 0.5, 2.0))

    def test_no_interpolation_normalizes_native_plane(self):
        image = self.vol.get_image(3, Orientation.SAGITTAL)
        self.assertIsInstance(image, SliceImage)
        self.assertEqual((image.width, image.height), (12, 5))
        self.assertEqual(image.pixels.dtype, np.uint8)
        np.testing.assert_array_equal(image.pixels, normalize_to_u8(self.vol.data[:, :, 3]))

    def test_axial_never_resizes(self):
        for index in range(self.vol.extent(Orientation.AXIAL)):
            for interpolation in Interpolation:
                image = self.vol.get_image(index, Orientation.AXIAL, interpolation)
                self.assertEqual((image.width, image.height), (16, 12))
                np.testing.assert_array_equal(
                    image.pixels, normalize_to_u8(self.vol.data[index])
                )

    def test_bilinear_uses_isotropic_table(self):
        self.assertEqual(self.vol.isotropic_dim, (20, 12, 16))

        coronal = self.vol.get_image(2, Orientation.CORONAL, Interpolation.BILINEAR)
        self.assertEqual((coronal.width, coronal.height), (16, 20))
        self.assertEqual(coronal.pixels.shape, (20, 16))

        sagittal = self.vol.get_image(2, Orientation.SAGITTAL, Interpolation.BILINEAR)
        self.assertEqual((sagittal.width, sagittal.height), (12, 20))
        self.assertEqual(self.vol.plane_size(Orientation.SAGITTAL, Interpolation.BILINEAR), (12, 20))

    def test_stretches_along_depth_only(self):
        # Constant rows along Z stretch without changing value
        data = np.zeros((4, 3, 5), dtype=np.uint16)
        for z in range(4):
            data[z] = z * 20000
        vol = Volume(data, (1.0, 1.0, 2.0))
        image = vol.get_image(1, Orientation.CORONAL, Interpolation.BILINEAR)

        self.assertEqual((image.width, image.height), (5, 8))
        # Every row is constant across X
        self.assertTrue(np.all(image.pixels == image.pixels[:, :1]))
        # First and last rows clamp to the first and last slices
        self.assertEqual(image.pixels[0, 0], 0)
        self.assertEqual(image.pixels[-1, 0], normalize_to_u8(np.array([60000]))[0])
        # Monotonic along Z
        self.assertTrue(np.all(np.diff(image.pixels[:, 0].astype(int)) >= 0))

    def test_isotropic_spacing_is_identity(self):
        vol = make_volume(shape=(7, 9, 11), spacing=(1.0, 1.0, 1.0), seed=5)
        for orientation in (Orientation.CORONAL, Orientation.SAGITTAL):
            for index in (0, 3, 6):
                resampled = vol.get_image(index, orientation, Interpolation.BILINEAR)
                native = vol.get_image(index, orientation, Interpolation.NONE)
                self.assertEqual(resampled.shape, native.shape)
                difference = np.abs(
                    resampled.pixels.astype(int) - native.pixels.astype(int)
                )
                self.assertLessEqual(difference.max(), 1)

    def test_row_banding_does_not_change_result(self):
        data = make_volume(shape=(9, 10, 12), spacing=(0.6, 0.6, 1.7), seed=11).data
        single = Volume(data, (0.6, 0.6, 1.7), SlicingConfig(rows_per_task=1000))
        banded = Volume(data, (0.6, 0.6, 1.7), SlicingConfig(rows_per_task=3, cpu_workers=4))

        for orientation in (Orientation.CORONAL, Orientation.SAGITTAL):
            np.testing.assert_array_equal(
                single.get_image(4, orientation, Interpolation.BILINEAR).pixels,
                banded.get_image(4, orientation, Interpolation.BILINEAR).pixels,
            )

    def test_concurrent_requests_are_deterministic(self):
        vol = make_volume(shape=(8, 10, 12), spacing=(0.5, 0.5, 1.5), seed=2)
        requests = [
            (index, orientation)
            for orientation in (Orientation.CORONAL, Orientation.SAGITTAL)
            for index in range(8)
        ]
        expected = [
            vol.get_image(i, o, Interpolation.BILINEAR).pixels for i, o in requests
        ]

        with concurrent.futures.ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(
                lambda request: vol.get_image(request[0], request[1], Interpolation.BILINEAR).pixels,
                requests
            ))

        for got, want in zip(results, expected):
            np.testing.assert_array_equal(got, want)

    def test_timing_log_names_backend(self):
        with self.assertLogs(level="DEBUG") as logs:
            self.vol.get_image(1, Orientation.CORONAL, Interpolation.BILINEAR)
        self.assertTrue(any("CPU (NumPy) resample coronal[1]" in line for line in logs.output))

    def test_close_without_gpu_is_noop(self):
        with make_volume() as vol:
            vol.get_image(0, Orientation.CORONAL, Interpolation.BILINEAR)
        self.assertFalse(vol.has_gpu_extractor)


class TestSliceImage(unittest.TestCase):
    def test_from_raw(self):
        image = SliceImage.from_raw(3, 2, bytes(range(6)))
        self.assertEqual(image.shape, (2, 3))
        np.testing.assert_array_equal(image.pixels, [[0, 1, 2], [3, 4, 5]])
        self.assertEqual(image.tobytes(), bytes(range(6)))

    def test_from_raw_size_mismatch(self):
        with self.assertRaises(BufferAssemblyError):
            SliceImage.from_raw(3, 3, bytes(8))
        with self.assertRaises(BufferAssemblyError):
            SliceImage.from_raw(2, 2, np.zeros(5, dtype=np.uint8))


if __name__ == '__main__':
    unittest.main()
