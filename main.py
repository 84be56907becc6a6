"""
Volume Slicer

Command-line entry point: loads a DICOM series, extracts one plane
and saves it as an image.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import numpy as np

from config import DEFAULT_LOADER, DEFAULT_SLICING
from core.errors import GPUError, LoaderError, SlicingError
from core.types import Interpolation, Orientation, SortBy
from exporters import SliceImageExporter
from loaders import DICOMSeriesLoader
from slicing import GPUContext


def setup_logging(verbose: bool = False):
    """Configure logging to stdout."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="volume-slicer",
        description="Extract an axial, coronal or sagittal slice from a DICOM series."
    )
    parser.add_argument("directory", type=Path, help="Directory holding the .dcm files")
    parser.add_argument("--index", type=int, default=None,
                        help="Slice index along the fixed axis (default: middle)")
    parser.add_argument("--orientation", choices=[o.name.lower() for o in Orientation],
                        default="axial")
    parser.add_argument("--interpolation", choices=[i.value for i in Interpolation],
                        default=DEFAULT_SLICING.interpolation.value)
    parser.add_argument("--sort-by", choices=[s.value for s in SortBy],
                        default=DEFAULT_LOADER.sort_by.value)
    parser.add_argument("--gpu", action="store_true", help="Resample on the GPU (CuPy)")
    parser.add_argument("--device", type=int, default=DEFAULT_SLICING.gpu_device_id,
                        help="CUDA device ordinal")
    parser.add_argument("--fallback-cpu", action="store_true",
                        help="Retry on the CPU when the GPU path fails")
    parser.add_argument("--compare", action="store_true",
                        help="Also render on the CPU and report the difference")
    parser.add_argument("-o", "--output", type=Path, default=None,
                        help="Output image path")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    orientation = Orientation.from_name(args.orientation)
    interpolation = Interpolation(args.interpolation)
    exporter = SliceImageExporter()

    try:
        loader = DICOMSeriesLoader(sort_by=SortBy(args.sort_by))
        volume = loader.load_from_directory(args.directory)
    except (LoaderError, FileNotFoundError) as e:
        logging.error(f"Failed to load series: {e}")
        return 1

    with volume:
        index = args.index if args.index is not None else volume.extent(orientation) // 2

        gpu_context = None
        if args.gpu:
            try:
                gpu_context = GPUContext.acquire(args.device)
            except GPUError as e:
                if not args.fallback_cpu:
                    logging.error(f"GPU unavailable: {e}")
                    return 1
                logging.warning(f"GPU unavailable: {e}. Falling back to CPU.")

        try:
            try:
                image = volume.get_image(index, orientation, interpolation, gpu_context)
            except GPUError as e:
                if not args.fallback_cpu:
                    raise
                logging.warning(f"GPU extraction failed: {e}. Falling back to CPU.")
                gpu_context = None
                image = volume.get_image(index, orientation, interpolation)
        except SlicingError as e:
            logging.error(f"Failed to extract slice: {e}")
            return 1

        output = args.output or Path(exporter.default_filename(orientation, index))
        exporter.export(image, output)

        if args.compare and gpu_context is not None:
            cpu_image = volume.get_image(index, orientation, interpolation)
            cpu_output = output.with_name(f"{output.stem}_cpu{output.suffix}")
            exporter.export(cpu_image, cpu_output)

            difference = np.abs(
                image.pixels.astype(np.int16) - cpu_image.pixels.astype(np.int16)
            )
            logging.info(
                f"GPU/CPU max difference: {int(difference.max())} "
                f"(mean {float(difference.mean()):.3f})"
            )

    return 0


if __name__ == "__main__":
    sys.exit(main())
