"""
Exporters Package

Contains exporters for extracted slice images.
"""

from .image_exporter import SliceImageExporter, HAS_PIL

__all__ = ['SliceImageExporter', 'HAS_PIL']
