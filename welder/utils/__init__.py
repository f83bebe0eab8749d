"""
Utility modules for image encoding and atomic filesystem writes.
"""

from .image import ImageUtils
from .files import atomic_write_bytes, remove_tree, list_files

__all__ = [
    "ImageUtils",
    "atomic_write_bytes",
    "remove_tree",
    "list_files",
]
