"""
Image processing utilities for the welder pipeline.
"""

from typing import Tuple, Optional, Union
from pathlib import Path
from PIL import Image, UnidentifiedImageError
import numpy as np
import hashlib
import io

from ..errors import DecodeError
from .files import atomic_write_bytes


# Fixed encoder settings; changing any of these changes every output byte.
PNG_SAVE_OPTIONS = {
    'compress_level': 9,
    'optimize': False,
}

SUPPORTED_FORMATS = ('PNG',)


class ImageUtils:
    """Utility class for common image processing operations."""

    @staticmethod
    def load_image(data: Union[bytes, str, Path], name: Optional[str] = None) -> Image.Image:
        """
        Decode a PNG source into an 8-bit RGBA image.

        Args:
            data: Image data as bytes or a file path
            name: Identity reported in errors (defaults to the path)

        Returns:
            Fully loaded RGBA PIL Image, detached from the source file

        Raises:
            DecodeError: If data is not a supported raster
        """
        if isinstance(data, bytes):
            source = io.BytesIO(data)
            label = name or "<bytes>"
        elif isinstance(data, (str, Path)):
            source = data
            label = name or str(data)
        else:
            raise DecodeError(f"unsupported image data type: {type(data).__name__}", path=name)

        try:
            with Image.open(source) as image:
                if image.format not in SUPPORTED_FORMATS:
                    raise DecodeError(f"unsupported image format {image.format}, expected PNG",
                                      path=label)
                image.load()
                return ImageUtils.ensure_rgba(image)
        except DecodeError:
            raise
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError) as e:
            raise DecodeError(f"cannot decode image: {e}", path=label) from e

    @staticmethod
    def ensure_rgba(image: Image.Image) -> Image.Image:
        """Convert image to 8-bit RGBA, always returning a new image."""
        if image.mode == 'RGBA':
            return image.copy()
        if image.mode in ('I', 'I;16', 'I;16B', 'I;16L'):
            # 16-bit greyscale: keep the high byte
            array = (np.asarray(image, dtype=np.uint32) >> 8).astype(np.uint8)
            image = Image.fromarray(array)
        return image.convert('RGBA')

    @staticmethod
    def fingerprint(image: Image.Image) -> str:
        """SHA-256 over mode, size and decoded pixel bytes."""
        digest = hashlib.sha256()
        digest.update(f"{image.mode}:{image.width}x{image.height}:".encode('ascii'))
        digest.update(image.tobytes())
        return digest.hexdigest()

    @staticmethod
    def get_bounding_box(image: Image.Image) -> Optional[Tuple[int, int, int, int]]:
        """
        Get bounding box of non-transparent content.

        Args:
            image: RGBA image to analyze

        Returns:
            Bounding box as (left, top, right, bottom) or None if fully transparent
        """
        if image.mode != 'RGBA':
            return (0, 0, image.width, image.height)

        alpha = image.getchannel('A')
        return alpha.getbbox()

    @staticmethod
    def encode_png(image: Image.Image) -> bytes:
        """
        Encode image as PNG with the fixed encoder settings.

        No text chunks, ICC profile or timestamps are written, so equal
        pixels always produce equal bytes.
        """
        # Strip anything PIL might carry over into ancillary chunks
        clean = Image.frombytes(image.mode, image.size, image.tobytes())
        buffer = io.BytesIO()
        clean.save(buffer, format='PNG', **PNG_SAVE_OPTIONS)
        return buffer.getvalue()

    @staticmethod
    def save_image(image: Image.Image, path: Union[str, Path]) -> Path:
        """
        Save image as PNG, atomically.

        Args:
            image: Image to save
            path: Output file path

        Returns:
            The written path

        Raises:
            WriteError: If the file cannot be written
        """
        return atomic_write_bytes(Path(path), ImageUtils.encode_png(image))
