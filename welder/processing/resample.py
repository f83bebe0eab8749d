"""
Resample engine: pixel-art safe integer upscaling.

Only nearest-neighbor sampling is supported; smoothing filters would blur
the hard pixel edges the exports exist to preserve.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import PurePosixPath
from typing import Dict, List, Sequence, Tuple
from PIL import Image
import numpy as np

from .discovery import SourceAsset
from ..errors import OutputCollision
from ..utils.image import ImageUtils


class ResampleFilter(Enum):
    """Sampling filters understood by the engine."""
    NEAREST = "nearest"


@dataclass(frozen=True)
class ExportTier:
    """An integer export scale factor."""
    factor: int
    filter: ResampleFilter = ResampleFilter.NEAREST
    trim_transparent: bool = False

    def __post_init__(self):
        if isinstance(self.factor, bool) or not isinstance(self.factor, int) or self.factor < 1:
            raise ValueError(f"tier factor must be an integer >= 1, got {self.factor!r}")

    @property
    def label(self) -> str:
        return f"{self.factor}x"


@dataclass(frozen=True)
class ExportedRaster:
    """A source asset resampled at one tier, ready to be written as-is."""
    identity: str
    tier: ExportTier
    image: Image.Image

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def output_path(self) -> str:
        """Path relative to the dist directory's exports root."""
        return export_relative_path(self.identity, self.tier)


def export_relative_path(identity: str, tier: ExportTier) -> str:
    """``<tier>x/<relative-path>.png`` for a source identity."""
    return f"{tier.label}/{PurePosixPath(identity).with_suffix('.png').as_posix()}"


def check_export_paths(identities: Sequence[str]) -> None:
    """
    Ensure every identity maps to its own export path.

    ``hero.png`` and ``hero.PNG`` (or an extensionless ``hero``) would both
    be written to ``hero.png`` in every tier.

    Raises:
        OutputCollision: Naming both sources of the first clash found
    """
    seen: Dict[str, str] = {}
    for identity in identities:
        target = PurePosixPath(identity).with_suffix('.png').as_posix()
        if target in seen:
            raise OutputCollision(
                f"'{seen[target]}' and '{identity}' both export to '{target}'",
                path=identity
            )
        seen[target] = identity


def build_tiers(factors, trim_transparent: bool = False,
                filter: str = "nearest") -> List[ExportTier]:
    """Deduplicate factors and return tiers in ascending order."""
    resample_filter = ResampleFilter(filter)
    return [ExportTier(factor, resample_filter, trim_transparent)
            for factor in sorted(set(factors))]


class ResampleEngine:
    """Produces scaled copies of source rasters."""

    @staticmethod
    def trim_transparent(image: Image.Image) -> Image.Image:
        """
        Crop to the bounding box of pixels with non-zero alpha.

        A fully transparent image trims to a single transparent pixel.
        """
        bbox = ImageUtils.get_bounding_box(image)
        if bbox is None:
            return Image.new('RGBA', (1, 1), (0, 0, 0, 0))
        return image.crop(bbox)

    @staticmethod
    def scale_nearest(image: Image.Image, factor: int) -> Image.Image:
        """
        Upscale by an integer factor with nearest-neighbor sampling.

        Destination pixel (x, y) copies source pixel (x // factor, y // factor),
        so the result is exactly ``(width * factor, height * factor)``.
        """
        if isinstance(factor, bool) or not isinstance(factor, int) or factor < 1:
            raise ValueError(f"scale factor must be an integer >= 1, got {factor!r}")

        if factor == 1:
            return image.copy()

        pixels = np.asarray(image)
        scaled = np.repeat(np.repeat(pixels, factor, axis=0), factor, axis=1)
        return Image.fromarray(np.ascontiguousarray(scaled))

    @staticmethod
    def output_size(image: Image.Image, tier: ExportTier) -> Tuple[int, int]:
        """Size ``resample_image`` would produce, without copying any pixels."""
        width, height = image.size
        if tier.trim_transparent:
            bbox = ImageUtils.get_bounding_box(image)
            width, height = (1, 1) if bbox is None else (bbox[2] - bbox[0], bbox[3] - bbox[1])
        return (width * tier.factor, height * tier.factor)

    def resample_image(self, image: Image.Image, tier: ExportTier) -> Image.Image:
        if tier.trim_transparent:
            image = self.trim_transparent(image)
        if tier.filter is ResampleFilter.NEAREST:
            return self.scale_nearest(image, tier.factor)
        raise ValueError(f"Unsupported resample filter: {tier.filter}")

    def resample(self, asset: SourceAsset, tier: ExportTier) -> ExportedRaster:
        """Trim (if requested) and scale one asset for one tier."""
        return ExportedRaster(
            identity=asset.identity,
            tier=tier,
            image=self.resample_image(asset.image, tier),
        )
