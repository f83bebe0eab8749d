"""
Tests for nearest-neighbor resampling and export tiers.
"""

import unittest
from unittest.mock import patch
import numpy as np
from PIL import Image

from ..errors import OutputCollision
from ..processing.discovery import SourceAsset
from ..processing.resample import (
    ExportTier, ResampleEngine, ResampleFilter, build_tiers, check_export_paths, export_relative_path
)
from ..utils.image import ImageUtils


def checkerboard(width: int, height: int) -> Image.Image:
    """Image where every pixel has a distinct color."""
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    for y in range(height):
        for x in range(width):
            pixels[y, x] = (x * 40 % 256, y * 40 % 256, (x + y) * 10 % 256, 255)
    return Image.fromarray(pixels)


class TestExportTier(unittest.TestCase):
    """Test tier construction."""

    def test_label(self):
        self.assertEqual(ExportTier(2).label, "2x")

    def test_invalid_factors(self):
        for factor in (0, -1, 1.5, True):
            with self.assertRaises(ValueError):
                ExportTier(factor)

    def test_build_tiers_sorted_and_deduplicated(self):
        tiers = build_tiers([4, 1, 2, 2])

        self.assertEqual([t.factor for t in tiers], [1, 2, 4])
        self.assertTrue(all(t.filter is ResampleFilter.NEAREST for t in tiers))

    def test_unknown_filter(self):
        with self.assertRaises(ValueError):
            build_tiers([1], filter="bilinear")

    def test_export_relative_path(self):
        self.assertEqual(export_relative_path("chars/hero.png", ExportTier(2)), "2x/chars/hero.png")
        self.assertEqual(export_relative_path("tile.PNG", ExportTier(1)), "1x/tile.png")

    def test_export_paths_unique(self):
        check_export_paths(["chars/hero.png", "hero.png", "tile.PNG"])

    def test_case_variants_collide(self):
        with self.assertRaises(OutputCollision) as ctx:
            check_export_paths(["hero.PNG", "hero.png"])

        self.assertIn("'hero.PNG'", str(ctx.exception))
        self.assertIn("'hero.png'", str(ctx.exception))
        self.assertEqual(ctx.exception.path, "hero.png")
        self.assertEqual(ctx.exception.stage, "plan")

    def test_extensionless_source_collides(self):
        with self.assertRaises(OutputCollision):
            check_export_paths(["items/gem", "items/gem.png"])


class TestResampleEngine(unittest.TestCase):
    """Test ResampleEngine functionality."""

    def setUp(self):
        self.engine = ResampleEngine()

    def test_scale_dimensions(self):
        image = checkerboard(3, 5)
        for factor in (1, 2, 3, 4):
            scaled = self.engine.scale_nearest(image, factor)
            self.assertEqual(scaled.size, (3 * factor, 5 * factor))
            self.assertEqual(scaled.mode, 'RGBA')

    def test_every_pixel_copies_its_source(self):
        image = checkerboard(4, 3)
        scaled = self.engine.scale_nearest(image, 3)

        source = np.asarray(image)
        result = np.asarray(scaled)
        for y in range(result.shape[0]):
            for x in range(result.shape[1]):
                np.testing.assert_array_equal(result[y, x], source[y // 3, x // 3])

    def test_only_source_colors_appear(self):
        image = checkerboard(5, 5)
        scaled = self.engine.scale_nearest(image, 4)

        source_colors = set(map(tuple, np.asarray(image).reshape(-1, 4)))
        scaled_colors = set(map(tuple, np.asarray(scaled).reshape(-1, 4)))
        self.assertEqual(scaled_colors, source_colors)

    def test_factor_one_is_identity_copy(self):
        image = checkerboard(4, 4)
        scaled = self.engine.scale_nearest(image, 1)

        self.assertIsNot(scaled, image)
        self.assertEqual(scaled.tobytes(), image.tobytes())

    def test_invalid_factor(self):
        with self.assertRaises(ValueError):
            self.engine.scale_nearest(checkerboard(2, 2), 0)

    def test_trim_transparent(self):
        image = Image.new('RGBA', (10, 10), (0, 0, 0, 0))
        image.putpixel((3, 4), (255, 0, 0, 255))
        image.putpixel((5, 7), (0, 255, 0, 1))

        trimmed = self.engine.trim_transparent(image)

        self.assertEqual(trimmed.size, (3, 4))
        self.assertEqual(trimmed.getpixel((0, 0)), (255, 0, 0, 255))

    def test_trim_fully_transparent(self):
        trimmed = self.engine.trim_transparent(Image.new('RGBA', (8, 8), (0, 0, 0, 0)))

        self.assertEqual(trimmed.size, (1, 1))
        self.assertEqual(trimmed.getpixel((0, 0)), (0, 0, 0, 0))

    def test_resample_asset_with_trim(self):
        image = Image.new('RGBA', (16, 16), (0, 0, 0, 0))
        image.paste((10, 20, 30, 255), (4, 4, 8, 6))
        asset = SourceAsset("items/gem.png", image, ImageUtils.fingerprint(image))

        raster = self.engine.resample(asset, ExportTier(2, trim_transparent=True))

        self.assertEqual(raster.identity, "items/gem.png")
        self.assertEqual((raster.width, raster.height), (8, 4))
        self.assertEqual(raster.output_path, "2x/items/gem.png")

    def test_output_size_matches_resample(self):
        image = Image.new('RGBA', (16, 16), (0, 0, 0, 0))
        image.paste((10, 20, 30, 255), (4, 4, 8, 6))
        for tier in (ExportTier(1), ExportTier(3), ExportTier(2, trim_transparent=True)):
            self.assertEqual(self.engine.output_size(image, tier),
                             self.engine.resample_image(image, tier).size)

    def test_output_size_fully_transparent_trim(self):
        image = Image.new('RGBA', (8, 8), (0, 0, 0, 0))
        self.assertEqual(self.engine.output_size(image, ExportTier(4, trim_transparent=True)), (4, 4))

    def test_output_size_copies_no_pixels(self):
        with patch.object(ResampleEngine, 'scale_nearest', side_effect=AssertionError("resampled")):
            self.assertEqual(self.engine.output_size(checkerboard(3, 5), ExportTier(4)), (12, 20))

    def test_resample_does_not_mutate_source(self):
        image = checkerboard(4, 4)
        before = image.tobytes()
        asset = SourceAsset("a.png", image, ImageUtils.fingerprint(image))

        self.engine.resample(asset, ExportTier(4))

        self.assertEqual(image.tobytes(), before)
        self.assertEqual(ImageUtils.fingerprint(image), asset.fingerprint)


if __name__ == '__main__':
    unittest.main()
