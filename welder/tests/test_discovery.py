"""
Tests for source discovery and decoding.
"""

import os
import unittest
import tempfile
import shutil
from pathlib import Path
from unittest.mock import patch
from PIL import Image

from ..errors import DiscoveryError, DecodeError
from ..processing.discovery import AssetDiscoverer, glob_to_regex, matches_any, discover_assets


class TestGlobPatterns(unittest.TestCase):
    """Test glob to regex translation."""

    def test_star_does_not_cross_directories(self):
        self.assertTrue(matches_any("hero.png", ["*.png"]))
        self.assertFalse(matches_any("chars/hero.png", ["*.png"]))

    def test_double_star_matches_zero_or_more_directories(self):
        pattern = ["**/*.png"]
        self.assertTrue(matches_any("hero.png", pattern))
        self.assertTrue(matches_any("chars/hero.png", pattern))
        self.assertTrue(matches_any("chars/npc/hero.png", pattern))
        self.assertFalse(matches_any("chars/hero.aseprite", pattern))

    def test_trailing_double_star(self):
        self.assertTrue(matches_any("wip/a/b.png", ["wip/**"]))
        self.assertFalse(matches_any("done/a.png", ["wip/**"]))

    def test_question_mark_and_classes(self):
        self.assertTrue(glob_to_regex("tile_?.png").match("tile_1.png"))
        self.assertFalse(glob_to_regex("tile_?.png").match("tile_10.png"))
        self.assertTrue(glob_to_regex("tile_[0-3].png").match("tile_2.png"))
        self.assertFalse(glob_to_regex("tile_[!0-3].png").match("tile_2.png"))

    def test_matching_is_case_sensitive(self):
        self.assertFalse(matches_any("HERO.PNG", ["*.png"]))


class TestAssetDiscoverer(unittest.TestCase):
    """Test AssetDiscoverer functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.temp_dir = Path(tempfile.mkdtemp())
        for rel in ["b.png", "a.png", "B.png", "chars/hero.png", "chars/_wip/hero2.png"]:
            path = self.temp_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            Image.new('RGBA', (4, 4), (255, 0, 0, 255)).save(path)
        (self.temp_dir / "notes.txt").write_text("not an image")

    def tearDown(self):
        """Clean up test fixtures."""
        shutil.rmtree(self.temp_dir)

    def test_discover_sorted_by_full_path(self):
        """Results are sorted by path, uppercase before lowercase."""
        found = AssetDiscoverer(["**/*.png"]).discover(self.temp_dir)

        self.assertEqual(found, ["B.png", "a.png", "b.png", "chars/_wip/hero2.png", "chars/hero.png"])

    def test_exclude_wins_over_include(self):
        found = AssetDiscoverer(["**/*.png"], ["**/_wip/**"]).discover(self.temp_dir)

        self.assertNotIn("chars/_wip/hero2.png", found)
        self.assertIn("chars/hero.png", found)

    def test_no_matches_is_not_an_error(self):
        found = discover_assets(self.temp_dir, ["**/*.gif"])
        self.assertEqual(found, [])

    def test_order_independent_of_traversal(self):
        """Reversed directory listings give the same result."""
        real_walk = os.walk

        def reversed_walk(*args, **kwargs):
            for dirpath, dirnames, filenames in real_walk(*args, **kwargs):
                dirnames.reverse()
                yield dirpath, dirnames, list(reversed(filenames))

        expected = AssetDiscoverer(["**/*.png"]).discover(self.temp_dir)
        with patch('welder.processing.discovery.os.walk', side_effect=reversed_walk):
            shuffled = AssetDiscoverer(["**/*.png"]).discover(self.temp_dir)

        self.assertEqual(shuffled, expected)

    def test_missing_root_raises(self):
        with self.assertRaises(DiscoveryError) as ctx:
            AssetDiscoverer(["**/*.png"]).discover(self.temp_dir / "missing")

        self.assertEqual(ctx.exception.stage, "discover")
        self.assertIn("missing", str(ctx.exception))

    def test_file_root_raises(self):
        with self.assertRaises(DiscoveryError):
            AssetDiscoverer(["**/*.png"]).discover(self.temp_dir / "notes.txt")

    def test_load_asset(self):
        asset = AssetDiscoverer.load_asset(self.temp_dir, "chars/hero.png")

        self.assertEqual(asset.identity, "chars/hero.png")
        self.assertEqual(asset.size, (4, 4))
        self.assertEqual(asset.image.mode, 'RGBA')
        self.assertEqual(len(asset.fingerprint), 64)

    def test_fingerprint_depends_on_pixels(self):
        Image.new('RGBA', (4, 4), (0, 255, 0, 255)).save(self.temp_dir / "green.png")

        red = AssetDiscoverer.load_asset(self.temp_dir, "a.png")
        same = AssetDiscoverer.load_asset(self.temp_dir, "b.png")
        green = AssetDiscoverer.load_asset(self.temp_dir, "green.png")

        self.assertEqual(red.fingerprint, same.fingerprint)
        self.assertNotEqual(red.fingerprint, green.fingerprint)

    def test_palette_and_rgb_sources_become_rgba(self):
        Image.new('RGB', (3, 2), (10, 20, 30)).save(self.temp_dir / "rgb.png")
        Image.new('P', (3, 2)).save(self.temp_dir / "pal.png")

        for name in ("rgb.png", "pal.png"):
            asset = AssetDiscoverer.load_asset(self.temp_dir, name)
            self.assertEqual(asset.image.mode, 'RGBA')
            self.assertEqual(asset.size, (3, 2))

    def test_corrupt_file_raises_decode_error(self):
        (self.temp_dir / "broken.png").write_bytes(b"not a png at all")

        with self.assertRaises(DecodeError) as ctx:
            AssetDiscoverer.load_asset(self.temp_dir, "broken.png")

        self.assertEqual(ctx.exception.path, "broken.png")

    def test_non_png_raises_decode_error(self):
        Image.new('RGB', (4, 4)).save(self.temp_dir / "photo.png", format='BMP')

        with self.assertRaises(DecodeError):
            AssetDiscoverer.load_asset(self.temp_dir, "photo.png")


if __name__ == '__main__':
    unittest.main()
