"""
Tests for pixel-level image comparison and image helpers.
"""

import shutil
import tempfile
import unittest
from pathlib import Path

import numpy as np
from PIL import Image

from ..utils.comparator import ImageComparator
from ..utils.image import ImageUtils
from .helpers import BLUE, GREEN, RED, png_bytes, sheet_image, solid_image, write_png


class TestImageComparator(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.comparator = ImageComparator()

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_identical_buffer(self):
        path = write_png(self.temp_dir / "a.png", sheet_image())
        self.assertTrue(self.comparator.is_buffer_identical_to_file(sheet_image(), path))
        self.assertTrue(self.comparator.is_buffer_identical_to_file(png_bytes(sheet_image()), path))

    def test_missing_file(self):
        self.assertFalse(self.comparator.is_buffer_identical_to_file(sheet_image(), self.temp_dir / "nope.png"))

    def test_different_dimensions(self):
        path = write_png(self.temp_dir / "a.png", solid_image((4, 4)))
        self.assertFalse(self.comparator.is_buffer_identical_to_file(solid_image((4, 5)), path))

    def test_single_pixel_difference(self):
        path = write_png(self.temp_dir / "a.png", solid_image((4, 4)))
        changed = solid_image((4, 4))
        changed.putpixel((3, 3), (255, 0, 0, 254))
        self.assertFalse(self.comparator.is_buffer_identical_to_file(changed, path))

    def test_undecodable_file(self):
        path = self.temp_dir / "broken.png"
        path.write_bytes(b"not a png")
        self.assertFalse(self.comparator.is_buffer_identical_to_file(sheet_image(), path))

    def test_encoding_does_not_matter(self):
        # Same pixels at different compression levels
        path = self.temp_dir / "a.png"
        path.write_bytes(ImageUtils.to_png_bytes(sheet_image(), compress_level=0))
        self.assertTrue(self.comparator.is_buffer_identical_to_file(
            ImageUtils.to_png_bytes(sheet_image(), compress_level=9), path
        ))

    def test_are_images_identical(self):
        a = write_png(self.temp_dir / "a.png", solid_image((2, 2), GREEN))
        b = write_png(self.temp_dir / "b.png", solid_image((2, 2), GREEN))
        c = write_png(self.temp_dir / "c.png", solid_image((2, 2), RED))
        self.assertTrue(self.comparator.are_images_identical(a, b))
        self.assertFalse(self.comparator.are_images_identical(a, c))
        self.assertFalse(self.comparator.are_images_identical(a, self.temp_dir / "missing.png"))

    def test_hashes(self):
        path = write_png(self.temp_dir / "a.png", sheet_image())
        file_hash = self.comparator.get_hash(path)
        self.assertEqual(len(file_hash), 64)
        self.assertEqual(file_hash, self.comparator.get_buffer_hash(sheet_image()))
        self.assertEqual(self.comparator.get_hash(self.temp_dir / "missing.png"), "")
        self.assertEqual(self.comparator.get_buffer_hash(b"garbage"), "")

    def test_hash_includes_dimensions(self):
        wide = solid_image((8, 2))
        tall = solid_image((4, 4))
        self.assertNotEqual(self.comparator.get_buffer_hash(wide), self.comparator.get_buffer_hash(tall))

    def test_are_hashes_identical(self):
        self.assertTrue(ImageComparator.are_hashes_identical("abc", "abc"))
        self.assertFalse(ImageComparator.are_hashes_identical("abc", "abd"))
        self.assertFalse(ImageComparator.are_hashes_identical("", ""))


class TestImageUtils(unittest.TestCase):

    def test_whiten_preserves_alpha(self):
        white = ImageUtils.whiten(sheet_image())
        pixels = np.asarray(white)
        self.assertTrue((pixels[:, :, :3] == 255).all())
        self.assertEqual(pixels[0, 0, 3], 255)
        self.assertEqual(pixels[0, 7, 3], BLUE[3])

    def test_uv_to_box(self):
        self.assertEqual(ImageUtils.uv_to_box(0, 0.5, 0, 1, (8, 8)), (0, 0, 4, 8))
        self.assertEqual(ImageUtils.uv_to_box(0.5, 1, 0, 0.5, (8, 8)), (4, 0, 8, 4))
        # Clamped to the texture
        self.assertEqual(ImageUtils.uv_to_box(-0.5, 1.5, 0, 1, (8, 8)), (0, 0, 8, 8))

    def test_load_image_errors(self):
        with self.assertRaises(ValueError):
            ImageUtils.load_image(b"nope")
        with self.assertRaises(ValueError):
            ImageUtils.load_image(42)

    def test_ensure_rgba(self):
        rgb = Image.new('RGB', (2, 2), (1, 2, 3))
        self.assertEqual(ImageUtils.ensure_rgba(rgb).mode, 'RGBA')
