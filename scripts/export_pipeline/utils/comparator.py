"""
Content-addressed image comparison, used to skip writes of unchanged images.
"""

import hashlib
from pathlib import Path
from typing import Optional, Union

import numpy as np
from PIL import Image

from .image import ImageUtils
from .logger import StructuredLogger


ImageSource = Union[bytes, str, Path, Image.Image]


class ImageComparator:
    """Compares images by their decoded RGBA pixels rather than their encoded bytes."""

    def __init__(self, logger: Optional[StructuredLogger] = None):
        self.logger = logger

    def _decode(self, source: ImageSource) -> np.ndarray:
        return ImageUtils.to_rgba_array(ImageUtils.load_image(source))

    def is_buffer_identical_to_file(self, buffer: ImageSource, path: Union[str, Path]) -> bool:
        """
        Check whether a freshly rendered image matches an existing file.

        Returns False if the file is absent, either side cannot be decoded,
        the dimensions differ or any pixel byte differs.
        """
        path = Path(path)
        if not path.exists():
            return False

        try:
            new_pixels = self._decode(buffer)
            existing_pixels = self._decode(path)
        except ValueError as e:
            if self.logger:
                self.logger.debug(f"Could not compare with {path}: {e}")
            return False

        if new_pixels.shape != existing_pixels.shape:
            return False
        return bool(np.array_equal(new_pixels, existing_pixels))

    def are_images_identical(self, path_a: Union[str, Path], path_b: Union[str, Path]) -> bool:
        """Compare two image files pixel by pixel."""
        if not Path(path_a).exists() or not Path(path_b).exists():
            return False
        try:
            pixels_a = self._decode(path_a)
            pixels_b = self._decode(path_b)
        except ValueError as e:
            if self.logger:
                self.logger.debug(f"Could not compare {path_a} with {path_b}: {e}")
            return False
        return pixels_a.shape == pixels_b.shape and bool(np.array_equal(pixels_a, pixels_b))

    def get_hash(self, path: Union[str, Path]) -> str:
        """SHA-256 of the decoded pixels of an image file, or "" if it cannot be read."""
        if not Path(path).exists():
            return ""
        return self.get_buffer_hash(Path(path))

    def get_buffer_hash(self, buffer: ImageSource) -> str:
        """SHA-256 of the decoded pixels of an in-memory image, or "" if it cannot be decoded."""
        try:
            pixels = self._decode(buffer)
        except ValueError:
            return ""
        digest = hashlib.sha256()
        # Dimensions are part of the identity: 2x8 and 4x4 can share a byte stream
        digest.update(f"{pixels.shape[1]}x{pixels.shape[0]}".encode())
        digest.update(pixels.tobytes())
        return digest.hexdigest()

    @staticmethod
    def are_hashes_identical(hash_a: str, hash_b: str) -> bool:
        return bool(hash_a) and hash_a == hash_b
