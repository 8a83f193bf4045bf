"""
Image processing utilities for the export pipeline.
"""

import io
from pathlib import Path
from typing import Tuple, Union

import numpy as np
from PIL import Image


PixelBox = Tuple[int, int, int, int]


class ImageUtils:
    """Utility class for common image processing operations."""

    @staticmethod
    def load_image(data: Union[bytes, str, Path, Image.Image]) -> Image.Image:
        """
        Load image from various sources.

        Args:
            data: Image data as bytes, file path, or PIL Image

        Returns:
            PIL Image object, fully decoded

        Raises:
            ValueError: If data cannot be loaded as image
        """
        if isinstance(data, Image.Image):
            return data
        elif isinstance(data, bytes):
            try:
                with Image.open(io.BytesIO(data)) as image:
                    image.load()
                    return image.copy()
            except Exception as e:
                raise ValueError(f"Cannot load image from bytes: {e}")
        elif isinstance(data, (str, Path)):
            try:
                with Image.open(data) as image:
                    image.load()
                    return image.copy()
            except Exception as e:
                raise ValueError(f"Cannot load image from path '{data}': {e}")
        else:
            raise ValueError(f"Unsupported image data type: {type(data)}")

    @staticmethod
    def to_png_bytes(image: Image.Image, compress_level: int = 6) -> bytes:
        """Encode an image as PNG."""
        buffer = io.BytesIO()
        image.save(buffer, format='PNG', compress_level=compress_level)
        return buffer.getvalue()

    @staticmethod
    def ensure_rgba(image: Image.Image) -> Image.Image:
        """Convert image to RGBA mode if not already."""
        if image.mode != 'RGBA':
            return image.convert('RGBA')
        return image

    @staticmethod
    def to_rgba_array(image: Image.Image) -> np.ndarray:
        """Decoded RGBA pixels as a (height, width, 4) uint8 array."""
        return np.asarray(ImageUtils.ensure_rgba(image), dtype=np.uint8)

    @staticmethod
    def whiten(image: Image.Image) -> Image.Image:
        """
        Replace every pixel's RGB with white while keeping its alpha.

        Args:
            image: Source image

        Returns:
            New RGBA silhouette image of the same size
        """
        pixels = np.array(ImageUtils.ensure_rgba(image), dtype=np.uint8)
        pixels[:, :, :3] = 255
        return Image.fromarray(pixels, 'RGBA')

    @staticmethod
    def uv_to_box(u0: float, u1: float, v0: float, v1: float,
                  size: Tuple[int, int]) -> PixelBox:
        """
        Convert normalized UV bounds to a pixel box clamped to the texture.

        Returns:
            (left, top, right, bottom) in pixels
        """
        width, height = size
        left = max(0, min(width, int(round(u0 * width))))
        right = max(0, min(width, int(round(u1 * width))))
        top = max(0, min(height, int(round(v0 * height))))
        bottom = max(0, min(height, int(round(v1 * height))))
        return left, top, right, bottom

