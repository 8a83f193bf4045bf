"""
Off-screen rasterization on top of Pillow.

Textures, sprites, containers and render targets are resources with an explicit
``release()``; all of them are context managers so a ``with`` block frees them on every
exit path, errors included.
"""

from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from PIL import Image

from ..errors import RenderError, TextureLoadError
from ..utils.image import ImageUtils, PixelBox
from ..utils.logger import StructuredLogger
from .fallback import FallbackTextureResolver


class _Resource:
    released = False

    def release(self) -> None:
        self.released = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False


class Texture(_Resource):
    """
    A view onto a decoded source image, optionally restricted to a frame.

    Views share the engine-owned base image; releasing a view never closes the base.
    """

    def __init__(self, name: str, base: Image.Image, frame: Optional[PixelBox] = None,
                 source: Optional[Path] = None):
        self.name = name
        self.source = source
        self._base = base
        self.frame = frame or (0, 0, base.width, base.height)
        self._image: Optional[Image.Image] = None

    @property
    def base_size(self) -> Tuple[int, int]:
        return self._base.size

    @property
    def width(self) -> int:
        return self.frame[2] - self.frame[0]

    @property
    def height(self) -> int:
        return self.frame[3] - self.frame[1]

    def sub_texture(self, frame: PixelBox) -> "Texture":
        return Texture(self.name, self._base, frame, self.source)

    def sub_texture_uv(self, u0: float, u1: float, v0: float, v1: float) -> "Texture":
        return self.sub_texture(ImageUtils.uv_to_box(u0, u1, v0, v1, self._base.size))

    def image(self) -> Image.Image:
        """Pixels of the frame as an RGBA image."""
        if self.released:
            raise RenderError(f"Texture {self.name} used after release")
        if self._image is None:
            self._image = self._base.crop(self.frame)
        return self._image

    def release(self) -> None:
        if self._image is not None:
            self._image.close()
            self._image = None
        self._base = None
        super().release()


class Sprite(_Resource):
    def __init__(self, texture: Texture, x: int = 0, y: int = 0):
        self.texture = texture
        self.x = x
        self.y = y

    @property
    def width(self) -> int:
        return self.texture.width

    @property
    def height(self) -> int:
        return self.texture.height

    def release(self) -> None:
        self.texture.release()
        super().release()


class Container(_Resource):
    """Ordered sprites, drawn first to last."""

    def __init__(self):
        self.children: List[Sprite] = []

    def add_child(self, sprite: Sprite) -> Sprite:
        self.children.append(sprite)
        return sprite

    def release(self) -> None:
        for child in self.children:
            child.release()
        self.children = []
        super().release()


class RenderTarget(_Resource):
    """A transparent RGBA canvas of fixed size."""

    def __init__(self, width: int, height: int):
        if width <= 0 or height <= 0:
            raise RenderError(f"Invalid render target size {width}x{height}")
        self.width = width
        self.height = height
        self.canvas: Optional[Image.Image] = Image.new('RGBA', (width, height), (0, 0, 0, 0))

    def release(self) -> None:
        if self.canvas is not None:
            self.canvas.close()
            self.canvas = None
        super().release()


class RenderEngine:
    """
    Loads textures by name from ordered search directories and renders containers.

    Decoded base images are cached per texture name for the lifetime of the engine and
    closed by ``close()``.
    """

    def __init__(self, search_dirs: Sequence[Path], logger: StructuredLogger,
                 resolver: Optional[FallbackTextureResolver] = None):
        self.search_dirs = [Path(d) for d in search_dirs]
        self.logger = logger
        self.resolver = resolver or FallbackTextureResolver()
        self._bases: Dict[Tuple[str, bool], Tuple[Image.Image, Path]] = {}
        self._failed: Dict[Tuple[str, bool], str] = {}

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def close(self) -> None:
        for image, _ in self._bases.values():
            image.close()
        self._bases.clear()
        self._failed.clear()

    def texture_path(self, texture_name: str) -> Optional[Path]:
        """First ``<dir>/<texture_name>.png`` that exists in the search directories."""
        for directory in self.search_dirs:
            path = directory / f"{texture_name}.png"
            if path.is_file():
                return path
        return None

    def _decode(self, path: Path, white: bool) -> Image.Image:
        image = ImageUtils.ensure_rgba(ImageUtils.load_image(path))
        return ImageUtils.whiten(image) if white else image

    def _load_base(self, texture_name: str, white: bool) -> Tuple[Image.Image, Path]:
        key = (texture_name, white)
        if key in self._bases:
            return self._bases[key]
        if key in self._failed:
            raise TextureLoadError(texture_name, self._failed[key])

        tried: List[Path] = []
        direct = self.texture_path(texture_name)
        if direct is not None:
            try:
                self._bases[key] = (self._decode(direct, white), direct)
                return self._bases[key]
            except ValueError as e:
                self.logger.warning(f"Failed to load {direct}, attempting fallback strategies: {e}")
                tried.append(direct)

        for match in self.resolver.resolve(texture_name, self.search_dirs, exclude=tried):
            try:
                image = self._decode(match.path, white)
            except ValueError:
                self.logger.warning(f"Fallback {match.path} also failed, trying next...")
                continue
            self.logger.info(f"Found fallback ({match.strategy}): {texture_name} -> {match.path.name}")
            self._bases[key] = (image, match.path)
            return self._bases[key]

        message = f"No file or fallback found for texture {texture_name}"
        self._failed[key] = message
        raise TextureLoadError(texture_name, message)

    def load_texture(self, texture_name: str) -> Texture:
        """
        Load a texture by name, resolving fallbacks when the direct file is missing.

        Raises:
            TextureLoadError: If neither the file nor any fallback can be loaded
        """
        image, path = self._load_base(texture_name, white=False)
        return Texture(texture_name, image, source=path)

    def load_white_texture(self, texture_name: str) -> Texture:
        """Load a texture with its RGB replaced by white and alpha preserved."""
        image, path = self._load_base(texture_name, white=True)
        return Texture(f"{texture_name}_white", image, source=path)

    def try_load_texture(self, texture_name: str, white: bool = False) -> Optional[Texture]:
        """Like ``load_texture`` but logs and returns None when the texture is unavailable."""
        try:
            return self.load_white_texture(texture_name) if white else self.load_texture(texture_name)
        except TextureLoadError as e:
            self.logger.warning(f"⚠️ Skipping texture {texture_name} - {e}")
            return None

    def new_container(self) -> Container:
        return Container()

    def new_render_target(self, width: int, height: int) -> RenderTarget:
        return RenderTarget(width, height)

    def sprite_from(self, texture: Texture, x: int = 0, y: int = 0) -> Sprite:
        return Sprite(texture, x, y)

    def render(self, container: Container, target: RenderTarget, clear: bool = True) -> None:
        """Alpha-composite every sprite of the container onto the target, clipped to its bounds."""
        if target.released or container.released:
            raise RenderError("Cannot render with a released resource")
        if clear:
            target.canvas.paste((0, 0, 0, 0), (0, 0, target.width, target.height))

        for sprite in container.children:
            left, top = max(sprite.x, 0), max(sprite.y, 0)
            right = min(sprite.x + sprite.width, target.width)
            bottom = min(sprite.y + sprite.height, target.height)
            if right <= left or bottom <= top:
                continue
            source = (left - sprite.x, top - sprite.y, right - sprite.x, bottom - sprite.y)
            try:
                target.canvas.alpha_composite(sprite.texture.image(), (left, top), source)
            except (ValueError, OSError) as e:
                raise RenderError(f"Failed to render {sprite.texture.name}: {e}")

    def extract_image(self, target: RenderTarget) -> Image.Image:
        """Copy of the rendered pixels, independent of the target's lifetime."""
        if target.released:
            raise RenderError("Cannot extract from a released render target")
        return target.canvas.copy()

    def extract_pixels(self, target: RenderTarget) -> np.ndarray:
        return ImageUtils.to_rgba_array(self.extract_image(target))

    def extract_png(self, target: RenderTarget, compress_level: int = 6) -> bytes:
        return ImageUtils.to_png_bytes(self.extract_image(target), compress_level)
