"""
Off-screen rendering of sprite textures with fallback resolution of missing source images.
"""

from .engine import Container, RenderEngine, RenderTarget, Sprite, Texture
from .fallback import DEFAULT_STRATEGIES, FallbackStrategy, FallbackTextureResolver

__all__ = [
    "Container",
    "RenderEngine",
    "RenderTarget",
    "Sprite",
    "Texture",
    "DEFAULT_STRATEGIES",
    "FallbackStrategy",
    "FallbackTextureResolver",
]
