"""
Utility modules for image handling, image comparison and structured logging.
"""

from .image import ImageUtils
from .comparator import ImageComparator
from .logger import StructuredLogger, setup_logging

__all__ = [
    "ImageUtils",
    "ImageComparator",
    "StructuredLogger",
    "setup_logging",
]
