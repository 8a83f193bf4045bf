"""
Database processing: validation, massaging and atlas layout.

The image stages (icons, groups, white, repack) need a pipeline context and are imported
from their own modules.
"""

from .validator import AssetValidator, DatabaseIntegrityChecker, ValidationResult
from .atlas import AtlasConfig, AtlasLayout, AtlasLayoutEngine, AtlasGenerationError
from .massager import DatabaseMassager, fix_link_markup, load_rename_map

__all__ = [
    "AssetValidator",
    "DatabaseIntegrityChecker",
    "ValidationResult",
    "AtlasConfig",
    "AtlasLayout",
    "AtlasLayoutEngine",
    "AtlasGenerationError",
    "DatabaseMassager",
    "fix_link_markup",
    "load_rename_map",
]
