"""
Input validation, safe file operations and database integrity checks.
"""

import json
import shutil
import warnings
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from ..config import PipelineConfig
from ..database import COLLECTIONS, Database
from ..errors import InputValidationError, ReferentialIntegrityWarning
from ..paths import PathResolver
from ..utils.logger import StructuredLogger


PNG_SIGNATURE = bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])
DATABASE_MEMBER = "database/database.json"


def find_database_member(names: Iterable[str]) -> Optional[str]:
    """
    Locate the database document inside an export archive.

    Accepts ``database/database.json`` at the archive root or under one top-level folder
    (exports are usually zipped as ``export/database/database.json``).
    """
    for name in names:
        parts = name.split('/')
        if parts[-2:] == ['database', 'database.json'] and len(parts) in (2, 3):
            return name
    return None


@dataclass
class ValidationResult:
    """Result of a database validation."""
    database_name: str
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        """Check if validation passed (no errors)."""
        return len(self.errors) == 0

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def add_error(self, message: str) -> None:
        self.errors.append(message)

    def add_warning(self, message: str) -> None:
        self.warnings.append(message)


class AssetValidator:
    """Pre-flight checks and error-tolerant filesystem operations."""

    def __init__(self, config: PipelineConfig, paths: PathResolver, logger: StructuredLogger):
        self.config = config
        self.paths = paths
        self.logger = logger

    def validate_inputs(self) -> bool:
        """Check that the export archive exists."""
        self.logger.info("Validating input files...")
        if not self.paths.export_zip.is_file():
            self.logger.error(f"Missing required file: Export zip file at {self.paths.export_zip}")
            return False
        self.logger.info("✓ Found Export zip file")
        return True

    def validate_export_archive(self) -> bool:
        """Check that the export archive opens and holds a database document."""
        try:
            with zipfile.ZipFile(self.paths.export_zip) as archive:
                member = find_database_member(archive.namelist())
        except (OSError, zipfile.BadZipFile) as e:
            self.logger.error(f"Cannot read export archive {self.paths.export_zip}: {e}")
            return False

        if member is None:
            self.logger.error(f"Export archive does not contain {DATABASE_MEMBER}")
            return False
        self.logger.info(f"✓ Export archive contains {member}")
        return True

    def validate_disk_space(self) -> bool:
        """Check that the project root is accessible and has enough free space."""
        try:
            usage = shutil.disk_usage(self.paths.project_root)
        except OSError as e:
            self.logger.error(f"Cannot access project directory: {e}")
            return False

        free_mb = usage.free / 1024 / 1024
        if free_mb < self.config.min_free_disk_mb:
            self.logger.error(
                f"Not enough free disk space: {free_mb:.0f}MB available, "
                f"{self.config.min_free_disk_mb}MB required"
            )
            return False
        self.logger.info(f"✓ Project directory accessible ({free_mb:.0f}MB free)")
        return True

    def pre_flight_check(self) -> bool:
        """
        Validate everything that must hold before the pipeline mutates anything.

        Raises:
            InputValidationError: If any check fails. Nothing has been written at that point.
        """
        self.logger.info("Running pre-flight checks...")

        if not self.validate_inputs():
            raise InputValidationError(f"Export archive not found: {self.paths.export_zip}")
        if not self.validate_export_archive():
            raise InputValidationError(
                f"Export archive {self.paths.export_zip} has no {DATABASE_MEMBER}"
            )
        if not self.validate_disk_space():
            raise InputValidationError(f"Project directory unusable: {self.paths.project_root}")

        self.logger.info("✓ All pre-flight checks passed")
        return True

    def validate_database(self, database_path: Union[str, Path]) -> bool:
        """Check the document parses and every collection is a non-empty list. Never raises."""
        database_path = Path(database_path)
        self.logger.info(f"Validating database file: {database_path}")

        if not database_path.is_file():
            self.logger.error(f"Database file not found: {database_path}")
            return False

        try:
            with open(database_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            self.logger.error(f"Database validation failed: {e}")
            return False

        if not isinstance(data, dict):
            self.logger.error("Database root is not an object")
            return False

        for prop in COLLECTIONS:
            value = data.get(prop)
            if not isinstance(value, list) or not value:
                self.logger.error(f"Database missing or invalid property: {prop}")
                return False

        self.logger.info(
            f"✓ Database structure valid ({len(data['elements'])} elements, "
            f"{len(data['buildings'])} buildings)"
        )
        return True

    def validate_image_file(self, file_path: Union[str, Path]) -> bool:
        """Check the file is non-empty and starts with the PNG signature."""
        file_path = Path(file_path)
        if not file_path.is_file():
            self.logger.warning(f"Image file not found: {file_path}")
            return False

        try:
            if file_path.stat().st_size == 0:
                self.logger.warning(f"Image file is empty: {file_path}")
                return False
            with open(file_path, 'rb') as f:
                header = f.read(len(PNG_SIGNATURE))
        except OSError as e:
            self.logger.error(f"Image validation failed for {file_path}: {e}")
            return False

        if header != PNG_SIGNATURE:
            self.logger.warning(f"File is not a valid PNG: {file_path}")
            return False
        return True

    # Safe file operations

    def safe_write_file(self, file_path: Union[str, Path], data: Union[str, bytes]) -> bool:
        file_path = Path(file_path)
        try:
            file_path.parent.mkdir(parents=True, exist_ok=True)
            if isinstance(data, str):
                file_path.write_text(data, encoding='utf-8')
            else:
                file_path.write_bytes(data)
        except OSError as e:
            self.logger.error(f"Failed to write file {file_path}: {e}", e)
            return False
        self.logger.debug(f"Successfully wrote file: {file_path}")
        return True

    def safe_copy_file(self, source: Union[str, Path], destination: Union[str, Path]) -> bool:
        source, destination = Path(source), Path(destination)
        if not source.is_file():
            self.logger.error(f"Source file does not exist: {source}")
            return False
        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, destination)
        except OSError as e:
            self.logger.error(f"Failed to copy file {source} → {destination}: {e}", e)
            return False
        self.logger.debug(f"Successfully copied: {source} → {destination}")
        return True

    def safe_copy_tree(self, source: Union[str, Path], destination: Union[str, Path]) -> bool:
        """Merge-copy a directory over another one. A missing source is not an error."""
        source, destination = Path(source), Path(destination)
        if not source.is_dir():
            self.logger.debug(f"Nothing to copy from {source}")
            return True
        try:
            shutil.copytree(source, destination, dirs_exist_ok=True)
        except (OSError, shutil.Error) as e:
            self.logger.error(f"Failed to copy directory {source} → {destination}: {e}", e)
            return False
        return True

    def safe_remove_directory(self, dir_path: Union[str, Path]) -> bool:
        dir_path = Path(dir_path)
        if not dir_path.exists():
            return True
        try:
            shutil.rmtree(dir_path)
        except OSError as e:
            self.logger.error(f"Failed to remove directory {dir_path}: {e}", e)
            return False
        self.logger.debug(f"Successfully removed directory: {dir_path}")
        return True

    def cleanup_on_error(self, extra_dirs: Optional[List[Path]] = None) -> None:
        """Remove transient directories after a failed run."""
        self.logger.warning("Performing cleanup due to error...")
        for directory in [self.paths.export_dir] + list(extra_dirs or []):
            if directory.exists():
                if self.safe_remove_directory(directory):
                    self.logger.info(f"Cleaned up: {directory}")
                else:
                    self.logger.warning(f"Could not clean up {directory}")


class DatabaseIntegrityChecker:
    """Checks the referential invariants every database variant must keep."""

    def __init__(self, dangling_reference_ceiling: int = 1000,
                 logger: Optional[StructuredLogger] = None):
        self.dangling_reference_ceiling = dangling_reference_ceiling
        self.logger = logger

    def check(self, database: Database, name: str = "database") -> ValidationResult:
        """
        Validate one database variant.

        Building -> modifier references have zero tolerance. Dangling modifier -> sprite info
        references are counted and only become an error at the configured ceiling.
        Sprites placed on repack pages must have UV bounds inside [0, 1].
        """
        result = ValidationResult(name)

        modifiers = database.sprite_modifier_index()
        for building in database.buildings:
            for sprite_name in building.sprite_names:
                if sprite_name not in modifiers:
                    result.add_error(
                        f'Building "{building.prefab_id}" references non-existent sprite modifier "{sprite_name}"'
                    )

        sprite_infos = database.sprite_info_index()
        dangling = [m.name for m in database.sprite_modifiers if m.sprite_info_name not in sprite_infos]
        result.metadata['dangling_references'] = len(dangling)

        if dangling:
            message = (f"{len(dangling)} sprite modifiers reference missing sprite infos "
                       f"(ceiling {self.dangling_reference_ceiling})")
            warnings.warn(f"{name}: {message}", ReferentialIntegrityWarning, stacklevel=2)
            result.add_warning(message)
            if self.logger:
                self.logger.warning(f"{name}: {message}")
        if len(dangling) >= self.dangling_reference_ceiling:
            result.add_error(
                f"Dangling sprite info references ({len(dangling)}) reached the ceiling "
                f"of {self.dangling_reference_ceiling}"
            )

        repacked = [s for s in database.ui_sprites if s.is_repacked]
        result.metadata['repacked_sprites'] = len(repacked)
        for sprite in repacked:
            if not sprite.has_valid_uv:
                result.add_error(
                    f'Sprite "{sprite.name}" has invalid UV bounds '
                    f'u=({sprite.u0}, {sprite.u1}) v=({sprite.v0}, {sprite.v1})'
                )

        return result

    def compare_identities(self, variants: Dict[str, Database]) -> ValidationResult:
        """Element ids and building prefab ids must be the same set in every variant."""
        result = ValidationResult("identities")
        if not variants:
            return result

        reference_name, reference = next(iter(variants.items()))
        element_ids = reference.element_ids()
        prefab_ids = reference.prefab_ids()

        for name, database in variants.items():
            if name == reference_name:
                continue
            if database.element_ids() != element_ids or len(database.elements) != len(reference.elements):
                result.add_error(f"{name}: element ids differ from {reference_name}")
            if database.prefab_ids() != prefab_ids or len(database.buildings) != len(reference.buildings):
                result.add_error(f"{name}: building prefab ids differ from {reference_name}")

        return result
