"""
Well-known input and output locations of the export pipeline, resolved against a project root.
"""

from pathlib import Path
from typing import List, Union

from .config import PipelineConfig


class PathResolver:
    """Resolves every pipeline path relative to the configured project root."""

    def __init__(self, config: PipelineConfig):
        self.project_root = Path(config.project_root).resolve()
        self._config = config

    def absolute(self, project_relative: Union[str, Path]) -> Path:
        """Resolve a project-relative path. Absolute paths are returned unchanged."""
        return self.project_root / project_relative

    def relative(self, path: Union[str, Path]) -> Path:
        """Express an absolute path inside the project relative to the project root."""
        return Path(path).resolve().relative_to(self.project_root)

    # Source paths (input)
    @property
    def export_zip(self) -> Path:
        return self.absolute(self._config.export_zip)

    @property
    def export_dir(self) -> Path:
        return self.absolute(self._config.export_dir)

    @property
    def export_database(self) -> Path:
        return self.export_dir / "database" / "database.json"

    @property
    def export_images(self) -> Path:
        return self.export_dir / "images"

    # Backend asset tree
    @property
    def assets_dir(self) -> Path:
        return self.absolute(self._config.assets_dir)

    @property
    def assets_images(self) -> Path:
        return self.assets_dir / "images"

    @property
    def assets_database(self) -> Path:
        return self.assets_dir / "database"

    @property
    def assets_manual(self) -> Path:
        return self.assets_dir / "manual"

    @property
    def database_json(self) -> Path:
        return self.assets_database / "database.json"

    @property
    def database_groups(self) -> Path:
        return self.assets_database / "database-groups.json"

    @property
    def database_white(self) -> Path:
        return self.assets_database / "database-white.json"

    @property
    def database_repack(self) -> Path:
        return self.assets_database / "database-repack.json"

    @property
    def database_zip(self) -> Path:
        return self.assets_database / "database.zip"

    @property
    def build_menu_rename(self) -> Path:
        return self.absolute(self._config.rename_map_file)

    # Frontend deployment tree
    @property
    def frontend_assets(self) -> Path:
        return self.absolute(self._config.frontend_assets_dir)

    @property
    def frontend_images(self) -> Path:
        return self.frontend_assets / "images"

    @property
    def frontend_database(self) -> Path:
        return self.frontend_assets / "database"

    @property
    def frontend_database_json(self) -> Path:
        return self.frontend_database / "database.json"

    @property
    def frontend_database_zip(self) -> Path:
        return self.frontend_database / "database.zip"

    @property
    def ui_images_dir(self) -> Path:
        return self.assets_images / "ui"

    @property
    def frontend_ui_images_dir(self) -> Path:
        return self.frontend_images / "ui"

    @property
    def staging_dir(self) -> Path:
        return self.absolute(self._config.staging_dir)

    # Generated files
    def ui_icon(self, icon_name: str) -> Path:
        return self.ui_images_dir / f"{icon_name}.png"

    def frontend_ui_icon(self, icon_name: str) -> Path:
        return self.frontend_ui_images_dir / f"{icon_name}.png"

    def texture(self, texture_name: str) -> Path:
        return self.assets_images / f"{texture_name}.png"

    def frontend_texture(self, texture_name: str) -> Path:
        return self.frontend_images / f"{texture_name}.png"

    def white_texture(self, texture_name: str) -> Path:
        return self.assets_images / f"{texture_name}_white.png"

    def repack_texture(self, index: int) -> Path:
        return self.assets_images / f"repack_{index}.png"

    def frontend_repack_texture(self, index: int) -> Path:
        return self.frontend_images / f"repack_{index}.png"

    def ensure_directories(self) -> None:
        """Create the backend and frontend output trees."""
        for directory in (
            self.assets_dir,
            self.assets_images,
            self.assets_database,
            self.ui_images_dir,
            self.frontend_assets,
            self.frontend_images,
            self.frontend_database,
            self.frontend_ui_images_dir,
        ):
            directory.mkdir(parents=True, exist_ok=True)

    @property
    def all_database_files(self) -> List[Path]:
        return [self.database_json, self.database_groups, self.database_white, self.database_repack]
