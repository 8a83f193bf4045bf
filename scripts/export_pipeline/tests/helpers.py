"""
Builders for small synthetic exports used across the test modules.
"""

import copy
import io
import json
import zipfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from PIL import Image

from ..config import PipelineConfig, RetryConfig


RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 128)
GREEN = (0, 255, 0, 255)


SAMPLE_DATABASE: Dict[str, Any] = {
    "version": 3,
    "elements": [
        {"id": "water", "name": "<link=Water>Water", "density": 1000},
        {"id": "oxygen", "name": "Oxygen"},
    ],
    "buildMenuCategories": [
        {"category": 1, "categoryName": "Plumbing", "categoryIcon": "icon_src"},
    ],
    "buildMenuItems": [
        {"category": 1, "buildingId": "pump"},
    ],
    "uiSprites": [
        {"name": "icon_src", "textureName": "icon_src", "u0": 0, "u1": 1, "v0": 0, "v1": 1,
         "isIcon": True, "isInputOutput": False},
        {"name": "pump_base", "textureName": "sheet", "u0": 0, "u1": 0.5, "v0": 0, "v1": 1,
         "isIcon": False, "isInputOutput": False},
        {"name": "pump_top", "textureName": "sheet", "u0": 0.5, "u1": 1, "v0": 0, "v1": 0.5,
         "isIcon": False, "isInputOutput": False},
    ],
    "spriteModifiers": [
        {"name": "pump_base_mod", "spriteInfoName": "pump_base", "tags": ["solid"]},
        {"name": "pump_top_mod", "spriteInfoName": "pump_top", "tags": ["solid"]},
        {"name": "pump_shadow", "spriteInfoName": "missing_info", "tags": ["shadow"]},
    ],
    "buildings": [
        {"prefabId": "pump", "name": "Pump", "power": 240,
         "sprites": {"spriteNames": ["pump_base_mod", "pump_top_mod", "pump_shadow"]}},
    ],
}


def sample_database() -> Dict[str, Any]:
    return copy.deepcopy(SAMPLE_DATABASE)


def solid_image(size: Tuple[int, int], color=RED) -> Image.Image:
    return Image.new('RGBA', size, color)


def sheet_image() -> Image.Image:
    """8x8: opaque red left half, translucent blue right half."""
    image = Image.new('RGBA', (8, 8), RED)
    image.paste(BLUE, (4, 0, 8, 8))
    return image


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format='PNG')
    return buffer.getvalue()


def write_png(path: Path, image: Image.Image) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    image.save(path, format='PNG')
    return path


def write_json(path: Path, data: Any) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2), encoding='utf-8')
    return path


def build_export_zip(path: Path, database: Optional[Dict[str, Any]] = None,
                     prefix: str = "export/", include_database: bool = True) -> Path:
    """Write an export archive holding the database document and the sample textures."""
    database = sample_database() if database is None else database
    path.parent.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(path, 'w') as archive:
        if include_database:
            archive.writestr(f"{prefix}database/database.json", json.dumps(database))
        archive.writestr(f"{prefix}images/sheet.png", png_bytes(sheet_image()))
        archive.writestr(f"{prefix}images/icon_src.png", png_bytes(solid_image((4, 2), GREEN)))
    return path


def make_config(root: Path, **overrides: Any) -> PipelineConfig:
    """Configuration rooted at ``root`` with no retry delays and no disk space requirement."""
    values: Dict[str, Any] = {
        "project_root": str(root),
        "min_free_disk_mb": 0,
        "retry": RetryConfig(enabled=False),
    }
    values.update(overrides)
    return PipelineConfig(**values)
