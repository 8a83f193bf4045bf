"""
Schema-preserving rewrites of the database document, applied before any image stage.
"""

import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..database import Database, SpriteInfo
from ..utils.logger import StructuredLogger


LINK_OPEN = re.compile(r'<link=([^>]*)>')
LINK_TOKEN = re.compile(r'<link="[^"]*">|</link>')


def fix_link_markup(label: str) -> str:
    """
    Normalize ``<link=...>`` markup in a display label.

    Link targets are double-quoted, a link still open when the next one starts or when the
    label ends is closed, and a ``</link>`` without an open link is dropped.
    """
    if '<link' not in label and '</link>' not in label:
        return label

    def quote(match: re.Match) -> str:
        target = match.group(1).strip().strip('"\'')
        return f'<link="{target}">'

    quoted = LINK_OPEN.sub(quote, label)

    parts: List[str] = []
    position = 0
    open_link = False
    for token in LINK_TOKEN.finditer(quoted):
        parts.append(quoted[position:token.start()])
        position = token.end()
        if token.group(0) == '</link>':
            if open_link:
                parts.append('</link>')
                open_link = False
        else:
            if open_link:
                parts.append('</link>')
            parts.append(token.group(0))
            open_link = True
    parts.append(quoted[position:])
    if open_link:
        parts.append('</link>')
    return ''.join(parts)


def load_rename_map(path: Union[str, Path]) -> Dict[str, str]:
    """
    Read the build menu rename map (``{"oldBuildingId": "newBuildingId"}``).

    A missing file means no renames.

    Raises:
        ValueError: If the file is not a JSON object of strings
    """
    path = Path(path)
    if not path.is_file():
        return {}
    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)
    if not isinstance(data, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in data.items()):
        raise ValueError(f"Rename map {path} must be a JSON object mapping ids to ids")
    return data


class DatabaseMassager:
    """Label fixups, info icon injection and build menu renames."""

    def __init__(self, logger: StructuredLogger, rename_map: Optional[Dict[str, str]] = None,
                 info_icons: Optional[List[str]] = None):
        self.logger = logger
        self.rename_map = rename_map or {}
        self.info_icons = info_icons or []

    def run(self, database: Database) -> Database:
        fixed = self.fix_html_labels(database)
        added = self.add_info_icons(database)
        renamed = self.rename_build_menu_items(database)
        self.logger.info(f"Fixed {fixed} labels, added {added} info icons, renamed {renamed} menu items")
        return database

    def fix_html_labels(self, database: Database) -> int:
        changed = 0
        for record in list(database.elements) + list(database.buildings):
            fixed = fix_link_markup(record.name)
            if fixed != record.name:
                self.logger.debug(f"Fixed label: {record.name!r} -> {fixed!r}")
                record.name = fixed
                changed += 1
        return changed

    def add_info_icons(self, database: Database) -> int:
        """Add icon sprite infos for category icons and configured info icons that have none."""
        known = {s.name for s in database.ui_sprites}
        wanted = [c.category_icon for c in database.build_menu_categories if c.category_icon]
        wanted.extend(self.info_icons)

        added = 0
        for icon in wanted:
            if icon in known:
                continue
            database.ui_sprites.append(SpriteInfo(name=icon, texture_name=icon, is_icon=True))
            known.add(icon)
            added += 1
        return added

    def rename_build_menu_items(self, database: Database) -> int:
        renamed = 0
        for item in database.build_menu_items:
            new_id = self.rename_map.get(item.building_id)
            if new_id and new_id != item.building_id:
                item.building_id = new_id
                renamed += 1
        return renamed
