"""
Typed schema of the shared export database document.

Every record keeps the raw mapping it was loaded from, so fields the pipeline does not
model are written back untouched and in their original key order.
"""

import copy
import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


COLLECTIONS = [
    'elements',
    'buildMenuCategories',
    'buildMenuItems',
    'uiSprites',
    'spriteModifiers',
    'buildings',
]

SOLID_TAG = 'solid'
WHITE_TAG = 'white'
GROUP_TAG = 'group'
WHITE_SUFFIX = '_white'
REPACK_PREFIX = 'repack_'


def _merged(raw: Dict[str, Any], known: Dict[str, Any]) -> Dict[str, Any]:
    result = dict(raw)
    result.update(known)
    return result


@dataclass
class Element:
    """A game material. ``id`` is carried unchanged through every stage."""
    id: str
    name: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Element":
        return cls(id=data.get('id', ''), name=data.get('name', ''), raw=dict(data))

    def to_dict(self) -> Dict[str, Any]:
        known = {'id': self.id}
        if self.name or 'name' in self.raw:
            known['name'] = self.name
        return _merged(self.raw, known)


@dataclass
class SpriteInfo:
    """A named rectangular region of a texture, in normalized UV coordinates."""
    name: str
    texture_name: str
    u0: float = 0.0
    u1: float = 1.0
    v0: float = 0.0
    v1: float = 1.0
    is_icon: bool = False
    is_input_output: bool = False
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpriteInfo":
        return cls(
            name=data.get('name', ''),
            texture_name=data.get('textureName', ''),
            u0=data.get('u0', 0.0),
            u1=data.get('u1', 1.0),
            v0=data.get('v0', 0.0),
            v1=data.get('v1', 1.0),
            is_icon=bool(data.get('isIcon', False)),
            is_input_output=bool(data.get('isInputOutput', False)),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _merged(self.raw, {
            'name': self.name,
            'textureName': self.texture_name,
            'u0': self.u0,
            'u1': self.u1,
            'v0': self.v0,
            'v1': self.v1,
            'isIcon': self.is_icon,
            'isInputOutput': self.is_input_output,
        })

    @property
    def has_valid_uv(self) -> bool:
        return 0 <= self.u0 < self.u1 <= 1 and 0 <= self.v0 < self.v1 <= 1

    @property
    def is_repacked(self) -> bool:
        return self.texture_name.startswith(REPACK_PREFIX)

    def clone(self, **changes: Any) -> "SpriteInfo":
        cloned = copy.deepcopy(self)
        for key, value in changes.items():
            setattr(cloned, key, value)
        return cloned


@dataclass
class SpriteModifier:
    """A named, taggable reference to a SpriteInfo."""
    name: str
    sprite_info_name: str
    tags: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SpriteModifier":
        return cls(
            name=data.get('name', ''),
            sprite_info_name=data.get('spriteInfoName', ''),
            tags=list(data.get('tags', [])),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _merged(self.raw, {
            'name': self.name,
            'spriteInfoName': self.sprite_info_name,
            'tags': list(self.tags),
        })

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags

    def clone(self, **changes: Any) -> "SpriteModifier":
        cloned = copy.deepcopy(self)
        for key, value in changes.items():
            setattr(cloned, key, value)
        return cloned


@dataclass
class Building:
    """A buildable object whose sprite names reference SpriteModifier names."""
    prefab_id: str
    name: str = ""
    sprite_names: List[str] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Building":
        sprites = data.get('sprites') or {}
        return cls(
            prefab_id=data.get('prefabId', ''),
            name=data.get('name', ''),
            sprite_names=list(sprites.get('spriteNames', [])),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        known = {'prefabId': self.prefab_id}
        if self.name or 'name' in self.raw:
            known['name'] = self.name
        if self.sprite_names or isinstance(self.raw.get('sprites'), dict):
            sprites = dict(self.raw.get('sprites') or {})
            sprites['spriteNames'] = list(self.sprite_names)
            known['sprites'] = sprites
        return _merged(self.raw, known)


@dataclass
class BuildMenuCategory:
    category: int
    category_name: str = ""
    category_icon: str = ""
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildMenuCategory":
        return cls(
            category=data.get('category', 0),
            category_name=data.get('categoryName', ''),
            category_icon=data.get('categoryIcon', ''),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _merged(self.raw, {
            'category': self.category,
            'categoryName': self.category_name,
            'categoryIcon': self.category_icon,
        })


@dataclass
class BuildMenuItem:
    category: int
    building_id: str
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuildMenuItem":
        return cls(
            category=data.get('category', 0),
            building_id=data.get('buildingId', ''),
            raw=dict(data),
        )

    def to_dict(self) -> Dict[str, Any]:
        return _merged(self.raw, {
            'category': self.category,
            'buildingId': self.building_id,
        })


@dataclass
class Database:
    """The shared document mutated stage by stage."""
    elements: List[Element] = field(default_factory=list)
    build_menu_categories: List[BuildMenuCategory] = field(default_factory=list)
    build_menu_items: List[BuildMenuItem] = field(default_factory=list)
    ui_sprites: List[SpriteInfo] = field(default_factory=list)
    sprite_modifiers: List[SpriteModifier] = field(default_factory=list)
    buildings: List[Building] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Database":
        return cls(
            elements=[Element.from_dict(e) for e in data.get('elements', [])],
            build_menu_categories=[BuildMenuCategory.from_dict(c) for c in data.get('buildMenuCategories', [])],
            build_menu_items=[BuildMenuItem.from_dict(i) for i in data.get('buildMenuItems', [])],
            ui_sprites=[SpriteInfo.from_dict(s) for s in data.get('uiSprites', [])],
            sprite_modifiers=[SpriteModifier.from_dict(m) for m in data.get('spriteModifiers', [])],
            buildings=[Building.from_dict(b) for b in data.get('buildings', [])],
            raw={k: v for k, v in data.items() if k not in COLLECTIONS},
        )

    def to_dict(self) -> Dict[str, Any]:
        result = dict(self.raw)
        result.update({
            'elements': [e.to_dict() for e in self.elements],
            'buildMenuCategories': [c.to_dict() for c in self.build_menu_categories],
            'buildMenuItems': [i.to_dict() for i in self.build_menu_items],
            'uiSprites': [s.to_dict() for s in self.ui_sprites],
            'spriteModifiers': [m.to_dict() for m in self.sprite_modifiers],
            'buildings': [b.to_dict() for b in self.buildings],
        })
        return result

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Database":
        with open(path, 'r', encoding='utf-8') as f:
            return cls.from_dict(json.load(f))

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    def clone(self) -> "Database":
        return copy.deepcopy(self)

    # Lookups

    def sprite_info_index(self) -> Dict[str, SpriteInfo]:
        return {s.name: s for s in self.ui_sprites}

    def sprite_modifier_index(self) -> Dict[str, SpriteModifier]:
        return {m.name: m for m in self.sprite_modifiers}

    def find_sprite_info(self, name: str) -> Optional[SpriteInfo]:
        for sprite in self.ui_sprites:
            if sprite.name == name:
                return sprite
        return None

    def element_ids(self) -> set:
        return {e.id for e in self.elements}

    def prefab_ids(self) -> set:
        return {b.prefab_id for b in self.buildings}
