"""
Group sprites: the solid layers of a building composited into one image.
"""

from typing import List, Optional

from PIL import Image

from ..context import PipelineContext
from ..database import GROUP_TAG, SOLID_TAG, Building, Database, SpriteInfo, SpriteModifier
from ..errors import RenderError
from ..rendering.engine import RenderEngine


GROUP_SUFFIX = '_group_sprite'


def group_sprite_name(building: Building) -> str:
    return f"{building.prefab_id}{GROUP_SUFFIX}"


class GroupGenerator:
    """
    Composites every building with two or more solid layers into ``<prefabId>_group_sprite``.

    Layers are drawn in ``spriteNames`` order, each centered on a canvas sized to the
    largest layer. The result is registered as a sprite info, a ``group``-tagged modifier
    and an extra sprite name of the building.
    """

    def __init__(self, context: PipelineContext):
        self.context = context
        self.logger = context.logger

    def solid_layers(self, database: Database, building: Building) -> List[SpriteInfo]:
        infos = database.sprite_info_index()
        modifiers = database.sprite_modifier_index()
        layers = []
        for sprite_name in building.sprite_names:
            modifier = modifiers.get(sprite_name)
            if modifier is None or not modifier.has_tag(SOLID_TAG):
                continue
            sprite_info = infos.get(modifier.sprite_info_name)
            if sprite_info is not None:
                layers.append(sprite_info)
        return layers

    def render_group(self, engine: RenderEngine, layers: List[SpriteInfo]) -> Optional[Image.Image]:
        """Composite the layers; None if no layer could be loaded."""
        frames = []
        for sprite_info in layers:
            texture = engine.try_load_texture(sprite_info.texture_name)
            if texture is None:
                continue
            with texture:
                frame = texture.sub_texture_uv(sprite_info.u0, sprite_info.u1, sprite_info.v0, sprite_info.v1)
            if frame.width and frame.height:
                frames.append(frame)

        if not frames:
            return None

        width = max(f.width for f in frames)
        height = max(f.height for f in frames)
        with engine.new_container() as container, engine.new_render_target(width, height) as target:
            for frame in frames:
                container.add_child(engine.sprite_from(
                    frame, (width - frame.width) // 2, (height - frame.height) // 2
                ))
            engine.render(container, target)
            return engine.extract_image(target)

    def run(self, database: Database) -> Database:
        paths = self.context.paths
        existing = {m.name for m in database.sprite_modifiers}
        created = 0

        with self.context.render_engine() as engine:
            for building in database.buildings:
                name = group_sprite_name(building)
                if name in existing:
                    continue
                layers = self.solid_layers(database, building)
                if len(layers) < 2:
                    continue

                try:
                    image = self.render_group(engine, layers)
                except RenderError as e:
                    self.logger.warning(f"Skipping group sprite {name}: {e}")
                    continue
                if image is None:
                    self.logger.warning(f"Skipping group sprite {name}: no layer could be loaded")
                    continue

                with image:
                    self.context.staging.write_mirrored_png(
                        paths.texture(name), paths.frontend_texture(name), image
                    )

                database.ui_sprites.append(SpriteInfo(name=name, texture_name=name))
                database.sprite_modifiers.append(SpriteModifier(name=name, sprite_info_name=name, tags=[GROUP_TAG]))
                building.sprite_names.append(name)
                existing.add(name)
                created += 1

        self.logger.info(f"Generated {created} group sprites")
        return database
