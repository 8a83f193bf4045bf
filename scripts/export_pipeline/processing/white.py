"""
White variants: alpha-preserving silhouettes of every solid sprite.
"""

from typing import List

from ..context import PipelineContext
from ..database import SOLID_TAG, WHITE_SUFFIX, WHITE_TAG, Database
from ..errors import RenderError


class WhiteVariantGenerator:
    """Clones solid modifiers and their sprite infos as ``_white`` variants and renders the textures."""

    def __init__(self, context: PipelineContext):
        self.context = context
        self.logger = context.logger
        self.dangling_references = 0

    def clone_entities(self, database: Database) -> List[str]:
        """
        Add the white modifiers and sprite infos.

        Returns:
            Distinct source texture names, in first-use order
        """
        infos = database.sprite_info_index()
        existing_modifiers = {m.name for m in database.sprite_modifiers}
        sources = [m for m in database.sprite_modifiers
                   if m.has_tag(SOLID_TAG) and not m.has_tag(WHITE_TAG)]

        textures: List[str] = []
        for modifier in sources:
            white_name = modifier.name + WHITE_SUFFIX
            if white_name in existing_modifiers:
                continue

            white_modifier = modifier.clone(
                name=white_name,
                sprite_info_name=modifier.sprite_info_name + WHITE_SUFFIX,
                tags=modifier.tags + [WHITE_TAG],
            )
            database.sprite_modifiers.append(white_modifier)
            existing_modifiers.add(white_name)

            sprite_info = infos.get(modifier.sprite_info_name)
            if sprite_info is None:
                self.dangling_references += 1
                self.logger.debug(f"Sprite info not found for {modifier.name}: {modifier.sprite_info_name}")
            else:
                if sprite_info.texture_name not in textures:
                    textures.append(sprite_info.texture_name)
                if white_modifier.sprite_info_name not in infos:
                    white_info = sprite_info.clone(
                        name=white_modifier.sprite_info_name,
                        texture_name=sprite_info.texture_name + WHITE_SUFFIX,
                    )
                    database.ui_sprites.append(white_info)
                    infos[white_info.name] = white_info

            for building in database.buildings:
                if modifier.name in building.sprite_names:
                    building.sprite_names.append(white_name)

        if self.dangling_references:
            self.logger.warning(
                f"{self.dangling_references} solid modifiers reference missing sprite infos"
            )
        return textures

    def run(self, database: Database) -> Database:
        paths = self.context.paths
        textures = self.clone_entities(database)
        self.logger.info(f"Rendering {len(textures)} white textures")

        skipped = 0
        with self.context.render_engine() as engine:
            for texture_name in textures:
                texture = engine.try_load_texture(texture_name, white=True)
                if texture is None:
                    skipped += 1
                    continue

                try:
                    with engine.new_container() as container, \
                            engine.new_render_target(texture.width, texture.height) as target:
                        container.add_child(engine.sprite_from(texture))
                        engine.render(container, target)
                        image = engine.extract_image(target)
                except RenderError as e:
                    self.logger.warning(f"⚠️ Skipping white texture {texture_name}: {e}")
                    skipped += 1
                    continue

                with image:
                    self.context.staging.write_mirrored_png(
                        paths.white_texture(texture_name),
                        paths.frontend_texture(texture_name + WHITE_SUFFIX),
                        image,
                    )

        self.logger.info(f"White variants done, {skipped} textures skipped")
        return database
