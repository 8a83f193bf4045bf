"""
UI icon generation: every icon sprite rendered centered on a square canvas.
"""

from PIL import Image

from ..context import PipelineContext
from ..database import Database, SpriteInfo
from ..errors import RenderError, TextureLoadError
from ..rendering.engine import RenderEngine


class IconGenerator:
    """Renders ``images/ui/<name>.png`` for sprites flagged as icons (and not input/output markers)."""

    def __init__(self, context: PipelineContext):
        self.context = context
        self.logger = context.logger

    def render_icon(self, engine: RenderEngine, sprite_info: SpriteInfo) -> Image.Image:
        with engine.load_texture(sprite_info.texture_name) as texture:
            frame = texture.sub_texture_uv(sprite_info.u0, sprite_info.u1, sprite_info.v0, sprite_info.v1)
            if frame.width == 0 or frame.height == 0:
                raise RenderError(f"Sprite {sprite_info.name} has an empty source rectangle")

            size = max(frame.width, frame.height)
            with engine.new_container() as container, engine.new_render_target(size, size) as target:
                container.add_child(engine.sprite_from(
                    frame, (size - frame.width) // 2, (size - frame.height) // 2
                ))
                engine.render(container, target)
                return engine.extract_image(target)

    def run(self, database: Database) -> Database:
        paths = self.context.paths
        interval = self.context.config.progress_interval
        icon_sprites = [s for s in database.ui_sprites if s.is_icon and not s.is_input_output]
        self.logger.info(f"Generating {len(icon_sprites)} UI icons")

        written = skipped = 0
        with self.logger.timer("IconGeneration"), self.context.render_engine() as engine:
            for index, sprite_info in enumerate(icon_sprites):
                if index % interval == 0:
                    self.logger.progress(index, len(icon_sprites), f"Generating icon: {sprite_info.name}")
                    self.logger.memory()

                try:
                    icon = self.render_icon(engine, sprite_info)
                except (TextureLoadError, RenderError) as e:
                    self.logger.warning(f"Skipping icon {sprite_info.name}: {e}")
                    skipped += 1
                    continue

                with icon:
                    written += self.context.staging.write_mirrored_png(
                        paths.ui_icon(sprite_info.name), paths.frontend_ui_icon(sprite_info.name), icon
                    )

        self.logger.info(f"Icons: {written} files changed, {skipped} sprites skipped")
        return database
