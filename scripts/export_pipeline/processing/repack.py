"""
Atlas repacking: every sprite still pointing at a source texture is moved onto ``repack_<n>`` pages.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Tuple

from PIL import Image

from ..context import PipelineContext
from ..database import REPACK_PREFIX, Database, SpriteInfo
from ..utils.image import ImageUtils, PixelBox
from .atlas import AtlasConfig, AtlasLayout, AtlasLayoutEngine


@dataclass
class Region:
    """A distinct pixel rectangle of a source file, shared by every sprite cut from it."""
    key: str
    source: Path
    box: PixelBox
    image: Image.Image

    @property
    def width(self) -> int:
        return self.box[2] - self.box[0]

    @property
    def height(self) -> int:
        return self.box[3] - self.box[1]


class AtlasRepacker:
    """Packs sprite regions into pages and rewrites texture names and UVs to point at them."""

    def __init__(self, context: PipelineContext):
        self.context = context
        self.logger = context.logger
        config = context.config
        self.layout_engine = AtlasLayoutEngine(AtlasConfig(
            padding=config.atlas_padding,
            power_of_two=config.atlas_power_of_two,
            max_size=config.atlas_max_size,
        ))

    def collect_regions(self, database: Database) -> Tuple[Dict[str, Region], Dict[str, List[SpriteInfo]]]:
        """
        Cut the pixel region of every packable sprite.

        Returns:
            Regions by key, and the sprites using each region
        """
        regions: Dict[str, Region] = {}
        users: Dict[str, List[SpriteInfo]] = {}
        candidates = [s for s in database.ui_sprites if not s.texture_name.startswith(REPACK_PREFIX)]

        with self.context.render_engine() as engine:
            for sprite_info in candidates:
                texture = engine.try_load_texture(sprite_info.texture_name)
                if texture is None:
                    continue
                with texture:
                    box = ImageUtils.uv_to_box(sprite_info.u0, sprite_info.u1,
                                               sprite_info.v0, sprite_info.v1, texture.base_size)
                    width, height = box[2] - box[0], box[3] - box[1]
                    if not self.layout_engine.fits_page(width, height):
                        self.logger.warning(
                            f"Not repacking {sprite_info.name}: region {width}x{height} "
                            f"is empty or larger than a {self.layout_engine.config.max_size} page"
                        )
                        continue

                    key = f"{sprite_info.texture_name}#{box[0]},{box[1]},{box[2]},{box[3]}"
                    if key not in regions:
                        with texture.sub_texture(box) as frame:
                            regions[key] = Region(key, texture.source, box, frame.image().copy())
                    users.setdefault(key, []).append(sprite_info)

        return regions, users

    def compose_page(self, layout: AtlasLayout, regions: Dict[str, Region]) -> Image.Image:
        page = Image.new('RGBA', (layout.width, layout.height), (0, 0, 0, 0))
        for key, rect in layout.positions.items():
            page.paste(regions[key].image, (rect.x, rect.y))
        return page

    @staticmethod
    def rewrite_sprite(sprite_info: SpriteInfo, page_index: int, layout: AtlasLayout, key: str) -> None:
        rect = layout.positions[key]
        sprite_info.texture_name = f"{REPACK_PREFIX}{page_index}"
        sprite_info.u0 = rect.x / layout.width
        sprite_info.u1 = rect.right / layout.width
        sprite_info.v0 = rect.y / layout.height
        sprite_info.v1 = rect.bottom / layout.height

    def run(self, database: Database) -> Database:
        paths = self.context.paths
        regions, users = self.collect_regions(database)
        self.logger.info(f"Packing {len(regions)} distinct regions used by "
                         f"{sum(len(u) for u in users.values())} sprites")

        items = [(key, region.width, region.height) for key, region in regions.items()]
        layouts = self.layout_engine.pack_pages(items)

        try:
            for index, layout in enumerate(layouts):
                sprite_count = sum(len(users[key]) for key in layout.positions)
                self.logger.info(
                    f"{REPACK_PREFIX}{index}: {layout.width}x{layout.height}, "
                    f"{len(layout.positions)} regions, efficiency {layout.efficiency:.1%}"
                )
                if sprite_count == 1:
                    self.logger.warning(f"{REPACK_PREFIX}{index} holds a single sprite")

                with self.compose_page(layout, regions) as page:
                    self.context.staging.write_mirrored_png(
                        paths.repack_texture(index), paths.frontend_repack_texture(index), page
                    )

                for key in layout.positions:
                    for sprite_info in users[key]:
                        self.rewrite_sprite(sprite_info, index, layout, key)
        finally:
            for region in regions.values():
                region.image.close()

        self.logger.info(f"Repacked into {len(layouts)} atlas pages")
        return database
