"""
Tests for the image stages and the stage registry, run against a temporary project.
"""

import json
import shutil
import tempfile
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from ..context import PipelineContext
from ..database import Database, SpriteInfo, SpriteModifier
from ..errors import UnknownStepError
from ..processing.groups import GroupGenerator
from ..processing.icons import IconGenerator
from ..processing.repack import AtlasRepacker
from ..processing.white import WhiteVariantGenerator
from ..stages import default_registry
from ..utils.logger import StructuredLogger
from .helpers import BLUE, GREEN, RED, make_config, sample_database, sheet_image, solid_image, write_json, write_png


class StageTestBase:
    """Temporary project with the sample textures committed under assets/images."""

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.context = self.make_context()
        self.paths = self.context.paths
        write_png(self.paths.texture("sheet"), sheet_image())
        write_png(self.paths.texture("icon_src"), solid_image((4, 2), GREEN))
        self.database = Database.from_dict(sample_database())

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def make_context(self, **overrides) -> PipelineContext:
        return PipelineContext(make_config(self.temp_dir, **overrides), StructuredLogger(context="StageTest"))

    def staged(self, path: Path) -> Path:
        return self.context.staging.staged_path(path)

    def open_staged(self, path: Path) -> Image.Image:
        with Image.open(self.staged(path)) as image:
            return image.convert('RGBA')


class TestIconGenerator(StageTestBase):

    def test_renders_centered_square_icons(self):
        result = IconGenerator(self.context).run(self.database)

        assert result is self.database
        icon = self.open_staged(self.paths.ui_icon("icon_src"))
        assert icon.size == (4, 4)
        assert icon.getpixel((0, 0))[3] == 0
        assert icon.getpixel((0, 1)) == GREEN
        assert self.staged(self.paths.frontend_ui_icon("icon_src")).exists()

    def test_skips_input_output_and_missing_textures(self):
        self.database.ui_sprites.append(SpriteInfo("io_marker", "icon_src", is_icon=True, is_input_output=True))
        self.database.ui_sprites.append(SpriteInfo("lost_icon", "nowhere", is_icon=True))

        IconGenerator(self.context).run(self.database)

        assert not self.staged(self.paths.ui_icon("io_marker")).exists()
        assert not self.staged(self.paths.ui_icon("lost_icon")).exists()
        assert self.staged(self.paths.ui_icon("icon_src")).exists()

    def test_unchanged_icons_are_not_rewritten(self):
        IconGenerator(self.context).run(self.database)
        assert self.context.staging.commit() == 2

        IconGenerator(self.context).run(self.database)
        assert self.context.staging.pending() == []

    def test_only_changed_side_is_staged(self):
        IconGenerator(self.context).run(self.database)
        self.context.staging.commit()
        self.paths.frontend_ui_icon("icon_src").unlink()

        IconGenerator(self.context).run(self.database)
        assert self.context.staging.pending() == [self.paths.frontend_ui_icon("icon_src")]


class TestGroupGenerator(StageTestBase):

    def test_composites_solid_layers(self):
        GroupGenerator(self.context).run(self.database)

        name = "pump_group_sprite"
        group = self.open_staged(self.paths.texture(name))
        assert group.size == (4, 8)
        assert group.getpixel((0, 7)) == RED
        assert self.staged(self.paths.frontend_texture(name)).exists()

        sprite_info = self.database.find_sprite_info(name)
        assert sprite_info.texture_name == name
        assert not sprite_info.is_icon
        assert self.database.sprite_modifier_index()[name].tags == ["group"]
        assert self.database.buildings[0].sprite_names[-1] == name

    def test_single_layer_buildings_are_skipped(self):
        self.database.buildings[0].sprite_names.remove("pump_top_mod")
        GroupGenerator(self.context).run(self.database)

        assert self.database.find_sprite_info("pump_group_sprite") is None
        assert self.context.staging.pending() == []

    def test_rerun_adds_nothing(self):
        generator = GroupGenerator(self.context)
        generator.run(self.database)
        count = len(self.database.sprite_modifiers)
        generator.run(self.database)
        assert len(self.database.sprite_modifiers) == count


class TestWhiteVariantGenerator(StageTestBase):

    def test_one_white_variant_per_solid_modifier(self):
        solid = [m for m in self.database.sprite_modifiers if m.has_tag("solid")]
        WhiteVariantGenerator(self.context).run(self.database)

        white = [m for m in self.database.sprite_modifiers if m.has_tag("white")]
        assert len(white) == len(solid) == 2
        assert {m.name for m in white} == {"pump_base_mod_white", "pump_top_mod_white"}
        assert all(m.tags == ["solid", "white"] for m in white)

        sprite_info = self.database.find_sprite_info("pump_base_white")
        assert sprite_info.texture_name == "sheet_white"
        assert (sprite_info.u0, sprite_info.u1) == (0, 0.5)

        sprite_names = self.database.buildings[0].sprite_names
        assert "pump_base_mod_white" in sprite_names
        assert "pump_top_mod_white" in sprite_names

    def test_white_texture_keeps_alpha(self):
        WhiteVariantGenerator(self.context).run(self.database)

        pixels = np.asarray(self.open_staged(self.paths.white_texture("sheet")))
        assert (pixels[:, :, :3] == 255).all()
        assert pixels[0, 0, 3] == 255
        assert pixels[0, 7, 3] == BLUE[3]
        assert self.staged(self.paths.frontend_texture("sheet_white")).exists()

    def test_dangling_sprite_info_is_counted(self):
        self.database.sprite_modifiers.append(SpriteModifier("orphan", "no_such_info", ["solid"]))
        generator = WhiteVariantGenerator(self.context)
        generator.run(self.database)

        assert generator.dangling_references == 1
        assert "orphan_white" in self.database.sprite_modifier_index()
        assert self.database.find_sprite_info("no_such_info_white") is None

    def test_missing_texture_is_skipped(self):
        self.paths.texture("sheet").unlink()
        WhiteVariantGenerator(self.context).run(self.database)

        assert not self.staged(self.paths.white_texture("sheet")).exists()
        # Database entities are still cloned
        assert "pump_base_mod_white" in self.database.sprite_modifier_index()


class TestAtlasRepacker(StageTestBase):

    def test_repacks_onto_one_page(self):
        AtlasRepacker(self.context).run(self.database)

        infos = self.database.sprite_info_index()
        assert {s.texture_name for s in self.database.ui_sprites} == {"repack_0"}
        assert all(s.has_valid_uv for s in self.database.ui_sprites)

        base, top, icon = infos["pump_base"], infos["pump_top"], infos["icon_src"]
        assert (base.u0, base.u1, base.v0, base.v1) == (0.0, pytest.approx(1 / 3), 0.0, 1.0)
        assert (top.u0, top.v1) == (pytest.approx(1 / 3), 0.5)
        assert (icon.u0, icon.u1, icon.v1) == (pytest.approx(2 / 3), 1.0, 0.25)

        page = self.open_staged(self.paths.repack_texture(0))
        assert page.size == (12, 8)
        assert page.getpixel((0, 0)) == RED
        assert page.getpixel((4, 0)) == BLUE
        assert page.getpixel((8, 0)) == GREEN
        assert self.staged(self.paths.frontend_repack_texture(0)).exists()

    def test_spills_onto_further_pages(self, caplog):
        # A 4x8 page holds pump_base alone; pump_top and the icon share the next one
        self.context = self.make_context(atlas_max_size=(4, 8))
        AtlasRepacker(self.context).run(self.database)

        infos = self.database.sprite_info_index()
        base, top, icon = infos["pump_base"], infos["pump_top"], infos["icon_src"]
        assert base.texture_name == "repack_0"
        assert top.texture_name == "repack_1"
        assert icon.texture_name == "repack_1"
        assert all(s.has_valid_uv for s in (base, top, icon))

        assert (base.u0, base.u1, base.v0, base.v1) == (0.0, 1.0, 0.0, 1.0)
        assert (top.u0, top.u1, top.v0, top.v1) == (0.0, 1.0, 0.0, pytest.approx(4 / 6))
        assert (icon.u0, icon.u1, icon.v0, icon.v1) == (0.0, 1.0, pytest.approx(4 / 6), 1.0)

        first = self.open_staged(self.paths.repack_texture(0))
        second = self.open_staged(self.paths.repack_texture(1))
        assert first.size == (4, 8)
        assert second.size == (4, 6)
        assert first.getpixel((0, 0)) == RED
        assert second.getpixel((0, 0)) == BLUE
        assert second.getpixel((0, 4)) == GREEN
        for index in (0, 1):
            assert self.staged(self.paths.repack_texture(index)).exists()
            assert self.staged(self.paths.frontend_repack_texture(index)).exists()
        assert not self.staged(self.paths.repack_texture(2)).exists()

        assert "repack_0 holds a single sprite" in caplog.text
        assert "repack_1 holds a single sprite" not in caplog.text

    def test_shared_regions_are_packed_once(self):
        self.database.ui_sprites.append(SpriteInfo("pump_base_copy", "sheet", 0, 0.5, 0, 1))
        AtlasRepacker(self.context).run(self.database)

        infos = self.database.sprite_info_index()
        original, copy = infos["pump_base"], infos["pump_base_copy"]
        assert (copy.u0, copy.u1, copy.v0, copy.v1) == (original.u0, original.u1, original.v0, original.v1)
        assert self.open_staged(self.paths.repack_texture(0)).size == (12, 8)

    def test_unloadable_and_oversized_sprites_keep_texture(self):
        self.context = self.make_context(atlas_max_size=(4, 4))
        self.database.ui_sprites.append(SpriteInfo("ghost", "ghost_texture"))
        AtlasRepacker(self.context).run(self.database)

        infos = self.database.sprite_info_index()
        assert infos["ghost"].texture_name == "ghost_texture"
        assert infos["pump_base"].texture_name == "sheet"
        assert infos["pump_top"].texture_name == "repack_0"

    def test_already_repacked_sprites_are_left_alone(self):
        repacker = AtlasRepacker(self.context)
        repacker.run(self.database)
        before = self.database.to_json()

        repacker.run(self.database)
        assert self.database.to_json() == before


class TestStageRegistry(StageTestBase):

    def test_names(self):
        registry = default_registry()
        assert registry.names() == ["massage", "icons", "groups", "white", "repack"]
        assert "white" in registry
        with pytest.raises(UnknownStepError):
            registry.get("sharpen")

    def test_execute_works_on_a_copy(self):
        registry = default_registry()
        result = registry.execute("white", self.context, self.database)

        assert result is not self.database
        assert not any(m.has_tag("white") for m in self.database.sprite_modifiers)
        assert any(m.has_tag("white") for m in result.sprite_modifiers)
        assert self.context.variants["database-white.json"] is result
        assert json.loads(self.staged(self.paths.database_white).read_text(encoding="utf-8"))["spriteModifiers"]

    def test_run_standalone_commits_output(self):
        write_json(self.paths.export_database, sample_database())

        assert default_registry().run_standalone("massage", self.context) is True
        data = json.loads(self.paths.database_json.read_text(encoding="utf-8"))
        assert data["elements"][0]["name"] == '<link="Water">Water</link>'
        assert not self.paths.staging_dir.exists()

    def test_run_standalone_missing_input(self):
        assert default_registry().run_standalone("white", self.context) is False
        assert not self.paths.database_white.exists()
