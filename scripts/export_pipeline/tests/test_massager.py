"""
Tests for database massaging and the typed database document.
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path

import pytest

from ..database import Database
from ..processing.massager import DatabaseMassager, fix_link_markup, load_rename_map
from ..utils.logger import StructuredLogger
from .helpers import sample_database, write_json


class TestFixLinkMarkup(unittest.TestCase):

    def test_plain_label_unchanged(self):
        self.assertEqual(fix_link_markup("Water"), "Water")

    def test_quotes_and_closes_link(self):
        self.assertEqual(fix_link_markup("<link=Water>Water"), '<link="Water">Water</link>')

    def test_already_valid(self):
        label = '<link="Water">Water</link> and more'
        self.assertEqual(fix_link_markup(label), label)

    def test_closes_before_next_link(self):
        self.assertEqual(
            fix_link_markup("<link=A>a <link=B>b</link>"),
            '<link="A">a </link><link="B">b</link>',
        )

    def test_drops_orphan_close(self):
        self.assertEqual(fix_link_markup("Oxygen</link>"), "Oxygen")


class TestDatabaseMassager:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.database = Database.from_dict(sample_database())
        self.logger = StructuredLogger(context="MassagerTest")

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_fix_html_labels(self):
        massager = DatabaseMassager(self.logger)
        assert massager.fix_html_labels(self.database) == 1
        assert self.database.elements[0].name == '<link="Water">Water</link>'

    def test_add_info_icons(self):
        self.database.build_menu_categories[0].category_icon = "icon_power"
        massager = DatabaseMassager(self.logger, info_icons=["info_heat", "icon_src"])

        assert massager.add_info_icons(self.database) == 2
        added = {s.name: s for s in self.database.ui_sprites}
        assert added["icon_power"].is_icon
        assert added["icon_power"].texture_name == "icon_power"
        assert (added["info_heat"].u0, added["info_heat"].u1) == (0.0, 1.0)
        # Running again adds nothing
        assert massager.add_info_icons(self.database) == 0

    def test_rename_build_menu_items(self):
        massager = DatabaseMassager(self.logger, rename_map={"pump": "liquid_pump"})
        assert massager.rename_build_menu_items(self.database) == 1
        assert self.database.build_menu_items[0].building_id == "liquid_pump"
        # Building identities are untouched
        assert self.database.prefab_ids() == {"pump"}

    def test_run_returns_document(self):
        massager = DatabaseMassager(self.logger)
        assert massager.run(self.database) is self.database

    def test_load_rename_map(self):
        assert load_rename_map(self.temp_dir / "missing.json") == {}
        path = write_json(self.temp_dir / "rename.json", {"a": "b"})
        assert load_rename_map(path) == {"a": "b"}

        write_json(path, {"a": 1})
        with pytest.raises(ValueError):
            load_rename_map(path)


class TestDatabase(unittest.TestCase):

    def test_unknown_fields_survive(self):
        database = Database.from_dict(sample_database())
        data = json.loads(database.to_json())

        self.assertEqual(data["version"], 3)
        self.assertEqual(data["elements"][0]["density"], 1000)
        self.assertEqual(data["buildings"][0]["power"], 240)
        self.assertEqual(list(data["elements"][0].keys()), ["id", "name", "density"])

    def test_round_trip_is_stable(self):
        first = Database.from_dict(sample_database()).to_json()
        second = Database.from_dict(json.loads(first)).to_json()
        self.assertEqual(first, second)

    def test_building_without_sprites_stays_without(self):
        data = sample_database()
        data["buildings"].append({"prefabId": "ladder", "name": "Ladder"})
        data["buildings"].append({"prefabId": "door", "sprites": None})
        buildings = json.loads(Database.from_dict(data).to_json())["buildings"]

        self.assertEqual(buildings[1], {"prefabId": "ladder", "name": "Ladder"})
        self.assertEqual(buildings[2], {"prefabId": "door", "sprites": None})
        self.assertEqual(buildings[0]["sprites"]["spriteNames"],
                         ["pump_base_mod", "pump_top_mod", "pump_shadow"])

    def test_building_gaining_sprites_gets_block(self):
        database = Database.from_dict({**sample_database(), "buildings": [{"prefabId": "ladder"}]})
        database.buildings[0].sprite_names.append("ladder_group_sprite")
        self.assertEqual(database.buildings[0].to_dict()["sprites"], {"spriteNames": ["ladder_group_sprite"]})

    def test_clone_is_deep(self):
        database = Database.from_dict(sample_database())
        clone = database.clone()
        clone.buildings[0].sprite_names.append("extra")
        self.assertNotIn("extra", database.buildings[0].sprite_names)

    def test_lookups(self):
        database = Database.from_dict(sample_database())
        self.assertEqual(database.find_sprite_info("pump_top").texture_name, "sheet")
        self.assertIsNone(database.find_sprite_info("nope"))
        self.assertEqual(database.element_ids(), {"water", "oxygen"})
        self.assertIn("pump_base_mod", database.sprite_modifier_index())

    def test_sprite_uv_checks(self):
        sprite = Database.from_dict(sample_database()).find_sprite_info("pump_base")
        self.assertTrue(sprite.has_valid_uv)
        self.assertFalse(sprite.is_repacked)
        self.assertFalse(sprite.clone(u1=0.0).has_valid_uv)
        self.assertTrue(sprite.clone(texture_name="repack_0").is_repacked)
