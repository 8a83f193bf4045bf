"""
Tests for output staging: skip-identical writes, commit and discard.
"""

import shutil
import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest

from ..context import PipelineContext
from ..errors import StepExecutionError
from .helpers import BLUE, RED, make_config, solid_image, write_png


class TestOutputStaging:

    def setup_method(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.context = PipelineContext(make_config(self.temp_dir))
        self.paths = self.context.paths
        self.staging = self.context.staging
        self.target = self.paths.texture("tile")

    def teardown_method(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_new_image_is_staged_not_committed(self):
        assert self.staging.write_png(self.target, solid_image((2, 2))) is True

        assert not self.target.exists()
        assert self.staging.staged_path(self.target).exists()
        assert self.staging.pending() == [self.target]
        assert self.staging.resolve(self.target) == self.staging.staged_path(self.target)

    def test_commit_moves_files_into_place(self):
        self.staging.write_png(self.target, solid_image((2, 2)))
        self.staging.write_bytes(self.paths.database_json, '{"version": 3}')

        assert self.staging.commit() == 2
        assert self.target.exists()
        assert self.paths.database_json.read_text(encoding="utf-8") == '{"version": 3}'
        assert not self.paths.staging_dir.exists()
        assert self.staging.resolve(self.target) == self.target

    def test_identical_image_is_skipped(self):
        write_png(self.target, solid_image((2, 2), RED))
        assert self.staging.write_png(self.target, solid_image((2, 2), RED)) is False
        assert self.staging.pending() == []

    def test_reverting_to_committed_content_unstages(self):
        write_png(self.target, solid_image((2, 2), RED))
        assert self.staging.write_png(self.target, solid_image((2, 2), BLUE)) is True
        assert self.staging.write_png(self.target, solid_image((2, 2), RED)) is False
        assert not self.staging.staged_path(self.target).exists()

    def test_size_change_is_a_change(self):
        write_png(self.target, solid_image((2, 2)))
        assert self.staging.write_png(self.target, solid_image((4, 1))) is True

    def test_write_bytes_skips_identical(self):
        assert self.staging.write_bytes(self.paths.database_json, b"abc") is True
        self.staging.commit()
        assert self.staging.write_bytes(self.paths.database_json, "abc") is False
        assert self.staging.write_bytes(self.paths.database_json, "abd") is True

    def test_mirrored_png(self):
        image = solid_image((2, 2))
        frontend = self.paths.frontend_texture("tile")
        assert self.staging.write_mirrored_png(self.target, frontend, image) == 2
        self.staging.commit()
        assert self.staging.write_mirrored_png(self.target, frontend, image) == 0

    def test_copy_file(self):
        source = self.temp_dir / "source.png"
        write_png(source, solid_image((2, 2)))

        assert self.staging.copy_file(source, self.target) is True
        self.staging.commit()
        assert self.staging.copy_file(source, self.target) is False

    def test_discard_keeps_committed_outputs(self):
        write_png(self.target, solid_image((2, 2), RED))
        self.staging.write_png(self.target, solid_image((2, 2), BLUE))

        self.staging.discard()
        assert not self.paths.staging_dir.exists()
        assert self.context.comparator.is_buffer_identical_to_file(solid_image((2, 2), RED), self.target)
        # Discarding twice is harmless
        self.staging.discard()

    def test_failed_write_raises(self):
        with patch.object(self.context.validator, 'safe_write_file', return_value=False):
            with pytest.raises(StepExecutionError):
                self.staging.write_bytes(self.paths.database_json, "{}")

    def test_texture_dirs_prefer_staged(self):
        dirs = self.context.texture_dirs()
        assert dirs == [self.staging.staged_path(self.paths.assets_images), self.paths.assets_images]
