"""
Output staging.

Stages write their outputs into a staging tree that mirrors the project layout. Files whose
content already matches the committed output are not staged at all. Committing moves the
staged files over the committed ones; discarding drops them, leaving earlier outputs untouched.
"""

import filecmp
import os
import shutil
from pathlib import Path
from typing import List, Union

from PIL import Image

from .errors import StepExecutionError
from .paths import PathResolver
from .processing.validator import AssetValidator
from .utils.comparator import ImageComparator
from .utils.image import ImageUtils
from .utils.logger import StructuredLogger


class OutputStaging:
    """Collects a run's outputs until every step has succeeded."""

    def __init__(self, paths: PathResolver, validator: AssetValidator,
                 comparator: ImageComparator, logger: StructuredLogger,
                 compress_level: int = 6):
        self.paths = paths
        self.root = paths.staging_dir
        self.validator = validator
        self.comparator = comparator
        self.logger = logger
        self.compress_level = compress_level

    def staged_path(self, final_path: Union[str, Path]) -> Path:
        return self.root / self.paths.relative(final_path)

    def resolve(self, final_path: Union[str, Path]) -> Path:
        """The staged copy of a path if there is one, the committed path otherwise."""
        staged = self.staged_path(final_path)
        return staged if staged.exists() else Path(final_path)

    def _unstage(self, final_path: Path) -> None:
        staged = self.staged_path(final_path)
        if staged.exists():
            staged.unlink()

    def _write(self, final_path: Path, data: Union[str, bytes]) -> None:
        if not self.validator.safe_write_file(self.staged_path(final_path), data):
            raise StepExecutionError(f"Could not stage {final_path}")

    def write_png(self, final_path: Union[str, Path], image: Image.Image) -> bool:
        """
        Stage an image unless the committed file already holds identical pixels.

        Returns:
            True if the image was staged, False if the write was skipped
        """
        final_path = Path(final_path)
        if self.comparator.is_buffer_identical_to_file(image, final_path):
            self._unstage(final_path)
            self.logger.debug(f"Skipping identical image: {final_path}")
            return False
        self._write(final_path, ImageUtils.to_png_bytes(image, self.compress_level))
        self.logger.file_operation("Staged image", final_path)
        return True

    def write_mirrored_png(self, backend_path: Union[str, Path], frontend_path: Union[str, Path],
                           image: Image.Image) -> int:
        """Stage an image for both asset trees, comparing each side independently."""
        return int(self.write_png(backend_path, image)) + int(self.write_png(frontend_path, image))

    def write_bytes(self, final_path: Union[str, Path], data: Union[str, bytes]) -> bool:
        """Stage raw content unless the committed file is byte-identical."""
        final_path = Path(final_path)
        payload = data.encode('utf-8') if isinstance(data, str) else data
        if final_path.is_file() and final_path.read_bytes() == payload:
            self._unstage(final_path)
            self.logger.debug(f"Skipping identical file: {final_path}")
            return False
        self._write(final_path, payload)
        self.logger.file_operation("Staged file", final_path)
        return True

    def copy_file(self, source: Union[str, Path], final_path: Union[str, Path]) -> bool:
        """Stage a copy of ``source`` unless the committed file is byte-identical."""
        source, final_path = Path(source), Path(final_path)
        if final_path.is_file() and filecmp.cmp(source, final_path, shallow=False):
            self._unstage(final_path)
            return False
        if not self.validator.safe_copy_file(source, self.staged_path(final_path)):
            raise StepExecutionError(f"Could not stage {final_path}")
        return True

    def pending(self) -> List[Path]:
        """Committed locations of every staged file."""
        if not self.root.exists():
            return []
        return sorted(self.paths.absolute(p.relative_to(self.root))
                      for p in self.root.rglob('*') if p.is_file())

    def commit(self) -> int:
        """Move every staged file into place. Returns the number of files committed."""
        committed = 0
        for final_path in self.pending():
            final_path.parent.mkdir(parents=True, exist_ok=True)
            os.replace(self.staged_path(final_path), final_path)
            committed += 1
        self.discard()
        self.logger.info(f"Committed {committed} changed files")
        return committed

    def discard(self) -> None:
        if self.root.exists():
            shutil.rmtree(self.root)
