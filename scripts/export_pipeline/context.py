"""
Pipeline context: the collaborators of one pipeline run, built once and passed to every stage.
"""

from pathlib import Path
from typing import Dict, List, Optional

from .config import PipelineConfig
from .database import Database
from .paths import PathResolver
from .processing.validator import AssetValidator, DatabaseIntegrityChecker
from .rendering.engine import RenderEngine
from .rendering.fallback import FallbackTextureResolver
from .staging import OutputStaging
from .utils.comparator import ImageComparator
from .utils.logger import StructuredLogger


class PipelineContext:
    """Configuration, paths, logging, validation, staging and the current database document."""

    def __init__(self, config: PipelineConfig, logger: Optional[StructuredLogger] = None,
                 resolver: Optional[FallbackTextureResolver] = None):
        self.config = config
        self.paths = PathResolver(config)
        self.logger = logger or StructuredLogger()
        self.comparator = ImageComparator(self.logger)
        self.validator = AssetValidator(config, self.paths, self.logger)
        self.integrity = DatabaseIntegrityChecker(config.dangling_reference_ceiling, self.logger)
        self.staging = OutputStaging(self.paths, self.validator, self.comparator, self.logger,
                                     config.compression_level)
        self.resolver = resolver or FallbackTextureResolver()

        # Current document, and the document saved to each database output
        self.database: Optional[Database] = None
        self.variants: Dict[str, Database] = {}

    def texture_dirs(self) -> List[Path]:
        """Images staged by this run shadow the committed ones."""
        return [self.staging.staged_path(self.paths.assets_images), self.paths.assets_images]

    def render_engine(self) -> RenderEngine:
        return RenderEngine(self.texture_dirs(), self.logger, self.resolver)

    def load_database(self, path: Path) -> Database:
        return Database.load(self.staging.resolve(path))

    def save_database(self, database: Database, path: Path) -> bool:
        """Stage a database document and remember it as the variant stored at ``path``."""
        self.variants[Path(path).name] = database
        return self.staging.write_bytes(path, database.to_json())
