"""
Export Pipeline

Turns a raw game-data export (a zip holding a JSON database and loose sprite images) into
the databases, UI icons, white silhouettes and packed texture atlases the web frontend and
API serve as static files.
"""

__version__ = "1.0.0"
__author__ = "Export Pipeline Development Team"

from .config import PipelineConfig
from .context import PipelineContext
from .database import Database
from .errors import PipelineError
from .pipeline import Orchestrator
from .stages import StageRegistry, default_registry
from .tracker import ProgressTracker

__all__ = [
    "PipelineConfig",
    "PipelineContext",
    "Database",
    "PipelineError",
    "Orchestrator",
    "StageRegistry",
    "default_registry",
    "ProgressTracker",
]
