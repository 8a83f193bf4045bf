"""
Registry of database stages.

Each stage reads one database document, transforms a copy of it and saves the result to
its own output file. The orchestrator runs them in sequence; the CLI can run any one alone.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List

from .context import PipelineContext
from .database import Database
from .errors import PipelineError, UnknownStepError
from .paths import PathResolver
from .processing.groups import GroupGenerator
from .processing.icons import IconGenerator
from .processing.massager import DatabaseMassager, load_rename_map
from .processing.repack import AtlasRepacker
from .processing.white import WhiteVariantGenerator


@dataclass(frozen=True)
class StageDefinition:
    """How to build a stage and which database files it reads and writes."""
    name: str
    title: str
    description: str
    factory: Callable[[PipelineContext], object]
    input_path: Callable[[PathResolver], Path]
    output_path: Callable[[PathResolver], Path]


def _massager(context: PipelineContext) -> DatabaseMassager:
    return DatabaseMassager(
        context.logger,
        rename_map=load_rename_map(context.paths.build_menu_rename),
        info_icons=context.config.info_icons,
    )


class StageRegistry:
    """Name -> stage definition, in registration order."""

    def __init__(self):
        self._stages: Dict[str, StageDefinition] = {}

    def register(self, definition: StageDefinition) -> None:
        self._stages[definition.name] = definition

    def get(self, name: str) -> StageDefinition:
        if name not in self._stages:
            raise UnknownStepError(f"Unknown stage: {name}. Available: {', '.join(self.names())}", step=name)
        return self._stages[name]

    def names(self) -> List[str]:
        return list(self._stages)

    def __contains__(self, name: str) -> bool:
        return name in self._stages

    def execute(self, name: str, context: PipelineContext, database: Database) -> Database:
        """
        Run a stage on a copy of ``database`` and stage its output document.

        The input document is never modified, so a failed attempt can simply be retried.
        """
        definition = self.get(name)
        with context.logger.process(definition.title):
            result = definition.factory(context).run(database.clone())
            context.save_database(result, definition.output_path(context.paths))
        return result

    def run_standalone(self, name: str, context: PipelineContext) -> bool:
        """Run one stage against the committed input document and commit its outputs."""
        definition = self.get(name)
        input_path = definition.input_path(context.paths)
        if not context.validator.validate_database(input_path):
            return False

        try:
            self.execute(name, context, context.load_database(input_path))
            context.staging.commit()
        except (PipelineError, OSError, ValueError) as e:
            context.logger.error(f"Stage {name} failed: {e}", e)
            context.staging.discard()
            return False
        return True


def default_registry() -> StageRegistry:
    registry = StageRegistry()
    registry.register(StageDefinition(
        'massage', 'DatabaseMassager', 'Fix labels, add info icons, rename menu items',
        _massager, lambda p: p.export_database, lambda p: p.database_json,
    ))
    registry.register(StageDefinition(
        'icons', 'GenerateIcons', 'Render UI icons',
        IconGenerator, lambda p: p.database_json, lambda p: p.database_json,
    ))
    registry.register(StageDefinition(
        'groups', 'GenerateGroups', 'Composite group sprites',
        GroupGenerator, lambda p: p.database_json, lambda p: p.database_groups,
    ))
    registry.register(StageDefinition(
        'white', 'GenerateWhite', 'Generate white silhouette variants',
        WhiteVariantGenerator, lambda p: p.database_groups, lambda p: p.database_white,
    ))
    registry.register(StageDefinition(
        'repack', 'GenerateRepack', 'Pack sprites into atlas pages',
        AtlasRepacker, lambda p: p.database_white, lambda p: p.database_repack,
    ))
    return registry
