"""
Export pipeline orchestrator.
Registers the extraction, database and image steps with the progress tracker, runs them in
dependency order and either commits every staged output or cleans up and leaves the
committed outputs of earlier runs untouched.
"""

import asyncio
import io
import shutil
import zipfile
from typing import Callable, Dict, List, Optional, Tuple

from .config import PipelineConfig
from .context import PipelineContext
from .database import Database
from .errors import InputValidationError, PipelineError, StepExecutionError
from .processing.validator import find_database_member
from .stages import StageRegistry, default_registry
from .tracker import ProcessingStep, ProgressTracker, StepStatus
from .utils.logger import StructuredLogger


# Fixed timestamp so database.zip only changes when the document does
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)


class Orchestrator:
    """
    Top-level export pipeline.

    Steps, their dependencies and retry budgets:

        extract-export    -                                    2
        relocate-images   extract-export                       2
        massage-database  extract-export                       2
        generate-icons    massage-database, relocate-images    3
        generate-groups   generate-icons                       3
        generate-white    generate-groups                      3
        generate-repack   generate-white                       3
        verify-databases  generate-repack                      0
        finalize          verify-databases                     2
    """

    STEP_DEPENDENCIES: Dict[str, List[str]] = {
        'extract-export': [],
        'relocate-images': ['extract-export'],
        'massage-database': ['extract-export'],
        'generate-icons': ['massage-database', 'relocate-images'],
        'generate-groups': ['generate-icons'],
        'generate-white': ['generate-groups'],
        'generate-repack': ['generate-white'],
        'verify-databases': ['generate-repack'],
        'finalize': ['verify-databases'],
    }

    STEP_RETRIES: Dict[str, int] = {
        'extract-export': 2,
        'relocate-images': 2,
        'massage-database': 2,
        'generate-icons': 3,
        'generate-groups': 3,
        'generate-white': 3,
        'generate-repack': 3,
        'verify-databases': 0,
        'finalize': 2,
    }

    def __init__(self, config: PipelineConfig, logger: Optional[StructuredLogger] = None,
                 tracker: Optional[ProgressTracker] = None,
                 registry: Optional[StageRegistry] = None):
        """
        Initialize the orchestrator.

        Args:
            config: Pipeline configuration
            logger: Logger shared by every component of the run
            tracker: Step executor; a default one honouring ``config.retry`` is created if omitted
            registry: Database stages; the default registry if omitted
        """
        self.config = config
        self.logger = logger or StructuredLogger()
        self.context = PipelineContext(config, self.logger)
        self.tracker = tracker or ProgressTracker(self.logger, config.retry)
        self.registry = registry or default_registry()
        self._register_steps()

    def _register_steps(self) -> None:
        steps: List[Tuple[str, str, Callable]] = [
            ('extract-export', 'Extract export archive', self._extract_export),
            ('relocate-images', 'Stage exported and manual images', self._relocate_images),
            ('massage-database', 'Massage database', self._massage_database),
            ('generate-icons', 'Generate UI icons', self._stage_step('icons')),
            ('generate-groups', 'Generate group sprites', self._stage_step('groups')),
            ('generate-white', 'Generate white variants', self._stage_step('white')),
            ('generate-repack', 'Generate texture atlases', self._stage_step('repack')),
            ('verify-databases', 'Verify database variants', self._verify_databases),
            ('finalize', 'Deploy database files and commit outputs', self._finalize),
        ]
        for name, description, action in steps:
            retries = self.STEP_RETRIES[name]
            self.tracker.register_step(ProcessingStep(
                name=name,
                description=description,
                execute=action,
                retryable=retries > 0,
                max_retries=retries,
                dependencies=list(self.STEP_DEPENDENCIES[name]),
            ))

    def run(self) -> bool:
        """
        Run the whole pipeline. Never raises.

        Returns:
            True if every step succeeded and the outputs were committed
        """
        self.logger.start_process("ExportPipeline")
        try:
            self.context.validator.pre_flight_check()
        except InputValidationError as e:
            self.logger.error(f"Pre-flight check failed: {e}")
            return False

        # Leftovers of an interrupted run must not be committed by this one
        self.context.staging.discard()
        self.context.database = None
        self.context.variants.clear()
        self.tracker.reset()

        try:
            success = asyncio.run(self.tracker.execute_all())
        except PipelineError as e:
            self.logger.error(f"Pipeline could not start: {e}")
            success = False

        self._log_summary()
        if not success:
            self._cleanup()
            return False

        self.logger.complete_process("ExportPipeline")
        return True

    def cancel(self) -> None:
        """Stop before the next step; the run then cleans up and reports failure."""
        self.logger.warning("Cancellation requested")
        self.tracker.cancel()

    def _cleanup(self) -> None:
        failed = [name for name, state in self.tracker.get_state().items()
                  if state.status == StepStatus.FAILED]
        if failed:
            self.logger.error(f"Pipeline failed at step: {failed[0]}")
        self.context.validator.cleanup_on_error()
        self.context.staging.discard()

    def _log_summary(self) -> None:
        summary = self.tracker.get_summary()
        self.logger.info("=" * 60)
        self.logger.info("EXPORT PIPELINE SUMMARY")
        self.logger.info("=" * 60)
        self.logger.info(f"Steps completed: {summary['completed']}/{summary['total']}")
        if summary['failed']:
            self.logger.warning(f"{summary['failed']} steps failed")

        for name, state in self.tracker.get_state().items():
            if state.status == StepStatus.PENDING:
                continue
            status = "✓" if state.status == StepStatus.COMPLETED else "✗"
            duration = f"{state.duration:.2f}s" if state.duration is not None else "-"
            line = f"  {status} {name}: {duration}"
            if state.retry_count:
                line += f" ({state.retry_count} retries)"
            if state.error_message:
                line += f" - {state.error_message}"
            self.logger.info(line)

        self.logger.memory()
        self.logger.info("=" * 60)

    # Step implementations

    def _extract_export(self) -> bool:
        """Unpack the archive into the export directory, dropping an optional top-level folder."""
        paths = self.context.paths
        if not self.context.validator.safe_remove_directory(paths.export_dir):
            return False

        export_root = paths.export_dir.resolve()
        extracted = 0
        with zipfile.ZipFile(paths.export_zip) as archive:
            member = find_database_member(archive.namelist())
            if member is None:
                raise StepExecutionError(f"{paths.export_zip} has no database document",
                                         step='extract-export')
            prefix = member[:-len("database/database.json")]

            for info in archive.infolist():
                if info.is_dir() or not info.filename.startswith(prefix):
                    continue
                target = (export_root / info.filename[len(prefix):]).resolve()
                if not target.is_relative_to(export_root):
                    raise StepExecutionError(f"Refusing to extract outside the export directory: "
                                             f"{info.filename}", step='extract-export')
                target.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(info) as source, open(target, 'wb') as destination:
                    shutil.copyfileobj(source, destination)
                extracted += 1

        self.logger.info(f"✓ Extracted {extracted} files to {paths.export_dir}")
        return True

    def _relocate_images(self) -> bool:
        """Stage the exported images, then the manual overrides on top of them."""
        paths = self.context.paths
        staging = self.context.staging

        if not paths.export_images.is_dir():
            self.logger.warning(f"Export has no images directory: {paths.export_images}")

        staged = 0
        for source_dir in (paths.export_images, paths.assets_manual):
            if not source_dir.is_dir():
                continue
            for source in sorted(source_dir.rglob('*')):
                if source.is_file() and staging.copy_file(source, paths.assets_images / source.relative_to(source_dir)):
                    staged += 1

        self.logger.info(f"✓ Images relocated, {staged} changed files staged")
        return True

    def _massage_database(self) -> bool:
        paths = self.context.paths
        if not self.context.validator.validate_database(paths.export_database):
            return False
        database = Database.load(paths.export_database)
        self.context.database = self.registry.execute('massage', self.context, database)
        return True

    def _stage_step(self, stage_name: str) -> Callable:
        """Step action running a database stage on a worker thread."""
        async def action() -> bool:
            if self.context.database is None:
                raise StepExecutionError(f"No database loaded before stage {stage_name}", step=stage_name)
            result = await asyncio.to_thread(
                self.registry.execute, stage_name, self.context, self.context.database
            )
            # Adopted only after the stage finished, so a retry starts from the same input
            self.context.database = result
            return True
        return action

    def _verify_databases(self) -> bool:
        """Check every staged variant parses and keeps its referential invariants."""
        context = self.context
        valid = True

        for path in context.paths.all_database_files:
            if not context.validator.validate_database(context.staging.resolve(path)):
                valid = False

        results = [context.integrity.check(database, name) for name, database in context.variants.items()]
        results.append(context.integrity.compare_identities(context.variants))
        for result in results:
            for error in result.errors:
                self.logger.error(f"{result.database_name}: {error}")
                valid = False
            if result.metadata.get('repacked_sprites'):
                self.logger.info(f"{result.database_name}: {result.metadata['repacked_sprites']} repacked sprites")

        if valid:
            self.logger.info(f"✓ {len(context.variants)} database variants verified")
        return valid

    @staticmethod
    def build_database_zip(document: str) -> bytes:
        """Zip a database document as ``database.json`` with fixed metadata."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, 'w', zipfile.ZIP_DEFLATED) as archive:
            info = zipfile.ZipInfo('database.json', date_time=ZIP_TIMESTAMP)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            archive.writestr(info, document)
        return buffer.getvalue()

    def _finalize(self) -> bool:
        context = self.context
        paths = context.paths
        if context.database is None:
            raise StepExecutionError("No final database to deploy", step='finalize')

        document = context.database.to_json()
        archive = self.build_database_zip(document)
        context.staging.write_bytes(paths.database_zip, archive)
        context.staging.write_bytes(paths.frontend_database_zip, archive)
        context.staging.write_bytes(paths.frontend_database_json, document)

        paths.ensure_directories()
        context.staging.commit()
        context.validator.safe_remove_directory(paths.export_dir)
        self.logger.info("✓ Database files replaced successfully")
        return True
