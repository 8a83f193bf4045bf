"""
Command-line interface for the export pipeline.
Provides the full pipeline run, single stages, integrity validation and configuration commands.
"""

import os
import sys
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import PipelineConfig
from .context import PipelineContext
from .database import Database
from .errors import PipelineError

# Initialize typer app and rich console
app = typer.Typer(
    name="export-pipeline",
    help="Export pipeline - turn a game-data export into web-ready databases, icons and texture atlases",
    add_completion=False,
    rich_markup_mode="rich",
    epilog="""
[bold]Examples:[/bold]
  [cyan]export-pipeline run[/cyan]                        Run the complete pipeline
  [cyan]export-pipeline stage white[/cyan]                Re-run one stage against committed files
  [cyan]export-pipeline validate[/cyan]                   Check the committed database variants
  [cyan]export-pipeline run -c export_pipeline.toml[/cyan]  Use a custom config

[bold]Environment Variables:[/bold]
  Use [cyan]export-pipeline config --env-vars[/cyan] to see all available variables.
    """
)
console = Console()


ConfigOption = typer.Option(None, "--config", "-c", help="Configuration file path")
RootOption = typer.Option(None, "--project-root", "-r", help="Project root (overrides configuration)")


@app.command()
def run(
    config_file: Optional[Path] = ConfigOption,
    project_root: Optional[Path] = RootOption,
):
    """Run the complete export pipeline."""
    console.print("[bold blue]Running export pipeline...[/bold blue]")
    config = _load_config(config_file, project_root)
    _require_valid(config)

    from .pipeline import Orchestrator

    try:
        success = Orchestrator(config).run()
    except (PipelineError, OSError, ValueError) as e:
        console.print(f"[red]Pipeline error:[/red] {e}")
        success = False

    if not success:
        console.print("[red]✗ Export pipeline failed[/red]")
        raise typer.Exit(1)
    console.print("[green]✓ Export pipeline completed successfully![/green]")


@app.command()
def stage(
    name: str = typer.Argument(..., help="Stage name: massage, icons, groups, white or repack"),
    config_file: Optional[Path] = ConfigOption,
    project_root: Optional[Path] = RootOption,
):
    """Run a single stage against the committed database files."""
    from .stages import default_registry

    registry = default_registry()
    if name not in registry:
        console.print(f"[red]Invalid stage name: {name}[/red]")
        console.print(f"Valid stages: {', '.join(registry.names())}")
        raise typer.Exit(1)

    config = _load_config(config_file, project_root)
    _require_valid(config)
    console.print(f"[bold blue]Running stage {name}...[/bold blue]")
    if not registry.run_standalone(name, PipelineContext(config)):
        console.print(f"[red]✗ Stage {name} failed[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Stage {name} completed[/green]")


@app.command()
def validate(
    config_file: Optional[Path] = ConfigOption,
    project_root: Optional[Path] = RootOption,
):
    """Check the committed database variants for referential integrity."""
    console.print("[bold blue]Validating database variants...[/bold blue]")
    config = _load_config(config_file, project_root)
    context = PipelineContext(config)

    variants = {}
    failed = False
    for path in context.paths.all_database_files:
        if not context.validator.validate_database(path):
            console.print(f"[red]✗[/red] {path.name}: missing or malformed")
            failed = True
            continue
        try:
            variants[path.name] = Database.load(path)
        except (OSError, ValueError, KeyError, TypeError) as e:
            console.print(f"[red]✗[/red] {path.name}: {e}")
            failed = True

    results = [context.integrity.check(database, name) for name, database in variants.items()]
    results.append(context.integrity.compare_identities(variants))

    table = Table(title="Database Integrity")
    table.add_column("Database", style="cyan")
    table.add_column("Errors", style="red")
    table.add_column("Warnings", style="yellow")
    table.add_column("Dangling", style="white")
    table.add_column("Repacked", style="green")
    for result in results:
        table.add_row(
            result.database_name,
            str(len(result.errors)),
            str(len(result.warnings)),
            str(result.metadata.get('dangling_references', '-')),
            str(result.metadata.get('repacked_sprites', '-')),
        )
    console.print(table)

    for result in results:
        for error in result.errors:
            console.print(f"  [red]•[/red] {result.database_name}: {error}")
        failed = failed or not result.is_valid

    if failed:
        raise typer.Exit(1)
    console.print("[green]✓ All database variants are consistent[/green]")


@app.command()
def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    validate_config: bool = typer.Option(False, "--validate", help="Validate configuration file"),
    config_file: Optional[Path] = ConfigOption,
    env_vars: bool = typer.Option(False, "--env-vars", help="Show available environment variables")
):
    """Manage pipeline configuration."""
    if env_vars:
        _display_env_vars()
        return

    if not (show or validate_config):
        console.print("Use --show to display configuration, --validate to check it, "
                      "or --env-vars to see environment variables.")
        return

    config = _load_config(config_file)
    if show:
        _display_config(config)

    if validate_config:
        _require_valid(config)
        console.print("[green]✓ Configuration is valid[/green]")


@app.command()
def version():
    """Show export pipeline version information."""
    console.print("[bold]Export Pipeline[/bold]")
    console.print(f"Version: {__version__}")
    console.print("Python: " + sys.version.split()[0])

    import numpy
    import PIL
    import psutil

    table = Table(show_header=False)
    table.add_column("Package", style="cyan")
    table.add_column("Version", style="green")
    table.add_row("Pillow", PIL.__version__)
    table.add_row("NumPy", numpy.__version__)
    table.add_row("psutil", psutil.__version__)
    table.add_row("Typer", getattr(typer, "__version__", "unknown"))

    console.print("\n[bold]Dependencies:[/bold]")
    console.print(table)


def _load_config(config_file: Optional[Path], project_root: Optional[Path] = None) -> PipelineConfig:
    """Load configuration from file or use defaults with environment variable support."""
    config = None

    if config_file:
        if not config_file.exists():
            console.print(f"[red]Configuration file not found:[/red] {config_file}")
            raise typer.Exit(1)
        try:
            config = PipelineConfig.from_file(config_file)
        except ValueError as e:
            console.print(f"[red]Invalid configuration:[/red] {e}")
            raise typer.Exit(1)
        console.print(f"[dim]Using configuration: {config_file}[/dim]")
    else:
        # Try to find default config files
        default_configs = [
            Path("export_pipeline.toml"),
            Path("export_pipeline.json"),
            Path("scripts/export_pipeline.toml"),
            Path("scripts/export_pipeline.json")
        ]

        for config_path in default_configs:
            if config_path.exists():
                console.print(f"[dim]Using configuration: {config_path}[/dim]")
                config = PipelineConfig.from_file(config_path)
                break

        if config is None:
            console.print("[dim]Using default configuration[/dim]")
            config = PipelineConfig()

    config = PipelineConfig._apply_env_overrides(config)

    env_vars_used = [key for key in os.environ if key.startswith('EXPORT_PIPELINE_')]
    if env_vars_used:
        console.print(f"[dim]Environment overrides applied: {len(env_vars_used)} variables[/dim]")

    if project_root is not None:
        config.project_root = str(project_root)

    return config


def _require_valid(config: PipelineConfig) -> None:
    """Exit with the validation errors before any step can trip over a bad setting."""
    errors = config.validate()
    if errors:
        console.print("[red]Configuration validation errors:[/red]")
        for error in errors:
            console.print(f"  • {error}")
        raise typer.Exit(1)


def _display_config(config: PipelineConfig) -> None:
    """Display configuration in a formatted table."""
    table = Table(title="Export Pipeline Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    # Paths
    table.add_row("Project Root", config.project_root)
    table.add_row("Export Zip", config.export_zip)
    table.add_row("Export Directory", config.export_dir)
    table.add_row("Assets Directory", config.assets_dir)
    table.add_row("Frontend Assets Directory", config.frontend_assets_dir)
    table.add_row("Staging Directory", config.staging_dir)
    table.add_row("Rename Map", config.rename_map_file)

    # Processing
    table.add_row("Progress Interval", str(config.progress_interval))
    table.add_row("Compression Level", str(config.compression_level))
    table.add_row("Info Icons", ", ".join(config.info_icons) or "-")

    # Atlas
    table.add_row("Atlas Max Size", f"{config.atlas_max_size[0]}×{config.atlas_max_size[1]}")
    table.add_row("Atlas Padding", str(config.atlas_padding))
    table.add_row("Atlas Power of Two", str(config.atlas_power_of_two))

    # Validation and retry
    table.add_row("Dangling Reference Ceiling", str(config.dangling_reference_ceiling))
    table.add_row("Min Free Disk (MB)", str(config.min_free_disk_mb))
    table.add_row("Retry Enabled", str(config.retry.enabled))
    table.add_row("Retry Delay", f"{config.retry.base_delay}s (max {config.retry.max_delay}s)")

    console.print(table)


def _display_env_vars() -> None:
    """Display available environment variables for configuration."""
    table = Table(title="Export Pipeline Environment Variables")
    table.add_column("Environment Variable", style="cyan")
    table.add_column("Description", style="white")
    table.add_column("Example", style="green")

    env_vars = [
        ("EXPORT_PIPELINE_ENV", "Set to production to silence debug and memory output", "production"),
        ("EXPORT_PIPELINE_PROJECT_ROOT", "Project root directory", "."),
        ("EXPORT_PIPELINE_EXPORT_ZIP", "Export archive path", "export.zip"),
        ("EXPORT_PIPELINE_ASSETS_DIR", "Backend assets directory", "assets"),
        ("EXPORT_PIPELINE_FRONTEND_ASSETS_DIR", "Frontend assets directory", "frontend/src/assets"),
        ("EXPORT_PIPELINE_STAGING_DIR", "Staging directory for uncommitted outputs", ".export-staging"),
        ("EXPORT_PIPELINE_PROGRESS_INTERVAL", "Log progress every N icons", "10"),
        ("EXPORT_PIPELINE_COMPRESSION_LEVEL", "PNG compression level (0-9)", "6"),
        ("EXPORT_PIPELINE_INFO_ICONS", "Comma-separated extra icon sprite names", "info_power,info_heat"),
        ("EXPORT_PIPELINE_ATLAS_MAX_WIDTH", "Atlas page width in pixels", "2048"),
        ("EXPORT_PIPELINE_ATLAS_MAX_HEIGHT", "Atlas page height in pixels", "2048"),
        ("EXPORT_PIPELINE_ATLAS_PADDING", "Atlas padding in pixels", "0"),
        ("EXPORT_PIPELINE_ATLAS_POWER_OF_TWO", "Round pages up to powers of two (true/false)", "false"),
        ("EXPORT_PIPELINE_DANGLING_CEILING", "Dangling sprite info references tolerated", "1000"),
        ("EXPORT_PIPELINE_MIN_FREE_DISK_MB", "Free disk space required before a run", "100"),
        ("EXPORT_PIPELINE_RETRY_ENABLED", "Retry failed steps (true/false)", "true"),
        ("EXPORT_PIPELINE_RETRY_BASE_DELAY", "First retry delay in seconds", "1.0"),
    ]

    for var_name, description, example in env_vars:
        table.add_row(var_name, description, example)

    console.print(table)
    console.print("\n[dim]Set these environment variables to override configuration file settings.[/dim]")
    console.print("[dim]Example: export EXPORT_PIPELINE_ATLAS_PADDING=2[/dim]")


if __name__ == "__main__":
    app()
