"""
Configuration management for the export pipeline.
Supports TOML and JSON configuration files with environment overrides and validation.
"""

import os
import json
from dataclasses import dataclass, field

# Handle tomllib import for different Python versions
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11 with tomli package
from typing import Dict, List, Any, Union
from pathlib import Path


@dataclass
class RetryConfig:
    """Backoff policy for retryable pipeline steps."""
    enabled: bool = True
    base_delay: float = 1.0
    max_delay: float = 10.0

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds before the attempt following ``attempt``."""
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


@dataclass
class PipelineConfig:
    """Main configuration class for the export pipeline."""

    # Paths, relative to project_root unless absolute
    project_root: str = "."
    export_zip: str = "export.zip"
    export_dir: str = "export"
    assets_dir: str = "assets"
    frontend_assets_dir: str = "frontend/src/assets"
    staging_dir: str = ".export-staging"
    rename_map_file: str = "assets/manual-buildMenuRename.json"

    # Processing settings
    progress_interval: int = 10
    compression_level: int = 6
    info_icons: List[str] = field(default_factory=list)

    # Atlas settings
    atlas_max_size: tuple[int, int] = (2048, 2048)
    atlas_padding: int = 0
    atlas_power_of_two: bool = False

    # Validation settings
    dangling_reference_ceiling: int = 1000
    min_free_disk_mb: int = 100

    retry: RetryConfig = field(default_factory=RetryConfig)

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> "PipelineConfig":
        """Load configuration from TOML or JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        if config_path.suffix.lower() == '.toml':
            return cls._from_toml(config_path)
        elif config_path.suffix.lower() == '.json':
            return cls._from_json(config_path)
        else:
            raise ValueError(f"Unsupported configuration format: {config_path.suffix}")

    @classmethod
    def _from_toml(cls, config_path: Path) -> "PipelineConfig":
        with open(config_path, 'rb') as f:
            data = tomllib.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_json(cls, config_path: Path) -> "PipelineConfig":
        with open(config_path, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: Dict[str, Any]) -> "PipelineConfig":
        """Create configuration from a sectioned dictionary."""
        config_data: Dict[str, Any] = {}

        if 'paths' in data:
            paths = data['paths']
            for key in ('project_root', 'export_zip', 'export_dir', 'assets_dir',
                        'frontend_assets_dir', 'staging_dir', 'rename_map_file'):
                if key in paths:
                    config_data[key] = str(paths[key])

        if 'processing' in data:
            processing = data['processing']
            config_data['progress_interval'] = processing.get('progress_interval', 10)
            config_data['compression_level'] = processing.get('compression_level', 6)
            config_data['info_icons'] = list(processing.get('info_icons', []))

        if 'atlas' in data:
            atlas = data['atlas']
            if 'max_size' in atlas:
                config_data['atlas_max_size'] = tuple(atlas['max_size'])
            config_data['atlas_padding'] = atlas.get('padding', 0)
            config_data['atlas_power_of_two'] = atlas.get('power_of_two', False)

        if 'validation' in data:
            validation = data['validation']
            config_data['dangling_reference_ceiling'] = validation.get('dangling_reference_ceiling', 1000)
            config_data['min_free_disk_mb'] = validation.get('min_free_disk_mb', 100)

        if 'retry' in data:
            retry = data['retry']
            config_data['retry'] = RetryConfig(
                enabled=retry.get('enabled', True),
                base_delay=float(retry.get('base_delay', 1.0)),
                max_delay=float(retry.get('max_delay', 10.0)),
            )

        return cls(**config_data)

    @classmethod
    def default(cls) -> "PipelineConfig":
        """Create default configuration with environment variable overrides."""
        return cls._apply_env_overrides(cls())

    @classmethod
    def _apply_env_overrides(cls, config: "PipelineConfig") -> "PipelineConfig":
        """Apply EXPORT_PIPELINE_* environment variable overrides."""

        # Paths
        if os.getenv('EXPORT_PIPELINE_PROJECT_ROOT'):
            config.project_root = os.getenv('EXPORT_PIPELINE_PROJECT_ROOT', '.')

        if os.getenv('EXPORT_PIPELINE_EXPORT_ZIP'):
            config.export_zip = os.getenv('EXPORT_PIPELINE_EXPORT_ZIP', 'export.zip')

        if os.getenv('EXPORT_PIPELINE_ASSETS_DIR'):
            config.assets_dir = os.getenv('EXPORT_PIPELINE_ASSETS_DIR', 'assets')

        if os.getenv('EXPORT_PIPELINE_FRONTEND_ASSETS_DIR'):
            config.frontend_assets_dir = os.getenv('EXPORT_PIPELINE_FRONTEND_ASSETS_DIR', 'frontend/src/assets')

        if os.getenv('EXPORT_PIPELINE_STAGING_DIR'):
            config.staging_dir = os.getenv('EXPORT_PIPELINE_STAGING_DIR', '.export-staging')

        # Processing settings
        if os.getenv('EXPORT_PIPELINE_PROGRESS_INTERVAL'):
            config.progress_interval = int(os.getenv('EXPORT_PIPELINE_PROGRESS_INTERVAL', '10'))

        if os.getenv('EXPORT_PIPELINE_COMPRESSION_LEVEL'):
            config.compression_level = int(os.getenv('EXPORT_PIPELINE_COMPRESSION_LEVEL', '6'))

        if os.getenv('EXPORT_PIPELINE_INFO_ICONS'):
            config.info_icons = [
                name.strip() for name in os.getenv('EXPORT_PIPELINE_INFO_ICONS', '').split(',') if name.strip()
            ]

        # Atlas settings
        if os.getenv('EXPORT_PIPELINE_ATLAS_MAX_WIDTH') and os.getenv('EXPORT_PIPELINE_ATLAS_MAX_HEIGHT'):
            config.atlas_max_size = (
                int(os.getenv('EXPORT_PIPELINE_ATLAS_MAX_WIDTH', '2048')),
                int(os.getenv('EXPORT_PIPELINE_ATLAS_MAX_HEIGHT', '2048'))
            )

        if os.getenv('EXPORT_PIPELINE_ATLAS_PADDING'):
            config.atlas_padding = int(os.getenv('EXPORT_PIPELINE_ATLAS_PADDING', '0'))

        if os.getenv('EXPORT_PIPELINE_ATLAS_POWER_OF_TWO'):
            config.atlas_power_of_two = os.getenv('EXPORT_PIPELINE_ATLAS_POWER_OF_TWO', 'false').lower() == 'true'

        # Validation settings
        if os.getenv('EXPORT_PIPELINE_DANGLING_CEILING'):
            config.dangling_reference_ceiling = int(os.getenv('EXPORT_PIPELINE_DANGLING_CEILING', '1000'))

        if os.getenv('EXPORT_PIPELINE_MIN_FREE_DISK_MB'):
            config.min_free_disk_mb = int(os.getenv('EXPORT_PIPELINE_MIN_FREE_DISK_MB', '100'))

        # Retry settings
        if os.getenv('EXPORT_PIPELINE_RETRY_ENABLED'):
            config.retry.enabled = os.getenv('EXPORT_PIPELINE_RETRY_ENABLED', 'true').lower() == 'true'

        if os.getenv('EXPORT_PIPELINE_RETRY_BASE_DELAY'):
            config.retry.base_delay = float(os.getenv('EXPORT_PIPELINE_RETRY_BASE_DELAY', '1.0'))

        return config

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if self.atlas_max_size[0] <= 0 or self.atlas_max_size[1] <= 0:
            errors.append("atlas_max_size must have positive dimensions")

        if self.atlas_padding < 0:
            errors.append("atlas_padding must not be negative")

        if self.progress_interval <= 0:
            errors.append("progress_interval must be positive")

        if not 0 <= self.compression_level <= 9:
            errors.append("compression_level must be between 0 and 9")

        if self.dangling_reference_ceiling < 0:
            errors.append("dangling_reference_ceiling must not be negative")

        if self.min_free_disk_mb < 0:
            errors.append("min_free_disk_mb must not be negative")

        if self.retry.base_delay < 0 or self.retry.max_delay < 0:
            errors.append("retry delays must not be negative")

        return errors
