"""
Exception taxonomy for the export pipeline.
"""

from typing import Optional


class PipelineError(Exception):
    """Base exception for pipeline errors."""
    def __init__(self, message: str, step: Optional[str] = None, recoverable: bool = False):
        super().__init__(message)
        self.step = step
        self.recoverable = recoverable


class InputValidationError(PipelineError):
    """Missing export archive or malformed database document. Raised before any write."""


class TextureLoadError(PipelineError):
    """A source texture could not be loaded, even after fallback resolution."""
    def __init__(self, texture_name: str, message: Optional[str] = None):
        super().__init__(message or f"Could not load texture: {texture_name}", recoverable=True)
        self.texture_name = texture_name


class RenderError(PipelineError):
    """Off-screen rasterization of a single item failed."""
    def __init__(self, message: str):
        super().__init__(message, recoverable=True)


class StepExecutionError(PipelineError):
    """A whole pipeline step failed."""


class CircularDependencyError(PipelineError):
    """Step dependency graph contains a cycle."""


class UnknownStepError(PipelineError):
    """A step name (or a declared dependency) is not registered."""


class ReferentialIntegrityWarning(UserWarning):
    """Dangling SpriteModifier -> SpriteInfo reference. Counted, never fatal below the ceiling."""
