"""
Error taxonomy for the welder pipeline.

Every error carries the stage that raised it and, where one exists, the
path of the asset or output file involved.
"""

from typing import Optional, Union
from pathlib import Path


class WelderError(Exception):
    """Base exception for all pipeline errors."""

    default_stage: Optional[str] = None

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None,
                 stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.path = str(path) if path is not None else None
        self.stage = stage or self.default_stage

    def __str__(self) -> str:
        parts = []
        if self.stage:
            parts.append(f"[{self.stage}]")
        if self.path:
            parts.append(f"{self.path}:")
        parts.append(self.message)
        return " ".join(parts)


class DiscoveryError(WelderError):
    """Input root is missing or unreadable."""
    default_stage = "discover"


class DecodeError(WelderError):
    """Source file is not a supported raster."""
    default_stage = "decode"


class LayoutOverflow(WelderError):
    """Content does not fit the configured layout bounds."""
    default_stage = "layout"


class CanvasTooLarge(WelderError):
    """Composite canvas exceeds the memory ceiling."""
    default_stage = "composite"


class WriteError(WelderError):
    """Filesystem failure while writing or removing outputs."""
    default_stage = "write"


class ConfigError(WelderError):
    """Configuration file is missing, unreadable or invalid."""
    default_stage = "config"


class PublishError(WelderError):
    """The external uploader could not be run or reported failure."""
    default_stage = "publish"


class OutputCollision(WelderError):
    """Two sources would be exported to the same output path."""
    default_stage = "plan"
