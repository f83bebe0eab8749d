"""
welder: turn raw pixel art into ship-ready asset packs.

Discovers source images, exports them at integer scale tiers with
nearest-neighbor sampling, renders sheet and grid previews, and packages
everything into a versioned zip. Identical inputs always produce
byte-identical outputs.
"""

__version__ = "0.1.0"

from .config import WelderConfig
from .errors import (
    WelderError, DiscoveryError, DecodeError, LayoutOverflow,
    CanvasTooLarge, WriteError, ConfigError, PublishError, OutputCollision
)
from .pipeline import ExportOrchestrator, PreviewOrchestrator, run_build, run_preview
from .packaging import package

__all__ = [
    "WelderConfig",
    "WelderError",
    "DiscoveryError",
    "DecodeError",
    "LayoutOverflow",
    "CanvasTooLarge",
    "WriteError",
    "ConfigError",
    "PublishError",
    "OutputCollision",
    "ExportOrchestrator",
    "PreviewOrchestrator",
    "run_build",
    "run_preview",
    "package",
]
