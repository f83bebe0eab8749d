"""
Pipeline stages: discovery, resampling, layout planning and compositing.
"""

from .discovery import AssetDiscoverer, SourceAsset, discover_assets
from .resample import ResampleEngine, ResampleFilter, ExportTier, ExportedRaster, build_tiers
from .layout import (
    LayoutPlanner,
    LayoutPlan,
    LayoutItem,
    Placement,
    PreviewStyle,
    SortKey,
    SheetConstraints,
    GridConstraints,
)
from .compositor import Compositor, PreviewComposite, WatermarkSpec, WatermarkPosition

__all__ = [
    "AssetDiscoverer",
    "SourceAsset",
    "discover_assets",
    "ResampleEngine",
    "ResampleFilter",
    "ExportTier",
    "ExportedRaster",
    "build_tiers",
    "LayoutPlanner",
    "LayoutPlan",
    "LayoutItem",
    "Placement",
    "PreviewStyle",
    "SortKey",
    "SheetConstraints",
    "GridConstraints",
    "Compositor",
    "PreviewComposite",
    "WatermarkSpec",
    "WatermarkPosition",
]
