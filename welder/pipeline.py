"""
Pipeline orchestrators for the ``build`` and ``preview`` commands.

Each orchestrator walks a fixed sequence of states, records the trace, and
returns a structured result listing the files written (or, on a dry run,
the files that would be written).
"""

import os
import logging
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass, field

from .config import WelderConfig
from .processing.discovery import AssetDiscoverer, SourceAsset
from .processing.resample import (
    ExportTier, ExportedRaster, ResampleEngine, build_tiers, check_export_paths, export_relative_path
)
from .processing.layout import (
    GridConstraints, LayoutItem, LayoutPlan, LayoutPlanner, PreviewStyle,
    SheetConstraints, SortKey
)
from .processing.compositor import Compositor, PreviewComposite, WatermarkPosition, WatermarkSpec
from .utils.files import list_files, remove_tree
from .utils.image import ImageUtils


logger = logging.getLogger(__name__)


class ExportState(Enum):
    """States of the build pipeline."""
    CLEARING = "clearing"
    DISCOVERING = "discovering"
    RESAMPLING = "resampling"
    PLANNING = "planning"
    WRITING = "writing"
    DONE = "done"


class PreviewState(Enum):
    """States of the preview pipeline."""
    DISCOVERING = "discovering"
    RESAMPLING = "resampling"
    PLANNING_LAYOUT = "planning_layout"
    COMPOSITING = "compositing"
    WRITING = "writing"
    DONE = "done"


@dataclass(frozen=True)
class Transition:
    """One entry of an orchestrator's state trace."""
    state: Enum
    detail: str = ""

    def __str__(self) -> str:
        return f"{self.state.value}({self.detail})" if self.detail else self.state.value


StateListener = Callable[[Transition], None]


@dataclass(frozen=True)
class OutputContract:
    """The relative output paths a run produces, in write order."""
    root: Path
    paths: Tuple[str, ...] = ()

    def absolute(self) -> List[Path]:
        return [self.root / path for path in self.paths]

    def __len__(self) -> int:
        return len(self.paths)


@dataclass
class BuildResult:
    """Result of a build run."""
    contract: OutputContract
    dry_run: bool
    tiers: List[ExportTier]
    sizes: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    removed: List[Path] = field(default_factory=list)
    states: List[Transition] = field(default_factory=list)

    @property
    def files(self) -> List[Path]:
        return self.contract.absolute()

    @property
    def file_count(self) -> int:
        return len(self.contract)


@dataclass
class PreviewResult:
    """Result of a preview run."""
    contract: OutputContract
    dry_run: bool
    plans: Dict[PreviewStyle, LayoutPlan] = field(default_factory=dict)
    states: List[Transition] = field(default_factory=list)

    @property
    def files(self) -> List[Path]:
        return self.contract.absolute()

    @property
    def diagnostics(self) -> List[str]:
        return [d for plan in self.plans.values() for d in plan.diagnostics]


def resolve_workers(configured: int) -> int:
    if configured > 0:
        return configured
    return min(8, os.cpu_count() or 1)


def watermark_spec(config: WelderConfig) -> WatermarkSpec:
    wm = config.preview.watermark
    return WatermarkSpec(
        enabled=wm.enabled,
        text=wm.text,
        opacity=wm.opacity,
        position=WatermarkPosition(wm.position),
        margin_px=wm.margin_px,
    )


class _Orchestrator:
    """Shared discovery, decoding and state bookkeeping."""

    def __init__(self, config: WelderConfig, listener: Optional[StateListener] = None):
        self.config = config
        self.listener = listener
        self.states: List[Transition] = []
        self.engine = ResampleEngine()
        self.workers = resolve_workers(config.build.workers)

    def _enter(self, state: Enum, detail: str = "") -> None:
        transition = Transition(state, detail)
        self.states.append(transition)
        logger.debug(f"State -> {transition}")
        if self.listener:
            self.listener(transition)

    def _map(self, func, items: Sequence) -> list:
        """Apply ``func`` across items, possibly in parallel, preserving order."""
        if self.workers <= 1 or len(items) <= 1:
            return [func(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            return list(pool.map(func, items))

    def _find(self) -> List[str]:
        """Identities of every source image, in canonical order."""
        root = self.config.input_dir
        identities = self._discoverer().discover(root)
        if not identities:
            logger.warning(f"No source images matched in {root}")
        return identities

    def _load(self, identities: Sequence[str]) -> List[SourceAsset]:
        discoverer = self._discoverer()
        root = self.config.input_dir
        return self._map(lambda identity: discoverer.load_asset(root, identity), identities)

    def _discoverer(self) -> AssetDiscoverer:
        return AssetDiscoverer(self.config.inputs.include, self.config.inputs.exclude)

    def _discover(self) -> List[SourceAsset]:
        """Find and decode every source image, in canonical order."""
        return self._load(self._find())

    def _resample_all(self, assets: Sequence[SourceAsset], tier: ExportTier) -> List[ExportedRaster]:
        return self._map(lambda asset: self.engine.resample(asset, tier), assets)


class ExportOrchestrator(_Orchestrator):
    """Runs the build: discover, resample per tier, write exports."""

    def run(self, clean: bool = False, dry_run: bool = False) -> BuildResult:
        """
        Export every source at every configured tier.

        Tiers run in ascending order; within a tier files are written in
        canonical identity order. Exports never pass through the compositor.
        Sources are matched and checked for export path clashes before
        anything is removed or written.

        Args:
            clean: Remove the existing export tree before decoding
            dry_run: Compute the output paths and sizes without resampling
                or writing anything

        Returns:
            BuildResult with the output contract and state trace

        Raises:
            OutputCollision: If two sources share an export path
        """
        exports_dir = self.config.exports_dir
        tiers = build_tiers(self.config.build.resolutions,
                            trim_transparent=self.config.build.trim_transparent,
                            filter=self.config.build.filter)

        identities = self._find()
        check_export_paths(identities)

        removed: List[Path] = []
        if clean:
            self._enter(ExportState.CLEARING, str(exports_dir))
            if dry_run:
                removed = list_files(exports_dir)
                logger.info(f"Dry run: would remove {len(removed)} files under {exports_dir}")
            else:
                removed = remove_tree(exports_dir)

        self._enter(ExportState.DISCOVERING, str(self.config.input_dir))
        assets = self._load(identities)

        paths: List[str] = []
        sizes: Dict[str, Tuple[int, int]] = {}

        for tier in tiers:
            if dry_run:
                self._enter(ExportState.PLANNING, tier.label)
                for asset in assets:
                    relative = export_relative_path(asset.identity, tier)
                    paths.append(relative)
                    sizes[relative] = self.engine.output_size(asset.image, tier)
                logger.info(f"Planned {len(assets)} exports for tier {tier.label}")
                continue

            self._enter(ExportState.RESAMPLING, tier.label)
            rasters = self._resample_all(assets, tier)

            self._enter(ExportState.WRITING, tier.label)
            for raster in rasters:
                relative = raster.output_path
                ImageUtils.save_image(raster.image, exports_dir / relative)
                paths.append(relative)
                sizes[relative] = (raster.width, raster.height)

            logger.info(f"Wrote {len(rasters)} exports for tier {tier.label}")

        contract = OutputContract(root=exports_dir, paths=tuple(paths))
        self._enter(ExportState.DONE, f"{len(contract)} files")

        return BuildResult(
            contract=contract,
            dry_run=dry_run,
            tiers=tiers,
            sizes=sizes,
            removed=removed,
            states=list(self.states),
        )


class PreviewOrchestrator(_Orchestrator):
    """Runs the preview: discover, resample, lay out, composite, watermark, write."""

    OUTPUT_NAMES = {
        PreviewStyle.SHEET: "sheet.png",
        PreviewStyle.GRID: "grid.png",
    }
    THUMBNAIL_NAME = "thumb.png"

    def __init__(self, config: WelderConfig, listener: Optional[StateListener] = None):
        super().__init__(config, listener)
        self.planner = LayoutPlanner()
        self.compositor = Compositor(config.preview.background)

    def _constraints(self) -> Tuple[SheetConstraints, GridConstraints]:
        sort = SortKey(self.config.sheet.sort)
        sheet = SheetConstraints(
            max_width=self.config.sheet.max_width,
            max_height=self.config.sheet.max_height,
            padding=self.config.sheet.padding_px,
            sort=sort,
        )
        grid = GridConstraints(
            cell_px=self.config.grid.cell_px,
            padding=self.config.grid.padding_px,
            columns=self.config.grid.columns,
        )
        return sheet, grid

    def run(self, styles: Optional[Sequence[PreviewStyle]] = None,
            dry_run: bool = False) -> PreviewResult:
        """
        Render the requested preview styles.

        Args:
            styles: Styles to render (defaults to ``preview.styles``)
            dry_run: Stop after layout planning; write nothing

        Returns:
            PreviewResult with plans, output contract and state trace
        """
        if styles is None:
            styles = [PreviewStyle(s) for s in self.config.preview.styles]
        # Fixed style order regardless of how they were requested
        styles = [style for style in PreviewStyle if style in set(styles)]

        previews_dir = self.config.previews_dir
        tier = ExportTier(self.config.preview.scale,
                          trim_transparent=self.config.build.trim_transparent)
        sheet_constraints, grid_constraints = self._constraints()
        watermark = watermark_spec(self.config)

        self._enter(PreviewState.DISCOVERING, str(self.config.input_dir))
        assets = self._discover()

        self._enter(PreviewState.RESAMPLING, tier.label)
        rasters = self._resample_all(assets, tier)
        images = {raster.identity: raster.image for raster in rasters}
        items = [LayoutItem(r.identity, r.width, r.height) for r in rasters]

        paths: List[str] = []
        plans: Dict[PreviewStyle, LayoutPlan] = {}
        first_composite: Optional[PreviewComposite] = None

        for style in styles:
            self._enter(PreviewState.PLANNING_LAYOUT, style.value)
            plan = self.planner.plan(style, items, sheet_constraints, grid_constraints)
            plans[style] = plan

            for warning in plan.diagnostics:
                logger.warning(warning)

            if plan.is_empty:
                logger.warning(f"Nothing to lay out for {style.value}; skipping {self.OUTPUT_NAMES[style]}")
                continue

            name = self.OUTPUT_NAMES[style]
            paths.append(name)
            logger.info(f"{style.value} plan: {plan.canvas_width}x{plan.canvas_height}, "
                        f"{len(plan.placements)} items")

            if dry_run:
                continue

            self._enter(PreviewState.COMPOSITING, style.value)
            composite = self.compositor.compose(plan, images).with_watermark(watermark)

            self._enter(PreviewState.WRITING, name)
            ImageUtils.save_image(composite.image, previews_dir / name)

            if first_composite is None:
                first_composite = composite

        if self.config.preview.thumbnail and paths:
            paths.append(self.THUMBNAIL_NAME)
            if first_composite is not None:
                self._enter(PreviewState.WRITING, self.THUMBNAIL_NAME)
                thumb = first_composite.thumbnail(self.config.preview.thumbnail_px)
                ImageUtils.save_image(thumb, previews_dir / self.THUMBNAIL_NAME)

        contract = OutputContract(root=previews_dir, paths=tuple(paths))
        self._enter(PreviewState.DONE, f"{len(contract)} files")

        return PreviewResult(
            contract=contract,
            dry_run=dry_run,
            plans=plans,
            states=list(self.states),
        )


def planned_exports(config: WelderConfig) -> OutputContract:
    """
    Export paths a build of ``config`` declares, from the source names alone.

    Raises:
        DiscoveryError: If the input directory cannot be read
        OutputCollision: If two sources share an export path
    """
    discoverer = AssetDiscoverer(config.inputs.include, config.inputs.exclude)
    identities = discoverer.discover(config.input_dir)
    check_export_paths(identities)
    tiers = build_tiers(config.build.resolutions, filter=config.build.filter)
    paths = [export_relative_path(identity, tier) for tier in tiers for identity in identities]
    return OutputContract(root=config.exports_dir, paths=tuple(paths))


def planned_previews(config: WelderConfig) -> OutputContract:
    """Preview file names the configured styles declare."""
    styles = {PreviewStyle(s) for s in config.preview.styles}
    paths = [PreviewOrchestrator.OUTPUT_NAMES[style] for style in PreviewStyle if style in styles]
    if config.preview.thumbnail:
        paths.append(PreviewOrchestrator.THUMBNAIL_NAME)
    return OutputContract(root=config.previews_dir, paths=tuple(paths))


def run_build(config: WelderConfig, resolutions: Optional[Sequence[int]] = None,
              clean: bool = False, dry_run: bool = False,
              listener: Optional[StateListener] = None) -> BuildResult:
    """Programmatic entry point for ``welder build``."""
    if resolutions:
        config = config.with_resolutions(list(resolutions))
    return ExportOrchestrator(config, listener).run(clean=clean, dry_run=dry_run)


def run_preview(config: WelderConfig, style: Optional[str] = None,
                dry_run: bool = False,
                listener: Optional[StateListener] = None) -> PreviewResult:
    """Programmatic entry point for ``welder preview``; ``style`` is
    ``sheet``, ``grid``, ``both`` or None for the configured styles."""
    styles = PreviewStyle.parse(style) if style else None
    return PreviewOrchestrator(config, listener).run(styles=styles, dry_run=dry_run)
