"""
Compositing of layout plans into preview rasters.

Watermarking is only reachable through ``PreviewComposite``, the type the
compositor returns. Export rasters never pass through this module.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Tuple
from PIL import Image, ImageColor, ImageDraw, ImageFont

from .layout import LayoutPlan
from ..errors import CanvasTooLarge


logger = logging.getLogger(__name__)


# Memory ceiling for a single composite
MAX_CANVAS_SIDE = 16384
MAX_CANVAS_PIXELS = 64 * 1024 * 1024

WATERMARK_FONT_SIZE = 12


class WatermarkPosition(Enum):
    TOP_LEFT = "tl"
    TOP_RIGHT = "tr"
    BOTTOM_LEFT = "bl"
    BOTTOM_RIGHT = "br"
    CENTER = "center"


@dataclass(frozen=True)
class WatermarkSpec:
    """Translucent text stamped onto previews."""
    enabled: bool = False
    text: str = ""
    opacity: float = 0.35
    position: WatermarkPosition = WatermarkPosition.BOTTOM_RIGHT
    margin_px: int = 8

    def __post_init__(self):
        if not 0 <= self.opacity <= 1:
            raise ValueError(f"watermark opacity must be in [0, 1], got {self.opacity}")
        if self.margin_px < 0:
            raise ValueError(f"watermark margin must not be negative, got {self.margin_px}")


def parse_color(value: str) -> Tuple[int, int, int, int]:
    """Parse a Pillow color string (``#rrggbb``, ``#rrggbbaa``, names) as RGBA."""
    if value.lower() == "transparent":
        return (0, 0, 0, 0)
    color = ImageColor.getcolor(value, 'RGBA')
    return tuple(color)


def check_canvas_size(width: int, height: int) -> None:
    """
    Raises:
        CanvasTooLarge: If the canvas exceeds the memory ceiling
    """
    if width > MAX_CANVAS_SIDE or height > MAX_CANVAS_SIDE:
        raise CanvasTooLarge(
            f"canvas {width}x{height} exceeds the {MAX_CANVAS_SIDE}px side limit"
        )
    if width * height > MAX_CANVAS_PIXELS:
        raise CanvasTooLarge(
            f"canvas {width}x{height} exceeds the {MAX_CANVAS_PIXELS} pixel limit"
        )


def watermark_origin(canvas_size: Tuple[int, int], text_size: Tuple[int, int],
                     position: WatermarkPosition, margin: int) -> Tuple[int, int]:
    """Top-left corner of the watermark text box for an anchor position."""
    canvas_w, canvas_h = canvas_size
    text_w, text_h = text_size

    if position is WatermarkPosition.TOP_LEFT:
        return (margin, margin)
    if position is WatermarkPosition.TOP_RIGHT:
        return (canvas_w - text_w - margin, margin)
    if position is WatermarkPosition.BOTTOM_LEFT:
        return (margin, canvas_h - text_h - margin)
    if position is WatermarkPosition.BOTTOM_RIGHT:
        return (canvas_w - text_w - margin, canvas_h - text_h - margin)
    return ((canvas_w - text_w) // 2, (canvas_h - text_h) // 2)


def _load_font() -> ImageFont.FreeTypeFont:
    return ImageFont.load_default(size=WATERMARK_FONT_SIZE)


@dataclass(frozen=True)
class PreviewComposite:
    """A rendered preview canvas."""
    plan: LayoutPlan
    image: Image.Image
    watermarked: bool = False

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size

    def with_watermark(self, spec: WatermarkSpec) -> "PreviewComposite":
        """
        Return a copy with the watermark text blended over the canvas.

        The text is drawn with alpha ``round(255 * opacity)`` on a transparent
        overlay which is then alpha-composited onto the canvas.
        """
        if not spec.enabled or not spec.text:
            return self

        base = self.image.copy()
        overlay = Image.new('RGBA', base.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        font = _load_font()

        left, top, right, bottom = draw.textbbox((0, 0), spec.text, font=font)
        text_size = (right - left, bottom - top)
        x, y = watermark_origin(base.size, text_size, spec.position, spec.margin_px)

        alpha = int(round(255 * spec.opacity))
        # Shadow one pixel down-right of the text
        draw.text((x - left + 1, y - top + 1), spec.text, font=font, fill=(0, 0, 0, alpha))
        draw.text((x - left, y - top), spec.text, font=font, fill=(255, 255, 255, alpha))

        logger.debug(f"Watermark '{spec.text}' at ({x}, {y}) opacity {spec.opacity}")
        return PreviewComposite(plan=self.plan, image=Image.alpha_composite(base, overlay),
                                watermarked=True)

    def thumbnail(self, max_px: int) -> Image.Image:
        """Nearest-neighbor copy scaled to fit within ``max_px`` on both sides."""
        width, height = self.image.size
        scale = min(1.0, max_px / max(width, height))
        size = (max(1, int(width * scale)), max(1, int(height * scale)))
        if size == self.image.size:
            return self.image.copy()
        return self.image.resize(size, Image.Resampling.NEAREST)


class Compositor:
    """Renders layout plans into preview rasters."""

    def __init__(self, background: str = "#00000000"):
        self.background = parse_color(background)

    def compose(self, plan: LayoutPlan, rasters: Mapping[str, Image.Image]) -> PreviewComposite:
        """
        Render ``plan`` with each raster alpha-composited at its placement.

        Args:
            plan: Layout plan to render
            rasters: Images keyed by placement identity

        Returns:
            PreviewComposite exactly ``canvas_width x canvas_height``

        Raises:
            CanvasTooLarge: If the canvas exceeds the memory ceiling
            ValueError: If the plan is empty or references a missing raster
        """
        if plan.is_empty or plan.canvas_width <= 0 or plan.canvas_height <= 0:
            raise ValueError("cannot composite an empty layout plan")

        check_canvas_size(plan.canvas_width, plan.canvas_height)

        canvas = Image.new('RGBA', (plan.canvas_width, plan.canvas_height), self.background)

        for placement in plan.placements:
            if placement.identity not in rasters:
                raise ValueError(f"No raster for planned item '{placement.identity}'")
            raster = rasters[placement.identity]
            if raster.mode != 'RGBA':
                raster = raster.convert('RGBA')
            canvas.alpha_composite(raster, dest=(placement.x, placement.y))

        logger.debug(f"Composited {len(plan.placements)} items onto "
                     f"{plan.canvas_width}x{plan.canvas_height} {plan.style.value}")
        return PreviewComposite(plan=plan, image=canvas)
