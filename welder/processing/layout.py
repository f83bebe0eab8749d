"""
Layout planning for preview composites.

Both layouts are pure functions of the item list and the constraints: the
items are sorted by a canonical key first, so input order never affects
the resulting plan.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence, Tuple

from ..errors import LayoutOverflow


class PreviewStyle(Enum):
    """Composite layouts a preview can be rendered with."""
    SHEET = "sheet"
    GRID = "grid"

    @classmethod
    def parse(cls, value: str) -> List["PreviewStyle"]:
        """Parse a CLI style value; ``both`` expands to every style."""
        if value == "both":
            return [cls.SHEET, cls.GRID]
        return [cls(value)]


class SortKey(Enum):
    """Canonical orderings for layout items."""
    NAME = "name"
    WIDTH = "width"
    HEIGHT = "height"
    AREA = "area"


@dataclass(frozen=True)
class Rectangle:
    """Rectangle for layout calculations."""
    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    def intersects(self, other: 'Rectangle') -> bool:
        """Check if this rectangle intersects with another."""
        return not (self.right <= other.x or other.right <= self.x or
                    self.bottom <= other.y or other.bottom <= self.y)


@dataclass(frozen=True)
class LayoutItem:
    """Something to place: an identity and its pixel size."""
    identity: str
    width: int
    height: int

    @property
    def area(self) -> int:
        return self.width * self.height


@dataclass(frozen=True)
class Placement:
    """Where one item lands on the canvas."""
    identity: str
    x: int
    y: int
    width: int
    height: int

    @property
    def rect(self) -> Rectangle:
        return Rectangle(self.x, self.y, self.width, self.height)


@dataclass(frozen=True)
class LayoutPlan:
    """Placement of every item plus the canvas size."""
    style: PreviewStyle
    placements: Tuple[Placement, ...]
    canvas_width: int
    canvas_height: int
    diagnostics: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.placements


@dataclass(frozen=True)
class SheetConstraints:
    max_width: int = 2048
    max_height: int = 2048
    padding: int = 2
    sort: SortKey = SortKey.NAME


@dataclass(frozen=True)
class GridConstraints:
    cell_px: int = 64
    padding: int = 8
    columns: int = 8
    sort: SortKey = SortKey.NAME


def sort_items(items: Sequence[LayoutItem], key: SortKey = SortKey.NAME) -> List[LayoutItem]:
    """
    Order items canonically.

    ``name`` sorts by identity ascending; the size keys sort largest first
    and break ties by identity, so the order is always total.
    """
    if key is SortKey.NAME:
        return sorted(items, key=lambda item: item.identity)
    if key is SortKey.WIDTH:
        return sorted(items, key=lambda item: (-item.width, item.identity))
    if key is SortKey.HEIGHT:
        return sorted(items, key=lambda item: (-item.height, item.identity))
    if key is SortKey.AREA:
        return sorted(items, key=lambda item: (-item.area, item.identity))
    raise ValueError(f"Unknown sort key: {key}")


class LayoutPlanner:
    """Computes sheet and grid layouts."""

    def plan(self, style: PreviewStyle, items: Sequence[LayoutItem],
             sheet: SheetConstraints, grid: GridConstraints) -> LayoutPlan:
        """Dispatch to the layout for ``style``."""
        if style is PreviewStyle.SHEET:
            return self.plan_sheet(items, sheet)
        if style is PreviewStyle.GRID:
            return self.plan_grid(items, grid)
        raise ValueError(f"Unknown preview style: {style}")

    def plan_sheet(self, items: Sequence[LayoutItem], constraints: SheetConstraints) -> LayoutPlan:
        """
        Shelf packing: fill rows left to right, start a new row when the
        next item would cross ``max_width``.

        Each row is as tall as its tallest item. No rotation and no attempt
        at optimal density.

        Raises:
            LayoutOverflow: If an item is wider than the sheet or the rows
                do not fit within ``max_height``
        """
        padding = constraints.padding
        placements = []

        x = 0
        y = 0
        row_height = 0
        canvas_width = 0

        for item in sort_items(items, constraints.sort):
            if item.width > constraints.max_width:
                raise LayoutOverflow(
                    f"item is {item.width}px wide, sheet max_width is {constraints.max_width}px",
                    path=item.identity
                )

            # Padding only separates items; the first item of a row sits at x=0
            if x > 0 and x + padding + item.width > constraints.max_width:
                y += row_height + padding
                x = 0
                row_height = 0

            item_x = x + padding if x > 0 else 0
            placements.append(Placement(item.identity, item_x, y, item.width, item.height))

            x = item_x + item.width
            row_height = max(row_height, item.height)
            canvas_width = max(canvas_width, x)

        canvas_height = y + row_height if placements else 0

        if canvas_height > constraints.max_height:
            raise LayoutOverflow(
                f"{len(placements)} items need a {canvas_width}x{canvas_height} sheet, "
                f"max_height is {constraints.max_height}px"
            )

        return LayoutPlan(
            style=PreviewStyle.SHEET,
            placements=tuple(placements),
            canvas_width=canvas_width,
            canvas_height=canvas_height,
        )

    def plan_grid(self, items: Sequence[LayoutItem], constraints: GridConstraints) -> LayoutPlan:
        """
        Fixed-cell grid in row-major order.

        Item ``i`` goes to column ``i % columns`` and row ``i // columns``.
        Items larger than a cell are still placed at the cell origin and
        reported in ``diagnostics``.
        """
        if constraints.columns <= 0:
            raise ValueError("grid columns must be positive")

        cell = constraints.cell_px
        step = cell + constraints.padding
        placements = []
        diagnostics = []

        ordered = sort_items(items, constraints.sort)
        for i, item in enumerate(ordered):
            col = i % constraints.columns
            row = i // constraints.columns
            placements.append(Placement(item.identity, col * step, row * step, item.width, item.height))

            if item.width > cell or item.height > cell:
                diagnostics.append(
                    f"{item.identity}: {item.width}x{item.height} exceeds the {cell}px grid cell"
                )

        if not placements:
            return LayoutPlan(style=PreviewStyle.GRID, placements=(), canvas_width=0, canvas_height=0)

        used_cols = min(constraints.columns, len(placements))
        rows = (len(placements) + constraints.columns - 1) // constraints.columns

        canvas_width = used_cols * cell + (used_cols - 1) * constraints.padding
        canvas_height = rows * cell + (rows - 1) * constraints.padding

        # Oversized items widen the canvas so every placement stays inside it
        canvas_width = max(canvas_width, max(p.x + p.width for p in placements))
        canvas_height = max(canvas_height, max(p.y + p.height for p in placements))

        return LayoutPlan(
            style=PreviewStyle.GRID,
            placements=tuple(placements),
            canvas_width=canvas_width,
            canvas_height=canvas_height,
            diagnostics=tuple(diagnostics),
        )


def validate_plan(plan: LayoutPlan) -> List[str]:
    """
    Check containment and overlap of a plan's placements.

    Returns:
        List of validation error messages
    """
    errors = []

    for p in plan.placements:
        if p.x < 0 or p.y < 0:
            errors.append(f"'{p.identity}' has negative coordinates: ({p.x}, {p.y})")
        if p.width <= 0 or p.height <= 0:
            errors.append(f"'{p.identity}' has invalid dimensions: {p.width}x{p.height}")
        if p.x + p.width > plan.canvas_width:
            errors.append(f"'{p.identity}' extends beyond canvas width: {p.x + p.width} > {plan.canvas_width}")
        if p.y + p.height > plan.canvas_height:
            errors.append(f"'{p.identity}' extends beyond canvas height: {p.y + p.height} > {plan.canvas_height}")

    placements = list(plan.placements)
    for i, a in enumerate(placements):
        for b in placements[i + 1:]:
            if a.rect.intersects(b.rect):
                errors.append(f"'{a.identity}' overlaps '{b.identity}'")

    return errors
