"""Layout engine for square "main + ring" collages.

A square canvas is split into a centred main square and four ring regions
(top, right, bottom, left).  Ring images are shared out between the regions
in proportion to their area and every region is packed into a gapless grid
whose cell count matches its share exactly.  All functions are pure: the
same inputs always produce the same rectangles.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from smartcollage import config

from .errors import LayoutAllocationShortfallError

logger = logging.getLogger("smartcollage.layout")

# Ring cells are concatenated in this order; callers zip ring cells against
# their ordered image list, so it must not change.
REGION_ORDER: Tuple[str, ...] = ("top", "right", "bottom", "left")


def _clamp(value: float, lower: float, upper: float) -> float:
    return min(upper, max(lower, value))


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


@dataclass(frozen=True, slots=True)
class Rect:
    """Axis-aligned rectangle in canvas pixels, origin top-left."""

    x: int
    y: int
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(
                f"Rect dimensions must be non-negative, got {self.width}x{self.height}"
            )

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    @property
    def box(self) -> Tuple[int, int, int, int]:
        """Return the rectangle as a Pillow ``(left, top, right, bottom)`` box."""
        return (self.x, self.y, self.right, self.bottom)

    def intersection_area(self, other: "Rect") -> int:
        """Return the overlapping area shared with ``other``."""
        overlap_w = min(self.right, other.right) - max(self.x, other.x)
        overlap_h = min(self.bottom, other.bottom) - max(self.y, other.y)
        if overlap_w <= 0 or overlap_h <= 0:
            return 0
        return overlap_w * overlap_h

    def to_dict(self) -> Dict[str, int]:
        """Convert the rectangle to a dictionary representation."""
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
        }


@dataclass(frozen=True, slots=True)
class Region:
    """A named ring strip around the main square."""

    name: str
    rect: Rect

    @property
    def area(self) -> int:
        return self.rect.area


@dataclass(frozen=True, slots=True)
class CollageLayoutOptions:
    """Input for :func:`compute_collage_layout`."""

    size: float
    main_ratio: float
    gap: float = 0
    others_count: int = 0


@dataclass(slots=True)
class CollageLayout:
    """Computed collage geometry.

    Attributes:
        size (int): Edge length of the square canvas.
        gap (int): Effective gap between cells after clamping.
        main_rect (Optional[Rect]): Rectangle for the main image, ``None`` for
            a flat grid without a main image.
        ring_cells (List[Rect]): Cells for the remaining images, ordered
            top, right, bottom, left and row-major inside each region.
    """

    size: int
    gap: int
    main_rect: Optional[Rect]
    ring_cells: List[Rect] = field(default_factory=list)

    def to_dict(self) -> Dict:
        """Convert the layout to a dictionary representation."""
        return {
            "size": self.size,
            "gap": self.gap,
            "mainRect": self.main_rect.to_dict() if self.main_rect else None,
            "ringCells": [cell.to_dict() for cell in self.ring_cells],
        }


def normalize_canvas_size(size: float) -> int:
    """Floor ``size`` to whole pixels and enforce the minimum canvas edge."""
    return max(config.MIN_CANVAS_SIZE, int(math.floor(size)))


def normalize_gap(gap: float, size: int) -> int:
    """Clamp ``gap`` to ``[0, size // GAP_DIVISOR]`` whole pixels."""
    return int(_clamp(math.floor(gap), 0, size // config.GAP_DIVISOR))


def scaled_gap(gap_at_export: float, size: int, export_size: int) -> int:
    """Scale a gap configured at export resolution to a ``size`` canvas.

    Previews are rendered smaller than the export, so the gap is kept
    proportional to the canvas edge instead of using the same pixel value.
    """
    if export_size <= 0:
        return max(0, _round_half_up(gap_at_export))
    return max(0, _round_half_up(gap_at_export * (size / export_size)))


def compute_regions(size: int, main_ratio: float, gap: int = 0) -> Tuple[Rect, List[Region]]:
    """Split a ``size`` square into a centred main square and four ring regions.

    ``main_ratio`` is the fraction of the canvas edge taken by the main
    square and is clamped to ``[MIN_MAIN_RATIO, MAX_MAIN_RATIO]``.  When the
    leftover edge is odd the main square gives up one pixel so the ring
    thickness stays a whole number on every side.

    Each ring region leaves ``gap`` pixels free on the side facing the main
    square, but always keeps at least one pixel of thickness.

    Returns:
        Tuple[Rect, List[Region]]: The main rectangle and the regions in
        :data:`REGION_ORDER`.
    """
    ratio = _clamp(main_ratio, config.MIN_MAIN_RATIO, config.MAX_MAIN_RATIO)
    main_size = int(_clamp(_round_half_up(size * ratio), 1, size))
    if (size - main_size) % 2:
        main_size += -1 if main_size > 1 else 1

    ring_t = max(0, (size - main_size) // 2)
    region_gap = int(_clamp(gap, 0, max(0, ring_t - 1)))
    thickness = ring_t - region_gap
    far_side = ring_t + main_size + region_gap

    main_rect = Rect(ring_t, ring_t, main_size, main_size)
    rects = {
        "top": Rect(0, 0, size, thickness),
        "right": Rect(far_side, ring_t, thickness, main_size),
        "bottom": Rect(0, far_side, size, thickness),
        "left": Rect(0, ring_t, thickness, main_size),
    }
    regions = [Region(name, rects[name]) for name in REGION_ORDER]
    return main_rect, regions


def allocate_counts(total: int, regions: Sequence[Region]) -> Dict[str, int]:
    """Share ``total`` items between ``regions`` in proportion to their area.

    Uses largest-remainder rounding: every region gets the floor of its exact
    share and the shortfall is handed out one by one to the regions with the
    largest fractional remainder (ties keep input order).

    Returns:
        Dict[str, int]: Item count per region name, summing to ``total``.
    """
    safe_total = max(0, int(math.floor(total)))
    counts = {region.name: 0 for region in regions}
    ring_area = sum(region.area for region in regions)
    if safe_total == 0 or ring_area <= 0:
        return counts

    # Shares are kept as integer quotient/remainder over ``ring_area`` so
    # equal remainders compare equal.
    remainders: List[Tuple[str, int]] = []
    for region in regions:
        base, remainder = divmod(region.area * safe_total, ring_area)
        counts[region.name] = base
        remainders.append((region.name, remainder))

    shortfall = safe_total - sum(counts.values())
    ranked = sorted(remainders, key=lambda item: item[1], reverse=True)
    for i in range(shortfall):
        counts[ranked[i % len(ranked)][0]] += 1

    residual = safe_total - sum(counts.values())
    if residual:
        fallback = "top" if "top" in counts else next(iter(counts))
        logger.warning("Allocation off by %d, assigning residual to %s", residual, fallback)
        counts[fallback] += residual
    return counts


def distribute(total: int, parts: int) -> List[int]:
    """Split ``total`` pixels into ``parts`` whole-pixel shares.

    Shares differ by at most one pixel and always sum to ``total``; the
    leftover pixels go to the leading shares.
    """
    if parts <= 0:
        return []
    base, remainder = divmod(max(0, int(total)), parts)
    return [base + 1 if i < remainder else base for i in range(parts)]


def _squareness_score(count: int, rows: int, width: int, height: int, gap: int) -> Optional[float]:
    """Score ``rows`` rows of ``count`` cells, or ``None`` when they do not fit."""
    avail_h = height - (rows - 1) * gap
    if avail_h < rows:
        return None
    base, extra = divmod(count, rows)
    widest = base + 1 if extra else base
    if width - (widest - 1) * gap < widest:
        return None

    row_h, tall = divmod(avail_h, rows)
    # Rows come in at most four (height, count) kinds; the first ``tall`` rows
    # are one pixel taller and the first ``extra`` rows hold one more cell.
    both = min(tall, extra)
    kinds = (
        (row_h + 1, base + 1, both),
        (row_h + 1, base, tall - both),
        (row_h, base + 1, extra - both),
        (row_h, base, rows - tall - extra + both),
    )
    score = 0.0
    for cell_h, row_count, multiplicity in kinds:
        if multiplicity <= 0 or row_count <= 0:
            continue
        cell_w = (width - (row_count - 1) * gap) / row_count
        score += abs(math.log(cell_w / cell_h)) * row_count * multiplicity
    return score


def _best_row_count(count: int, width: int, height: int, gap: int) -> Optional[int]:
    best_rows: Optional[int] = None
    best_score = math.inf
    for rows in range(1, min(count, height) + 1):
        if height - (rows - 1) * gap < rows:
            break
        score = _squareness_score(count, rows, width, height, gap)
        if score is not None and score < best_score:
            best_rows, best_score = rows, score
    return best_rows


def _gap_attempts(gap: int) -> List[int]:
    current = max(0, int(gap))
    attempts = [current]
    for _ in range(config.GAP_FALLBACK_ATTEMPTS):
        current //= 2
        attempts.append(current)
    attempts.append(0)
    return list(dict.fromkeys(attempts))


def _emit_cells(rect: Rect, count: int, rows: int, width: int, height: int, gap: int) -> List[Rect]:
    base, extra = divmod(count, rows)
    cells: List[Rect] = []
    y = rect.y
    for row, row_h in enumerate(distribute(height - (rows - 1) * gap, rows)):
        row_count = base + 1 if row < extra else base
        x = rect.x
        for cell_w in distribute(width - (row_count - 1) * gap, row_count):
            cells.append(Rect(x, y, cell_w, row_h))
            x += cell_w + gap
        y += row_h + gap
    return cells


def pack_grid(rect: Rect, count: int, gap: int = 0) -> List[Rect]:
    """Pack exactly ``count`` cells into ``rect``.

    Row counts are searched for the grid whose cells are closest to square
    (``|log(aspect)|`` weighted by cells per row).  Rows hold ``count //
    rows`` cells with the remainder spread over the leading rows, so no grid
    position is left empty.  When nothing fits at the requested ``gap`` the
    gap is halved a few times and finally dropped.

    Args:
        rect (Rect): Area to fill.
        count (int): Number of cells to produce.
        gap (int): Pixels between neighbouring cells.

    Returns:
        List[Rect]: Cells in row-major order, or an empty list when ``count``
        is zero, ``rect`` has no area, or even a gapless grid cannot give
        every cell a pixel.
    """
    n = max(0, int(count))
    width = int(math.floor(rect.width))
    height = int(math.floor(rect.height))
    if n == 0 or width <= 0 or height <= 0:
        return []

    for attempt_gap in _gap_attempts(gap):
        rows = _best_row_count(n, width, height, attempt_gap)
        if rows is None:
            continue
        if attempt_gap != gap:
            logger.debug(
                "Reduced gap from %d to %d to fit %d cells into %dx%d",
                gap, attempt_gap, n, width, height,
            )
        return _emit_cells(rect, n, rows, width, height, attempt_gap)

    logger.warning("Cannot fit %d cells into %dx%d", n, width, height)
    return []


def _ensure_cell_count(cells: Sequence[Rect], expected: int) -> None:
    if len(cells) != expected:
        raise LayoutAllocationShortfallError(
            f"Layout produced {len(cells)} cells for {expected} images",
            expected=expected,
            actual=len(cells),
        )


def compute_collage_layout(options: CollageLayoutOptions) -> CollageLayout:
    """Compute the main rectangle and ring cells for ``options``.

    When the ring cannot hold every cell at the requested gap, the gap
    around the main square and between cells is halved a few times and
    finally dropped.  ``CollageLayout.gap`` reports the gap actually used.

    Raises:
        LayoutAllocationShortfallError: If the ring cannot hold
            ``options.others_count`` cells even without a gap.
    """
    size = normalize_canvas_size(options.size)
    gap = normalize_gap(options.gap, size)
    others_count = max(0, int(math.floor(options.others_count)))

    for ring_gap in _gap_attempts(gap):
        main_rect, regions = compute_regions(size, options.main_ratio, ring_gap)
        counts = allocate_counts(others_count, regions)
        ring_cells: List[Rect] = []
        for region in regions:
            ring_cells.extend(pack_grid(region.rect, counts[region.name], ring_gap))
        if len(ring_cells) == others_count:
            break
        logger.debug("Ring holds %d of %d cells at gap=%d", len(ring_cells), others_count, ring_gap)
    _ensure_cell_count(ring_cells, others_count)

    if ring_gap != gap:
        logger.info("Reduced ring gap from %d to %d to fit %d images", gap, ring_gap, others_count)
    logger.debug("Layout %dpx gap=%d counts=%s", size, ring_gap, counts)
    return CollageLayout(size=size, gap=ring_gap, main_rect=main_rect, ring_cells=ring_cells)


def compute_flat_layout(size: float, gap: float, count: int) -> CollageLayout:
    """Pack ``count`` cells into the whole canvas, without a main image."""
    canvas_size = normalize_canvas_size(size)
    canvas_gap = normalize_gap(gap, canvas_size)
    n = max(0, int(math.floor(count)))

    cells = pack_grid(Rect(0, 0, canvas_size, canvas_size), n, canvas_gap)
    _ensure_cell_count(cells, n)
    return CollageLayout(size=canvas_size, gap=canvas_gap, main_rect=None, ring_cells=cells)


__all__ = [
    "REGION_ORDER",
    "Rect",
    "Region",
    "CollageLayoutOptions",
    "CollageLayout",
    "normalize_canvas_size",
    "normalize_gap",
    "scaled_gap",
    "compute_regions",
    "allocate_counts",
    "distribute",
    "pack_grid",
    "compute_collage_layout",
    "compute_flat_layout",
]
