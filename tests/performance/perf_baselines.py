"""Performance baselines for the collage layout engine."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Final


@dataclass(frozen=True)
class PerfBaseline:
    """Configuration for a performance benchmark assertion."""

    loops: int
    max_us_per_call: float
    reference_us_per_call: float


PERF_BASELINES: Final[dict[str, PerfBaseline]] = {
    "compute_collage_layout_1000": PerfBaseline(
        loops=20,
        max_us_per_call=250_000.0,
        reference_us_per_call=9_000.0,
    ),
    "pack_grid_10000": PerfBaseline(
        loops=5,
        max_us_per_call=1_000_000.0,
        reference_us_per_call=45_000.0,
    ),
    "allocate_counts": PerfBaseline(
        loops=10_000,
        max_us_per_call=100.0,
        reference_us_per_call=4.0,
    ),
}
