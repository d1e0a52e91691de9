import itertools

import pytest

from collage_utils import collage_layouts
from collage_utils.collage_layouts import (
    REGION_ORDER,
    CollageLayoutOptions,
    Rect,
    Region,
    allocate_counts,
    compute_collage_layout,
    compute_flat_layout,
    compute_regions,
    scaled_gap,
)
from collage_utils.errors import LayoutAllocationShortfallError


def _layout(size=100, ratio=0.5, gap=0, others=12):
    return compute_collage_layout(
        CollageLayoutOptions(size=size, main_ratio=ratio, gap=gap, others_count=others)
    )


def _assert_valid(layout, expected_count):
    cells = list(layout.ring_cells)
    assert len(cells) == expected_count
    everything = cells + ([layout.main_rect] if layout.main_rect else [])
    for rect in everything:
        assert rect.width > 0 and rect.height > 0
        assert rect.x >= 0 and rect.y >= 0
        assert rect.right <= layout.size and rect.bottom <= layout.size
    for a, b in itertools.combinations(everything, 2):
        assert a.intersection_area(b) == 0


def test_scenario_main_with_twelve_ring_cells():
    layout = _layout(size=100, ratio=0.5, gap=0, others=12)
    assert layout.main_rect == Rect(25, 25, 50, 50)
    _assert_valid(layout, 12)

    top = [c for c in layout.ring_cells if c.bottom <= 25]
    bottom = [c for c in layout.ring_cells if c.y >= 75]
    sides = [c for c in layout.ring_cells if 25 <= c.y < 75]
    assert len(top) == 4 and len(bottom) == 4
    assert len(sides) == 4

    # ring strips are tiled without holes
    assert sum(c.area for c in layout.ring_cells) == 100 * 100 - 50 * 50


def test_zero_others_still_places_main():
    layout = _layout(size=100, ratio=0.5, others=0)
    assert layout.ring_cells == []
    assert layout.main_rect == Rect(25, 25, 50, 50)


@pytest.mark.parametrize("count", [0, 1, 2, 3, 5, 7, 11, 13, 29, 64, 97, 150, 401])
@pytest.mark.parametrize("gap", [0, 3, 12])
def test_ring_cell_count_matches_request(count, gap):
    layout = _layout(size=512, ratio=0.48, gap=gap, others=count)
    _assert_valid(layout, count)


@pytest.mark.parametrize("ratio", [0.05, 0.95, 0.0, 1.0, -3, 7])
def test_extreme_ratios_are_clamped(ratio):
    layout = _layout(size=64, ratio=ratio, gap=4, others=20)
    _assert_valid(layout, 20)
    assert 0 < layout.main_rect.width < 64


def test_layout_is_deterministic():
    first = _layout(size=777, ratio=0.37, gap=5, others=58)
    second = _layout(size=777, ratio=0.37, gap=5, others=58)
    assert first == second


def test_size_and_gap_are_normalized():
    layout = _layout(size=10.9, ratio=0.5, gap=1000, others=3)
    assert layout.size == 64
    assert layout.gap == 64 // 8

    layout = _layout(size=300.7, ratio=0.5, gap=-4, others=3)
    assert layout.size == 300
    assert layout.gap == 0


def test_regions_are_centered_with_even_ring():
    main_rect, regions = compute_regions(101, 0.5)
    assert [r.name for r in regions] == list(REGION_ORDER)
    assert (101 - main_rect.width) % 2 == 0
    assert main_rect.x == main_rect.y == (101 - main_rect.width) // 2

    by_name = {r.name: r for r in regions}
    assert by_name["top"].rect.width == 101
    assert by_name["left"].rect.height == main_rect.height
    assert by_name["right"].rect.right == 101
    assert by_name["bottom"].rect.bottom == 101


def test_region_gap_separates_ring_from_main():
    main_rect, regions = compute_regions(200, 0.5, gap=10)
    by_name = {r.name: r.rect for r in regions}
    assert main_rect.x - by_name["left"].right == 10
    assert by_name["right"].x - main_rect.right == 10
    assert main_rect.y - by_name["top"].bottom == 10
    assert by_name["bottom"].y - main_rect.bottom == 10


def test_region_area_follows_rect():
    region = Region("top", Rect(0, 0, 40, 10))
    assert region.area == 400


def test_allocate_counts_proportional_to_area():
    _, regions = compute_regions(100, 0.5)
    counts = allocate_counts(12, regions)
    assert counts == {"top": 4, "right": 2, "bottom": 4, "left": 2}


@pytest.mark.parametrize("total", range(0, 60))
def test_allocate_counts_sum_is_exact(total):
    regions = [
        Region("top", Rect(0, 0, 97, 13)),
        Region("right", Rect(0, 0, 13, 41)),
        Region("bottom", Rect(0, 0, 97, 17)),
        Region("left", Rect(0, 0, 7, 41)),
    ]
    assert sum(allocate_counts(total, regions).values()) == total


def test_allocate_counts_ties_keep_input_order():
    regions = [Region(name, Rect(0, 0, 10, 10)) for name in REGION_ORDER]
    assert allocate_counts(2, regions) == {"top": 1, "right": 1, "bottom": 0, "left": 0}


def test_allocate_counts_degenerate_ring():
    regions = [Region(name, Rect(0, 0, 0, 0)) for name in REGION_ORDER]
    assert allocate_counts(9, regions) == {name: 0 for name in REGION_ORDER}


def test_flat_layout_fills_canvas():
    layout = compute_flat_layout(300, 6, 17)
    assert layout.main_rect is None
    _assert_valid(layout, 17)


def test_shortfall_raises(monkeypatch):
    monkeypatch.setattr(collage_layouts, "pack_grid", lambda rect, count, gap=0: [])
    with pytest.raises(LayoutAllocationShortfallError) as excinfo:
        _layout(others=5)
    assert excinfo.value.expected == 5
    assert excinfo.value.actual == 0


def test_scaled_gap():
    assert scaled_gap(16, 1024, 4096) == 4
    assert scaled_gap(10, 4096, 4096) == 10
    assert scaled_gap(1, 512, 4096) == 0
    assert scaled_gap(-5, 512, 4096) == 0


def test_layout_to_dict():
    data = _layout(others=2).to_dict()
    assert data["mainRect"] == {"x": 25, "y": 25, "width": 50, "height": 50}
    assert len(data["ringCells"]) == 2


def test_rect_rejects_negative_size():
    with pytest.raises(ValueError):
        Rect(0, 0, -1, 5)


def test_thin_ring_reduces_gap_instead_of_dropping_images():
    layout = _layout(size=100, ratio=0.95, gap=12, others=500)
    _assert_valid(layout, 500)
    assert layout.gap < 12


def test_ring_gap_kept_when_cells_fit():
    layout = _layout(size=400, ratio=0.5, gap=10, others=8)
    _assert_valid(layout, 8)
    assert layout.gap == 10
    top_cells = [cell for cell in layout.ring_cells if cell.bottom <= layout.main_rect.y]
    assert top_cells
    assert all(layout.main_rect.y - cell.bottom >= 10 for cell in top_cells)
