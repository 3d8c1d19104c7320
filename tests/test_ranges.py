"""
Tests for tick range calculation.
"""
import pytest

from liqmanager.errors import InvalidTickRange
from liqmanager.ranges import calculate_tick_range
from liqmanager.utils.math import UniswapV3Math

TICKS = [-400000, -50000, -1, 0, 1, 59, 60, 12345, 200000, 400000, 800000]
SPACINGS = [1, 10, 60, 200]
WIDTHS = [10, 100, 500, 5000, 10000]


def test_example_five_percent_width():
    tick_range = calculate_tick_range(0, 60, 500)

    assert tick_range.tick_lower <= -60
    assert tick_range.tick_upper >= 60
    assert tick_range.tick_lower % 60 == 0
    assert tick_range.tick_upper % 60 == 0
    # ln(0.95) / ln(1.0001) = -513, ln(1.05) / ln(1.0001) = 487
    assert tick_range.as_tuple() == (-540, 540)


@pytest.mark.parametrize("current_tick", TICKS)
@pytest.mark.parametrize("tick_spacing", SPACINGS)
@pytest.mark.parametrize("width", WIDTHS)
def test_range_invariants(current_tick, tick_spacing, width):
    tick_range = calculate_tick_range(current_tick, tick_spacing, width)
    lower, upper = tick_range.as_tuple()

    assert lower < current_tick < upper
    assert lower % tick_spacing == 0
    assert upper % tick_spacing == 0
    assert UniswapV3Math.MIN_TICK <= lower
    assert upper <= UniswapV3Math.MAX_TICK


def test_small_width_on_coarse_grid():
    tick_range = calculate_tick_range(0, 200, 10)
    assert tick_range.as_tuple() == (-200, 200)


def test_bound_pushed_off_current_tick():
    # At tick -400000 the scaled linear price is 4, so a 0.1% delta rounds to zero
    # and both raw bounds land below the current tick
    tick_range = calculate_tick_range(-400000, 200, 10)
    assert tick_range.tick_upper == -399800
    assert tick_range.tick_lower < -400000


def test_wider_width_gives_wider_range():
    narrow = calculate_tick_range(1000, 10, 100)
    wide = calculate_tick_range(1000, 10, 1000)

    assert wide.tick_lower < narrow.tick_lower
    assert wide.tick_upper > narrow.tick_upper


def test_range_clamped_at_max_tick():
    tick_range = calculate_tick_range(886000, 60, 10000)
    assert tick_range.tick_upper == UniswapV3Math.max_usable_tick(60)
    assert tick_range.tick_lower < 886000


def test_range_collapses_at_min_tick():
    with pytest.raises(InvalidTickRange) as exc_info:
        calculate_tick_range(UniswapV3Math.MIN_TICK, 60, 500)

    assert exc_info.value.tick_lower >= exc_info.value.tick_upper


@pytest.mark.parametrize("current_tick,tick_spacing", [(887200, 200), (887271, 60)])
def test_current_tick_beyond_usable_bounds(current_tick, tick_spacing):
    with pytest.raises(InvalidTickRange) as exc_info:
        calculate_tick_range(current_tick, tick_spacing, 500)

    assert exc_info.value.current_tick == current_tick
    assert exc_info.value.tick_upper == UniswapV3Math.max_usable_tick(tick_spacing)
    assert exc_info.value.tick_upper <= current_tick


@pytest.mark.parametrize("tick_spacing", [0, -60])
def test_invalid_spacing(tick_spacing):
    with pytest.raises(ValueError):
        calculate_tick_range(0, tick_spacing, 500)
