"""
Tick range calculation around the current pool price.
"""
import logging

from protocol import TickRange
from liqmanager.errors import InvalidTickRange
from liqmanager.utils.math import UniswapV3Math

logger = logging.getLogger(__name__)

WIDTH_DENOMINATOR = 10_000


def calculate_tick_range(current_tick: int, tick_spacing: int, width: int) -> TickRange:
    """
    Compute a tick-aligned range of +/- width basis points around the
    price at current_tick.

    Steps:
    1. Convert current_tick to a linear price P
    2. Offset P by delta = P * width / 10000 in both directions (lower
       price floored at 1)
    3. Convert both prices back to ticks and align them outward to the
       spacing grid
    4. Push a bound that landed on or past current_tick out by whole
       spacings so the current price is strictly inside the range
    5. Clamp into the usable tick bounds for the spacing; the clamped
       range must still contain current_tick

    Args:
        current_tick: Current pool tick
        tick_spacing: Pool tick spacing (> 0)
        width: Half-width of the range in basis points, pre-validated by
            the caller

    Returns:
        TickRange with both bounds multiples of tick_spacing

    Raises:
        ValueError: If tick_spacing is not positive
        InvalidTickRange: If clamping collapsed the range or left the
            current tick outside it
    """
    if tick_spacing <= 0:
        raise ValueError(f"Tick spacing must be positive: {tick_spacing}")

    price = UniswapV3Math.tick_to_price(current_tick)
    delta = UniswapV3Math.mul_div(price, width, WIDTH_DENOMINATOR)

    lower_price = max(price - delta, 1)
    upper_price = price + delta

    raw_lower = UniswapV3Math.price_to_tick(lower_price)
    raw_upper = UniswapV3Math.price_to_tick(upper_price)

    tick_lower = (raw_lower // tick_spacing) * tick_spacing
    tick_upper = -(-raw_upper // tick_spacing) * tick_spacing

    while tick_lower >= current_tick:
        tick_lower -= tick_spacing
    while tick_upper <= current_tick:
        tick_upper += tick_spacing

    min_tick = UniswapV3Math.min_usable_tick(tick_spacing)
    max_tick = UniswapV3Math.max_usable_tick(tick_spacing)
    tick_lower = max(tick_lower, min_tick)
    tick_upper = min(tick_upper, max_tick)

    if tick_lower >= tick_upper:
        raise InvalidTickRange(tick_lower, tick_upper)
    # current tick beyond the usable bounds for this spacing
    if not tick_lower < current_tick < tick_upper:
        raise InvalidTickRange(tick_lower, tick_upper, current_tick)

    logger.debug(
        f"Range for tick {current_tick} (spacing {tick_spacing}, width {width}): "
        f"raw [{raw_lower}, {raw_upper}] -> [{tick_lower}, {tick_upper}]"
    )

    return TickRange(tick_lower=tick_lower, tick_upper=tick_upper)
