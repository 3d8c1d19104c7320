"""
Conversions between token amounts and position liquidity.
"""
from typing import Tuple

from liqmanager.utils.math import UniswapV3Math


def calculate_liquidity(
    amount0: int,
    amount1: int,
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
) -> int:
    """
    Liquidity obtainable from amount0/amount1 on [tick_lower, tick_upper]
    at the given pool price.

    The result is the smaller of the liquidity each asset could back on its
    own, so neither amount is exceeded.
    """
    sqrt_lower = UniswapV3Math.get_sqrt_ratio_at_tick(tick_lower)
    sqrt_upper = UniswapV3Math.get_sqrt_ratio_at_tick(tick_upper)

    return UniswapV3Math.get_liquidity_for_amounts(
        sqrt_price_x96,
        sqrt_lower,
        sqrt_upper,
        amount0,
        amount1,
    )


def calculate_amounts(
    liquidity: int,
    sqrt_price_x96: int,
    tick_lower: int,
    tick_upper: int,
) -> Tuple[int, int]:
    """Token amounts (rounded down) represented by liquidity on a range."""
    sqrt_lower = UniswapV3Math.get_sqrt_ratio_at_tick(tick_lower)
    sqrt_upper = UniswapV3Math.get_sqrt_ratio_at_tick(tick_upper)

    return UniswapV3Math.get_amounts_for_liquidity(
        sqrt_price_x96,
        sqrt_lower,
        sqrt_upper,
        liquidity,
    )


def position_liquidity_and_used_amounts(
    tick_lower: int,
    tick_upper: int,
    sqrt_price_x96: int,
    amount0: int,
    amount1: int,
) -> Tuple[int, int, int]:
    """
    Returns (liquidity, used_amount0, used_amount1) for a deposit, with the
    used amounts rounded up the way the pool charges them.
    """
    sqrt_lower = UniswapV3Math.get_sqrt_ratio_at_tick(tick_lower)
    sqrt_upper = UniswapV3Math.get_sqrt_ratio_at_tick(tick_upper)

    liquidity = UniswapV3Math.get_liquidity_for_amounts(
        sqrt_price_x96,
        sqrt_lower,
        sqrt_upper,
        amount0,
        amount1,
    )

    used0, used1 = UniswapV3Math.get_amounts_for_liquidity(
        sqrt_price_x96,
        sqrt_lower,
        sqrt_upper,
        liquidity,
        round_up=True,
    )

    return liquidity, used0, used1
