import math
from typing import Tuple


class UniswapV3Math:
    """
    Int-only Uniswap V3 math helpers (Q96 fixed point).

    Linear prices handled here are fixed-point integers scaled by
    PRICE_PRECISION (raw token1 units per raw token0 unit).
    """

    Q96 = 1 << 96
    Q128 = 1 << 128
    MIN_TICK = -887272
    MAX_TICK = 887272

    MIN_SQRT_RATIO = 4295128739
    MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342

    MAX_UINT128 = (1 << 128) - 1
    MAX_UINT256 = (1 << 256) - 1

    PRICE_PRECISION = 10**18

    # -----------------------------
    # Full precision arithmetic
    # -----------------------------

    @staticmethod
    def _check_operands(a: int, b: int, denominator: int) -> None:
        if denominator == 0:
            raise ZeroDivisionError("mul_div denominator is zero")
        for value in (a, b, denominator):
            if value < 0 or value > UniswapV3Math.MAX_UINT256:
                raise ValueError(f"mul_div operand out of uint256 range: {value}")

    @staticmethod
    def mul_div(a: int, b: int, denominator: int) -> int:
        """
        floor(a * b / denominator) with a full-width intermediate product.

        Raises:
            ZeroDivisionError: If denominator is zero
            ValueError: If an operand is outside uint256
            OverflowError: If the result does not fit in uint256
        """
        UniswapV3Math._check_operands(a, b, denominator)
        result = a * b // denominator
        if result > UniswapV3Math.MAX_UINT256:
            raise OverflowError(f"mul_div result overflows uint256: {a} * {b} / {denominator}")
        return result

    @staticmethod
    def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
        UniswapV3Math._check_operands(a, b, denominator)
        result = -(-(a * b) // denominator)
        if result > UniswapV3Math.MAX_UINT256:
            raise OverflowError(f"mul_div result overflows uint256: {a} * {b} / {denominator}")
        return result

    @staticmethod
    def to_uint128(value: int) -> int:
        if value < 0 or value > UniswapV3Math.MAX_UINT128:
            raise OverflowError(f"Value does not fit in uint128: {value}")
        return value

    # -----------------------------
    # Price conversions
    # -----------------------------

    @staticmethod
    def get_sqrt_ratio_at_tick(tick: int) -> int:
        if tick < UniswapV3Math.MIN_TICK or tick > UniswapV3Math.MAX_TICK:
            raise ValueError(f"Tick {tick} outside [{UniswapV3Math.MIN_TICK}, {UniswapV3Math.MAX_TICK}]")

        abs_tick = -tick if tick < 0 else tick

        ratio = (
            0xFFFCB933BD6FAD37AA2D162D1A594001
            if abs_tick & 0x1 != 0
            else 0x100000000000000000000000000000000
        )

        if abs_tick & 0x2:
            ratio = (ratio * 0xFFF97272373D413259A46990580E213A) >> 128
        if abs_tick & 0x4:
            ratio = (ratio * 0xFFF2E50F5F656932EF12357CF3C7FDCC) >> 128
        if abs_tick & 0x8:
            ratio = (ratio * 0xFFE5CACA7E10E4E61C3624EAA0941CD0) >> 128
        if abs_tick & 0x10:
            ratio = (ratio * 0xFFCB9843D60F6159C9DB58835C926644) >> 128
        if abs_tick & 0x20:
            ratio = (ratio * 0xFF973B41FA98C081472E6896DFB254C0) >> 128
        if abs_tick & 0x40:
            ratio = (ratio * 0xFF2EA16466C96A3843EC78B326B52861) >> 128
        if abs_tick & 0x80:
            ratio = (ratio * 0xFE5DEE046A99A2A811C461F1969C3053) >> 128
        if abs_tick & 0x100:
            ratio = (ratio * 0xFCBE86C7900A88AEDCFFC83B479AA3A4) >> 128
        if abs_tick & 0x200:
            ratio = (ratio * 0xF987A7253AC413176F2B074CF7815E54) >> 128
        if abs_tick & 0x400:
            ratio = (ratio * 0xF3392B0822B70005940C7A398E4B70F3) >> 128
        if abs_tick & 0x800:
            ratio = (ratio * 0xE7159475A2C29B7443B29C7FA6E889D9) >> 128
        if abs_tick & 0x1000:
            ratio = (ratio * 0xD097F3BDFD2022B8845AD8F792AA5825) >> 128
        if abs_tick & 0x2000:
            ratio = (ratio * 0xA9F746462D870FDF8A65DC1F90E061E5) >> 128
        if abs_tick & 0x4000:
            ratio = (ratio * 0x70D869A156D2A1B890BB3DF62BAF32F7) >> 128
        if abs_tick & 0x8000:
            ratio = (ratio * 0x31BE135F97D08FD981231505542FCFA6) >> 128
        if abs_tick & 0x10000:
            ratio = (ratio * 0x9AA508B5B7A84E1C677DE54F3E99BC9) >> 128
        if abs_tick & 0x20000:
            ratio = (ratio * 0x5D6AF8DEDB81196699C329225EE604) >> 128
        if abs_tick & 0x40000:
            ratio = (ratio * 0x2216E584F5FA1EA926041BEDFE98) >> 128
        if abs_tick & 0x80000:
            ratio = (ratio * 0x48A170391F7DC42444E8FA2) >> 128

        if tick > 0:
            ratio = UniswapV3Math.MAX_UINT256 // ratio

        # round up to match Solidity
        return (ratio >> 32) + (1 if ratio & ((1 << 32) - 1) != 0 else 0)

    @staticmethod
    def get_tick_at_sqrt_ratio(sqrt_price_x96: int) -> int:
        """
        Greatest tick whose sqrt ratio is <= sqrt_price_x96.

        A float logarithm gives the estimate, get_sqrt_ratio_at_tick settles
        the last tick exactly.
        """
        if sqrt_price_x96 < UniswapV3Math.MIN_SQRT_RATIO or sqrt_price_x96 >= UniswapV3Math.MAX_SQRT_RATIO:
            raise ValueError(f"sqrtPriceX96 {sqrt_price_x96} outside [MIN_SQRT_RATIO, MAX_SQRT_RATIO)")

        log_sqrt = math.log(sqrt_price_x96) - math.log(UniswapV3Math.Q96)
        tick = math.floor(2 * log_sqrt / math.log(1.0001))
        tick = max(UniswapV3Math.MIN_TICK, min(UniswapV3Math.MAX_TICK - 1, tick))

        while tick < UniswapV3Math.MAX_TICK - 1 and UniswapV3Math.get_sqrt_ratio_at_tick(tick + 1) <= sqrt_price_x96:
            tick += 1
        while UniswapV3Math.get_sqrt_ratio_at_tick(tick) > sqrt_price_x96:
            tick -= 1

        return tick

    @staticmethod
    def price_to_tick(price: int) -> int:
        """
        Convert a PRICE_PRECISION-scaled linear price to a tick.

        Prices whose square root falls outside the representable sqrt ratio
        range saturate to MIN_TICK / MAX_TICK.
        """
        if price < 0 or price > UniswapV3Math.MAX_UINT256:
            raise ValueError(f"Price out of uint256 range: {price}")

        # isqrt(price * 1e18) = sqrt(price / 1e18) * 1e18, rescaled into Q96
        root = math.isqrt(price * UniswapV3Math.PRICE_PRECISION)
        sqrt_price_x96 = UniswapV3Math.mul_div(root, UniswapV3Math.Q96, UniswapV3Math.PRICE_PRECISION)

        if sqrt_price_x96 >= UniswapV3Math.MAX_SQRT_RATIO:
            return UniswapV3Math.MAX_TICK
        if sqrt_price_x96 < UniswapV3Math.MIN_SQRT_RATIO:
            return UniswapV3Math.MIN_TICK

        return UniswapV3Math.get_tick_at_sqrt_ratio(sqrt_price_x96)

    @staticmethod
    def tick_to_price(tick: int) -> int:
        """Convert a tick to a PRICE_PRECISION-scaled linear price (rounded down)."""
        sqrt_price_x96 = UniswapV3Math.get_sqrt_ratio_at_tick(tick)
        # sqrtP^2 / 2^64 always fits in 256 bits for sqrtP < 2^160
        ratio_x128 = UniswapV3Math.mul_div(sqrt_price_x96, sqrt_price_x96, 1 << 64)
        return UniswapV3Math.mul_div(ratio_x128, UniswapV3Math.PRICE_PRECISION, UniswapV3Math.Q128)

    # -----------------------------
    # Liquidity math
    # -----------------------------

    @staticmethod
    def _liquidity_from_amount0(amount0: int, sqrtPA: int, sqrtPB: int) -> int:
        intermediate = UniswapV3Math.mul_div(sqrtPA, sqrtPB, UniswapV3Math.Q96)
        return UniswapV3Math.to_uint128(UniswapV3Math.mul_div(amount0, intermediate, sqrtPB - sqrtPA))

    @staticmethod
    def _liquidity_from_amount1(amount1: int, sqrtPA: int, sqrtPB: int) -> int:
        return UniswapV3Math.to_uint128(UniswapV3Math.mul_div(amount1, UniswapV3Math.Q96, sqrtPB - sqrtPA))

    @staticmethod
    def get_liquidity_for_amounts(
        sqrtP: int,
        sqrtPA: int,
        sqrtPB: int,
        amount0: int,
        amount1: int,
    ) -> int:
        """
        Liquidity from amounts (Uniswap V3 exact logic).
        """

        if sqrtPA > sqrtPB:
            sqrtPA, sqrtPB = sqrtPB, sqrtPA
        if sqrtPA == sqrtPB:
            raise ValueError("Price range is empty")

        if sqrtP <= sqrtPA:
            return UniswapV3Math._liquidity_from_amount0(amount0, sqrtPA, sqrtPB)

        elif sqrtP < sqrtPB:
            L0 = UniswapV3Math._liquidity_from_amount0(amount0, sqrtP, sqrtPB)
            L1 = UniswapV3Math._liquidity_from_amount1(amount1, sqrtPA, sqrtP)
            return min(L0, L1)

        else:
            return UniswapV3Math._liquidity_from_amount1(amount1, sqrtPA, sqrtPB)

    # -----------------------------
    # Amounts from liquidity
    # -----------------------------

    @staticmethod
    def get_amount0_delta(sqrtPA: int, sqrtPB: int, L: int, round_up: bool = False) -> int:
        """Token0 owed for L between two sqrt prices."""
        if sqrtPA > sqrtPB:
            sqrtPA, sqrtPB = sqrtPB, sqrtPA
        if sqrtPA == 0:
            raise ValueError("sqrt price must be positive")

        numerator1 = L << 96
        numerator2 = sqrtPB - sqrtPA

        if round_up:
            value = UniswapV3Math.mul_div_rounding_up(numerator1, numerator2, sqrtPB)
            return -(-value // sqrtPA)
        return UniswapV3Math.mul_div(numerator1, numerator2, sqrtPB) // sqrtPA

    @staticmethod
    def get_amount1_delta(sqrtPA: int, sqrtPB: int, L: int, round_up: bool = False) -> int:
        """Token1 owed for L between two sqrt prices."""
        if sqrtPA > sqrtPB:
            sqrtPA, sqrtPB = sqrtPB, sqrtPA

        if round_up:
            return UniswapV3Math.mul_div_rounding_up(L, sqrtPB - sqrtPA, UniswapV3Math.Q96)
        return UniswapV3Math.mul_div(L, sqrtPB - sqrtPA, UniswapV3Math.Q96)

    @staticmethod
    def get_amounts_for_liquidity(
        sqrtP: int,
        sqrtPA: int,
        sqrtPB: int,
        L: int,
        round_up: bool = False,
    ) -> Tuple[int, int]:
        """
        Amounts from liquidity (Uniswap V3 exact logic).
        Returns (amount0, amount1)
        """

        if sqrtPA > sqrtPB:
            sqrtPA, sqrtPB = sqrtPB, sqrtPA

        if L <= 0:
            return 0, 0

        if sqrtP <= sqrtPA:
            amount0 = UniswapV3Math.get_amount0_delta(sqrtPA, sqrtPB, L, round_up)
            return amount0, 0

        elif sqrtP < sqrtPB:
            amount0 = UniswapV3Math.get_amount0_delta(sqrtP, sqrtPB, L, round_up)
            amount1 = UniswapV3Math.get_amount1_delta(sqrtPA, sqrtP, L, round_up)
            return amount0, amount1

        else:
            amount1 = UniswapV3Math.get_amount1_delta(sqrtPA, sqrtPB, L, round_up)
            return 0, amount1

    # -----------------------------
    # Tick grid
    # -----------------------------

    @staticmethod
    def min_usable_tick(tick_spacing: int) -> int:
        return -(UniswapV3Math.MAX_TICK // tick_spacing) * tick_spacing

    @staticmethod
    def max_usable_tick(tick_spacing: int) -> int:
        return (UniswapV3Math.MAX_TICK // tick_spacing) * tick_spacing
