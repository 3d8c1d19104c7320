"""
In-memory collaborators for running the liquidity manager off-chain.

InMemoryAsset is an ERC20-style ledger, InMemoryPool a static price source
and InMemoryPositionCustody a position manager that follows the on-chain
NonfungiblePositionManager rules closely enough to exercise the lifecycle:
deadlines, slippage minimums, owner/operator authorization, tokens owed.
"""
import logging
import time
from collections import defaultdict
from typing import Callable, Dict, Iterable, Mapping, Optional, Set, Tuple

from protocol import (
    Asset,
    Pool,
    PositionCustody,
    PoolState,
    PositionInfo,
    MintParams,
    MintResult,
    IncreaseLiquidityParams,
    LiquidityChange,
    DecreaseLiquidityParams,
    CollectParams,
)
from liqmanager.liquidity import position_liquidity_and_used_amounts
from liqmanager.utils.math import UniswapV3Math

logger = logging.getLogger(__name__)


def _key(address: str) -> str:
    return address.lower()


class InMemoryAsset(Asset):
    """
    Token ledger with balances and allowances.

    Failures are reported by returning False. With zero_first_approval set,
    changing a non-zero allowance to another non-zero value is refused.
    """

    def __init__(self, address: str, symbol: str = "TKN", zero_first_approval: bool = False):
        self.address = address
        self.symbol = symbol
        self.zero_first_approval = zero_first_approval
        self.balances: Dict[str, int] = defaultdict(int)
        self.allowances: Dict[Tuple[str, str], int] = defaultdict(int)

    def mint(self, to: str, amount: int) -> None:
        self.balances[_key(to)] += amount

    def allowance(self, owner: str, spender: str) -> int:
        return self.allowances[(_key(owner), _key(spender))]

    async def balance_of(self, account: str) -> int:
        return self.balances[_key(account)]

    def _move(self, owner: str, to: str, amount: int) -> bool:
        if amount < 0 or self.balances[_key(owner)] < amount:
            return False
        self.balances[_key(owner)] -= amount
        self.balances[_key(to)] += amount
        return True

    async def transfer(self, sender: str, to: str, amount: int) -> bool:
        return self._move(sender, to, amount)

    async def transfer_from(self, sender: str, owner: str, to: str, amount: int) -> bool:
        allowed = self.allowance(owner, sender)
        if allowed < amount:
            return False
        if not self._move(owner, to, amount):
            return False
        self.allowances[(_key(owner), _key(sender))] = allowed - amount
        return True

    async def approve(self, sender: str, spender: str, amount: int) -> bool:
        if amount < 0:
            return False
        if self.zero_first_approval and amount != 0 and self.allowance(sender, spender) != 0:
            return False
        self.allowances[(_key(sender), _key(spender))] = amount
        return True


class InMemoryPool(Pool):
    """Pool with a settable price."""

    def __init__(
        self,
        address: str,
        token0: str,
        token1: str,
        fee: int = 3000,
        tick_spacing: int = 60,
        sqrt_price_x96: Optional[int] = None,
    ):
        self.address = address
        self._token0 = token0
        self._token1 = token1
        self._fee = fee
        self._tick_spacing = tick_spacing
        self.sqrt_price_x96 = sqrt_price_x96 or UniswapV3Math.Q96

    @property
    def tick(self) -> int:
        return UniswapV3Math.get_tick_at_sqrt_ratio(self.sqrt_price_x96)

    def set_tick(self, tick: int) -> None:
        self.sqrt_price_x96 = UniswapV3Math.get_sqrt_ratio_at_tick(tick)

    async def token0(self) -> str:
        return self._token0

    async def token1(self) -> str:
        return self._token1

    async def fee(self) -> int:
        return self._fee

    async def tick_spacing(self) -> int:
        return self._tick_spacing

    async def slot0(self) -> PoolState:
        return PoolState(sqrt_price_x96=self.sqrt_price_x96, tick=self.tick)


class InMemoryPositionCustody(PositionCustody):
    """
    Position manager holding deposited reserves at its own address.

    Positions are ERC721-like: one owner each, transferable, with a single
    approved account per position and per-owner operators.
    """

    def __init__(
        self,
        address: str,
        pools: Iterable[InMemoryPool],
        assets: Mapping[str, InMemoryAsset],
        clock: Callable[[], float] = time.time,
    ):
        self.address = address
        self._pools: Dict[Tuple[str, str, int], InMemoryPool] = {
            (_key(pool._token0), _key(pool._token1), pool._fee): pool for pool in pools
        }
        self._assets = {_key(addr): asset for addr, asset in assets.items()}
        self._clock = clock
        self._positions: Dict[int, PositionInfo] = {}
        self._owners: Dict[int, str] = {}
        self._approved: Dict[int, str] = {}
        self._operators: Set[Tuple[str, str]] = set()
        self._next_id = 1

    # -----------------------------
    # Ownership
    # -----------------------------

    def _require_exists(self, position_id: int) -> None:
        if position_id not in self._positions:
            raise ValueError(f"Invalid token ID {position_id}")

    def _is_authorized(self, sender: str, position_id: int) -> bool:
        owner = self._owners[position_id]
        return (
            _key(sender) == _key(owner)
            or _key(sender) == _key(self._approved.get(position_id, ""))
            or (_key(owner), _key(sender)) in self._operators
        )

    def _require_authorized(self, sender: str, position_id: int) -> None:
        self._require_exists(position_id)
        if not self._is_authorized(sender, position_id):
            raise PermissionError(f"{sender} is not approved for position {position_id}")

    async def owner_of(self, position_id: int) -> str:
        self._require_exists(position_id)
        return self._owners[position_id]

    def approve(self, sender: str, spender: str, position_id: int) -> None:
        self._require_exists(position_id)
        owner = self._owners[position_id]
        if _key(sender) != _key(owner) and (_key(owner), _key(sender)) not in self._operators:
            raise PermissionError(f"{sender} cannot approve position {position_id}")
        self._approved[position_id] = spender

    def set_approval_for_all(self, sender: str, operator: str, approved: bool) -> None:
        pair = (_key(sender), _key(operator))
        if approved:
            self._operators.add(pair)
        else:
            self._operators.discard(pair)

    def transfer_from(self, sender: str, owner: str, to: str, position_id: int) -> None:
        self._require_authorized(sender, position_id)
        if _key(self._owners[position_id]) != _key(owner):
            raise PermissionError(f"{owner} does not own position {position_id}")
        self._owners[position_id] = to
        self._approved.pop(position_id, None)

    def burn(self, sender: str, position_id: int) -> None:
        self._require_authorized(sender, position_id)
        position = self._positions[position_id]
        if position.liquidity or position.tokens_owed0 or position.tokens_owed1:
            raise ValueError("Not cleared")
        del self._positions[position_id]
        del self._owners[position_id]
        self._approved.pop(position_id, None)

    # -----------------------------
    # Liquidity
    # -----------------------------

    def _check_deadline(self, deadline: int) -> None:
        if self._clock() > deadline:
            raise ValueError("Transaction too old")

    def _pool_for(self, token0: str, token1: str, fee: int) -> InMemoryPool:
        pool = self._pools.get((_key(token0), _key(token1), fee))
        if pool is None:
            raise ValueError(f"No pool for {token0}/{token1} fee {fee}")
        return pool

    async def _pay(self, payer: str, token0: str, token1: str, amount0: int, amount1: int) -> None:
        asset0 = self._assets[_key(token0)]
        asset1 = self._assets[_key(token1)]
        if not await asset0.transfer_from(self.address, payer, self.address, amount0):
            raise ValueError("STF")
        if not await asset1.transfer_from(self.address, payer, self.address, amount1):
            await asset0.transfer(self.address, payer, amount0)
            raise ValueError("STF")

    async def _add_liquidity(
        self,
        sender: str,
        pool: InMemoryPool,
        tick_lower: int,
        tick_upper: int,
        amount0_desired: int,
        amount1_desired: int,
        amount0_min: int,
        amount1_min: int,
    ) -> Tuple[int, int, int]:
        liquidity, amount0, amount1 = position_liquidity_and_used_amounts(
            tick_lower,
            tick_upper,
            pool.sqrt_price_x96,
            amount0_desired,
            amount1_desired,
        )
        if liquidity == 0:
            raise ValueError("Zero liquidity")
        if amount0 < amount0_min or amount1 < amount1_min:
            raise ValueError("Price slippage check")

        await self._pay(sender, pool._token0, pool._token1, amount0, amount1)
        return liquidity, amount0, amount1

    async def mint(self, sender: str, params: MintParams) -> MintResult:
        self._check_deadline(params.deadline)
        pool = self._pool_for(params.token0, params.token1, params.fee)

        spacing = pool._tick_spacing
        if params.tick_lower >= params.tick_upper:
            raise ValueError("TLU")
        if params.tick_lower < UniswapV3Math.MIN_TICK or params.tick_upper > UniswapV3Math.MAX_TICK:
            raise ValueError("Tick out of bounds")
        if params.tick_lower % spacing or params.tick_upper % spacing:
            raise ValueError("Tick not aligned to spacing")

        liquidity, amount0, amount1 = await self._add_liquidity(
            sender,
            pool,
            params.tick_lower,
            params.tick_upper,
            params.amount0_desired,
            params.amount1_desired,
            params.amount0_min,
            params.amount1_min,
        )

        position_id = self._next_id
        self._next_id += 1
        self._positions[position_id] = PositionInfo(
            position_id=position_id,
            token0=params.token0,
            token1=params.token1,
            fee=params.fee,
            tick_lower=params.tick_lower,
            tick_upper=params.tick_upper,
            liquidity=liquidity,
        )
        self._owners[position_id] = params.recipient

        logger.debug(f"Minted position {position_id} to {params.recipient} with liquidity {liquidity}")
        return MintResult(position_id=position_id, liquidity=liquidity, amount0=amount0, amount1=amount1)

    async def increase_liquidity(self, sender: str, params: IncreaseLiquidityParams) -> LiquidityChange:
        self._check_deadline(params.deadline)
        self._require_exists(params.position_id)
        position = self._positions[params.position_id]
        pool = self._pool_for(position.token0, position.token1, position.fee)

        liquidity, amount0, amount1 = await self._add_liquidity(
            sender,
            pool,
            position.tick_lower,
            position.tick_upper,
            params.amount0_desired,
            params.amount1_desired,
            params.amount0_min,
            params.amount1_min,
        )
        position.liquidity += liquidity

        return LiquidityChange(liquidity=liquidity, amount0=amount0, amount1=amount1)

    async def decrease_liquidity(self, sender: str, params: DecreaseLiquidityParams) -> Tuple[int, int]:
        self._check_deadline(params.deadline)
        self._require_authorized(sender, params.position_id)
        position = self._positions[params.position_id]

        if params.liquidity == 0 or params.liquidity > position.liquidity:
            raise ValueError(f"Invalid liquidity {params.liquidity} (position has {position.liquidity})")

        pool = self._pool_for(position.token0, position.token1, position.fee)
        amount0, amount1 = UniswapV3Math.get_amounts_for_liquidity(
            pool.sqrt_price_x96,
            UniswapV3Math.get_sqrt_ratio_at_tick(position.tick_lower),
            UniswapV3Math.get_sqrt_ratio_at_tick(position.tick_upper),
            params.liquidity,
        )
        if amount0 < params.amount0_min or amount1 < params.amount1_min:
            raise ValueError("Price slippage check")

        position.liquidity -= params.liquidity
        position.tokens_owed0 += amount0
        position.tokens_owed1 += amount1
        return amount0, amount1

    async def collect(self, sender: str, params: CollectParams) -> Tuple[int, int]:
        if params.amount0_max == 0 and params.amount1_max == 0:
            raise ValueError("Nothing to collect")
        self._require_authorized(sender, params.position_id)
        position = self._positions[params.position_id]

        amount0 = min(position.tokens_owed0, params.amount0_max)
        amount1 = min(position.tokens_owed1, params.amount1_max)

        if amount0 and not await self._assets[_key(position.token0)].transfer(self.address, params.recipient, amount0):
            raise ValueError("ST")
        position.tokens_owed0 -= amount0

        if amount1 and not await self._assets[_key(position.token1)].transfer(self.address, params.recipient, amount1):
            raise ValueError("ST")
        position.tokens_owed1 -= amount1

        return amount0, amount1

    async def positions(self, position_id: int) -> PositionInfo:
        self._require_exists(position_id)
        return self._positions[position_id].model_copy()

    def accrue_fees(self, position_id: int, amount0: int, amount1: int) -> None:
        """Credit swap fees to a position (reserves are minted to the custody address)."""
        self._require_exists(position_id)
        position = self._positions[position_id]
        self._assets[_key(position.token0)].mint(self.address, amount0)
        self._assets[_key(position.token1)].mint(self.address, amount1)
        position.tokens_owed0 += amount0
        position.tokens_owed1 += amount1
