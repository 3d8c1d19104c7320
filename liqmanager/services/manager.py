"""
Position lifecycle manager.

Opens, extends, closes and harvests concentrated-liquidity positions on
behalf of callers. Funds only pass through the manager: they are pulled
from the caller, forwarded to the custody service, and whatever the custody
service did not use is refunded in the same call.
"""
import asyncio
import logging
import time
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from protocol import (
    Asset,
    Pool,
    PositionCustody,
    PositionInfo,
    DepositRequest,
    MintParams,
    IncreaseLiquidityParams,
    DecreaseLiquidityParams,
    CollectParams,
    RefundFailure,
    ProvideResult,
    IncreaseResult,
    WithdrawResult,
    CollectResult,
)
from liqmanager.errors import (
    LiquidityManagerError,
    InvalidSlippage,
    AmountBelowMinimum,
    InvalidWidth,
    NotPositionOwner,
    TransferFailed,
    ApprovalFailed,
    CustodyCallFailed,
)
from liqmanager.guard import ReentrancyGuard
from liqmanager.liquidity import calculate_liquidity
from liqmanager.models import ManagerConfig
from liqmanager.ranges import calculate_tick_range
from liqmanager.utils.math import UniswapV3Math

logger = logging.getLogger(__name__)

T = TypeVar("T")


def same_address(a: str, b: str) -> bool:
    return a.lower() == b.lower()


class LiquidityManager:
    """
    Lifecycle manager for custody-service positions.

    Every mutating entry point holds a single manager-wide reentrancy guard
    for its whole duration. Ownership is never cached: each call that touches
    an existing position asks the custody service who owns it.
    """

    def __init__(
        self,
        address: str,
        custody: PositionCustody,
        asset_for: Callable[[str], Asset],
        config: Optional[ManagerConfig] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the manager.

        Args:
            address: Account the manager acts as towards assets and custody
            custody: Position custody service
            asset_for: Resolves a token address to its Asset
            config: Width bounds, minimum amount and deadline window
            clock: Source of the current unix time for call deadlines
        """
        self.address = address
        self.custody = custody
        self.asset_for = asset_for
        self.config = config or ManagerConfig()
        self._clock = clock
        self._guard = ReentrancyGuard()

    # -----------------------------
    # Queries
    # -----------------------------

    @staticmethod
    def calculate_liquidity(
        amount0: int,
        amount1: int,
        sqrt_price_x96: int,
        tick_lower: int,
        tick_upper: int,
    ) -> int:
        """Pre-estimate the liquidity a deposit would produce on a range."""
        return calculate_liquidity(amount0, amount1, sqrt_price_x96, tick_lower, tick_upper)

    async def get_position(self, position_id: int) -> PositionInfo:
        return await self._call_custody("positions", self.custody.positions(position_id), position_id)

    # -----------------------------
    # Lifecycle operations
    # -----------------------------

    async def provide_liquidity(
        self,
        caller: str,
        pool: Pool,
        amount0_desired: int,
        amount1_desired: int,
        width: int,
        slippage: int,
    ) -> ProvideResult:
        """
        Open a new position around the current pool price.

        The position is minted directly to the caller. Each asset's minimum
        is amount_desired * slippage / 100.

        Args:
            caller: Account depositing and receiving the position
            pool: Pool to provide liquidity on
            amount0_desired: Token0 the caller is willing to deposit
            amount1_desired: Token1 the caller is willing to deposit
            width: Half-width of the range in basis points
            slippage: Slippage tolerance in percent (0-100)

        Returns:
            ProvideResult with the position id, liquidity, used amounts,
            range and any refund that could not be delivered

        Raises:
            InvalidSlippage, AmountBelowMinimum, InvalidWidth: Bad input
            InvalidTickRange: Width incompatible with the pool's spacing
            TransferFailed, ApprovalFailed, CustodyCallFailed: External failure
            ReentrantCall: Manager already busy
        """
        with self._guard.enter("provide_liquidity"):
            request = DepositRequest(
                amount0_desired=amount0_desired,
                amount1_desired=amount1_desired,
                width=width,
                slippage=slippage,
            )
            self._validate_deposit(request)
            self._validate_width(request.width)

            token0, token1, fee, tick_spacing, state = await asyncio.gather(
                pool.token0(),
                pool.token1(),
                pool.fee(),
                pool.tick_spacing(),
                pool.slot0(),
            )
            tick_range = calculate_tick_range(state.tick, tick_spacing, request.width)

            params = MintParams(
                token0=token0,
                token1=token1,
                fee=fee,
                tick_lower=tick_range.tick_lower,
                tick_upper=tick_range.tick_upper,
                amount0_desired=request.amount0_desired,
                amount1_desired=request.amount1_desired,
                amount0_min=request.amount0_desired * request.slippage // 100,
                amount1_min=request.amount1_desired * request.slippage // 100,
                recipient=caller,
                deadline=self._deadline(),
            )

            minted, refund_failures = await self._deposit(
                caller,
                (self.asset_for(token0), self.asset_for(token1)),
                (request.amount0_desired, request.amount1_desired),
                lambda: self._call_custody("mint", self.custody.mint(self.address, params)),
            )

            logger.info(
                f"Created position {minted.position_id} for {caller} on pool {pool.address}: "
                f"ticks [{tick_range.tick_lower}, {tick_range.tick_upper}], "
                f"liquidity {minted.liquidity}, amount0 {minted.amount0}, amount1 {minted.amount1}"
            )

            return ProvideResult(
                position_id=minted.position_id,
                liquidity=minted.liquidity,
                amount0=minted.amount0,
                amount1=minted.amount1,
                tick_range=tick_range,
                refund_failures=refund_failures,
            )

    async def increase_liquidity(
        self,
        caller: str,
        position_id: int,
        amount0_desired: int,
        amount1_desired: int,
        slippage: int,
    ) -> IncreaseResult:
        """
        Add liquidity to a position the caller owns.

        Unlike provide_liquidity, slippage here is the acceptable shortfall:
        each asset's minimum is amount_desired * (100 - slippage) / 100.
        """
        with self._guard.enter("increase_liquidity"):
            request = DepositRequest(
                amount0_desired=amount0_desired,
                amount1_desired=amount1_desired,
                width=0,
                slippage=slippage,
            )
            self._validate_deposit(request)
            await self._require_owner(position_id, caller)

            position = await self._call_custody("positions", self.custody.positions(position_id), position_id)

            params = IncreaseLiquidityParams(
                position_id=position_id,
                amount0_desired=request.amount0_desired,
                amount1_desired=request.amount1_desired,
                amount0_min=request.amount0_desired * (100 - request.slippage) // 100,
                amount1_min=request.amount1_desired * (100 - request.slippage) // 100,
                deadline=self._deadline(),
            )

            added, refund_failures = await self._deposit(
                caller,
                (self.asset_for(position.token0), self.asset_for(position.token1)),
                (request.amount0_desired, request.amount1_desired),
                lambda: self._call_custody(
                    "increase_liquidity",
                    self.custody.increase_liquidity(self.address, params),
                    position_id,
                ),
            )

            logger.info(
                f"Increased position {position_id} for {caller}: liquidity +{added.liquidity}, "
                f"amount0 {added.amount0}, amount1 {added.amount1}"
            )

            return IncreaseResult(
                liquidity=added.liquidity,
                amount0=added.amount0,
                amount1=added.amount1,
                refund_failures=refund_failures,
            )

    async def withdraw_liquidity(self, caller: str, position_id: int) -> WithdrawResult:
        """
        Remove all liquidity from a position and send everything owed to
        the caller.

        If the collect step fails after liquidity was removed, the removed
        amounts stay owed to the position at the custody service and can be
        recovered with collect_fees.
        """
        with self._guard.enter("withdraw_liquidity"):
            await self._require_owner(position_id, caller)

            position = await self._call_custody("positions", self.custody.positions(position_id), position_id)

            if position.liquidity > 0:
                params = DecreaseLiquidityParams(
                    position_id=position_id,
                    liquidity=position.liquidity,
                    amount0_min=0,
                    amount1_min=0,
                    deadline=self._deadline(),
                )
                await self._call_custody(
                    "decrease_liquidity",
                    self.custody.decrease_liquidity(self.address, params),
                    position_id,
                )

            try:
                amount0, amount1 = await self._collect_all(caller, position_id)
            except CustodyCallFailed:
                logger.error(
                    f"Liquidity of position {position_id} was removed but collect failed; "
                    f"the balance remains collectable by its owner"
                )
                raise

            logger.info(
                f"Withdrew position {position_id} for {caller}: amount0 {amount0}, amount1 {amount1}"
            )
            return WithdrawResult(amount0=amount0, amount1=amount1)

    async def collect_fees(self, caller: str, position_id: int) -> CollectResult:
        """Collect everything owed to a position without touching its liquidity."""
        with self._guard.enter("collect_fees"):
            await self._require_owner(position_id, caller)

            amount0, amount1 = await self._collect_all(caller, position_id)

            logger.info(
                f"Collected fees of position {position_id} for {caller}: "
                f"amount0 {amount0}, amount1 {amount1}"
            )
            return CollectResult(amount0=amount0, amount1=amount1)

    # -----------------------------
    # Validation
    # -----------------------------

    def _validate_deposit(self, request: DepositRequest) -> None:
        if request.slippage < 0 or request.slippage > 100:
            raise InvalidSlippage(request.slippage)

        amounts = (request.amount0_desired, request.amount1_desired)
        for index, amount in enumerate(amounts):
            if amount < self.config.min_amount:
                raise AmountBelowMinimum(index, amount, self.config.min_amount)

    def _validate_width(self, width: int) -> None:
        if width < self.config.min_width or width > self.config.max_width:
            raise InvalidWidth(width, self.config.min_width, self.config.max_width)

    async def _require_owner(self, position_id: int, caller: str) -> None:
        owner = await self._call_custody("owner_of", self.custody.owner_of(position_id), position_id)
        if not same_address(owner, caller):
            logger.warning(f"Rejected {caller} acting on position {position_id} owned by {owner}")
            raise NotPositionOwner(position_id, caller, owner)

    # -----------------------------
    # External calls
    # -----------------------------

    def _deadline(self) -> int:
        return int(self._clock()) + self.config.deadline_seconds

    async def _call_custody(self, operation: str, call: Awaitable[T], position_id: Optional[int] = None) -> T:
        try:
            return await call
        except LiquidityManagerError:
            raise
        except Exception as e:
            logger.error(f"Custody call {operation} failed: {e}")
            raise CustodyCallFailed(operation, str(e), position_id) from e

    async def _collect_all(self, caller: str, position_id: int) -> Tuple[int, int]:
        params = CollectParams(
            position_id=position_id,
            recipient=caller,
            amount0_max=UniswapV3Math.MAX_UINT128,
            amount1_max=UniswapV3Math.MAX_UINT128,
        )
        return await self._call_custody("collect", self.custody.collect(self.address, params), position_id)

    async def _deposit(
        self,
        caller: str,
        assets: Sequence[Asset],
        amounts: Sequence[int],
        submit: Callable[[], Awaitable[T]],
    ) -> Tuple[T, List[RefundFailure]]:
        """
        Pull amounts from caller, approve the custody service, submit, and
        refund what the custody service did not use.

        If anything fails before the submission succeeded, pulled funds are
        sent back to the caller before the error propagates.
        """
        pulled: List[Tuple[Asset, int]] = []
        try:
            for asset, amount in zip(assets, amounts):
                if not await asset.transfer_from(self.address, caller, self.address, amount):
                    raise TransferFailed(asset.address, caller, self.address, amount)
                pulled.append((asset, amount))

            for asset, amount in zip(assets, amounts):
                await self._approve_exact(asset, amount)

            result = await submit()
        except BaseException:
            # includes CancelledError
            await self._unwind(caller, pulled)
            raise

        used = (result.amount0, result.amount1)
        refund_failures = []
        for asset, amount, spent in zip(assets, amounts, used):
            failure = await self._refund(caller, asset, amount - spent)
            if failure is not None:
                refund_failures.append(failure)

        return result, refund_failures

    async def _approve_exact(self, asset: Asset, amount: int) -> None:
        # reset to zero first; some assets reject changing a non-zero allowance
        if not await asset.approve(self.address, self.custody.address, 0):
            raise ApprovalFailed(asset.address, self.custody.address, 0)
        if not await asset.approve(self.address, self.custody.address, amount):
            raise ApprovalFailed(asset.address, self.custody.address, amount)

    async def _refund(self, caller: str, asset: Asset, amount: int) -> Optional[RefundFailure]:
        if amount <= 0:
            return None
        try:
            if await asset.transfer(self.address, caller, amount):
                return None
        except Exception:
            logger.exception(f"Refund of {amount} {asset.address} to {caller} raised; amount left with manager")
            return RefundFailure(token=asset.address, recipient=caller, amount=amount)

        logger.warning(f"Refund of {amount} {asset.address} to {caller} failed; amount left with manager")
        return RefundFailure(token=asset.address, recipient=caller, amount=amount)

    async def _unwind(self, caller: str, pulled: List[Tuple[Asset, int]]) -> None:
        """Best-effort return of pulled funds after a failed deposit."""
        for asset, amount in pulled:
            try:
                await asset.approve(self.address, self.custody.address, 0)
                if not await asset.transfer(self.address, caller, amount):
                    logger.error(f"Could not return {amount} {asset.address} to {caller}")
            except Exception:
                logger.exception(f"Could not return {amount} {asset.address} to {caller}")
