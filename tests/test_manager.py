"""
Tests for the position lifecycle manager, run against the in-memory
collaborators.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock

from liqmanager.errors import (
    AmountBelowMinimum,
    CustodyCallFailed,
    InvalidSlippage,
    InvalidWidth,
    NotPositionOwner,
    ReentrantCall,
    TransferFailed,
)
from liqmanager.liquidity import calculate_liquidity
from liqmanager.models import ManagerConfig
from liqmanager.services.manager import LiquidityManager
from liqmanager.services.simulator import (
    InMemoryAsset,
    InMemoryPool,
    InMemoryPositionCustody,
)

# Constants for testing - Use valid hex addresses
MANAGER = "0x1234567890123456789012345678901234567890"
CUSTODY = "0x2234567890123456789012345678901234567890"
POOL = "0x3234567890123456789012345678901234567890"
TOKEN0 = "0x4234567890123456789012345678901234567890"
TOKEN1 = "0x5234567890123456789012345678901234567890"
ALICE = "0x6234567890123456789012345678901234567890"
BOB = "0x7234567890123456789012345678901234567890"

NOW = 1_700_000_000
BALANCE = 10 * 10**18
ONE = 10**18


class RefusingRefundAsset(InMemoryAsset):
    """Refuses every transfer sent by the manager."""

    async def transfer(self, sender, to, amount):
        if sender.lower() == MANAGER.lower():
            return False
        return await super().transfer(sender, to, amount)


class RevertingRefundAsset(InMemoryAsset):
    """Raises on every transfer sent by the manager, like a reverting token."""

    async def transfer(self, sender, to, amount):
        if sender.lower() == MANAGER.lower():
            raise RuntimeError("execution reverted: blacklisted")
        return await super().transfer(sender, to, amount)


class SlowPullAsset(InMemoryAsset):
    """Waits before every transfer_from."""

    async def transfer_from(self, sender, owner, to, amount):
        await asyncio.sleep(0.05)
        return await super().transfer_from(sender, owner, to, amount)


class ReentrantAsset(InMemoryAsset):
    """Calls back into the manager while its transfer_from is running."""

    manager = None
    reentry_error = None

    async def transfer_from(self, sender, owner, to, amount):
        if self.manager is not None:
            try:
                await self.manager.collect_fees(owner, 1)
            except ReentrantCall as e:
                self.reentry_error = e
                raise
        return await super().transfer_from(sender, owner, to, amount)


def fund(asset: InMemoryAsset, owner: str, spender: str, amount: int = BALANCE) -> None:
    asset.mint(owner, amount)
    asset.allowances[(owner.lower(), spender.lower())] = amount


def make_env(asset0: InMemoryAsset, asset1: InMemoryAsset, manager_clock=lambda: NOW):
    assets = {TOKEN0: asset0, TOKEN1: asset1}
    pool = InMemoryPool(POOL, TOKEN0, TOKEN1, fee=3000, tick_spacing=60)
    custody = InMemoryPositionCustody(CUSTODY, [pool], assets, clock=lambda: NOW)
    manager = LiquidityManager(
        MANAGER,
        custody,
        assets.__getitem__,
        config=ManagerConfig(min_width=10, max_width=10000, deadline_seconds=300),
        clock=manager_clock,
    )
    for asset in assets.values():
        fund(asset, ALICE, MANAGER)
        fund(asset, BOB, MANAGER)
    return manager, pool, custody, assets


@pytest.fixture
def env():
    return make_env(InMemoryAsset(TOKEN0, "T0"), InMemoryAsset(TOKEN1, "T1"))


async def balances(assets, account):
    return (
        await assets[TOKEN0].balance_of(account),
        await assets[TOKEN1].balance_of(account),
    )


@pytest.mark.asyncio
async def test_provide_liquidity_success(env):
    manager, pool, custody, assets = env

    result = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 90)

    assert result.position_id == 1
    assert result.liquidity > 0
    assert result.tick_range.as_tuple() == (-540, 540)
    assert result.refund_failures == []
    assert 0 < result.amount0 <= ONE
    assert 0 < result.amount1 <= ONE

    # Position minted straight to the caller
    assert await custody.owner_of(result.position_id) == ALICE
    position = await manager.get_position(result.position_id)
    assert position.liquidity == result.liquidity
    assert (position.tick_lower, position.tick_upper) == (-540, 540)

    # Manager keeps nothing, caller pays exactly the used amounts
    assert await balances(assets, MANAGER) == (0, 0)
    assert await balances(assets, ALICE) == (BALANCE - result.amount0, BALANCE - result.amount1)


@pytest.mark.asyncio
async def test_provide_liquidity_liquidity_matches_query(env):
    manager, pool, custody, assets = env

    result = await manager.provide_liquidity(ALICE, pool, ONE, 2 * ONE, 500, 0)

    expected = LiquidityManager.calculate_liquidity(
        ONE, 2 * ONE, pool.sqrt_price_x96, result.tick_range.tick_lower, result.tick_range.tick_upper
    )
    assert result.liquidity == expected
    assert expected == calculate_liquidity(ONE, 2 * ONE, pool.sqrt_price_x96, -540, 540)


@pytest.mark.asyncio
@pytest.mark.parametrize("amount0,amount1,index", [(0, ONE, 0), (ONE, 0, 1)])
async def test_provide_rejects_zero_amount(env, amount0, amount1, index):
    manager, pool, custody, assets = env
    custody.mint = AsyncMock()

    with pytest.raises(AmountBelowMinimum) as exc_info:
        await manager.provide_liquidity(ALICE, pool, amount0, amount1, 500, 50)

    assert exc_info.value.token_index == index
    assert exc_info.value.amount == 0
    custody.mint.assert_not_called()
    assert await balances(assets, ALICE) == (BALANCE, BALANCE)


@pytest.mark.asyncio
@pytest.mark.parametrize("slippage", [-1, 101])
async def test_provide_rejects_slippage_out_of_bounds(env, slippage):
    manager, pool, custody, assets = env

    with pytest.raises(InvalidSlippage) as exc_info:
        await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, slippage)

    assert exc_info.value.slippage == slippage
    assert await balances(assets, ALICE) == (BALANCE, BALANCE)


@pytest.mark.asyncio
@pytest.mark.parametrize("width", [0, 9, 10001])
async def test_provide_rejects_width_out_of_bounds(env, width):
    manager, pool, custody, assets = env

    with pytest.raises(InvalidWidth) as exc_info:
        await manager.provide_liquidity(ALICE, pool, ONE, ONE, width, 50)

    assert exc_info.value.width == width
    assert (exc_info.value.min_width, exc_info.value.max_width) == (10, 10000)
    assert await balances(assets, ALICE) == (BALANCE, BALANCE)
    assert await balances(assets, MANAGER) == (0, 0)


@pytest.mark.asyncio
async def test_provide_slippage_floor_failure_returns_funds(env):
    manager, pool, custody, assets = env

    # slippage 100 makes the floor the full desired amount; token1 can't all be used
    with pytest.raises(CustodyCallFailed) as exc_info:
        await manager.provide_liquidity(ALICE, pool, ONE, 3 * ONE, 500, 100)

    assert exc_info.value.operation == "mint"
    assert "slippage" in exc_info.value.reason
    assert await balances(assets, ALICE) == (BALANCE, BALANCE)
    assert await balances(assets, MANAGER) == (0, 0)
    assert assets[TOKEN0].allowance(MANAGER, CUSTODY) == 0
    assert assets[TOKEN1].allowance(MANAGER, CUSTODY) == 0


@pytest.mark.asyncio
async def test_provide_refunds_unused_amount(env):
    manager, pool, custody, assets = env

    result = await manager.provide_liquidity(ALICE, pool, ONE, 3 * ONE, 500, 0)

    assert result.amount1 < 3 * ONE
    assert await balances(assets, MANAGER) == (0, 0)
    assert await assets[TOKEN1].balance_of(ALICE) == BALANCE - result.amount1


@pytest.mark.asyncio
async def test_provide_with_zero_first_approval_assets():
    manager, pool, custody, assets = make_env(
        InMemoryAsset(TOKEN0, "T0", zero_first_approval=True),
        InMemoryAsset(TOKEN1, "T1", zero_first_approval=True),
    )

    first = await manager.provide_liquidity(ALICE, pool, ONE, 3 * ONE, 500, 0)
    # leftover allowance from the first deposit must not block the second
    assert assets[TOKEN1].allowance(MANAGER, CUSTODY) > 0
    second = await manager.provide_liquidity(ALICE, pool, ONE, 3 * ONE, 500, 0)

    assert (first.position_id, second.position_id) == (1, 2)
    assert await balances(assets, MANAGER) == (0, 0)


@pytest.mark.asyncio
async def test_provide_records_refund_failure():
    manager, pool, custody, assets = make_env(
        InMemoryAsset(TOKEN0, "T0"),
        RefusingRefundAsset(TOKEN1, "T1"),
    )

    result = await manager.provide_liquidity(ALICE, pool, ONE, 3 * ONE, 500, 0)

    # Position still created
    assert await custody.owner_of(result.position_id) == ALICE
    assert len(result.refund_failures) == 1
    failure = result.refund_failures[0]
    assert failure.token == TOKEN1
    assert failure.recipient == ALICE
    assert failure.amount == 3 * ONE - result.amount1
    assert await assets[TOKEN1].balance_of(MANAGER) == failure.amount


@pytest.mark.asyncio
async def test_provide_second_pull_failure_returns_first_asset(env):
    manager, pool, custody, assets = env
    assets[TOKEN1].allowances[(ALICE.lower(), MANAGER.lower())] = 0

    with pytest.raises(TransferFailed) as exc_info:
        await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)

    assert exc_info.value.token == TOKEN1
    assert exc_info.value.amount == ONE
    assert await balances(assets, ALICE) == (BALANCE, BALANCE)
    assert await balances(assets, MANAGER) == (0, 0)
    assert custody._positions == {}


@pytest.mark.asyncio
async def test_provide_expired_deadline_rejected(env):
    manager, pool, custody, assets = env
    manager._clock = lambda: NOW - 301

    with pytest.raises(CustodyCallFailed, match="too old"):
        await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)

    assert await balances(assets, ALICE) == (BALANCE, BALANCE)


@pytest.mark.asyncio
async def test_increase_liquidity_success(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)

    result = await manager.increase_liquidity(ALICE, provided.position_id, ONE, ONE, 10)

    assert result.liquidity > 0
    position = await custody.positions(provided.position_id)
    assert position.liquidity == provided.liquidity + result.liquidity
    assert await balances(assets, MANAGER) == (0, 0)
    assert await balances(assets, ALICE) == (
        BALANCE - provided.amount0 - result.amount0,
        BALANCE - provided.amount1 - result.amount1,
    )


@pytest.mark.asyncio
async def test_increase_liquidity_slippage_is_shortfall(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    before = await balances(assets, ALICE)

    # slippage 0 -> floor is the full desired amount, unreachable with 3:1 amounts
    with pytest.raises(CustodyCallFailed, match="slippage"):
        await manager.increase_liquidity(ALICE, provided.position_id, ONE, 3 * ONE, 0)
    assert await balances(assets, ALICE) == before

    # slippage 100 -> floor is zero
    result = await manager.increase_liquidity(ALICE, provided.position_id, ONE, 3 * ONE, 100)
    assert result.liquidity > 0


@pytest.mark.asyncio
async def test_increase_liquidity_rejects_non_owner(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    bob_before = await balances(assets, BOB)

    with pytest.raises(NotPositionOwner) as exc_info:
        await manager.increase_liquidity(BOB, provided.position_id, ONE, ONE, 10)

    assert exc_info.value.caller == BOB
    assert exc_info.value.owner == ALICE
    assert await balances(assets, BOB) == bob_before


@pytest.mark.asyncio
async def test_increase_liquidity_rejects_bad_slippage_before_owner_lookup(env):
    manager, pool, custody, assets = env
    custody.owner_of = AsyncMock(return_value=ALICE)

    with pytest.raises(InvalidSlippage):
        await manager.increase_liquidity(ALICE, 1, ONE, ONE, 150)

    custody.owner_of.assert_not_called()


@pytest.mark.asyncio
async def test_withdraw_liquidity_returns_funds(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    custody.approve(ALICE, MANAGER, provided.position_id)

    result = await manager.withdraw_liquidity(ALICE, provided.position_id)

    # Deposits round up, withdrawals round down
    assert provided.amount0 - 1 <= result.amount0 <= provided.amount0
    assert provided.amount1 - 1 <= result.amount1 <= provided.amount1

    position = await custody.positions(provided.position_id)
    assert position.liquidity == 0
    assert (position.tokens_owed0, position.tokens_owed1) == (0, 0)
    # Position id persists until burned
    assert await custody.owner_of(provided.position_id) == ALICE

    alice0, alice1 = await balances(assets, ALICE)
    assert BALANCE - 1 <= alice0 <= BALANCE
    assert BALANCE - 1 <= alice1 <= BALANCE


@pytest.mark.asyncio
async def test_withdraw_then_collect_returns_nothing(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    custody.approve(ALICE, MANAGER, provided.position_id)
    custody.accrue_fees(provided.position_id, 100, 200)

    await manager.withdraw_liquidity(ALICE, provided.position_id)
    fees = await manager.collect_fees(ALICE, provided.position_id)

    assert (fees.amount0, fees.amount1) == (0, 0)


@pytest.mark.asyncio
async def test_withdraw_rejects_non_owner(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    custody.set_approval_for_all(ALICE, MANAGER, True)
    before = await custody.positions(provided.position_id)

    with pytest.raises(NotPositionOwner) as exc_info:
        await manager.withdraw_liquidity(BOB, provided.position_id)

    assert exc_info.value.caller == BOB
    assert exc_info.value.owner == ALICE
    assert exc_info.value.position_id == provided.position_id
    assert await custody.positions(provided.position_id) == before
    assert await balances(assets, BOB) == (BALANCE, BALANCE)


@pytest.mark.asyncio
async def test_withdraw_without_custody_approval_fails(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)

    with pytest.raises(CustodyCallFailed) as exc_info:
        await manager.withdraw_liquidity(ALICE, provided.position_id)

    assert exc_info.value.operation == "decrease_liquidity"
    position = await custody.positions(provided.position_id)
    assert position.liquidity == provided.liquidity


@pytest.mark.asyncio
async def test_withdraw_collect_failure_is_recoverable(env, monkeypatch):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    custody.approve(ALICE, MANAGER, provided.position_id)

    monkeypatch.setattr(custody, "collect", AsyncMock(side_effect=RuntimeError("RPC Error")))
    with pytest.raises(CustodyCallFailed) as exc_info:
        await manager.withdraw_liquidity(ALICE, provided.position_id)
    assert exc_info.value.operation == "collect"

    position = await custody.positions(provided.position_id)
    assert position.liquidity == 0
    assert position.tokens_owed0 > 0
    assert position.tokens_owed1 > 0

    monkeypatch.undo()
    recovered = await manager.collect_fees(ALICE, provided.position_id)
    assert (recovered.amount0, recovered.amount1) == (position.tokens_owed0, position.tokens_owed1)


@pytest.mark.asyncio
async def test_withdraw_empty_position_only_collects(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    custody.approve(ALICE, MANAGER, provided.position_id)
    await manager.withdraw_liquidity(ALICE, provided.position_id)

    result = await manager.withdraw_liquidity(ALICE, provided.position_id)

    assert (result.amount0, result.amount1) == (0, 0)


@pytest.mark.asyncio
async def test_collect_fees(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    custody.approve(ALICE, MANAGER, provided.position_id)
    custody.accrue_fees(provided.position_id, 100, 200)
    before = await balances(assets, ALICE)

    result = await manager.collect_fees(ALICE, provided.position_id)

    assert (result.amount0, result.amount1) == (100, 200)
    assert await balances(assets, ALICE) == (before[0] + 100, before[1] + 200)
    position = await custody.positions(provided.position_id)
    assert position.liquidity == provided.liquidity


@pytest.mark.asyncio
async def test_ownership_is_looked_up_on_every_call(env):
    manager, pool, custody, assets = env
    provided = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    custody.transfer_from(ALICE, ALICE, BOB, provided.position_id)
    custody.approve(BOB, MANAGER, provided.position_id)
    custody.accrue_fees(provided.position_id, 10, 10)

    with pytest.raises(NotPositionOwner):
        await manager.collect_fees(ALICE, provided.position_id)

    result = await manager.collect_fees(BOB, provided.position_id)
    assert (result.amount0, result.amount1) == (10, 10)


@pytest.mark.asyncio
async def test_unknown_position_fails(env):
    manager, pool, custody, assets = env

    with pytest.raises(CustodyCallFailed) as exc_info:
        await manager.collect_fees(ALICE, 42)

    assert exc_info.value.operation == "owner_of"
    assert exc_info.value.position_id == 42


@pytest.mark.asyncio
async def test_reentrant_call_rejected():
    asset0 = ReentrantAsset(TOKEN0, "T0")
    manager, pool, custody, assets = make_env(asset0, InMemoryAsset(TOKEN1, "T1"))
    asset0.manager = manager

    with pytest.raises(ReentrantCall):
        await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)

    assert asset0.reentry_error is not None
    assert asset0.reentry_error.operation == "collect_fees"
    assert await balances(assets, ALICE) == (BALANCE, BALANCE)

    # Guard released on the error path
    asset0.manager = None
    result = await manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0)
    assert result.position_id == 1


@pytest.mark.asyncio
async def test_provide_refund_exception_recorded():
    manager, pool, custody, assets = make_env(
        RevertingRefundAsset(TOKEN0, "T0"),
        InMemoryAsset(TOKEN1, "T1"),
    )

    result = await manager.provide_liquidity(ALICE, pool, 3 * ONE, ONE, 500, 0)

    assert await custody.owner_of(result.position_id) == ALICE
    assert len(result.refund_failures) == 1
    failure = result.refund_failures[0]
    assert failure.token == TOKEN0
    assert failure.amount == 3 * ONE - result.amount0
    assert await assets[TOKEN0].balance_of(MANAGER) == failure.amount
    # token1 leftover still delivered
    assert await assets[TOKEN1].balance_of(MANAGER) == 0
    assert await assets[TOKEN1].balance_of(ALICE) == BALANCE - result.amount1


@pytest.mark.asyncio
async def test_provide_cancelled_during_pull_returns_funds():
    manager, pool, custody, assets = make_env(
        InMemoryAsset(TOKEN0, "T0"),
        SlowPullAsset(TOKEN1, "T1"),
    )

    task = asyncio.create_task(manager.provide_liquidity(ALICE, pool, ONE, ONE, 500, 0))
    await asyncio.sleep(0.01)
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task

    assert await balances(assets, MANAGER) == (0, 0)
    assert await balances(assets, ALICE) == (BALANCE, BALANCE)
    assert assets[TOKEN0].allowance(MANAGER, CUSTODY) == 0
    assert not manager._guard.held
