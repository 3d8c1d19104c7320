"""
Shared data models for the concentrated-liquidity position manager.

These models describe the values exchanged between the lifecycle manager
and its collaborators (pool, position custody service, assets), plus the
results handed back to callers.
"""
from typing import List, Tuple
from pydantic import BaseModel, Field, model_validator


class TickRange(BaseModel):
    """A tick-aligned price range."""
    tick_lower: int = Field(..., description="Lower tick bound")
    tick_upper: int = Field(..., description="Upper tick bound")

    @model_validator(mode='after')
    def validate_tick_range(self) -> 'TickRange':
        """Ensure tick_upper > tick_lower."""
        if self.tick_upper <= self.tick_lower:
            raise ValueError("tick_upper must be greater than tick_lower")
        return self

    def as_tuple(self) -> Tuple[int, int]:
        return self.tick_lower, self.tick_upper


class PoolState(BaseModel):
    """Current price state of a pool (slot0)."""
    sqrt_price_x96: int = Field(..., gt=0, description="Current sqrt price, Q64.96")
    tick: int = Field(..., description="Current tick")


class PositionInfo(BaseModel):
    """Position record as tracked by the custody service."""
    position_id: int = Field(..., ge=0, description="Position token id")
    token0: str = Field(..., description="Address of token0")
    token1: str = Field(..., description="Address of token1")
    fee: int = Field(..., ge=0, description="Pool fee tier")
    tick_lower: int = Field(..., description="Lower tick bound")
    tick_upper: int = Field(..., description="Upper tick bound")
    liquidity: int = Field(0, ge=0, description="Position liquidity")
    tokens_owed0: int = Field(0, ge=0, description="Collectable token0")
    tokens_owed1: int = Field(0, ge=0, description="Collectable token1")


class DepositRequest(BaseModel):
    """Transient deposit input."""
    amount0_desired: int = Field(..., description="Desired amount of token0 in wei")
    amount1_desired: int = Field(..., description="Desired amount of token1 in wei")
    width: int = Field(..., description="Range width in basis points")
    slippage: int = Field(..., description="Slippage tolerance in percent")


# -----------------------------
# Custody service call parameters
# -----------------------------

class MintParams(BaseModel):
    token0: str
    token1: str
    fee: int = Field(..., ge=0)
    tick_lower: int
    tick_upper: int
    amount0_desired: int = Field(..., ge=0)
    amount1_desired: int = Field(..., ge=0)
    amount0_min: int = Field(..., ge=0)
    amount1_min: int = Field(..., ge=0)
    recipient: str
    deadline: int = Field(..., ge=0, description="Unix timestamp after which the call is rejected")


class IncreaseLiquidityParams(BaseModel):
    position_id: int = Field(..., ge=0)
    amount0_desired: int = Field(..., ge=0)
    amount1_desired: int = Field(..., ge=0)
    amount0_min: int = Field(..., ge=0)
    amount1_min: int = Field(..., ge=0)
    deadline: int = Field(..., ge=0)


class DecreaseLiquidityParams(BaseModel):
    position_id: int = Field(..., ge=0)
    liquidity: int = Field(..., ge=0)
    amount0_min: int = Field(0, ge=0)
    amount1_min: int = Field(0, ge=0)
    deadline: int = Field(..., ge=0)


class CollectParams(BaseModel):
    position_id: int = Field(..., ge=0)
    recipient: str
    amount0_max: int = Field(..., ge=0)
    amount1_max: int = Field(..., ge=0)


class MintResult(BaseModel):
    position_id: int = Field(..., ge=0)
    liquidity: int = Field(..., ge=0)
    amount0: int = Field(..., ge=0)
    amount1: int = Field(..., ge=0)


class LiquidityChange(BaseModel):
    liquidity: int = Field(..., ge=0)
    amount0: int = Field(..., ge=0)
    amount1: int = Field(..., ge=0)


# -----------------------------
# Lifecycle results
# -----------------------------

class RefundFailure(BaseModel):
    """A leftover refund the asset refused to deliver."""
    token: str = Field(..., description="Address of the asset")
    recipient: str = Field(..., description="Intended refund recipient")
    amount: int = Field(..., ge=0, description="Amount left with the manager")


class ProvideResult(BaseModel):
    position_id: int = Field(..., description="Id of the minted position")
    liquidity: int = Field(..., description="Liquidity of the new position")
    amount0: int = Field(..., description="Token0 actually deposited")
    amount1: int = Field(..., description="Token1 actually deposited")
    tick_range: TickRange = Field(..., description="Range the position was opened on")
    refund_failures: List[RefundFailure] = Field(default_factory=list)


class IncreaseResult(BaseModel):
    liquidity: int = Field(..., description="Liquidity added")
    amount0: int = Field(..., description="Token0 actually deposited")
    amount1: int = Field(..., description="Token1 actually deposited")
    refund_failures: List[RefundFailure] = Field(default_factory=list)


class WithdrawResult(BaseModel):
    amount0: int = Field(..., description="Token0 sent to the owner")
    amount1: int = Field(..., description="Token1 sent to the owner")


class CollectResult(BaseModel):
    amount0: int = Field(..., description="Token0 fees sent to the owner")
    amount1: int = Field(..., description="Token1 fees sent to the owner")
