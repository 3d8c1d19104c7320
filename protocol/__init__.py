"""
Package containing the shared data models and collaborator interfaces for
the concentrated-liquidity position manager.
"""

from protocol.models import (
    TickRange,
    PoolState,
    PositionInfo,
    DepositRequest,
    MintParams,
    IncreaseLiquidityParams,
    DecreaseLiquidityParams,
    CollectParams,
    MintResult,
    LiquidityChange,
    RefundFailure,
    ProvideResult,
    IncreaseResult,
    WithdrawResult,
    CollectResult,
)
from protocol.interfaces import Pool, PositionCustody, Asset

__all__ = [
    # Models
    "TickRange",
    "PoolState",
    "PositionInfo",
    "DepositRequest",
    "MintParams",
    "IncreaseLiquidityParams",
    "DecreaseLiquidityParams",
    "CollectParams",
    "MintResult",
    "LiquidityChange",
    "RefundFailure",
    "ProvideResult",
    "IncreaseResult",
    "WithdrawResult",
    "CollectResult",
    # Interfaces
    "Pool",
    "PositionCustody",
    "Asset",
]
