"""
Concentrated-liquidity position manager.

Computes tick ranges and liquidity for Uniswap V3 style pools and drives
the provide / increase / withdraw / collect lifecycle of positions held by
a position custody service.
"""
from liqmanager.errors import (
    LiquidityManagerError,
    InvalidSlippage,
    AmountBelowMinimum,
    InvalidWidth,
    InvalidTickRange,
    NotPositionOwner,
    TransferFailed,
    ApprovalFailed,
    CustodyCallFailed,
    ReentrantCall,
)
from liqmanager.liquidity import calculate_liquidity, calculate_amounts
from liqmanager.models import ManagerConfig
from liqmanager.ranges import calculate_tick_range
from liqmanager.services.manager import LiquidityManager

__all__ = [
    "LiquidityManager",
    "ManagerConfig",
    "calculate_tick_range",
    "calculate_liquidity",
    "calculate_amounts",
    "LiquidityManagerError",
    "InvalidSlippage",
    "AmountBelowMinimum",
    "InvalidWidth",
    "InvalidTickRange",
    "NotPositionOwner",
    "TransferFailed",
    "ApprovalFailed",
    "CustodyCallFailed",
    "ReentrantCall",
]
