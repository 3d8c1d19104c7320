"""
Collaborator interfaces consumed by the liquidity manager.

The manager never implements pool pricing, position bookkeeping or token
accounting itself; it talks to these three collaborators. Every call that
acts on behalf of an account takes that account explicitly as `sender`.
"""
from abc import ABC, abstractmethod
from typing import Tuple

from protocol.models import (
    PoolState,
    PositionInfo,
    MintParams,
    MintResult,
    IncreaseLiquidityParams,
    LiquidityChange,
    DecreaseLiquidityParams,
    CollectParams,
)


class Pool(ABC):
    """Concentrated-liquidity pool (read side only)."""

    address: str

    @abstractmethod
    async def token0(self) -> str:
        pass

    @abstractmethod
    async def token1(self) -> str:
        pass

    @abstractmethod
    async def fee(self) -> int:
        pass

    @abstractmethod
    async def tick_spacing(self) -> int:
        pass

    @abstractmethod
    async def slot0(self) -> PoolState:
        """Current sqrt price and tick."""
        pass


class PositionCustody(ABC):
    """
    Position custody service.

    Mints, tracks and mutates position tokens. It is the only source of
    truth for position ownership.
    """

    address: str

    @abstractmethod
    async def mint(self, sender: str, params: MintParams) -> MintResult:
        pass

    @abstractmethod
    async def increase_liquidity(self, sender: str, params: IncreaseLiquidityParams) -> LiquidityChange:
        pass

    @abstractmethod
    async def decrease_liquidity(self, sender: str, params: DecreaseLiquidityParams) -> Tuple[int, int]:
        pass

    @abstractmethod
    async def collect(self, sender: str, params: CollectParams) -> Tuple[int, int]:
        pass

    @abstractmethod
    async def positions(self, position_id: int) -> PositionInfo:
        pass

    @abstractmethod
    async def owner_of(self, position_id: int) -> str:
        pass


class Asset(ABC):
    """
    Fungible asset transfer primitive.

    transfer/transfer_from/approve report failure by returning False; callers
    must branch on the result instead of relying on an exception.
    """

    address: str

    @abstractmethod
    async def transfer(self, sender: str, to: str, amount: int) -> bool:
        pass

    @abstractmethod
    async def transfer_from(self, sender: str, owner: str, to: str, amount: int) -> bool:
        pass

    @abstractmethod
    async def approve(self, sender: str, spender: str, amount: int) -> bool:
        pass

    @abstractmethod
    async def balance_of(self, account: str) -> int:
        pass
