"""
Error conditions raised by the liquidity manager.

Each error keeps the offending values as attributes so callers can tell
causes apart without parsing messages.
"""
from typing import Optional


class LiquidityManagerError(Exception):
    """Base class for all liquidity manager failures."""


# -----------------------------
# Input validation
# -----------------------------

class InputValidationError(LiquidityManagerError, ValueError):
    """Rejected before any external call."""


class InvalidSlippage(InputValidationError):
    def __init__(self, slippage: int):
        self.slippage = slippage
        super().__init__(f"Slippage {slippage} outside [0, 100]")


class AmountBelowMinimum(InputValidationError):
    def __init__(self, token_index: int, amount: int, minimum: int):
        self.token_index = token_index
        self.amount = amount
        self.minimum = minimum
        super().__init__(f"amount{token_index} {amount} is below minimum {minimum}")


class InvalidWidth(InputValidationError):
    def __init__(self, width: int, min_width: int, max_width: int):
        self.width = width
        self.min_width = min_width
        self.max_width = max_width
        super().__init__(f"Width {width} outside [{min_width}, {max_width}]")


# -----------------------------
# Range geometry
# -----------------------------

class InvalidTickRange(LiquidityManagerError, ValueError):
    def __init__(self, tick_lower: int, tick_upper: int, current_tick: Optional[int] = None):
        self.tick_lower = tick_lower
        self.tick_upper = tick_upper
        self.current_tick = current_tick
        if current_tick is None:
            message = f"Invalid tick range: lower {tick_lower} >= upper {tick_upper}"
        else:
            message = f"Tick range [{tick_lower}, {tick_upper}] does not contain current tick {current_tick}"
        super().__init__(message)


# -----------------------------
# Authorization
# -----------------------------

class NotPositionOwner(LiquidityManagerError, PermissionError):
    def __init__(self, position_id: int, caller: str, owner: str):
        self.position_id = position_id
        self.caller = caller
        self.owner = owner
        super().__init__(f"{caller} is not the owner of position {position_id} (owner: {owner})")


# -----------------------------
# External calls
# -----------------------------

class TransferFailed(LiquidityManagerError):
    def __init__(self, token: str, sender: str, recipient: str, amount: int):
        self.token = token
        self.sender = sender
        self.recipient = recipient
        self.amount = amount
        super().__init__(f"Transfer of {amount} {token} from {sender} to {recipient} failed")


class ApprovalFailed(LiquidityManagerError):
    def __init__(self, token: str, spender: str, amount: int):
        self.token = token
        self.spender = spender
        self.amount = amount
        super().__init__(f"Approval of {amount} {token} for {spender} failed")


class CustodyCallFailed(LiquidityManagerError):
    def __init__(self, operation: str, reason: str, position_id: Optional[int] = None):
        self.operation = operation
        self.reason = reason
        self.position_id = position_id
        target = f" (position {position_id})" if position_id is not None else ""
        super().__init__(f"Custody call {operation}{target} failed: {reason}")


class ReentrantCall(LiquidityManagerError):
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Reentrant call to {operation} rejected")
