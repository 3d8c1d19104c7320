"""
Manager-wide reentrancy guard.
"""
import threading
from contextlib import contextmanager
from typing import Iterator

from liqmanager.errors import ReentrantCall


class ReentrancyGuard:
    """
    Held/not-held flag shared by every mutating entry point of a manager.

    Acquisition never waits: if the flag is already held the call is
    rejected with ReentrantCall.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

    @property
    def held(self) -> bool:
        return self._lock.locked()

    @contextmanager
    def enter(self, operation: str) -> Iterator[None]:
        if not self._lock.acquire(blocking=False):
            raise ReentrantCall(operation)
        try:
            yield
        finally:
            self._lock.release()
