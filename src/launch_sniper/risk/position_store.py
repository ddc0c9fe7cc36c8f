from asyncio import Lock
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from launch_sniper.core.errors import DuplicatePositionError
from launch_sniper.core.types import Position, PositionState
from launch_sniper.utils.logger import TradingLogger

class PositionStore:
    """Registry of open positions keyed by mint.

    Writers for one mint (the buy path creating it, the monitor selling it)
    hold ``async with lock(mint)`` for the whole read-decide-write sequence.
    """

    def __init__(self, logger: TradingLogger):
        self.logger = logger
        self.positions: Dict[str, Position] = {}
        self.position_locks: Dict[str, Lock] = {}
        self._lock_users: Dict[str, int] = {}

    @asynccontextmanager
    async def lock(self, mint: str):
        """Hold the mint's lock. The lock is dropped once no holder or waiter is left"""
        lock = self.position_locks.setdefault(mint, Lock())
        self._lock_users[mint] = self._lock_users.get(mint, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[mint] -= 1
            if not self._lock_users[mint]:
                del self._lock_users[mint]
                del self.position_locks[mint]

    def open(self, position: Position) -> Position:
        if position.mint in self.positions:
            raise DuplicatePositionError(f"Token {position.mint} already has an active position")
        position.state = PositionState.OPEN
        self.positions[position.mint] = position
        self.logger.info(f"Position opened: {position.mint}", entry_value=position.entry_value,
                         token_amount=position.token_amount, entry_price=position.entry_price)
        return position

    def remove(self, mint: str, state: PositionState = PositionState.CLOSED) -> Optional[Position]:
        position = self.positions.pop(mint, None)
        if position is not None:
            position.state = state
        return position

    def get(self, mint: str) -> Optional[Position]:
        return self.positions.get(mint)

    def has_position(self, mint: str) -> bool:
        return mint in self.positions

    def update_price(self, mint: str, current_value: float, token_amount: int) -> Optional[Position]:
        position = self.positions.get(mint)
        if position is not None:
            position.update_price(current_value, token_amount)
        return position

    def request_close(self, mint: str, reason: str) -> bool:
        """Mark a position for asynchronous teardown by the monitor"""
        position = self.positions.get(mint)
        if position is None:
            return False
        position.state = PositionState.CLOSING_REQUESTED
        position.close_reason = reason
        return True

    def snapshot(self) -> List[Position]:
        return list(self.positions.values())

    def keys(self) -> frozenset:
        return frozenset(self.positions)

    def count(self) -> int:
        return len(self.positions)
