import asyncio
import time
from typing import Callable, Optional

from launch_sniper.core.types import ExitReason, Position, PositionState, TradeAction, TradeIntent
from launch_sniper.execution.constants import LAMPORTS_PER_SOL
from launch_sniper.execution.execution_engine import ExecutionEngine
from launch_sniper.notifications.notifier import Notifier
from launch_sniper.risk.position_store import PositionStore
from launch_sniper.risk.risk_accountant import RiskAccountant
from launch_sniper.utils.config import TradingConfig
from launch_sniper.utils.logger import TradingLogger

class PositionMonitor:
    """Sweeps open positions and sells the ones whose exit condition fired"""

    def __init__(self,
                 store: PositionStore,
                 engine: ExecutionEngine,
                 balances,
                 accountant: RiskAccountant,
                 notifier: Notifier,
                 logger: TradingLogger,
                 trading: TradingConfig,
                 clock: Callable[[], float] = time.time):
        self.store = store
        self.engine = engine
        self.balances = balances
        self.accountant = accountant
        self.notifier = notifier
        self.logger = logger
        self.trading = trading
        self.clock = clock

    def exit_reason(self, position: Position, now: float) -> Optional[str]:
        """First matching exit condition, in priority order"""
        if position.pnl_ratio >= self.trading.profit_target:
            return ExitReason.PROFIT_TARGET.value
        if position.pnl_ratio <= self.trading.stop_loss:
            return ExitReason.STOP_LOSS.value
        if position.hold_time(now) >= self.trading.max_hold_time:
            return ExitReason.MAX_HOLD_TIME.value
        if position.state == PositionState.CLOSING_REQUESTED:
            return position.close_reason or ExitReason.EMERGENCY.value
        return None

    async def run(self, is_running: Callable[[], bool]):
        while is_running():
            await self.check_positions()
            await asyncio.sleep(self.trading.monitor_interval)

    async def check_positions(self):
        """One sweep over every open position"""
        for position in self.store.snapshot():
            try:
                await self.check_position(position.mint)
            except Exception as e:
                self.logger.error(f"Error monitoring position {position.mint}: {str(e)}")
                await self.notifier.notify_error(e, f"position monitor {position.mint}")

    async def check_position(self, mint: str) -> Optional[str]:
        """Refresh one position and close it if an exit fired. Returns the exit reason"""
        async with self.store.lock(mint):
            position = self.store.get(mint)
            if position is None:
                return None

            balance = await self.balances.get_token_balance(mint)
            if balance <= 0:
                self.logger.warning(f"No balance left for {mint}, position closed externally")
                self.store.remove(mint)
                await self.notifier.notify_position_update("removed", mint, {"reason": "external_close"})
                return None

            current_value = await self.engine.quote_sell_value(mint, balance, position.pool_kind)
            self.store.update_price(mint, current_value, balance)
            self.logger.debug(f"Position {mint}", value=f"{current_value:.6f}",
                              pnl_ratio=f"{position.pnl_ratio:.2f}",
                              hold_time=f"{position.hold_time(self.clock()):.0f}s")

            reason = self.exit_reason(position, self.clock())
            if reason is None:
                return None
            self.logger.info(f"Exit condition met for {mint}", reason=reason, pnl_ratio=f"{position.pnl_ratio:.2f}")
            await self._sell(position, balance, reason)
            return reason

    async def close_position(self, mint: str, reason: str) -> bool:
        """Sell a position now, whatever its exit conditions say"""
        async with self.store.lock(mint):
            position = self.store.get(mint)
            if position is None:
                return False
            balance = await self.balances.get_token_balance(mint)
            if balance <= 0:
                self.logger.warning(f"No balance left for {mint}, nothing to close")
                self.store.remove(mint)
                await self.notifier.notify_position_update("removed", mint, {"reason": "external_close"})
                return False
            return await self._sell(position, balance, reason)

    async def close_all(self, reason: str = ExitReason.SHUTDOWN.value):
        for position in self.store.snapshot():
            try:
                await self.close_position(position.mint, reason)
            except Exception as e:
                self.logger.error(f"Failed to close position {position.mint}: {str(e)}")
                await self.notifier.notify_error(e, f"close position {position.mint}")

    async def _sell(self, position: Position, balance: int, reason: str) -> bool:
        mint = position.mint
        try:
            result = await self.engine.execute(TradeIntent(
                action=TradeAction.SELL,
                mint=mint,
                amount=balance,
                pool_kind=position.pool_kind,
            ))
        except Exception as e:
            self.logger.error(f"Sell failed for {mint}, keeping position: {str(e)}", reason=reason)
            await self.notifier.notify_error(e, f"sell {mint}")
            return False

        if result.stopped:
            self.logger.warning(f"Nothing left to sell for {mint}, removing position")
            self.store.remove(mint)
            await self.notifier.notify_position_update("removed", mint, {"reason": "nothing_to_sell"})
            return False

        exit_value = result.out_amount / LAMPORTS_PER_SOL
        price = exit_value / result.amount if result.amount else 0.0
        await self.accountant.record_sell(
            mint=mint,
            entry_value=position.entry_value,
            exit_value=exit_value,
            amount=result.amount,
            price=price,
            signature=result.signature,
            reason=reason,
        )
        self.store.remove(mint)
        await self.notifier.notify_trade_execution("sell", mint, exit_value, price, result.signature)
        return True
