import asyncio
import time
from datetime import date, datetime, timedelta
from typing import Callable, Dict, List, Optional, Any

from launch_sniper.core.types import DailyStats, RiskLevel, RiskSnapshot, TradeRecord
from launch_sniper.notifications.notifier import Notifier
from launch_sniper.risk.trade_journal import TradeJournal
from launch_sniper.utils.config import RiskParameters, TradingConfig
from launch_sniper.utils.logger import TradingLogger

LOSS_WARNING_FRACTION = 0.8

class RiskAccountant:
    """Keeps the daily PnL counters, the trade history and the risk level.

    A trade counts toward the calendar day of its own timestamp, so a trade
    stamped 23:59:59 stays in that day's stats even when the midnight rollover
    runs before it is recorded.
    """

    def __init__(self,
                 risk_params: RiskParameters,
                 trading: TradingConfig,
                 notifier: Notifier,
                 logger: TradingLogger,
                 journal: Optional[TradeJournal] = None,
                 clock: Callable[[], float] = time.time):
        self.risk_params = risk_params
        self.trading = trading
        self.notifier = notifier
        self.logger = logger
        self.journal = journal
        self.clock = clock

        now = self.clock()
        self.daily_stats = self._new_stats(now)
        self.history: Dict[date, DailyStats] = {}
        self.trade_history: List[TradeRecord] = []
        self.last_trade_time: float = 0.0

    @staticmethod
    def _day_of(timestamp: float) -> date:
        return datetime.fromtimestamp(timestamp).date()

    def _new_stats(self, timestamp: float) -> DailyStats:
        return DailyStats(day=self._day_of(timestamp), start_time=datetime.fromtimestamp(timestamp))

    def _roll_to(self, timestamp: float) -> Optional[DailyStats]:
        """Archive the current day if ``timestamp`` falls on a later one"""
        if self._day_of(timestamp) <= self.daily_stats.day:
            return None
        previous = self.daily_stats
        self.history[previous.day] = previous
        self.daily_stats = self._new_stats(timestamp)
        self.logger.info("Daily stats reset", day=previous.day, trades=previous.total_trades,
                         net_pnl=round(previous.net_pnl, 4))
        return previous

    def _stats_for(self, timestamp: float) -> DailyStats:
        """Stats of the day ``timestamp`` falls on. Later days must be rolled to first"""
        day = self._day_of(timestamp)
        if day == self.daily_stats.day:
            return self.daily_stats
        if day not in self.history:
            self.history[day] = DailyStats(day=day, start_time=datetime.combine(day, datetime.min.time()))
        return self.history[day]

    async def roll_over(self, now: Optional[float] = None) -> Optional[DailyStats]:
        """Close the trading day if midnight has passed"""
        previous = self._roll_to(self.clock() if now is None else now)
        if previous is not None:
            await self.notifier.send_notification(
                f"Daily trading session ended. Net PnL: {previous.net_pnl:.4f} SOL",
                "info",
                {"previous_stats": self._stats_dict(previous)}
            )
        return previous

    async def run_daily_rollover(self, is_running: Callable[[], bool]):
        """Sleep until each local midnight and roll the stats over"""
        while is_running():
            now = datetime.fromtimestamp(self.clock())
            midnight = datetime.combine(now.date() + timedelta(days=1), datetime.min.time())
            await asyncio.sleep(max((midnight - now).total_seconds(), 0) + 0.001)
            if not is_running():
                break
            await self.roll_over()

    def _append(self, record: TradeRecord):
        self.trade_history.append(record)
        if self.journal is not None:
            try:
                self.journal.append(record)
            except OSError as e:
                self.logger.error(f"Failed to write trade journal: {str(e)}")
        self.logger.debug("Trade recorded", id=record.id, type=record.type, amount=record.amount)

    async def record_buy(self, mint: str, amount: float, price: float, signature: str,
                         timestamp: Optional[float] = None) -> TradeRecord:
        timestamp = self.clock() if timestamp is None else timestamp
        self.last_trade_time = max(self.last_trade_time, timestamp)
        record = TradeRecord(
            id=f"{mint}-buy-{int(timestamp * 1000)}",
            type="buy",
            mint=mint,
            amount=amount,
            price=price,
            signature=signature,
            timestamp=timestamp,
        )
        self._append(record)
        return record

    async def record_sell(self,
                          mint: str,
                          entry_value: float,
                          exit_value: float,
                          amount: float,
                          price: float,
                          signature: str,
                          reason: str,
                          timestamp: Optional[float] = None) -> TradeRecord:
        timestamp = self.clock() if timestamp is None else timestamp
        self.last_trade_time = max(self.last_trade_time, timestamp)

        pnl = exit_value - entry_value
        pnl_ratio = exit_value / entry_value if entry_value else 0.0

        await self.roll_over(timestamp)
        stats = self._stats_for(timestamp)
        stats.apply(pnl, pnl_ratio > 1)
        self.logger.debug("Daily stats updated", day=stats.day, total_trades=stats.total_trades,
                          net_pnl=f"{stats.net_pnl:.4f}")

        record = TradeRecord(
            id=f"{mint}-sell-{int(timestamp * 1000)}",
            type="sell",
            mint=mint,
            amount=amount,
            price=price,
            signature=signature,
            timestamp=timestamp,
            pnl=pnl,
            pnl_ratio=pnl_ratio,
            reason=reason,
        )
        self._append(record)
        self.logger.info(f"Position closed: {mint}", pnl=f"{pnl:.4f}", pnl_ratio=f"{pnl_ratio:.2f}", reason=reason)

        if pnl_ratio >= self.trading.profit_target:
            await self.notifier.notify_profit_target(mint, pnl_ratio, amount)
        elif pnl_ratio <= self.trading.stop_loss:
            await self.notifier.notify_stop_loss(mint, pnl_ratio, amount)
        else:
            await self.notifier.notify_position_update("closed", mint, {
                "pnl": pnl,
                "pnl_ratio": round(pnl_ratio, 2),
                "reason": reason,
            })

        if stats.net_pnl <= -self.risk_params.max_daily_loss * LOSS_WARNING_FRACTION:
            await self.notifier.send_notification(
                f"Daily loss limit approaching: {stats.net_pnl:.4f} SOL",
                "warning",
                {"daily_stats": self._stats_dict(stats)}
            )
        return record

    def snapshot(self, active_position_count: int, active_position_keys: frozenset) -> RiskSnapshot:
        return RiskSnapshot(
            daily_stats=self.daily_stats,
            active_position_count=active_position_count,
            last_trade_time=self.last_trade_time,
            active_position_keys=active_position_keys,
        )

    def _stats_dict(self, stats: DailyStats) -> Dict[str, Any]:
        return {
            "day": stats.day.isoformat(),
            "total_trades": stats.total_trades,
            "profitable_trades": stats.profitable_trades,
            "losing_trades": stats.losing_trades,
            "total_profit": stats.total_profit,
            "total_loss": stats.total_loss,
            "net_pnl": stats.net_pnl,
            "start_time": stats.start_time.isoformat(),
        }

    def performance_summary(self) -> Dict[str, Any]:
        """Closed-trade performance from the journal, across every session it holds"""
        if self.journal is None:
            return {}
        try:
            return self.journal.summarize()
        except (OSError, ValueError) as e:
            self.logger.error(f"Failed to read trade journal: {str(e)}")
            return {}

    def get_daily_stats(self) -> Dict[str, Any]:
        stats = self.daily_stats
        result = self._stats_dict(stats)
        result.update({
            "uptime": self.clock() - stats.start_time.timestamp(),
            "win_rate": round(stats.win_rate, 2),
            "average_profit": stats.total_profit / stats.profitable_trades if stats.profitable_trades else 0.0,
            "average_loss": stats.total_loss / stats.losing_trades if stats.losing_trades else 0.0,
        })
        return result

    def calculate_risk_level(self, active_positions: int) -> RiskLevel:
        net_pnl = self.daily_stats.net_pnl
        max_daily_loss = self.risk_params.max_daily_loss
        risk_score = 0

        # Daily loss proximity
        if net_pnl <= -max_daily_loss * 0.9:
            risk_score += 30
        elif net_pnl <= -max_daily_loss * 0.7:
            risk_score += 20
        elif net_pnl <= -max_daily_loss * 0.5:
            risk_score += 10

        # Position concentration
        if active_positions >= self.trading.max_positions * 0.8:
            risk_score += 20

        # Win rate
        win_rate = self.daily_stats.win_rate
        if win_rate < 30:
            risk_score += 25
        elif win_rate < 50:
            risk_score += 15

        if risk_score >= 60:
            return RiskLevel.HIGH
        if risk_score >= 30:
            return RiskLevel.MEDIUM
        return RiskLevel.LOW

    def recommendations(self, active_positions: int, open_pnl: float) -> List[str]:
        recommendations = []
        if self.daily_stats.net_pnl <= -self.risk_params.max_daily_loss * LOSS_WARNING_FRACTION:
            recommendations.append("Consider reducing position sizes or stopping trading for the day")
        if active_positions >= self.trading.max_positions * 0.8:
            recommendations.append("Approaching maximum position limit - consider closing some positions")
        if self.daily_stats.win_rate < 40:
            recommendations.append("Low win rate - review trading strategy and risk parameters")
        if open_pnl < 0:
            recommendations.append("Overall portfolio in loss - consider implementing stricter stop losses")
        return recommendations
