from datetime import datetime, timezone
from typing import Any, Dict, Optional

from launch_sniper.utils.logger import TradingLogger

class Notifier:
    """Outbound notification interface the sniper core calls at lifecycle points.

    Delivery (Telegram, Discord, email) lives outside the core: a transport
    subclasses this and overrides ``deliver``.
    """

    async def deliver(self, message: str, type: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    async def send_notification(self, message: str, type: str = "info", data: Optional[Dict[str, Any]] = None) -> None:
        await self.deliver(message, type, data or {})

    async def notify_trade_execution(self, trade_type: str, token_mint: str, amount: float, price: float, tx_hash: str):
        await self.send_notification(f"{trade_type.upper()} executed for {token_mint}", "trade", {
            "trade_type": trade_type,
            "token_mint": token_mint,
            "amount": amount,
            "price": price,
            "tx_hash": tx_hash,
            "timestamp": _now(),
        })

    async def notify_profit_target(self, token_mint: str, profit_ratio: float, amount: float):
        await self.send_notification(f"Profit target reached for {token_mint}: {profit_ratio:.2f}x", "profit", {
            "token_mint": token_mint,
            "profit_ratio": profit_ratio,
            "amount": amount,
            "timestamp": _now(),
        })

    async def notify_stop_loss(self, token_mint: str, loss_ratio: float, amount: float):
        await self.send_notification(f"Stop loss triggered for {token_mint}: {loss_ratio:.2f}x", "loss", {
            "token_mint": token_mint,
            "loss_ratio": loss_ratio,
            "amount": amount,
            "timestamp": _now(),
        })

    async def notify_position_update(self, action: str, mint: str, details: Dict[str, Any]):
        await self.send_notification(f"Position {action}: {mint}", "info", {
            "action": action,
            "mint": mint,
            "details": details,
            "timestamp": _now(),
        })

    async def notify_error(self, error: BaseException, context: str = ""):
        await self.send_notification(f"Error in {context}: {error}", "error", {
            "error": repr(error),
            "context": context,
            "timestamp": _now(),
        })

    async def notify_bot_status(self, status: str, details: Optional[Dict[str, Any]] = None):
        await self.send_notification(f"Bot Status: {status}", "info", {
            "status": status,
            "details": details or {},
            "timestamp": _now(),
        })

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()

class LogNotifier(Notifier):
    """Writes notifications to the bot log"""

    LEVELS = {"error": "error", "warning": "warning", "loss": "warning"}

    def __init__(self, logger: TradingLogger):
        self.logger = logger

    async def deliver(self, message: str, type: str, data: Dict[str, Any]) -> None:
        log = getattr(self.logger, self.LEVELS.get(type, "info"))
        log(f"[{type.upper()}] {message}")
        self.logger.debug(f"Notification data: {data}")
