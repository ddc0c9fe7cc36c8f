from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Any, List, Optional, Tuple

class PoolKind(str, Enum):
    PUMPFUN = "pumpfun"
    PUMPSWAP = "pumpswap"
    RAYDIUM_LAUNCHLAB = "raydium_launchlab"
    RAYDIUM_CPMM = "raydium_cpmm"

class TradeAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"

class PositionState(str, Enum):
    OPEN = "open"
    CLOSING_REQUESTED = "closing_requested"
    CLOSED = "closed"
    FAILED = "failed"

class ExitReason(str, Enum):
    PROFIT_TARGET = "profit_target"
    STOP_LOSS = "stop_loss"
    MAX_HOLD_TIME = "max_hold_time"
    EMERGENCY = "emergency"
    SHUTDOWN = "shutdown"

class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

class ExecutionStatus(str, Enum):
    CONFIRMED = "confirmed"
    STOP = "stop"

@dataclass
class TokenBalance:
    owner: str
    mint: str
    ui_amount: Decimal

@dataclass
class StreamTransaction:
    """The fields of a streamed envelope the detector reads"""
    signature: str
    log_messages: List[str]
    pre_token_balances: List[TokenBalance]
    post_token_balances: List[TokenBalance]
    slot: Optional[int] = None

@dataclass
class LaunchCandidate:
    signature: str
    mint: str
    owner: str
    pool_kind: PoolKind
    sol_delta: Decimal
    token_delta: Decimal
    context: Dict[str, Any] = field(default_factory=dict)

@dataclass
class Position:
    """Represents an open trading position"""
    mint: str
    entry_time: float
    entry_value: float          # SOL committed
    entry_price: float          # SOL per raw token unit
    token_amount: int           # Raw token units received
    pool_kind: PoolKind
    signature: str = ""
    context: Dict[str, Any] = field(default_factory=dict)
    current_price: float = 0.0
    current_value: float = 0.0
    pnl: float = 0.0
    pnl_ratio: float = 1.0
    state: PositionState = PositionState.OPEN
    close_reason: Optional[str] = None

    def __post_init__(self):
        if not self.current_price:
            self.current_price = self.entry_price
        if not self.current_value:
            self.current_value = self.entry_value

    def update_price(self, current_value: float, token_amount: int):
        """Revalue the position from the SOL its full balance would fetch"""
        self.token_amount = token_amount
        self.current_value = current_value
        self.current_price = current_value / token_amount if token_amount else 0.0
        self.pnl = current_value - self.entry_value
        self.pnl_ratio = current_value / self.entry_value if self.entry_value else 0.0

    def hold_time(self, now: float) -> float:
        return now - self.entry_time

    def as_dict(self, now: float) -> Dict[str, Any]:
        return {
            "mint": self.mint,
            "entry_time": self.entry_time,
            "entry_value": self.entry_value,
            "entry_price": self.entry_price,
            "token_amount": self.token_amount,
            "current_price": self.current_price,
            "current_value": self.current_value,
            "pnl": self.pnl,
            "pnl_ratio": self.pnl_ratio,
            "pool_kind": self.pool_kind.value,
            "state": self.state.value,
            "signature": self.signature,
            "hold_time": self.hold_time(now),
        }

@dataclass(frozen=True)
class TradeRecord:
    id: str
    type: str   # "buy" or "sell"
    mint: str
    amount: float
    price: float
    signature: str
    timestamp: float
    pnl: Optional[float] = None
    pnl_ratio: Optional[float] = None
    reason: Optional[str] = None

@dataclass
class DailyStats:
    day: date
    start_time: datetime
    total_trades: int = 0
    profitable_trades: int = 0
    losing_trades: int = 0
    total_profit: float = 0.0
    total_loss: float = 0.0
    net_pnl: float = 0.0

    @property
    def win_rate(self) -> float:
        """Percentage of profitable closes, 0 when nothing closed yet"""
        if self.total_trades == 0:
            return 0.0
        return self.profitable_trades / self.total_trades * 100

    def apply(self, pnl: float, profitable: bool):
        self.total_trades += 1
        if profitable:
            self.profitable_trades += 1
            self.total_profit += pnl
        else:
            self.losing_trades += 1
            self.total_loss += abs(pnl)
        self.net_pnl += pnl

@dataclass(frozen=True)
class RiskDecision:
    allowed: bool
    reasons: Tuple[str, ...] = ()

@dataclass(frozen=True)
class RiskSnapshot:
    """Shared risk counters read by the gate"""
    daily_stats: DailyStats
    active_position_count: int
    last_trade_time: float
    active_position_keys: frozenset

@dataclass
class TradeIntent:
    action: TradeAction
    mint: str
    amount: float   # SOL for BUY, raw token units for SELL
    pool_kind: PoolKind = PoolKind.RAYDIUM_LAUNCHLAB

@dataclass
class AttemptRecord:
    attempt: int
    route: str
    action: str
    mint: str
    amount: float
    success: bool
    signature: Optional[str] = None
    error: Optional[str] = None
    confirm_ms: Optional[float] = None

@dataclass
class ExecutionResult:
    status: ExecutionStatus
    amount: float
    signature: Optional[str] = None
    in_amount: int = 0
    out_amount: int = 0
    attempts: List[AttemptRecord] = field(default_factory=list)

    @property
    def stopped(self) -> bool:
        return self.status == ExecutionStatus.STOP

    @classmethod
    def stop(cls, amount: float, attempts: List[AttemptRecord]) -> "ExecutionResult":
        """Nothing to sell, the caller must not retry"""
        return cls(status=ExecutionStatus.STOP, amount=amount, attempts=attempts)
