import math

from launch_sniper.core.types import RiskDecision, RiskSnapshot
from launch_sniper.utils.config import RiskParameters

class RiskGate:
    """Admission check for new entries.

    Every rule is evaluated so that a denial lists all violations. The gate
    holds no state of its own and never raises, so evaluating the same
    snapshot twice gives the same decision.
    """

    def __init__(self, risk_params: RiskParameters, max_positions: int):
        self.risk_params = risk_params
        self.max_positions = max_positions

    def evaluate(self, snapshot: RiskSnapshot, amount: float, mint: str, now: float) -> RiskDecision:
        reasons = []

        # Check daily loss limit
        net_pnl = snapshot.daily_stats.net_pnl
        if net_pnl <= -self.risk_params.max_daily_loss:
            reasons.append(f"Daily loss limit reached: {net_pnl:.4f} SOL")

        # Check single trade loss limit
        if amount > self.risk_params.max_single_loss:
            reasons.append(f"Trade amount {amount} SOL exceeds single trade limit "
                           f"{self.risk_params.max_single_loss} SOL")

        # Check position limit
        if snapshot.active_position_count >= self.max_positions:
            reasons.append(f"Maximum positions limit reached: "
                           f"{snapshot.active_position_count}/{self.max_positions}")

        # Check cooldown period
        elapsed = now - snapshot.last_trade_time
        if elapsed < self.risk_params.trade_cooldown:
            remaining = self.risk_params.trade_cooldown - elapsed
            reasons.append(f"Trade cooldown active: {math.ceil(remaining)}s remaining")

        # Check if token is already in active positions
        if mint in snapshot.active_position_keys:
            reasons.append(f"Token {mint} already has an active position")

        return RiskDecision(allowed=not reasons, reasons=tuple(reasons))
