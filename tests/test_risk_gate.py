"""
Tests for the entry admission check.
"""

from datetime import date, datetime

import pytest

from launch_sniper.core.types import DailyStats, RiskSnapshot
from launch_sniper.risk.risk_gate import RiskGate
from launch_sniper.utils.config import RiskParameters

NOW = 1_000_000.0
MINT = "TokenMint1111111111111111111111111111111111"


def _snapshot(net_pnl=0.0, active=0, last_trade_time=0.0, keys=()):
    stats = DailyStats(day=date(2026, 3, 10), start_time=datetime(2026, 3, 10))
    stats.net_pnl = net_pnl
    return RiskSnapshot(
        daily_stats=stats,
        active_position_count=active,
        last_trade_time=last_trade_time,
        active_position_keys=frozenset(keys),
    )


@pytest.fixture
def gate():
    return RiskGate(RiskParameters(max_daily_loss=1.0, max_single_loss=0.5, trade_cooldown=5.0), max_positions=3)


def test_clean_snapshot_is_allowed(gate):
    decision = gate.evaluate(_snapshot(), 0.1, MINT, NOW)

    assert decision.allowed
    assert decision.reasons == ()


def test_daily_loss_limit_blocks(gate):
    decision = gate.evaluate(_snapshot(net_pnl=-1.0), 0.1, MINT, NOW)

    assert not decision.allowed
    assert decision.reasons[0].startswith("Daily loss limit reached")


def test_every_violation_is_reported(gate):
    snapshot = _snapshot(net_pnl=-2.0, active=3, last_trade_time=NOW - 1.5, keys=[MINT])

    decision = gate.evaluate(snapshot, 0.6, MINT, NOW)

    assert not decision.allowed
    assert len(decision.reasons) == 5
    assert "Trade amount 0.6 SOL exceeds single trade limit 0.5 SOL" in decision.reasons
    assert "Maximum positions limit reached: 3/3" in decision.reasons
    assert "Trade cooldown active: 4s remaining" in decision.reasons
    assert f"Token {MINT} already has an active position" in decision.reasons


def test_cooldown_expires(gate):
    assert gate.evaluate(_snapshot(last_trade_time=NOW - 5.0), 0.1, MINT, NOW).allowed


def test_evaluation_is_idempotent(gate):
    snapshot = _snapshot(net_pnl=-0.3, active=2, last_trade_time=NOW - 2, keys=["other"])

    first = gate.evaluate(snapshot, 0.1, MINT, NOW)
    second = gate.evaluate(snapshot, 0.1, MINT, NOW)

    assert first == second
