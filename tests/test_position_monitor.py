"""
Tests for the position registry and the exit sweep.
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from launch_sniper.core.errors import DuplicatePositionError, TransientNetworkError
from launch_sniper.core.types import (
    ExecutionResult, ExecutionStatus, PoolKind, Position, PositionState, TradeAction
)
from launch_sniper.risk.position_monitor import PositionMonitor
from launch_sniper.risk.position_store import PositionStore
from launch_sniper.risk.risk_accountant import RiskAccountant
from launch_sniper.utils.config import RiskParameters, TradingConfig

NOW = 1_773_100_000.0
MINT_A = "MintA111111111111111111111111111111111111111"
MINT_B = "MintB111111111111111111111111111111111111111"


def _position(mint, entry_time=NOW - 10, entry_value=0.1, tokens=1_000):
    return Position(
        mint=mint,
        entry_time=entry_time,
        entry_value=entry_value,
        entry_price=entry_value / tokens,
        token_amount=tokens,
        pool_kind=PoolKind.RAYDIUM_LAUNCHLAB,
    )


def _sold(amount, sol):
    return ExecutionResult(
        status=ExecutionStatus.CONFIRMED,
        amount=amount,
        signature="sell-sig",
        in_amount=amount,
        out_amount=int(sol * 1_000_000_000),
    )


@pytest.fixture
def store(logger):
    return PositionStore(logger)


@pytest.fixture
def engine():
    engine = MagicMock()
    engine.quote_sell_value = AsyncMock(return_value=0.1)
    engine.execute = AsyncMock(return_value=_sold(1_000, 0.1))
    return engine


@pytest.fixture
def accountant(logger, notifier):
    return RiskAccountant(RiskParameters(), TradingConfig(), notifier, logger, clock=lambda: NOW)


@pytest.fixture
def monitor(store, engine, balances, accountant, notifier, logger):
    trading = TradingConfig(profit_target=2.0, stop_loss=0.5, max_hold_time=300)
    return PositionMonitor(store, engine, balances, accountant, notifier, logger, trading, clock=lambda: NOW)


def test_store_rejects_second_position_for_mint(store):
    store.open(_position(MINT_A))

    with pytest.raises(DuplicatePositionError):
        store.open(_position(MINT_A))
    assert store.count() == 1


def test_store_remove_closes_position(store):
    store.open(_position(MINT_A))

    removed = store.remove(MINT_A)

    assert removed.state == PositionState.CLOSED
    assert not store.has_position(MINT_A)
    assert store.remove(MINT_A) is None


@pytest.mark.asyncio
async def test_lock_is_dropped_after_last_holder(store):
    async with store.lock(MINT_A):
        assert MINT_A in store.position_locks
        store.open(_position(MINT_A))

    assert store.position_locks == {}
    assert store.has_position(MINT_A)


@pytest.mark.asyncio
async def test_waiter_shares_the_lock_until_it_is_done(store):
    release = asyncio.Event()
    order = []

    async def hold(name):
        async with store.lock(MINT_A):
            order.append(name)
            await release.wait()

    first = asyncio.create_task(hold("first"))
    second = asyncio.create_task(hold("second"))
    await asyncio.sleep(0)

    assert order == ["first"]
    lock = store.position_locks[MINT_A]
    assert lock.locked()

    release.set()
    await first
    assert store.position_locks[MINT_A] is lock
    await second

    assert order == ["first", "second"]
    assert store.position_locks == {}


@pytest.mark.asyncio
async def test_many_mints_leave_no_locks_behind(store):
    for i in range(200):
        with pytest.raises(TransientNetworkError):
            async with store.lock(f"Mint{i}"):
                raise TransientNetworkError("buy failed")

    assert store.count() == 0
    assert store.position_locks == {}


def test_request_close_marks_position(store):
    store.open(_position(MINT_A))

    assert store.request_close(MINT_A, "emergency")
    assert store.get(MINT_A).state == PositionState.CLOSING_REQUESTED
    assert not store.request_close(MINT_B, "emergency")


def test_profit_target_beats_max_hold_time(monitor):
    position = _position(MINT_A, entry_time=NOW - 600)
    position.update_price(0.25, 1_000)

    assert monitor.exit_reason(position, NOW) == "profit_target"


def test_stop_loss_beats_max_hold_time(monitor):
    position = _position(MINT_A, entry_time=NOW - 600)
    position.update_price(0.04, 1_000)

    assert monitor.exit_reason(position, NOW) == "stop_loss"


def test_hold_time_exit(monitor):
    assert monitor.exit_reason(_position(MINT_A, entry_time=NOW - 300), NOW) == "max_hold_time"
    assert monitor.exit_reason(_position(MINT_A, entry_time=NOW - 299), NOW) is None


@pytest.mark.asyncio
async def test_profit_target_sells_full_balance(monitor, store, engine, balances, accountant):
    store.open(_position(MINT_A))
    balances.tokens[MINT_A] = 1_000
    engine.quote_sell_value.return_value = 0.25
    engine.execute.return_value = _sold(1_000, 0.24)

    await monitor.check_positions()

    intent = engine.execute.await_args.args[0]
    assert intent.action == TradeAction.SELL
    assert intent.amount == 1_000
    assert not store.has_position(MINT_A)
    record = accountant.trade_history[-1]
    assert record.reason == "profit_target"
    assert record.pnl == pytest.approx(0.14)
    assert record.pnl_ratio == pytest.approx(2.4)


@pytest.mark.asyncio
async def test_sweep_tracks_partial_external_sell(monitor, store, engine, balances):
    store.open(_position(MINT_A))
    balances.tokens[MINT_A] = 400
    engine.quote_sell_value.return_value = 0.12

    await monitor.check_positions()

    position = store.get(MINT_A)
    assert position.token_amount == 400
    assert position.current_value == pytest.approx(0.12)
    assert position.current_price == pytest.approx(0.12 / 400)
    engine.quote_sell_value.assert_awaited_with(MINT_A, 400, PoolKind.RAYDIUM_LAUNCHLAB)
    engine.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_zero_balance_removes_without_selling(monitor, store, engine, accountant):
    store.open(_position(MINT_A))

    await monitor.check_positions()

    assert not store.has_position(MINT_A)
    engine.execute.assert_not_awaited()
    assert accountant.trade_history == []


@pytest.mark.asyncio
async def test_failures_are_isolated_per_position(monitor, store, engine, balances, notifier):
    store.open(_position(MINT_A, entry_time=NOW - 600))
    store.open(_position(MINT_B, entry_time=NOW - 600))
    balances.tokens[MINT_A] = 1_000
    balances.tokens[MINT_B] = 1_000

    async def quote(mint, amount, pool_kind):
        if mint == MINT_A:
            raise TransientNetworkError("quote service down")
        return 0.1

    engine.quote_sell_value.side_effect = quote

    await monitor.check_positions()

    assert store.has_position(MINT_A)
    assert store.get(MINT_A).state == PositionState.OPEN
    assert not store.has_position(MINT_B)
    assert "error" in notifier.types()


@pytest.mark.asyncio
async def test_failed_sell_keeps_position(monitor, store, engine, balances, notifier):
    store.open(_position(MINT_A, entry_time=NOW - 600))
    balances.tokens[MINT_A] = 1_000
    engine.execute.side_effect = TransientNetworkError("all attempts failed")

    await monitor.check_positions()

    assert store.has_position(MINT_A)
    assert notifier.types() == ["error"]


@pytest.mark.asyncio
async def test_stop_result_removes_without_record(monitor, store, engine, balances, accountant, notifier):
    store.open(_position(MINT_A, entry_time=NOW - 600))
    balances.tokens[MINT_A] = 1_000
    engine.execute.return_value = ExecutionResult.stop(1_000, [])

    await monitor.check_positions()

    assert not store.has_position(MINT_A)
    assert accountant.trade_history == []
    assert notifier.types() == ["info"]
    assert notifier.sent[0][2]["details"]["reason"] == "nothing_to_sell"


@pytest.mark.asyncio
async def test_requested_close_uses_stored_reason(monitor, store, balances, accountant):
    store.open(_position(MINT_A))
    balances.tokens[MINT_A] = 1_000
    store.request_close(MINT_A, "emergency")

    await monitor.check_positions()

    assert not store.has_position(MINT_A)
    assert accountant.trade_history[-1].reason == "emergency"


@pytest.mark.asyncio
async def test_close_all_sells_everything(monitor, store, balances, accountant):
    for mint in (MINT_A, MINT_B):
        store.open(_position(mint))
        balances.tokens[mint] = 1_000

    await monitor.close_all("shutdown")

    assert store.count() == 0
    assert [r.reason for r in accountant.trade_history] == ["shutdown", "shutdown"]
