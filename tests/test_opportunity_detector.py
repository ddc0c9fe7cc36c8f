"""
Tests for launch detection from streamed token balances.
"""

from decimal import Decimal

import pytest

from launch_sniper.core.types import PoolKind, StreamTransaction, TokenBalance
from launch_sniper.data.opportunity_detector import OpportunityDetector
from launch_sniper.execution.constants import (
    PUMP_AMM_PROGRAM, PUMP_PROGRAM, RAYDIUM_CPMM_PROGRAM, WSOL_MINT
)

POOL = "WLHv2UAZm6z4KyaaELi5pjdbJh6RESMva1Rnn8pJVVh"
TOKEN = "TokenMint1111111111111111111111111111111111"
CREATOR = "Creator111111111111111111111111111111111111"
MINT_LOGS = ["Program log: Instruction: InitializeMint2", "Program log: Instruction: MintTo"]


def _balance(owner, mint, amount):
    return TokenBalance(owner=owner, mint=mint, ui_amount=Decimal(str(amount)))


def _tx(pre, post, logs=None):
    return StreamTransaction(
        signature="sig1",
        log_messages=MINT_LOGS if logs is None else logs,
        pre_token_balances=pre,
        post_token_balances=post,
        slot=42,
    )


@pytest.fixture
def detector(logger):
    return OpportunityDetector(logger, pool_authority=POOL, liquidity_threshold=0.1)


def test_sol_added_above_threshold_qualifies(detector):
    tx = _tx([_balance(POOL, WSOL_MINT, 5.0)], [_balance(POOL, WSOL_MINT, 5.2)])

    candidate = detector.evaluate(tx)

    assert candidate is not None
    assert candidate.sol_delta == Decimal("0.2")
    assert candidate.pool_kind == PoolKind.RAYDIUM_LAUNCHLAB
    assert candidate.context["slot"] == 42


def test_sol_added_equal_to_threshold_does_not_qualify(detector):
    tx = _tx([_balance(POOL, WSOL_MINT, 5.0)], [_balance(POOL, WSOL_MINT, 5.1)])

    assert detector.evaluate(tx) is None


def test_token_side_is_taken_from_non_authority_entries(detector):
    pre = [_balance(POOL, WSOL_MINT, 1.0), _balance(CREATOR, TOKEN, 0)]
    post = [_balance(POOL, WSOL_MINT, 3.5), _balance(CREATOR, TOKEN, 1_000_000)]

    candidate = detector.evaluate(_tx(pre, post))

    assert candidate.mint == TOKEN
    assert candidate.owner == CREATOR
    assert candidate.sol_delta == Decimal("2.5")
    assert candidate.token_delta == Decimal("1000000")
    assert candidate.context["creator"] == CREATOR


def test_no_mint_event_is_ignored(detector):
    tx = _tx([_balance(POOL, WSOL_MINT, 1.0)], [_balance(POOL, WSOL_MINT, 9.0)],
             logs=["Program log: Instruction: Transfer"])

    assert detector.evaluate(tx) is None


def test_missing_balances_are_ignored(detector):
    assert detector.evaluate(_tx([], [_balance(POOL, WSOL_MINT, 9.0)])) is None
    assert detector.evaluate(_tx([_balance(POOL, WSOL_MINT, 1.0)], [])) is None


def test_sol_leaving_the_pool_does_not_qualify(detector):
    tx = _tx([_balance(POOL, WSOL_MINT, 5.0)], [_balance(POOL, WSOL_MINT, 1.0)])

    assert detector.evaluate(tx) is None


@pytest.mark.parametrize("program_id, kind", [
    (PUMP_PROGRAM, PoolKind.PUMPFUN),
    (PUMP_AMM_PROGRAM, PoolKind.PUMPSWAP),
    (RAYDIUM_CPMM_PROGRAM, PoolKind.RAYDIUM_CPMM),
])
def test_classify_pool_from_invoked_program(program_id, kind):
    logs = [f"Program {program_id} invoke [1]", "Program log: Instruction: MintTo"]

    assert OpportunityDetector.classify_pool(logs) == kind


def test_disabled_pool_kind_is_skipped(logger):
    detector = OpportunityDetector(logger, pool_authority=POOL, enabled_pools=["pumpfun"])
    tx = _tx([_balance(POOL, WSOL_MINT, 5.0)], [_balance(POOL, WSOL_MINT, 7.0)])

    assert detector.evaluate(tx) is None
