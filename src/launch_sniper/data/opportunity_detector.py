from decimal import Decimal
from typing import Iterable, List, Optional

from launch_sniper.core.types import LaunchCandidate, PoolKind, StreamTransaction, TokenBalance
from launch_sniper.execution.constants import (
    WSOL_MINT, PUMP_PROGRAM, PUMP_AMM_PROGRAM, RAYDIUM_CPMM_PROGRAM, RAYDIUM_LAUNCHLAB_AUTHORITY
)
from launch_sniper.utils.logger import TradingLogger

MINT_MARKER = "instruction: mintto"

# Checked in order, LaunchLab is the fallback since the feed is filtered on its authority
POOL_PROGRAMS = (
    (PUMP_PROGRAM, PoolKind.PUMPFUN),
    (PUMP_AMM_PROGRAM, PoolKind.PUMPSWAP),
    (RAYDIUM_CPMM_PROGRAM, PoolKind.RAYDIUM_CPMM),
)

class OpportunityDetector:
    """Turns a streamed transaction into a LaunchCandidate when new liquidity lands in a pool.

    The first stage is a substring scan of the log messages for a mint event,
    the second compares pre and post token balances around the pool authority.
    """

    def __init__(self,
                 logger: TradingLogger,
                 pool_authority: str = RAYDIUM_LAUNCHLAB_AUTHORITY,
                 liquidity_threshold: float = 0.1,
                 enabled_pools: Optional[Iterable[str]] = None):
        self.logger = logger
        self.pool_authority = pool_authority
        self.liquidity_threshold = Decimal(str(liquidity_threshold))
        self.enabled_pools = set(enabled_pools) if enabled_pools is not None else {k.value for k in PoolKind}

    @staticmethod
    def has_mint_event(log_messages: List[str]) -> bool:
        """Cheap stage: look for a MintTo instruction in the logs"""
        return any(isinstance(log, str) and MINT_MARKER in log.lower() for log in log_messages)

    @staticmethod
    def classify_pool(log_messages: List[str]) -> PoolKind:
        joined = "\n".join(log for log in log_messages if isinstance(log, str))
        for program_id, kind in POOL_PROGRAMS:
            if f"Program {program_id} invoke" in joined:
                return kind
        return PoolKind.RAYDIUM_LAUNCHLAB

    def evaluate(self, tx: StreamTransaction) -> Optional[LaunchCandidate]:
        """Return a candidate when the transaction adds more than the liquidity threshold"""
        if not tx.log_messages or not self.has_mint_event(tx.log_messages):
            return None

        if not tx.pre_token_balances or not tx.post_token_balances:
            self.logger.debug(f"Token balances not found in transaction {tx.signature}")
            return None

        pre_sol = Decimal(0)
        post_sol = Decimal(0)
        pre_token = Decimal(0)
        post_token = Decimal(0)
        token_mint = ""
        token_owner = ""

        for balance in tx.post_token_balances:
            if balance.owner != self.pool_authority:
                if balance.mint != WSOL_MINT:
                    post_token = balance.ui_amount
                    token_mint = balance.mint
                    token_owner = balance.owner
            elif balance.mint == WSOL_MINT:
                post_sol = balance.ui_amount

        for balance in tx.pre_token_balances:
            if balance.owner != self.pool_authority:
                if balance.mint == token_mint:
                    pre_token = balance.ui_amount
            elif balance.mint == WSOL_MINT:
                pre_sol = balance.ui_amount

        sol_delta = post_sol - pre_sol
        token_delta = post_token - pre_token

        self.logger.debug(f"Mint event {tx.signature}: mint={token_mint} owner={token_owner} "
                          f"sol_change={sol_delta:+} token_change={token_delta:+}")

        if sol_delta <= self.liquidity_threshold:
            return None

        pool_kind = self.classify_pool(tx.log_messages)
        if pool_kind.value not in self.enabled_pools:
            self.logger.info(f"Skipping {token_mint}: pool kind {pool_kind.value} is disabled")
            return None

        self.logger.info(f"Found large SOL transfer: {sol_delta} SOL into {pool_kind.value} pool for {token_mint}")
        return LaunchCandidate(
            signature=tx.signature,
            mint=token_mint,
            owner=token_owner,
            pool_kind=pool_kind,
            sol_delta=sol_delta,
            token_delta=token_delta,
            context={
                "pool_authority": self.pool_authority,
                "creator": token_owner,
                "signature": tx.signature,
                "slot": tx.slot,
                "liquidity_sol": float(sol_delta),
            },
        )
