import asyncio
from dataclasses import asdict
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from launch_sniper.core.errors import InsufficientBalanceError
from launch_sniper.core.types import (
    AttemptRecord, ExecutionResult, ExecutionStatus, PoolKind, TradeAction, TradeIntent
)
from launch_sniper.execution.constants import LAMPORTS_PER_SOL, WSOL_MINT
from launch_sniper.execution.quote_client import QuoteClient
from launch_sniper.execution.routes import SubmissionRoute
from launch_sniper.execution.signer import TransactionSigner
from launch_sniper.utils.logger import TradingLogger

class AggregatorStrategy:
    """Executes one swap attempt through the routing service.

    Every pool kind currently resolves to this strategy. Pool-specific
    builders can be registered per PoolKind on the engine.
    """
    name = "aggregator"

    def __init__(self,
                 quote_client: QuoteClient,
                 route: SubmissionRoute,
                 signer: Optional[TransactionSigner],
                 slippage_bps: int):
        self.quote_client = quote_client
        self.route = route
        self.signer = signer
        self.slippage_bps = slippage_bps

    @staticmethod
    def pair(action: TradeAction, mint: str) -> Tuple[str, str]:
        if action == TradeAction.BUY:
            return WSOL_MINT, mint
        return mint, WSOL_MINT

    @staticmethod
    def raw_amount(action: TradeAction, amount: float) -> int:
        """BUY amounts are SOL, SELL amounts are already raw token units"""
        if action == TradeAction.BUY:
            return int(round(amount * LAMPORTS_PER_SOL))
        return int(amount)

    async def quote(self, action: TradeAction, mint: str, amount: float) -> Dict[str, Any]:
        input_mint, output_mint = self.pair(action, mint)
        return await self.quote_client.get_quote(
            input_mint, output_mint, self.raw_amount(action, amount), self.slippage_bps
        )

    async def execute_once(self, intent: TradeIntent, amount: float) -> Tuple[str, Dict[str, Any], float]:
        quote = await self.quote(intent.action, intent.mint, amount)

        transaction = None
        if self.route.builds_transaction:
            swap_transaction = await self.quote_client.get_swap_transaction(
                quote, str(self.signer.public_key), self.route.route_options()
            )
            transaction = self.signer.sign(swap_transaction)
            transaction = await self.route.prepare(transaction)

        signature, confirm_ms = await self.route.submit(transaction, quote)
        return signature, quote, confirm_ms

class ExecutionEngine:
    """Turns a trade intent into a confirmed signature, retrying on a fixed delay.

    The route never changes between attempts. SELL attempts after the second
    re-read the wallet balance first: an empty balance ends the trade with the
    STOP result, a smaller balance clamps the amount.
    """

    def __init__(self,
                 strategy: AggregatorStrategy,
                 balances,
                 logger: TradingLogger,
                 max_retries: int = 3,
                 retry_delay: float = 1.0,
                 pool_strategies: Optional[Dict[PoolKind, Any]] = None,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.strategy = strategy
        self.balances = balances
        self.logger = logger
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.strategies = {kind: strategy for kind in PoolKind}
        self.strategies.update(pool_strategies or {})
        self._sleep = sleep

    @property
    def route_name(self) -> str:
        return self.strategy.route.name

    async def quote_sell_value(self, mint: str, token_amount: int, pool_kind: PoolKind = PoolKind.RAYDIUM_LAUNCHLAB) -> float:
        """SOL the full token amount would fetch right now"""
        quote = await self.strategies[pool_kind].quote(TradeAction.SELL, mint, token_amount)
        return int(quote["outAmount"]) / LAMPORTS_PER_SOL

    async def _sellable_amount(self, mint: str, amount: float) -> float:
        balance = await self.balances.get_token_balance(mint)
        if balance <= 0:
            raise InsufficientBalanceError(f"No balance for {mint} to sell")
        if amount > balance:
            self.logger.warning(f"Requested amount ({amount}) exceeds available balance ({balance}) "
                                f"for {mint}. Adjusting amount to available balance.")
            return balance
        return amount

    async def _attempt_failed(self, record: AttemptRecord, attempts: list, error: Exception):
        record.error = str(error)
        confirm_ms = getattr(error, "confirm_ms", None)
        if confirm_ms is not None:
            record.confirm_ms = round(confirm_ms, 1)
        attempts.append(record)
        self.logger.error(f"Swap attempt {record.attempt}/{self.max_retries} failed", **asdict(record))
        if record.attempt < self.max_retries:
            self.logger.warning(f"Retrying in {self.retry_delay}s ({record.attempt}/{self.max_retries})")
            await self._sleep(self.retry_delay)

    async def execute(self, intent: TradeIntent) -> ExecutionResult:
        strategy = self.strategies[intent.pool_kind]
        amount = intent.amount
        attempts = []
        last_error: Optional[Exception] = None

        self.logger.info(f"Swapping {intent.action.value} {intent.mint}", amount=amount,
                         pool_kind=intent.pool_kind.value, route=self.route_name, strategy=strategy.name)

        for attempt in range(1, self.max_retries + 1):
            record = AttemptRecord(
                attempt=attempt,
                route=self.route_name,
                action=intent.action.value,
                mint=intent.mint,
                amount=amount,
                success=False,
            )

            if intent.action == TradeAction.SELL and attempt > 2:
                try:
                    amount = await self._sellable_amount(intent.mint, amount)
                except InsufficientBalanceError as e:
                    self.logger.warning(f"{str(e)}. Aborting swap.", attempt=attempt)
                    return ExecutionResult.stop(amount, attempts)
                except Exception as e:
                    last_error = e
                    self.logger.warning(f"Balance check failed for {intent.mint}: {str(e)}", attempt=attempt)
                    await self._attempt_failed(record, attempts, e)
                    continue
                record.amount = amount

            try:
                signature, quote, confirm_ms = await strategy.execute_once(intent, amount)
            except Exception as e:
                last_error = e
                await self._attempt_failed(record, attempts, e)
                continue

            record.success = True
            record.signature = signature
            record.confirm_ms = round(confirm_ms, 1)
            attempts.append(record)
            self.logger.info(f"Swap attempt {attempt}/{self.max_retries} confirmed", **asdict(record))
            return ExecutionResult(
                status=ExecutionStatus.CONFIRMED,
                amount=amount,
                signature=signature,
                in_amount=int(quote["inAmount"]),
                out_amount=int(quote["outAmount"]),
                attempts=attempts,
            )

        self.logger.error(f"Transaction failed after {self.max_retries} attempts", mint=intent.mint,
                          action=intent.action.value)
        raise last_error
