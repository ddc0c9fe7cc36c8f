import asyncio
import time
from typing import Any, Callable, Dict, List, Optional

from solana.rpc.async_api import AsyncClient

from launch_sniper.core.errors import InsufficientBalanceError, RiskBlockedError
from launch_sniper.core.types import (
    ExitReason, LaunchCandidate, Position, RiskDecision, RiskLevel, TradeAction, TradeIntent
)
from launch_sniper.data.opportunity_detector import OpportunityDetector
from launch_sniper.data.stream_ingestor import StreamIngestor
from launch_sniper.execution.balances import BalanceReader, PaperBalances
from launch_sniper.execution.execution_engine import AggregatorStrategy, ExecutionEngine
from launch_sniper.execution.quote_client import QuoteClient
from launch_sniper.execution.routes import JitoRoute, NozomiRoute, PaperRoute, StandardRoute
from launch_sniper.execution.signer import TransactionSigner
from launch_sniper.notifications.notifier import LogNotifier, Notifier
from launch_sniper.risk.position_monitor import PositionMonitor
from launch_sniper.risk.position_store import PositionStore
from launch_sniper.risk.risk_accountant import RiskAccountant
from launch_sniper.risk.risk_gate import RiskGate
from launch_sniper.risk.trade_journal import TradeJournal
from launch_sniper.utils.config import Config, load_keypair
from launch_sniper.utils.logger import TradingLogger

class SniperBot:
    """Owns every service and runs the launch sniping pipeline.

    Streamed candidates go through a bounded queue to a single consumer that
    awaits each BUY, so a slow buy delays the next candidate. The monitor,
    the risk check and the daily rollover run as separate tasks on the same
    loop. Collaborators can be injected, otherwise they are built from the
    configuration.
    """

    def __init__(self,
                 config: Config,
                 logger: TradingLogger = None,
                 notifier: Notifier = None,
                 engine: ExecutionEngine = None,
                 balances=None,
                 journal: Optional[TradeJournal] = None,
                 connect: Optional[Callable] = None,
                 clock: Callable[[], float] = time.time):
        self.config = config
        self.logger = logger or TradingLogger(
            "launch_sniper",
            log_dir=config.logging.log_dir,
            console_output=config.logging.console_output,
            level=config.logging.level,
        )
        self.notifier = notifier or LogNotifier(self.logger)
        self.clock = clock
        self.is_running = False
        self._clients: List[AsyncClient] = []
        self._tasks: List[asyncio.Task] = []

        self.quote_client = None
        if engine is None:
            engine, balances = self._build_execution()
        elif balances is None:
            balances = engine.balances
        self.engine = engine
        self.balances = balances

        if journal is None and config.logging.trade_journal_path:
            journal = TradeJournal(config.logging.trade_journal_path)

        self.store = PositionStore(self.logger)
        self.gate = RiskGate(config.risk, config.trading.max_positions)
        self.accountant = RiskAccountant(config.risk, config.trading, self.notifier, self.logger,
                                         journal=journal, clock=clock)
        self.monitor = PositionMonitor(self.store, self.engine, self.balances, self.accountant,
                                       self.notifier, self.logger, config.trading, clock=clock)

        self.queue: "asyncio.Queue[LaunchCandidate]" = asyncio.Queue(maxsize=config.stream.queue_size)
        self.detector = OpportunityDetector(
            self.logger,
            pool_authority=config.stream.pool_authority,
            liquidity_threshold=config.trading.liquidity_threshold,
            enabled_pools=config.pools.enabled(),
        )
        self.ingestor = StreamIngestor(
            config.wallet.ws_url or "",
            self.detector,
            self.queue,
            self.logger,
            pool_authority=config.stream.pool_authority,
            reconnect_delay=config.stream.reconnect_delay,
            connect=connect,
            notifier=self.notifier,
        )

        self.logger.info(f"Sniper bot initialized: route={self.engine.route_name}, dry_run={config.dry_run}")
        self.logger.info(f"Trading parameters: {config.trading}")
        self.logger.info(f"Risk parameters: {config.risk}")

    def _build_execution(self):
        swap = self.config.swap
        wallet_config = self.config.wallet

        if self.config.dry_run:
            balances = PaperBalances(swap.paper_balance, self.logger)
            route = PaperRoute(balances, self.logger)
            signer = None
        else:
            wallet = load_keypair(wallet_config.private_key)
            signer = TransactionSigner(wallet, self.logger)
            rpc_client = AsyncClient(wallet_config.rpc_url)
            self._clients.append(rpc_client)
            balances = BalanceReader(rpc_client, wallet.pubkey(), self.logger)

            if swap.method == "nozomi":
                relay_client = AsyncClient(wallet_config.nozomi_url)
                self._clients.append(relay_client)
                route = NozomiRoute(rpc_client, relay_client, signer, self.logger,
                                    swap.nozomi_tip_lamports, swap.confirm_timeout)
            elif swap.method == "jito":
                relay_client = rpc_client
                if wallet_config.jito_url:
                    relay_client = AsyncClient(wallet_config.jito_url)
                    self._clients.append(relay_client)
                route = JitoRoute(rpc_client, relay_client, self.logger,
                                  swap.jito_tip_lamports, swap.confirm_timeout)
            else:
                route = StandardRoute(rpc_client, self.logger, swap.priority_fee_lamports, swap.confirm_timeout)

        self.quote_client = QuoteClient(swap.quote_api_url, self.logger, timeout=swap.http_timeout)
        strategy = AggregatorStrategy(self.quote_client, route, signer, swap.slippage_bps)
        engine = ExecutionEngine(strategy, balances, self.logger,
                                 max_retries=swap.max_retries, retry_delay=swap.retry_delay)
        return engine, balances

    def check_risk(self, amount: float, mint: str) -> RiskDecision:
        snapshot = self.accountant.snapshot(self.store.count(), self.store.keys())
        return self.gate.evaluate(snapshot, amount, mint, self.clock())

    async def process_candidate(self, candidate: LaunchCandidate) -> Optional[Position]:
        """Buy into a candidate if the gate allows it. Never raises"""
        if not candidate.mint:
            self.logger.debug(f"No token mint in {candidate.signature}, skipping")
            return None

        self.logger.info(f"New launch detected: {candidate.mint}", pool_kind=candidate.pool_kind.value,
                         sol_delta=candidate.sol_delta, signature=candidate.signature)
        try:
            return await self.open_position(candidate)
        except RiskBlockedError as e:
            self.logger.warning(str(e))
            return None
        except Exception as e:
            self.logger.error(f"Error handling new launch {candidate.mint}: {str(e)}")
            await self.notifier.notify_error(e, f"buy {candidate.mint}")
            return None

    async def open_position(self, candidate: LaunchCandidate) -> Optional[Position]:
        """Snipe a candidate.

        Returns None when the first risk check denies the entry. Raises
        RiskBlockedError when the check repeated under the mint lock denies it,
        and lets execution errors propagate once retries are exhausted.
        """
        mint = candidate.mint
        amount = self.config.trading.sniper_amount

        decision = self.check_risk(amount, mint)
        if not decision.allowed:
            self.logger.info(f"Trade blocked for {mint}", reasons="; ".join(decision.reasons))
            return None

        async with self.store.lock(mint):
            # Another buy or sell may have committed while this one waited
            decision = self.check_risk(amount, mint)
            if not decision.allowed:
                raise RiskBlockedError(mint, decision.reasons)

            sol_balance = await self.balances.get_sol_balance()
            if sol_balance < amount:
                raise InsufficientBalanceError(
                    f"Insufficient SOL balance: {sol_balance:.4f} SOL, need {amount} SOL"
                )

            result = await self.engine.execute(TradeIntent(
                action=TradeAction.BUY,
                mint=mint,
                amount=amount,
                pool_kind=candidate.pool_kind,
            ))

            now = self.clock()
            token_amount = result.out_amount
            entry_price = amount / token_amount if token_amount else 0.0
            position = self.store.open(Position(
                mint=mint,
                entry_time=now,
                entry_value=amount,
                entry_price=entry_price,
                token_amount=token_amount,
                pool_kind=candidate.pool_kind,
                signature=result.signature,
                context=dict(candidate.context),
            ))
            await self.accountant.record_buy(mint, amount, entry_price, result.signature, timestamp=now)

        await self.notifier.notify_trade_execution("buy", mint, amount, entry_price, result.signature)
        return position

    async def consume(self):
        """Single consumer of the candidate queue"""
        while self.is_running:
            candidate = await self.queue.get()
            try:
                if self.is_running:
                    await self.process_candidate(candidate)
            finally:
                self.queue.task_done()

    async def monitor_risk(self):
        while self.is_running:
            await asyncio.sleep(self.config.trading.risk_monitor_interval)
            level = self.accountant.calculate_risk_level(self.store.count())
            if level == RiskLevel.HIGH:
                self.logger.warning("High risk level detected")
                await self.notifier.send_notification("High risk level detected", "warning",
                                                      self.get_risk_metrics())

    async def check_startup_balance(self):
        try:
            balance = await self.balances.get_sol_balance()
        except Exception as e:
            self.logger.error(f"Failed to read wallet balance: {str(e)}")
            return
        self.logger.info(f"Wallet balance: {balance:.4f} SOL")
        if balance < self.config.trading.sniper_amount:
            self.logger.warning(f"Wallet balance {balance:.4f} SOL is below sniper amount "
                                f"{self.config.trading.sniper_amount} SOL")

    async def start(self):
        """Start the pipeline and run until stop() is called"""
        self.is_running = True
        self.logger.critical("Sniper Bot Starting")
        await self.check_startup_balance()
        await self.notifier.notify_bot_status("started", {
            "route": self.engine.route_name,
            "dry_run": self.config.dry_run,
        })

        running = lambda: self.is_running
        self._tasks = [
            asyncio.create_task(self.ingestor.start()),
            asyncio.create_task(self.consume()),
            asyncio.create_task(self.monitor.run(running)),
            asyncio.create_task(self.monitor_risk()),
            asyncio.create_task(self.accountant.run_daily_rollover(running)),
        ]
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                self.logger.error(f"Background task failed: {str(result)}")

    async def stop(self, close_positions: bool = True):
        """Stop new dispatch, optionally sell everything, then release resources"""
        if not self.is_running and not self._tasks:
            return
        self.logger.info("Stopping sniper bot...")
        self.is_running = False
        await self.ingestor.stop()

        if close_positions and self.store.count():
            self.logger.info(f"Closing {self.store.count()} open positions")
            await self.monitor.close_all(ExitReason.SHUTDOWN.value)

        for task in self._tasks:
            if not task.done():
                task.cancel()
        self._tasks = []

        if self.quote_client is not None:
            await self.quote_client.close()
        for client in self._clients:
            await client.close()
        self._clients = []

        await self.notifier.notify_bot_status("stopped", {
            "daily_stats": self.get_daily_stats(),
            "performance": self.get_performance_summary(),
        })
        self.logger.critical("Sniper Bot Stopped")

    async def emergency_close_all(self, reason: str = ExitReason.EMERGENCY.value) -> int:
        """Mark every position for closing, the monitor sells them on its next sweep"""
        marked = 0
        for mint in self.store.keys():
            if self.store.request_close(mint, reason):
                marked += 1
        self.logger.warning(f"Emergency close requested for {marked} positions", reason=reason)
        await self.notifier.send_notification(f"Emergency close requested for {marked} positions",
                                              "warning", {"reason": reason})
        return marked

    def get_active_positions(self) -> List[Dict[str, Any]]:
        now = self.clock()
        return [position.as_dict(now) for position in self.store.snapshot()]

    def get_position_summary(self) -> Dict[str, Any]:
        positions = self.get_active_positions()
        total_value = sum(p["current_value"] for p in positions)
        total_pnl = sum(p["pnl"] for p in positions)
        return {
            "active_positions": len(positions),
            "total_value": total_value,
            "total_pnl": total_pnl,
            "average_pnl": total_pnl / len(positions) if positions else 0.0,
            "positions": positions,
        }

    def get_daily_stats(self) -> Dict[str, Any]:
        return self.accountant.get_daily_stats()

    def get_performance_summary(self) -> Dict[str, Any]:
        return self.accountant.performance_summary()

    def get_risk_metrics(self) -> Dict[str, Any]:
        summary = self.get_position_summary()
        return {
            "daily_stats": self.get_daily_stats(),
            "position_summary": summary,
            "risk_level": self.accountant.calculate_risk_level(summary["active_positions"]).value,
            "recommendations": self.accountant.recommendations(summary["active_positions"], summary["total_pnl"]),
        }
