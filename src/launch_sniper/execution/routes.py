import asyncio
import time
from typing import Any, Dict, Optional, Tuple
from solders.signature import Signature
from solders.transaction import VersionedTransaction
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts

from launch_sniper.core.errors import SniperError, TransactionError, TransientNetworkError
from launch_sniper.execution.balances import PaperBalances
from launch_sniper.execution.constants import NOZOMI_TIP_ADDRESS, WSOL_MINT
from launch_sniper.execution.signer import TransactionSigner
from launch_sniper.utils.logger import TradingLogger

class SubmissionRoute:
    """A channel that lands a signed transaction and waits for confirmation.

    Routes differ in how the inclusion fee is paid: as a routing-service
    parameter, as an appended transfer, or not at all.
    """
    name = "base"
    builds_transaction = True

    def __init__(self, rpc_client: Optional[AsyncClient], logger: TradingLogger, confirm_timeout: float = 30.0):
        self.rpc_client = rpc_client
        self.logger = logger
        self.confirm_timeout = confirm_timeout

    def route_options(self) -> Dict[str, Any]:
        """Extra fields for the swap-building request"""
        return {}

    async def prepare(self, transaction: VersionedTransaction) -> VersionedTransaction:
        return transaction

    async def send(self, raw_transaction: bytes) -> Signature:
        raise NotImplementedError

    async def submit(self, transaction: Optional[VersionedTransaction], quote: Dict[str, Any]) -> Tuple[str, float]:
        """Send and confirm. Returns the signature and the confirm duration in ms"""
        try:
            signature = await self.send(bytes(transaction))
        except TransactionError:
            raise
        except Exception as e:
            raise TransientNetworkError(f"Failed to send transaction via {self.name}: {str(e)}") from e
        self.logger.info(f"Transaction sent via {self.name}: {signature}")

        start = time.monotonic()
        try:
            await self._confirm(signature)
        except SniperError as e:
            e.confirm_ms = (time.monotonic() - start) * 1000
            raise
        return str(signature), (time.monotonic() - start) * 1000

    async def _confirm(self, signature: Signature):
        try:
            response = await asyncio.wait_for(
                self.rpc_client.confirm_transaction(signature, commitment=Confirmed),
                timeout=self.confirm_timeout
            )
        except asyncio.TimeoutError as e:
            raise TransientNetworkError(f"Timed out waiting for confirmation of {signature}") from e
        except Exception as e:
            raise TransientNetworkError(f"Error confirming transaction {signature}: {str(e)}") from e

        statuses = getattr(response, "value", None) or []
        status = statuses[0] if statuses else None
        if status is not None and status.err is not None:
            raise TransactionError(f"Transaction {signature} failed on chain: {status.err}")

class StandardRoute(SubmissionRoute):
    """Broadcast over the regular RPC endpoint with a flat priority fee"""
    name = "standard"

    def __init__(self, rpc_client: AsyncClient, logger: TradingLogger, priority_fee_lamports: int,
                 confirm_timeout: float = 30.0):
        super().__init__(rpc_client, logger, confirm_timeout)
        self.priority_fee_lamports = priority_fee_lamports

    def route_options(self) -> Dict[str, Any]:
        return {"prioritizationFeeLamports": self.priority_fee_lamports}

    async def send(self, raw_transaction: bytes) -> Signature:
        response = await self.rpc_client.send_raw_transaction(
            raw_transaction,
            opts=TxOpts(skip_preflight=True, max_retries=1)
        )
        return response.value

class NozomiRoute(SubmissionRoute):
    """Tip relay that expects an explicit transfer to its tip address inside the transaction"""
    name = "nozomi"

    def __init__(self, rpc_client: AsyncClient, relay_client: AsyncClient, signer: TransactionSigner,
                 logger: TradingLogger, tip_lamports: int, confirm_timeout: float = 30.0):
        super().__init__(rpc_client, logger, confirm_timeout)
        self.relay_client = relay_client
        self.signer = signer
        self.tip_lamports = tip_lamports

    async def prepare(self, transaction: VersionedTransaction) -> VersionedTransaction:
        blockhash = (await self.rpc_client.get_latest_blockhash()).value.blockhash
        lookup_tables = await self.signer.load_lookup_tables(self.rpc_client, transaction)
        return self.signer.append_tip(transaction, NOZOMI_TIP_ADDRESS, self.tip_lamports,
                                      blockhash, lookup_tables)

    async def send(self, raw_transaction: bytes) -> Signature:
        response = await self.relay_client.send_raw_transaction(
            raw_transaction,
            opts=TxOpts(skip_preflight=False, max_retries=2)
        )
        return response.value

class JitoRoute(SubmissionRoute):
    """Tip relay whose tip is requested from the routing service as jitoTipLamports"""
    name = "jito"

    def __init__(self, rpc_client: AsyncClient, relay_client: AsyncClient, logger: TradingLogger,
                 tip_lamports: int, confirm_timeout: float = 30.0):
        super().__init__(rpc_client, logger, confirm_timeout)
        self.relay_client = relay_client
        self.tip_lamports = tip_lamports

    def route_options(self) -> Dict[str, Any]:
        return {"prioritizationFeeLamports": {"jitoTipLamports": self.tip_lamports}}

    async def send(self, raw_transaction: bytes) -> Signature:
        response = await self.relay_client.send_raw_transaction(
            raw_transaction,
            opts=TxOpts(skip_preflight=True, max_retries=0)
        )
        return response.value

class PaperRoute(SubmissionRoute):
    """Simulates fills at the quoted amounts without touching the network"""
    name = "paper"
    builds_transaction = False

    def __init__(self, balances: PaperBalances, logger: TradingLogger):
        super().__init__(None, logger)
        self.balances = balances

    async def submit(self, transaction: Optional[VersionedTransaction], quote: Dict[str, Any]) -> Tuple[str, float]:
        self.balances.apply_fill(
            quote["inputMint"],
            quote["outputMint"],
            int(quote["inAmount"]),
            int(quote["outAmount"]),
            WSOL_MINT,
        )
        signature = str(Signature.new_unique())
        self.logger.info(f"Simulated transaction: {signature}")
        return signature, 0.0
