import json
import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, List, Optional
import websockets
import websockets.exceptions

from launch_sniper.core.errors import MalformedEventError
from launch_sniper.core.types import LaunchCandidate, StreamTransaction, TokenBalance
from launch_sniper.data.opportunity_detector import OpportunityDetector
from launch_sniper.notifications.notifier import Notifier
from launch_sniper.utils.logger import TradingLogger

def _parse_balances(raw: Any) -> List[TokenBalance]:
    if not isinstance(raw, list):
        raise MalformedEventError("token balances are not a list")
    balances = []
    for entry in raw:
        try:
            ui_amount = entry["uiTokenAmount"].get("uiAmount")
            balances.append(TokenBalance(
                owner=entry.get("owner", ""),
                mint=entry["mint"],
                ui_amount=Decimal(str(ui_amount)) if ui_amount is not None else Decimal(0),
            ))
        except (KeyError, TypeError, AttributeError, ArithmeticError) as e:
            raise MalformedEventError(f"bad token balance entry: {e}") from e
    return balances

def decode_envelope(result: Dict[str, Any]) -> StreamTransaction:
    """Pull the log messages and token balances out of a transaction notification"""
    try:
        meta = result["transaction"]["meta"]
        log_messages = meta["logMessages"]
        pre_balances = meta["preTokenBalances"]
        post_balances = meta["postTokenBalances"]
    except (KeyError, TypeError) as e:
        raise MalformedEventError(f"envelope missing field: {e}") from e

    if log_messages is None or pre_balances is None or post_balances is None:
        raise MalformedEventError("envelope has null transaction fields")

    return StreamTransaction(
        signature=result.get("signature", ""),
        log_messages=list(log_messages),
        pre_token_balances=_parse_balances(pre_balances),
        post_token_balances=_parse_balances(post_balances),
        slot=result.get("slot"),
    )

class StreamIngestor:
    """Holds a single filtered transaction subscription and feeds candidates into a bounded queue.

    One connection is alive at a time. When the stream errors or closes the
    outer loop waits ``reconnect_delay`` seconds and subscribes again, for as
    long as the ingestor is active.
    """

    def __init__(self,
                 ws_url: str,
                 detector: OpportunityDetector,
                 queue: "asyncio.Queue[LaunchCandidate]",
                 logger: TradingLogger,
                 pool_authority: str,
                 reconnect_delay: float = 1.0,
                 connect: Optional[Callable[[str], Awaitable[Any]]] = None,
                 notifier: Optional[Notifier] = None):
        self.ws_url = ws_url
        self.detector = detector
        self.queue = queue
        self.logger = logger
        self.pool_authority = pool_authority
        self.reconnect_delay = reconnect_delay
        self._connect = connect or websockets.connect
        self.notifier = notifier
        self.ws = None
        self.is_active = False

        # Simple metrics tracking
        self.connection_status = {
            'connects': 0,
            'last_disconnect_time': None,
            'disconnect_code': None,
            'time_to_connect': 0.0
        }

        self.message_health = {
            'last_message_time': None,
            'messages_received': 0,
            'malformed': 0,
            'processing_errors': 0,
            'candidates': 0
        }

    def subscribe_message(self) -> dict:
        return {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "transactionSubscribe",
            "params": [
                {
                    "vote": False,
                    "failed": False,
                    "accountInclude": [self.pool_authority],
                    "accountExclude": [],
                    "accountRequired": []
                },
                {
                    "commitment": "processed",
                    "encoding": "jsonParsed",
                    "transactionDetails": "full",
                    "showRewards": False,
                    "maxSupportedTransactionVersion": 0
                }
            ]
        }

    async def start(self):
        """Run the reconnect loop until stop() is called"""
        self.is_active = True
        self.logger.info("New launch monitoring started")

        while self.is_active:
            try:
                await self._stream_once()
            except Exception as e:
                self.logger.error(f"Stream error: {str(e)}")
                await self._notify_error(e, "transaction stream")

            if self.is_active:
                self.logger.info(f"Restarting stream in {self.reconnect_delay}s")
                await asyncio.sleep(self.reconnect_delay)

        self.logger.info("New launch monitoring stopped")

    async def _notify_error(self, error: Exception, context: str):
        if self.notifier is not None:
            await self.notifier.notify_error(error, context)

    async def stop(self):
        """Stop dispatching new items and close the socket"""
        self.is_active = False
        if self.ws is not None:
            await self.ws.close()

    async def _stream_once(self):
        connect_start = datetime.now()
        self.logger.info(f"Attempting to connect to transaction stream at {self.ws_url}")
        ws = await self._connect(self.ws_url)
        self.ws = ws
        self.connection_status['connects'] += 1
        self.connection_status['time_to_connect'] = (datetime.now() - connect_start).total_seconds()

        try:
            await ws.send(json.dumps(self.subscribe_message()))
            self.logger.info(f"transactionSubscribe sent for pool authority {self.pool_authority}")

            while self.is_active:
                try:
                    msg = await ws.recv()
                except websockets.exceptions.ConnectionClosed as e:
                    self.connection_status['last_disconnect_time'] = datetime.now()
                    self.connection_status['disconnect_code'] = getattr(e, "code", None)
                    self.logger.error(
                        f"Stream disconnected. Code: {self.connection_status['disconnect_code']}, "
                        f"Last message: {self.message_health['last_message_time']}"
                    )
                    if self.is_active:
                        await self._notify_error(e, "transaction stream disconnected")
                    return
                self.message_health['last_message_time'] = datetime.now()
                self.message_health['messages_received'] += 1
                await self.process_message(msg)
        finally:
            self.ws = None
            await ws.close()

    async def process_message(self, msg: str) -> Optional[LaunchCandidate]:
        if not self.is_active:
            return None

        try:
            data = json.loads(msg)
        except (TypeError, ValueError):
            self.message_health['malformed'] += 1
            return None

        # Subscription acks and pings carry no params
        if not isinstance(data, dict) or "params" not in data:
            return None

        try:
            result = data["params"]["result"]
            tx = decode_envelope(result)
        except (MalformedEventError, KeyError, TypeError):
            self.message_health['malformed'] += 1
            return None

        try:
            candidate = self.detector.evaluate(tx)
        except Exception as e:
            self.message_health['processing_errors'] += 1
            self.logger.error(f"Error evaluating transaction {tx.signature}: {str(e)}")
            return None

        if candidate is None:
            return None

        self.message_health['candidates'] += 1
        await self.queue.put(candidate)
        return candidate
