from typing import Any, Dict, Optional
import aiohttp

from launch_sniper.core.errors import TransientNetworkError
from launch_sniper.utils.logger import TradingLogger

class QuoteClient:
    """HTTP client for a Jupiter-compatible quote and swap-building service"""

    def __init__(self, base_url: str, logger: TradingLogger, timeout: float = 10.0,
                 session: Optional[aiohttp.ClientSession] = None):
        self.base_url = base_url.rstrip("/")
        self.logger = logger
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        self._session = session

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self.timeout)
        return self._session

    async def get_quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> Dict[str, Any]:
        """Request a price quote for swapping ``amount`` raw units of input_mint"""
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(int(amount)),
            "slippageBps": str(slippage_bps),
        }
        session = await self._get_session()
        try:
            async with session.get(f"{self.base_url}/quote", params=params) as response:
                if response.status != 200:
                    body = await response.text()
                    raise TransientNetworkError(f"Quote request failed ({response.status}): {body}")
                quote = await response.json()
        except aiohttp.ClientError as e:
            raise TransientNetworkError(f"Quote request failed: {str(e)}") from e

        if not isinstance(quote, dict) or "outAmount" not in quote:
            raise TransientNetworkError(f"Quote response missing outAmount: {quote}")
        return quote

    async def get_swap_transaction(self, quote: Dict[str, Any], user_public_key: str,
                                   route_options: Dict[str, Any]) -> str:
        """Request the unsigned, base64 encoded swap transaction for a quote"""
        body = {
            "quoteResponse": quote,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            **route_options,
        }
        session = await self._get_session()
        try:
            async with session.post(f"{self.base_url}/swap", json=body,
                                    headers={"Content-Type": "application/json"}) as response:
                if response.status != 200:
                    text = await response.text()
                    raise TransientNetworkError(f"Swap request failed ({response.status}): {text}")
                payload = await response.json()
        except aiohttp.ClientError as e:
            raise TransientNetworkError(f"Swap request failed: {str(e)}") from e

        swap_transaction = payload.get("swapTransaction") if isinstance(payload, dict) else None
        if not swap_transaction:
            raise TransientNetworkError("Failed to get swap transaction data")
        return swap_transaction

    async def close(self):
        if self._session is not None and not self._session.closed:
            await self._session.close()
