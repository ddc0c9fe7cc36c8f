from collections import defaultdict
from typing import Dict
from solders.pubkey import Pubkey
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TokenAccountOpts

from launch_sniper.core.errors import TransientNetworkError
from launch_sniper.execution.constants import LAMPORTS_PER_SOL
from launch_sniper.utils.logger import TradingLogger

class BalanceReader:
    """Reads the trading wallet's SOL and token balances over RPC"""

    def __init__(self, client: AsyncClient, owner: Pubkey, logger: TradingLogger):
        self.client = client
        self.owner = owner
        self.logger = logger

    async def get_sol_balance(self) -> float:
        """Get SOL balance in wallet"""
        try:
            response = await self.client.get_balance(self.owner, commitment=Confirmed)
            return response.value / LAMPORTS_PER_SOL
        except Exception as e:
            raise TransientNetworkError(f"Failed to get SOL balance: {e}") from e

    async def get_token_balance(self, mint: str) -> int:
        """Raw token units held for a mint, 0 when the wallet has no account for it"""
        try:
            response = await self.client.get_token_accounts_by_owner_json_parsed(
                self.owner,
                TokenAccountOpts(mint=Pubkey.from_string(mint)),
                commitment=Confirmed,
            )
        except Exception as e:
            if "could not find account" in str(e):
                return 0
            raise TransientNetworkError(f"Failed to get token balance for {mint}: {e}") from e

        total = 0
        for keyed_account in response.value:
            info = keyed_account.account.data.parsed.get("info", {})
            total += int(info.get("tokenAmount", {}).get("amount", 0))
        return total

class PaperBalances:
    """In-memory wallet used when trades are simulated"""

    def __init__(self, starting_sol: float, logger: TradingLogger):
        self.logger = logger
        self.sol_lamports = int(starting_sol * LAMPORTS_PER_SOL)
        self.tokens: Dict[str, int] = defaultdict(int)

    async def get_sol_balance(self) -> float:
        return self.sol_lamports / LAMPORTS_PER_SOL

    async def get_token_balance(self, mint: str) -> int:
        return self.tokens.get(mint, 0)

    def apply_fill(self, input_mint: str, output_mint: str, in_amount: int, out_amount: int, native_mint: str):
        """Move simulated funds the way a confirmed swap would"""
        if input_mint == native_mint:
            self.sol_lamports -= in_amount
        else:
            self.tokens[input_mint] = max(0, self.tokens.get(input_mint, 0) - in_amount)
        if output_mint == native_mint:
            self.sol_lamports += out_amount
        else:
            self.tokens[output_mint] = self.tokens.get(output_mint, 0) + out_amount
        self.logger.debug(f"Paper wallet: {self.sol_lamports / LAMPORTS_PER_SOL:.4f} SOL, "
                          f"{len([m for m, a in self.tokens.items() if a > 0])} token holdings")
