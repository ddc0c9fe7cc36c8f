import base64
from typing import List, Sequence
from solders.keypair import Keypair
from solders.pubkey import Pubkey
from solders.hash import Hash
from solders.instruction import Instruction, AccountMeta
from solders.message import MessageV0
from solders.transaction import VersionedTransaction
from solders.address_lookup_table_account import AddressLookupTable, AddressLookupTableAccount
from solders.system_program import transfer, TransferParams
from solana.rpc.async_api import AsyncClient

from launch_sniper.core.errors import TransactionError
from launch_sniper.utils.logger import TradingLogger

def decompile_instructions(message, lookup_tables: Sequence[AddressLookupTableAccount]) -> List[Instruction]:
    """Rebuild full instructions from a compiled message so new ones can be appended.

    Account order is the static keys, then writable addresses loaded from every
    lookup table, then readonly loaded addresses.
    """
    header = message.header
    static_keys = list(message.account_keys)
    num_signers = header.num_required_signatures
    writable_signers = num_signers - header.num_readonly_signed_accounts
    writable_unsigned_end = len(static_keys) - header.num_readonly_unsigned_accounts

    tables = {table.key: table for table in lookup_tables}
    loaded_writable: List[Pubkey] = []
    loaded_readonly: List[Pubkey] = []
    for lookup in getattr(message, "address_table_lookups", None) or []:
        table = tables.get(lookup.account_key)
        if table is None:
            raise TransactionError(f"Address lookup table {lookup.account_key} was not loaded")
        loaded_writable.extend(table.addresses[i] for i in lookup.writable_indexes)
        loaded_readonly.extend(table.addresses[i] for i in lookup.readonly_indexes)

    all_keys = static_keys + loaded_writable + loaded_readonly

    def meta(index: int) -> AccountMeta:
        key = all_keys[index]
        if index < len(static_keys):
            is_signer = index < num_signers
            if is_signer:
                is_writable = index < writable_signers
            else:
                is_writable = index < writable_unsigned_end
        else:
            is_signer = False
            is_writable = index < len(static_keys) + len(loaded_writable)
        return AccountMeta(pubkey=key, is_signer=is_signer, is_writable=is_writable)

    instructions = []
    for compiled in message.instructions:
        instructions.append(Instruction(
            program_id=all_keys[compiled.program_id_index],
            data=bytes(compiled.data),
            accounts=[meta(index) for index in bytes(compiled.accounts)],
        ))
    return instructions

class TransactionSigner:
    """Signs prebuilt swap transactions with the trading wallet"""

    def __init__(self, wallet: Keypair, logger: TradingLogger):
        self.wallet = wallet
        self.logger = logger

    @property
    def public_key(self) -> Pubkey:
        return self.wallet.pubkey()

    def sign(self, swap_transaction: str) -> VersionedTransaction:
        """Deserialize a base64 transaction and sign it with the wallet"""
        try:
            unsigned = VersionedTransaction.from_bytes(base64.b64decode(swap_transaction))
            return VersionedTransaction(unsigned.message, [self.wallet])
        except Exception as e:
            raise TransactionError(f"Failed to sign swap transaction: {str(e)}") from e

    def append_tip(self,
                   transaction: VersionedTransaction,
                   tip_address: Pubkey,
                   tip_lamports: int,
                   recent_blockhash: Hash,
                   lookup_tables: Sequence[AddressLookupTableAccount] = ()) -> VersionedTransaction:
        """Add a tip transfer, recompile against a fresh blockhash and sign again"""
        try:
            instructions = decompile_instructions(transaction.message, lookup_tables)
            instructions.append(transfer(TransferParams(
                from_pubkey=self.wallet.pubkey(),
                to_pubkey=tip_address,
                lamports=tip_lamports,
            )))
            message = MessageV0.try_compile(
                self.wallet.pubkey(),
                instructions,
                list(lookup_tables),
                recent_blockhash,
            )
            return VersionedTransaction(message, [self.wallet])
        except TransactionError:
            raise
        except Exception as e:
            raise TransactionError(f"Failed to append tip instruction: {str(e)}") from e

    async def load_lookup_tables(self, client: AsyncClient, transaction: VersionedTransaction) -> List[AddressLookupTableAccount]:
        """Fetch the lookup tables a v0 message references"""
        tables = []
        for lookup in getattr(transaction.message, "address_table_lookups", None) or []:
            response = await client.get_account_info(lookup.account_key)
            if response.value is None:
                raise TransactionError(f"Address lookup table {lookup.account_key} not found")
            table = AddressLookupTable.deserialize(bytes(response.value.data))
            tables.append(AddressLookupTableAccount(key=lookup.account_key, addresses=list(table.addresses)))
        return tables
