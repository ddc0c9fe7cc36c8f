"""
Shared fixtures for the sniper tests.
"""

import base64
from collections import defaultdict

import pytest
from solders.address_lookup_table_account import AddressLookupTableAccount
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.pubkey import Pubkey
from solders.signature import Signature
from solders.system_program import transfer, TransferParams
from solders.transaction import VersionedTransaction

from launch_sniper.notifications.notifier import Notifier
from launch_sniper.utils.logger import TradingLogger


class RecordingNotifier(Notifier):
    """Keeps every notification in memory."""

    def __init__(self):
        self.sent = []

    async def deliver(self, message, type, data):
        self.sent.append((type, message, data))

    def types(self):
        return [sent[0] for sent in self.sent]


class FakeBalances:
    """Wallet balances the tests can set directly."""

    def __init__(self, sol=10.0, tokens=None):
        self.sol = sol
        self.tokens = defaultdict(int, tokens or {})
        self.token_reads = 0

    async def get_sol_balance(self):
        return self.sol

    async def get_token_balance(self, mint):
        self.token_reads += 1
        return self.tokens[mint]


@pytest.fixture
def logger(tmp_path):
    return TradingLogger("launch_sniper_test", log_dir=str(tmp_path / "logs"))


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def wallet():
    return Keypair()


@pytest.fixture
def unsigned_swap(wallet):
    """A base64 v0 transaction with an empty signature slot, as a swap API returns it."""
    instruction = transfer(TransferParams(
        from_pubkey=wallet.pubkey(),
        to_pubkey=Pubkey.new_unique(),
        lamports=1_000,
    ))
    message = MessageV0.try_compile(wallet.pubkey(), [instruction], [], Hash.default())
    transaction = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(transaction)).decode()


@pytest.fixture
def lookup_table():
    return AddressLookupTableAccount(key=Pubkey.new_unique(), addresses=[Pubkey.new_unique()])


@pytest.fixture
def lookup_swap(wallet, lookup_table):
    """A base64 v0 transaction whose transfer recipient is loaded from a lookup table."""
    instruction = transfer(TransferParams(
        from_pubkey=wallet.pubkey(),
        to_pubkey=lookup_table.addresses[0],
        lamports=1_000,
    ))
    message = MessageV0.try_compile(wallet.pubkey(), [instruction], [lookup_table], Hash.default())
    transaction = VersionedTransaction.populate(message, [Signature.default()])
    return base64.b64encode(bytes(transaction)).decode()


@pytest.fixture
def balances():
    return FakeBalances()
