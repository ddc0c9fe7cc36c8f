"""
Tests for the transaction stream subscription and reconnect loop.
"""

import asyncio
import json

import pytest
import websockets.exceptions

from launch_sniper.data.opportunity_detector import OpportunityDetector
from launch_sniper.data.stream_ingestor import StreamIngestor, decode_envelope
from launch_sniper.core.errors import MalformedEventError
from launch_sniper.execution.constants import WSOL_MINT

POOL = "WLHv2UAZm6z4KyaaELi5pjdbJh6RESMva1Rnn8pJVVh"
TOKEN = "TokenMint1111111111111111111111111111111111"


def _entry(owner, mint, amount):
    return {"owner": owner, "mint": mint, "uiTokenAmount": {"uiAmount": amount}}


def _notification(pre, post, logs=("Program log: Instruction: MintTo",)):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "transactionNotification",
        "params": {
            "subscription": 7,
            "result": {
                "signature": "sig1",
                "slot": 99,
                "transaction": {
                    "meta": {
                        "logMessages": list(logs),
                        "preTokenBalances": pre,
                        "postTokenBalances": post,
                    }
                },
            },
        },
    })


LAUNCH = _notification(
    [_entry(POOL, WSOL_MINT, 1.0)],
    [_entry(POOL, WSOL_MINT, 2.0), _entry("Creator", TOKEN, 500.0)],
)


class FakeSocket:
    def __init__(self, messages):
        self.messages = list(messages)
        self.sent = []
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def recv(self):
        if self.messages:
            return self.messages.pop(0)
        raise websockets.exceptions.ConnectionClosed(None, None)

    async def close(self):
        self.closed = True


@pytest.fixture
def queue():
    return asyncio.Queue(maxsize=10)


@pytest.fixture
def ingestor(logger, queue):
    detector = OpportunityDetector(logger, pool_authority=POOL)
    ingestor = StreamIngestor("wss://stream", detector, queue, logger, pool_authority=POOL, reconnect_delay=0)
    ingestor.is_active = True
    return ingestor


def test_subscription_filters_on_pool_authority(ingestor):
    message = ingestor.subscribe_message()

    assert message["method"] == "transactionSubscribe"
    assert message["params"][0]["accountInclude"] == [POOL]
    assert message["params"][1]["commitment"] == "processed"


def test_decode_envelope_rejects_null_fields():
    with pytest.raises(MalformedEventError):
        decode_envelope({"transaction": {"meta": {"logMessages": None,
                                                  "preTokenBalances": [],
                                                  "postTokenBalances": []}}})


@pytest.mark.asyncio
async def test_launch_is_queued(ingestor, queue):
    candidate = await ingestor.process_message(LAUNCH)

    assert candidate.mint == TOKEN
    assert queue.get_nowait() is candidate
    assert ingestor.message_health["candidates"] == 1


@pytest.mark.asyncio
async def test_malformed_messages_are_counted_and_dropped(ingestor, queue):
    await ingestor.process_message("not json")
    await ingestor.process_message(json.dumps({"params": {"result": {"transaction": {}}}}))
    await ingestor.process_message(json.dumps({"params": {"result": {"transaction": {"meta": {
        "logMessages": ["Program log: Instruction: MintTo"],
        "preTokenBalances": [{"owner": POOL}],
        "postTokenBalances": [],
    }}}}}))
    candidate = await ingestor.process_message(LAUNCH)

    assert ingestor.message_health["malformed"] == 3
    assert candidate is not None
    assert queue.qsize() == 1


@pytest.mark.asyncio
async def test_subscription_ack_is_ignored(ingestor):
    assert await ingestor.process_message(json.dumps({"jsonrpc": "2.0", "result": 7, "id": 1})) is None
    assert ingestor.message_health["malformed"] == 0


@pytest.mark.asyncio
async def test_inactive_ingestor_drops_items(ingestor, queue):
    ingestor.is_active = False

    assert await ingestor.process_message(LAUNCH) is None
    assert queue.empty()


@pytest.mark.asyncio
async def test_reconnects_after_connection_error(logger, queue, notifier):
    detector = OpportunityDetector(logger, pool_authority=POOL)
    sockets = []
    calls = []

    async def connect(url):
        calls.append(url)
        if len(calls) == 1:
            raise OSError("connection refused")
        if len(calls) == 2:
            socket = FakeSocket([LAUNCH])
            sockets.append(socket)
            return socket
        ingestor.is_active = False
        raise OSError("giving up")

    ingestor = StreamIngestor("wss://stream", detector, queue, logger, pool_authority=POOL,
                              reconnect_delay=0, connect=connect, notifier=notifier)

    await asyncio.wait_for(ingestor.start(), timeout=5)

    assert len(calls) == 3
    assert ingestor.connection_status["connects"] == 1
    assert sockets[0].sent[0]["method"] == "transactionSubscribe"
    assert sockets[0].closed
    assert queue.qsize() == 1
    assert notifier.types() == ["error", "error", "error"]
    assert "transaction stream disconnected" in notifier.sent[1][1]


@pytest.mark.asyncio
async def test_stop_during_stream_does_not_notify(logger, queue, notifier):
    detector = OpportunityDetector(logger, pool_authority=POOL)

    class ClosingSocket(FakeSocket):
        async def recv(self):
            await ingestor.stop()
            return await super().recv()

    async def connect(url):
        return ClosingSocket([])

    ingestor = StreamIngestor("wss://stream", detector, queue, logger, pool_authority=POOL,
                              reconnect_delay=0, connect=connect, notifier=notifier)

    await asyncio.wait_for(ingestor.start(), timeout=5)

    assert notifier.sent == []
    assert ingestor.connection_status["connects"] == 1
