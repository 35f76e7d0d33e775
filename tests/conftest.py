"""
Shared fakes for the trade mirror tests
"""

import asyncio
import json
import sys
from pathlib import Path

import pytest
from eth_abi import encode

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from mirrorbot.event_stream import ORDER_FILLED_TOPIC, address_topic
from mirrorbot.executor import OrderMirror
from mirrorbot.pipeline import MirrorPipeline
from mirrorbot.ledger import DedupLedger
from mirrorbot.reporting import TradeReporter

TARGET = "0xa9456cecF9d6fb545F6408E0e2DbBFA307d7BaE6"
OTHER = "0x589222a5124a96765443b97a3498d89ffd824ad2"
TOKEN = "71321045679252212594626385532706912750332728571942532289631379312455583992563"


class FakeClobClient:
    """Records create/post calls, answers with a canned response"""

    def __init__(self, response=None, create_error=None, post_error=None):
        self.response = response if response is not None else {
            "success": True,
            "orderID": "0xorder",
            "status": "matched",
        }
        self.create_error = create_error
        self.post_error = post_error
        self.created = []
        self.posted = []

    def create_order(self, order_args, options=None):
        if self.create_error:
            raise self.create_error
        self.created.append(order_args)
        return {"signed": True, "token_id": order_args.token_id}

    def post_order(self, signed_order, order_type=None):
        if self.post_error:
            raise self.post_error
        self.posted.append((signed_order, order_type))
        return self.response


def make_fill_log(
    maker=TARGET,
    taker=OTHER,
    maker_asset_id=0,
    taker_asset_id=int(TOKEN),
    maker_amount=5_000_000,
    taker_amount=10_000_000,
    fee=0,
    tx_hash="0x" + "cd" * 32,
    block_number=64_000_000,
    removed=False,
):
    """OrderFilled log as pushed by eth_subscription"""
    data = encode(
        ["uint256"] * 5,
        [maker_asset_id, taker_asset_id, maker_amount, taker_amount, fee],
    )
    return {
        "address": "0x4bFb41d5B3570DeFd03C39a9A4D8dE6Bd8B8982E",
        "topics": [
            ORDER_FILLED_TOPIC,
            "0x" + "ab" * 32,
            address_topic(maker),
            address_topic(taker),
        ],
        "data": "0x" + data.hex(),
        "blockNumber": hex(block_number),
        "transactionHash": tx_hash,
        "logIndex": "0x3",
        "removed": removed,
    }


@pytest.fixture
def fake_clob():
    return FakeClobClient()


@pytest.fixture
def make_pipeline():
    """Build a pipeline around a fake CLOB client (call inside a running loop)"""
    def _make(clob=None, capacity=10_000, resolver=None, workers=1):
        clob = clob or FakeClobClient()
        return MirrorPipeline(
            mirror=OrderMirror(clob),
            ledger=DedupLedger(capacity),
            resolver=resolver,
            reporter=TradeReporter(),
            workers=workers,
        )
    return _make


class FakeWebSocket:
    """Replays scripted messages; with hold=True stays open until closed"""

    def __init__(self, messages, hold=False):
        self.messages = list(messages)
        self.hold = hold
        self.sent = []
        self.closed = asyncio.Event()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.closed.set()

    async def send(self, message):
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self._messages()

    async def _messages(self):
        for message in self.messages:
            yield message
        if self.hold:
            await self.closed.wait()

    async def close(self):
        self.closed.set()


def subscribed(count=4):
    return [json.dumps({"jsonrpc": "2.0", "id": i, "result": f"0xsub{i}"}) for i in range(1, count + 1)]


def notification(log, subscription="0xsub1"):
    return json.dumps({
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": subscription, "result": log},
    })
