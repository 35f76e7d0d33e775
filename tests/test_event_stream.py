"""
Tests for the OrderFilled event stream
"""

import asyncio
import json

import pytest
from web3 import Web3

from conftest import (
    FakeClobClient,
    FakeWebSocket,
    TARGET,
    OTHER,
    TOKEN,
    make_fill_log,
    notification,
    subscribed,
)
from mirrorbot.event_stream import (
    ORDER_FILLED_TOPIC,
    EventStreamFeed,
    SubscriptionError,
    address_topic,
    decode_order_filled,
)


class TestDecode:

    def test_decode_fields(self):
        event = decode_order_filled(make_fill_log(), "CTF_EXCHANGE")

        assert event.maker == Web3.to_checksum_address(TARGET)
        assert event.taker == Web3.to_checksum_address(OTHER)
        assert event.maker_asset_id == "0"
        assert event.taker_asset_id == TOKEN
        assert event.maker_amount_filled == 5_000_000
        assert event.taker_amount_filled == 10_000_000
        assert event.block_number == 64_000_000
        assert event.log_index == 3
        assert event.exchange == "CTF_EXCHANGE"

    def test_rejects_other_topic(self):
        log = make_fill_log()
        log["topics"][0] = "0x" + "00" * 32
        with pytest.raises(ValueError):
            decode_order_filled(log)

    def test_rejects_missing_topics(self):
        log = make_fill_log()
        log["topics"] = log["topics"][:2]
        with pytest.raises(ValueError):
            decode_order_filled(log)

    def test_address_topic(self):
        topic = address_topic(TARGET)
        assert len(topic) == 66
        assert topic.endswith(TARGET.lower()[2:])


class TestSubscriptions:

    def test_four_filtered_subscriptions(self, make_pipeline):
        feed = EventStreamFeed(make_pipeline(), TARGET)
        requests = list(feed.subscription_requests())

        assert [r["id"] for r, _ in requests] == [1, 2, 3, 4]
        assert [key for _, key in requests] == [
            ("CTF_EXCHANGE", "maker"),
            ("CTF_EXCHANGE", "taker"),
            ("NEG_RISK_CTF_EXCHANGE", "maker"),
            ("NEG_RISK_CTF_EXCHANGE", "taker"),
        ]

        target_topic = address_topic(TARGET)
        maker_filter = requests[0][0]["params"][1]
        taker_filter = requests[1][0]["params"][1]
        assert maker_filter["topics"] == [ORDER_FILLED_TOPIC, None, target_topic]
        assert taker_filter["topics"] == [ORDER_FILLED_TOPIC, None, None, target_topic]
        assert requests[0][0]["params"][0] == "logs"

    def test_subscription_error_raises(self, make_pipeline):
        feed = EventStreamFeed(make_pipeline(), TARGET)
        feed._pending[1] = ("CTF_EXCHANGE", "maker")
        message = json.dumps({"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "nope"}})

        with pytest.raises(SubscriptionError):
            asyncio.run(feed._on_message(message))


class TestHandleLog:

    def test_mirrors_target_fill(self, make_pipeline):
        clob = FakeClobClient()

        async def scenario():
            pipeline = make_pipeline(clob)
            feed = EventStreamFeed(pipeline, TARGET)
            async with pipeline:
                queued = await feed.handle_log(make_fill_log(), "CTF_EXCHANGE")
                await pipeline.drain()
            return queued

        assert asyncio.run(scenario()) is True
        assert len(clob.created) == 1
        assert clob.created[0].token_id == TOKEN
        assert clob.created[0].price == 0.5
        assert clob.created[0].size == 10.0

    def test_removed_log_ignored(self, make_pipeline):
        async def scenario():
            pipeline = make_pipeline()
            feed = EventStreamFeed(pipeline, TARGET)
            return await feed.handle_log(make_fill_log(removed=True)), pipeline

        queued, pipeline = asyncio.run(scenario())
        assert queued is False
        assert len(pipeline.ledger) == 0

    def test_undecodable_log_dropped(self, make_pipeline):
        async def scenario():
            feed = EventStreamFeed(make_pipeline(), TARGET)
            log = make_fill_log()
            log["data"] = "0x1234"
            return await feed.handle_log(log), feed

        queued, feed = asyncio.run(scenario())
        assert queued is False
        assert feed.events_dropped == 1

    def test_two_token_legs_reported_as_dropped(self, make_pipeline):
        clob = FakeClobClient()

        async def scenario():
            pipeline = make_pipeline(clob)
            feed = EventStreamFeed(pipeline, TARGET)
            log = make_fill_log(maker_asset_id=int(TOKEN), taker_asset_id=123)
            return await feed.handle_log(log, "NEG_RISK_CTF_EXCHANGE"), pipeline

        queued, pipeline = asyncio.run(scenario())
        assert queued is False
        assert pipeline.reporter.fills_dropped == 1
        assert pipeline.reporter.trades_detected == 0
        assert clob.created == []

    def test_fill_without_target_is_skipped(self, make_pipeline):
        async def scenario():
            pipeline = make_pipeline()
            feed = EventStreamFeed(pipeline, TARGET)
            queued = await feed.handle_log(make_fill_log(maker=OTHER, taker=OTHER))
            return queued, pipeline

        queued, pipeline = asyncio.run(scenario())
        assert queued is False
        assert pipeline.reporter.trades_skipped == 1


class TestConnectionLoop:

    def test_reconnect_replay_is_mirrored_once(self, make_pipeline):
        clob = FakeClobClient()
        log = make_fill_log()
        sockets = []

        def connect(url):
            hold = len(sockets) >= 2
            ws = FakeWebSocket(subscribed() + [notification(log)], hold=hold)
            sockets.append(ws)
            return ws

        async def scenario():
            pipeline = make_pipeline(clob)
            feed = EventStreamFeed(pipeline, TARGET, reconnect_delay=0.01, connect=connect)
            async with pipeline:
                task = asyncio.create_task(feed.run())
                while feed.connections < 3 or feed.events_received < 3:
                    await asyncio.sleep(0.01)
                await feed.stop()
                await asyncio.wait_for(task, timeout=2)
                await pipeline.drain()
            return feed

        feed = asyncio.run(scenario())

        assert feed.connections == 3
        assert len(clob.posted) == 1
        assert len(sockets[0].sent) == 4
        assert all(msg["method"] == "eth_subscribe" for msg in sockets[0].sent)

    def test_waits_full_delay_before_reconnecting(self, make_pipeline):
        attempts = []

        def connect(url):
            attempts.append(asyncio.get_running_loop().time())
            if len(attempts) == 1:
                raise OSError("connection refused")
            return FakeWebSocket(subscribed(), hold=True)

        async def scenario():
            feed = EventStreamFeed(make_pipeline(), TARGET, reconnect_delay=0.1, connect=connect)
            task = asyncio.create_task(feed.run())
            while feed.connections < 1:
                await asyncio.sleep(0.01)
            await feed.stop()
            await asyncio.wait_for(task, timeout=2)
            return feed

        feed = asyncio.run(scenario())

        assert len(attempts) == 2
        assert attempts[1] - attempts[0] >= 0.09
        assert feed.connections == 1

    def test_stop_during_backoff(self, make_pipeline):
        def connect(url):
            raise OSError("down")

        async def scenario():
            feed = EventStreamFeed(make_pipeline(), TARGET, reconnect_delay=30, connect=connect)
            task = asyncio.create_task(feed.run())
            await asyncio.sleep(0.05)
            await feed.stop()
            await asyncio.wait_for(task, timeout=2)

        asyncio.run(scenario())

    def test_rejected_subscription_reconnects(self, make_pipeline):
        sockets = []

        def connect(url):
            if not sockets:
                error = json.dumps({"jsonrpc": "2.0", "id": 1, "error": {"message": "too many filters"}})
                ws = FakeWebSocket([error])
            else:
                ws = FakeWebSocket(subscribed(), hold=True)
            sockets.append(ws)
            return ws

        async def scenario():
            feed = EventStreamFeed(make_pipeline(), TARGET, reconnect_delay=0.01, connect=connect)
            task = asyncio.create_task(feed.run())
            while feed.connections < 2:
                await asyncio.sleep(0.01)
            await feed.stop()
            await asyncio.wait_for(task, timeout=2)
            return feed

        feed = asyncio.run(scenario())
        assert feed.connections == 2
        assert len(feed._subscriptions) == 4
