"""
Tests for the activity poller
"""

import asyncio

import httpx

from conftest import FakeClobClient, TARGET
from mirrorbot.activity_poller import ActivityPoller, fetch_trade_activity, trade_from_activity
from mirrorbot.models import ActivityRecord, FeedSource, TradeSide


def activity(ts, tx, asset="111", side="BUY", type_="TRADE", price=0.42, size=10):
    return {
        "proxyWallet": TARGET,
        "timestamp": ts,
        "conditionId": "0xcond",
        "type": type_,
        "size": size,
        "usdcSize": size * price,
        "transactionHash": tx,
        "price": price,
        "asset": asset,
        "side": side,
        "title": "Will it rain?",
        "outcome": "Yes",
    }


def http_client(payloads, calls=None):
    """Answers each request with the next payload: (status, json) or an exception"""
    payloads = list(payloads)

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(dict(request.url.params))
        item = payloads.pop(0) if len(payloads) > 1 else payloads[0]
        if isinstance(item, Exception):
            raise item
        status, body = item
        return httpx.Response(status, json=body)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestTradeFromActivity:

    def test_fields(self):
        trade = trade_from_activity(ActivityRecord.from_api(activity(1000, "0xAA")))
        assert trade.source == FeedSource.ACTIVITY_POLL
        assert trade.side == TradeSide.BUY
        assert trade.trade_id == "0xaa-111"
        assert trade.price == 0.42
        assert trade.outcome_label == "Yes"
        assert trade.title == "Will it rain?"

    def test_unknown_side(self):
        trade = trade_from_activity(ActivityRecord.from_api(activity(1000, "0xAA", side="MERGE")))
        assert trade.side == TradeSide.UNKNOWN


class TestFetchTradeActivity:

    def test_needs_only_a_client(self):
        calls = []

        async def scenario():
            client = http_client([(200, [activity(1000, "0x1"), activity(1000, "0x2", type_="MERGE")])], calls)
            return await fetch_trade_activity(client, TARGET, "https://data.example", limit=7)

        records = asyncio.run(scenario())
        assert [r.transaction_hash for r in records] == ["0x1"]
        assert calls == [{"user": TARGET, "limit": "7"}]

    def test_invalid_json(self):
        def handler(request):
            return httpx.Response(200, content=b"not json")

        async def scenario():
            client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
            return await fetch_trade_activity(client, TARGET)

        assert asyncio.run(scenario()) is None


class TestActivityPoller:

    def test_request_parameters(self, make_pipeline):
        calls = []

        async def scenario():
            poller = ActivityPoller(
                make_pipeline(), TARGET, http_client=http_client([(200, [])], calls), limit=50
            )
            await poller.poll_once()

        asyncio.run(scenario())
        assert calls == [{"user": TARGET, "limit": "50"}]

    def test_filters_non_trades(self, make_pipeline):
        async def scenario():
            client = http_client([(200, [
                activity(1000, "0x1"),
                activity(1000, "0x2", type_="REDEEM"),
                activity(1000, "0x3", type_="SPLIT"),
            ])])
            poller = ActivityPoller(make_pipeline(), TARGET, http_client=client)
            return await poller.fetch_activity()

        records = asyncio.run(scenario())
        assert [r.transaction_hash for r in records] == ["0x1"]

    def test_watermark_tolerance(self, make_pipeline):
        clob = FakeClobClient()

        async def scenario():
            pipeline = make_pipeline(clob)
            client = http_client([(200, [
                activity(994, "0xold"),
                activity(995, "0xedge"),
                activity(1010, "0xnew"),
            ])])
            poller = ActivityPoller(pipeline, TARGET, http_client=client, watermark=1000)
            async with pipeline:
                forwarded = await poller.poll_once()
                await pipeline.drain()
            return poller, pipeline, forwarded

        poller, pipeline, forwarded = asyncio.run(scenario())

        assert forwarded == 2
        assert len(clob.posted) == 2
        # stale row is remembered but not mirrored
        assert "0xold-111" in pipeline.ledger
        assert poller.watermark == 1010

    def test_second_pass_mirrors_nothing(self, make_pipeline):
        clob = FakeClobClient()

        async def scenario():
            pipeline = make_pipeline(clob)
            client = http_client([(200, [activity(1000, "0x1"), activity(1001, "0x2")])])
            poller = ActivityPoller(pipeline, TARGET, http_client=client, watermark=1000)
            async with pipeline:
                first = await poller.poll_once()
                second = await poller.poll_once()
                await pipeline.drain()
            return first, second

        assert asyncio.run(scenario()) == (2, 0)
        assert len(clob.posted) == 2

    def test_newest_first(self, make_pipeline):
        clob = FakeClobClient()

        async def scenario():
            pipeline = make_pipeline(clob)
            client = http_client([(200, [
                activity(1001, "0x1", asset="1"),
                activity(1003, "0x3", asset="3"),
                activity(1002, "0x2", asset="2"),
            ])])
            poller = ActivityPoller(pipeline, TARGET, http_client=client, watermark=1000)
            async with pipeline:
                await poller.poll_once()
                await pipeline.drain()

        asyncio.run(scenario())
        assert [args.token_id for args in clob.created] == ["3", "2", "1"]

    def test_watermark_never_moves_back(self, make_pipeline):
        async def scenario():
            client = http_client([(200, [activity(900, "0x1")])])
            poller = ActivityPoller(make_pipeline(), TARGET, http_client=client, watermark=1000)
            await poller.poll_once()
            return poller.watermark

        assert asyncio.run(scenario()) == 1000

    def test_http_error_skips_cycle(self, make_pipeline):
        async def scenario():
            client = http_client([(500, {"error": "boom"})])
            poller = ActivityPoller(make_pipeline(), TARGET, http_client=client, watermark=1000)
            forwarded = await poller.poll_once()
            return poller, forwarded

        poller, forwarded = asyncio.run(scenario())
        assert forwarded == 0
        assert poller.failed_polls == 1
        assert poller.watermark == 1000

    def test_transport_error_skips_cycle(self, make_pipeline):
        async def scenario():
            client = http_client([httpx.ConnectError("refused")])
            poller = ActivityPoller(make_pipeline(), TARGET, http_client=client)
            return await poller.fetch_activity(), poller

        records, poller = asyncio.run(scenario())
        assert records is None

    def test_run_keeps_polling_after_failures(self, make_pipeline):
        clob = FakeClobClient()

        async def scenario():
            pipeline = make_pipeline(clob)
            client = http_client([
                httpx.ConnectError("refused"),
                (503, {}),
                (200, [activity(1000, "0x1")]),
            ])
            poller = ActivityPoller(pipeline, TARGET, http_client=client, interval=0.01, watermark=1000)
            async with pipeline:
                task = asyncio.create_task(poller.run())
                while poller.trades_forwarded == 0:
                    await asyncio.sleep(0.01)
                poller.stop()
                await asyncio.wait_for(task, timeout=2)
                await pipeline.drain()
            return poller

        poller = asyncio.run(scenario())
        assert poller.failed_polls == 2
        assert poller.polls >= 3
        assert len(clob.posted) == 1
