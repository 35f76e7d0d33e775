"""
Activity Poller for Polymarket Trade Mirroring
Polls the Data API activity feed of the target wallet as a fallback feed
"""

import asyncio
import logging
import time
from typing import Optional, List, Any

import httpx

from config.mirror_settings import (
    ACTIVITY_LIMIT,
    DATA_API_URL,
    POLL_INTERVAL,
    WATERMARK_TOLERANCE,
)
from .models import ActivityRecord, FeedSource, Trade, TradeSide, make_trade_id
from .pipeline import MirrorPipeline

logger = logging.getLogger(__name__)


def _as_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def trade_from_activity(record: ActivityRecord) -> Trade:
    """Activity rows already carry side, price and size"""
    side_text = (record.side or "").upper()
    side = TradeSide(side_text) if side_text in ("BUY", "SELL") else TradeSide.UNKNOWN

    return Trade(
        trade_id=make_trade_id(record.transaction_hash, record.asset),
        source=FeedSource.ACTIVITY_POLL,
        side=side,
        token_id=record.asset,
        price=_as_float(record.price),
        size=_as_float(record.size),
        usdc_size=_as_float(record.usdc_size),
        tx_hash=record.transaction_hash,
        outcome_label=record.outcome or None,
        title=record.title,
        timestamp=float(record.timestamp),
    )


async def fetch_trade_activity(
    http_client: httpx.AsyncClient,
    target_address: str,
    data_api_base: str = DATA_API_URL,
    limit: int = ACTIVITY_LIMIT,
) -> Optional[List[ActivityRecord]]:
    """
    Fetch a wallet's recent trades from the Data API

    Returns:
        TRADE rows, or None when the request failed
    """
    url = f"{data_api_base}/activity"
    params = {"user": target_address, "limit": limit}

    try:
        response = await http_client.get(url, params=params)
    except httpx.HTTPError as e:
        logger.error(f"Error fetching activity: {e}")
        return None

    if response.status_code != 200:
        logger.error(f"Activity API error: {response.status_code} {response.reason_phrase}")
        return None

    try:
        items = response.json()
    except ValueError as e:
        logger.error(f"Activity API returned invalid JSON: {e}")
        return None

    if not isinstance(items, list):
        logger.error(f"Unexpected activity payload: {type(items).__name__}")
        return None

    records = []
    for item in items:
        if not isinstance(item, dict) or item.get("type") != "TRADE":
            continue
        try:
            records.append(ActivityRecord.from_api(item))
        except (TypeError, ValueError) as e:
            logger.warning(f"Skipping malformed activity row: {e}")
    return records


class ActivityPoller:
    """
    Polls /activity on a fixed interval and forwards new trades

    Rows older than watermark - tolerance are marked as seen without being
    mirrored; they are backlog the endpoint keeps returning. Poll passes never
    overlap: the next one starts after the previous pass returns.
    """

    def __init__(
        self,
        pipeline: MirrorPipeline,
        target_address: str,
        http_client: Optional[httpx.AsyncClient] = None,
        data_api_base: str = DATA_API_URL,
        interval: float = POLL_INTERVAL,
        limit: int = ACTIVITY_LIMIT,
        tolerance: int = WATERMARK_TOLERANCE,
        watermark: Optional[int] = None,
    ):
        """
        Args:
            pipeline: Shared pipeline (ledger + mirror queue)
            target_address: Wallet whose activity is polled
            http_client: Async HTTP client, one is created if omitted
            data_api_base: Data API base URL
            interval: Seconds between poll starts
            limit: Page size requested from the endpoint
            tolerance: Seconds below the watermark still treated as new
            watermark: Starting watermark, defaults to now
        """
        self.pipeline = pipeline
        self.target_address = target_address
        self.http_client = http_client or httpx.AsyncClient(timeout=30)
        self.data_api_base = data_api_base
        self.interval = interval
        self.limit = limit
        self.tolerance = tolerance
        self.watermark = int(time.time()) if watermark is None else watermark

        self.polls = 0
        self.failed_polls = 0
        self.trades_forwarded = 0
        self._stop = asyncio.Event()

    async def fetch_activity(self) -> Optional[List[ActivityRecord]]:
        return await fetch_trade_activity(
            self.http_client, self.target_address, self.data_api_base, self.limit
        )

    async def poll_once(self) -> int:
        """
        Run one poll pass

        Returns:
            Number of trades forwarded to the pipeline
        """
        self.polls += 1
        records = await self.fetch_activity()
        if records is None:
            self.failed_polls += 1
            return 0

        records.sort(key=lambda r: r.timestamp, reverse=True)
        cutoff = self.watermark - self.tolerance
        forwarded = 0

        for record in records:
            if not record.transaction_hash or not record.asset:
                logger.warning(f"Activity row without tx hash or asset at {record.timestamp}")
                continue

            trade = trade_from_activity(record)
            if not self.pipeline.admit(trade.trade_id):
                continue

            if record.timestamp < cutoff:
                # Backlog from before the watermark
                continue

            if await self.pipeline.submit(trade):
                forwarded += 1

        if records and records[0].timestamp > self.watermark:
            self.watermark = records[0].timestamp

        self.trades_forwarded += forwarded
        return forwarded

    async def run(self):
        """Poll until stop() is called"""
        self._stop.clear()
        logger.info(f"Starting to poll for trades every {self.interval * 1000:.0f}ms")
        logger.info(f"Watching: {self.target_address}")
        logger.info(f"Using Data API: {self.data_api_base}/activity")

        loop = asyncio.get_running_loop()
        while not self._stop.is_set():
            started = loop.time()
            try:
                await self.poll_once()
            except Exception as e:
                self.failed_polls += 1
                logger.error(f"Error in poll cycle: {e}")

            delay = max(0.0, self.interval - (loop.time() - started))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=delay)
            except asyncio.TimeoutError:
                pass

        logger.info("Activity polling stopped")

    def stop(self):
        self._stop.set()

    async def close(self):
        await self.http_client.aclose()
