"""
Event Stream for Polymarket Trade Mirroring
Subscribes to OrderFilled logs involving the target wallet over a Polygon websocket
"""

import asyncio
import json
import logging
from typing import Optional, Callable, Dict, Any, Tuple

import websockets
from eth_abi import decode
from eth_abi.exceptions import DecodingError
from web3 import Web3

from config.mirror_settings import EXCHANGES, POLYGON_WSS_URL, RECONNECT_DELAY
from .classifier import trade_from_fill
from .models import RawFillEvent
from .pipeline import MirrorPipeline

logger = logging.getLogger(__name__)

ORDER_FILLED_SIGNATURE = "OrderFilled(bytes32,address,address,uint256,uint256,uint256,uint256,uint256)"
ORDER_FILLED_TOPIC = Web3.to_hex(Web3.keccak(text=ORDER_FILLED_SIGNATURE))

# makerAssetId, takerAssetId, makerAmountFilled, takerAmountFilled, fee
ORDER_FILLED_DATA_TYPES = ["uint256"] * 5


class SubscriptionError(Exception):
    """The node rejected an eth_subscribe request"""


def address_topic(address: str) -> str:
    """Left-pad an address to a 32-byte topic"""
    return "0x" + "0" * 24 + address.lower()[2:]


def _topic_address(topic: str) -> str:
    return Web3.to_checksum_address("0x" + topic[-40:])


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value or 0)


def decode_order_filled(log: Dict[str, Any], exchange: str = "") -> RawFillEvent:
    """
    Decode an OrderFilled log as delivered by eth_subscription

    topics[1] = orderHash, topics[2] = maker, topics[3] = taker;
    the five uint256 fields are ABI encoded in data.

    Raises:
        ValueError: If the log is not an OrderFilled log
    """
    topics = log.get("topics") or []
    if len(topics) < 4 or topics[0].lower() != ORDER_FILLED_TOPIC.lower():
        raise ValueError(f"not an OrderFilled log: {topics[:1]}")

    data = log.get("data", "0x")
    data_bytes = bytes.fromhex(data[2:] if data.startswith("0x") else data)
    maker_asset_id, taker_asset_id, maker_amount, taker_amount, fee = decode(
        ORDER_FILLED_DATA_TYPES, data_bytes
    )

    return RawFillEvent(
        order_hash=topics[1],
        maker=_topic_address(topics[2]),
        taker=_topic_address(topics[3]),
        maker_asset_id=str(maker_asset_id),
        taker_asset_id=str(taker_asset_id),
        maker_amount_filled=maker_amount,
        taker_amount_filled=taker_amount,
        fee=fee,
        block_number=_to_int(log.get("blockNumber")),
        tx_hash=log.get("transactionHash", ""),
        log_index=_to_int(log.get("logIndex")),
        exchange=exchange,
    )


class EventStreamFeed:
    """
    Live feed of the target's fills

    Four subscriptions: each exchange contract, with the target filtered by the
    node as maker or as taker. When the socket closes or errors the feed waits
    the full reconnect delay and subscribes again, until stop() is called.
    """

    def __init__(
        self,
        pipeline: MirrorPipeline,
        target_address: str,
        wss_url: str = POLYGON_WSS_URL,
        exchanges: Optional[Dict[str, str]] = None,
        reconnect_delay: float = RECONNECT_DELAY,
        connect: Callable = websockets.connect,
    ):
        """
        Args:
            pipeline: Shared pipeline (ledger + mirror queue)
            target_address: Wallet to follow
            wss_url: Polygon websocket endpoint
            exchanges: name -> contract address (defaults to both CTF exchanges)
            reconnect_delay: Seconds to wait before resubscribing
            connect: Websocket connect factory
        """
        self.pipeline = pipeline
        self.target_address = Web3.to_checksum_address(target_address)
        self.wss_url = wss_url
        self.exchanges = exchanges or dict(EXCHANGES)
        self.reconnect_delay = reconnect_delay
        self._connect = connect

        self._ws = None
        self._stop = asyncio.Event()
        self._subscriptions: Dict[str, Tuple[str, str]] = {}
        self._pending: Dict[int, Tuple[str, str]] = {}

        self.connections = 0
        self.events_received = 0
        self.events_dropped = 0

    def subscription_requests(self):
        """eth_subscribe payloads as (request, (exchange, role))"""
        target_topic = address_topic(self.target_address)
        request_id = 0
        for name, address in self.exchanges.items():
            for role in ("maker", "taker"):
                request_id += 1
                if role == "maker":
                    topics = [ORDER_FILLED_TOPIC, None, target_topic]
                else:
                    topics = [ORDER_FILLED_TOPIC, None, None, target_topic]
                request = {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "method": "eth_subscribe",
                    "params": ["logs", {"address": Web3.to_checksum_address(address), "topics": topics}],
                }
                yield request, (name, role)

    async def run(self):
        """Subscribe and process events until stop() is called"""
        self._stop.clear()
        logger.info(f"Target Address: {self.target_address}")

        while not self._stop.is_set():
            try:
                await self._run_connection()
                if not self._stop.is_set():
                    logger.error(f"WebSocket closed. Reconnecting in {self.reconnect_delay:.0f}s...")
            except Exception as e:
                if self._stop.is_set():
                    break
                logger.error(f"WebSocket error: {e}. Reconnecting in {self.reconnect_delay:.0f}s...")
            finally:
                self._ws = None

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.reconnect_delay)
            except asyncio.TimeoutError:
                pass

        logger.info("Event stream stopped")

    async def _run_connection(self):
        logger.info("Connecting to Polygon WebSocket...")
        async with self._connect(self.wss_url) as ws:
            self._ws = ws
            self.connections += 1
            self._subscriptions.clear()
            self._pending.clear()
            logger.info("WebSocket connected to Polygon")

            for request, key in self.subscription_requests():
                self._pending[request["id"]] = key
                await ws.send(json.dumps(request))

            logger.info("Subscribing to filtered OrderFilled events...")
            for name, address in self.exchanges.items():
                logger.info(f"  {name}: {address}")

            async for message in ws:
                if self._stop.is_set():
                    break
                await self._on_message(message)

    async def _on_message(self, message):
        try:
            payload = json.loads(message)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-JSON message: {str(message)[:80]}")
            return

        if "id" in payload and payload.get("id") in self._pending:
            key = self._pending.pop(payload["id"])
            if "error" in payload:
                raise SubscriptionError(f"{key[0]}/{key[1]}: {payload['error']}")
            self._subscriptions[payload.get("result")] = key
            logger.info(f"Subscribed to {key[0]} fills with target as {key[1]}")
            if not self._pending:
                logger.info("Listening for trades...")
            return

        if payload.get("method") != "eth_subscription":
            return

        params = payload.get("params") or {}
        log = params.get("result") or {}
        exchange, _ = self._subscriptions.get(params.get("subscription"), ("", ""))
        await self.handle_log(log, exchange)

    async def handle_log(self, log: Dict[str, Any], exchange: str = "") -> bool:
        """
        Turn one pushed log into a Trade and hand it to the pipeline

        Returns:
            True if the trade was queued for mirroring
        """
        self.events_received += 1
        if log.get("removed"):
            logger.warning(f"Ignoring removed log in {log.get('transactionHash')}")
            return False

        try:
            event = decode_order_filled(log, exchange)
        except (ValueError, TypeError, DecodingError) as e:
            self.events_dropped += 1
            logger.error(f"Error decoding OrderFilled event: {e}")
            return False

        trade = trade_from_fill(event, self.target_address)
        if trade is None:
            self.events_dropped += 1
            self.pipeline.reporter.fill_dropped(
                event.tx_hash,
                "could not identify the traded token",
                {
                    "maker": event.maker,
                    "taker": event.taker,
                    "maker_asset_id": event.maker_asset_id,
                    "taker_asset_id": event.taker_asset_id,
                    "exchange": event.exchange,
                },
            )
            return False

        logger.debug(
            f"Fill on {event.exchange or 'exchange'} block {event.block_number}: "
            f"order {event.order_hash} maker {event.maker} taker {event.taker} fee {event.fee}"
        )
        return await self.pipeline.handle(trade)

    async def stop(self):
        """Stop the loop and close the socket"""
        self._stop.set()
        if self._ws is not None:
            await self._ws.close()
