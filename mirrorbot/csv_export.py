"""
CSV export of the target's recent trades
"""

import csv
import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import httpx

from config.mirror_settings import ACTIVITY_LIMIT, DATA_API_URL
from .activity_poller import fetch_trade_activity
from .models import ActivityRecord

logger = logging.getLogger(__name__)

CSV_FIELDS = [
    "timestamp",
    "datetime",
    "side",
    "price",
    "size",
    "usdcSize",
    "title",
    "outcome",
    "asset",
    "conditionId",
    "transactionHash",
    "trader",
]


def format_timestamp(unix_timestamp: Optional[int] = None) -> str:
    """UTC 'YYYY-MM-DD HH:MM:SS', now when no timestamp is given"""
    if unix_timestamp:
        moment = datetime.fromtimestamp(unix_timestamp, tz=timezone.utc)
    else:
        moment = datetime.now(timezone.utc)
    return moment.strftime("%Y-%m-%d %H:%M:%S")


def record_to_row(record: ActivityRecord) -> dict:
    return {
        "timestamp": record.timestamp,
        "datetime": format_timestamp(record.timestamp),
        "side": record.side,
        "price": record.price,
        "size": record.size,
        "usdcSize": record.usdc_size or 0,
        "title": record.title,
        "outcome": record.outcome,
        "asset": record.asset,
        "conditionId": record.condition_id,
        "transactionHash": record.transaction_hash,
        "trader": record.trader,
    }


def write_trades_csv(records: Iterable[ActivityRecord], output_file: str) -> int:
    """
    Write one row per trade; embedded quotes are doubled

    Returns:
        Number of rows written
    """
    path = Path(output_file)
    if path.parent != Path("."):
        path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=CSV_FIELDS, lineterminator="\n")
        writer.writeheader()
        for record in records:
            writer.writerow(record_to_row(record))
            count += 1
    return count


async def dump_recent_trades(
    http_client: httpx.AsyncClient,
    target_address: str,
    data_api_base: str = DATA_API_URL,
    limit: int = ACTIVITY_LIMIT,
    seconds_ago: Optional[int] = None,
    output_file: str = "recent_trades.csv",
) -> List[ActivityRecord]:
    """
    Fetch the target's activity and dump the trades to CSV

    Args:
        http_client: Client used for the activity request
        target_address: Wallet whose trades are dumped
        data_api_base: Data API base URL
        limit: Page size requested from the endpoint
        seconds_ago: Only keep trades newer than this many seconds (None keeps all)
        output_file: CSV path

    Returns:
        The trades written
    """
    records = await fetch_trade_activity(http_client, target_address, data_api_base, limit)
    if records is None:
        logger.error("Could not fetch activity, nothing dumped")
        return []

    if seconds_ago is not None:
        cutoff = int(time.time()) - seconds_ago
        records = [r for r in records if r.timestamp >= cutoff]

    if not records:
        logger.info("No trades to dump.")
        return []

    logger.info("Recent Trades:")
    for idx, record in enumerate(records, 1):
        logger.info(
            f"  {idx}. [{format_timestamp(record.timestamp)}] {record.side} "
            f"{record.size} @ {record.price} | {record.title} ({record.outcome})"
        )

    count = write_trades_csv(records, output_file)
    logger.info(f"Dumped {count} trades to {output_file}")
    return records
