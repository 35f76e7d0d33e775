"""
Trade reporting - every detection and mirror attempt as a log block,
plus one JSON line per event when a trade log file is configured.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, Optional

from .executor import MirrorResult
from .models import Trade

logger = logging.getLogger(__name__)


class TradeReporter:
    """Sink for structured trade records."""

    def __init__(self, log_file: Optional[str] = None):
        """
        Args:
            log_file: JSONL file to append to (None keeps records in the log only)
        """
        self.log_file = log_file
        if self.log_file:
            Path(self.log_file).parent.mkdir(parents=True, exist_ok=True)

        self.trades_detected = 0
        self.trades_skipped = 0
        self.fills_dropped = 0
        self.mirrors_ok = 0
        self.mirrors_failed = 0

    def log_event(self, event_type: str, data: Dict[str, Any]):
        """Append one structured event to the JSONL file."""
        if not self.log_file:
            return

        event = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event": event_type,
            **data,
        }
        try:
            with open(self.log_file, "a") as f:
                f.write(json.dumps(event, default=str) + "\n")
        except OSError as e:
            logger.error(f"Error writing trade log: {e}")

    def trade_detected(self, trade: Trade):
        self.trades_detected += 1
        outcome = f" ({trade.outcome_label})" if trade.outcome_label else ""

        logger.info("=" * 65)
        logger.info(f"TARGET TRADE DETECTED via {trade.source.value}: {trade.side.value}{outcome}")
        if trade.title:
            logger.info(f"  Market: \"{trade.title}\"")
        logger.info(f"  Side: {trade.side.value} | Price: {_fmt(trade.price, 4)} | Size: {_fmt(trade.size, 2)}")
        if trade.usdc_size is not None:
            logger.info(f"  USDC Value: ${trade.usdc_size:.2f}")
        logger.info(f"  Token ID: {trade.token_id}")
        logger.info(f"  Tx Hash: {trade.tx_hash}")
        if trade.block_number is not None:
            logger.info(f"  Block: {trade.block_number}")
        logger.info("=" * 65)

        self.log_event("detected", trade.to_dict())

    def trade_skipped(self, trade: Trade, reason: str):
        self.trades_skipped += 1
        logger.warning(f"Not mirroring {trade.trade_id}: {reason}")
        self.log_event("skipped", {**trade.to_dict(), "reason": reason})

    def fill_dropped(self, tx_hash: str, reason: str, details: Optional[Dict[str, Any]] = None):
        """A fill that never became a Trade (no single token leg)"""
        self.fills_dropped += 1
        logger.warning(f"Dropping fill in {tx_hash}: {reason}")
        self.log_event("dropped", {"tx_hash": tx_hash, "reason": reason, **(details or {})})

    def mirror_result(self, trade: Trade, result: MirrorResult, outcome_label: Optional[str] = None):
        if result.success:
            self.mirrors_ok += 1
            logger.info(
                f"Mirrored {trade.trade_id}: {result.side} {result.size} @ {result.price} "
                f"order={result.order_id} status={result.status}"
            )
        else:
            self.mirrors_failed += 1
            logger.error(f"Mirror failed for {trade.trade_id} at {result.stage}: {result.error}")

        data = result.to_dict()
        data["source"] = trade.source.value
        data["tx_hash"] = trade.tx_hash
        data["outcome"] = outcome_label or trade.outcome_label
        self.log_event("mirror", data)

    def get_stats(self) -> Dict[str, int]:
        return {
            "trades_detected": self.trades_detected,
            "trades_skipped": self.trades_skipped,
            "fills_dropped": self.fills_dropped,
            "mirrors_ok": self.mirrors_ok,
            "mirrors_failed": self.mirrors_failed,
        }


def _fmt(value: Optional[float], digits: int) -> str:
    if value is None:
        return "N/A"
    return f"{value:.{digits}f}"
