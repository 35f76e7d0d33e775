"""
Trade records flowing through the mirror pipeline
Raw fills from the chain, activity rows from the Data API and the unified Trade
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any

# Asset id used by the CTF exchanges for the USDC leg of a fill
SETTLEMENT_ASSET_ID = "0"


class TradeSide(Enum):
    """Trade direction from the target's point of view"""
    BUY = "BUY"
    SELL = "SELL"
    UNKNOWN = "UNKNOWN"


class FeedSource(Enum):
    """Which feed detected the trade"""
    EVENT_STREAM = "event_stream"
    ACTIVITY_POLL = "activity_poll"


def make_trade_id(tx_hash: str, token_id: str) -> str:
    """Deterministic dedup key shared by both feeds"""
    return f"{tx_hash.lower()}-{token_id}"


@dataclass(frozen=True)
class RawFillEvent:
    """Decoded OrderFilled log"""
    order_hash: str
    maker: str
    taker: str
    maker_asset_id: str
    taker_asset_id: str
    maker_amount_filled: int
    taker_amount_filled: int
    fee: int
    block_number: int
    tx_hash: str
    log_index: int = 0
    exchange: str = ""


@dataclass(frozen=True)
class ActivityRecord:
    """One row of the Data API /activity response"""
    timestamp: int
    type: str
    side: str
    price: Any
    size: Any
    usdc_size: Any
    asset: str
    condition_id: str
    transaction_hash: str
    title: str = ""
    outcome: str = ""
    proxy_wallet: str = ""
    name: str = ""
    pseudonym: str = ""

    @property
    def is_trade(self) -> bool:
        return self.type == "TRADE"

    @property
    def trader(self) -> str:
        return self.name or self.pseudonym or self.proxy_wallet or ""

    @classmethod
    def from_api(cls, item: Dict[str, Any]) -> "ActivityRecord":
        """Build from the camelCase JSON the Data API returns"""
        return cls(
            timestamp=int(item.get("timestamp") or 0),
            type=item.get("type", ""),
            side=item.get("side", ""),
            price=item.get("price"),
            size=item.get("size"),
            usdc_size=item.get("usdcSize"),
            asset=str(item.get("asset") or ""),
            condition_id=item.get("conditionId", ""),
            transaction_hash=item.get("transactionHash", ""),
            title=item.get("title") or "",
            outcome=item.get("outcome") or "",
            proxy_wallet=item.get("proxyWallet") or "",
            name=item.get("name") or "",
            pseudonym=item.get("pseudonym") or "",
        )


@dataclass(frozen=True)
class Trade:
    """Unified downstream record, read-only once built by a feed"""
    trade_id: str
    source: FeedSource
    side: TradeSide
    token_id: str
    price: Optional[float]
    size: Optional[float]
    tx_hash: str
    block_number: Optional[int] = None
    outcome_label: Optional[str] = None
    title: str = ""
    usdc_size: Optional[float] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def mirrorable(self) -> bool:
        return self.side in (TradeSide.BUY, TradeSide.SELL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "trade_id": self.trade_id,
            "source": self.source.value,
            "side": self.side.value,
            "token_id": self.token_id,
            "price": self.price,
            "size": self.size,
            "usdc_size": self.usdc_size,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "outcome": self.outcome_label,
            "title": self.title,
            "timestamp": self.timestamp,
        }
