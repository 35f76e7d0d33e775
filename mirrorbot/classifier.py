"""
Trade Classifier
Works out direction and traded leg of an OrderFilled event for the target wallet
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .models import (
    SETTLEMENT_ASSET_ID,
    FeedSource,
    RawFillEvent,
    Trade,
    TradeSide,
    make_trade_id,
)

logger = logging.getLogger(__name__)

# USDC and conditional tokens both use 6 decimals
TOKEN_DECIMALS = 6


@dataclass(frozen=True)
class Classification:
    """Result of classifying one fill"""
    side: TradeSide
    token_id: Optional[str]
    is_maker: bool
    is_taker: bool
    size: Optional[float] = None
    price: Optional[float] = None
    usdc_amount: Optional[float] = None


def _is_settlement(asset_id: str) -> bool:
    return str(asset_id) == SETTLEMENT_ASSET_ID


def traded_token_id(event: RawFillEvent) -> Optional[str]:
    """
    Return the outcome token leg of a fill

    Exactly one leg must be the settlement sentinel; anything else does not
    describe a token/USDC swap and yields None.
    """
    maker_settles = _is_settlement(event.maker_asset_id)
    taker_settles = _is_settlement(event.taker_asset_id)
    if maker_settles == taker_settles:
        return None
    return str(event.taker_asset_id if maker_settles else event.maker_asset_id)


def classify_fill(event: RawFillEvent, target_address: str) -> Classification:
    """
    Classify a fill from the target's point of view

    Args:
        event: Decoded OrderFilled event
        target_address: Wallet being mirrored (any case)

    Returns:
        Classification; side is UNKNOWN when the target is not a party
        or the legs are not one token and one USDC
    """
    target = target_address.lower()
    is_maker = event.maker.lower() == target
    is_taker = event.taker.lower() == target

    token_id = traded_token_id(event)
    if token_id is None:
        logger.warning(
            f"Fill {event.tx_hash} has no single settlement leg "
            f"(maker asset {event.maker_asset_id}, taker asset {event.taker_asset_id})"
        )
        return Classification(TradeSide.UNKNOWN, None, is_maker, is_taker)

    if is_maker:
        # Maker giving USDC receives tokens
        side = TradeSide.BUY if _is_settlement(event.maker_asset_id) else TradeSide.SELL
    elif is_taker:
        # Taker receiving USDC gave tokens
        side = TradeSide.SELL if _is_settlement(event.taker_asset_id) else TradeSide.BUY
    else:
        logger.warning(f"Target {target_address} is neither maker nor taker in {event.tx_hash}")
        return Classification(TradeSide.UNKNOWN, token_id, is_maker, is_taker)

    if _is_settlement(event.maker_asset_id):
        usdc_raw, token_raw = event.maker_amount_filled, event.taker_amount_filled
    else:
        usdc_raw, token_raw = event.taker_amount_filled, event.maker_amount_filled

    size = token_raw / 10 ** TOKEN_DECIMALS
    usdc_amount = usdc_raw / 10 ** TOKEN_DECIMALS
    price = usdc_amount / size if size > 0 else 0.0

    return Classification(
        side=side,
        token_id=token_id,
        is_maker=is_maker,
        is_taker=is_taker,
        size=size,
        price=price,
        usdc_amount=usdc_amount,
    )


def trade_from_fill(event: RawFillEvent, target_address: str) -> Optional[Trade]:
    """Build a Trade from a fill, or None when no token leg can be identified"""
    result = classify_fill(event, target_address)
    if result.token_id is None:
        return None

    return Trade(
        trade_id=make_trade_id(event.tx_hash, result.token_id),
        source=FeedSource.EVENT_STREAM,
        side=result.side,
        token_id=result.token_id,
        price=result.price,
        size=result.size,
        usdc_size=result.usdc_amount,
        tx_hash=event.tx_hash,
        block_number=event.block_number,
    )
