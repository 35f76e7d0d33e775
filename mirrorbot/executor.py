"""
Order Mirror for Polymarket
Turns a detected trade into a normalized CLOB order and submits it
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Dict, Any

from py_clob_client.clob_types import OrderArgs, OrderType
from py_clob_client.order_builder.constants import BUY, SELL

from config.mirror_settings import ORDER_TYPE
from .models import Trade, TradeSide

logger = logging.getLogger(__name__)

PRICE_TICK = Decimal("0.001")
SIZE_STEP = Decimal("0.01")
MIN_PRICE = Decimal("0.01")
MAX_PRICE = Decimal("0.99")

_SIDE_MAP = {
    "BUY": BUY,
    "SELL": SELL,
}


class OrderValidationError(ValueError):
    """Order parameters that must not reach the exchange"""


@dataclass(frozen=True)
class OrderParams:
    """Normalized order parameters"""
    token_id: str
    side: str
    price: float
    size: float


@dataclass
class MirrorResult:
    """Outcome of one mirror attempt"""
    success: bool
    token_id: Optional[str]
    side: Optional[str]
    price: Optional[float] = None
    size: Optional[float] = None
    trade_id: Optional[str] = None
    order_id: Optional[str] = None
    status: Optional[str] = None
    stage: str = "post"
    error: Optional[str] = None
    response: Optional[Dict[str, Any]] = None
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "trade_id": self.trade_id,
            "token_id": self.token_id,
            "side": self.side,
            "price": self.price,
            "size": self.size,
            "order_id": self.order_id,
            "status": self.status,
            "stage": self.stage,
            "error": self.error,
        }


def _to_decimal(name: str, value: Any) -> Decimal:
    if value is None or value == "" or isinstance(value, bool):
        raise OrderValidationError(f"{name} is missing")
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise OrderValidationError(f"{name} is not numeric: {value!r}")
    if not number.is_finite():
        raise OrderValidationError(f"{name} is not finite: {value!r}")
    return number


def normalize_price(price: Any) -> float:
    """
    Round to the 0.001 tick and clamp into [0.01, 0.99]

    Rounding is half-up on the decimal form of the input, so 0.4565 -> 0.457.
    """
    rounded = _to_decimal("price", price).quantize(PRICE_TICK, rounding=ROUND_HALF_UP)
    return float(min(MAX_PRICE, max(MIN_PRICE, rounded)))


def normalize_size(size: Any) -> float:
    """Round to 2 decimals, half-up"""
    return float(_to_decimal("size", size).quantize(SIZE_STEP, rounding=ROUND_HALF_UP))


def normalize_order(token_id: Any, side: Any, size: Any, price: Any) -> OrderParams:
    """
    Validate and normalize order inputs

    Raises:
        OrderValidationError: On a missing field, a non-numeric amount,
            a side other than BUY/SELL or a size that rounds to zero
    """
    if token_id is None or str(token_id).strip() == "":
        raise OrderValidationError("token_id is missing")

    if isinstance(side, TradeSide):
        side = side.value
    if not isinstance(side, str) or side.upper() not in _SIDE_MAP:
        raise OrderValidationError(f"side must be BUY or SELL, got {side!r}")

    rounded_size = normalize_size(size)
    if rounded_size <= 0:
        raise OrderValidationError(f"size must be > 0 after rounding, got {size!r}")

    return OrderParams(
        token_id=str(token_id).strip(),
        side=side.upper(),
        price=normalize_price(price),
        size=rounded_size,
    )


def _error_details(exc: Exception) -> str:
    """Pull the API response body out of a client exception when there is one"""
    parts = [str(exc)]
    status = getattr(exc, "status_code", None)
    body = getattr(exc, "error_msg", None)
    response = getattr(exc, "response", None)
    if body is None and response is not None:
        body = getattr(response, "text", None)
    if status is not None:
        parts.append(f"status={status}")
    if body:
        parts.append(f"body={body}")
    return " | ".join(parts)


class OrderMirror:
    """
    Submits mirrored orders through a CLOB client

    Execution is create (sign) then post as immediate-or-cancel. A failure in
    either step is logged and returned as a failed MirrorResult; nothing here
    raises into the feeds.
    """

    def __init__(self, clob_client, order_type: str = ORDER_TYPE, fee_rate_bps: int = 0):
        self.client = clob_client
        self.order_type = order_type.upper()
        self.fee_rate_bps = fee_rate_bps
        self.attempts = 0
        self.successes = 0

    async def mirror(
        self,
        token_id: Any,
        side: Any,
        size: Any,
        price: Any,
        trade_id: Optional[str] = None,
    ) -> MirrorResult:
        """Normalize and submit one order"""
        self.attempts += 1
        side_text = side.value if isinstance(side, TradeSide) else side

        try:
            params = normalize_order(token_id, side, size, price)
        except OrderValidationError as e:
            logger.error(
                f"Cannot mirror trade {trade_id or ''}: {e} "
                f"(asset: {token_id}, side: {side_text}, size: {size}, price: {price})"
            )
            return MirrorResult(
                success=False,
                token_id=str(token_id) if token_id is not None else None,
                side=str(side_text) if side_text is not None else None,
                trade_id=trade_id,
                stage="validation",
                error=str(e),
            )

        logger.info(
            f"Mirroring {params.side} {params.size:.2f} @ ${params.price:.3f} "
            f"token {params.token_id[:20]}..."
        )
        result = MirrorResult(
            success=False,
            token_id=params.token_id,
            side=params.side,
            price=params.price,
            size=params.size,
            trade_id=trade_id,
        )

        order_args = OrderArgs(
            token_id=params.token_id,
            price=params.price,
            size=params.size,
            side=_SIDE_MAP[params.side],
            fee_rate_bps=self.fee_rate_bps,
        )

        try:
            signed_order = await asyncio.to_thread(self.client.create_order, order_args)
        except Exception as e:
            result.stage = "create"
            result.error = _error_details(e)
            logger.error(f"Failed to create order for {params.token_id[:20]}...: {result.error}")
            return result

        order_type = getattr(OrderType, self.order_type, self.order_type)
        try:
            response = await asyncio.to_thread(self.client.post_order, signed_order, order_type)
        except Exception as e:
            result.error = _error_details(e)
            logger.error(f"Failed to post order for {params.token_id[:20]}...: {result.error}")
            return result

        if not isinstance(response, dict):
            result.error = f"Unexpected response: {response!r}"
            logger.error(f"Order failed: {result.error}")
            return result

        result.response = response
        result.order_id = response.get("orderID") or response.get("orderId")
        result.status = response.get("status")
        if response.get("success"):
            result.success = True
            self.successes += 1
            logger.info(f"Order executed: {result.order_id} status={result.status}")
        else:
            result.error = response.get("errorMsg") or response.get("error") or "no success flag in response"
            logger.warning(f"Order failed: {result.error} ({response})")

        return result

    async def mirror_trade(self, trade: Trade) -> MirrorResult:
        return await self.mirror(
            trade.token_id,
            trade.side,
            trade.size,
            trade.price,
            trade_id=trade.trade_id,
        )
