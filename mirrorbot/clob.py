"""
Polymarket CLOB client setup.

Live mode derives L2 API credentials from the private key; dry runs get a
paper client that fills every order in memory.

Key concepts:
- Private Key: signs orders (EIP-712) and derives the API credentials
- Funder Address: the Polymarket proxy wallet holding the funds
- Signature Type 2: proxy wallets created through polymarket.com
"""

import logging
import uuid

from py_clob_client.client import ClobClient
from py_clob_client.constants import POLYGON

from config.mirror_settings import MirrorSettings

logger = logging.getLogger(__name__)


class PaperClobClient:
    """Stand-in for ClobClient when DRY_RUN is on."""

    def __init__(self):
        self.orders = {}
        logger.info("Using PaperClobClient (DRY_RUN=true), no orders reach the exchange")

    def get_address(self):
        return "0xPAPER_TRADING_WALLET"

    def create_order(self, order_args, options=None):
        return {
            "token_id": order_args.token_id,
            "price": order_args.price,
            "size": order_args.size,
            "side": order_args.side,
            "paper": True,
        }

    def post_order(self, signed_order, order_type=None):
        order_id = f"PAPER_{uuid.uuid4().hex[:8]}"
        self.orders[order_id] = {
            "success": True,
            "orderID": order_id,
            "status": "matched",
            "orderType": str(order_type),
            **signed_order,
        }
        return self.orders[order_id]


def build_clob_client(settings: MirrorSettings):
    """
    Get a client able to create and post orders.

    Args:
        settings: Validated settings

    Returns:
        PaperClobClient in dry-run mode, otherwise an authenticated ClobClient

    Raises:
        RuntimeError: If deriving API credentials fails
    """
    if settings.dry_run:
        return PaperClobClient()

    funder = settings.funder_address
    logger.info("Creating Polymarket CLOB client...")
    logger.info(f"  Host: {settings.clob_api_url}")
    logger.info(f"  Chain ID: {POLYGON}")
    logger.info(f"  Signature Type: {settings.signature_type}")
    logger.info(f"  Funder: {funder[:10] + '...' + funder[-6:] if funder else 'N/A'}")

    client = ClobClient(
        host=settings.clob_api_url,
        key=settings.private_key,
        chain_id=POLYGON,
        signature_type=settings.signature_type,
        funder=funder or None,
    )

    try:
        credentials = client.create_or_derive_api_creds()
    except Exception as exc:
        raise RuntimeError(f"Deriving CLOB API credentials failed: {exc}") from exc
    client.set_api_creds(credentials)

    logger.info("CLOB client ready for trading")
    logger.info(f"  API Key: {credentials.api_key[:8]}...{credentials.api_key[-4:]}")
    logger.info(f"  Wallet: {client.get_address()}")
    return client
