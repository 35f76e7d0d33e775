"""
Polymarket Trade Mirror Module
Follow a wallet's fills and replicate them through the CLOB
"""

from .models import (
    ActivityRecord,
    FeedSource,
    RawFillEvent,
    Trade,
    TradeSide,
    make_trade_id,
)
from .classifier import classify_fill, trade_from_fill, Classification
from .ledger import DedupLedger
from .outcomes import OutcomeResolver
from .executor import (
    OrderMirror,
    OrderValidationError,
    MirrorResult,
    normalize_order,
)
from .reporting import TradeReporter
from .pipeline import MirrorPipeline
from .event_stream import EventStreamFeed
from .activity_poller import ActivityPoller, fetch_trade_activity
from .clob import PaperClobClient, build_clob_client

__all__ = [
    'ActivityRecord',
    'FeedSource',
    'RawFillEvent',
    'Trade',
    'TradeSide',
    'make_trade_id',
    'classify_fill',
    'trade_from_fill',
    'Classification',
    'DedupLedger',
    'OutcomeResolver',
    'OrderMirror',
    'OrderValidationError',
    'MirrorResult',
    'normalize_order',
    'TradeReporter',
    'MirrorPipeline',
    'EventStreamFeed',
    'ActivityPoller',
    'fetch_trade_activity',
    'PaperClobClient',
    'build_clob_client',
]
