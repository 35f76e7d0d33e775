#!/usr/bin/env python3
"""
Polymarket Trade Mirror
=======================

Follow a wallet on Polygon and submit the same orders it fills, as
immediate-or-cancel orders on the Polymarket CLOB.

Usage:
    python copymirror.py --help
    python copymirror.py run                      # Both feeds, dry run
    python copymirror.py run --live               # Submit real orders
    python copymirror.py run --feeds poll         # Activity polling only
    python copymirror.py dump --seconds 60        # Recent trades to CSV
    python copymirror.py check                    # Validate configuration

Configuration (.env file or environment):
    TARGET_ADDRESS   - Wallet to mirror (required)
    PRIVATE_KEY      - Key that signs mirrored orders (required with --live)
    FUNDER_ADDRESS   - Your Polymarket proxy wallet (required with --live)
    POLYGON_WSS_URL  - Polygon websocket endpoint (optional)
"""

import sys
import signal
import asyncio
import logging
import argparse
from datetime import datetime
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import httpx
import websockets

from config.mirror_settings import (
    ConfigError,
    MirrorSettings,
    load_settings,
)

from mirrorbot import (
    ActivityPoller,
    DedupLedger,
    EventStreamFeed,
    MirrorPipeline,
    OrderMirror,
    OutcomeResolver,
    TradeReporter,
    build_clob_client,
)
from mirrorbot.csv_export import dump_recent_trades


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None):
    """Configure logging"""
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers
    )

    return logging.getLogger(__name__)


class TradeMirrorBot:
    """
    Wires the feeds, the shared pipeline and the order mirror together:
    - Event stream (OrderFilled logs)
    - Activity poller (Data API fallback)
    - Order mirror behind a bounded worker queue
    """

    def __init__(
        self,
        settings: MirrorSettings,
        clob_client=None,
        http_client: Optional[httpx.AsyncClient] = None,
        connect=websockets.connect,
    ):
        self.settings = settings
        self.logger = logging.getLogger(self.__class__.__name__)
        self.http_client = http_client or httpx.AsyncClient(timeout=30)

        self.mirror = OrderMirror(
            clob_client if clob_client is not None else build_clob_client(settings),
            order_type=settings.order_type,
        )
        self.pipeline = MirrorPipeline(
            mirror=self.mirror,
            ledger=DedupLedger(settings.seen_capacity),
            resolver=OutcomeResolver(
                self.http_client,
                clob_api_base=settings.clob_api_url,
                data_api_base=settings.data_api_url,
            ),
            reporter=TradeReporter(settings.trade_log_file or None),
            workers=settings.mirror_workers,
        )

        self.event_stream = None
        if "events" in settings.feeds:
            self.event_stream = EventStreamFeed(
                self.pipeline,
                settings.target_address,
                wss_url=settings.polygon_wss_url,
                reconnect_delay=settings.reconnect_delay,
                connect=connect,
            )

        self.poller = None
        if "poll" in settings.feeds:
            self.poller = ActivityPoller(
                self.pipeline,
                settings.target_address,
                http_client=self.http_client,
                data_api_base=settings.data_api_url,
                interval=settings.poll_interval,
                limit=settings.activity_limit,
            )

        self.start_time = None
        self.tasks = []
        self._stop: Optional[asyncio.Event] = None

    def request_stop(self):
        if self._stop is not None:
            self.logger.info("Shutdown signal received...")
            self._stop.set()

    async def run(self):
        """Run the feeds until interrupted"""
        self.start_time = datetime.now()
        self._stop = asyncio.Event()

        self.logger.info("=" * 60)
        self.logger.info("POLYMARKET TRADE MIRROR")
        self.logger.info("=" * 60)
        self.logger.info(f"Target wallet: {self.settings.target_address}")
        self.logger.info(f"Feeds: {', '.join(self.settings.feeds)}")
        self.logger.info(f"Order type: {self.settings.order_type}")
        self.logger.info(f"Mode: {'DRY RUN' if self.settings.dry_run else 'LIVE'}")
        self.logger.info("=" * 60)

        loop = asyncio.get_running_loop()
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_stop)
                installed.append(sig)
            except NotImplementedError:
                signal.signal(sig, lambda signum, frame: loop.call_soon_threadsafe(self.request_stop))

        try:
            async with self.pipeline:
                self.tasks = []
                if self.event_stream is not None:
                    self.tasks.append(asyncio.create_task(self.event_stream.run(), name="event-stream"))
                if self.poller is not None:
                    self.tasks.append(asyncio.create_task(self.poller.run(), name="activity-poller"))

                await self._stop.wait()

                if self.event_stream is not None:
                    await self.event_stream.stop()
                if self.poller is not None:
                    self.poller.stop()
                await asyncio.gather(*self.tasks, return_exceptions=True)
        finally:
            for sig in installed:
                loop.remove_signal_handler(sig)
            await self.http_client.aclose()

        self.print_stats()

    def print_stats(self):
        runtime = datetime.now() - self.start_time if self.start_time else None
        stats = self.pipeline.reporter.get_stats()

        self.logger.info("=" * 60)
        self.logger.info("FINAL STATISTICS")
        self.logger.info("=" * 60)
        self.logger.info(f"Runtime: {runtime}")
        self.logger.info(f"Trades detected: {stats['trades_detected']}")
        self.logger.info(f"Trades skipped: {stats['trades_skipped']}")
        self.logger.info(f"Fills dropped: {stats['fills_dropped']}")
        self.logger.info(f"Orders mirrored: {stats['mirrors_ok']}")
        self.logger.info(f"Orders failed: {stats['mirrors_failed']}")
        self.logger.info("=" * 60)


def _settings_from_args(args) -> MirrorSettings:
    try:
        settings = load_settings(args.env_file)
    except ConfigError as e:
        setup_logging().error(f"Invalid configuration: {e}")
        sys.exit(1)
    if getattr(args, "target", None):
        settings.target_address = args.target
    if getattr(args, "live", False):
        settings.dry_run = False
    if getattr(args, "feeds", None):
        settings.feeds = [f.strip().lower() for f in args.feeds.split(",") if f.strip()]
    return settings


def cmd_run(args):
    """Start mirroring"""
    settings = _settings_from_args(args)
    logger = setup_logging(settings.log_level, settings.log_file)

    try:
        settings.require_valid()
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    if not settings.dry_run:
        logger.warning("LIVE MODE - Real orders will be submitted!")

    try:
        bot = TradeMirrorBot(settings)
    except RuntimeError as e:
        logger.error(f"Failed to set up CLOB client: {e}")
        sys.exit(1)

    asyncio.run(bot.run())


def cmd_dump(args):
    """Dump the target's recent trades to CSV"""
    settings = _settings_from_args(args)
    logger = setup_logging(settings.log_level, None)

    if not settings.target_address:
        logger.error("TARGET_ADDRESS is required")
        sys.exit(1)

    async def _dump():
        async with httpx.AsyncClient(timeout=30) as client:
            return await dump_recent_trades(
                client,
                settings.target_address,
                data_api_base=settings.data_api_url,
                limit=settings.activity_limit,
                seconds_ago=args.seconds,
                output_file=args.output,
            )

    asyncio.run(_dump())


def cmd_check(args):
    """Validate configuration"""
    settings = _settings_from_args(args)
    settings.print_summary()

    is_valid, errors = settings.validate()
    if not is_valid:
        print("\nConfiguration errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)
    print("\nConfiguration OK")


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Polymarket Trade Mirror",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument('--env-file', help='Path to a .env file (default: ./.env)')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    run_parser = subparsers.add_parser('run', help='Follow the target and mirror its trades')
    run_parser.add_argument('--target', '-t', help='Wallet to mirror (default: TARGET_ADDRESS)')
    run_parser.add_argument(
        '--live', '-l',
        action='store_true',
        help='Submit real orders (requires PRIVATE_KEY and FUNDER_ADDRESS)'
    )
    run_parser.add_argument('--feeds', '-f', help='Comma separated feeds: events,poll (default: both)')
    run_parser.set_defaults(func=cmd_run)

    dump_parser = subparsers.add_parser('dump', help='Dump recent trades of the target to CSV')
    dump_parser.add_argument('--target', '-t', help='Wallet to dump (default: TARGET_ADDRESS)')
    dump_parser.add_argument('--seconds', '-s', type=int, default=None, help='Only trades from the last N seconds')
    dump_parser.add_argument('--output', '-o', default='recent_trades.csv', help='CSV file to write')
    dump_parser.set_defaults(func=cmd_dump)

    check_parser = subparsers.add_parser('check', help='Validate configuration')
    check_parser.add_argument('--live', '-l', action='store_true', help='Validate for live trading')
    check_parser.set_defaults(func=cmd_check)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    args.func(args)


if __name__ == "__main__":
    main()
