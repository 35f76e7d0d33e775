"""
Mirror Pipeline
Shared state and hand-off between the feeds and the order mirror
"""

import asyncio
import logging
from typing import Optional, List, Set

from config.mirror_settings import MIRROR_QUEUE_SIZE, MIRROR_WORKERS
from .executor import MirrorResult, OrderMirror
from .ledger import DedupLedger
from .models import Trade
from .outcomes import OutcomeResolver
from .reporting import TradeReporter

logger = logging.getLogger(__name__)


class MirrorPipeline:
    """
    Owns the dedup ledger, outcome resolver and reporter used by every feed

    Trades that pass admission are queued and mirrored by a fixed number of
    workers, so a burst of fills never turns into an unbounded number of
    concurrent order submissions. Outcome labels are looked up in a separate
    task once the order has been submitted; the worker moves on to the next
    trade without waiting for the lookup.
    """

    def __init__(
        self,
        mirror: OrderMirror,
        ledger: Optional[DedupLedger] = None,
        resolver: Optional[OutcomeResolver] = None,
        reporter: Optional[TradeReporter] = None,
        workers: int = MIRROR_WORKERS,
        queue_size: int = MIRROR_QUEUE_SIZE,
    ):
        self.mirror = mirror
        self.ledger = ledger or DedupLedger()
        self.resolver = resolver
        self.reporter = reporter or TradeReporter()
        self.workers = workers
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._tasks: List[asyncio.Task] = []
        self._reports: Set[asyncio.Task] = set()

    async def __aenter__(self):
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    def start(self):
        """Spawn the mirror workers"""
        if self._tasks:
            return
        for i in range(self.workers):
            self._tasks.append(asyncio.create_task(self._worker(i), name=f"mirror-worker-{i}"))
        logger.info(f"Started {self.workers} mirror worker(s)")

    async def stop(self):
        """
        Cancel the workers; queued or in-flight submissions are dropped

        Pending outcome lookups are cancelled too, their results are still
        reported without a label.
        """
        for task in self._tasks:
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

        reports = list(self._reports)
        for task in reports:
            task.cancel()
        if reports:
            await asyncio.gather(*reports, return_exceptions=True)

        if self.queue.qsize():
            logger.warning(f"Stopping with {self.queue.qsize()} trade(s) still queued")

    async def drain(self):
        """Wait until every queued trade has been mirrored and reported"""
        await self.queue.join()
        while self._reports:
            await asyncio.gather(*list(self._reports), return_exceptions=True)

    def admit(self, trade_id: str) -> bool:
        return self.ledger.admit(trade_id)

    async def handle(self, trade: Trade) -> bool:
        """
        Admit and forward a trade

        Returns:
            True if the trade was queued for mirroring
        """
        if not self.ledger.admit(trade.trade_id):
            logger.debug(f"Already seen {trade.trade_id}")
            return False
        return await self.submit(trade)

    async def submit(self, trade: Trade) -> bool:
        """Report and queue an already admitted trade"""
        self.reporter.trade_detected(trade)

        if not trade.mirrorable:
            self.reporter.trade_skipped(trade, f"side is {trade.side.value}")
            return False

        await self.queue.put(trade)
        return True

    async def _worker(self, index: int):
        while True:
            trade = await self.queue.get()
            try:
                result = await self.mirror.mirror_trade(trade)
                if trade.outcome_label is None and self.resolver is not None:
                    task = asyncio.create_task(self._report(trade, result))
                    self._reports.add(task)
                    task.add_done_callback(self._reports.discard)
                else:
                    self.reporter.mirror_result(trade, result, trade.outcome_label)
            except Exception as e:
                logger.error(f"Worker {index} error on {trade.trade_id}: {e}")
            finally:
                self.queue.task_done()

    async def _report(self, trade: Trade, result: MirrorResult):
        label = None
        try:
            label = await self.resolver.resolve(trade.token_id)
        except Exception as e:
            logger.error(f"Outcome lookup failed for {trade.token_id}: {e}")
        finally:
            self.reporter.mirror_result(trade, result, label)
