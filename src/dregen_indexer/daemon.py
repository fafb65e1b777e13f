"""Main daemon - wires reader, store, coordinator and scheduler together."""

from __future__ import annotations

import asyncio
import logging
import signal

from dregen_indexer.cosmos.rpc import CometRPCReader
from dregen_indexer.indexer.coordinator import IndexerCoordinator
from dregen_indexer.indexer.scheduler import PollScheduler
from dregen_indexer.models.config import IndexerConfig
from dregen_indexer.models.records import IndexerStatus
from dregen_indexer.storage.sqlite import SQLiteRecordStore

log = logging.getLogger(__name__)


class IndexerDaemon:
    """Liquid staking event indexer.

    Backfills from the configured start height to the chain head, then polls
    for new blocks on a fixed interval. Components are built from config but
    may be replaced before start() (tests inject mocks that way).
    """

    def __init__(self, cfg: IndexerConfig) -> None:
        cfg.validate()
        self._cfg = cfg

        self.reader = CometRPCReader(
            cfg.rpc_url,
            timeout=cfg.request_timeout,
            base64_attributes=cfg.base64_attributes,
        )
        self.store = SQLiteRecordStore(cfg.database_url)
        self.coordinator: IndexerCoordinator | None = None
        self.scheduler: PollScheduler | None = None
        self._stop_event = asyncio.Event()

    def status(self) -> IndexerStatus | None:
        return self.coordinator.status() if self.coordinator else None

    async def _open(self) -> IndexerCoordinator:
        log.info("Starting dregen indexer")
        log.info("  Contract: %s", self._cfg.contract_address)
        log.info("  RPC: %s", self._cfg.rpc_url)
        log.info("  Database: %s", self._cfg.database_url)
        log.info("  Start height: %d", self._cfg.start_height)

        await self.store.initialize()
        self.coordinator = IndexerCoordinator(self.reader, self.store, self._cfg)
        await self.coordinator.initialize()
        if self._stop_event.is_set():
            self.coordinator.request_stop()
        return self.coordinator

    async def _close(self) -> None:
        await self.store.close()
        close = getattr(self.reader, "close", None)
        if close is not None:
            await close()
        log.info("Indexer shut down cleanly")

    async def start(self) -> None:
        """Backfill, then poll until stop() is called or indexing halts."""
        try:
            coordinator = await self._open()
            await coordinator.run_backfill()
            if self._stop_event.is_set():
                return

            self.scheduler = PollScheduler(
                coordinator.realtime_tick,
                self._cfg.poll_interval,
                stop_event=self._stop_event,
            )
            await self.scheduler.run()
        finally:
            await self._close()

    async def backfill(self) -> int:
        """Backfill to the head observed at start, then return."""
        try:
            coordinator = await self._open()
            return await coordinator.run_backfill()
        finally:
            await self._close()

    async def stop(self) -> None:
        """Signal the daemon to stop after the current block."""
        log.info("Stop requested")
        self._stop_event.set()
        if self.coordinator is not None:
            self.coordinator.request_stop()


async def run_daemon(cfg: IndexerConfig) -> None:
    """Entry point for running the indexer until interrupted."""
    daemon = IndexerDaemon(cfg)

    loop = asyncio.get_running_loop()

    def _signal_handler():
        asyncio.ensure_future(daemon.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass

    await daemon.start()
