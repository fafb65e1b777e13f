"""Indexer coordinator - owns the cursor and drives backfill and polling."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from dregen_indexer.errors import (
    ChainReaderError,
    IndexerHaltedError,
    StorageError,
    TransientError,
)
from dregen_indexer.indexer.classifier import classify
from dregen_indexer.indexer.extractor import extract_contract_events
from dregen_indexer.interfaces.reader import ChainReader
from dregen_indexer.interfaces.sink import CursorStore, PersistenceSink
from dregen_indexer.models.config import IndexerConfig, IndexerState
from dregen_indexer.models.records import IndexerStatus

log = logging.getLogger(__name__)

T = TypeVar("T")


class IndexerCoordinator:
    """Cursor-driven block scanner.

    Blocks are processed strictly in ascending order, one at a time. The
    cursor only moves after every record of a block has been handed to the
    sink; a block that keeps failing halts the coordinator rather than being
    skipped.

    States: uninitialized -> backfilling -> realtime, with ``error`` after a
    halt and ``stopped`` after a graceful stop.
    """

    def __init__(
        self,
        reader: ChainReader,
        sink: PersistenceSink,
        config: IndexerConfig,
    ) -> None:
        self._reader = reader
        self._sink = sink
        self._cfg = config
        self._contract = config.contract_address
        self._cursor_store = sink if isinstance(sink, CursorStore) else None

        self._state = IndexerState.UNINITIALIZED
        self._cursor = 0
        self._head: int | None = None
        self._stop_requested = False
        self._halt: IndexerHaltedError | None = None

        self._blocks_processed = 0
        self._records_stored = 0
        self._consecutive_failures = 0
        self._last_error: str | None = None

    # ── State ─────────────────────────────────────────────

    @property
    def state(self) -> IndexerState:
        return self._state

    @property
    def cursor(self) -> int:
        """Highest height whose records are all stored."""
        return self._cursor

    def status(self) -> IndexerStatus:
        return IndexerStatus(
            state=self._state.value,
            cursor=self._cursor,
            head=self._head,
            blocks_processed=self._blocks_processed,
            records_stored=self._records_stored,
            consecutive_failures=self._consecutive_failures,
            last_error=self._last_error,
        )

    def request_stop(self) -> None:
        """Stop after the block currently in flight completes."""
        if not self._stop_requested:
            log.info("Stop requested at cursor %d", self._cursor)
        self._stop_requested = True

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested

    # ── Lifecycle ─────────────────────────────────────────

    async def initialize(self) -> None:
        """Derive the starting cursor from configuration.

        The configured start height counts as already indexed; scanning
        begins at the block after it. With ``resume_from_store`` a cursor
        persisted by a previous run wins when it is further ahead.
        """
        self._cfg.validate()
        cursor = max(self._cfg.start_height, 0)

        if self._cfg.resume_from_store and self._cursor_store is not None:
            saved = await self._cursor_store.get_cursor()
            if saved is not None and saved > cursor:
                log.info("Resuming from stored cursor %d (configured %d)", saved, cursor)
                cursor = saved

        self._cursor = cursor
        self._state = IndexerState.BACKFILLING
        log.info("Coordinator initialized at cursor %d", self._cursor)

    async def run_backfill(self) -> int:
        """Index every block up to the head observed on entry.

        The head is not refreshed while backfilling; blocks produced in the
        meantime are picked up by the first real-time tick. Returns the
        number of blocks processed.
        """
        self._check_runnable()
        self._state = IndexerState.BACKFILLING

        head = await self._with_retry(self._fetch_head, self._cursor + 1)
        start = self._cursor
        log.info("Backfilling blocks %d..%d", start + 1, head)

        processed = 0
        while self._cursor < head:
            if self._stop_requested:
                self._state = IndexerState.STOPPED
                log.info("Backfill stopped at cursor %d", self._cursor)
                return processed
            await self.index_block(self._cursor + 1)
            processed += 1
            if self._cursor % self._cfg.progress_every == 0:
                log.info("Processed block %d/%d", self._cursor, head)

        self._state = IndexerState.REALTIME
        log.info(
            "Backfill complete: %d blocks, cursor %d; switching to real-time",
            processed, self._cursor,
        )
        return processed

    async def realtime_tick(self) -> int:
        """Index every block between the cursor and the current head.

        Must not run concurrently with itself; PollScheduler enforces that.
        Returns the number of blocks processed.
        """
        self._check_runnable()
        self._state = IndexerState.REALTIME

        head = await self._with_retry(self._fetch_head, self._cursor + 1)
        if head <= self._cursor:
            log.debug("No new blocks (head %d, cursor %d)", head, self._cursor)
            return 0

        log.debug("Catching up blocks %d..%d", self._cursor + 1, head)
        processed = 0
        while self._cursor < head:
            if self._stop_requested:
                self._state = IndexerState.STOPPED
                break
            await self.index_block(self._cursor + 1)
            processed += 1
        return processed

    def _check_runnable(self) -> None:
        if self._halt is not None:
            raise self._halt
        if self._state == IndexerState.UNINITIALIZED:
            raise RuntimeError("Coordinator not initialized. Call initialize() first.")

    # ── Blocks ────────────────────────────────────────────

    async def index_block(self, height: int) -> int:
        """Process ``height`` with bounded retries, then advance the cursor.

        Raises IndexerHaltedError when the retry budget is exhausted; the
        cursor is left on the previous block.
        """
        count = await self._with_retry(lambda: self._process_and_record(height), height)
        self._cursor = max(self._cursor, height)
        self._blocks_processed += 1
        self._records_stored += count
        return count

    async def _process_and_record(self, height: int) -> int:
        count = await self.process_block(height)
        if self._cursor_store is not None:
            cursor = max(self._cursor, height)
            await self._bounded(
                self._cursor_store.set_cursor(cursor), StorageError, f"save cursor {cursor}",
            )
        return count

    async def process_block(self, height: int) -> int:
        """Fetch, extract, classify and store one block's records.

        Does not move the cursor. Failed transactions are skipped entirely.
        Returns the number of records handed to the sink.
        """
        header = await self._bounded(
            self._reader.block_header(height), ChainReaderError, f"block header {height}",
        )
        txs = await self._bounded(
            self._reader.transactions_at(height), ChainReaderError, f"transactions {height}",
        )

        stored = 0
        for tx in txs:
            if not tx.succeeded:
                log.debug("Skipping failed tx %s (code %d)", tx.hash, tx.code)
                continue
            for event in extract_contract_events(tx, self._contract):
                record = classify(event, tx.hash, height, header.time)
                if record is None:
                    continue
                await self._bounded(
                    self._sink.store(record), StorageError,
                    f"store {record.kind} {tx.hash}#{event.index}",
                )
                stored += 1

        if stored:
            log.info("Block %d: %d records from %d txs", height, stored, len(txs))
        else:
            log.debug("Block %d: no contract records (%d txs)", height, len(txs))
        return stored

    # ── Helpers ───────────────────────────────────────────

    async def _fetch_head(self) -> int:
        head = await self._bounded(
            self._reader.current_height(), ChainReaderError, "current height",
        )
        self._head = head
        return head

    async def _bounded(
        self, aw: Awaitable[T], error_cls: type[TransientError], what: str,
    ) -> T:
        """Await with the configured timeout; a timeout becomes ``error_cls``."""
        try:
            return await asyncio.wait_for(aw, timeout=self._cfg.request_timeout)
        except asyncio.TimeoutError as exc:
            raise error_cls(
                f"{what} timed out after {self._cfg.request_timeout}s"
            ) from exc

    async def _with_retry(self, op: Callable[[], Awaitable[T]], height: int) -> T:
        attempts = self._cfg.max_retries
        for attempt in range(1, attempts + 1):
            try:
                result = await op()
            except TransientError as exc:
                error: Exception = exc
                log.warning(
                    "Block %d attempt %d/%d failed: %s", height, attempt, attempts, exc,
                )
            except Exception as exc:
                error = exc
                log.error(
                    "Block %d attempt %d/%d raised unexpectedly: %s",
                    height, attempt, attempts, exc, exc_info=True,
                )
            else:
                self._consecutive_failures = 0
                return result

            self._consecutive_failures += 1
            self._last_error = str(error)
            if attempt < attempts:
                await asyncio.sleep(self._backoff(attempt))

        self._halt = IndexerHaltedError(height, attempts, error)
        self._state = IndexerState.ERROR
        log.error("Halting at cursor %d: %s", self._cursor, self._halt)
        raise self._halt

    def _backoff(self, attempt: int) -> float:
        delay = self._cfg.retry_backoff * (2 ** (attempt - 1))
        return min(delay, self._cfg.retry_backoff_max)
