"""PersistenceSink protocol - durable, idempotent record storage."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from dregen_indexer.models.records import DomainRecord


class PersistenceSink(Protocol):
    """Stores domain records keyed by (tx_hash, height, event_index)."""

    async def store(self, record: DomainRecord) -> bool:
        """Store a record if absent.

        Returns True if a new row was written, False if the record was
        already present. Raises StorageError on failure.
        """
        ...


@runtime_checkable
class CursorStore(Protocol):
    """Optional cursor durability, implemented by sinks that support it."""

    async def get_cursor(self) -> int | None:
        ...

    async def set_cursor(self, height: int) -> None:
        ...
