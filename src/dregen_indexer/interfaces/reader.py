"""ChainReader protocol - read access to blocks and transaction results."""

from __future__ import annotations

from typing import Protocol

from dregen_indexer.models.chain import BlockHeader, TxResult


class ChainReader(Protocol):
    """Reads heights, headers and transactions from the chain.

    Every method may raise ChainReaderError, which the coordinator retries.
    """

    async def current_height(self) -> int:
        """Latest committed block height."""
        ...

    async def block_header(self, height: int) -> BlockHeader:
        """Header of the block at ``height`` (used for its timestamp)."""
        ...

    async def transactions_at(self, height: int) -> list[TxResult]:
        """All transaction results included at ``height``, in block order."""
        ...
