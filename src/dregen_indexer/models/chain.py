"""Typed chain shapes produced by the ChainReader boundary."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class RawContractEvent:
    """One event emitted by a transaction, attributes in emission order."""

    type: str
    attributes: tuple[tuple[str, str], ...] = ()
    index: int = 0  # position within the transaction's event list

    def get(self, key: str) -> str | None:
        """Return the first value for ``key``, or None when absent."""
        for k, v in self.attributes:
            if k == key:
                return v
        return None


@dataclass(frozen=True)
class TxResult:
    """A transaction result as returned by tx search."""

    hash: str
    height: int
    code: int
    events: tuple[RawContractEvent, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> bool:
        return self.code == 0


@dataclass(frozen=True)
class BlockHeader:
    height: int
    time: datetime  # UTC-aware
