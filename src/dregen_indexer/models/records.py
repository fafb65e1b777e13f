"""Domain records persisted by the sink, plus status snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Union


@dataclass(frozen=True)
class StakeRecord:
    """A ``stake`` action: REGEN in, dREGEN minted."""

    tx_hash: str
    height: int
    event_index: int
    staker: str
    regen_amount: str  # base units, decimal string
    dregen_amount: str
    exchange_rate: float
    timestamp: datetime  # block time

    kind = "stake"


@dataclass(frozen=True)
class UnbondRecord:
    """An ``unbond`` action: dREGEN burned, REGEN released at completion_time."""

    tx_hash: str
    height: int
    event_index: int
    user: str
    dregen_amount: str
    regen_amount: str
    unbonding_id: int
    completion_time: datetime
    timestamp: datetime

    kind = "unbond"


@dataclass(frozen=True)
class RewardRecord:
    """A ``claim_rewards`` action."""

    tx_hash: str
    height: int
    event_index: int
    claimer: str
    timestamp: datetime

    kind = "reward"


DomainRecord = Union[StakeRecord, UnbondRecord, RewardRecord]

RECORD_KINDS = ("stake", "unbond", "reward")


def record_key(record: DomainRecord) -> tuple[str, int, int]:
    """Deduplication identity of a record."""
    return (record.tx_hash, record.height, record.event_index)


@dataclass
class IndexerStatus:
    """Point-in-time view of the coordinator for status reporting."""

    state: str
    cursor: int
    head: int | None = None
    blocks_processed: int = 0
    records_stored: int = 0
    consecutive_failures: int = 0
    last_error: str | None = None

    @property
    def lag(self) -> int | None:
        if self.head is None:
            return None
        return max(self.head - self.cursor, 0)
