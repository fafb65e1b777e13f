"""Data models for the dregen indexer."""

from dregen_indexer.models.chain import BlockHeader, RawContractEvent, TxResult
from dregen_indexer.models.config import IndexerConfig, IndexerState
from dregen_indexer.models.records import (
    RECORD_KINDS,
    DomainRecord,
    IndexerStatus,
    RewardRecord,
    StakeRecord,
    UnbondRecord,
    record_key,
)

__all__ = [
    "BlockHeader", "RawContractEvent", "TxResult",
    "IndexerConfig", "IndexerState",
    "DomainRecord", "StakeRecord", "UnbondRecord", "RewardRecord",
    "IndexerStatus", "RECORD_KINDS", "record_key",
]
