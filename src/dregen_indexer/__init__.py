"""dregen_indexer - event indexer for the REGEN liquid staking contract."""

__version__ = "0.1.0"
