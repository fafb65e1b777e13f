"""Cosmos chain integration components."""

from dregen_indexer.cosmos.queries import ContractQueries
from dregen_indexer.cosmos.rpc import CometRPCReader

__all__ = ["CometRPCReader", "ContractQueries"]
