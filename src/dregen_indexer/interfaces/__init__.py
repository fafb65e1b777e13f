"""Protocol interfaces for the indexer's external collaborators."""

from dregen_indexer.interfaces.reader import ChainReader
from dregen_indexer.interfaces.sink import CursorStore, PersistenceSink

__all__ = ["ChainReader", "PersistenceSink", "CursorStore"]
