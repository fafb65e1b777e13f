"""Indexing pipeline: extraction, classification, coordination, scheduling."""

from dregen_indexer.indexer.classifier import classify
from dregen_indexer.indexer.coordinator import IndexerCoordinator
from dregen_indexer.indexer.extractor import extract_contract_events
from dregen_indexer.indexer.scheduler import PollScheduler

__all__ = ["IndexerCoordinator", "PollScheduler", "classify", "extract_contract_events"]
