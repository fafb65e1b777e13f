"""Shared fixtures for dregen_indexer tests."""

from __future__ import annotations

import pytest
from pytest_metadata.plugin import metadata_key

from dregen_indexer.indexer.coordinator import IndexerCoordinator
from dregen_indexer.models.config import IndexerConfig
from dregen_indexer.storage.sqlite import SQLiteRecordStore

from tests.factories import CONTRACT
from tests.mocks import MemorySink, MockChainReader

RPC_URL = "http://rpc.test:26657"
LCD_URL = "http://lcd.test:1317"
EXPLORER_BASE = "https://www.mintscan.io/regen"

# Env vars read by load_config
CONFIG_ENV_VARS = (
    "DREGEN_INDEXER_RPC_URL",
    "DREGEN_INDEXER_LCD_URL",
    "DREGEN_INDEXER_CONTRACT_ADDRESS",
    "DREGEN_INDEXER_START_HEIGHT",
    "DREGEN_INDEXER_DATABASE_URL",
    "DREGEN_INDEXER_POLL_INTERVAL_MS",
    "DREGEN_INDEXER_LOG_LEVEL",
    "RPC_ENDPOINT",
    "CONTRACT_ADDRESS",
    "START_HEIGHT",
    "DATABASE_URL",
)


def pytest_configure(config):
    """Add chain info to the report Environment table."""
    meta = config.stash.setdefault(metadata_key, {})
    meta["Chain RPC"] = RPC_URL
    meta["Staking Contract"] = CONTRACT


def pytest_html_results_summary(prefix, summary, postfix):
    """Link the staking contract on the explorer in the report summary."""
    url = f"{EXPLORER_BASE}/wasm/contract/{CONTRACT}"
    prefix.append(
        '<div style="margin:8px 0;padding:10px;background:#f8f9fa;border:1px solid #dee2e6;'
        'border-radius:4px;font-family:monospace;font-size:13px;">'
        "<strong>Regen Explorer</strong><br/>"
        f'Staking Contract: <a href="{url}" target="_blank">{CONTRACT}</a>'
        "</div>"
    )


def make_test_config(**overrides) -> IndexerConfig:
    """Build an IndexerConfig suitable for testing."""
    defaults = dict(
        rpc_url=RPC_URL,
        lcd_url=LCD_URL,
        contract_address=CONTRACT,
        start_height=0,
        poll_interval_ms=10,
        max_retries=3,
        retry_backoff=0.0,
        retry_backoff_max=0.0,
        request_timeout=1.0,
        database_url=":memory:",
    )
    defaults.update(overrides)
    return IndexerConfig(**defaults)


@pytest.fixture
def test_config():
    """Default IndexerConfig for tests."""
    return make_test_config()


@pytest.fixture
async def store():
    """Initialized in-memory SQLiteRecordStore."""
    s = SQLiteRecordStore(":memory:")
    await s.initialize()
    yield s
    await s.close()


@pytest.fixture
def reader():
    return MockChainReader()


@pytest.fixture
def sink():
    return MemorySink()


@pytest.fixture
async def coordinator(reader, sink, test_config):
    """Initialized coordinator over the mock reader and in-memory sink."""
    c = IndexerCoordinator(reader, sink, test_config)
    await c.initialize()
    return c


@pytest.fixture
async def sqlite_coordinator(reader, store, test_config):
    """Initialized coordinator persisting into SQLite."""
    c = IndexerCoordinator(reader, store, test_config)
    await c.initialize()
    return c
