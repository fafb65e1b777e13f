"""Configuration models for the indexer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from dregen_indexer.errors import ConfigError


class IndexerState(str, Enum):
    """Lifecycle state of the IndexerCoordinator."""

    UNINITIALIZED = "uninitialized"
    BACKFILLING = "backfilling"
    REALTIME = "realtime"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass
class IndexerConfig:
    """Complete indexer configuration."""

    # Chain
    rpc_url: str = "https://rpc.regen.network"
    lcd_url: str = "https://api.regen.network"
    contract_address: str = ""  # required
    base64_attributes: bool = False  # Tendermint < 0.37 encodes event attributes

    # Indexer
    start_height: int = 0  # last height considered indexed; scanning starts after it
    poll_interval_ms: int = 30_000
    max_retries: int = 5  # attempts per block before halting
    retry_backoff: float = 1.0  # seconds, doubled per attempt
    retry_backoff_max: float = 30.0
    request_timeout: float = 30.0  # seconds, per RPC call and per sink write
    progress_every: int = 500  # backfill progress log interval, in blocks
    resume_from_store: bool = False
    log_level: str = "info"

    # Storage
    database_url: str = "~/.dregen_indexer/indexer.db"

    @property
    def poll_interval(self) -> float:
        """Poll interval in seconds."""
        return self.poll_interval_ms / 1000

    def validate(self) -> None:
        """Raise ConfigError if the configuration cannot drive an indexer."""
        if not self.contract_address:
            raise ConfigError("contract address is required")
        if not self.rpc_url:
            raise ConfigError("chain RPC endpoint is required")
        if self.start_height < 0:
            raise ConfigError(f"start height must be >= 0, got {self.start_height}")
        if self.poll_interval_ms <= 0:
            raise ConfigError(f"poll interval must be positive, got {self.poll_interval_ms}")
        if self.max_retries < 1:
            raise ConfigError(f"max_retries must be >= 1, got {self.max_retries}")
        if self.request_timeout <= 0:
            raise ConfigError(f"request_timeout must be positive, got {self.request_timeout}")
        if self.progress_every < 1:
            raise ConfigError(f"progress_every must be >= 1, got {self.progress_every}")
        scheme = self.database_url.split("://", 1)[0] if "://" in self.database_url else "sqlite"
        if scheme != "sqlite":
            raise ConfigError(f"unsupported storage scheme: {scheme} (only sqlite is supported)")
