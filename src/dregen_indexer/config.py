"""Configuration loading: TOML file + environment variables."""

from __future__ import annotations

import os
from pathlib import Path

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:
    import tomli as tomllib  # type: ignore[no-redef]

from dregen_indexer.errors import ConfigError
from dregen_indexer.models.config import IndexerConfig

# Unprefixed names used by existing deployments; prefixed names win.
_LEGACY_ENV = {
    "rpc_url": "RPC_ENDPOINT",
    "contract_address": "CONTRACT_ADDRESS",
    "start_height": "START_HEIGHT",
    "database_url": "DATABASE_URL",
}


def _bool(value: object) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _int(name: str, value: object) -> int:
    try:
        return int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _float(name: str, value: object) -> float:
    try:
        return float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}") from None


def load_config(
    config_path: str | Path | None = None,
    env_prefix: str = "DREGEN_INDEXER_",
) -> IndexerConfig:
    """Load indexer configuration from a TOML file and env vars.

    Priority (highest wins):
        1. Environment variables (DREGEN_INDEXER_CONTRACT_ADDRESS, ...),
           then the unprefixed legacy names (CONTRACT_ADDRESS, ...)
        2. TOML config file
        3. Defaults from IndexerConfig

    Does not validate; call ``IndexerConfig.validate()`` before indexing.
    """
    raw: dict = {}
    if config_path is not None:
        p = Path(config_path).expanduser()
        if p.exists():
            with open(p, "rb") as f:
                try:
                    raw = tomllib.load(f)
                except tomllib.TOMLDecodeError as exc:
                    raise ConfigError(f"invalid config file {p}: {exc}") from exc
        else:
            raise ConfigError(f"config file not found: {p}")

    cfg = IndexerConfig()

    # ── Chain section ──────────────────────────────────────
    chain = raw.get("chain", {})
    if v := chain.get("rpc_url"):
        cfg.rpc_url = str(v)
    if v := chain.get("lcd_url"):
        cfg.lcd_url = str(v)
    if v := chain.get("contract_address"):
        cfg.contract_address = str(v)
    if "base64_attributes" in chain:
        cfg.base64_attributes = _bool(chain["base64_attributes"])

    # ── Indexer section ────────────────────────────────────
    indexer = raw.get("indexer", {})
    if "start_height" in indexer:
        cfg.start_height = _int("start_height", indexer["start_height"])
    if "poll_interval_ms" in indexer:
        cfg.poll_interval_ms = _int("poll_interval_ms", indexer["poll_interval_ms"])
    if "max_retries" in indexer:
        cfg.max_retries = _int("max_retries", indexer["max_retries"])
    if "retry_backoff" in indexer:
        cfg.retry_backoff = _float("retry_backoff", indexer["retry_backoff"])
    if "retry_backoff_max" in indexer:
        cfg.retry_backoff_max = _float("retry_backoff_max", indexer["retry_backoff_max"])
    if "request_timeout" in indexer:
        cfg.request_timeout = _float("request_timeout", indexer["request_timeout"])
    if "progress_every" in indexer:
        cfg.progress_every = _int("progress_every", indexer["progress_every"])
    if "resume_from_store" in indexer:
        cfg.resume_from_store = _bool(indexer["resume_from_store"])
    if v := indexer.get("log_level"):
        cfg.log_level = str(v)

    # ── Storage section ────────────────────────────────────
    storage = raw.get("storage", {})
    if v := storage.get("database_url"):
        cfg.database_url = str(v)

    # ── Environment variable overrides (highest priority) ──
    for field_name, legacy in _LEGACY_ENV.items():
        value = os.environ.get(f"{env_prefix}{field_name.upper()}") or os.environ.get(legacy)
        if not value:
            continue
        if field_name == "start_height":
            cfg.start_height = _int(legacy, value)
        else:
            setattr(cfg, field_name, value)

    if lcd := os.environ.get(f"{env_prefix}LCD_URL"):
        cfg.lcd_url = lcd
    if interval := os.environ.get(f"{env_prefix}POLL_INTERVAL_MS"):
        cfg.poll_interval_ms = _int("POLL_INTERVAL_MS", interval)
    if level := os.environ.get(f"{env_prefix}LOG_LEVEL"):
        cfg.log_level = level

    return cfg
