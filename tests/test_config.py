"""Config loading: TOML sections, env overrides and validation."""

from __future__ import annotations

import pytest

from dregen_indexer.config import load_config
from dregen_indexer.errors import ConfigError
from dregen_indexer.models.config import IndexerConfig

from tests.conftest import CONFIG_ENV_VARS, make_test_config
from tests.factories import CONTRACT, OTHER_CONTRACT

TOML = f"""
[chain]
rpc_url = "http://node:26657"
lcd_url = "http://node:1317"
contract_address = "{CONTRACT}"
base64_attributes = true

[indexer]
start_height = 1000
poll_interval_ms = 5000
max_retries = 8
retry_backoff = 0.5
resume_from_store = true
log_level = "debug"

[storage]
database_url = "sqlite:///indexer.db"
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "indexer.toml"
    path.write_text(TOML)
    return path


def test_defaults_without_file():
    cfg = load_config()
    assert cfg == IndexerConfig()
    assert cfg.poll_interval_ms == 30_000
    assert cfg.poll_interval == 30.0
    assert cfg.resume_from_store is False


def test_toml_sections(config_file):
    cfg = load_config(config_file)
    assert cfg.rpc_url == "http://node:26657"
    assert cfg.lcd_url == "http://node:1317"
    assert cfg.contract_address == CONTRACT
    assert cfg.base64_attributes is True
    assert cfg.start_height == 1000
    assert cfg.poll_interval_ms == 5000
    assert cfg.max_retries == 8
    assert cfg.retry_backoff == 0.5
    assert cfg.resume_from_store is True
    assert cfg.log_level == "debug"
    assert cfg.database_url == "sqlite:///indexer.db"


def test_prefixed_env_beats_toml(config_file, monkeypatch):
    monkeypatch.setenv("DREGEN_INDEXER_CONTRACT_ADDRESS", OTHER_CONTRACT)
    monkeypatch.setenv("DREGEN_INDEXER_START_HEIGHT", "2000")
    monkeypatch.setenv("DREGEN_INDEXER_POLL_INTERVAL_MS", "250")
    monkeypatch.setenv("DREGEN_INDEXER_LCD_URL", "http://other:1317")

    cfg = load_config(config_file)
    assert cfg.contract_address == OTHER_CONTRACT
    assert cfg.start_height == 2000
    assert cfg.poll_interval_ms == 250
    assert cfg.lcd_url == "http://other:1317"
    assert cfg.rpc_url == "http://node:26657"


def test_legacy_env_names(monkeypatch):
    monkeypatch.setenv("RPC_ENDPOINT", "http://legacy:26657")
    monkeypatch.setenv("CONTRACT_ADDRESS", CONTRACT)
    monkeypatch.setenv("START_HEIGHT", "42")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///legacy.db")

    cfg = load_config()
    assert cfg.rpc_url == "http://legacy:26657"
    assert cfg.contract_address == CONTRACT
    assert cfg.start_height == 42
    assert cfg.database_url == "sqlite:///legacy.db"


def test_prefixed_env_beats_legacy(monkeypatch):
    monkeypatch.setenv("CONTRACT_ADDRESS", CONTRACT)
    monkeypatch.setenv("DREGEN_INDEXER_CONTRACT_ADDRESS", OTHER_CONTRACT)
    assert load_config().contract_address == OTHER_CONTRACT


def test_non_integer_env_rejected(monkeypatch):
    monkeypatch.setenv("START_HEIGHT", "latest")
    with pytest.raises(ConfigError, match="START_HEIGHT"):
        load_config()


def test_missing_file_rejected(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_config(tmp_path / "nope.toml")


def test_invalid_toml_rejected(tmp_path):
    path = tmp_path / "bad.toml"
    path.write_text("[chain\nrpc_url = ")
    with pytest.raises(ConfigError, match="invalid config"):
        load_config(path)


# ── Validation ────────────────────────────────────────────────────


def test_valid_config_passes():
    make_test_config().validate()


@pytest.mark.parametrize("overrides,match", [
    ({"contract_address": ""}, "contract address"),
    ({"rpc_url": ""}, "RPC endpoint"),
    ({"start_height": -1}, "start height"),
    ({"poll_interval_ms": 0}, "poll interval"),
    ({"max_retries": 0}, "max_retries"),
    ({"request_timeout": 0}, "request_timeout"),
    ({"progress_every": 0}, "progress_every"),
    ({"database_url": "postgres://localhost:5432/indexer"}, "unsupported storage scheme"),
])
def test_invalid_config_rejected(overrides, match):
    with pytest.raises(ConfigError, match=match):
        make_test_config(**overrides).validate()


def test_sqlite_urls_pass_validation(tmp_path):
    make_test_config(database_url=f"sqlite:///{tmp_path}/x.db").validate()
    make_test_config(database_url=str(tmp_path / "x.db")).validate()


@pytest.mark.parametrize("key,value", [
    ("max_retries", "0"),
    ("poll_interval_ms", "0"),
    ("request_timeout", "0"),
    ("progress_every", "0"),
])
def test_explicit_zero_in_toml_reaches_validation(tmp_path, key, value):
    path = tmp_path / "zero.toml"
    path.write_text(f'[chain]\ncontract_address = "{CONTRACT}"\n\n[indexer]\n{key} = {value}\n')

    cfg = load_config(path)

    assert getattr(cfg, key) == 0
    with pytest.raises(ConfigError):
        cfg.validate()
