"""SQLite implementation of the PersistenceSink and CursorStore protocols."""

from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

from dregen_indexer.errors import ConfigError, StorageError
from dregen_indexer.models.records import (
    RECORD_KINDS,
    DomainRecord,
    RewardRecord,
    StakeRecord,
    UnbondRecord,
)

log = logging.getLogger(__name__)

SCHEMA = """
-- Highest fully indexed height
CREATE TABLE IF NOT EXISTS cursor (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_height INTEGER NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- stake actions
CREATE TABLE IF NOT EXISTS stake_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tx_hash TEXT NOT NULL,
    height INTEGER NOT NULL,
    event_index INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    staker TEXT NOT NULL,
    regen_amount TEXT NOT NULL,
    dregen_amount TEXT NOT NULL,
    exchange_rate REAL,
    indexed_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_stake_identity
    ON stake_events(tx_hash, height, event_index);
CREATE INDEX IF NOT EXISTS idx_stake_staker ON stake_events(staker);

-- unbond actions
CREATE TABLE IF NOT EXISTS unbond_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tx_hash TEXT NOT NULL,
    height INTEGER NOT NULL,
    event_index INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    user TEXT NOT NULL,
    dregen_amount TEXT NOT NULL,
    regen_amount TEXT NOT NULL,
    unbonding_id INTEGER NOT NULL,
    completion_time TEXT NOT NULL,
    indexed_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_unbond_identity
    ON unbond_events(tx_hash, height, event_index);
CREATE INDEX IF NOT EXISTS idx_unbond_user ON unbond_events(user);

-- claim_rewards actions
CREATE TABLE IF NOT EXISTS reward_events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    tx_hash TEXT NOT NULL,
    height INTEGER NOT NULL,
    event_index INTEGER NOT NULL,
    timestamp TEXT NOT NULL,
    claimer TEXT,
    indexed_at TEXT NOT NULL DEFAULT (datetime('now'))
);
CREATE UNIQUE INDEX IF NOT EXISTS idx_reward_identity
    ON reward_events(tx_hash, height, event_index);
"""

_TABLES = {
    "stake": "stake_events",
    "unbond": "unbond_events",
    "reward": "reward_events",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(dt: datetime) -> str:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def resolve_db_path(database_url: str) -> str:
    """Turn a storage connection string into an aiosqlite path.

    Accepts ``:memory:``, ``sqlite:///relative.db``, ``sqlite:////abs.db``
    or a bare filesystem path.
    """
    if database_url in (":memory:", "sqlite://", "sqlite:///:memory:"):
        return ":memory:"
    if database_url.startswith("sqlite:///"):
        database_url = database_url[len("sqlite:///"):]
    elif "://" in database_url:
        scheme = database_url.split("://", 1)[0]
        raise ConfigError(f"unsupported storage scheme: {scheme} (only sqlite is supported)")
    return str(Path(database_url).expanduser())


class SQLiteRecordStore:
    """SQLite-backed record sink with one table per record variant."""

    def __init__(self, database_url: str) -> None:
        self._db_path = resolve_db_path(database_url)
        self._db: aiosqlite.Connection | None = None

    async def initialize(self) -> None:
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)
        self._db = await aiosqlite.connect(self._db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.executescript(SCHEMA)
        await self._db.commit()
        log.debug("Opened record store at %s", self._db_path)

    async def close(self) -> None:
        if self._db:
            await self._db.close()
            self._db = None

    @property
    def db(self) -> aiosqlite.Connection:
        assert self._db is not None, "Store not initialized. Call initialize() first."
        return self._db

    # ── Cursor ─────────────────────────────────────────────

    async def get_cursor(self) -> int | None:
        async with self.db.execute("SELECT last_height FROM cursor WHERE id=1") as cur:
            row = await cur.fetchone()
            return row["last_height"] if row else None

    async def set_cursor(self, height: int) -> None:
        try:
            await self.db.execute(
                "INSERT INTO cursor (id, last_height, updated_at) VALUES (1, ?, ?)"
                " ON CONFLICT(id) DO UPDATE SET last_height=excluded.last_height,"
                " updated_at=excluded.updated_at",
                (height, _now()),
            )
            await self.db.commit()
        except sqlite3.Error as exc:
            raise StorageError(f"failed to save cursor {height}: {exc}") from exc

    # ── Records ────────────────────────────────────────────

    async def store(self, record: DomainRecord) -> bool:
        """Insert a record unless its (tx_hash, height, event_index) exists."""
        if isinstance(record, StakeRecord):
            sql = (
                "INSERT INTO stake_events"
                " (tx_hash, height, event_index, timestamp, staker,"
                "  regen_amount, dregen_amount, exchange_rate)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(tx_hash, height, event_index) DO NOTHING"
            )
            params = (
                record.tx_hash, record.height, record.event_index,
                _iso(record.timestamp), record.staker, record.regen_amount,
                record.dregen_amount, record.exchange_rate,
            )
        elif isinstance(record, UnbondRecord):
            sql = (
                "INSERT INTO unbond_events"
                " (tx_hash, height, event_index, timestamp, user, dregen_amount,"
                "  regen_amount, unbonding_id, completion_time)"
                " VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"
                " ON CONFLICT(tx_hash, height, event_index) DO NOTHING"
            )
            params = (
                record.tx_hash, record.height, record.event_index,
                _iso(record.timestamp), record.user, record.dregen_amount,
                record.regen_amount, record.unbonding_id,
                _iso(record.completion_time),
            )
        elif isinstance(record, RewardRecord):
            sql = (
                "INSERT INTO reward_events"
                " (tx_hash, height, event_index, timestamp, claimer)"
                " VALUES (?, ?, ?, ?, ?)"
                " ON CONFLICT(tx_hash, height, event_index) DO NOTHING"
            )
            params = (
                record.tx_hash, record.height, record.event_index,
                _iso(record.timestamp), record.claimer,
            )
        else:
            raise TypeError(f"unsupported record type: {type(record).__name__}")

        try:
            cur = await self.db.execute(sql, params)
            inserted = cur.rowcount > 0
            await cur.close()
            await self.db.commit()
        except sqlite3.Error as exc:
            raise StorageError(
                f"failed to store {record.kind} record {record.tx_hash}"
                f"#{record.event_index} at height {record.height}: {exc}"
            ) from exc

        if not inserted:
            log.debug(
                "Duplicate %s record %s#%d at height %d ignored",
                record.kind, record.tx_hash, record.event_index, record.height,
            )
        return inserted

    async def get_records(
        self, kind: str, limit: int = 50, height: int | None = None,
    ) -> list[DomainRecord]:
        """Most recent records of one kind, newest height first."""
        table = _table(kind)
        if height is None:
            query = (
                f"SELECT * FROM {table}"
                " ORDER BY height DESC, tx_hash, event_index LIMIT ?"
            )
            params: tuple = (limit,)
        else:
            query = (
                f"SELECT * FROM {table} WHERE height=?"
                " ORDER BY tx_hash, event_index LIMIT ?"
            )
            params = (height, limit)
        async with self.db.execute(query, params) as cur:
            return [_row_to_record(kind, row) async for row in cur]

    async def get_records_for_tx(self, tx_hash: str) -> list[DomainRecord]:
        """All records produced by one transaction, in emission order."""
        records: list[DomainRecord] = []
        for kind in RECORD_KINDS:
            async with self.db.execute(
                f"SELECT * FROM {_table(kind)} WHERE tx_hash=?", (tx_hash,)
            ) as cur:
                records.extend([_row_to_record(kind, row) async for row in cur])
        records.sort(key=lambda r: (r.height, r.event_index))
        return records

    async def count_records(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        for kind in RECORD_KINDS:
            async with self.db.execute(
                f"SELECT COUNT(*) AS c FROM {_table(kind)}"
            ) as cur:
                row = await cur.fetchone()
                counts[kind] = row["c"] if row else 0
        return counts


def _table(kind: str) -> str:
    try:
        return _TABLES[kind]
    except KeyError:
        raise ValueError(f"unknown record kind: {kind}") from None


def _row_to_record(kind: str, row: aiosqlite.Row) -> DomainRecord:
    if kind == "stake":
        return StakeRecord(
            tx_hash=row["tx_hash"],
            height=row["height"],
            event_index=row["event_index"],
            staker=row["staker"],
            regen_amount=row["regen_amount"],
            dregen_amount=row["dregen_amount"],
            exchange_rate=row["exchange_rate"] or 0.0,
            timestamp=_from_iso(row["timestamp"]),
        )
    if kind == "unbond":
        return UnbondRecord(
            tx_hash=row["tx_hash"],
            height=row["height"],
            event_index=row["event_index"],
            user=row["user"],
            dregen_amount=row["dregen_amount"],
            regen_amount=row["regen_amount"],
            unbonding_id=row["unbonding_id"],
            completion_time=_from_iso(row["completion_time"]),
            timestamp=_from_iso(row["timestamp"]),
        )
    return RewardRecord(
        tx_hash=row["tx_hash"],
        height=row["height"],
        event_index=row["event_index"],
        claimer=row["claimer"] or "",
        timestamp=_from_iso(row["timestamp"]),
    )
