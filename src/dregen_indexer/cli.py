"""CLI entry point for the dregen indexer."""

from __future__ import annotations

import asyncio
import logging
import sys

import click

from dregen_indexer.config import load_config
from dregen_indexer.cosmos.queries import UREGEN_PER_REGEN, ContractQueries
from dregen_indexer.daemon import IndexerDaemon, run_daemon
from dregen_indexer.errors import ConfigError, IndexerHaltedError
from dregen_indexer.models.config import IndexerConfig
from dregen_indexer.models.records import RECORD_KINDS, StakeRecord, UnbondRecord
from dregen_indexer.storage.sqlite import SQLiteRecordStore, resolve_db_path


def _regen(uregen: int) -> str:
    return f"{uregen / UREGEN_PER_REGEN:.6f}"


def _load(ctx: click.Context) -> IndexerConfig:
    try:
        cfg = load_config(ctx.obj["config_path"])
        resolve_db_path(cfg.database_url)
        return cfg
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _require_valid(cfg: IndexerConfig) -> None:
    """Exit with error if the config cannot drive an indexer."""
    try:
        cfg.validate()
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        if not cfg.contract_address:
            click.echo(
                "Set DREGEN_INDEXER_CONTRACT_ADDRESS (or CONTRACT_ADDRESS) "
                "or chain.contract_address in config.",
                err=True,
            )
        sys.exit(1)


@click.group()
@click.option("-c", "--config", "config_path", default=None, help="Path to config TOML file")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: str | None, verbose: bool) -> None:
    """dregen-indexer - event indexer for the REGEN liquid staking contract."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _apply_log_level(ctx: click.Context, cfg: IndexerConfig) -> None:
    if ctx.obj["verbose"]:
        return
    level = getattr(logging, cfg.log_level.upper(), None)
    if isinstance(level, int):
        logging.getLogger().setLevel(level)


# ── Indexing ───────────────────────────────────────────


@cli.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Backfill, then follow the chain in real time."""
    cfg = _load(ctx)
    _require_valid(cfg)
    _apply_log_level(ctx, cfg)

    click.echo(f"Starting dregen indexer for {cfg.contract_address}")
    try:
        asyncio.run(run_daemon(cfg))
    except IndexerHaltedError as exc:
        click.echo(f"Indexer halted: {exc}", err=True)
        sys.exit(2)


@cli.command()
@click.pass_context
def backfill(ctx: click.Context) -> None:
    """Index up to the current chain head, then exit."""
    cfg = _load(ctx)
    _require_valid(cfg)
    _apply_log_level(ctx, cfg)

    try:
        processed = asyncio.run(IndexerDaemon(cfg).backfill())
    except IndexerHaltedError as exc:
        click.echo(f"Backfill halted: {exc}", err=True)
        sys.exit(2)
    click.echo(f"Backfill complete: {processed} blocks")


# ── Info ───────────────────────────────────────────────


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration and what has been indexed so far."""
    cfg = _load(ctx)
    click.echo(f"Contract:      {cfg.contract_address or '(not set)'}")
    click.echo(f"RPC URL:       {cfg.rpc_url}")
    click.echo(f"LCD URL:       {cfg.lcd_url}")
    click.echo(f"Database:      {cfg.database_url}")
    click.echo(f"Start height:  {cfg.start_height}")
    click.echo(f"Poll interval: {cfg.poll_interval_ms} ms")
    click.echo(f"Resume:        {'stored cursor' if cfg.resume_from_store else 'start height'}")

    async def _status():
        store = SQLiteRecordStore(cfg.database_url)
        await store.initialize()
        try:
            cursor = await store.get_cursor()
            counts = await store.count_records()
        finally:
            await store.close()

        click.echo("")
        click.echo(f"Stored cursor: {cursor if cursor is not None else '(none)'}")
        for kind in RECORD_KINDS:
            click.echo(f"  {kind + ' records:':<16}{counts[kind]}")

    asyncio.run(_status())


@cli.command()
@click.option(
    "--kind", "-k", type=click.Choice(RECORD_KINDS), default="stake",
    help="Record type to list",
)
@click.option("--limit", "-n", type=int, default=20, help="Maximum records to show")
@click.pass_context
def events(ctx: click.Context, kind: str, limit: int) -> None:
    """List the most recently indexed records."""
    cfg = _load(ctx)

    async def _events():
        store = SQLiteRecordStore(cfg.database_url)
        await store.initialize()
        try:
            return await store.get_records(kind, limit)
        finally:
            await store.close()

    records = asyncio.run(_events())
    if not records:
        click.echo(f"No {kind} records indexed.")
        return

    for rec in records:
        head = f"{rec.height:>10}  {rec.tx_hash[:16]}#{rec.event_index}  {rec.timestamp.isoformat()}"
        if isinstance(rec, StakeRecord):
            click.echo(
                f"{head}  {rec.staker}  regen={rec.regen_amount}"
                f" dregen={rec.dregen_amount} rate={rec.exchange_rate}"
            )
        elif isinstance(rec, UnbondRecord):
            click.echo(
                f"{head}  {rec.user}  dregen={rec.dregen_amount}"
                f" regen={rec.regen_amount} id={rec.unbonding_id}"
                f" completes={rec.completion_time.isoformat()}"
            )
        else:
            click.echo(f"{head}  {rec.claimer}")


@cli.command()
@click.pass_context
def info(ctx: click.Context) -> None:
    """Query the contract's staking state and exchange rate."""
    cfg = _load(ctx)
    if not cfg.contract_address:
        _require_valid(cfg)

    async def _info():
        queries = ContractQueries(cfg.contract_address, cfg.lcd_url, cfg.request_timeout)
        try:
            state = await queries.get_state()
            rate = await queries.get_exchange_rate()
        finally:
            await queries.close()

        click.echo(f"Contract:      {cfg.contract_address}")
        if state is None:
            click.echo("State:         (query failed)")
        else:
            click.echo(f"Total staked:  {_regen(state.total_regen_staked)} REGEN")
            click.echo(f"dREGEN supply: {_regen(state.total_dregen_supply)} dREGEN")
            click.echo(f"Unbonding:     {_regen(state.pending_unbonding)} REGEN")
        if rate is None:
            click.echo("Rate:          (query failed)")
        else:
            click.echo(f"Rate:          {rate.rate} REGEN per dREGEN")
        return state is not None and rate is not None

    if not asyncio.run(_info()):
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
