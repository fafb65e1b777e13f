"""Read-only smart queries against the liquid staking contract (LCD REST)."""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass

import httpx

log = logging.getLogger(__name__)

UREGEN_PER_REGEN = 1_000_000


@dataclass
class ContractState:
    """Response of the contract's ``state`` query."""

    total_regen_staked: int
    total_dregen_supply: int
    exchange_rate: float
    last_update_time: int
    total_rewards_claimed: int
    pending_unbonding: int


@dataclass
class ExchangeRate:
    """Response of the contract's ``exchange_rate`` query."""

    rate: float
    last_updated: int


def encode_query(msg: dict) -> str:
    """Base64 of the compact JSON query message, as the LCD path expects."""
    raw = json.dumps(msg, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).decode("ascii")


class ContractQueries:
    """Smart queries via ``/cosmwasm/wasm/v1/contract/{addr}/smart/{query}``.

    Failures are logged and reported as None so callers keep their previous
    view instead of showing partial data.
    """

    def __init__(
        self,
        contract_address: str,
        lcd_url: str,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._contract_address = contract_address
        self._lcd_url = lcd_url.rstrip("/")
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def _smart(self, msg: dict) -> dict | None:
        url = (
            f"{self._lcd_url}/cosmwasm/wasm/v1/contract/"
            f"{self._contract_address}/smart/{encode_query(msg)}"
        )
        resp = await self._client.get(url)
        resp.raise_for_status()
        body = resp.json()
        data = body.get("data") if isinstance(body, dict) else None
        return data if isinstance(data, dict) else None

    async def get_state(self) -> ContractState | None:
        """Total staked REGEN, dREGEN supply and related counters."""
        try:
            data = await self._smart({"state": {}})
            if data is None:
                return None
            return ContractState(
                total_regen_staked=int(data["total_regen_staked"]),
                total_dregen_supply=int(data["total_dregen_supply"]),
                exchange_rate=float(data["exchange_rate"]),
                last_update_time=int(data.get("last_update_time", 0)),
                total_rewards_claimed=int(data.get("total_rewards_claimed", 0)),
                pending_unbonding=int(data.get("pending_unbonding", 0)),
            )
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            log.warning("state query failed: %s", exc)
            return None

    async def get_exchange_rate(self) -> ExchangeRate | None:
        """Current REGEN per dREGEN rate."""
        try:
            data = await self._smart({"exchange_rate": {}})
            if data is None:
                return None
            return ExchangeRate(
                rate=float(data["rate"]),
                last_updated=int(data.get("last_updated", 0)),
            )
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            log.warning("exchange_rate query failed: %s", exc)
            return None
