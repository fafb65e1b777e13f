"""CometBFT (Tendermint) JSON-RPC chain reader.

Reads heights, block headers and per-height transaction results over the
node's HTTP RPC and parses them into typed chain shapes. Anything the node
returns that does not fit those shapes raises ChainReaderError here, so the
rest of the pipeline never touches raw JSON.
"""

from __future__ import annotations

import base64
import binascii
import logging
import re
from datetime import datetime, timezone
from typing import Any

import httpx

from dregen_indexer.errors import ChainReaderError
from dregen_indexer.models.chain import BlockHeader, RawContractEvent, TxResult

log = logging.getLogger(__name__)

TX_SEARCH_PAGE_SIZE = 100

# RFC 3339 with optional fraction of up to nanosecond precision
_RFC3339 = re.compile(
    r"^(\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?:\.(\d+))?(Z|[+-]\d{2}:\d{2})$"
)


def parse_block_time(value: str) -> datetime:
    """Parse a CometBFT header time, truncating the fraction to microseconds."""
    m = _RFC3339.match(value.strip()) if isinstance(value, str) else None
    if m is None:
        raise ChainReaderError(f"malformed block time: {value!r}")
    base, fraction, zone = m.groups()
    micro = (fraction or "0")[:6].ljust(6, "0")
    offset = "+00:00" if zone == "Z" else zone
    dt = datetime.fromisoformat(f"{base}.{micro}{offset}")
    return dt.astimezone(timezone.utc)


def _b64_text(value: str) -> str:
    try:
        return base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise ChainReaderError(f"attribute is not valid base64 text: {value!r}") from exc


def parse_event(raw: Any, index: int, base64_attributes: bool = False) -> RawContractEvent:
    """Parse one ABCI event into a RawContractEvent."""
    if not isinstance(raw, dict) or not isinstance(raw.get("type"), str):
        raise ChainReaderError(f"malformed event at index {index}: {raw!r}")

    attributes: list[tuple[str, str]] = []
    for attr in raw.get("attributes") or []:
        if not isinstance(attr, dict):
            raise ChainReaderError(f"malformed attribute in event {index}: {attr!r}")
        key = attr.get("key")
        value = attr.get("value")
        if key is None:
            raise ChainReaderError(f"attribute without key in event {index}")
        key = str(key)
        value = "" if value is None else str(value)
        if base64_attributes:
            key = _b64_text(key)
            value = _b64_text(value) if value else ""
        attributes.append((key, value))

    return RawContractEvent(type=raw["type"], attributes=tuple(attributes), index=index)


def parse_tx(raw: Any, base64_attributes: bool = False) -> TxResult:
    """Parse one ``tx_search`` result entry into a TxResult."""
    if not isinstance(raw, dict):
        raise ChainReaderError(f"malformed tx entry: {raw!r}")
    tx_hash = raw.get("hash")
    if not isinstance(tx_hash, str) or not tx_hash:
        raise ChainReaderError("tx entry without hash")
    result = raw.get("tx_result")
    if not isinstance(result, dict):
        raise ChainReaderError(f"tx {tx_hash} has no tx_result")
    try:
        height = int(raw["height"])
        code = int(result.get("code", 0))
    except (KeyError, TypeError, ValueError) as exc:
        raise ChainReaderError(f"tx {tx_hash} has malformed height/code") from exc

    events = tuple(
        parse_event(ev, i, base64_attributes)
        for i, ev in enumerate(result.get("events") or [])
    )
    return TxResult(hash=tx_hash, height=height, code=code, events=events)


class CometRPCReader:
    """ChainReader over a CometBFT node's HTTP RPC.

    Owns an httpx.AsyncClient for the lifetime of the run; call close() when
    done. A client may be injected (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        rpc_url: str,
        timeout: float = 30.0,
        base64_attributes: bool = False,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._rpc_url = rpc_url.rstrip("/")
        self._base64_attributes = base64_attributes
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=10),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def _get(self, endpoint: str, params: dict[str, str] | None = None) -> dict:
        url = f"{self._rpc_url}/{endpoint}"
        try:
            resp = await self._client.get(url, params=params)
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPStatusError as exc:
            raise ChainReaderError(
                f"{endpoint}: HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise ChainReaderError(f"{endpoint}: {exc}") from exc
        except ValueError as exc:
            raise ChainReaderError(f"{endpoint}: response is not JSON") from exc

        if not isinstance(body, dict):
            raise ChainReaderError(f"{endpoint}: unexpected response {body!r}")
        if body.get("error"):
            raise ChainReaderError(f"{endpoint}: RPC error {body['error']}")
        result = body.get("result")
        if not isinstance(result, dict):
            raise ChainReaderError(f"{endpoint}: response has no result")
        return result

    async def current_height(self) -> int:
        result = await self._get("status")
        try:
            return int(result["sync_info"]["latest_block_height"])
        except (KeyError, TypeError, ValueError) as exc:
            raise ChainReaderError("status: missing latest_block_height") from exc

    async def block_header(self, height: int) -> BlockHeader:
        result = await self._get("block", {"height": str(height)})
        try:
            header = result["block"]["header"]
            time_str = header["time"]
        except (KeyError, TypeError) as exc:
            raise ChainReaderError(f"block {height}: missing header time") from exc
        return BlockHeader(height=height, time=parse_block_time(time_str))

    async def transactions_at(self, height: int) -> list[TxResult]:
        txs: list[TxResult] = []
        page = 1
        while True:
            result = await self._get(
                "tx_search",
                {
                    "query": f'"tx.height={height}"',
                    "prove": "false",
                    "page": str(page),
                    "per_page": str(TX_SEARCH_PAGE_SIZE),
                    "order_by": '"asc"',
                },
            )
            raw_txs = result.get("txs") or []
            try:
                total = int(result.get("total_count", len(raw_txs)))
            except (TypeError, ValueError) as exc:
                raise ChainReaderError(f"tx_search {height}: bad total_count") from exc

            txs.extend(parse_tx(raw, self._base64_attributes) for raw in raw_txs)

            if not raw_txs or len(txs) >= total:
                break
            page += 1

        for tx in txs:
            if tx.height != height:
                raise ChainReaderError(
                    f"tx_search {height}: tx {tx.hash} reported height {tx.height}"
                )
        log.debug("Fetched %d txs at height %d", len(txs), height)
        return txs
