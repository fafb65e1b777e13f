"""CometRPCReader against a mocked CometBFT HTTP RPC."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from dregen_indexer.cosmos.rpc import CometRPCReader, parse_block_time, parse_tx
from dregen_indexer.errors import ChainReaderError

from tests.conftest import RPC_URL
from tests.factories import CONTRACT


def _rpc(result: dict) -> dict:
    return {"jsonrpc": "2.0", "id": -1, "result": result}


def _raw_tx(hash: str, height: int = 7, code: int = 0, events: list | None = None) -> dict:
    return {
        "hash": hash,
        "height": str(height),
        "index": 0,
        "tx_result": {"code": code, "events": events or []},
    }


def _reader(handler, **kw) -> CometRPCReader:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return CometRPCReader(RPC_URL, client=client, **kw)


# ── Heights and headers ───────────────────────────────────────────


async def test_current_height_from_status():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/status"
        return httpx.Response(
            200, json=_rpc({"sync_info": {"latest_block_height": "12345"}}),
        )

    reader = _reader(handler)
    assert await reader.current_height() == 12345
    await reader.close()


async def test_block_header_time_with_nanoseconds():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/block"
        assert request.url.params["height"] == "100"
        return httpx.Response(200, json=_rpc({
            "block": {"header": {"height": "100", "time": "2024-01-01T00:00:06.123456789Z"}},
        }))

    reader = _reader(handler)
    header = await reader.block_header(100)
    assert header.height == 100
    assert header.time == datetime(2024, 1, 1, 0, 0, 6, 123456, tzinfo=timezone.utc)
    await reader.close()


@pytest.mark.parametrize("value,expected", [
    ("2024-01-01T00:00:00Z", datetime(2024, 1, 1, tzinfo=timezone.utc)),
    ("2024-01-01T00:00:00.5Z", datetime(2024, 1, 1, 0, 0, 0, 500000, tzinfo=timezone.utc)),
    ("2024-01-01T02:00:00+02:00", datetime(2024, 1, 1, tzinfo=timezone.utc)),
])
def test_parse_block_time(value, expected):
    assert parse_block_time(value) == expected


@pytest.mark.parametrize("value", ["", "yesterday", "2024-01-01", None])
def test_parse_block_time_rejects_garbage(value):
    with pytest.raises(ChainReaderError):
        parse_block_time(value)


# ── Transactions ──────────────────────────────────────────────────


async def test_transactions_paginated_in_order():
    pages = {
        "1": [_raw_tx("T1"), _raw_tx("T2")],
        "2": [_raw_tx("T3")],
    }
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/tx_search"
        params = request.url.params
        assert params["query"] == '"tx.height=7"'
        seen.append(params["page"])
        return httpx.Response(200, json=_rpc({
            "txs": pages[params["page"]], "total_count": "3",
        }))

    reader = _reader(handler)
    txs = await reader.transactions_at(7)
    assert [t.hash for t in txs] == ["T1", "T2", "T3"]
    assert seen == ["1", "2"]
    await reader.close()


async def test_empty_block_has_no_transactions():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_rpc({"txs": [], "total_count": "0"}))

    reader = _reader(handler)
    assert await reader.transactions_at(7) == []
    await reader.close()


async def test_events_keep_order_and_index():
    events = [
        {"type": "message", "attributes": [{"key": "action", "value": "exec"}]},
        {"type": "wasm", "attributes": [
            {"key": "_contract_address", "value": CONTRACT},
            {"key": "action", "value": "stake"},
            {"key": "note", "value": None},
        ]},
    ]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_rpc({
            "txs": [_raw_tx("T1", code=0, events=events)], "total_count": "1",
        }))

    reader = _reader(handler)
    (tx,) = await reader.transactions_at(7)
    assert tx.succeeded
    assert [e.type for e in tx.events] == ["message", "wasm"]
    assert tx.events[1].index == 1
    assert tx.events[1].get("action") == "stake"
    assert tx.events[1].get("note") == ""
    await reader.close()


async def test_base64_attributes_decoded():
    events = [{"type": "wasm", "attributes": [
        {"key": "X2NvbnRyYWN0X2FkZHJlc3M=", "value": None},
        {"key": "YWN0aW9u", "value": "c3Rha2U="},
    ]}]

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_rpc({
            "txs": [_raw_tx("T1", events=events)], "total_count": "1",
        }))

    reader = _reader(handler, base64_attributes=True)
    (tx,) = await reader.transactions_at(7)
    assert tx.events[0].attributes == (("_contract_address", ""), ("action", "stake"))
    await reader.close()


def test_failed_tx_code_parsed():
    tx = parse_tx(_raw_tx("BAD", code=5))
    assert tx.code == 5
    assert not tx.succeeded


@pytest.mark.parametrize("raw", [
    "not a dict",
    {"height": "7", "tx_result": {}},
    {"hash": "H", "height": "7"},
    {"hash": "H", "height": "seven", "tx_result": {}},
    {"hash": "H", "height": "7", "tx_result": {"events": [{"attributes": []}]}},
])
def test_malformed_tx_rejected(raw):
    with pytest.raises(ChainReaderError):
        parse_tx(raw)


async def test_tx_from_wrong_height_rejected():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_rpc({
            "txs": [_raw_tx("T1", height=8)], "total_count": "1",
        }))

    reader = _reader(handler)
    with pytest.raises(ChainReaderError, match="reported height 8"):
        await reader.transactions_at(7)
    await reader.close()


# ── Transport failures ────────────────────────────────────────────


async def test_http_error_status_is_chain_reader_error():
    reader = _reader(lambda request: httpx.Response(503))
    with pytest.raises(ChainReaderError, match="HTTP 503"):
        await reader.current_height()
    await reader.close()


async def test_connection_error_is_chain_reader_error():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    reader = _reader(handler)
    with pytest.raises(ChainReaderError, match="connection refused"):
        await reader.block_header(1)
    await reader.close()


async def test_non_json_body_is_chain_reader_error():
    reader = _reader(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(ChainReaderError, match="not JSON"):
        await reader.current_height()
    await reader.close()


async def test_rpc_error_object_is_chain_reader_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={
            "jsonrpc": "2.0", "id": -1,
            "error": {"code": -32603, "message": "height 999 must be less than or equal to 10"},
        })

    reader = _reader(handler)
    with pytest.raises(ChainReaderError, match="RPC error"):
        await reader.block_header(999)
    await reader.close()


async def test_missing_status_fields_is_chain_reader_error():
    reader = _reader(lambda request: httpx.Response(200, json=_rpc({"node_info": {}})))
    with pytest.raises(ChainReaderError, match="latest_block_height"):
        await reader.current_height()
    await reader.close()
