"""Domain classification - maps a wasm event's ``action`` to a typed record.

Missing or malformed attributes never raise: strings default to ``""``,
token amounts to ``"0"`` and numbers to zero.
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone

from dregen_indexer.models.chain import RawContractEvent
from dregen_indexer.models.records import (
    DomainRecord,
    RewardRecord,
    StakeRecord,
    UnbondRecord,
)

log = logging.getLogger(__name__)

ACTION_KEY = "action"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# ASCII only; str.isdigit also accepts superscripts that int() rejects
_DIGITS = "0123456789"


def parse_float(value: str | None) -> float:
    """Permissive float parse: leading numeric prefix, else 0.0."""
    if not value:
        return 0.0
    text = value.strip()
    try:
        result = float(text)
        return result if math.isfinite(result) else 0.0
    except ValueError:
        pass
    # Accept a numeric prefix such as "1.05ustake"
    end = 0
    seen_dot = False
    for i, ch in enumerate(text):
        if ch in _DIGITS:
            end = i + 1
        elif ch == "." and not seen_dot:
            seen_dot = True
        elif ch in "+-" and i == 0:
            continue
        else:
            break
    try:
        return float(text[:end]) if end else 0.0
    except ValueError:
        return 0.0


def parse_int(value: str | None) -> int:
    """Permissive integer parse: leading digits, else 0."""
    if not value:
        return 0
    text = value.strip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if ch not in _DIGITS:
            break
        digits += ch
    if not digits:
        return 0
    try:
        return sign * int(digits)
    except ValueError:
        # beyond the interpreter's int string-conversion limit
        return 0


def unix_seconds_to_datetime(value: str | None) -> datetime:
    """Convert a Unix-seconds string to a UTC datetime via epoch milliseconds."""
    millis = parse_int(value) * 1000
    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except OverflowError:
        return _EPOCH


def _text(event: RawContractEvent, key: str) -> str:
    return event.get(key) or ""


def _amount(event: RawContractEvent, key: str) -> str:
    return event.get(key) or "0"


def classify(
    event: RawContractEvent,
    tx_hash: str,
    height: int,
    timestamp: datetime,
) -> DomainRecord | None:
    """Build the domain record for ``event``, or None for unknown actions."""
    action = event.get(ACTION_KEY)

    if action == "stake":
        return StakeRecord(
            tx_hash=tx_hash,
            height=height,
            event_index=event.index,
            staker=_text(event, "staker"),
            regen_amount=_amount(event, "regen_amount"),
            dregen_amount=_amount(event, "dregen_amount"),
            exchange_rate=parse_float(event.get("exchange_rate")),
            timestamp=timestamp,
        )

    if action == "unbond":
        return UnbondRecord(
            tx_hash=tx_hash,
            height=height,
            event_index=event.index,
            user=_text(event, "user"),
            dregen_amount=_amount(event, "dregen_amount"),
            regen_amount=_amount(event, "regen_amount"),
            unbonding_id=parse_int(event.get("unbonding_id")),
            completion_time=unix_seconds_to_datetime(event.get("completion_time")),
            timestamp=timestamp,
        )

    if action == "claim_rewards":
        return RewardRecord(
            tx_hash=tx_hash,
            height=height,
            event_index=event.index,
            claimer=_text(event, "claimer"),
            timestamp=timestamp,
        )

    log.debug("Ignoring action %r in tx %s at height %d", action, tx_hash, height)
    return None
