"""Event extraction - selects the target contract's wasm events from a tx."""

from __future__ import annotations

from dregen_indexer.models.chain import RawContractEvent, TxResult

WASM_EVENT_TYPE = "wasm"
CONTRACT_ADDRESS_KEY = "_contract_address"


def is_contract_event(event: RawContractEvent, contract_address: str) -> bool:
    """True if ``event`` is a wasm event emitted by ``contract_address``."""
    if event.type != WASM_EVENT_TYPE:
        return False
    return any(
        k == CONTRACT_ADDRESS_KEY and v == contract_address
        for k, v in event.attributes
    )


def extract_contract_events(
    tx: TxResult, contract_address: str,
) -> list[RawContractEvent]:
    """Return the tx's events emitted by the target contract, in emission order."""
    return [e for e in tx.events if is_contract_event(e, contract_address)]
