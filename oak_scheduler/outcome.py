"""
Extrinsic lifecycle and dispatch outcome classification.

The transition table below is observational: submission code uses it to
log unexpected status sequences, never to reject them. Nodes may skip
states (e.g. go from ready straight to in_block).
"""

from __future__ import annotations

import json
import logging
from typing import Any

from oak_scheduler.chain.connection import ConnectionManager
from oak_scheduler.errors import RpcError
from oak_scheduler.models import (
    DispatchFailure,
    DispatchOutcome,
    OutcomeKind,
    StatusEvent,
    TxStatus,
)

LOGGER = logging.getLogger(__name__)

_STATUS_KEYS: dict[str, TxStatus] = {
    "future": TxStatus.FUTURE,
    "ready": TxStatus.READY,
    "broadcast": TxStatus.BROADCAST,
    "inBlock": TxStatus.IN_BLOCK,
    "retracted": TxStatus.RETRACTED,
    "finalityTimeout": TxStatus.FINALITY_TIMEOUT,
    "finalized": TxStatus.FINALIZED,
    "usurped": TxStatus.USURPED,
    "dropped": TxStatus.DROPPED,
    "invalid": TxStatus.INVALID,
}

# Statuses carrying a block hash as their value.
_BLOCK_STATUSES = frozenset(
    {
        TxStatus.IN_BLOCK,
        TxStatus.RETRACTED,
        TxStatus.FINALITY_TIMEOUT,
        TxStatus.FINALIZED,
    }
)

# Once reached, the node sends no further updates for the extrinsic.
TX_TERMINAL_STATES: frozenset[TxStatus] = frozenset(
    {
        TxStatus.FINALIZED,
        TxStatus.FINALITY_TIMEOUT,
        TxStatus.USURPED,
        TxStatus.DROPPED,
        TxStatus.INVALID,
    }
)

_LEFT_POOL = frozenset({TxStatus.USURPED, TxStatus.DROPPED, TxStatus.INVALID})

# Key   : previous status (None before the first event)
# Value : statuses that may follow
TX_ALLOWED_TRANSITIONS: dict[TxStatus | None, frozenset[TxStatus]] = {
    None: frozenset({TxStatus.FUTURE, TxStatus.READY, TxStatus.INVALID, TxStatus.DROPPED}),
    TxStatus.FUTURE: frozenset({TxStatus.READY} | _LEFT_POOL),
    TxStatus.READY: frozenset({TxStatus.BROADCAST, TxStatus.IN_BLOCK} | _LEFT_POOL),
    TxStatus.BROADCAST: frozenset({TxStatus.BROADCAST, TxStatus.IN_BLOCK} | _LEFT_POOL),
    TxStatus.IN_BLOCK: frozenset({TxStatus.RETRACTED, TxStatus.FINALIZED, TxStatus.FINALITY_TIMEOUT}),
    TxStatus.RETRACTED: frozenset(
        {TxStatus.READY, TxStatus.BROADCAST, TxStatus.IN_BLOCK} | _LEFT_POOL
    ),
}


def is_terminal_status(event: StatusEvent) -> bool:
    """Return True if no further events will follow this one."""
    return event.status in TX_TERMINAL_STATES


def is_valid_transition(prev_status: TxStatus | None, next_status: TxStatus) -> bool:
    """Return True if the transition prev_status -> next_status is expected."""
    allowed = TX_ALLOWED_TRANSITIONS.get(prev_status)
    if allowed is None:
        return False
    return next_status in allowed


def parse_status(raw: Any) -> StatusEvent:
    """Turn a node's extrinsic status payload into a StatusEvent.

    Plain statuses arrive as strings ("ready"); the rest are single-key
    objects such as {"inBlock": "0x..."}.
    """
    if isinstance(raw, str):
        key, value = raw, None
    elif isinstance(raw, dict) and len(raw) == 1:
        key, value = next(iter(raw.items()))
    else:
        raise RpcError(f"Unrecognised extrinsic status {raw!r}", method="author_submitAndWatchExtrinsic")

    status = _STATUS_KEYS.get(key)
    if status is None:
        raise RpcError(f"Unrecognised extrinsic status {raw!r}", method="author_submitAndWatchExtrinsic")
    block_hash = value if status in _BLOCK_STATUSES and isinstance(value, str) else None
    return StatusEvent(status=status, block_hash=block_hash, raw=raw)


def module_error_indices(dispatch_error: Any) -> tuple[int, int] | None:
    """Extract (pallet index, error index) from a Module dispatch error.

    Returns None for any other kind of dispatch error.
    """
    if not isinstance(dispatch_error, dict) or "Module" not in dispatch_error:
        return None
    module = dispatch_error["Module"]
    if isinstance(module, dict):
        index, error = module.get("index"), module.get("error")
    elif isinstance(module, (list, tuple)) and len(module) == 2:
        index, error = module
    else:
        return None

    # Newer runtimes encode the error as 4 bytes, the first being the index.
    if isinstance(error, str) and error.startswith("0x"):
        error = bytes.fromhex(error[2:])
    if isinstance(error, (bytes, bytearray, list, tuple)):
        error = error[0] if error else None
    if not isinstance(index, int) or not isinstance(error, int):
        return None
    return index, error


def describe_dispatch_error(dispatch_error: Any) -> str:
    if isinstance(dispatch_error, str):
        return dispatch_error
    return json.dumps(dispatch_error, default=str, sort_keys=True)


class DispatchOutcomeClassifier:
    """Turns the last observed status event into a DispatchOutcome."""

    def __init__(self, connection: ConnectionManager) -> None:
        self._connection = connection

    async def classify(self, tx_hash: str, event: StatusEvent | None) -> DispatchOutcome:
        """Classify without raising; lookup failures become FINALIZED_ERROR."""

        if event is None:
            return DispatchOutcome(kind=OutcomeKind.PENDING, tx_hash=tx_hash)
        if event.status is TxStatus.FINALIZED:
            return await self._classify_finalized(tx_hash, event)
        if is_terminal_status(event):
            return DispatchOutcome(
                kind=OutcomeKind.DROPPED,
                tx_hash=tx_hash,
                status=event.status,
                block_hash=event.block_hash,
                failure=DispatchFailure(raw=f"transaction {event.status.value}"),
            )
        return DispatchOutcome(
            kind=OutcomeKind.PENDING,
            tx_hash=tx_hash,
            status=event.status,
            block_hash=event.block_hash,
        )

    async def _classify_finalized(self, tx_hash: str, event: StatusEvent) -> DispatchOutcome:
        try:
            chain = await self._connection.get()
            dispatch_error = await chain.dispatch_error(event.block_hash or "", tx_hash)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Could not read dispatch result of %s: %s", tx_hash, exc)
            failure = DispatchFailure(raw=f"dispatch result unavailable: {exc}")
            return self._finalized(tx_hash, event, failure)

        if dispatch_error is None:
            return self._finalized(tx_hash, event, None)

        indices = module_error_indices(dispatch_error)
        if indices is None:
            return self._finalized(tx_hash, event, DispatchFailure(raw=describe_dispatch_error(dispatch_error)))
        try:
            info = await chain.find_module_error(*indices)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Metadata lookup failed for module error %s: %s", indices, exc)
            return self._finalized(tx_hash, event, DispatchFailure(raw=describe_dispatch_error(dispatch_error)))
        failure = DispatchFailure(section=info.section, name=info.name, docs=info.docs)
        return self._finalized(tx_hash, event, failure)

    @staticmethod
    def _finalized(tx_hash: str, event: StatusEvent, failure: DispatchFailure | None) -> DispatchOutcome:
        return DispatchOutcome(
            kind=OutcomeKind.FINALIZED_OK if failure is None else OutcomeKind.FINALIZED_ERROR,
            tx_hash=tx_hash,
            status=event.status,
            block_hash=event.block_hash,
            failure=failure,
        )

    @staticmethod
    def log_outcome(outcome: DispatchOutcome) -> None:
        if outcome.kind is OutcomeKind.FINALIZED_OK:
            LOGGER.info("Transaction finalized: %s", outcome.describe())
        elif outcome.kind is OutcomeKind.FINALIZED_ERROR:
            LOGGER.warning("Transaction finalized with error by blockchain: %s", outcome.describe())
        elif outcome.kind is OutcomeKind.DROPPED:
            LOGGER.warning("Transaction left the pool without finalizing: %s", outcome.describe())
        elif outcome.kind is OutcomeKind.TIMED_OUT:
            LOGGER.warning("Gave up waiting for transaction: %s", outcome.describe())
        else:
            LOGGER.info("Transaction pending: %s", outcome.describe())
