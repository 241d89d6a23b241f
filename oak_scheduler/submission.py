"""Submits signed extrinsics and follows them to a terminal status."""

from __future__ import annotations

import asyncio
import hashlib
import inspect
import logging
from typing import Any, Callable

from oak_scheduler.chain.connection import ConnectionManager
from oak_scheduler.errors import ValidationFailed, ValidationRule
from oak_scheduler.models import DispatchOutcome, OutcomeKind, StatusEvent, SubmissionResult
from oak_scheduler.outcome import DispatchOutcomeClassifier, is_terminal_status, is_valid_transition

LOGGER = logging.getLogger(__name__)

# May return an awaitable, which is awaited before the next event.
StatusCallback = Callable[[StatusEvent], Any]


def decode_extrinsic_hex(extrinsic_hex: str) -> bytes:
    """Decode a 0x-prefixed extrinsic, rejecting anything else."""

    if not isinstance(extrinsic_hex, str) or not extrinsic_hex.startswith("0x") or len(extrinsic_hex) <= 2:
        raise ValidationFailed(ValidationRule.INVALID_EXTRINSIC, "Extrinsic must be 0x-prefixed hex")
    try:
        return bytes.fromhex(extrinsic_hex[2:])
    except ValueError as exc:
        raise ValidationFailed(ValidationRule.INVALID_EXTRINSIC, f"Extrinsic is not valid hex: {exc}") from exc


def extrinsic_hash(raw: bytes) -> str:
    """Transaction hash as the node computes it: blake2b-256 of the encoded extrinsic."""

    return "0x" + hashlib.blake2b(raw, digest_size=32).hexdigest()


class SubmissionChannel:
    """Submits extrinsics and classifies what the node reports back.

    With wait_for_finalization the watch runs until a terminal status;
    otherwise it stops after the first event.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        classifier: DispatchOutcomeClassifier,
        timeout_seconds: float,
        wait_for_finalization: bool = True,
    ) -> None:
        self._connection = connection
        self._classifier = classifier
        self._timeout_seconds = timeout_seconds
        self._wait_for_finalization = wait_for_finalization

    async def submit(self, extrinsic_hex: str, on_status: StatusCallback | None = None) -> SubmissionResult:
        """Submit extrinsic_hex and return its hash with the classified outcome.

        Events go to on_status when given, in which case the default outcome
        logging is skipped. Dispatch errors are returned, not raised.
        """
        tx_hash = extrinsic_hash(decode_extrinsic_hex(extrinsic_hex))
        chain = await self._connection.get()
        stop_when = is_terminal_status if self._wait_for_finalization else _first_event
        events: list[StatusEvent] = []

        LOGGER.info("Submitting %s", tx_hash)
        try:
            await asyncio.wait_for(
                self._follow(chain.watch_extrinsic(extrinsic_hex, stop_when), tx_hash, stop_when, events, on_status),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError:
            last = events[-1] if events else None
            outcome = DispatchOutcome(
                kind=OutcomeKind.TIMED_OUT,
                tx_hash=tx_hash,
                status=last.status if last else None,
                block_hash=last.block_hash if last else None,
            )
        else:
            outcome = await self._classifier.classify(tx_hash, events[-1] if events else None)

        if on_status is None:
            self._classifier.log_outcome(outcome)
        return SubmissionResult(tx_hash=tx_hash, outcome=outcome, events=tuple(events))

    async def _follow(
        self,
        stream: Any,
        tx_hash: str,
        stop_when: Callable[[StatusEvent], bool],
        events: list[StatusEvent],
        on_status: StatusCallback | None,
    ) -> None:
        try:
            async for event in stream:
                prev = events[-1].status if events else None
                if not is_valid_transition(prev, event.status):
                    LOGGER.warning(
                        "Unexpected status transition for %s: %s -> %s",
                        tx_hash,
                        prev.value if prev else None,
                        event.status.value,
                    )
                events.append(event)
                if on_status is None:
                    LOGGER.info("Tx status: %s", event.status.value)
                else:
                    result = on_status(event)
                    if inspect.isawaitable(result):
                        await result
                if stop_when(event):
                    break
        finally:
            await stream.aclose()


def _first_event(event: StatusEvent) -> bool:
    return True
