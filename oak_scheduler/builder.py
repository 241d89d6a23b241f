"""Builds and signs automation time extrinsics."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from oak_scheduler.chain.connection import ConnectionManager
from oak_scheduler.errors import SigningFailed
from oak_scheduler.models import (
    NotifyPayload,
    ScheduleRequest,
    SignedExtrinsic,
    TaskKind,
    TransferPayload,
)
from oak_scheduler.nonce import NonceStrategy
from oak_scheduler.signer import Signer
from oak_scheduler.task_id import TaskIdResolver
from oak_scheduler.timeutils import normalize_to_seconds
from oak_scheduler.validation import ScheduleValidator

LOGGER = logging.getLogger(__name__)

PALLET = "AutomationTime"


class ExtrinsicBuilder:
    """Validates scheduling input, then composes and signs the matching call.

    Validation always runs before the chain connection is touched, so a
    rejected request costs no network round trip.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        validator: ScheduleValidator,
        resolver: TaskIdResolver,
        nonces: NonceStrategy,
    ) -> None:
        self._connection = connection
        self._validator = validator
        self._resolver = resolver
        self._nonces = nonces

    async def build_schedule_notify(
        self,
        address: str,
        provided_id: str,
        timestamps: Sequence[int],
        message: str,
        signer: Signer,
    ) -> SignedExtrinsic:
        request = ScheduleRequest(
            provided_id=provided_id,
            timestamps=normalize_to_seconds(timestamps),
            payload=NotifyPayload(message=message),
        )
        self._validator.validate_request(address, request)
        task_id = await self._resolver.resolve(address, provided_id)
        params = {
            "provided_id": provided_id,
            "execution_times": request.timestamps,
            "message": message,
        }
        return await self._sign(TaskKind.SCHEDULE_NOTIFY, address, params, signer, task_id=task_id)

    async def build_schedule_native_transfer(
        self,
        address: str,
        provided_id: str,
        timestamps: Sequence[int],
        recipient: str,
        amount: int,
        signer: Signer,
    ) -> SignedExtrinsic:
        request = ScheduleRequest(
            provided_id=provided_id,
            timestamps=normalize_to_seconds(timestamps),
            payload=TransferPayload(recipient=recipient, amount=amount),
        )
        self._validator.validate_request(address, request)
        params = {
            "provided_id": provided_id,
            "execution_times": request.timestamps,
            "recipient_id": recipient,
            "amount": amount,
        }
        return await self._sign(TaskKind.SCHEDULE_NATIVE_TRANSFER, address, params, signer)

    async def build_cancel_task(self, address: str, provided_id: str, signer: Signer) -> SignedExtrinsic:
        """Build a cancellation. Whether the task exists is for the chain to decide."""

        task_id = await self._resolver.resolve(address, provided_id)
        return await self._sign(TaskKind.CANCEL, address, {"task_id": task_id}, signer, task_id=task_id)

    async def _sign(
        self,
        kind: TaskKind,
        address: str,
        params: dict[str, Any],
        signer: Signer,
        task_id: str | None = None,
    ) -> SignedExtrinsic:
        chain = await self._connection.get()
        call = await chain.compose_call(PALLET, kind.value, params)
        nonce = await self._nonces.next_nonce(address)
        payload = await chain.signature_payload(call, nonce)

        try:
            signature = await signer.sign(address, payload)
        except Exception as exc:  # noqa: BLE001
            raise SigningFailed(f"Signer failed for {address}: {exc}") from exc
        signature = _as_signature_bytes(signature)

        extrinsic_hex = await chain.assemble_signed(call, address, nonce, signature)
        LOGGER.info("Built %s for %s with nonce %d", kind.value, address, nonce)
        return SignedExtrinsic(kind=kind, signer=address, nonce=nonce, hex=extrinsic_hex, task_id=task_id)


def _as_signature_bytes(signature: Any) -> bytes:
    # Browser-style signers hand back 0x-prefixed hex.
    if isinstance(signature, str) and signature.startswith("0x"):
        try:
            signature = bytes.fromhex(signature[2:])
        except ValueError as exc:
            raise SigningFailed(f"Signer returned malformed hex: {exc}") from exc
    if not isinstance(signature, (bytes, bytearray)) or not signature:
        raise SigningFailed(f"Signer returned an unusable signature: {signature!r}")
    return bytes(signature)
