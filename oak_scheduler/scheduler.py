"""Client for the OAK automation time pallet."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Sequence

from oak_scheduler.builder import ExtrinsicBuilder
from oak_scheduler.chain.connection import ConnectionManager, TransportFactory
from oak_scheduler.chain.rpc import JsonRpcClient
from oak_scheduler.config import ChainProfile, Settings, build_profile
from oak_scheduler.models import SubmissionResult
from oak_scheduler.nonce import ChainNonce, NonceStrategy, TrackedNonce
from oak_scheduler.outcome import DispatchOutcomeClassifier
from oak_scheduler.signer import Signer
from oak_scheduler.submission import StatusCallback, SubmissionChannel, decode_extrinsic_hex
from oak_scheduler.task_id import TaskIdResolver
from oak_scheduler.timeutils import Clock, normalize_to_seconds, utc_now
from oak_scheduler.validation import ScheduleValidator

if TYPE_CHECKING:
    from oak_scheduler.chain.base import ChainTransport


def _default_transport_factory(profile: ChainProfile) -> ChainTransport:
    # substrate-interface is only imported when a real connection is needed.
    from oak_scheduler.chain.substrate import SubstrateChain

    return SubstrateChain(profile)


class Scheduler:
    """Builds, signs and submits automation time extrinsics for one chain.

    Build methods serialize per account under the default nonce strategy:
    wait for one extrinsic to finalize before building the next from the
    same address.
    """

    def __init__(
        self,
        profile: ChainProfile,
        *,
        transport_factory: TransportFactory | None = None,
        rpc: JsonRpcClient | None = None,
        nonce_strategy: NonceStrategy | None = None,
        clock: Clock = utc_now,
        request_timeout_seconds: float = 30.0,
        submit_timeout_seconds: float = 300.0,
        wait_for_finalization: bool = True,
    ) -> None:
        self.profile = profile
        self._rpc = rpc or JsonRpcClient(profile.http_url, timeout_seconds=request_timeout_seconds)
        self._connection = ConnectionManager(profile, transport_factory or _default_transport_factory)
        self._validator = ScheduleValidator(profile, clock=clock)
        self._resolver = TaskIdResolver(self._rpc, self._validator)
        self.nonces = nonce_strategy or ChainNonce(self._rpc)
        self._builder = ExtrinsicBuilder(
            connection=self._connection,
            validator=self._validator,
            resolver=self._resolver,
            nonces=self.nonces,
        )
        self._classifier = DispatchOutcomeClassifier(self._connection)
        self._channel = SubmissionChannel(
            connection=self._connection,
            classifier=self._classifier,
            timeout_seconds=submit_timeout_seconds,
            wait_for_finalization=wait_for_finalization,
        )

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> Scheduler:
        """Create a client from environment settings."""

        profile = build_profile(settings)
        kwargs.setdefault("rpc", JsonRpcClient(profile.http_url, timeout_seconds=settings.request_timeout_seconds))
        if "nonce_strategy" not in kwargs and settings.nonce_strategy == "tracked":
            kwargs["nonce_strategy"] = TrackedNonce(kwargs["rpc"])
        return cls(
            profile,
            request_timeout_seconds=settings.request_timeout_seconds,
            submit_timeout_seconds=settings.submit_timeout_seconds,
            wait_for_finalization=settings.wait_for_finalization,
            **kwargs,
        )

    async def __aenter__(self) -> Scheduler:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def close(self) -> None:
        await self._connection.close()

    async def get_inclusion_fees(self, extrinsic_hex: str) -> int:
        """Inclusion fee (in planck) for a signed extrinsic, excluding execution fees.

        The payer is the signer embedded in the extrinsic.
        """
        decode_extrinsic_hex(extrinsic_hex)
        info = await self._rpc.query_fee_info(extrinsic_hex)
        return info.partial_fee

    async def get_task_id(self, address: str, provided_id: str) -> str:
        return await self._resolver.resolve(address, provided_id)

    def validate_timestamps(self, timestamps: Sequence[int]) -> None:
        """Validate timestamps given in seconds or milliseconds."""

        self._validator.validate_timestamps(normalize_to_seconds(timestamps))

    def validate_transfer_params(self, amount: int, sender: str, recipient: str) -> None:
        self._validator.validate_transfer_params(amount, sender, recipient)

    async def build_schedule_notify_extrinsic(
        self,
        address: str,
        provided_id: str,
        timestamps: Sequence[int],
        message: str,
        signer: Signer,
    ) -> str:
        """Build and sign a recurring notify task. Returns the 0x hex extrinsic."""

        extrinsic = await self._builder.build_schedule_notify(address, provided_id, timestamps, message, signer)
        return extrinsic.hex

    async def build_schedule_native_transfer_extrinsic(
        self,
        address: str,
        provided_id: str,
        timestamps: Sequence[int],
        recipient: str,
        amount: int,
        signer: Signer,
    ) -> str:
        """Build and sign a recurring native transfer. Returns the 0x hex extrinsic."""

        extrinsic = await self._builder.build_schedule_native_transfer(
            address, provided_id, timestamps, recipient, amount, signer
        )
        return extrinsic.hex

    async def build_cancel_task_extrinsic(self, address: str, provided_id: str, signer: Signer) -> str:
        extrinsic = await self._builder.build_cancel_task(address, provided_id, signer)
        return extrinsic.hex

    async def send_extrinsic(
        self,
        extrinsic_hex: str,
        on_status: StatusCallback | None = None,
    ) -> SubmissionResult:
        """Submit a signed extrinsic.

        Dispatch errors come back in the result's outcome; call
        ``result.outcome.raise_for_error()`` to turn them into exceptions.
        """
        return await self._channel.submit(extrinsic_hex, on_status)
