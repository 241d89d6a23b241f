"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from oak_scheduler.errors import DispatchFailed


class TaskKind(str, Enum):
    """Extrinsic variants understood by the automation time pallet."""

    SCHEDULE_NOTIFY = "schedule_notify_task"
    SCHEDULE_NATIVE_TRANSFER = "schedule_native_transfer_task"
    CANCEL = "cancel_task"


@dataclass(slots=True, frozen=True)
class NotifyPayload:
    """Message delivered by a recurring notify task."""

    message: str


@dataclass(slots=True, frozen=True)
class TransferPayload:
    """Recipient and amount (in planck) of a recurring native transfer."""

    recipient: str
    amount: int


@dataclass(slots=True)
class ScheduleRequest:
    """A caller's request to schedule a recurring task."""

    provided_id: str
    timestamps: list[int | float]
    payload: NotifyPayload | TransferPayload


@dataclass(slots=True, frozen=True)
class SignedExtrinsic:
    """Signed, chain-submittable payload in its hex wire form."""

    kind: TaskKind
    signer: str
    nonce: int
    hex: str
    task_id: str | None = None


class TxStatus(str, Enum):
    """Transaction pool statuses streamed by author_submitAndWatchExtrinsic."""

    FUTURE = "future"
    READY = "ready"
    BROADCAST = "broadcast"
    IN_BLOCK = "in_block"
    RETRACTED = "retracted"
    FINALITY_TIMEOUT = "finality_timeout"
    FINALIZED = "finalized"
    USURPED = "usurped"
    DROPPED = "dropped"
    INVALID = "invalid"


@dataclass(slots=True, frozen=True)
class StatusEvent:
    """One status update for a watched extrinsic."""

    status: TxStatus
    block_hash: str | None = None
    raw: Any = None


@dataclass(slots=True, frozen=True)
class ModuleErrorInfo:
    """Metadata entry describing a pallet error."""

    section: str
    name: str
    docs: tuple[str, ...] = ()


class OutcomeKind(str, Enum):
    PENDING = "pending"
    FINALIZED_OK = "finalized_ok"
    FINALIZED_ERROR = "finalized_error"
    DROPPED = "dropped"
    TIMED_OUT = "timed_out"


@dataclass(slots=True, frozen=True)
class DispatchFailure:
    """Why the chain did not apply a transaction.

    Module-scoped errors carry section/name/docs; anything else only has raw.
    """

    section: str | None = None
    name: str | None = None
    docs: tuple[str, ...] = ()
    raw: str | None = None

    @property
    def is_module_error(self) -> bool:
        return self.section is not None


@dataclass(slots=True, frozen=True)
class DispatchOutcome:
    """Terminal (or last observed) classification of a submitted extrinsic."""

    kind: OutcomeKind
    tx_hash: str
    status: TxStatus | None = None
    block_hash: str | None = None
    failure: DispatchFailure | None = None

    @property
    def is_terminal(self) -> bool:
        return self.kind in (OutcomeKind.FINALIZED_OK, OutcomeKind.FINALIZED_ERROR, OutcomeKind.DROPPED)

    @property
    def succeeded(self) -> bool:
        return self.kind is OutcomeKind.FINALIZED_OK

    def describe(self) -> str:
        """Return a one-line human readable summary."""

        text = f"{self.tx_hash} {self.kind.value}"
        if self.block_hash:
            text += f" in block {self.block_hash}"
        if self.failure is not None:
            if self.failure.is_module_error:
                docs = " ".join(self.failure.docs)
                text += f": {self.failure.section}.{self.failure.name}"
                if docs:
                    text += f" ({docs})"
            elif self.failure.raw:
                text += f": {self.failure.raw}"
        return text

    def raise_for_error(self) -> None:
        """Raise DispatchFailed if the chain rejected or dropped the transaction."""

        if self.kind in (OutcomeKind.FINALIZED_ERROR, OutcomeKind.DROPPED):
            raise DispatchFailed(self)


@dataclass(slots=True, frozen=True)
class SubmissionResult:
    """Hash of a submitted extrinsic and what became of it."""

    tx_hash: str
    outcome: DispatchOutcome
    events: tuple[StatusEvent, ...] = field(default_factory=tuple)
