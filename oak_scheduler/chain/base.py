"""Chain transport interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Callable

from oak_scheduler.models import ModuleErrorInfo, StatusEvent

StopCondition = Callable[[StatusEvent], bool]


class ChainTransport(ABC):
    """Websocket-facing boundary to a node.

    Composed calls are opaque to callers; they are only handed back to the
    same transport for signing and assembly.
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the connection and load runtime metadata."""

    @abstractmethod
    async def close(self) -> None:
        """Release the connection."""

    @abstractmethod
    async def compose_call(self, module: str, function: str, params: dict[str, Any]) -> Any:
        """Encode a pallet call."""

    @abstractmethod
    async def signature_payload(self, call: Any, nonce: int) -> bytes:
        """Return the bytes a signer must sign for call at nonce."""

    @abstractmethod
    async def assemble_signed(self, call: Any, address: str, nonce: int, signature: bytes) -> str:
        """Combine call, signer and signature into a 0x-prefixed extrinsic."""

    @abstractmethod
    def watch_extrinsic(self, extrinsic_hex: str, stop_when: StopCondition) -> AsyncIterator[StatusEvent]:
        """Submit an extrinsic and yield its status events.

        The subscription is released once stop_when returns True for an event
        or when the iterator is closed.
        """

    @abstractmethod
    async def dispatch_error(self, block_hash: str, tx_hash: str) -> Any | None:
        """Return the raw dispatch error of tx_hash in block_hash, or None if it succeeded."""

    @abstractmethod
    async def find_module_error(self, module_index: int, error_index: int) -> ModuleErrorInfo:
        """Look up a pallet error in the runtime metadata."""
