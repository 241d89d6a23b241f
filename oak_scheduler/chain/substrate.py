"""substrate-interface implementation of ChainTransport."""

from __future__ import annotations

import asyncio
import json
import logging
import threading
from typing import Any, AsyncIterator, Callable, TypeVar

from substrateinterface import ExtrinsicReceipt, Keypair, SubstrateInterface
from substrateinterface.exceptions import SubstrateRequestException
from websocket import WebSocketException

from oak_scheduler.chain.base import ChainTransport, StopCondition
from oak_scheduler.config import ChainProfile
from oak_scheduler.errors import ChainUnavailable, RpcError, SigningFailed
from oak_scheduler.models import ModuleErrorInfo, StatusEvent
from oak_scheduler.outcome import parse_status

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

_WATCH_DONE = object()


class SubstrateChain(ChainTransport):
    """Chain transport over a substrate-interface websocket.

    substrate-interface is synchronous, so every call runs in a worker
    thread and holds a lock for the duration of its socket use. Each
    watch opens its own socket so a quiet subscription never blocks other
    calls.
    """

    def __init__(
        self,
        profile: ChainProfile,
        interface_factory: Callable[..., SubstrateInterface] = SubstrateInterface,
    ) -> None:
        self._profile = profile
        self._interface_factory = interface_factory
        self._substrate: SubstrateInterface | None = None
        self._lock = threading.Lock()

    async def connect(self) -> None:
        self._substrate = await self._open()
        await self._run(self._interface.init_runtime)

    async def _open(self) -> SubstrateInterface:
        try:
            return await asyncio.to_thread(
                self._interface_factory,
                url=self._profile.ws_url,
                ss58_format=self._profile.ss58_format,
            )
        except (OSError, WebSocketException) as exc:
            raise ChainUnavailable(f"Cannot connect to {self._profile.ws_url}: {exc}") from exc

    async def close(self) -> None:
        substrate, self._substrate = self._substrate, None
        if substrate is not None:
            await asyncio.to_thread(substrate.close)

    @property
    def _interface(self) -> SubstrateInterface:
        if self._substrate is None:
            raise ChainUnavailable("Chain transport is not connected")
        return self._substrate

    async def _run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(self._locked, fn, *args, **kwargs)

    def _locked(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self._lock:
            return self._translated(fn, *args, **kwargs)

    def _translated(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        try:
            return fn(*args, **kwargs)
        except SubstrateRequestException as exc:
            raise RpcError(str(exc)) from exc
        except (OSError, WebSocketException) as exc:
            raise ChainUnavailable(f"Connection to {self._profile.ws_url} failed: {exc}") from exc

    async def compose_call(self, module: str, function: str, params: dict[str, Any]) -> Any:
        try:
            return await self._run(
                self._interface.compose_call,
                call_module=module,
                call_function=function,
                call_params=params,
            )
        except ValueError as exc:
            raise RpcError(f"Cannot encode {module}.{function}: {exc}") from exc

    async def signature_payload(self, call: Any, nonce: int) -> bytes:
        payload = await self._run(self._interface.generate_signature_payload, call=call, nonce=nonce)
        return bytes(payload.data)

    async def assemble_signed(self, call: Any, address: str, nonce: int, signature: bytes) -> str:
        try:
            keypair = Keypair(ss58_address=address, ss58_format=self._profile.ss58_format)
            extrinsic = await self._run(
                self._interface.create_signed_extrinsic,
                call=call,
                keypair=keypair,
                nonce=nonce,
                signature="0x" + signature.hex(),
            )
        except ValueError as exc:
            raise SigningFailed(f"Cannot assemble extrinsic signed by {address}: {exc}") from exc
        return extrinsic.data.to_hex()

    async def watch_extrinsic(self, extrinsic_hex: str, stop_when: StopCondition) -> AsyncIterator[StatusEvent]:
        """Submit and watch over a dedicated socket.

        The watching thread blocks in a receive loop until the node sends
        another update, so it never holds the shared socket or its lock.
        Closing the iterator early unwatches and closes the dedicated socket.
        """
        if self._substrate is None:
            raise ChainUnavailable("Chain transport is not connected")
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()
        released = threading.Event()
        subscription: dict[str, str] = {}
        substrate = await self._open()

        def handle(message: dict[str, Any], update_nr: int, subscription_id: str) -> StatusEvent | None:
            subscription["id"] = subscription_id
            event = parse_status(message["params"]["result"])
            loop.call_soon_threadsafe(queue.put_nowait, event)
            if stop_when(event) or released.is_set():
                substrate.rpc_request("author_unwatchExtrinsic", [subscription_id])
                LOGGER.debug("Released subscription %s after %d updates", subscription_id, update_nr + 1)
                return event
            return None

        watcher = asyncio.ensure_future(
            asyncio.to_thread(
                self._translated,
                substrate.rpc_request,
                "author_submitAndWatchExtrinsic",
                [extrinsic_hex],
                result_handler=handle,
            )
        )
        watcher.add_done_callback(lambda _: queue.put_nowait(_WATCH_DONE))
        try:
            while True:
                item = await queue.get()
                if item is _WATCH_DONE:
                    watcher.result()
                    return
                yield item
        finally:
            released.set()
            if watcher.done():
                await asyncio.to_thread(substrate.close)
            else:
                watcher.add_done_callback(_log_late_watch_failure)
                await asyncio.to_thread(_abandon_watch, substrate, subscription.get("id"))

    async def dispatch_error(self, block_hash: str, tx_hash: str) -> Any | None:
        return await self._run(self._read_dispatch_error, block_hash, tx_hash)

    def _read_dispatch_error(self, block_hash: str, tx_hash: str) -> Any | None:
        receipt = ExtrinsicReceipt(substrate=self._interface, extrinsic_hash=tx_hash, block_hash=block_hash)
        for event in receipt.triggered_events:
            value = event.value
            if value["module_id"] == "System" and value["event_id"] == "ExtrinsicFailed":
                attributes = value["attributes"]
                if isinstance(attributes, dict):
                    return attributes["dispatch_error"]
                return attributes[0]
        return None

    async def find_module_error(self, module_index: int, error_index: int) -> ModuleErrorInfo:
        return await self._run(self._lookup_module_error, module_index, error_index)

    def _lookup_module_error(self, module_index: int, error_index: int) -> ModuleErrorInfo:
        metadata = self._interface.metadata
        error = metadata.get_module_error(module_index=module_index, error_index=error_index)
        if error is None:
            raise RpcError(f"No metadata for module error {module_index}:{error_index}")
        section = next(
            (p.value["name"] for p in metadata.pallets if p.value["index"] == module_index),
            str(module_index),
        )
        return ModuleErrorInfo(section=section, name=error.name, docs=tuple(error.docs or ()))


def _abandon_watch(substrate: SubstrateInterface, subscription_id: str | None) -> None:
    # The watching thread owns the receive side; only send and close here.
    if subscription_id is not None:
        request = {
            "jsonrpc": "2.0",
            "id": f"unwatch-{subscription_id}",
            "method": "author_unwatchExtrinsic",
            "params": [subscription_id],
        }
        try:
            substrate.websocket.send(json.dumps(request))
        except (OSError, WebSocketException) as exc:
            LOGGER.warning("Could not unwatch subscription %s: %s", subscription_id, exc)
    substrate.close()
    LOGGER.info("Abandoned watch %s and closed its socket", subscription_id)


def _log_late_watch_failure(watcher: asyncio.Future[Any]) -> None:
    if watcher.cancelled():
        return
    exc = watcher.exception()
    if exc is not None:
        # Expected once the socket is closed under the watching thread.
        LOGGER.debug("Abandoned subscription ended with: %s", exc)
