"""Shared fakes for the chain, node RPC and signer boundaries."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any

import pytest

from oak_scheduler.chain.base import ChainTransport
from oak_scheduler.chain.rpc import JsonRpcClient
from oak_scheduler.config import CHAIN_PROFILES, ChainProfile, OakChain
from oak_scheduler.models import ModuleErrorInfo, StatusEvent
from oak_scheduler.scheduler import Scheduler
from oak_scheduler.signer import Signer

# 12:30 UTC, so the next schedulable hour is 13:00.
NOW = datetime(2026, 10, 19, 12, 30, 15, tzinfo=timezone.utc)
TASK_ID = "0x" + "ab" * 32
ALICE = "67oyHqBkPhvN1qCZrmF6Dkjt6MVbH7WCZ5zzC9mCJgSZaEYb"
BOB = "6AwtFW6sYcQ8RcuAJeXdDKuFtUVXj4xW57ghjYQ5xyciT1yd"


class FakeChain(ChainTransport):
    """In-memory transport replaying scripted status events."""

    def __init__(
        self,
        events: list[StatusEvent] | None = None,
        dispatch_error: Any = None,
        module_error: ModuleErrorInfo | None = None,
        hang: bool = False,
    ) -> None:
        self.events = events or []
        self._dispatch_error = dispatch_error
        self._module_error = module_error
        self.hang = hang
        self.connected = False
        self.closed = False
        self.released = False
        self.composed: list[tuple[str, str, dict[str, Any]]] = []
        self.submitted: list[str] = []
        self.module_lookups: list[tuple[int, int]] = []

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.closed = True

    async def compose_call(self, module: str, function: str, params: dict[str, Any]) -> Any:
        self.composed.append((module, function, params))
        return {"call_module": module, "call_function": function, "call_args": params}

    async def signature_payload(self, call: Any, nonce: int) -> bytes:
        return f"{call['call_function']}:{nonce}".encode()

    async def assemble_signed(self, call: Any, address: str, nonce: int, signature: bytes) -> str:
        body = call["call_function"].encode() + nonce.to_bytes(4, "little") + signature
        return "0x" + body.hex()

    async def watch_extrinsic(self, extrinsic_hex, stop_when):  # noqa: ANN001, ANN201
        self.submitted.append(extrinsic_hex)
        try:
            for event in self.events:
                yield event
                if stop_when(event):
                    return
            if self.hang:
                await asyncio.Event().wait()
        finally:
            self.released = True

    async def dispatch_error(self, block_hash: str, tx_hash: str) -> Any | None:
        return self._dispatch_error

    async def find_module_error(self, module_index: int, error_index: int) -> ModuleErrorInfo:
        self.module_lookups.append((module_index, error_index))
        if self._module_error is None:
            raise LookupError("no such module error")
        return self._module_error


class FakeRpc(JsonRpcClient):
    """JSON-RPC client answering from a method -> result table."""

    def __init__(self, results: dict[str, Any] | None = None) -> None:
        super().__init__("http://node.invalid")
        self.results: dict[str, Any] = {
            "automationTime_generateTaskId": TASK_ID,
            "system_accountNextIndex": 7,
            "payment_queryInfo": {"weight": 152_000_000, "class": "normal", "partialFee": "1500000"},
        }
        self.results.update(results or {})
        self.calls: list[tuple[str, list[Any]]] = []

    async def call(self, method: str, params: list[Any]) -> Any:
        self.calls.append((method, params))
        result = self.results[method]
        if isinstance(result, Exception):
            raise result
        return result


class StubSigner(Signer):
    def __init__(self, signature: Any = b"\x01" * 64) -> None:
        self.signature = signature
        self.requests: list[tuple[str, bytes]] = []

    async def sign(self, address: str, payload: bytes) -> bytes:
        self.requests.append((address, payload))
        return self.signature


class FailingSigner(Signer):
    async def sign(self, address: str, payload: bytes) -> bytes:
        raise RuntimeError("user rejected the request")


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def profile() -> ChainProfile:
    return CHAIN_PROFILES[OakChain.STUR]


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def rpc() -> FakeRpc:
    return FakeRpc()


@pytest.fixture
def signer() -> StubSigner:
    return StubSigner()


@pytest.fixture
def factory_calls() -> list[ChainProfile]:
    return []


@pytest.fixture
def scheduler(profile, chain, rpc, factory_calls) -> Scheduler:  # noqa: ANN001
    def factory(p: ChainProfile) -> FakeChain:
        factory_calls.append(p)
        return chain

    return Scheduler(
        profile,
        transport_factory=factory,
        rpc=rpc,
        clock=lambda: NOW,
        submit_timeout_seconds=1.0,
    )
