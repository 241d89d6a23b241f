"""Nonce selection strategies for outgoing extrinsics."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

from oak_scheduler.chain.rpc import JsonRpcClient

LOGGER = logging.getLogger(__name__)


class NonceStrategy(ABC):
    @abstractmethod
    async def next_nonce(self, address: str) -> int:
        """Return the nonce for the next extrinsic signed by address."""


class ChainNonce(NonceStrategy):
    """Always asks the node for the next available nonce.

    Two extrinsics built back to back get the same nonce, so a caller must
    wait for the first to finalize before building the next.
    """

    def __init__(self, rpc: JsonRpcClient) -> None:
        self._rpc = rpc

    async def next_nonce(self, address: str) -> int:
        return await self._rpc.account_next_index(address)


class TrackedNonce(NonceStrategy):
    """Seeds from the node once per account, then counts locally.

    Call reset() after a submission fails so the next build re-reads the
    node's view.
    """

    def __init__(self, rpc: JsonRpcClient) -> None:
        self._rpc = rpc
        self._next: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def next_nonce(self, address: str) -> int:
        async with self._lock:
            if address not in self._next:
                self._next[address] = await self._rpc.account_next_index(address)
            nonce = self._next[address]
            self._next[address] = nonce + 1
        LOGGER.debug("Tracked nonce %d for %s", nonce, address)
        return nonce

    def reset(self, address: str | None = None) -> None:
        if address is None:
            self._next.clear()
        else:
            self._next.pop(address, None)
