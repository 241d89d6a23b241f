"""Lazily established, shared chain connection."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

from oak_scheduler.chain.base import ChainTransport
from oak_scheduler.config import ChainProfile

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[ChainProfile], ChainTransport]


class ConnectionManager:
    """Owns one transport per client and establishes it on first use."""

    def __init__(self, profile: ChainProfile, factory: TransportFactory) -> None:
        self._profile = profile
        self._factory = factory
        self._transport: ChainTransport | None = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    async def get(self) -> ChainTransport:
        """Return the transport, connecting first if needed."""

        if self._transport is not None:
            return self._transport
        async with self._lock:
            if self._transport is None:
                transport = self._factory(self._profile)
                await transport.connect()
                LOGGER.info("Connected to %s at %s", self._profile.chain.value, self._profile.ws_url)
                self._transport = transport
        return self._transport

    async def close(self) -> None:
        async with self._lock:
            transport, self._transport = self._transport, None
        if transport is not None:
            await transport.close()
            LOGGER.info("Closed connection to %s", self._profile.chain.value)
