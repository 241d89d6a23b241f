"""Signer contract."""

from __future__ import annotations

from abc import ABC, abstractmethod


class Signer(ABC):
    """Signing capability supplied by the caller (wallet, extension, HSM)."""

    @abstractmethod
    async def sign(self, address: str, payload: bytes) -> bytes:
        """Return the signature of payload by the key behind address."""
