"""Application configuration and per-chain profiles."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SECONDS_PER_HOUR = 3600
SECONDS_PER_DAY = 24 * SECONDS_PER_HOUR

RECURRING_TASK_LIMIT = 24
# 1 TUR has 10 decimals; the pallet refuses transfers below 0.1 TUR.
LOWEST_TRANSFERRABLE_AMOUNT = 1_000_000_000


class OakChain(str, Enum):
    STUR = "STUR"
    TUR = "TUR"


@dataclass(frozen=True, slots=True)
class ChainProfile:
    """Static description of one OAK network. Bound to a client for its lifetime."""

    chain: OakChain
    ws_url: str
    http_url: str
    scheduling_horizon_seconds: int
    recurring_task_limit: int = RECURRING_TASK_LIMIT
    minimum_transfer_amount: int = LOWEST_TRANSFERRABLE_AMOUNT
    ss58_format: int = 51


CHAIN_PROFILES: dict[OakChain, ChainProfile] = {
    OakChain.STUR: ChainProfile(
        chain=OakChain.STUR,
        ws_url="wss://rpc.turing-staging.oak.tech",
        http_url="https://rpc.turing-staging.oak.tech",
        scheduling_horizon_seconds=7 * SECONDS_PER_DAY,
    ),
    OakChain.TUR: ChainProfile(
        chain=OakChain.TUR,
        ws_url="wss://rpc.turing.oak.tech",
        http_url="https://rpc.turing.oak.tech",
        scheduling_horizon_seconds=7 * SECONDS_PER_DAY,
    ),
}


class Settings(BaseSettings):
    """Environment-driven settings validated at startup."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    oak_chain: OakChain = Field(default=OakChain.STUR, alias="OAK_CHAIN")
    oak_ws_url: str | None = Field(default=None, alias="OAK_WS_URL")
    oak_http_url: str | None = Field(default=None, alias="OAK_HTTP_URL")
    request_timeout_seconds: float = Field(default=30.0, alias="REQUEST_TIMEOUT_SECONDS")
    submit_timeout_seconds: float = Field(default=300.0, alias="SUBMIT_TIMEOUT_SECONDS")
    # When false, submission stops after the first status event.
    wait_for_finalization: bool = Field(default=True, alias="WAIT_FOR_FINALIZATION")
    nonce_strategy: Literal["chain", "tracked"] = Field(default="chain", alias="NONCE_STRATEGY")


def load_settings() -> Settings:
    """Load and validate settings."""

    return Settings()


def get_chain_profile(chain: OakChain | str) -> ChainProfile:
    """Return the built-in profile for a chain key such as "TUR"."""

    try:
        return CHAIN_PROFILES[OakChain(chain)]
    except ValueError as exc:
        known = ", ".join(c.value for c in OakChain)
        raise ValueError(f"Unknown chain {chain!r} (expected one of: {known})") from exc


def build_profile(settings: Settings) -> ChainProfile:
    """Resolve the chain profile for settings, applying endpoint overrides."""

    profile = get_chain_profile(settings.oak_chain)
    overrides: dict[str, str] = {}
    if settings.oak_ws_url:
        overrides["ws_url"] = settings.oak_ws_url
    if settings.oak_http_url:
        overrides["http_url"] = settings.oak_http_url
    return replace(profile, **overrides) if overrides else profile
