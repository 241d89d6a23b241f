"""Typed JSON-RPC client for read-only node queries over HTTP."""

from __future__ import annotations

import itertools
import logging
from typing import Annotated, Any, Literal

import httpx
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, TypeAdapter, ValidationError, field_validator

from oak_scheduler.errors import ChainUnavailable, RpcError

_LOGGER = logging.getLogger(__name__)

TaskId = Annotated[str, StringConstraints(pattern=r"^0x[0-9a-fA-F]{64}$")]

_TASK_ID = TypeAdapter(TaskId)
_NONCE = TypeAdapter(Annotated[int, Field(ge=0)])


class RpcErrorBody(BaseModel):
    code: int
    message: str
    data: Any = None


class RpcEnvelope(BaseModel):
    """JSON-RPC 2.0 response envelope."""

    jsonrpc: Literal["2.0"]
    id: int
    result: Any = None
    error: RpcErrorBody | None = None


class FeeInfo(BaseModel):
    """Result of payment_queryInfo."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    weight: Any = None
    dispatch_class: str = Field(default="normal", alias="class")
    partial_fee: int = Field(..., alias="partialFee", ge=0)

    @field_validator("partial_fee", mode="before")
    @classmethod
    def _decode_number_or_hex(cls, value: Any) -> Any:
        # Balances above 2**53 come back as decimal or 0x-hex strings.
        if isinstance(value, str):
            return int(value, 16) if value.startswith("0x") else int(value)
        return value


class JsonRpcClient:
    """Issues JSON-RPC calls against a node's HTTP endpoint.

    Every response is validated before it is returned; anything that does
    not match the expected shape becomes an RpcError.
    """

    def __init__(self, url: str, timeout_seconds: float = 30.0) -> None:
        self._url = url
        self._timeout_seconds = timeout_seconds
        self._ids = itertools.count(1)

    async def call(self, method: str, params: list[Any]) -> Any:
        request_id = next(self._ids)
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params}
        _LOGGER.debug("RPC request #%d: %s", request_id, method)

        timeout = httpx.Timeout(self._timeout_seconds)
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                response = await client.post(
                    self._url,
                    headers={"Content-Type": "application/json"},
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            raise ChainUnavailable(f"Cannot reach {self._url}: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            raise RpcError(f"HTTP {exc.response.status_code}", method=method) from exc
        except (httpx.HTTPError, ValueError) as exc:
            raise RpcError(f"Malformed response: {exc}", method=method) from exc

        try:
            envelope = RpcEnvelope.model_validate(data)
        except ValidationError as exc:
            raise RpcError(f"Malformed envelope: {exc}", method=method) from exc
        if envelope.error is not None:
            raise RpcError(envelope.error.message, method=method, code=envelope.error.code)
        if envelope.id != request_id:
            raise RpcError(f"Response id {envelope.id} does not match request {request_id}", method=method)
        return envelope.result

    async def generate_task_id(self, account_id: str, provided_id: str) -> str:
        method = "automationTime_generateTaskId"
        result = await self.call(method, [account_id, provided_id])
        return _validated(_TASK_ID, result, method)

    async def account_next_index(self, address: str) -> int:
        """Next usable nonce for address, counting transactions in the pool."""

        method = "system_accountNextIndex"
        result = await self.call(method, [address])
        return _validated(_NONCE, result, method)

    async def query_fee_info(self, extrinsic_hex: str) -> FeeInfo:
        method = "payment_queryInfo"
        result = await self.call(method, [extrinsic_hex])
        try:
            return FeeInfo.model_validate(result)
        except ValidationError as exc:
            raise RpcError(f"Unexpected result {result!r}", method=method) from exc


def _validated(adapter: TypeAdapter[Any], value: Any, method: str) -> Any:
    try:
        return adapter.validate_python(value)
    except ValidationError as exc:
        raise RpcError(f"Unexpected result {value!r}", method=method) from exc
