"""Task id resolution."""

from __future__ import annotations

import logging

from oak_scheduler.chain.rpc import JsonRpcClient
from oak_scheduler.validation import ScheduleValidator

LOGGER = logging.getLogger(__name__)


class TaskIdResolver:
    """Asks the chain for the task id derived from (account, provided id).

    The derivation is deterministic on chain, so results are memoized.
    """

    def __init__(self, rpc: JsonRpcClient, validator: ScheduleValidator) -> None:
        self._rpc = rpc
        self._validator = validator
        self._cache: dict[tuple[str, str], str] = {}

    async def resolve(self, account_id: str, provided_id: str) -> str:
        self._validator.validate_provided_id(provided_id)
        key = (account_id, provided_id)
        task_id = self._cache.get(key)
        if task_id is None:
            task_id = await self._rpc.generate_task_id(account_id, provided_id)
            self._cache[key] = task_id
            LOGGER.info("Resolved task id %s for %s/%s", task_id, account_id, provided_id)
        return task_id
