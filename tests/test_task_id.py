"""Tests for task id resolution."""

import pytest

from oak_scheduler.errors import RpcError, ValidationFailed, ValidationRule
from oak_scheduler.task_id import TaskIdResolver
from oak_scheduler.validation import ScheduleValidator

from conftest import ALICE, BOB, TASK_ID, FakeRpc


@pytest.fixture
def resolver(profile, rpc):
    return TaskIdResolver(rpc, ScheduleValidator(profile))


@pytest.mark.asyncio
async def test_resolves_task_id(resolver, rpc):
    assert await resolver.resolve(ALICE, "daily-ping") == TASK_ID
    assert rpc.calls == [("automationTime_generateTaskId", [ALICE, "daily-ping"])]


@pytest.mark.asyncio
async def test_resolution_is_memoized_per_account_and_id(resolver, rpc):
    await resolver.resolve(ALICE, "daily-ping")
    await resolver.resolve(ALICE, "daily-ping")
    await resolver.resolve(BOB, "daily-ping")

    assert len(rpc.calls) == 2


@pytest.mark.asyncio
async def test_blank_provided_id_never_reaches_node(resolver, rpc):
    with pytest.raises(ValidationFailed) as excinfo:
        await resolver.resolve(ALICE, "")

    assert excinfo.value.rule is ValidationRule.EMPTY_PROVIDED_ID
    assert rpc.calls == []


@pytest.mark.asyncio
async def test_malformed_task_id_surfaces_rpc_error(profile):
    rpc = FakeRpc({"automationTime_generateTaskId": 42})
    resolver = TaskIdResolver(rpc, ScheduleValidator(profile))

    with pytest.raises(RpcError):
        await resolver.resolve(ALICE, "daily-ping")

