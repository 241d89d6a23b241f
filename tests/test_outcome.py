"""Tests for status parsing, lifecycle transitions and outcome classification."""

from __future__ import annotations

import pytest

from oak_scheduler.chain.connection import ConnectionManager
from oak_scheduler.errors import DispatchFailed, RpcError
from oak_scheduler.models import ModuleErrorInfo, OutcomeKind, StatusEvent, TxStatus
from oak_scheduler.outcome import (
    DispatchOutcomeClassifier,
    describe_dispatch_error,
    is_terminal_status,
    is_valid_transition,
    module_error_indices,
    parse_status,
)

from conftest import FakeChain

BLOCK = "0x" + "cd" * 32
TX = "0x" + "ef" * 32


def _classifier(profile, chain: FakeChain) -> DispatchOutcomeClassifier:
    return DispatchOutcomeClassifier(ConnectionManager(profile, lambda _p: chain))


class TestParseStatus:
    def test_plain_status(self):
        assert parse_status("ready") == StatusEvent(status=TxStatus.READY, raw="ready")

    def test_block_status_carries_hash(self):
        event = parse_status({"inBlock": BLOCK})
        assert event.status is TxStatus.IN_BLOCK
        assert event.block_hash == BLOCK

    def test_broadcast_has_no_block_hash(self):
        event = parse_status({"broadcast": ["12D3KooW"]})
        assert event.status is TxStatus.BROADCAST
        assert event.block_hash is None

    def test_usurped_value_is_not_a_block_hash(self):
        assert parse_status({"usurped": TX}).block_hash is None

    @pytest.mark.parametrize("raw", ["pending", {"a": 1, "b": 2}, None, 5])
    def test_unknown_shapes_raise(self, raw):
        with pytest.raises(RpcError):
            parse_status(raw)


class TestTransitions:
    def test_happy_path_is_valid(self):
        path = [None, TxStatus.READY, TxStatus.BROADCAST, TxStatus.IN_BLOCK, TxStatus.FINALIZED]
        assert all(is_valid_transition(a, b) for a, b in zip(path, path[1:]))

    def test_ready_may_skip_broadcast(self):
        assert is_valid_transition(TxStatus.READY, TxStatus.IN_BLOCK)

    def test_no_transition_out_of_terminal_state(self):
        assert not is_valid_transition(TxStatus.FINALIZED, TxStatus.IN_BLOCK)

    def test_cannot_finalize_without_block(self):
        assert not is_valid_transition(TxStatus.BROADCAST, TxStatus.FINALIZED)

    def test_terminal_statuses(self):
        assert is_terminal_status(StatusEvent(TxStatus.FINALIZED, BLOCK))
        assert is_terminal_status(StatusEvent(TxStatus.INVALID))
        assert not is_terminal_status(StatusEvent(TxStatus.IN_BLOCK, BLOCK))


class TestModuleErrorIndices:
    def test_dict_with_byte_encoded_error(self):
        assert module_error_indices({"Module": {"index": 60, "error": "0x03000000"}}) == (60, 3)

    def test_dict_with_int_error(self):
        assert module_error_indices({"Module": {"index": 60, "error": 3}}) == (60, 3)

    def test_legacy_tuple(self):
        assert module_error_indices({"Module": (60, 3)}) == (60, 3)

    def test_non_module_error(self):
        assert module_error_indices("BadOrigin") is None
        assert module_error_indices({"Token": "FundsUnavailable"}) is None

    def test_describe_non_module_error(self):
        assert describe_dispatch_error("BadOrigin") == "BadOrigin"
        assert describe_dispatch_error({"Token": "FundsUnavailable"}) == '{"Token": "FundsUnavailable"}'


class TestClassifier:
    @pytest.mark.asyncio
    async def test_no_event_is_pending(self, profile):
        outcome = await _classifier(profile, FakeChain()).classify(TX, None)
        assert outcome.kind is OutcomeKind.PENDING
        assert outcome.status is None

    @pytest.mark.asyncio
    async def test_intermediate_event_is_pending(self, profile):
        outcome = await _classifier(profile, FakeChain()).classify(TX, StatusEvent(TxStatus.IN_BLOCK, BLOCK))
        assert outcome.kind is OutcomeKind.PENDING
        assert outcome.block_hash == BLOCK
        assert not outcome.is_terminal

    @pytest.mark.asyncio
    async def test_finalized_without_error_is_ok(self, profile):
        outcome = await _classifier(profile, FakeChain()).classify(TX, StatusEvent(TxStatus.FINALIZED, BLOCK))
        assert outcome.kind is OutcomeKind.FINALIZED_OK
        assert outcome.succeeded
        outcome.raise_for_error()

    @pytest.mark.asyncio
    async def test_module_error_is_decoded(self, profile):
        chain = FakeChain(
            dispatch_error={"Module": {"index": 60, "error": "0x01000000"}},
            module_error=ModuleErrorInfo("automationTime", "DuplicateTask", ("There can be no duplicate tasks.",)),
        )
        outcome = await _classifier(profile, chain).classify(TX, StatusEvent(TxStatus.FINALIZED, BLOCK))

        assert outcome.kind is OutcomeKind.FINALIZED_ERROR
        assert chain.module_lookups == [(60, 1)]
        assert outcome.failure.section == "automationTime"
        assert outcome.failure.name == "DuplicateTask"
        assert outcome.failure.docs == ("There can be no duplicate tasks.",)
        assert "automationTime.DuplicateTask" in outcome.describe()

    @pytest.mark.asyncio
    async def test_other_error_is_raw(self, profile):
        chain = FakeChain(dispatch_error="BadOrigin")
        outcome = await _classifier(profile, chain).classify(TX, StatusEvent(TxStatus.FINALIZED, BLOCK))

        assert outcome.kind is OutcomeKind.FINALIZED_ERROR
        assert outcome.failure.raw == "BadOrigin"
        assert not outcome.failure.is_module_error
        with pytest.raises(DispatchFailed) as excinfo:
            outcome.raise_for_error()
        assert excinfo.value.outcome is outcome

    @pytest.mark.asyncio
    async def test_failed_metadata_lookup_falls_back_to_raw(self, profile):
        chain = FakeChain(dispatch_error={"Module": {"index": 60, "error": 1}})
        outcome = await _classifier(profile, chain).classify(TX, StatusEvent(TxStatus.FINALIZED, BLOCK))

        assert outcome.kind is OutcomeKind.FINALIZED_ERROR
        assert "Module" in outcome.failure.raw

    @pytest.mark.asyncio
    async def test_unreadable_dispatch_result_never_raises(self, profile):
        chain = FakeChain()

        async def broken(block_hash, tx_hash):
            raise RpcError("state pruned")

        chain.dispatch_error = broken
        outcome = await _classifier(profile, chain).classify(TX, StatusEvent(TxStatus.FINALIZED, BLOCK))

        assert outcome.kind is OutcomeKind.FINALIZED_ERROR
        assert "state pruned" in outcome.failure.raw

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [TxStatus.INVALID, TxStatus.DROPPED, TxStatus.USURPED])
    async def test_pool_exit_is_dropped(self, profile, status):
        outcome = await _classifier(profile, FakeChain()).classify(TX, StatusEvent(status))
        assert outcome.kind is OutcomeKind.DROPPED
        with pytest.raises(DispatchFailed):
            outcome.raise_for_error()
