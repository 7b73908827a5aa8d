"""
Unit tests for the acknowledgement orchestrator.
"""

import pytest

from shared.errors import (
    AggregatorRecordNotFoundError,
    AggregatorTimeoutError,
    AggregatorUnavailableError,
)
from shared.metrics import MetricsCollector

from service_gateway.app.domain.ack_orchestrator import AckOrchestrator, RequestDeadline
from service_gateway.app.domain.models import AckStatus


@pytest.fixture
def metrics():
    return MetricsCollector("gateway")


@pytest.fixture
def orchestrator(fake_aggregator, metrics):
    return AckOrchestrator(fake_aggregator, metrics=metrics)


class TestListAndGet:
    """Read-only operations."""

    @pytest.mark.asyncio
    async def test_list_empty(self, orchestrator, identity):
        outcome = await orchestrator.list_acks(identity)

        assert outcome.status == AckStatus.LISTED
        assert outcome.listing.count == 0
        assert outcome.mutated is False

    @pytest.mark.asyncio
    async def test_list_is_scoped_to_caller(self, orchestrator, fake_aggregator, identity, selector):
        fake_aggregator.seed(1, "1", selector, "mine")
        fake_aggregator.seed(2, "1", selector, "other org")
        fake_aggregator.seed(1, "2", selector, "other user")

        outcome = await orchestrator.list_acks(identity)

        assert [record.justification for record in outcome.listing.items] == ["mine"]

    @pytest.mark.asyncio
    async def test_get_missing(self, orchestrator, identity, selector):
        outcome = await orchestrator.get_ack(identity, selector)

        assert outcome.status == AckStatus.NOT_FOUND
        assert outcome.record is None

    @pytest.mark.asyncio
    async def test_get_existing(self, orchestrator, fake_aggregator, identity, selector):
        seeded = fake_aggregator.seed(1, "1", selector, "known issue")

        outcome = await orchestrator.get_ack(identity, selector)

        assert outcome.status == AckStatus.FOUND
        assert outcome.record == seeded


class TestAcknowledge:
    """Create path."""

    @pytest.mark.asyncio
    async def test_create_new(self, orchestrator, fake_aggregator, identity, selector):
        outcome = await orchestrator.acknowledge(identity, selector, "not relevant", RequestDeadline(5))

        assert outcome.status == AckStatus.CREATED
        assert outcome.mutated is True
        assert outcome.reread is True
        assert outcome.record.justification == "not relevant"
        assert outcome.record.created_by == "1"
        assert fake_aggregator.calls == ["exists", "create", "exists"]

    @pytest.mark.asyncio
    async def test_already_acked_keeps_justification(self, orchestrator, fake_aggregator, identity, selector):
        fake_aggregator.seed(1, "1", selector, "original")

        outcome = await orchestrator.acknowledge(identity, selector, "ignored")

        assert outcome.status == AckStatus.ALREADY_ACKED
        assert outcome.mutated is False
        assert outcome.record.justification == "original"
        assert fake_aggregator.calls == ["exists"]

    @pytest.mark.asyncio
    async def test_existence_check_failure_propagates(self, orchestrator, fake_aggregator, identity, selector):
        fake_aggregator.queue("exists", AggregatorUnavailableError())

        with pytest.raises(AggregatorUnavailableError):
            await orchestrator.acknowledge(identity, selector, "")

        assert "create" not in fake_aggregator.calls

    @pytest.mark.asyncio
    async def test_reread_failure(self, orchestrator, fake_aggregator, identity, selector):
        fake_aggregator.queue("exists", None, AggregatorUnavailableError())

        outcome = await orchestrator.acknowledge(identity, selector, "x")

        assert outcome.status == AckStatus.REREAD_FAILED
        assert outcome.mutated is True
        assert outcome.reread is False
        assert outcome.record is None
        assert outcome.detail
        # the write itself went through
        assert len(fake_aggregator.acks) == 1

    @pytest.mark.asyncio
    async def test_deadline_between_mutation_and_reread(self, orchestrator, fake_aggregator, identity, selector):
        fake_aggregator.queue("exists", None, 1.0)

        outcome = await orchestrator.acknowledge(identity, selector, "x", RequestDeadline(0.2))

        assert outcome.status == AckStatus.INTERRUPTED
        assert outcome.mutated is True
        assert outcome.record is None

    @pytest.mark.asyncio
    async def test_expired_deadline_makes_no_calls(self, orchestrator, fake_aggregator, identity, selector):
        with pytest.raises(AggregatorTimeoutError):
            await orchestrator.acknowledge(identity, selector, "x", RequestDeadline(0))

        assert fake_aggregator.calls == []

    @pytest.mark.asyncio
    async def test_outcome_is_measured(self, orchestrator, metrics, identity, selector):
        await orchestrator.acknowledge(identity, selector, "x")

        assert metrics.registry.get_sample_value(
            "ack_operations_total", {"operation": "create", "outcome": "created"}
        ) == 1.0


class TestUpdate:
    """Update path."""

    @pytest.mark.asyncio
    async def test_update_missing(self, orchestrator, fake_aggregator, identity, selector):
        outcome = await orchestrator.update_ack(identity, selector, "new")

        assert outcome.status == AckStatus.NOT_FOUND
        assert fake_aggregator.acks == {}
        assert "update" not in fake_aggregator.calls

    @pytest.mark.asyncio
    async def test_update_existing(self, orchestrator, fake_aggregator, identity, selector):
        seeded = fake_aggregator.seed(1, "1", selector, "old")

        outcome = await orchestrator.update_ack(identity, selector, "new")

        assert outcome.status == AckStatus.UPDATED
        assert outcome.reread is True
        assert outcome.record.justification == "new"
        assert outcome.record.created_at == seeded.created_at
        assert outcome.record.updated_at > seeded.updated_at

    @pytest.mark.asyncio
    async def test_update_race_with_delete(self, orchestrator, fake_aggregator, identity, selector):
        fake_aggregator.seed(1, "1", selector, "old")
        fake_aggregator.queue("update", AggregatorRecordNotFoundError())

        outcome = await orchestrator.update_ack(identity, selector, "new")

        assert outcome.status == AckStatus.NOT_FOUND
        assert outcome.mutated is False


class TestDelete:
    """Delete path."""

    @pytest.mark.asyncio
    async def test_delete_missing(self, orchestrator, fake_aggregator, identity, selector):
        outcome = await orchestrator.delete_ack(identity, selector)

        assert outcome.status == AckStatus.NOT_FOUND
        assert "delete" not in fake_aggregator.calls

    @pytest.mark.asyncio
    async def test_delete_existing(self, orchestrator, fake_aggregator, identity, selector):
        fake_aggregator.seed(1, "1", selector, "old")

        outcome = await orchestrator.delete_ack(identity, selector)

        assert outcome.status == AckStatus.DELETED
        assert outcome.mutated is True
        assert (await orchestrator.get_ack(identity, selector)).status == AckStatus.NOT_FOUND

    @pytest.mark.asyncio
    async def test_delete_failure_propagates(self, orchestrator, fake_aggregator, identity, selector):
        fake_aggregator.seed(1, "1", selector, "old")
        fake_aggregator.queue("delete", AggregatorUnavailableError())

        with pytest.raises(AggregatorUnavailableError):
            await orchestrator.delete_ack(identity, selector)


class TestRequestDeadline:
    """RequestDeadline arithmetic."""

    def test_unbounded(self):
        deadline = RequestDeadline()

        assert deadline.remaining() is None
        assert deadline.expired() is False

    def test_expired(self):
        assert RequestDeadline(0).expired() is True

    def test_remaining_is_bounded(self):
        remaining = RequestDeadline(10).remaining()

        assert 0 < remaining <= 10
