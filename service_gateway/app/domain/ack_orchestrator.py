"""
Acknowledgement lifecycle orchestration.

Every operation works on one (org, user, rule, error key) key and follows
the same shape: check existence, mutate if needed, then re-read from the
Aggregator. Nothing is kept between requests; a record handed back to the
caller is always one the Aggregator has just confirmed.
"""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from shared.errors import AggregatorRecordNotFoundError, AggregatorTimeoutError, ExternalServiceError
from shared.logging import get_logger
from shared.metrics import MetricsCollector

from service_gateway.app.adapters.aggregator_client import AggregatorClient
from service_gateway.app.auth.identity import Identity
from service_gateway.app.domain.models import AckOutcome, AckStatus, AcknowledgementList
from service_gateway.app.domain.rule_selector import RuleSelector

T = TypeVar("T")

REREAD_HINT = "acknowledgement was changed but its new state could not be confirmed; retry with GET"


class RequestDeadline:
    """Absolute deadline shared by every Aggregator call of one request."""

    def __init__(self, timeout: Optional[float] = None):
        self.expires_at = None if timeout is None else time.monotonic() + timeout

    def remaining(self) -> Optional[float]:
        """Seconds left, ``None`` when unbounded."""
        if self.expires_at is None:
            return None
        return max(0.0, self.expires_at - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


class AckOrchestrator:
    """Run acknowledgement operations against the Aggregator."""

    def __init__(self, aggregator: AggregatorClient, metrics: Optional[MetricsCollector] = None):
        self.aggregator = aggregator
        self.metrics = metrics
        self.logger = get_logger("gateway.ack_orchestrator")

    async def list_acks(self, identity: Identity,
                        deadline: Optional[RequestDeadline] = None) -> AckOutcome:
        """Fetch every acknowledgement of the caller; an empty list is fine."""
        records = await self._call(
            deadline, "list",
            self.aggregator.list(identity.org_id, identity.user_id)
        )
        outcome = AckOutcome(AckStatus.LISTED, listing=AcknowledgementList(items=list(records)))
        return self._finish("list", identity, None, outcome)

    async def get_ack(self, identity: Identity, selector: RuleSelector,
                      deadline: Optional[RequestDeadline] = None) -> AckOutcome:
        """Return the acknowledgement for ``selector`` or NOT_FOUND."""
        record = await self._call(
            deadline, "exists",
            self.aggregator.exists(identity.org_id, identity.user_id, selector)
        )
        if record is None:
            return self._finish("get", identity, selector, AckOutcome(AckStatus.NOT_FOUND))
        return self._finish("get", identity, selector, AckOutcome(AckStatus.FOUND, record=record))

    async def acknowledge(self, identity: Identity, selector: RuleSelector, justification: str,
                          deadline: Optional[RequestDeadline] = None) -> AckOutcome:
        """Create the acknowledgement unless it already exists.

        An existing acknowledgement is returned as-is: the supplied
        justification is ignored on that path, only ``update_ack`` changes it.
        """
        existing = await self._call(
            deadline, "exists",
            self.aggregator.exists(identity.org_id, identity.user_id, selector)
        )
        if existing is not None:
            self.logger.info("Rule has been already acknowledged", rule=str(selector))
            return self._finish("create", identity, selector,
                                AckOutcome(AckStatus.ALREADY_ACKED, record=existing))

        self.logger.info("Rule has not been acknowledged previously", rule=str(selector))
        await self._call(
            deadline, "create",
            self.aggregator.create(identity.org_id, identity.user_id, selector, justification)
        )
        outcome = await self._confirm(identity, selector, deadline, AckStatus.CREATED)
        return self._finish("create", identity, selector, outcome)

    async def update_ack(self, identity: Identity, selector: RuleSelector, justification: str,
                         deadline: Optional[RequestDeadline] = None) -> AckOutcome:
        """Change the justification of an existing acknowledgement.

        A missing acknowledgement is reported as NOT_FOUND; the caller has to
        create it first.
        """
        existing = await self._call(
            deadline, "exists",
            self.aggregator.exists(identity.org_id, identity.user_id, selector)
        )
        if existing is None:
            self.logger.info("Rule ack can not be found", rule=str(selector))
            return self._finish("update", identity, selector, AckOutcome(AckStatus.NOT_FOUND))

        try:
            await self._call(
                deadline, "update",
                self.aggregator.update(identity.org_id, identity.user_id, selector, justification)
            )
        except AggregatorRecordNotFoundError:
            # deleted concurrently between the check and the update
            return self._finish("update", identity, selector, AckOutcome(AckStatus.NOT_FOUND))

        outcome = await self._confirm(identity, selector, deadline, AckStatus.UPDATED)
        return self._finish("update", identity, selector, outcome)

    async def delete_ack(self, identity: Identity, selector: RuleSelector,
                         deadline: Optional[RequestDeadline] = None) -> AckOutcome:
        """Remove the acknowledgement; NOT_FOUND when there is none."""
        existing = await self._call(
            deadline, "exists",
            self.aggregator.exists(identity.org_id, identity.user_id, selector)
        )
        if existing is None:
            self.logger.info("Rule has not been acknowledged previously, ack won't be deleted",
                             rule=str(selector))
            return self._finish("delete", identity, selector, AckOutcome(AckStatus.NOT_FOUND))

        try:
            await self._call(
                deadline, "delete",
                self.aggregator.delete(identity.org_id, identity.user_id, selector)
            )
        except AggregatorRecordNotFoundError:
            return self._finish("delete", identity, selector, AckOutcome(AckStatus.NOT_FOUND))

        return self._finish("delete", identity, selector, AckOutcome(AckStatus.DELETED, mutated=True))

    async def _confirm(self, identity: Identity, selector: RuleSelector,
                       deadline: Optional[RequestDeadline], success: AckStatus) -> AckOutcome:
        """Mandatory re-read after a successful mutation."""
        try:
            record = await self._call(
                deadline, "reread",
                self.aggregator.exists(identity.org_id, identity.user_id, selector)
            )
        except AggregatorTimeoutError:
            self.logger.warning("Deadline expired before re-read", rule=str(selector))
            return AckOutcome(AckStatus.INTERRUPTED, mutated=True, detail=REREAD_HINT)
        except asyncio.CancelledError:
            self.logger.warning("Request cancelled between mutation and re-read", rule=str(selector))
            raise
        except ExternalServiceError as exc:
            self.logger.error("Unable to re-read rule acknowledgement", rule=str(selector), error=exc.message)
            return AckOutcome(AckStatus.REREAD_FAILED, mutated=True, detail=REREAD_HINT)

        if record is None:
            self.logger.error("Rule acknowledgement vanished right after mutation", rule=str(selector))
            return AckOutcome(AckStatus.REREAD_FAILED, mutated=True, detail=REREAD_HINT)

        return AckOutcome(success, record=record, mutated=True, reread=True)

    async def _call(self, deadline: Optional[RequestDeadline], operation: str, call: Awaitable[T]) -> T:
        """Await one Aggregator call within the request deadline."""
        timeout = deadline.remaining() if deadline is not None else None
        if timeout is not None and timeout <= 0:
            # never started, so the coroutine has to be closed explicitly
            call.close()
            raise AggregatorTimeoutError(details={"operation": operation})

        try:
            return await asyncio.wait_for(call, timeout)
        except asyncio.TimeoutError as exc:
            raise AggregatorTimeoutError(details={"operation": operation}) from exc

    def _finish(self, operation: str, identity: Identity, selector: Optional[RuleSelector],
                outcome: AckOutcome) -> AckOutcome:
        self.logger.info(
            "Acknowledgement operation finished",
            operation=operation,
            org_id=identity.org_id,
            user_id=identity.user_id,
            rule=str(selector) if selector is not None else None,
            status=outcome.status.value,
            mutated=outcome.mutated,
            reread=outcome.reread
        )
        if self.metrics is not None:
            self.metrics.record_ack_operation(operation, outcome.status.value)
        return outcome
