"""
Shared fixtures for gateway tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from shared.circuit_breaker import circuit_breaker_manager
from shared.errors import AggregatorRecordNotFoundError
from shared.test_helpers import xrh_headers

from service_gateway.app.auth.identity import Identity
from service_gateway.app.domain.models import AcknowledgementRecord
from service_gateway.app.domain.rule_selector import RuleSelector
from service_gateway.app.main import GatewayService


class FakeAggregator:
    """In-memory stand-in for AggregatorClient.

    ``script`` queues per-operation actions consumed one per call: ``None``
    behaves normally, an exception instance is raised, a float sleeps that
    many seconds before behaving normally.
    """

    def __init__(self):
        self.acks: Dict[Tuple[int, str, str, str], AcknowledgementRecord] = {}
        self.calls: List[str] = []
        self.script: Dict[str, List[Any]] = {}
        self.clock = datetime(2021, 9, 4, 17, 11, 35, 130000, tzinfo=timezone.utc)

    def queue(self, operation: str, *actions: Any) -> None:
        self.script.setdefault(operation, []).extend(actions)

    def seed(self, org_id: int, user_id: str, selector: RuleSelector, justification: str) -> AcknowledgementRecord:
        record = AcknowledgementRecord(
            rule=str(selector),
            justification=justification,
            created_by=user_id,
            created_at=self.clock,
            updated_at=self.clock,
        )
        self.acks[(org_id, user_id, selector.rule_id, selector.error_key)] = record
        return record

    async def _step(self, operation: str) -> None:
        self.calls.append(operation)
        actions = self.script.get(operation)
        if not actions:
            return
        action = actions.pop(0)
        if isinstance(action, Exception):
            raise action
        if isinstance(action, (int, float)):
            await asyncio.sleep(action)

    def _tick(self) -> datetime:
        self.clock = self.clock + timedelta(hours=1)
        return self.clock

    async def exists(self, org_id: int, user_id: str, selector: RuleSelector) -> Optional[AcknowledgementRecord]:
        await self._step("exists")
        return self.acks.get((org_id, user_id, selector.rule_id, selector.error_key))

    async def list(self, org_id: int, user_id: str) -> List[AcknowledgementRecord]:
        await self._step("list")
        return [record for key, record in self.acks.items() if key[0] == org_id and key[1] == user_id]

    async def create(self, org_id: int, user_id: str, selector: RuleSelector, justification: str) -> None:
        await self._step("create")
        now = self._tick()
        self.acks[(org_id, user_id, selector.rule_id, selector.error_key)] = AcknowledgementRecord(
            rule=str(selector),
            justification=justification,
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )

    async def update(self, org_id: int, user_id: str, selector: RuleSelector, justification: str) -> None:
        await self._step("update")
        key = (org_id, user_id, selector.rule_id, selector.error_key)
        if key not in self.acks:
            raise AggregatorRecordNotFoundError()
        current = self.acks[key]
        self.acks[key] = AcknowledgementRecord(
            rule=current.rule,
            justification=justification,
            created_by=current.created_by,
            created_at=current.created_at,
            updated_at=self._tick(),
        )

    async def delete(self, org_id: int, user_id: str, selector: RuleSelector) -> None:
        await self._step("delete")
        if self.acks.pop((org_id, user_id, selector.rule_id, selector.error_key), None) is None:
            raise AggregatorRecordNotFoundError()

    def check_health(self) -> str:
        return "ok"


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    """Circuit breakers are process-wide; isolate them per test."""
    circuit_breaker_manager.circuit_breakers.clear()
    yield
    circuit_breaker_manager.circuit_breakers.clear()


@pytest.fixture
def fake_aggregator():
    return FakeAggregator()


@pytest.fixture
def identity():
    return Identity(org_id=1, user_id="1", account_number="1")


@pytest.fixture
def selector():
    return RuleSelector(rule_id="ccx_rules_ocp.external.rules.nodes_kubelet_version_check",
                        error_key="NODE_KUBELET_VERSION")


@pytest.fixture
def gateway_service(fake_aggregator):
    return GatewayService(aggregator_client=fake_aggregator, auth_type="xrh")


@pytest.fixture
def client(gateway_service):
    return TestClient(gateway_service.app)


@pytest.fixture
def auth_headers():
    return xrh_headers(org_id=1, user_id="1", account_number="1")
