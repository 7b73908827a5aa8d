"""
Integration tests for the acknowledgement flow against the mock Aggregator.

The gateway talks to the mock over an in-process ASGI transport, so the
whole HTTP path (URL building, Aggregator enrichment, timestamp parsing)
is exercised without opening sockets.
"""

from urllib.parse import quote

import httpx
import pytest
from fastapi.testclient import TestClient

from mocks.aggregator.server import MockAggregatorServer
from shared.circuit_breaker import circuit_breaker_manager
from shared.retry import RetryConfig
from shared.test_helpers import MockDataFactory, xrh_headers

from service_gateway.app.adapters.aggregator_client import AggregatorClient
from service_gateway.app.main import GatewayService

RULE = "ccx_rules_ocp.external.rules.nodes_kubelet_version_check|NODE_KUBELET_VERSION"
ACK_URL = "/api/v2/ack"
RULE_URL = f"{ACK_URL}/{quote(RULE, safe='')}"


@pytest.fixture(autouse=True)
def reset_circuit_breakers():
    circuit_breaker_manager.circuit_breakers.clear()
    yield
    circuit_breaker_manager.circuit_breakers.clear()


@pytest.fixture
def aggregator():
    return MockAggregatorServer()


def build_client(aggregator, **config_overrides):
    aggregator_client = AggregatorClient(
        "http://aggregator/api/v1",
        read_retry=RetryConfig(max_attempts=1, jitter=False),
        transport=httpx.ASGITransport(app=aggregator.app)
    )
    service = GatewayService(aggregator_client=aggregator_client, **config_overrides)
    return TestClient(service.app)


class TestAckFlow:
    """Complete acknowledgement lifecycle through gateway and Aggregator."""

    @pytest.fixture
    def client(self, aggregator):
        return build_client(aggregator)

    @pytest.fixture
    def headers(self):
        return xrh_headers(org_id=1, user_id="1", account_number="1")

    def test_complete_ack_lifecycle(self, client, aggregator, headers):
        # 1. Nothing acked yet
        response = client.get(ACK_URL, headers=headers)
        assert response.status_code == 200
        assert response.json() == {"meta": {"count": 0}, "links": {}, "data": []}

        # 2. Acknowledge the rule
        response = client.post(ACK_URL, json={"rule_id": RULE, "justification": "upgrade window"},
                               headers=headers)
        assert response.status_code == 201
        created = response.json()
        assert created["rule"] == RULE
        assert created["justification"] == "upgrade window"
        assert created["created_by"] == "1"
        assert created["created_at"].endswith("Z")

        # 3. Acknowledging again keeps the first justification
        response = client.post(ACK_URL, json={"rule_id": RULE, "justification": "other"}, headers=headers)
        assert response.status_code == 200
        assert response.json()["justification"] == "upgrade window"

        # 4. Change the justification
        response = client.put(RULE_URL, json={"justification": "still in upgrade window"}, headers=headers)
        assert response.status_code == 200
        updated = response.json()
        assert updated["justification"] == "still in upgrade window"
        assert updated["created_at"] == created["created_at"]
        assert updated["updated_at"] >= created["updated_at"]

        # 5. List shows exactly that ack
        response = client.get(ACK_URL, headers=headers)
        assert response.json()["meta"]["count"] == 1
        assert response.json()["data"][0] == updated

        # 6. Delete it
        response = client.delete(RULE_URL, headers=headers)
        assert response.status_code == 204
        assert client.get(RULE_URL, headers=headers).status_code == 404
        assert aggregator.acks == {}

    def test_mutations_are_confirmed_by_reread(self, client, aggregator, headers):
        client.post(ACK_URL, json={"rule_id": RULE}, headers=headers)

        assert [call[0] for call in aggregator.calls] == ["read", "disable", "read"]

    def test_update_of_missing_ack(self, client, aggregator, headers):
        response = client.put(RULE_URL, json={"justification": "x"}, headers=headers)

        assert response.status_code == 404
        assert aggregator.acks == {}
        assert [call[0] for call in aggregator.calls] == ["read"]

    def test_acks_are_isolated_per_account(self, client):
        accounts = MockDataFactory.create_accounts()
        for account in accounts:
            response = client.post(
                ACK_URL,
                json={"rule_id": RULE, "justification": f"ack by {account.username}"},
                headers=account.xrh_headers()
            )
            assert response.status_code == 201

        for account in accounts:
            response = client.get(ACK_URL, headers=account.xrh_headers())
            assert response.json()["meta"]["count"] == 1
            assert response.json()["data"][0]["justification"] == f"ack by {account.username}"
            assert response.json()["data"][0]["created_by"] == account.user_id

        owner, other = accounts[0], accounts[1]
        client.delete(RULE_URL, headers=owner.xrh_headers())
        assert client.get(RULE_URL, headers=owner.xrh_headers()).status_code == 404
        assert client.get(RULE_URL, headers=other.xrh_headers()).status_code == 200

    def test_jwt_deployment(self, aggregator):
        client = build_client(aggregator, auth_type="jwt")
        headers = MockDataFactory.create_accounts()[2].bearer_headers()

        response = client.post(ACK_URL, json={"rule_id": RULE, "justification": "x"}, headers=headers)

        assert response.status_code == 201
        assert response.json()["created_by"] == "7007"
        assert (7, "7007", "ccx_rules_ocp.external.rules.nodes_kubelet_version_check",
                "NODE_KUBELET_VERSION") in aggregator.acks


class TestAggregatorOutage:
    """Gateway behaviour when the Aggregator cannot be reached."""

    def test_unreachable_aggregator(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        aggregator_client = AggregatorClient(
            "http://aggregator/api/v1",
            read_retry=RetryConfig(max_attempts=1, jitter=False),
            transport=httpx.MockTransport(refuse)
        )
        client = TestClient(GatewayService(aggregator_client=aggregator_client).app)

        response = client.get(ACK_URL, headers=xrh_headers())

        assert response.status_code == 502
        assert response.json()["code"] == "AGGREGATOR_UNAVAILABLE"
