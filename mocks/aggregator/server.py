"""
Mock Aggregator server providing the rule acknowledgement REST API.

State is kept in memory only. The server stamps ``created_at``,
``updated_at`` and ``user_id`` itself, the same way the real Aggregator
enriches records the gateway writes.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Tuple

from fastapi import Body, FastAPI, HTTPException

from shared.logging import get_logger

AckKey = Tuple[int, str, str, str]

SELECTOR_PATH = "/rules/{rule_id}/error_key/{error_key}/organizations/{org_id}/users/{user_id}"


class MockAggregatorServer:
    """Mock Aggregator server implementation."""

    def __init__(self, port: int = 8080, prefix: str = "/api/v1"):
        self.port = port
        self.prefix = prefix
        self.logger = get_logger("mock.aggregator")
        self.app = FastAPI(title="Mock Aggregator", version="1.0.0")
        self.acks: Dict[AckKey, Dict[str, Any]] = {}
        self.calls = []

        self._setup_routes()

    def _now(self) -> str:
        return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")

    def _setup_routes(self):
        """Set up mock Aggregator routes."""
        prefix = self.prefix

        @self.app.get("/")
        async def root():
            return {
                "service": "mock-aggregator",
                "message": "Mock Aggregator server for the rule acknowledgement gateway",
                "version": "1.0.0",
                "acks": len(self.acks)
            }

        @self.app.get(prefix + SELECTOR_PATH)
        async def read_rule_system_wide(rule_id: str, error_key: str, org_id: int, user_id: str):
            self.calls.append(("read", rule_id, error_key))
            ack = self.acks.get((org_id, user_id, rule_id, error_key))
            if ack is None:
                raise HTTPException(status_code=404, detail="Rule was not disabled")
            return {"status": "ok", "disabledRule": ack}

        @self.app.put(prefix + SELECTOR_PATH + "/disable")
        async def disable_rule_system_wide(rule_id: str, error_key: str, org_id: int, user_id: str,
                                           payload: Dict[str, Any] = Body(...)):
            self.calls.append(("disable", rule_id, error_key))
            key = (org_id, user_id, rule_id, error_key)
            now = self._now()
            previous = self.acks.get(key)
            self.acks[key] = {
                "org_id": org_id,
                "user_id": user_id,
                "rule_id": rule_id,
                "error_key": error_key,
                "justification": payload.get("justification", ""),
                "created_at": previous["created_at"] if previous else now,
                "updated_at": now,
            }
            self.logger.info("Rule disabled", org_id=org_id, rule_id=rule_id, error_key=error_key)
            return {"status": "ok"}

        @self.app.post(prefix + SELECTOR_PATH + "/update")
        async def update_rule_system_wide(rule_id: str, error_key: str, org_id: int, user_id: str,
                                          payload: Dict[str, Any] = Body(...)):
            self.calls.append(("update", rule_id, error_key))
            ack = self.acks.get((org_id, user_id, rule_id, error_key))
            if ack is None:
                raise HTTPException(status_code=404, detail="Rule was not disabled")
            ack["justification"] = payload.get("justification", "")
            ack["updated_at"] = self._now()
            return {"status": "ok"}

        @self.app.put(prefix + SELECTOR_PATH + "/enable")
        async def enable_rule_system_wide(rule_id: str, error_key: str, org_id: int, user_id: str):
            self.calls.append(("enable", rule_id, error_key))
            if self.acks.pop((org_id, user_id, rule_id, error_key), None) is None:
                raise HTTPException(status_code=404, detail="Rule was not disabled")
            return {"status": "ok"}

        @self.app.get(prefix + "/rules/organizations/{org_id}/users/{user_id}/disabled_system_wide")
        async def list_disabled_rules(org_id: int, user_id: str):
            self.calls.append(("list", None, None))
            rules = [
                ack for (ack_org, ack_user, _, _), ack in self.acks.items()
                if ack_org == org_id and ack_user == user_id
            ]
            return {"status": "ok", "disabledRules": rules}

    def run(self):
        import uvicorn
        uvicorn.run(self.app, host="0.0.0.0", port=self.port)


if __name__ == "__main__":
    MockAggregatorServer().run()
