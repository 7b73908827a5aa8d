"""
Aggregator client for Gateway.

The Aggregator owns every rule acknowledgement; this client is the only
component that talks to it. Reads are retried, writes never are.

Each public call counts once against the ``aggregator`` circuit breaker,
however many retry attempts it takes. Only transport failures and 5xx
answers (``AggregatorUnavailableError``) are retried or trip the breaker;
an answer the gateway cannot use (``AggregatorBadResponseError``) is
reported straight away.
"""

import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar
from urllib.parse import quote

import httpx

from shared.circuit_breaker import CircuitBreakerOpenException, get_circuit_breaker
from shared.errors import (
    AggregatorBadResponseError,
    AggregatorRecordNotFoundError,
    AggregatorUnavailableError,
)
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, retry_on_exception

from service_gateway.app.domain.models import AcknowledgementRecord, parse_timestamp
from service_gateway.app.domain.rule_selector import RULE_SELECTOR_DELIMITER, RuleSelector

T = TypeVar("T")


class AggregatorClient:
    """Client for the Aggregator rule acknowledgement REST API."""

    def __init__(
        self,
        aggregator_url: str,
        timeout: float = 10.0,
        *,
        failure_threshold: int = 3,
        recovery_timeout: float = 30.0,
        read_retry: Optional[RetryConfig] = None,
        metrics: Optional[MetricsCollector] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = aggregator_url.rstrip('/')
        self.timeout = timeout
        self.metrics = metrics
        self.transport = transport
        self.logger = get_logger("gateway.aggregator_client")

        self.circuit_breaker = get_circuit_breaker(
            "aggregator",
            failure_threshold=failure_threshold,
            recovery_timeout=recovery_timeout,
            expected_exception=AggregatorUnavailableError
        )

        self.read_retry_config = read_retry or RetryConfig(
            max_attempts=3,
            base_delay=0.5,
            max_delay=5.0,
            exponential_base=2.0,
            jitter=True
        )
        self._retry_reads = retry_on_exception((AggregatorUnavailableError,), config=self.read_retry_config)

    async def exists(self, org_id: int, user_id: str, selector: RuleSelector) -> Optional[AcknowledgementRecord]:
        """Read one acknowledgement; ``None`` when the rule is not acked."""
        return await self._guarded("exists", self._retry_reads(self._read_ack), org_id, user_id, selector)

    async def list(self, org_id: int, user_id: str) -> List[AcknowledgementRecord]:
        """Read every acknowledgement made by (org, user)."""
        return await self._guarded("list", self._retry_reads(self._read_ack_list), org_id, user_id)

    async def create(self, org_id: int, user_id: str, selector: RuleSelector, justification: str) -> None:
        """Acknowledge (disable) a rule with the given justification."""
        await self._guarded(
            "create", self._mutate,
            "create", "PUT",
            f"{self._selector_path(org_id, user_id, selector)}/disable",
            {"justification": justification}
        )

    async def update(self, org_id: int, user_id: str, selector: RuleSelector, justification: str) -> None:
        """Replace the justification of an existing acknowledgement."""
        await self._guarded(
            "update", self._mutate,
            "update", "POST",
            f"{self._selector_path(org_id, user_id, selector)}/update",
            {"justification": justification}
        )

    async def delete(self, org_id: int, user_id: str, selector: RuleSelector) -> None:
        """Remove an acknowledgement (re-enable the rule)."""
        await self._guarded(
            "delete", self._mutate,
            "delete", "PUT",
            f"{self._selector_path(org_id, user_id, selector)}/enable"
        )

    def check_health(self) -> str:
        """Report 'ok' unless the Aggregator circuit breaker is open."""
        return "degraded" if self.circuit_breaker.is_open() else "ok"

    async def _guarded(self, operation: str, func: Callable[..., Awaitable[T]], *args) -> T:
        """Run one logical Aggregator call behind the circuit breaker."""
        try:
            return await self.circuit_breaker.call(func, *args)
        except CircuitBreakerOpenException as exc:
            self.logger.warning("Aggregator call blocked by circuit breaker", operation=operation)
            raise AggregatorUnavailableError(
                "Aggregator circuit breaker is open",
                details={"operation": operation}
            ) from exc

    async def _read_ack(self, org_id: int, user_id: str, selector: RuleSelector) -> Optional[AcknowledgementRecord]:
        response = await self._request("exists", "GET", self._selector_path(org_id, user_id, selector))

        if response.status_code == 404:
            self.logger.info("Rule acknowledgement not found", org_id=org_id, rule=str(selector))
            return None
        self._expect_success("exists", response)

        payload = self._decode(response)
        raw = payload.get("disabledRule")
        if not isinstance(raw, dict):
            raise AggregatorBadResponseError(
                "Malformed acknowledgement payload",
                details={"body": response.text}
            )
        return self._to_record(raw, fallback_selector=selector)

    async def _read_ack_list(self, org_id: int, user_id: str) -> List[AcknowledgementRecord]:
        path = f"/rules/organizations/{org_id}/users/{quote(user_id, safe='')}/disabled_system_wide"
        response = await self._request("list", "GET", path)
        self._expect_success("list", response)

        payload = self._decode(response)
        raw_items = payload.get("disabledRules") or []
        if not isinstance(raw_items, list):
            raise AggregatorBadResponseError(
                "Malformed acknowledgement list payload",
                details={"body": response.text}
            )
        return [self._to_record(raw) for raw in raw_items]

    async def _mutate(self, operation: str, method: str, path: str,
                      payload: Optional[Dict[str, Any]] = None) -> None:
        response = await self._request(operation, method, path, payload)

        if response.status_code == 404:
            raise AggregatorRecordNotFoundError(details={"operation": operation})
        self._expect_success(operation, response)
        self.logger.info("Aggregator mutation applied", operation=operation, path=path)

    async def _request(self, operation: str, method: str, path: str,
                       payload: Optional[Dict[str, Any]] = None) -> httpx.Response:
        """Execute one Aggregator round trip."""
        url = f"{self.base_url}{path}"
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.request(method, url, json=payload)
        except httpx.HTTPError as exc:
            self._record_call(operation, "transport_error", start_time)
            self.logger.error("Aggregator HTTP error", operation=operation, url=url, error=str(exc))
            raise AggregatorUnavailableError(
                "Aggregator unavailable",
                details={"operation": operation, "http_error": str(exc)}
            ) from exc

        self._record_call(operation, str(response.status_code), start_time)
        if response.status_code >= 500:
            self.logger.error(
                "Aggregator server error",
                operation=operation,
                url=url,
                status_code=response.status_code,
                response=response.text
            )
            raise AggregatorUnavailableError(
                f"Unexpected status {response.status_code}",
                details={"operation": operation, "status_code": response.status_code}
            )
        return response

    def _expect_success(self, operation: str, response: httpx.Response) -> None:
        if response.status_code in (200, 201, 204):
            return
        self.logger.error(
            "Aggregator rejected request",
            operation=operation,
            status_code=response.status_code,
            response=response.text
        )
        raise AggregatorBadResponseError(
            f"Unexpected status {response.status_code}",
            details={"operation": operation, "status_code": response.status_code, "body": response.text}
        )

    def _decode(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise AggregatorBadResponseError(
                "Aggregator returned invalid JSON",
                details={"body": response.text}
            ) from exc
        if not isinstance(payload, dict):
            raise AggregatorBadResponseError("Aggregator returned unexpected JSON", details={"body": response.text})
        return payload

    def _to_record(self, raw: Dict[str, Any],
                   fallback_selector: Optional[RuleSelector] = None) -> AcknowledgementRecord:
        """Map an Aggregator disabled-rule document to an AcknowledgementRecord."""
        rule_id = raw.get("rule_id")
        error_key = raw.get("error_key")
        if rule_id and error_key:
            rule = f"{rule_id}{RULE_SELECTOR_DELIMITER}{error_key}"
        elif fallback_selector is not None:
            rule = str(fallback_selector)
        else:
            raise AggregatorBadResponseError("Acknowledgement without rule selector", details={"record": raw})

        try:
            created_at = parse_timestamp(raw.get("created_at"))
            updated_at = parse_timestamp(raw.get("updated_at") or raw.get("created_at"))
        except ValueError as exc:
            raise AggregatorBadResponseError(
                "Acknowledgement with invalid timestamp",
                details={"record": raw}
            ) from exc

        return AcknowledgementRecord(
            rule=rule,
            justification=raw.get("justification") or "",
            created_by=str(raw.get("created_by") or raw.get("user_id") or ""),
            created_at=created_at,
            updated_at=updated_at,
        )

    def _selector_path(self, org_id: int, user_id: str, selector: RuleSelector) -> str:
        return (
            f"/rules/{quote(selector.rule_id, safe='')}"
            f"/error_key/{quote(selector.error_key, safe='')}"
            f"/organizations/{org_id}/users/{quote(user_id, safe='')}"
        )

    def _record_call(self, operation: str, status: str, start_time: float) -> None:
        if self.metrics is not None:
            self.metrics.record_aggregator_call(operation, status, time.time() - start_time)
