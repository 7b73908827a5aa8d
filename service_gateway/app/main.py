"""
Rule acknowledgement gateway.

Exposes the simplified ``/ack`` REST surface and delegates every state
change to the Aggregator through the acknowledgement orchestrator.
"""

from typing import Dict, Optional

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from shared.base_service import BaseService
from shared.circuit_breaker import circuit_breaker_manager

from service_gateway.app.adapters.aggregator_client import AggregatorClient
from service_gateway.app.auth.identity import Identity, IdentityResolver
from service_gateway.app.domain.ack_orchestrator import AckOrchestrator, RequestDeadline
from service_gateway.app.domain.ack_renderer import error_code_for, render_outcome
from service_gateway.app.domain.models import AckOutcome
from service_gateway.app.domain.rule_selector import RuleSelector, parse_rule_selector


class AckCreateRequest(BaseModel):
    """Body of ``POST /ack``."""

    rule_id: str
    justification: str = ""


class AckUpdateRequest(BaseModel):
    """Body of ``PUT /ack/{rule_selector}``."""

    justification: str


class GatewayService(BaseService):
    """Gateway service implementation."""

    def __init__(self, aggregator_client: Optional[AggregatorClient] = None, **config_overrides):
        super().__init__("gateway", 8000, **config_overrides)
        self.aggregator_client = aggregator_client or AggregatorClient(
            self.config.aggregator_url,
            timeout=self.config.aggregator_timeout_seconds,
            failure_threshold=self.config.aggregator_failure_threshold,
            recovery_timeout=self.config.aggregator_recovery_timeout,
            metrics=self.metrics,
        )
        self.identity_resolver = IdentityResolver(self.config.auth_type)
        self.orchestrator = AckOrchestrator(self.aggregator_client, metrics=self.metrics)

        self._setup_gateway_routes()
        self._setup_ack_routes()

        # Expose service instance via app state for introspection/testing
        self.app.state.gateway_service = self

    def _deadline(self) -> RequestDeadline:
        return RequestDeadline(self.config.request_timeout_seconds)

    def _parse_selector(self, identity: Identity, rule_selector: str) -> RuleSelector:
        selector = parse_rule_selector(rule_selector)
        self.logger.info(
            "Parsed rule selector",
            org_id=identity.org_id,
            user_id=identity.user_id,
            rule_id=selector.rule_id,
            error_key=selector.error_key
        )
        return selector

    def _respond(self, outcome: AckOutcome) -> Response:
        error_code = error_code_for(outcome)
        if error_code is not None:
            self.logger.warning(
                "Acknowledgement request failed",
                code=error_code,
                status=outcome.status.value,
                mutated=outcome.mutated
            )
            self.metrics.record_error(error_code)
        return render_outcome(outcome)

    def _setup_gateway_routes(self):
        """Set up service-level routes."""

        @self.app.get("/")
        async def root():
            return {
                "service": "gateway",
                "message": "Rule acknowledgement gateway",
                "version": "1.0.0",
                "auth_type": self.config.auth_type,
                "api_prefix": self.config.api_prefix
            }

        @self.app.get("/api/v1/circuit-breakers")
        async def get_circuit_breakers():
            return {"circuit_breakers": circuit_breaker_manager.get_all_states()}

    def _setup_ack_routes(self):
        """Set up the rule acknowledgement routes."""
        router = APIRouter(prefix=self.config.api_prefix, tags=["acks"])
        resolve_identity = self.identity_resolver

        @router.get("/ack")
        async def read_ack_list(identity: Identity = Depends(resolve_identity)):
            """List acks of this account; empty when there are none."""
            outcome = await self.orchestrator.list_acks(identity, self._deadline())
            return self._respond(outcome)

        @router.get("/ack/{rule_selector}")
        async def get_acknowledge(rule_selector: str, identity: Identity = Depends(resolve_identity)):
            """Read one ack by its rule selector."""
            selector = self._parse_selector(identity, rule_selector)
            outcome = await self.orchestrator.get_ack(identity, selector, self._deadline())
            return self._respond(outcome)

        @router.post("/ack")
        async def acknowledge_post(body: AckCreateRequest, identity: Identity = Depends(resolve_identity)):
            """Acknowledge a rule.

            201 when the ack is created by this call, 200 when it already
            existed (its justification is left untouched).
            """
            self.logger.info(
                "Proper payload provided",
                org_id=identity.org_id,
                user_id=identity.user_id,
                rule=body.rule_id,
                justification=body.justification
            )
            selector = self._parse_selector(identity, body.rule_id)
            outcome = await self.orchestrator.acknowledge(
                identity, selector, body.justification, self._deadline()
            )
            return self._respond(outcome)

        @router.put("/ack/{rule_selector}")
        async def update_acknowledge(rule_selector: str, body: AckUpdateRequest,
                                     identity: Identity = Depends(resolve_identity)):
            """Change the justification of an existing ack; 404 if there is none."""
            selector = self._parse_selector(identity, rule_selector)
            self.logger.info("Justification to be set", justification=body.justification)
            outcome = await self.orchestrator.update_ack(
                identity, selector, body.justification, self._deadline()
            )
            return self._respond(outcome)

        @router.delete("/ack/{rule_selector}")
        async def delete_acknowledge(rule_selector: str, identity: Identity = Depends(resolve_identity)):
            """Delete an ack: 204 when deleted, 404 when it did not exist."""
            selector = self._parse_selector(identity, rule_selector)
            outcome = await self.orchestrator.delete_ack(identity, selector, self._deadline())
            return self._respond(outcome)

        self.app.include_router(router)

    async def _check_dependencies(self) -> Dict[str, str]:
        return {"aggregator": self.aggregator_client.check_health()}


def create_app():
    """Create FastAPI application."""
    service = GatewayService()
    return service.app


def main():
    """Console entry point."""
    service = GatewayService()
    service.run()


if __name__ == "__main__":
    main()
