"""
Rule acknowledgement gateway package.

The gateway fronts client requests for rule acknowledgements, enforcing:
- Identity resolution: from x-rh-identity or a bearer JWT
- Acknowledgement lifecycle: read-check-mutate-reread against the Aggregator
- Circuit-breaking and retries for resilient Aggregator calls

Structure:
- app.main: FastAPI app, routes, and middleware wiring.
- app.adapters: HTTP client for the Aggregator.
- app.auth: Identity resolution.
- app.domain: Rule selectors, the ack orchestrator and response rendering.
"""
