"""
Adapters package for the Gateway Service.

Contains the HTTP client wrapper for the Aggregator. Adapters encapsulate:

- Base URLs and request shapes
- Retry policies and circuit breakers
- Error handling that maps to shared errors

Keep adapters thin and side-effect free outside of explicit calls.
"""

from .aggregator_client import AggregatorClient

__all__ = [
    "AggregatorClient",
]
