"""
Acknowledgement value types shared by the adapters and the orchestrator.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

_FRACTION = re.compile(r"\.(\d+)")


@dataclass(frozen=True)
class AcknowledgementRecord:
    """One rule acknowledgement as confirmed by the Aggregator."""

    rule: str
    justification: str
    created_by: str
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class AcknowledgementList:
    """All acknowledgements of one (org, user), in Aggregator order."""

    items: List[AcknowledgementRecord] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)


class AckStatus(Enum):
    """Terminal state reached by one orchestrator operation."""

    LISTED = "listed"
    FOUND = "found"
    CREATED = "created"
    ALREADY_ACKED = "already_acked"
    UPDATED = "updated"
    DELETED = "deleted"
    NOT_FOUND = "not_found"
    # mutation applied, confirming read failed
    REREAD_FAILED = "reread_failed"
    # deadline or cancellation hit between mutation and confirming read
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class AckOutcome:
    """Composite result of an acknowledgement operation.

    ``mutated`` tells whether a write reached the Aggregator, ``reread``
    whether its effect was confirmed by a fresh read. ``record`` is only
    ever a copy that came back from the Aggregator.
    """

    status: AckStatus
    record: Optional[AcknowledgementRecord] = None
    listing: Optional[AcknowledgementList] = None
    mutated: bool = False
    reread: bool = False
    detail: Optional[str] = None


def parse_timestamp(value: Optional[str]) -> datetime:
    """Parse RFC 3339 timestamps with Z or offset suffixes into UTC."""
    if not value or not isinstance(value, str):
        raise ValueError(f"missing or non-string timestamp: {value!r}")

    candidate = value.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    # fromisoformat takes at most microseconds; the Aggregator may send nanoseconds
    candidate = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), candidate, count=1)

    parsed = datetime.fromisoformat(candidate)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def format_timestamp(value: datetime) -> str:
    """Format datetime values as ISO-8601 strings with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
