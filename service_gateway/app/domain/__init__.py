"""
Domain layer of the gateway: rule selectors, acknowledgement models and
response rendering. The lifecycle orchestrator lives in
``ack_orchestrator`` and is imported from there, since it depends on the
adapters package.
"""

from .ack_renderer import render_outcome
from .models import AckOutcome, AckStatus, AcknowledgementList, AcknowledgementRecord
from .rule_selector import RuleSelector, parse_rule_selector

__all__ = [
    "AckOutcome",
    "AckStatus",
    "AcknowledgementList",
    "AcknowledgementRecord",
    "RuleSelector",
    "parse_rule_selector",
    "render_outcome",
]
