"""
Rule selector codec.

A rule selector names one variant of a diagnostic rule as
``<rule_id>|<error_key>``. It appears both in URLs and in request bodies.
"""

from dataclasses import dataclass

from shared.errors import MalformedSelectorError

RULE_SELECTOR_DELIMITER = "|"


@dataclass(frozen=True)
class RuleSelector:
    rule_id: str
    error_key: str

    def __str__(self) -> str:
        return f"{self.rule_id}{RULE_SELECTOR_DELIMITER}{self.error_key}"


def parse_rule_selector(selector: str) -> RuleSelector:
    """Split ``selector`` into rule ID and error key.

    Exactly one delimiter with non-empty text on both sides is accepted.
    Values are passed through verbatim (no case folding or trimming).
    """
    if not isinstance(selector, str):
        raise MalformedSelectorError(repr(selector), "selector must be a string")

    parts = selector.split(RULE_SELECTOR_DELIMITER)
    if len(parts) != 2:
        raise MalformedSelectorError(
            selector,
            "it must contain only rule ID and error key separated by |"
        )

    rule_id, error_key = parts
    if not rule_id:
        raise MalformedSelectorError(selector, "rule ID is empty")
    if not error_key:
        raise MalformedSelectorError(selector, "error key is empty")

    return RuleSelector(rule_id=rule_id, error_key=error_key)
