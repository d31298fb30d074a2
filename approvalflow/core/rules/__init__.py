"""Rule evaluation for approval flow routing.

Flows carry ordered rule sets combined with an ALL/ANY match policy.
"""

from .rules import (
    MatchPolicy,
    Rule,
    RuleOperator,
    RuleResult,
    evaluate,
    evaluate_rule,
    explain,
    parse_number,
)

__all__ = [
    "MatchPolicy",
    "Rule",
    "RuleOperator",
    "RuleResult",
    "evaluate",
    "evaluate_rule",
    "explain",
    "parse_number",
]
