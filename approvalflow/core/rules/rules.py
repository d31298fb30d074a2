"""Routing rule definitions and evaluation.

A rule compares one key of the request-data dictionary against a
string-encoded value. Flows combine their rules with a match policy:
ALL (conjunction) or ANY (disjunction).

Evaluation is fail-closed: a missing field, an unparsable number or a
malformed IN/BETWEEN value makes the rule a non-match, never an error.
Field names are matched literally against request-data keys.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional


class RuleOperator(str, Enum):
    """Operators for rule comparisons."""

    EQUALS = "="
    NOT_EQUALS = "!="
    GREATER_THAN = ">"
    GREATER_THAN_OR_EQUAL = ">="
    LESS_THAN = "<"
    LESS_THAN_OR_EQUAL = "<="
    IN = "IN"
    BETWEEN = "BETWEEN"

    @classmethod
    def parse(cls, raw: str) -> "RuleOperator":
        """Parse an operator, accepting lowercase in/between."""
        token = raw.strip()
        if token.upper() in (cls.IN.value, cls.BETWEEN.value):
            token = token.upper()
        return cls(token)


NUMERIC_OPERATORS = {
    RuleOperator.GREATER_THAN,
    RuleOperator.GREATER_THAN_OR_EQUAL,
    RuleOperator.LESS_THAN,
    RuleOperator.LESS_THAN_OR_EQUAL,
}


class MatchPolicy(str, Enum):
    """How a flow's rules combine."""

    ALL = "ALL"
    ANY = "ANY"


@dataclass(frozen=True)
class Rule:
    """
    A single routing condition.

    ``value`` stays string-encoded as configured; its interpretation
    depends on the operator (a number, a comma-separated list, or "lo,hi").
    """
    field: str
    operator: RuleOperator
    value: str
    order: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert rule to dictionary for serialization."""
        return {
            "field": self.field,
            "operator": self.operator.value,
            "value": self.value,
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        """Create rule from dictionary."""
        return cls(
            field=data["field"],
            operator=RuleOperator.parse(data["operator"]),
            value=str(data["value"]),
            order=int(data.get("order", 0)),
        )


@dataclass(frozen=True)
class RuleResult:
    """Outcome of evaluating a single rule."""
    rule: Rule
    matched: bool
    reason: Optional[str] = None


def parse_number(value: Any) -> Optional[Decimal]:
    """
    Parse a value as a finite number.

    Returns None when the value is not numeric. Booleans are not numbers.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        number = Decimal(str(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    if not number.is_finite():
        return None
    return number


def _as_text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _values_equal(actual: Any, expected: str) -> bool:
    """Numeric compare when both sides parse as numbers, else string compare."""
    actual_number = parse_number(actual)
    expected_number = parse_number(expected)
    if actual_number is not None and expected_number is not None:
        return actual_number == expected_number
    return _as_text(actual) == expected


def _split_list(raw: str) -> List[str]:
    return [item.strip() for item in raw.split(",")]


def _check(rule: Rule, data: Mapping[str, Any]) -> RuleResult:
    if rule.field not in data or data[rule.field] is None:
        return RuleResult(rule, False, f"Field {rule.field!r} not present in request data")

    actual = data[rule.field]
    operator = rule.operator

    if operator == RuleOperator.EQUALS:
        matched = _values_equal(actual, rule.value)
    elif operator == RuleOperator.NOT_EQUALS:
        matched = not _values_equal(actual, rule.value)
    elif operator in NUMERIC_OPERATORS:
        left = parse_number(actual)
        right = parse_number(rule.value)
        if left is None or right is None:
            return RuleResult(rule, False, f"Non-numeric operand for {operator.value}")
        if operator == RuleOperator.GREATER_THAN:
            matched = left > right
        elif operator == RuleOperator.GREATER_THAN_OR_EQUAL:
            matched = left >= right
        elif operator == RuleOperator.LESS_THAN:
            matched = left < right
        else:
            matched = left <= right
    elif operator == RuleOperator.IN:
        candidates = [item for item in _split_list(rule.value) if item != ""]
        if not candidates:
            return RuleResult(rule, False, "IN rule has an empty value list")
        matched = any(_values_equal(actual, item) for item in candidates)
    elif operator == RuleOperator.BETWEEN:
        bounds = _split_list(rule.value)
        if len(bounds) != 2:
            return RuleResult(rule, False, "BETWEEN rule value must be 'lo,hi'")
        low, high = parse_number(bounds[0]), parse_number(bounds[1])
        number = parse_number(actual)
        if low is None or high is None or number is None:
            return RuleResult(rule, False, "Non-numeric operand for BETWEEN")
        matched = low <= number <= high
    else:
        return RuleResult(rule, False, f"Unknown operator: {operator}")

    if not matched:
        return RuleResult(rule, False, f"{rule.field}={actual!r} does not satisfy {operator.value} {rule.value}")
    return RuleResult(rule, True)


def evaluate_rule(rule: Rule, data: Mapping[str, Any]) -> bool:
    """Evaluate a single rule against request data."""
    return _check(rule, data).matched


def explain(rules: Iterable[Rule], data: Mapping[str, Any]) -> List[RuleResult]:
    """Evaluate every rule independently, in order, and return each outcome."""
    return [_check(rule, data) for rule in rules]


def evaluate(rules: Iterable[Rule], policy: MatchPolicy, data: Mapping[str, Any]) -> bool:
    """
    Evaluate an ordered rule set under a match policy.

    An empty rule set is vacuously true under ALL and false under ANY.
    """
    if policy == MatchPolicy.ALL:
        return all(evaluate_rule(rule, data) for rule in rules)
    if policy == MatchPolicy.ANY:
        return any(evaluate_rule(rule, data) for rule in rules)
    raise ValueError(f"Unknown match policy: {policy}")
