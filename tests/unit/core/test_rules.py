"""Tests for routing rule evaluation."""

import pytest

from approvalflow.core.rules import (
    MatchPolicy,
    Rule,
    RuleOperator,
    evaluate,
    evaluate_rule,
    explain,
    parse_number,
)


def rule(field, operator, value, order=0):
    return Rule(field=field, operator=RuleOperator.parse(operator), value=value, order=order)


class TestRuleOperator:
    """Test operator parsing."""

    def test_symbolic_operators(self):
        assert RuleOperator.parse(">=") == RuleOperator.GREATER_THAN_OR_EQUAL
        assert RuleOperator.parse(" != ") == RuleOperator.NOT_EQUALS

    def test_word_operators_case_insensitive(self):
        assert RuleOperator.parse("in") == RuleOperator.IN
        assert RuleOperator.parse("Between") == RuleOperator.BETWEEN

    def test_unknown_operator(self):
        with pytest.raises(ValueError):
            RuleOperator.parse("LIKE")


class TestParseNumber:

    @pytest.mark.parametrize("raw", [5000, 5000.5, "5000", " 12.75 ", "-3"])
    def test_numbers(self, raw):
        assert parse_number(raw) is not None

    @pytest.mark.parametrize("raw", ["abc", "", None, True, "NaN", "inf", [1]])
    def test_non_numbers(self, raw):
        assert parse_number(raw) is None


class TestComparisonOperators:
    """Test single-rule evaluation."""

    def test_equals_numeric_and_string(self):
        assert evaluate_rule(rule("amount", "=", "5000"), {"amount": 5000.0})
        assert evaluate_rule(rule("city", "=", "Lisbon"), {"city": "Lisbon"})
        assert not evaluate_rule(rule("city", "=", "lisbon"), {"city": "Lisbon"})

    def test_equals_boolean_field(self):
        assert evaluate_rule(rule("urgent", "=", "true"), {"urgent": True})
        assert not evaluate_rule(rule("urgent", "=", "true"), {"urgent": False})

    def test_not_equals(self):
        assert evaluate_rule(rule("city", "!=", "Porto"), {"city": "Lisbon"})
        assert not evaluate_rule(rule("amount", "!=", "10"), {"amount": "10.0"})

    @pytest.mark.parametrize(
        "operator,amount,expected",
        [
            (">", 5001, True),
            (">", 5000, False),
            (">=", 5000, True),
            ("<", 4999, True),
            ("<", 5000, False),
            ("<=", 5000, True),
        ],
    )
    def test_numeric_operators(self, operator, amount, expected):
        assert evaluate_rule(rule("amount", operator, "5000"), {"amount": amount}) is expected

    def test_numeric_operand_from_string_data(self):
        assert evaluate_rule(rule("amount", ">", "5000"), {"amount": "6000"})

    @pytest.mark.parametrize("operator", [">", ">=", "<", "<="])
    def test_malformed_numeric_comparison_is_non_match(self, operator):
        assert evaluate_rule(rule("amount", operator, "5000"), {"amount": "lots"}) is False
        assert evaluate_rule(rule("amount", operator, "five"), {"amount": 6000}) is False

    def test_in_list(self):
        r = rule("destination", "IN", "Lisbon, Porto ,Faro")
        assert evaluate_rule(r, {"destination": "Porto"})
        assert not evaluate_rule(r, {"destination": "Madrid"})

    def test_in_list_numeric_compare(self):
        assert evaluate_rule(rule("grade", "IN", "1,2,3"), {"grade": 2.0})

    def test_in_empty_list_is_non_match(self):
        assert not evaluate_rule(rule("grade", "IN", " , "), {"grade": ""})

    def test_between_inclusive(self):
        r = rule("amount", "BETWEEN", "1000,5000")
        assert evaluate_rule(r, {"amount": 1000})
        assert evaluate_rule(r, {"amount": 5000})
        assert not evaluate_rule(r, {"amount": 5000.01})

    @pytest.mark.parametrize("value", ["1000", "1000,2000,3000", "low,high"])
    def test_between_malformed_value_is_non_match(self, value):
        assert evaluate_rule(rule("amount", "BETWEEN", value), {"amount": 1500}) is False


class TestMissingFields:
    """A missing field never raises."""

    @pytest.mark.parametrize("operator,value", [("=", "1"), ("!=", "1"), (">", "1"), ("IN", "1,2"), ("BETWEEN", "1,2")])
    def test_missing_field_is_non_match(self, operator, value):
        assert evaluate_rule(rule("amount", operator, value), {"other": 1}) is False

    def test_none_value_is_non_match(self):
        assert evaluate_rule(rule("amount", "!=", "1"), {"amount": None}) is False

    def test_field_names_match_literally(self):
        r = rule("travelAmount", ">", "100")
        assert not evaluate_rule(r, {"travel_amount": 500})
        assert evaluate_rule(r, {"travelAmount": 500})


class TestMatchPolicy:
    """Test rule set combination."""

    def test_empty_rule_set(self):
        assert evaluate([], MatchPolicy.ALL, {}) is True
        assert evaluate([], MatchPolicy.ANY, {}) is False

    def test_all_requires_every_rule(self):
        rules = [rule("amount", ">", "5000"), rule("destination", "=", "Lisbon")]
        assert evaluate(rules, MatchPolicy.ALL, {"amount": 6000, "destination": "Lisbon"})
        assert not evaluate(rules, MatchPolicy.ALL, {"amount": 6000, "destination": "Porto"})

    def test_any_requires_one_rule(self):
        rules = [rule("amount", ">", "5000"), rule("destination", "=", "Lisbon")]
        assert evaluate(rules, MatchPolicy.ANY, {"amount": 100, "destination": "Lisbon"})
        assert not evaluate(rules, MatchPolicy.ANY, {"amount": 100, "destination": "Porto"})

    def test_explain_reports_each_rule(self):
        rules = [rule("amount", ">", "5000"), rule("destination", "=", "Lisbon", order=1)]
        results = explain(rules, {"amount": 6000})
        assert [r.matched for r in results] == [True, False]
        assert "not present" in results[1].reason


class TestRuleSerialization:

    def test_round_trip(self):
        r = rule("amount", "BETWEEN", "1,2", order=3)
        assert Rule.from_dict(r.to_dict()) == r
