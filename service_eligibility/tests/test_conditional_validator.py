"""
Unit tests for conditional rule validation and question visibility.
"""

import pytest

from shared.errors import CircularDependencyError, ReferenceIntegrityError
from service_eligibility.app.conditions.models import ConditionalRule, Question
from service_eligibility.app.conditions.validator import ConditionalRuleValidator, has_cycle, topological_order
from service_eligibility.app.conditions.visibility import is_question_visible, visible_questions


def question(question_id, order, rule_id=None):
    return Question(
        question_id=question_id,
        display_order=order,
        text=f"Question {question_id}",
        field_type="text",
        conditional_rule_id=rule_id,
    )


class TestTopologicalOrder:
    """Test cases for Kahn's algorithm."""

    def test_dependency_first_order(self):
        """Test dependencies come before dependents."""
        order, unresolved = topological_order({"c": ["a", "b"], "b": ["a"], "a": []})
        assert order == ["a", "b", "c"]
        assert unresolved == set()

    def test_ties_are_sorted(self):
        """Test independent nodes come out in sorted order."""
        order, _ = topological_order({"z": [], "m": [], "a": []})
        assert order == ["a", "m", "z"]

    def test_cycle_detection(self):
        """Test nodes on and behind a cycle are unresolved."""
        order, unresolved = topological_order({"x": ["y"], "y": ["x"], "w": ["x"], "z": []})
        assert order == ["z"]
        assert unresolved == {"w", "x", "y"}

    def test_self_loop(self):
        """Test a node depending on itself is a cycle."""
        assert has_cycle({"a": ["a"]})
        assert not has_cycle({"a": ["b"], "b": []})

    def test_duplicate_edges(self):
        """Test repeated dependencies count once."""
        order, unresolved = topological_order({"b": ["a", "a"], "a": []})
        assert order == ["a", "b"]
        assert not unresolved


class TestConditionalRuleValidator:
    """Test cases for ConditionalRuleValidator."""

    @pytest.fixture
    def validator(self):
        """Create validator instance."""
        return ConditionalRuleValidator()

    def test_valid_catalog(self, validator):
        """Test a valid catalog returns the evaluation order."""
        questions = [question("c", 3, "show-c"), question("b", 2, "show-b"), question("a", 1)]
        rules = [
            ConditionalRule("show-b", "a == 'yes'"),
            ConditionalRule("show-c", "b == 'x' AND a == 'yes'"),
        ]
        assert validator.validate(questions, rules) == ["a", "b", "c"]

    def test_cycle_detected(self, validator):
        """Test circular visibility rules are rejected."""
        questions = [question("x", 1, "show-x"), question("y", 2, "show-y"), question("z", 3)]
        rules = [ConditionalRule("show-x", "y == 1"), ConditionalRule("show-y", "x == 1")]

        with pytest.raises(CircularDependencyError) as exc_info:
            validator.validate(questions, rules)
        assert exc_info.value.question_ids == ["x", "y"]
        assert exc_info.value.message == "Circular conditional rules detected."

    def test_self_reference(self, validator):
        """Test a question gated on its own answer is a cycle."""
        with pytest.raises(CircularDependencyError):
            validator.validate([question("q", 1, "self")], [ConditionalRule("self", "q == 1")])

    def test_reference_problems_batched(self, validator):
        """Test every reference problem is reported in one error."""
        questions = [
            question("a", 1, "missing"),
            question("b", 2, "bad-syntax"),
            question("c", 3, "unknown-ref"),
        ]
        rules = [
            ConditionalRule("bad-syntax", "a =="),
            ConditionalRule("unknown-ref", "nope == 1"),
        ]

        with pytest.raises(ReferenceIntegrityError) as exc_info:
            validator.validate(questions, rules)

        problems = exc_info.value.problems
        assert [p["code"] for p in problems] == [
            "MISSING_RULE", "MALFORMED_EXPRESSION", "UNKNOWN_QUESTION_REFERENCE"
        ]
        assert problems[0]["message"] == "Missing conditional rule 'missing'."
        assert problems[2]["message"] == "Rule 'unknown-ref' references unknown question 'nope'."

    def test_reference_problems_reported_before_cycles(self, validator):
        """Test cycle detection only runs on a clean graph."""
        questions = [question("x", 1, "show-x"), question("y", 2, "show-y"), question("z", 3, "missing")]
        rules = [ConditionalRule("show-x", "y == 1"), ConditionalRule("show-y", "x == 1")]
        with pytest.raises(ReferenceIntegrityError):
            validator.validate(questions, rules)


class TestVisibility:
    """Test cases for runtime question visibility."""

    @pytest.fixture
    def rules(self):
        """Create visibility rules."""
        return [
            ConditionalRule("show-income", "has_income == 'yes'"),
            ConditionalRule("show-ssi", "income_sources IN ['ssi', 'ssdi']"),
        ]

    def test_question_without_rule_is_visible(self, rules):
        """Test unconditional questions are always shown."""
        assert is_question_visible(question("a", 1), {}, rules) is True

    def test_rule_decides(self, rules):
        """Test the rule result controls visibility."""
        income = question("income", 2, "show-income")
        assert is_question_visible(income, {"has_income": "YES"}, rules) is True
        assert is_question_visible(income, {"has_income": "no"}, rules) is False
        assert is_question_visible(income, {}, rules) is False

    def test_in_operator_with_multi_select(self, rules):
        """Test IN matches any selected value."""
        letter = question("ssi_letter", 3, "show-ssi")
        assert is_question_visible(letter, {"income_sources": ["wages", "ssi"]}, rules) is True
        assert is_question_visible(letter, {"income_sources": ["wages"]}, rules) is False

    def test_missing_rule(self, rules):
        """Test an unknown rule id raises."""
        with pytest.raises(ReferenceIntegrityError):
            is_question_visible(question("a", 1, "nope"), {}, rules)

    def test_visible_questions_ordered(self, rules):
        """Test visible questions come back in display order."""
        questions = [question("income", 2, "show-income"), question("size", 1), question("age", 3)]
        visible = visible_questions(questions, {"has_income": "no"}, rules)
        assert [q.question_id for q in visible] == ["size", "age"]


class TestCatalogModels:
    """Test cases for catalog models."""

    def test_question_from_dict(self):
        """Test building a question with options."""
        built = Question.from_dict({
            "question_id": "has_income",
            "display_order": "2",
            "text": "Any income?",
            "field_type": "select",
            "state_code": "il",
            "options": [{"label": "Yes", "value": "yes"}, {"label": "No", "value": "no"}],
        })
        assert built.display_order == 2
        assert built.state_code == "IL"
        assert [option.display_order for option in built.options] == [0, 1]

    def test_rule_node_is_parsed(self):
        """Test a rule exposes its parsed tree."""
        rule = ConditionalRule.from_dict({"rule_id": "r", "expression": "a == 1"})
        assert rule.node.operands[0].key == "a"
