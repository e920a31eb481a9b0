"""
Definition-time validation of conditional visibility rules.
"""

from collections import deque
from typing import Any, Dict, Iterable, List, Mapping, Set, Tuple

from shared.errors import CircularDependencyError, MalformedExpression, ReferenceIntegrityError
from shared.logging import get_logger
from ..expressions.evaluator import referenced_keys
from .models import ConditionalRule, Question


def topological_order(graph: Mapping[str, Iterable[str]]) -> Tuple[List[str], Set[str]]:
    """Kahn's algorithm over ``question -> questions it depends on``.

    Returns the dependency-first order of every node that could be sorted
    and the set of nodes that could not (those on or behind a cycle).
    """
    nodes: Set[str] = set(graph)
    dependents: Dict[str, Set[str]] = {}
    in_degree: Dict[str, int] = {}

    for node, dependencies in graph.items():
        unique = set(dependencies)
        nodes.update(unique)
        in_degree[node] = in_degree.get(node, 0) + len(unique)
        for dependency in unique:
            dependents.setdefault(dependency, set()).add(node)

    for node in nodes:
        in_degree.setdefault(node, 0)

    queue = deque(sorted(node for node in nodes if in_degree[node] == 0))
    order: List[str] = []
    while queue:
        node = queue.popleft()
        order.append(node)
        for dependent in sorted(dependents.get(node, ())):
            in_degree[dependent] -= 1
            if in_degree[dependent] == 0:
                queue.append(dependent)

    return order, nodes - set(order)


def has_cycle(graph: Mapping[str, Iterable[str]]) -> bool:
    """True when a topological sort cannot visit every node."""
    _, unresolved = topological_order(graph)
    return bool(unresolved)


class ConditionalRuleValidator:
    """Validates a question set and the visibility rules it references.

    Reference problems (missing rules, malformed expressions, unknown
    question ids) are collected in one pass and reported together. Cycle
    detection only runs on a graph that passed the reference pass.
    """

    def __init__(self):
        self.logger = get_logger("eligibility.conditional_rule_validator")

    def validate(self, questions: Iterable[Question], rules: Iterable[ConditionalRule]) -> List[str]:
        """Validate and return the dependency-first question order."""
        question_list = sorted(questions, key=lambda q: (q.display_order, q.question_id))
        rules_by_id = {rule.rule_id: rule for rule in rules}
        known_ids = {question.question_id for question in question_list}

        graph, problems = self._build_graph(question_list, rules_by_id, known_ids)
        if problems:
            self.logger.warning("Conditional rule references invalid", problem_count=len(problems))
            raise ReferenceIntegrityError(problems)

        order, unresolved = topological_order(graph)
        if unresolved:
            self.logger.warning("Circular conditional rules", question_ids=sorted(unresolved))
            raise CircularDependencyError(sorted(unresolved))

        return order

    def _build_graph(self, questions: List[Question], rules_by_id: Dict[str, ConditionalRule],
                     known_ids: Set[str]) -> Tuple[Dict[str, Set[str]], List[Dict[str, Any]]]:
        graph: Dict[str, Set[str]] = {question.question_id: set() for question in questions}
        problems: List[Dict[str, Any]] = []

        for question in questions:
            rule_id = question.conditional_rule_id
            if not rule_id:
                continue

            rule = rules_by_id.get(rule_id)
            if rule is None:
                problems.append({
                    "code": "MISSING_RULE",
                    "question_id": question.question_id,
                    "rule_id": rule_id,
                    "message": f"Missing conditional rule '{rule_id}'.",
                })
                continue

            try:
                keys = referenced_keys(rule.expression)
            except MalformedExpression as e:
                problems.append({
                    "code": "MALFORMED_EXPRESSION",
                    "question_id": question.question_id,
                    "rule_id": rule_id,
                    "message": f"Invalid rule '{rule_id}': {e.message}",
                })
                continue

            for key in sorted(keys):
                if key not in known_ids:
                    problems.append({
                        "code": "UNKNOWN_QUESTION_REFERENCE",
                        "question_id": question.question_id,
                        "rule_id": rule_id,
                        "message": f"Rule '{rule_id}' references unknown question '{key}'.",
                    })
                else:
                    graph[question.question_id].add(key)

        return graph, problems
