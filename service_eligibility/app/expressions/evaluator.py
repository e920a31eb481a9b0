"""
Expression evaluation against an answer snapshot.

Evaluation never raises for missing data: an unanswered key resolves to
``ABSENT`` and every comparison involving an absent operand is false.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Mapping, Optional, Set, Union

from shared.errors import MalformedExpression
from .nodes import ExpressionNode, Literal, Operation, Operator, VariableRef
from .parser import parse_expression


class _Absent:
    """Marker for an answer that has not been collected."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self):
        return False

    def __repr__(self):
        return "ABSENT"


ABSENT = _Absent()

_TRUE_STRINGS = ("true",)
_FALSE_STRINGS = ("false",)


def resolve_variable(key: str, answers: Mapping[str, Any]) -> Any:
    """Resolve a (possibly dotted) key against the answers."""
    if key in answers:
        return answers[key]

    current: Any = answers
    for part in key.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, (list, tuple)) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return ABSENT
    return current


def is_absent(value: Any) -> bool:
    """Absent, null and blank-string answers all count as not collected."""
    if value is ABSENT or value is None:
        return True
    return isinstance(value, str) and not value.strip()


def is_truthy(value: Any) -> bool:
    """Truthiness used by navigation and visibility decisions."""
    if value is ABSENT or value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float, Decimal)):
        return value != 0
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) > 0
    return True


def to_decimal(value: Any) -> Optional[Decimal]:
    """Numeric view of a value, or None when it is not numeric."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, int):
        number = Decimal(value)
    elif isinstance(value, float):
        number = Decimal(repr(value))
    elif isinstance(value, str):
        try:
            number = Decimal(value.strip())
        except InvalidOperation:
            return None
    else:
        return None
    return number if number.is_finite() else None


def _to_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
    return None


def values_equal(left: Any, right: Any) -> bool:
    """Type-coercing equality shared by ==, != and IN."""
    if isinstance(left, bool) or isinstance(right, bool):
        left_bool, right_bool = _to_bool(left), _to_bool(right)
        return left_bool is not None and left_bool == right_bool

    left_number, right_number = to_decimal(left), to_decimal(right)
    if left_number is not None and right_number is not None:
        return left_number == right_number

    if isinstance(left, str) and isinstance(right, str):
        return left.strip().casefold() == right.strip().casefold()

    if isinstance(left, (int, float, Decimal)) or isinstance(right, (int, float, Decimal)):
        return False

    return left == right


def _compare_numbers(left: Any, right: Any) -> Optional[int]:
    left_number, right_number = to_decimal(left), to_decimal(right)
    if left_number is None or right_number is None:
        return None
    if left_number < right_number:
        return -1
    return 1 if left_number > right_number else 0


def _is_member(value: Any, candidates: Any) -> bool:
    if not isinstance(candidates, (list, tuple, set, frozenset)):
        return False
    if isinstance(value, (list, tuple)):
        return any(values_equal(item, candidate) for item in value for candidate in candidates)
    return any(values_equal(value, candidate) for candidate in candidates)


def _eval_comparison(node: Operation, answers: Mapping[str, Any]) -> bool:
    left = evaluate(node.operands[0], answers)
    right = evaluate(node.operands[1], answers)
    if is_absent(left) or is_absent(right):
        return False

    if node.operator == Operator.EQ:
        return values_equal(left, right)
    if node.operator == Operator.NE:
        return not values_equal(left, right)

    ordering = _compare_numbers(left, right)
    if ordering is None:
        return False
    if node.operator == Operator.GT:
        return ordering > 0
    if node.operator == Operator.LT:
        return ordering < 0
    if node.operator == Operator.GTE:
        return ordering >= 0
    return ordering <= 0


def _eval_in(node: Operation, answers: Mapping[str, Any]) -> bool:
    value = evaluate(node.operands[0], answers)
    if is_absent(value):
        return False
    return _is_member(value, evaluate(node.operands[1], answers))


def _eval_not_in(node: Operation, answers: Mapping[str, Any]) -> bool:
    value = evaluate(node.operands[0], answers)
    candidates = evaluate(node.operands[1], answers)
    if is_absent(value) or not isinstance(candidates, (list, tuple, set, frozenset)):
        return False
    return not _is_member(value, candidates)


def _eval_and(node: Operation, answers: Mapping[str, Any]) -> bool:
    return all(is_truthy(evaluate(operand, answers)) for operand in node.operands)


def _eval_or(node: Operation, answers: Mapping[str, Any]) -> bool:
    return any(is_truthy(evaluate(operand, answers)) for operand in node.operands)


def _eval_not(node: Operation, answers: Mapping[str, Any]) -> bool:
    return not is_truthy(evaluate(node.operands[0], answers))


def _eval_if(node: Operation, answers: Mapping[str, Any]) -> Any:
    # [cond, value, cond, value, ..., else?]
    operands = node.operands
    for index in range(0, len(operands) - 1, 2):
        if is_truthy(evaluate(operands[index], answers)):
            return evaluate(operands[index + 1], answers)
    if len(operands) % 2 == 1:
        return evaluate(operands[-1], answers)
    return None


OPERATOR_HANDLERS: Dict[Operator, Callable[[Operation, Mapping[str, Any]], Any]] = {
    Operator.EQ: _eval_comparison,
    Operator.NE: _eval_comparison,
    Operator.GT: _eval_comparison,
    Operator.LT: _eval_comparison,
    Operator.GTE: _eval_comparison,
    Operator.LTE: _eval_comparison,
    Operator.AND: _eval_and,
    Operator.OR: _eval_or,
    Operator.IN: _eval_in,
    Operator.NOT_IN: _eval_not_in,
    Operator.NOT: _eval_not,
    Operator.IF: _eval_if,
}


def evaluate(node: ExpressionNode, answers: Mapping[str, Any]) -> Any:
    """Evaluate an expression node against an answer snapshot."""
    if isinstance(node, VariableRef):
        return resolve_variable(node.key, answers)
    if isinstance(node, Literal):
        return node.value
    if isinstance(node, Operation):
        return OPERATOR_HANDLERS[node.operator](node, answers)
    raise MalformedExpression(f"Cannot evaluate object of type '{type(node).__name__}'")


def evaluate_condition(node: Optional[ExpressionNode], answers: Mapping[str, Any]) -> bool:
    """Evaluate a node and reduce the result to a boolean; a missing node is false."""
    if node is None:
        return False
    return is_truthy(evaluate(node, answers))


def referenced_keys(node: Union[ExpressionNode, str]) -> Set[str]:
    """Collect every variable key referenced anywhere in the tree."""
    if isinstance(node, str):
        node = parse_expression(node)

    keys: Set[str] = set()
    stack = [node]
    while stack:
        current = stack.pop()
        if isinstance(current, VariableRef):
            keys.add(current.key)
        elif isinstance(current, Operation):
            stack.extend(current.operands)
        elif not isinstance(current, Literal):
            raise MalformedExpression(f"Unexpected node type '{type(current).__name__}'")
    return keys
