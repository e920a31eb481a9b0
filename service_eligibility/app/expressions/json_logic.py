"""
JSON-logic surface for rule logic and navigation conditions.

Stored documents look like ``{"<=": [{"var": "monthly_income_cents"}, 200000]}``.
"""

from decimal import Decimal
from typing import Any, Dict, List, Mapping

from shared.errors import MalformedExpression
from .nodes import ExpressionNode, Literal, Operation, Operator, VariableRef

_OPERATOR_NAMES: Dict[str, Operator] = {
    "==": Operator.EQ,
    "===": Operator.EQ,
    "!=": Operator.NE,
    "!==": Operator.NE,
    ">": Operator.GT,
    "<": Operator.LT,
    ">=": Operator.GTE,
    "<=": Operator.LTE,
    "and": Operator.AND,
    "or": Operator.OR,
    "in": Operator.IN,
    "not in": Operator.NOT_IN,
    "!": Operator.NOT,
    "not": Operator.NOT,
    "if": Operator.IF,
}

_CANONICAL_NAMES: Dict[Operator, str] = {
    Operator.EQ: "==",
    Operator.NE: "!=",
    Operator.GT: ">",
    Operator.LT: "<",
    Operator.GTE: ">=",
    Operator.LTE: "<=",
    Operator.AND: "and",
    Operator.OR: "or",
    Operator.IN: "in",
    Operator.NOT_IN: "not in",
    Operator.NOT: "!",
    Operator.IF: "if",
}


def from_json_logic(document: Any) -> ExpressionNode:
    """Convert a JSON-logic document into a node tree."""
    if isinstance(document, Mapping):
        if len(document) != 1:
            raise MalformedExpression("JSON-logic operations must have exactly one operator key")
        name, arguments = next(iter(document.items()))
        if name == "var":
            return _parse_var(arguments)

        operator = _OPERATOR_NAMES.get(name)
        if operator is None:
            raise MalformedExpression(f"Unknown operator '{name}'")

        if not isinstance(arguments, list):
            arguments = [arguments]
        return Operation(operator, tuple(from_json_logic(argument) for argument in arguments))

    if isinstance(document, list):
        if any(isinstance(item, (Mapping, list)) for item in document):
            raise MalformedExpression("List literals may only contain scalar values")
        return Literal(tuple(document))

    return Literal(document)


def _parse_var(arguments: Any) -> VariableRef:
    if isinstance(arguments, list):
        if len(arguments) != 1:
            raise MalformedExpression("'var' takes a single key")
        arguments = arguments[0]
    if not isinstance(arguments, str):
        raise MalformedExpression("'var' key must be a string")
    return VariableRef(arguments)


def to_json_logic(node: ExpressionNode) -> Any:
    """Render a node tree as a JSON-compatible JSON-logic document."""
    if isinstance(node, VariableRef):
        return {"var": node.key}
    if isinstance(node, Literal):
        return _json_value(node.value)
    arguments: List[Any] = [to_json_logic(operand) for operand in node.operands]
    return {_CANONICAL_NAMES[node.operator]: arguments}


def _json_value(value: Any) -> Any:
    if isinstance(value, tuple):
        return [_json_value(item) for item in value]
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    return value
