"""
Expression tree node types.

An expression is one of three variants: a reference to an answer key, a
literal value, or an operator applied to child expressions. Nodes are
immutable and hashable so parsed trees can be cached and shared between
concurrent evaluations.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Tuple, Union

from shared.errors import MalformedExpression


class Operator(str, Enum):
    """Operators understood by the evaluator."""
    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GTE = ">="
    LTE = "<="
    AND = "AND"
    OR = "OR"
    IN = "IN"
    NOT_IN = "NOT IN"
    NOT = "NOT"
    IF = "IF"


COMPARISON_OPERATORS = frozenset({
    Operator.EQ, Operator.NE, Operator.GT, Operator.LT, Operator.GTE, Operator.LTE
})
MEMBERSHIP_OPERATORS = frozenset({Operator.IN, Operator.NOT_IN})
LOGICAL_OPERATORS = frozenset({Operator.AND, Operator.OR})

SCALAR_TYPES = (str, bool, int, float, Decimal, type(None))


@dataclass(frozen=True)
class VariableRef:
    """Reference to an answer key; dotted keys address nested answer fields."""
    key: str

    def __post_init__(self):
        if not isinstance(self.key, str) or not self.key.strip():
            raise MalformedExpression("Variable reference requires a non-empty key")


@dataclass(frozen=True)
class Literal:
    """Literal scalar, or a tuple of scalars for membership lists."""
    value: Any

    def __post_init__(self):
        value = self.value
        if isinstance(value, list):
            value = tuple(value)
            object.__setattr__(self, "value", value)
        if isinstance(value, tuple):
            if not all(isinstance(item, SCALAR_TYPES) for item in value):
                raise MalformedExpression("List literals may only contain scalar values")
        elif not isinstance(value, SCALAR_TYPES):
            raise MalformedExpression(f"Unsupported literal type '{type(value).__name__}'")


@dataclass(frozen=True)
class Operation:
    """Operator application over child nodes."""
    operator: Operator
    operands: Tuple["ExpressionNode", ...]

    def __post_init__(self):
        operands = tuple(self.operands)
        object.__setattr__(self, "operands", operands)
        for operand in operands:
            if not isinstance(operand, (VariableRef, Literal, Operation)):
                raise MalformedExpression(f"Invalid operand for {self.operator.value}")

        count = len(operands)
        if self.operator in COMPARISON_OPERATORS or self.operator in MEMBERSHIP_OPERATORS:
            if count != 2:
                raise MalformedExpression(f"Operator {self.operator.value} takes exactly two operands")
        elif self.operator in LOGICAL_OPERATORS:
            if count < 1:
                raise MalformedExpression(f"Operator {self.operator.value} needs at least one operand")
        elif self.operator == Operator.NOT:
            if count != 1:
                raise MalformedExpression("Operator NOT takes exactly one operand")
        elif self.operator == Operator.IF:
            if count < 2:
                raise MalformedExpression("Operator IF needs a condition and a value")


ExpressionNode = Union[VariableRef, Literal, Operation]


def var(key: str) -> VariableRef:
    """Shorthand for a variable reference."""
    return VariableRef(key)


def lit(value: Any) -> Literal:
    """Shorthand for a literal."""
    return Literal(value)


def op(operator: Union[Operator, str], *operands: ExpressionNode) -> Operation:
    """Shorthand for an operation; accepts the operator symbol or enum member."""
    return Operation(Operator(operator), operands)
