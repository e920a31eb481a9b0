"""
Text surface for condition expressions.

Grammar (keywords are case-insensitive)::

    expr       := and_expr (OR and_expr)*
    and_expr   := not_expr (AND not_expr)*
    not_expr   := NOT not_expr | primary
    primary    := '(' expr ')' | comparison
    comparison := operand (OP operand | IN list | NOT IN list)
    operand    := IDENT | STRING | NUMBER | TRUE | FALSE
    list       := '[' literal (',' literal)* ']'
    OP         := == | != | > | < | >= | <=

``to_text`` renders the canonical form that the client-side mirror of this
grammar is checked against.
"""

import re
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from typing import Any, List, Optional, Union

from shared.errors import MalformedExpression
from .json_logic import from_json_logic
from .nodes import (
    COMPARISON_OPERATORS, ExpressionNode, Literal, Operation, Operator, VariableRef
)

_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_WORD_CHARS = re.compile(r"[A-Za-z0-9_.\-]")
_KEYWORDS = {"AND", "OR", "NOT", "IN", "TRUE", "FALSE"}
_COMPARISON_SYMBOLS = {"==", "!=", ">", "<", ">=", "<="}
_PUNCTUATION = {"(": "LPAREN", ")": "RPAREN", "[": "LBRACKET", "]": "RBRACKET", ",": "COMMA"}


@dataclass(frozen=True)
class Token:
    """Lexical token with its source offset."""
    kind: str
    text: str
    position: int
    value: Any = None


def tokenize(text: str) -> List[Token]:
    """Split expression text into tokens."""
    tokens: List[Token] = []
    position = 0
    length = len(text)

    while position < length:
        char = text[position]

        if char.isspace():
            position += 1
            continue

        if char in _PUNCTUATION:
            tokens.append(Token(_PUNCTUATION[char], char, position))
            position += 1
            continue

        if char in "=!<>":
            pair = text[position:position + 2]
            if pair in _COMPARISON_SYMBOLS:
                tokens.append(Token("OP", pair, position))
                position += 2
                continue
            if char in "<>":
                tokens.append(Token("OP", char, position))
                position += 1
                continue
            raise MalformedExpression(f"Unexpected character '{char}'", text, position)

        if char in "'\"":
            literal, position = _read_string(text, position)
            tokens.append(literal)
            continue

        if _WORD_CHARS.match(char):
            start = position
            while position < length and _WORD_CHARS.match(text[position]):
                position += 1
            word = text[start:position]
            tokens.append(_classify_word(word, text, start))
            continue

        raise MalformedExpression(f"Unexpected character '{char}'", text, position)

    tokens.append(Token("EOF", "", length))
    return tokens


def _read_string(text: str, start: int):
    quote = text[start]
    position = start + 1
    buffer = []
    while position < len(text):
        char = text[position]
        if char == "\\" and position + 1 < len(text):
            buffer.append(text[position + 1])
            position += 2
            continue
        if char == quote:
            value = "".join(buffer)
            return Token("STRING", text[start:position + 1], start, value), position + 1
        buffer.append(char)
        position += 1
    raise MalformedExpression("Unterminated string literal", text, start)


def _classify_word(word: str, text: str, start: int) -> Token:
    upper = word.upper()
    if upper in _KEYWORDS:
        if upper in ("TRUE", "FALSE"):
            return Token("BOOLEAN", word, start, upper == "TRUE")
        return Token(upper, word, start)
    if _NUMBER_RE.match(word):
        return Token("NUMBER", word, start, _parse_number(word))
    if word.startswith("-") or word.endswith("."):
        raise MalformedExpression(f"Invalid identifier '{word}'", text, start)
    return Token("IDENT", word, start)


def _parse_number(text: str) -> Union[int, Decimal]:
    if "." in text:
        return Decimal(text)
    return int(text)


class _Parser:
    """Recursive-descent parser over a token list."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = tokenize(text)
        self.index = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        self.index += 1
        return token

    def _match(self, kind: str) -> Optional[Token]:
        if self.current.kind == kind:
            return self._advance()
        return None

    def _expect(self, kind: str, message: str) -> Token:
        token = self._match(kind)
        if token is None:
            raise MalformedExpression(message, self.text, self.current.position)
        return token

    def parse(self) -> ExpressionNode:
        if self.current.kind == "EOF":
            raise MalformedExpression("Expression is empty", self.text, 0)
        node = self._parse_or()
        if self.current.kind != "EOF":
            raise MalformedExpression(
                f"Unexpected token '{self.current.text}'", self.text, self.current.position
            )
        return node

    def _parse_or(self) -> ExpressionNode:
        operands = [self._parse_and()]
        while self._match("OR"):
            operands.append(self._parse_and())
        return operands[0] if len(operands) == 1 else Operation(Operator.OR, tuple(operands))

    def _parse_and(self) -> ExpressionNode:
        operands = [self._parse_not()]
        while self._match("AND"):
            operands.append(self._parse_not())
        return operands[0] if len(operands) == 1 else Operation(Operator.AND, tuple(operands))

    def _parse_not(self) -> ExpressionNode:
        if self._match("NOT"):
            return Operation(Operator.NOT, (self._parse_not(),))
        return self._parse_primary()

    def _parse_primary(self) -> ExpressionNode:
        if self._match("LPAREN"):
            node = self._parse_or()
            self._expect("RPAREN", "Expected ')'")
            return node
        return self._parse_comparison()

    def _parse_comparison(self) -> ExpressionNode:
        left = self._parse_operand()

        if self._match("NOT"):
            self._expect("IN", "Expected IN after NOT")
            return Operation(Operator.NOT_IN, (left, self._parse_list()))
        if self._match("IN"):
            return Operation(Operator.IN, (left, self._parse_list()))

        token = self._expect("OP", "Expected comparison operator")
        right = self._parse_operand()
        return Operation(Operator(token.text), (left, right))

    def _parse_operand(self) -> ExpressionNode:
        token = self.current
        if token.kind == "IDENT":
            self._advance()
            return VariableRef(token.text)
        if token.kind in ("STRING", "NUMBER", "BOOLEAN"):
            self._advance()
            return Literal(token.value)
        raise MalformedExpression(
            f"Expected identifier or literal, found '{token.text or 'end of input'}'",
            self.text,
            token.position
        )

    def _parse_list(self) -> Literal:
        self._expect("LBRACKET", "Expected '[' to start list")
        values = [self._parse_list_item()]
        while self._match("COMMA"):
            values.append(self._parse_list_item())
        self._expect("RBRACKET", "Expected ']' to close list")
        return Literal(tuple(values))

    def _parse_list_item(self) -> Any:
        token = self.current
        if token.kind in ("STRING", "NUMBER", "BOOLEAN"):
            self._advance()
            return token.value
        raise MalformedExpression("List items must be literals", self.text, token.position)


def parse_expression(text: str) -> ExpressionNode:
    """Parse expression text into a node tree."""
    if not isinstance(text, str):
        raise MalformedExpression("Expression text must be a string")
    return _parse_cached(text)


@lru_cache(maxsize=1024)
def _parse_cached(text: str) -> ExpressionNode:
    return _Parser(text).parse()


def compile_expression(source: Any) -> ExpressionNode:
    """Build a node from expression text, a JSON-logic document, or an existing node."""
    if isinstance(source, (VariableRef, Literal, Operation)):
        return source
    if isinstance(source, str):
        return parse_expression(source)
    return from_json_logic(source)


def _format_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"
    if isinstance(value, (int, Decimal)):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, tuple):
        return "[" + ", ".join(_format_literal(item) for item in value) + "]"
    raise MalformedExpression(f"Literal {value!r} has no text form")


def _format_operand(node: ExpressionNode) -> str:
    if isinstance(node, VariableRef):
        return node.key
    if isinstance(node, Literal) and not isinstance(node.value, tuple):
        return _format_literal(node.value)
    raise MalformedExpression("Comparison operands must be identifiers or scalar literals")


def to_text(node: ExpressionNode) -> str:
    """Render the canonical text form of a node."""
    if isinstance(node, (VariableRef, Literal)):
        return _format_operand(node)

    operator = node.operator
    if operator in COMPARISON_OPERATORS:
        left, right = node.operands
        return f"{_format_operand(left)} {operator.value} {_format_operand(right)}"
    if operator in (Operator.IN, Operator.NOT_IN):
        left, right = node.operands
        if not isinstance(right, Literal) or not isinstance(right.value, tuple):
            raise MalformedExpression(f"{operator.value} requires a literal list")
        return f"{_format_operand(left)} {operator.value} {_format_literal(right.value)}"
    if operator == Operator.AND:
        return " AND ".join(_wrap_if(child, (Operator.OR,)) for child in node.operands)
    if operator == Operator.OR:
        return " OR ".join(to_text(child) for child in node.operands)
    if operator == Operator.NOT:
        return "NOT " + _wrap_if(node.operands[0], (Operator.AND, Operator.OR))
    raise MalformedExpression(f"Operator {operator.value} has no text form")


def _wrap_if(node: ExpressionNode, operators) -> str:
    text = to_text(node)
    if isinstance(node, Operation) and node.operator in operators:
        return f"({text})"
    return text
