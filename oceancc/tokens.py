"""Token types and the token record produced by the lexer."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


class TokenType(enum.IntEnum):
    """Named token kinds; single characters use their character code instead."""

    IDENT = 256
    INTEGER = enum.auto()
    STRING = enum.auto()
    FLOAT = enum.auto()
    DOUBLE = enum.auto()

    PLUS_ASSIGN = enum.auto()
    MINUS_ASSIGN = enum.auto()
    MULTIPLY_ASSIGN = enum.auto()
    DIVIDE_ASSIGN = enum.auto()

    AND_ASSIGN = enum.auto()
    OR_ASSIGN = enum.auto()
    XOR_ASSIGN = enum.auto()
    MOD_ASSIGN = enum.auto()

    GEQUAL = enum.auto()
    LEQUAL = enum.auto()

    T_CHAR = enum.auto()
    T_SHORT = enum.auto()
    T_INT = enum.auto()
    T_FLOAT = enum.auto()
    T_DOUBLE = enum.auto()
    T_NUMBER = enum.auto()
    T_VOID = enum.auto()
    T_LONG = enum.auto()
    T_UNSIGNED = enum.auto()

    CONST = enum.auto()
    SIZEOF = enum.auto()

    LSHIFT = enum.auto()
    RSHIFT = enum.auto()
    EQUAL = enum.auto()
    NOT_EQUAL = enum.auto()
    IF = enum.auto()
    ELSE = enum.auto()
    FOR = enum.auto()
    WHILE = enum.auto()
    DO = enum.auto()
    RETURN = enum.auto()
    BREAK = enum.auto()
    LOOP = enum.auto()
    EMIT = enum.auto()
    DOT_THREE_TIMES = enum.auto()
    PLUS_PLUS = enum.auto()
    MINUS_MINUS = enum.auto()
    STRUCT = enum.auto()
    UNION = enum.auto()
    TYPEDEF = enum.auto()
    ARROW = enum.auto()
    ENUM = enum.auto()

    EOF = enum.auto()
    MAX = enum.auto()
    INVALID = -1


class IntegerSuffix(enum.IntEnum):
    NONE = 0
    LONG = 1
    LONG_LONG = 2
    SIZE = 3


class ScalarSuffix(enum.IntEnum):
    NONE = 0
    FLOAT = 1
    LONG_DOUBLE = 2


_TYPE_NAMES = {
    TokenType.IDENT: "ident",
    TokenType.INTEGER: "integer",
    TokenType.STRING: "string",
    TokenType.FLOAT: "float",
    TokenType.DOUBLE: "double",
    TokenType.PLUS_ASSIGN: "+=",
    TokenType.MINUS_ASSIGN: "-=",
    TokenType.MULTIPLY_ASSIGN: "*=",
    TokenType.DIVIDE_ASSIGN: "/=",
    TokenType.AND_ASSIGN: "&=",
    TokenType.OR_ASSIGN: "|=",
    TokenType.XOR_ASSIGN: "^=",
    TokenType.MOD_ASSIGN: "%=",
    TokenType.GEQUAL: ">=",
    TokenType.LEQUAL: "<=",
    TokenType.T_CHAR: "char",
    TokenType.T_SHORT: "short",
    TokenType.T_INT: "int",
    TokenType.T_FLOAT: "float",
    TokenType.T_DOUBLE: "double",
    TokenType.T_NUMBER: "number",
    TokenType.T_VOID: "void",
    TokenType.T_UNSIGNED: "unsigned",
    TokenType.T_LONG: "long",
    TokenType.CONST: "const",
    TokenType.SIZEOF: "sizeof",
    TokenType.LSHIFT: "<<",
    TokenType.RSHIFT: ">>",
    TokenType.EQUAL: "==",
    TokenType.NOT_EQUAL: "!=",
    TokenType.IF: "if",
    TokenType.ELSE: "else",
    TokenType.FOR: "for",
    TokenType.WHILE: "while",
    TokenType.DO: "do",
    TokenType.RETURN: "return",
    TokenType.BREAK: "break",
    TokenType.LOOP: "loop",
    TokenType.EMIT: "emit",
    TokenType.DOT_THREE_TIMES: "...",
    TokenType.PLUS_PLUS: "++",
    TokenType.MINUS_MINUS: "--",
    TokenType.STRUCT: "struct",
    TokenType.UNION: "union",
    TokenType.TYPEDEF: "typedef",
    TokenType.ARROW: "->",
    TokenType.ENUM: "enum",
    TokenType.EOF: "eof",
}


def _is_printable(token_type: int) -> bool:
    return 0x20 <= token_type <= 0x7E


def token_type_to_string(token_type: int) -> Optional[str]:
    """Return the display form of a token type, or None if it has none."""
    if _is_printable(token_type):
        return chr(token_type)
    return _TYPE_NAMES.get(token_type)


@dataclass
class Token:
    """One lexical token with its position in the source buffer."""

    type: int
    string: str = ""
    integer: int = 0
    is_unsigned: bool = False
    integer_suffix: IntegerSuffix = IntegerSuffix.NONE
    scalar: float = 0.0
    scalar_suffix: ScalarSuffix = ScalarSuffix.NONE
    lineno: int = 0
    start: int = 0
    end: int = 0
    character_start: int = 0

    def describe(self) -> str:
        """Describe identifiers, integers and floats; other kinds give ''."""
        if self.type == TokenType.INVALID:
            return "invalid"
        if self.type == TokenType.IDENT:
            return f"type: {_TYPE_NAMES[TokenType.IDENT]}, value: {self.string}"
        if self.type == TokenType.INTEGER:
            return f"type: {_TYPE_NAMES[TokenType.INTEGER]}, value: {self.integer}"
        if self.type == TokenType.FLOAT:
            return f"type: {_TYPE_NAMES[TokenType.FLOAT]}, value: {self.scalar:f}"
        return ""