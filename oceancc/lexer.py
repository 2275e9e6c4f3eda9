"""Lexer turning C-like source text into tokens."""

from __future__ import annotations

import enum
from itertools import islice
from typing import Iterator, Optional

from .tokens import IntegerSuffix, ScalarSuffix, Token, TokenType


class LexFlag(enum.IntFlag):
    NONE = 0
    NEWLINE_TOKEN = 1
    BACKSLASH_TOKEN = 2
    FORCE_IDENT = 4


_INT64_MAX = (1 << 63) - 1

_KEYWORDS = {
    "for": TokenType.FOR,
    "while": TokenType.WHILE,
    "do": TokenType.DO,
    "if": TokenType.IF,
    "else": TokenType.ELSE,
    "return": TokenType.RETURN,
    "break": TokenType.BREAK,
    "char": TokenType.T_CHAR,
    "short": TokenType.T_SHORT,
    "int": TokenType.T_INT,
    "long": TokenType.T_LONG,
    "float": TokenType.T_FLOAT,
    "double": TokenType.T_DOUBLE,
    "void": TokenType.T_VOID,
    "const": TokenType.CONST,
    "unsigned": TokenType.T_UNSIGNED,
    "sizeof": TokenType.SIZEOF,
    "__emit": TokenType.EMIT,
    "struct": TokenType.STRUCT,
    "union": TokenType.UNION,
    "typedef": TokenType.TYPEDEF,
    "enum": TokenType.ENUM,
}

# For each lead character, the follow-ups tried in order.
_COMPOUND = {
    "<": (("<", TokenType.LSHIFT), ("=", TokenType.LEQUAL)),
    ">": ((">", TokenType.RSHIFT), ("=", TokenType.GEQUAL)),
    "*": (("=", TokenType.MULTIPLY_ASSIGN),),
    "^": (("=", TokenType.XOR_ASSIGN),),
    "-": (
        (">", TokenType.ARROW),
        ("=", TokenType.MINUS_ASSIGN),
        ("-", TokenType.MINUS_MINUS),
    ),
    "+": (("=", TokenType.PLUS_ASSIGN), ("+", TokenType.PLUS_PLUS)),
    "=": (("=", TokenType.EQUAL),),
    "|": (("=", TokenType.OR_ASSIGN),),
    "%": (("=", TokenType.MOD_ASSIGN),),
    "!": (("=", TokenType.NOT_EQUAL),),
}

_SINGLE = frozenset("\\#{}[]&(?);:,~")

_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\"}


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


def _is_ident_char(ch: str) -> bool:
    return "a" <= ch <= "z" or "A" <= ch <= "Z" or _is_digit(ch) or ch in "$_"


def _digit_value(ch: str) -> Optional[int]:
    if _is_digit(ch):
        return ord(ch) - ord("0")
    if "a" <= ch <= "z":
        return ord(ch) - ord("a") + 10
    if "A" <= ch <= "Z":
        return ord(ch) - ord("A") + 10
    return None


def _wrap_int64(value: int) -> int:
    value &= (1 << 64) - 1
    return value - (1 << 64) if value >= 1 << 63 else value


class Lexer:
    """Reads tokens one at a time from a source string.

    The input is treated as NUL-terminated: reaching its end yields an EOF
    token, after which no more tokens are produced. Malformed input raises
    ValueError.
    """

    def __init__(self, data: str, flags: int = LexFlag.NONE) -> None:
        self._buf = data + "\0"
        self._pos = 0
        self._lineno = 0
        self.flags = LexFlag(flags)

    def _next(self) -> Optional[str]:
        if self._pos >= len(self._buf):
            return None
        ch = self._buf[self._pos]
        self._pos += 1
        return ch

    def _peek(self) -> Optional[str]:
        if self._pos >= len(self._buf):
            return None
        return self._buf[self._pos]

    def _accept(self, expected: str) -> bool:
        if self._peek() == expected:
            self._pos += 1
            return True
        return False

    def next_token(self) -> Optional[Token]:
        """Return the next token, or None once the input is exhausted."""
        start = self._pos
        token = Token(TokenType.INVALID, start=start, character_start=start)
        single_line_comment = False
        multi_line_comment = False
        while True:
            ch = self._next()
            token.lineno = self._lineno + 1
            if ch is None:
                return None
            if ch == "\0":
                token.type = TokenType.EOF
                break
            if multi_line_comment and ch == "*" and self._accept("/"):
                multi_line_comment = False
                continue
            if ch == "\n":
                single_line_comment = False
            if single_line_comment or multi_line_comment:
                continue
            if ch == "\n":
                self._lineno += 1
                if self.flags & LexFlag.NEWLINE_TOKEN:
                    token.type = ord("\n")
                    break
                continue
            if ch == "\t":
                continue
            if ch in " \r":
                token.character_start += 1
                continue
            if ch == "/":
                if self._accept("/"):
                    single_line_comment = True
                    continue
                if self._accept("*"):
                    multi_line_comment = True
                    continue
                token.type = TokenType.DIVIDE_ASSIGN if self._accept("=") else ord("/")
                break
            self._scan(ch, token)
            break
        token.end = self._pos
        return token

    def __iter__(self) -> Iterator[Token]:
        while (token := self.next_token()) is not None:
            yield token

    def _scan(self, ch: str, token: Token) -> None:
        token.type = ord(ch)
        if ch in _COMPOUND:
            for follow, kind in _COMPOUND[ch]:
                if self._accept(follow):
                    token.type = kind
                    return
        elif ch in _SINGLE:
            return
        elif ch == '"':
            self._scan_string(token)
        elif ch == "'":
            self._scan_char(token)
        elif ch == ".":
            saved = self._pos
            if self._next() == "." and self._next() == ".":
                token.type = TokenType.DOT_THREE_TIMES
            else:
                self._pos = saved
        elif ch == "0" and self._accept("x"):
            self._scan_hex(token)
        elif _is_digit(ch):
            self._scan_number(token)
        elif _is_ident_char(ch):
            self._scan_ident(token)
        else:
            token.type = TokenType.INVALID
            raise ValueError(f"unexpected character {ch!r} on line {token.lineno}")

    def _scan_string(self, token: Token) -> None:
        token.type = TokenType.STRING
        token.string = ""
        if self._accept('"'):
            return
        chars = []
        escaped = False
        while (ch := self._peek()) is not None and ch != '"':
            self._pos += 1
            if escaped:
                ch = _ESCAPES.get(ch, ch)
                escaped = False
            if ch == "\\":
                escaped = True
            else:
                chars.append(ch)
        token.string = "".join(chars)
        if not self._accept('"'):
            raise ValueError(f"unterminated string literal on line {token.lineno}")

    def _scan_char(self, token: Token) -> None:
        token.type = TokenType.INTEGER
        if self._accept('"'):
            raise ValueError("empty character constant")
        ch = self._next()
        if ch is None or ch == "\0":
            raise ValueError("unexpected end of file in character constant")
        if ord(ch) > 0xFF:
            raise ValueError(f"character constant {ch!r} does not fit in a byte")
        token.integer = ord(ch)
        if not self._accept("'"):
            raise ValueError("expecting closing ' for character constant")

    def _scan_hex(self, token: Token) -> None:
        token.type = TokenType.INTEGER
        token.is_unsigned = False
        token.integer_suffix = IntegerSuffix.NONE
        value = 0
        while (ch := self._peek()) is not None and (digit := _digit_value(ch)) is not None:
            self._pos += 1
            value = _wrap_int64((value << 4) | (digit & 0xF))
        token.integer = value

    def _scan_number(self, token: Token) -> None:
        self._pos -= 1
        chars = []
        is_int = True
        while (ch := self._peek()) is not None:
            if not (_is_digit(ch) or ch in ".f"):
                break
            self._pos += 1
            if ch == "f":
                is_int = False
                break
            if ch == ".":
                if not is_int:
                    raise ValueError(f"malformed number on line {token.lineno}")
                is_int = False
            chars.append(ch)
        text = "".join(chars)
        if is_int:
            token.type = TokenType.INTEGER
            token.integer = min(int(text), _INT64_MAX)
        else:
            token.type = TokenType.FLOAT
            token.scalar_suffix = ScalarSuffix.NONE
            token.scalar = float(text)

    def _scan_ident(self, token: Token) -> None:
        begin = self._pos - 1
        while (ch := self._peek()) is not None and _is_ident_char(ch):
            self._pos += 1
        text = self._buf[begin:self._pos]
        token.type = TokenType.IDENT
        if not self.flags & LexFlag.FORCE_IDENT:
            token.type = _KEYWORDS.get(text, TokenType.IDENT)
        token.string = text


def tokenize(data: str, flags: int = LexFlag.NONE) -> list[Token]:
    """Tokenize data, producing at most one token per input character."""
    return list(islice(Lexer(data, flags), len(data)))