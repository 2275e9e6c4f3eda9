"""A small C preprocessor: #include, #define, #undef and conditional blocks."""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Mapping, Optional, Sequence

from .lexer import LexFlag, tokenize
from .tokens import Token, TokenType, token_type_to_string

DEFAULT_INCLUDE_PATH = "examples/include/"

_LEX_FLAGS = LexFlag.NEWLINE_TOKEN | LexFlag.BACKSLASH_TOKEN | LexFlag.FORCE_IDENT

_HASH = ord("#")
_NEWLINE = ord("\n")
_BACKSLASH = ord("\\")
_LPAREN = ord("(")
_RPAREN = ord(")")
_COMMA = ord(",")
_LANGLE = ord("<")
_RANGLE = ord(">")

_CONDITIONAL_DIRECTIVES = frozenset({"if", "ifdef", "ifndef"})
_MACRO_ARGUMENT_TYPES = (TokenType.INTEGER, TokenType.STRING, TokenType.IDENT)


class PreprocessError(Exception):
    """Raised when the input cannot be preprocessed."""


@dataclass(frozen=True)
class Define:
    """A macro created by #define."""

    identifier: str
    body: str = ""
    parameters: tuple = ()
    function: bool = False


def _directory_of(path: str) -> str:
    """Everything up to and including the last '/', or '' if there is none."""
    return path[: path.rfind("/") + 1]


def _type_name(token_type: Optional[int]) -> str:
    if token_type is None:
        return "eof"
    if token_type == _NEWLINE:
        return "newline"
    return token_type_to_string(token_type) or str(token_type)


def _lex(text: str) -> List[Token]:
    try:
        return tokenize(text, _LEX_FLAGS)
    except ValueError as err:
        raise PreprocessError(str(err)) from err


def locate_include_file(
    source_dir: Optional[str], include_path: str, include_paths: Iterable[str]
) -> Optional[str]:
    """Find an include file next to the source first, then in the include paths."""
    for base in (source_dir or "", *include_paths):
        candidate = base + include_path
        if os.path.exists(candidate):
            return candidate
    return None


class Preprocessor:
    """Preprocesses one source text; the definitions it ends with stay in ``defines``."""

    def __init__(
        self,
        source: str,
        source_dir: str = "",
        include_paths: Sequence[str] = (),
        defines: Optional[Mapping[str, Define]] = None,
        verbose: bool = False,
    ) -> None:
        self.source = source
        self.source_dir = source_dir
        self.include_paths = tuple(include_paths)
        self.defines = dict(defines) if defines else {}
        self.verbose = verbose
        self._tokens = _lex(source)
        self._index = 0
        self._current: Optional[Token] = None
        self._conditions: List[bool] = []

    # token cursor -------------------------------------------------------

    def _advance(self) -> Optional[Token]:
        if self._index >= len(self._tokens):
            return None
        self._current = self._tokens[self._index]
        self._index += 1
        return self._current

    def _lookahead(self) -> Optional[Token]:
        if self._index >= len(self._tokens):
            return None
        return self._tokens[self._index]

    def _accept(self, token_type: int) -> bool:
        nxt = self._lookahead()
        if nxt is not None and nxt.type == token_type:
            self._advance()
            return True
        return False

    def _expect(self, token_type: int) -> Token:
        if not self._accept(token_type):
            nxt = self._lookahead()
            raise PreprocessError(
                f"expected token '{_type_name(token_type)}', "
                f"got '{_type_name(nxt.type if nxt else None)}'"
            )
        assert self._current is not None
        return self._current

    def _text(self, token: Token) -> str:
        return self.source[token.start:token.end]

    # driver -------------------------------------------------------------

    def run(self) -> str:
        """Return the preprocessed text."""
        out: List[str] = []
        self._index = 0
        self._conditions = []
        while (tk := self._advance()) is not None and tk.type != TokenType.EOF:
            if tk.type == TokenType.IDENT and tk.string == "endif":
                self._end_condition()
                continue
            if not all(self._conditions):
                if tk.type == _HASH:
                    self._skip_directive()
                continue
            if tk.type == TokenType.IDENT and tk.string in self.defines:
                self._expand(self.defines[tk.string], out)
            elif tk.type == _HASH:
                self._directive(out)
            else:
                out.append(self._text(tk))
        return "".join(out)

    def _end_condition(self) -> None:
        if not self._conditions:
            raise PreprocessError("endif without a matching if")
        self._conditions.pop()

    def _skip_directive(self) -> None:
        nxt = self._lookahead()
        if nxt is not None and nxt.type == TokenType.IDENT and nxt.string in _CONDITIONAL_DIRECTIVES:
            self._advance()
            self._conditions.append(False)

    # directives ---------------------------------------------------------

    def _directive(self, out: List[str]) -> None:
        name = self._expect(TokenType.IDENT).string
        if name == "include":
            self._include(out)
        elif name == "define":
            self._define()
        elif name == "ifndef":
            ident = self._expect(TokenType.IDENT).string
            self._conditions.append(ident not in self.defines)
        elif name == "ifdef":
            ident = self._expect(TokenType.IDENT).string
            self._conditions.append(ident in self.defines)
        elif name == "if":
            self._if()
        elif name == "undef":
            ident = self._expect(TokenType.IDENT).string
            self.defines.pop(ident, None)
        elif name == "endif":
            self._end_condition()

    def _if(self) -> None:
        tk = self._advance()
        if tk is None:
            raise PreprocessError("unexpected eof")
        if tk.type == TokenType.INTEGER:
            self._conditions.append(tk.integer != 0)
        elif tk.type == TokenType.IDENT:
            self._conditions.append(tk.string in self.defines)
        else:
            raise PreprocessError("expected integer or ident")

    def _include(self, out: List[str]) -> None:
        tk = self._advance()
        if tk is None or tk.type not in (_LANGLE, TokenType.STRING):
            raise PreprocessError("expected < or string")
        if tk.type == _LANGLE:
            parts = []
            while True:
                t = self._lookahead()
                if t is None:
                    raise PreprocessError("unexpected eof")
                self._advance()
                if t.type == _RANGLE:
                    break
                parts.append(self._text(t))
            path = "".join(parts)
        else:
            path = tk.string

        located = locate_include_file(self.source_dir, path, self.include_paths)
        target = located or path
        if self.verbose:
            print(f"including '{target}'")
        try:
            text = Path(target).read_text(encoding="utf-8")
        except OSError as err:
            raise PreprocessError(f"failed to find include file '{path}'") from err
        child = Preprocessor(text, _directory_of(target), self.include_paths, self.defines, self.verbose)
        out.append(child.run())
        self.defines = child.defines

    def _define(self) -> None:
        ident_token = self._expect(TokenType.IDENT)
        name = ident_token.string
        parameters: List[str] = []
        function = self.source[ident_token.end:ident_token.end + 1] == "("
        if function:
            self._advance()
            while True:
                parameters.append(self._expect(TokenType.IDENT).string)
                if not self._accept(_COMMA):
                    break
            self._expect(_RPAREN)

        body: List[str] = []
        continued = False
        while True:
            t = self._lookahead()
            if t is None or t.type == TokenType.EOF:
                raise PreprocessError("unexpected eof")
            if t.type == _NEWLINE:
                if not continued:
                    self._advance()
                    break
                continued = False
            if t.type == _BACKSLASH:
                continued = True
            else:
                body.append(self._text(t))
            self._advance()
        self.defines[name] = Define(name, "".join(body), tuple(parameters), function)

    # macro expansion ----------------------------------------------------

    def _expand(self, define: Define, out: List[str]) -> None:
        nxt = self._lookahead()
        if not (define.function and nxt is not None and nxt.type == _LPAREN):
            out.append(define.body)
            return
        self._advance()

        args: List[str] = []
        while True:
            tk = self._advance()
            if tk is None or tk.type == TokenType.EOF:
                return
            if tk.type not in _MACRO_ARGUMENT_TYPES:
                raise PreprocessError("expected string, ident or integer")
            args.append(self._text(tk))
            if not self._accept(_COMMA):
                break
        self._expect(_RPAREN)

        for dt in _lex(define.body):
            if dt.type == TokenType.EOF:
                break
            if dt.type == TokenType.IDENT and dt.string in define.parameters:
                index = define.parameters.index(dt.string)
                if index >= len(args):
                    raise PreprocessError(
                        f"macro '{define.identifier}' expects {len(define.parameters)} arguments, "
                        f"got {len(args)}"
                    )
                out.append(" " + args[index])
            else:
                out.append(define.body[dt.start:dt.end])


def preprocess_source(
    source: str,
    source_dir: str = "",
    include_paths: Sequence[str] = (),
    defines: Optional[Mapping[str, Define]] = None,
    verbose: bool = False,
) -> str:
    """Preprocess source text; includes are looked up in source_dir first."""
    return Preprocessor(source, source_dir, include_paths, defines, verbose).run()


def preprocess_file(
    filename: str,
    include_paths: Sequence[str] = (),
    defines: Optional[Mapping[str, Define]] = None,
    verbose: bool = False,
) -> str:
    """Read and preprocess a file. OSError propagates if it cannot be read."""
    filename = str(filename)
    text = Path(filename).read_text(encoding="utf-8")
    try:
        return preprocess_source(text, _directory_of(filename), include_paths, defines, verbose)
    except PreprocessError as err:
        raise PreprocessError(f"failed preprocessing file '{filename}': {err}") from err


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Preprocess a C source file.")
    parser.add_argument("-v", dest="verbose", action="store_true", help="verbose output")
    parser.add_argument("-I", dest="include", action="append", default=[], metavar="PATH",
                        help="add an include path")
    parser.add_argument("source")
    args = parser.parse_args(argv)

    include_paths = [DEFAULT_INCLUDE_PATH]
    for path in args.include:
        if args.verbose:
            print(f"include path: {path}")
        include_paths.append(path)
    if args.verbose:
        print(f"src={args.source}")

    try:
        result = preprocess_file(args.source, include_paths, verbose=args.verbose)
    except OSError:
        print(f"failed to read file '{args.source}'")
        return 1
    except PreprocessError as err:
        print(f"preprocess error: {err}")
        return 1
    print(result)
    return 0