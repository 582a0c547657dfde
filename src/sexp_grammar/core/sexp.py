"""
S-expression values.

An atom is a ``str``; a list is a ``list`` (or ``tuple``) of S-expressions.
This module reads and prints the usual text syntax::

    (config (name "my app") (port 8080) (debug true)) ; comment
"""

from __future__ import annotations

import re
from typing import Union

from .errors import SexpParseError

Sexp = Union[str, list["Sexp"], tuple["Sexp", ...]]

_BARE_ATOM_RE = re.compile(r'[^\s()";]+')
_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "t": "\t", "r": "\r"}
_NEEDS_QUOTES_RE = re.compile(r'[\s()";\\]')


def is_atom(value: object) -> bool:
    return isinstance(value, str)


def is_list(value: object) -> bool:
    return isinstance(value, list | tuple)


def parse_sexps(source: str) -> list[Sexp]:
    """Parse every S-expression in ``source``."""
    parser = _Parser(source)
    result = []
    while True:
        parser.skip_blank()
        if parser.at_end():
            return result
        result.append(parser.read())


def parse_sexp(source: str) -> Sexp:
    """Parse exactly one S-expression.

    Raises:
        SexpParseError: On malformed input or when there is not exactly one value.
    """
    parser = _Parser(source)
    parser.skip_blank()
    if parser.at_end():
        raise SexpParseError("Expected an S-expression", parser.pos)
    value = parser.read()
    parser.skip_blank()
    if not parser.at_end():
        raise SexpParseError("Unexpected trailing input", parser.pos)
    return value


class _Parser:
    """Reader over a source string.

    Lists are read with an explicit stack, so nesting depth is not limited
    by the Python stack.
    """

    def __init__(self, source: str) -> None:
        self.source = source
        self.pos = 0

    def at_end(self) -> bool:
        return self.pos >= len(self.source)

    def skip_blank(self) -> None:
        source = self.source
        while self.pos < len(source):
            c = source[self.pos]
            if c.isspace():
                self.pos += 1
            elif c == ";":
                newline = source.find("\n", self.pos)
                self.pos = len(source) if newline == -1 else newline + 1
            else:
                return

    def read(self) -> Sexp:
        # Open lists: (position of the '(', items read so far)
        stack: list[tuple[int, list[Sexp]]] = []
        while True:
            if stack:
                self.skip_blank()
                if self.at_end():
                    raise SexpParseError("Unterminated list", stack[-1][0])
            c = self.source[self.pos]
            if c == "(":
                stack.append((self.pos, []))
                self.pos += 1
                continue
            if c == ")":
                if not stack:
                    raise SexpParseError("Unbalanced ')'", self.pos)
                self.pos += 1
                value: Sexp = stack.pop()[1]
            elif c == '"':
                value = self._read_string()
            else:
                m = _BARE_ATOM_RE.match(self.source, self.pos)
                assert m is not None
                self.pos = m.end()
                value = m.group(0)
            if not stack:
                return value
            stack[-1][1].append(value)

    def _read_string(self) -> str:
        start = self.pos
        self.pos += 1
        chars: list[str] = []
        source = self.source
        while self.pos < len(source):
            c = source[self.pos]
            if c == '"':
                self.pos += 1
                return "".join(chars)
            if c == "\\":
                if self.pos + 1 >= len(source):
                    break
                escaped = source[self.pos + 1]
                if escaped not in _ESCAPES:
                    raise SexpParseError(f"Unknown escape '\\{escaped}'", self.pos)
                chars.append(_ESCAPES[escaped])
                self.pos += 2
                continue
            chars.append(c)
            self.pos += 1
        raise SexpParseError("Unterminated string", start)


def _quote(atom: str) -> str:
    if atom and not _NEEDS_QUOTES_RE.search(atom):
        return atom
    escaped = (
        atom.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def to_string(value: Sexp) -> str:
    """Print an S-expression on one line."""
    parts: list[str] = []
    # Pending work, last first: values to print or literal text
    todo: list[Sexp | _Text] = [value]
    while todo:
        item = todo.pop()
        if isinstance(item, _Text):
            parts.append(item.text)
        elif isinstance(item, str):
            parts.append(_quote(item))
        else:
            parts.append("(")
            todo.append(_CLOSE)
            for index in range(len(item) - 1, -1, -1):
                todo.append(item[index])
                if index:
                    todo.append(_SPACE)
    return "".join(parts)


class _Text:
    __slots__ = ("text",)

    def __init__(self, text: str) -> None:
        self.text = text


_CLOSE = _Text(")")
_SPACE = _Text(" ")
