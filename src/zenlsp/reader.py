"""
Position-preserving reader for zen/EDN source text.

``parse`` turns a document into a tree of :class:`SyntaxNode` objects.  Every
node remembers where it starts and ends in the source (1-based line/column,
end exclusive, plus the 0-based character offset), so that a path of keys and
indices into the *data* can later be mapped back onto a span of *text*.

``read_string`` reads the first form as plain Python data (dicts, lists, sets,
:class:`Keyword`, :class:`Symbol`, ...), which is what the validator consumes.

The reader is forgiving about anything that still tokenizes: maps with a
dangling key, duplicate keys and unknown ``#tags`` are all kept.  Unbalanced
delimiters, unterminated strings and truncated input raise :class:`ParseError`.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from fractions import Fraction
from typing import NamedTuple


class ParseError(Exception):
    """Raised when source text cannot be read into a tree.

    *row* and *col* are 1-based and point at the offending character (or at
    the opening delimiter of an unclosed collection).
    """

    def __init__(self, message: str, row: int, col: int):
        super().__init__(message)
        self.message = message
        self.row = row
        self.col = col


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

def _split_namespace(text: str) -> tuple[str | None, str]:
    # '/' on its own is a valid symbol name
    ns, sep, name = text.partition('/')
    if not sep or not ns or not name:
        return None, text
    return ns, name


@dataclass(frozen=True)
class Symbol:
    text: str

    @property
    def namespace(self) -> str | None:
        return _split_namespace(self.text)[0]

    @property
    def name(self) -> str:
        return _split_namespace(self.text)[1]

    def __str__(self) -> str:
        return self.text


@dataclass(frozen=True)
class Keyword:
    text: str

    @property
    def namespace(self) -> str | None:
        return _split_namespace(self.text)[0]

    @property
    def name(self) -> str:
        return _split_namespace(self.text)[1]

    def __str__(self) -> str:
        return ':' + self.text


# ---------------------------------------------------------------------------
# Syntax tree
# ---------------------------------------------------------------------------

class Position(NamedTuple):
    line: int    # 1-based
    col: int     # 1-based
    offset: int  # 0-based


class NodeKind(str, Enum):
    DOCUMENT = 'document'
    MAP = 'map'
    VECTOR = 'vector'
    LIST = 'list'
    SET = 'set'
    SCALAR = 'scalar'
    TAGGED = 'tagged'   # #tag form
    META = 'meta'       # ^meta form
    QUOTE = 'quote'     # 'form


_SEQUENTIAL = (NodeKind.DOCUMENT, NodeKind.VECTOR, NodeKind.LIST, NodeKind.SET)
_WRAPPERS = (NodeKind.TAGGED, NodeKind.META, NodeKind.QUOTE)


@dataclass(eq=False)
class SyntaxNode:
    kind: NodeKind
    start: Position
    end: Position               # exclusive
    forms: list[SyntaxNode] = field(default_factory=list)
    value: object = None        # scalar value, or the tag symbol of a TAGGED node

    @property
    def is_collection(self) -> bool:
        return self.kind in (NodeKind.MAP, *_SEQUENTIAL)

    @property
    def children(self) -> list[tuple[object, SyntaxNode]]:
        """Ordered ``(key_or_index, node)`` pairs.

        Map entries are keyed by the value of their key form; a trailing key
        without a value contributes no entry.  Sequences (and the document)
        are keyed by position.
        """
        if self.kind == NodeKind.MAP:
            return [
                (key.key_value(), val)
                for key, val in zip(self.forms[0::2], self.forms[1::2])
            ]
        if self.kind in _SEQUENTIAL:
            return list(enumerate(self.forms))
        return []

    def child(self, key) -> SyntaxNode | None:
        """Return the first child stored under *key*, or None."""
        for k, node in self.children:
            if type(k) is type(key) and k == key:
                return node
        return None

    def unwrap(self) -> SyntaxNode:
        """Strip ``#tag``, ``^meta`` and quote wrappers."""
        node = self
        while node.kind in _WRAPPERS and node.forms:
            node = node.forms[-1]
        return node

    def to_value(self):
        """Return the plain Python data this node reads as."""
        kind = self.kind
        if kind == NodeKind.SCALAR:
            return self.value
        if kind in _WRAPPERS:
            return self.unwrap().to_value() if self.forms else None
        if kind == NodeKind.MAP:
            result = {}
            for key, val in self.children:
                result.setdefault(key, val.to_value())
            return result
        if kind == NodeKind.SET:
            return {form.key_value() for form in self.forms}
        if kind == NodeKind.DOCUMENT:
            return self.forms[0].to_value() if self.forms else None
        return [form.to_value() for form in self.forms]

    def key_value(self):
        """Like :meth:`to_value`, but always hashable (usable as a map key)."""
        node = self.unwrap()
        if node.kind == NodeKind.SCALAR:
            return node.value
        if node.kind == NodeKind.MAP:
            return frozenset((k, v.key_value()) for k, v in node.children)
        if node.kind == NodeKind.SET:
            return frozenset(form.key_value() for form in node.forms)
        return tuple(form.key_value() for form in node.forms)


# ---------------------------------------------------------------------------
# Reader
# ---------------------------------------------------------------------------

_WHITESPACE = frozenset(' \t\r\n,\f')
_CLOSERS = frozenset(')]}')
_TOKEN_END = _WHITESPACE | frozenset('()[]{}";')

_COLLECTIONS = {
    '(': (NodeKind.LIST, ')'),
    '[': (NodeKind.VECTOR, ']'),
    '{': (NodeKind.MAP, '}'),
}

_STRING_ESCAPES = {
    't': '\t', 'r': '\r', 'n': '\n', 'b': '\b', 'f': '\f',
    '\\': '\\', '"': '"',
}

_NAMED_CHARS = {
    'newline': '\n', 'space': ' ', 'tab': '\t', 'return': '\r',
    'backspace': '\b', 'formfeed': '\f',
}

_SYMBOLIC_VALUES = {
    'Inf': float('inf'), '-Inf': float('-inf'), 'NaN': float('nan'),
}

_INT_RE = re.compile(r'([+-]?)(0[xX][0-9a-fA-F]+|\d+)N?')
_RATIO_RE = re.compile(r'[+-]?\d+/\d+')
_FLOAT_RE = re.compile(r'[+-]?\d+(\.\d*)?([eE][+-]?\d+)?M?')
_HEX4_RE = re.compile(r'[0-9a-fA-F]{4}')


def _scalar_value(token: str, line: int, col: int):
    if token == 'nil':
        return None
    if token == 'true':
        return True
    if token == 'false':
        return False

    m = _INT_RE.fullmatch(token)
    if m:
        sign, digits = m.groups()
        base = 16 if digits[:2] in ('0x', '0X') else 10
        number = int(digits[2:] if base == 16 else digits, base)
        return -number if sign == '-' else number
    if _RATIO_RE.fullmatch(token):
        try:
            return Fraction(token)
        except ZeroDivisionError:
            raise ParseError(f'Invalid number: {token}', line, col)
    if _FLOAT_RE.fullmatch(token) and ('.' in token or 'e' in token.lower() or token.endswith('M')):
        if token.endswith('M'):
            return Decimal(token[:-1])
        return float(token)

    if token.startswith(':'):
        if len(token) == 1 or token.endswith('/'):
            raise ParseError(f'Invalid keyword: {token}', line, col)
        return Keyword(token[1:])
    if token[0].isdigit() or (token[0] in '+-' and token[1:2].isdigit()):
        raise ParseError(f'Invalid number: {token}', line, col)
    return Symbol(token)


class _Reader:
    def __init__(self, text: str):
        self.text = text
        self.pos = 0
        self.line = 1
        self.col = 1

    # -- low level ---------------------------------------------------------

    def position(self) -> Position:
        return Position(self.line, self.col, self.pos)

    def _eof(self) -> bool:
        return self.pos >= len(self.text)

    def _peek(self, ahead: int = 0) -> str:
        i = self.pos + ahead
        return self.text[i] if i < len(self.text) else ''

    def _advance(self) -> str:
        ch = self.text[self.pos]
        self.pos += 1
        if ch == '\n':
            self.line += 1
            self.col = 1
        else:
            self.col += 1
        return ch

    def _skip_blank(self) -> None:
        while not self._eof():
            ch = self.text[self.pos]
            if ch in _WHITESPACE:
                self._advance()
            elif ch == ';':
                while not self._eof() and self.text[self.pos] != '\n':
                    self._advance()
            else:
                break

    def _read_token(self) -> str:
        begin = self.pos
        while not self._eof() and self.text[self.pos] not in _TOKEN_END:
            self._advance()
        return self.text[begin:self.pos]

    # -- forms -------------------------------------------------------------

    def read_all(self) -> list[SyntaxNode]:
        return self._read_forms(closing=None, opened_at=None)

    def _read_forms(self, closing: str | None, opened_at: Position | None) -> list[SyntaxNode]:
        forms: list[SyntaxNode] = []
        while True:
            self._skip_blank()
            if self._eof():
                if closing is not None:
                    raise ParseError(
                        f'Found an opening delimiter with no matching {closing}',
                        opened_at.line, opened_at.col,
                    )
                return forms
            ch = self.text[self.pos]
            if ch in _CLOSERS:
                if ch == closing:
                    return forms
                raise ParseError(f'Unmatched delimiter: {ch}', self.line, self.col)
            form = self._read_form()
            if form is not None:
                forms.append(form)

    def _read_required(self, what: str, started_at: Position) -> SyntaxNode:
        """Read the next form, skipping discards; it must exist."""
        while True:
            self._skip_blank()
            if self._eof():
                raise ParseError(f'EOF while reading {what}', started_at.line, started_at.col)
            if self.text[self.pos] in _CLOSERS:
                raise ParseError(
                    f'Unexpected {self.text[self.pos]} while reading {what}',
                    self.line, self.col,
                )
            form = self._read_form()
            if form is not None:
                return form

    def _read_form(self) -> SyntaxNode | None:
        """Read one form at the current position; None for ``#_`` discards."""
        ch = self.text[self.pos]
        if ch in _COLLECTIONS:
            kind, closing = _COLLECTIONS[ch]
            return self._read_collection(kind, 1, closing)
        if ch == '"':
            return self._read_string()
        if ch == '\\':
            return self._read_char()
        if ch == '#':
            return self._read_dispatch()
        if ch == '^':
            start = self.position()
            self._advance()
            meta = self._read_required('metadata', start)
            target = self._read_required('metadata target', start)
            return SyntaxNode(NodeKind.META, start, self.position(), [meta, target])
        if ch == "'":
            start = self.position()
            self._advance()
            quoted = self._read_required('quoted form', start)
            return SyntaxNode(NodeKind.QUOTE, start, self.position(), [quoted])

        start = self.position()
        token = self._read_token()
        value = _scalar_value(token, start.line, start.col)
        return SyntaxNode(NodeKind.SCALAR, start, self.position(), value=value)

    def _read_collection(self, kind: NodeKind, opening_len: int, closing: str) -> SyntaxNode:
        start = self.position()
        for _ in range(opening_len):
            self._advance()
        forms = self._read_forms(closing, start)
        self._advance()
        return SyntaxNode(kind, start, self.position(), forms)

    def _read_string(self, regex: bool = False) -> SyntaxNode:
        start = self.position()
        if regex:
            self._advance()  # '#'
        self._advance()      # '"'
        buf: list[str] = []
        while True:
            if self._eof():
                raise ParseError('EOF while reading string', start.line, start.col)
            ch = self._advance()
            if ch == '"':
                break
            if ch != '\\':
                buf.append(ch)
                continue
            if self._eof():
                raise ParseError('EOF while reading string', start.line, start.col)
            esc_line, esc_col = self.line, self.col - 1
            esc = self._advance()
            if regex:
                buf.append('\\' + esc)
            elif esc in _STRING_ESCAPES:
                buf.append(_STRING_ESCAPES[esc])
            elif esc == 'u':
                digits = self.text[self.pos:self.pos + 4]
                if not _HEX4_RE.fullmatch(digits):
                    raise ParseError(f'Invalid unicode escape: \\u{digits}', esc_line, esc_col)
                buf.append(chr(int(digits, 16)))
                for _ in digits:
                    self._advance()
            else:
                raise ParseError(f'Unsupported escape character: \\{esc}', esc_line, esc_col)
        return SyntaxNode(NodeKind.SCALAR, start, self.position(), value=''.join(buf))

    def _read_char(self) -> SyntaxNode:
        start = self.position()
        self._advance()  # '\\'
        if self._eof():
            raise ParseError('EOF while reading character', start.line, start.col)
        first = self._advance()
        name = first + self._read_token()
        if len(name) == 1:
            value = name
        elif name in _NAMED_CHARS:
            value = _NAMED_CHARS[name]
        elif name.startswith('u') and len(name) == 5:
            try:
                value = chr(int(name[1:], 16))
            except ValueError:
                raise ParseError(f'Unsupported character: \\{name}', start.line, start.col)
        else:
            raise ParseError(f'Unsupported character: \\{name}', start.line, start.col)
        return SyntaxNode(NodeKind.SCALAR, start, self.position(), value=value)

    def _read_dispatch(self) -> SyntaxNode | None:
        start = self.position()
        nxt = self._peek(1)
        if nxt == '{':
            return self._read_collection(NodeKind.SET, 2, '}')
        if nxt == '"':
            return self._read_string(regex=True)
        if nxt == '_':
            self._advance()
            self._advance()
            self._read_required('discarded form', start)
            return None
        if nxt == '#':
            self._advance()
            self._advance()
            token = self._read_token()
            if token not in _SYMBOLIC_VALUES:
                raise ParseError(f'Unknown symbolic value: ##{token}', start.line, start.col)
            return SyntaxNode(NodeKind.SCALAR, start, self.position(), value=_SYMBOLIC_VALUES[token])
        if nxt == '' or nxt in _TOKEN_END:
            raise ParseError('Invalid dispatch character', start.line, start.col)

        self._advance()  # '#'
        tag = self._read_token()
        target = self._read_required(f'#{tag}', start)
        return SyntaxNode(NodeKind.TAGGED, start, self.position(), [target], value=Symbol(tag))


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse(text: str) -> SyntaxNode:
    """Parse *text* into a DOCUMENT node spanning the whole input.

    Raises :class:`ParseError` if the text cannot be read.
    """
    reader = _Reader(text)
    forms = reader.read_all()
    return SyntaxNode(NodeKind.DOCUMENT, Position(1, 1, 0), reader.position(), forms)


def read_string(text: str):
    """Return the first form of *text* as Python data (None for empty input)."""
    return parse(text).to_value()
