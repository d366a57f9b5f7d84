"""Expression language for calculated columns configured in YAML.

An expression reads values out of the merged attribute map of one row:

    Quantity * [Price Act]
    [Unit Cost] * Quantity + 1.5
    Status == 'open' and Quantity > 0

Column names that are not plain identifiers go in square brackets.
"""
from __future__ import annotations

import re
from typing import Any, List, Mapping, NamedTuple, Optional, Set

from factview.errors import FactViewUserError

_TOKEN_RE = re.compile(
    r"""
      (?P<ws>\s+)
    | (?P<num>\d+\.\d*|\.\d+|\d+)
    | (?P<str>'(?:\\.|[^'\\])*'|"(?:\\.|[^"\\])*")
    | (?P<bracket>\[[^\]]*\])
    | (?P<op>==|!=|>=|<=|[-+*/<>()])
    | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)
_LITERALS = {"true": True, "false": False, "null": None}
_WORD_OPS = {"and", "or", "not"}

# lowest binding first; comparisons do not chain
_LEVELS = (
    (("or",), "or"),
    (("and",), "and"),
    (("==", "!=", ">=", "<=", ">", "<"), "cmp"),
    (("+", "-"), "bin"),
    (("*", "/"), "bin"),
)


class Token(NamedTuple):
    kind: str  # NUM, STR, LIT, NAME, OP, END
    value: Any
    pos: int


def _caret(src: str, pos: int) -> str:
    return f"At position {pos}: {src}\n" + (" " * pos) + "^"


def _parse_error(src: str, message: str, pos: int) -> FactViewUserError:
    return FactViewUserError("E_EXPR_PARSE", message, hint=_caret(src, pos))


def tokenize(src: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    while pos < len(src):
        m = _TOKEN_RE.match(src, pos)
        if m is None:
            ch = src[pos]
            if ch in "'\"":
                raise _parse_error(src, "Unterminated string literal.", pos)
            if ch == "[":
                raise _parse_error(src, "Unterminated [column name].", pos)
            raise _parse_error(src, f"Unexpected character {ch!r}.", pos)

        kind, text = m.lastgroup, m.group()
        if kind == "num":
            tokens.append(Token("NUM", float(text) if "." in text else int(text), pos))
        elif kind == "str":
            tokens.append(Token("STR", re.sub(r"\\(.)", r"\1", text[1:-1]), pos))
        elif kind == "bracket":
            name = text[1:-1].strip()
            if not name:
                raise _parse_error(src, "Empty [] column reference.", pos)
            tokens.append(Token("NAME", name, pos))
        elif kind == "op":
            tokens.append(Token("OP", text, pos))
        elif kind == "word":
            low = text.lower()
            if low in _LITERALS:
                tokens.append(Token("LIT", _LITERALS[low], pos))
            elif low in _WORD_OPS:
                tokens.append(Token("OP", low, pos))
            else:
                tokens.append(Token("NAME", text, pos))
        pos = m.end()

    tokens.append(Token("END", None, len(src)))
    return tokens


class _Parser:
    """Precedence-climbing parser producing tuple nodes:

    ("lit", v) ("col", name) ("neg", x) ("not", x) ("and"|"or", l, r)
    ("bin"|"cmp", op, l, r)
    """

    def __init__(self, src: str):
        self.src = src
        self.tokens = tokenize(src)
        self.i = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.i]

    def take(self, *ops: str) -> Optional[Token]:
        tok = self.current
        if tok.kind == "OP" and tok.value in ops:
            self.i += 1
            return tok
        return None

    def parse(self) -> Any:
        node = self.binary(0)
        tok = self.current
        if tok.kind != "END":
            raise _parse_error(self.src, f"Unexpected {tok.value!r} after a complete expression.", tok.pos)
        return node

    def binary(self, level: int) -> Any:
        if level == len(_LEVELS):
            return self.unary()
        ops, tag = _LEVELS[level]
        node = self.binary(level + 1)
        while True:
            tok = self.take(*ops)
            if tok is None:
                return node
            rhs = self.binary(level + 1)
            if tag in ("and", "or"):
                node = (tag, node, rhs)
            else:
                node = (tag, tok.value, node, rhs)
            if tag == "cmp":
                return node

    def unary(self) -> Any:
        tok = self.take("not", "-")
        if tok is None:
            return self.atom()
        return ("not" if tok.value == "not" else "neg", self.unary())

    def atom(self) -> Any:
        tok = self.current
        if self.take("("):
            node = self.binary(0)
            if self.take(")") is None:
                raise _parse_error(self.src, "Missing ')'.", self.current.pos)
            return node
        if tok.kind in ("NUM", "STR", "LIT"):
            self.i += 1
            return ("lit", tok.value)
        if tok.kind == "NAME":
            self.i += 1
            return ("col", tok.value)
        found = "the end of the expression" if tok.kind == "END" else repr(tok.value)
        raise _parse_error(self.src, f"Expected a value but found {found}.", tok.pos)


def _looks_number(v: Any) -> bool:
    if v is None or isinstance(v, bool):
        return False
    if isinstance(v, (int, float)):
        return True
    if isinstance(v, str):
        s = v.strip()
        if s == "":
            return False
        try:
            float(s)
            return True
        except ValueError:
            return False
    return False


def _to_number(v: Any):
    if isinstance(v, (int, float)):
        return v
    s = str(v).strip()
    try:
        return int(s)
    except ValueError:
        return float(s)


def _columns(node: Any, out: Set[str]) -> Set[str]:
    if isinstance(node, tuple):
        if node[0] == "col":
            out.add(node[1])
        else:
            for child in node[1:]:
                _columns(child, out)
    return out


class Formula:
    """A compiled expression, callable with a row's attribute map.

    Arithmetic coerces number-looking text. A missing attribute or null operand
    makes the arithmetic result null; a type mismatch raises ``E_EXPR_TYPE``.
    """

    def __init__(self, expr: str):
        if not isinstance(expr, str) or not expr.strip():
            raise FactViewUserError(
                "E_EXPR_PARSE",
                "Expression must be a non-empty string.",
                hint="Example: expr: 'Quantity * [Price Act]'",
            )
        self.expr = expr
        self._ast = _Parser(expr).parse()

    @property
    def columns(self) -> Set[str]:
        """Attribute names referenced by the expression."""
        return _columns(self._ast, set())

    def __call__(self, row: Mapping[str, Any]) -> Any:
        return self._eval(self._ast, row)

    def __repr__(self) -> str:
        return f"Formula({self.expr!r})"

    def _eval(self, node: Any, row: Mapping[str, Any]) -> Any:
        tag = node[0]
        if tag == "lit":
            return node[1]
        if tag == "col":
            return row.get(node[1])
        if tag == "neg":
            v = self._eval(node[1], row)
            if v is None:
                return None
            if _looks_number(v):
                return -_to_number(v)
            raise FactViewUserError(
                "E_EXPR_TYPE",
                f"Cannot apply unary '-' to {v!r}.",
                hint="Only numbers (or number-looking text) can be negated.",
            )
        if tag == "bin":
            _, opx, left, right = node
            a = self._eval(left, row)
            b = self._eval(right, row)
            if a is None or b is None:
                return None
            if _looks_number(a) and _looks_number(b):
                an = _to_number(a)
                bn = _to_number(b)
                if opx == "+":
                    return an + bn
                if opx == "-":
                    return an - bn
                if opx == "*":
                    return an * bn
                return an / bn
            if opx == "+" and isinstance(a, str) and isinstance(b, str):
                return a + b
            raise FactViewUserError(
                "E_EXPR_TYPE",
                f"Type mismatch in expression: {a!r} {opx} {b!r}.",
                hint="Arithmetic needs numbers; '+' also joins two text values.",
            )
        if tag == "cmp":
            _, opx, left, right = node
            a = self._eval(left, row)
            b = self._eval(right, row)
            if _looks_number(a) and _looks_number(b):
                a, b = _to_number(a), _to_number(b)
            if opx == "==":
                return a == b
            if opx == "!=":
                return a != b
            if a is None or b is None:
                return False
            if type(a) is not type(b) and not (_looks_number(a) and _looks_number(b)):
                raise FactViewUserError(
                    "E_EXPR_TYPE",
                    f"Type mismatch in comparison: {a!r} {opx} {b!r}.",
                    hint="Compare numbers with numbers and text with text.",
                )
            if opx == ">":
                return a > b
            if opx == ">=":
                return a >= b
            if opx == "<":
                return a < b
            return a <= b
        if tag == "and":
            return bool(self._eval(node[1], row)) and bool(self._eval(node[2], row))
        if tag == "or":
            return bool(self._eval(node[1], row)) or bool(self._eval(node[2], row))
        if tag == "not":
            return not bool(self._eval(node[1], row))

        raise FactViewUserError(
            "E_EXPR_UNSUPPORTED",
            "Unsupported construct in expression.",
            hint="Use literals, column names, + - * /, comparisons, and/or/not, and parentheses.",
        )


