"""A syntax checker for PromQL expressions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field


class PromQLSyntaxError(ValueError):
    """Raised when an expression is not valid PromQL."""


@dataclass(frozen=True)
class Node:
    """A node of the parsed expression tree."""

    kind: str
    value: str | None = None
    children: tuple["Node", ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class _Token:
    kind: str
    value: str
    pos: int


_DURATION_RE = re.compile(r"(?:\d+(?:ms|[smhdwy]))+(?![A-Za-z0-9_:])")
_NUMBER_RE = re.compile(r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_IDENT_RE = re.compile(r"[A-Za-z_:][A-Za-z0-9_:]*")
_OPERATORS = (
    "=~", "!~", "==", "!=", "<=", ">=",
    "=", "<", ">", "+", "-", "*", "/", "%", "^",
    "(", ")", "{", "}", "[", "]", ",", ":", "@",
)

_BINARY_PREC = {
    "or": 1, "and": 2, "unless": 2,
    "==": 3, "!=": 3, "<=": 3, ">=": 3, "<": 3, ">": 3,
    "+": 4, "-": 4,
    "*": 5, "/": 5, "%": 5, "atan2": 5,
    "^": 6,
}
_COMPARISONS = {"==", "!=", "<=", ">=", "<", ">"}
_KEYWORDS = {
    "and", "or", "unless", "atan2", "by", "without", "on", "ignoring",
    "group_left", "group_right", "bool", "offset",
}
_AGGREGATORS = {
    "sum", "avg", "count", "min", "max", "group", "stddev", "stdvar",
    "topk", "bottomk", "count_values", "quantile",
}
_PARAM_AGGREGATORS = {"topk", "bottomk", "count_values", "quantile"}
_FUNCTIONS = {
    "abs", "absent", "absent_over_time", "avg_over_time", "ceil", "changes",
    "clamp", "clamp_max", "clamp_min", "count_over_time", "days_in_month",
    "day_of_month", "day_of_week", "day_of_year", "delta", "deriv", "exp",
    "floor", "histogram_quantile", "holt_winters", "hour", "idelta", "increase",
    "irate", "label_join", "label_replace", "last_over_time", "ln", "log10",
    "log2", "max_over_time", "min_over_time", "minute", "month",
    "predict_linear", "present_over_time", "quantile_over_time", "rate",
    "resets", "round", "scalar", "sgn", "sort", "sort_desc", "sqrt",
    "stddev_over_time", "stdvar_over_time", "sum_over_time", "time",
    "timestamp", "vector", "year", "acos", "acosh", "asin", "asinh", "atan",
    "atanh", "cos", "cosh", "sin", "sinh", "tan", "tanh", "deg", "rad", "pi",
}


def _read_string(text: str, i: int) -> int:
    quote = text[i]
    j = i + 1
    while j < len(text):
        ch = text[j]
        if ch == "\\" and quote != "`":
            j += 2
            continue
        if ch == quote:
            return j + 1
        if ch == "\n" and quote != "`":
            break
        j += 1
    raise PromQLSyntaxError(f"unterminated quoted string at position {i}")


def _tokenize(text: str) -> list[_Token]:
    tokens: list[_Token] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        if ch == "#":
            end = text.find("\n", i)
            i = len(text) if end < 0 else end
            continue
        if ch in "\"'`":
            end = _read_string(text, i)
            tokens.append(_Token("STRING", text[i:end], i))
            i = end
            continue
        match = _DURATION_RE.match(text, i)
        if match:
            tokens.append(_Token("DURATION", match.group(), i))
            i = match.end()
            continue
        match = _NUMBER_RE.match(text, i)
        if match:
            tokens.append(_Token("NUMBER", match.group(), i))
            i = match.end()
            continue
        match = _IDENT_RE.match(text, i)
        if match:
            word = match.group()
            kind = "NUMBER" if word.lower() in ("inf", "nan") else "IDENT"
            tokens.append(_Token(kind, word, i))
            i = match.end()
            continue
        op = next((o for o in _OPERATORS if text.startswith(o, i)), None)
        if op is None:
            raise PromQLSyntaxError(f"unexpected character {ch!r} at position {i}")
        tokens.append(_Token("OP", op, i))
        i += len(op)
    tokens.append(_Token("EOF", "", len(text)))
    return tokens


class _Parser:
    def __init__(self, text: str) -> None:
        self._tokens = _tokenize(text)
        self._pos = 0

    @property
    def _tok(self) -> _Token:
        return self._tokens[self._pos]

    def _peek(self, offset: int = 1) -> _Token:
        return self._tokens[min(self._pos + offset, len(self._tokens) - 1)]

    def _advance(self) -> _Token:
        tok = self._tok
        self._pos += 1
        return tok

    def _is(self, kind: str, value: str | None = None) -> bool:
        return self._tok.kind == kind and (value is None or self._tok.value == value)

    def _expect(self, kind: str, value: str | None = None) -> _Token:
        if not self._is(kind, value):
            wanted = value or kind
            raise PromQLSyntaxError(
                f"unexpected {self._tok.value or 'end of input'!r} at position "
                f"{self._tok.pos}, expected {wanted!r}"
            )
        return self._advance()

    def parse(self) -> Node:
        if self._is("EOF"):
            raise PromQLSyntaxError("no expression found in input")
        node = self._binary(0)
        self._expect("EOF")
        return node

    def _binary_op(self) -> str | None:
        tok = self._tok
        if tok.kind == "OP" and tok.value in _BINARY_PREC:
            return tok.value
        if tok.kind == "IDENT" and tok.value.lower() in ("and", "or", "unless", "atan2"):
            return tok.value.lower()
        return None

    def _binary(self, min_prec: int) -> Node:
        left = self._unary()
        while (op := self._binary_op()) is not None and _BINARY_PREC[op] >= min_prec:
            self._advance()
            prec = _BINARY_PREC[op]
            modifiers = self._binary_modifiers(op)
            right = self._binary(prec if op == "^" else prec + 1)
            left = Node("binary", op, (left, right) + modifiers)
        return left

    def _binary_modifiers(self, op: str) -> tuple[Node, ...]:
        mods: list[Node] = []
        if self._is("IDENT", "bool"):
            if op not in _COMPARISONS:
                raise PromQLSyntaxError("bool modifier can only be used on comparison operators")
            self._advance()
            mods.append(Node("bool"))
        if self._tok.kind == "IDENT" and self._tok.value in ("on", "ignoring"):
            kind = self._advance().value
            mods.append(Node(kind, None, self._label_list()))
            if self._tok.kind == "IDENT" and self._tok.value in ("group_left", "group_right"):
                group = self._advance().value
                labels = self._label_list() if self._is("OP", "(") else ()
                mods.append(Node(group, None, labels))
        return tuple(mods)

    def _label_list(self) -> tuple[Node, ...]:
        self._expect("OP", "(")
        labels: list[Node] = []
        while not self._is("OP", ")"):
            labels.append(Node("label", self._expect("IDENT").value))
            if not self._is("OP", ")"):
                self._expect("OP", ",")
        self._expect("OP", ")")
        return tuple(labels)

    def _unary(self) -> Node:
        if self._tok.kind == "OP" and self._tok.value in ("+", "-"):
            op = self._advance().value
            return Node("unary", op, (self._unary(),))
        return self._postfix(self._primary())

    def _postfix(self, node: Node) -> Node:
        if self._is("OP", "["):
            self._advance()
            rng = self._expect("DURATION").value
            if self._is("OP", ":"):
                self._advance()
                step = self._advance().value if self._is("DURATION") else None
                self._expect("OP", "]")
                node = Node("subquery", f"{rng}:{step or ''}", (node,))
            else:
                self._expect("OP", "]")
                if node.kind != "selector":
                    raise PromQLSyntaxError(
                        "ranges only allowed for vector selectors"
                    )
                node = Node("matrix", rng, (node,))
        while True:
            if self._is("IDENT", "offset"):
                self._advance()
                sign = "-" if self._is("OP", "-") else ""
                if sign:
                    self._advance()
                node = Node("offset", sign + self._expect("DURATION").value, (node,))
            elif self._is("OP", "@"):
                self._advance()
                if self._tok.kind == "IDENT" and self._tok.value in ("start", "end"):
                    at = self._advance().value
                    self._expect("OP", "(")
                    self._expect("OP", ")")
                    node = Node("at", at + "()", (node,))
                else:
                    sign = "-" if self._is("OP", "-") else ""
                    if sign:
                        self._advance()
                    node = Node("at", sign + self._expect("NUMBER").value, (node,))
            else:
                return node

    def _primary(self) -> Node:
        tok = self._tok
        if tok.kind == "NUMBER":
            self._advance()
            return Node("number", tok.value)
        if tok.kind == "STRING":
            self._advance()
            return Node("string", tok.value)
        if self._is("OP", "("):
            self._advance()
            inner = self._binary(0)
            self._expect("OP", ")")
            return Node("paren", None, (inner,))
        if self._is("OP", "{"):
            return Node("selector", None, self._matchers())
        if tok.kind == "IDENT":
            name = tok.value
            if name in _AGGREGATORS and (
                self._peek().value == "(" or self._peek().value in ("by", "without")
            ):
                return self._aggregation()
            if name in _KEYWORDS:
                raise PromQLSyntaxError(f"unexpected keyword {name!r} at position {tok.pos}")
            if self._peek().kind == "OP" and self._peek().value == "(":
                if name not in _FUNCTIONS:
                    raise PromQLSyntaxError(f"unknown function with name {name!r}")
                self._advance()
                return Node("call", name, self._args())
            self._advance()
            matchers = self._matchers() if self._is("OP", "{") else ()
            return Node("selector", name, matchers)
        raise PromQLSyntaxError(
            f"unexpected {tok.value or 'end of input'!r} at position {tok.pos}"
        )

    def _args(self) -> tuple[Node, ...]:
        self._expect("OP", "(")
        args: list[Node] = []
        while not self._is("OP", ")"):
            args.append(self._binary(0))
            if not self._is("OP", ")"):
                self._expect("OP", ",")
        self._expect("OP", ")")
        return tuple(args)

    def _aggregation(self) -> Node:
        name = self._advance().value
        modifier: tuple[Node, ...] = ()
        if self._tok.value in ("by", "without"):
            grouping = self._advance().value
            modifier = (Node(grouping, None, self._label_list()),)
        args = self._args()
        if not modifier and self._tok.kind == "IDENT" and self._tok.value in ("by", "without"):
            grouping = self._advance().value
            modifier = (Node(grouping, None, self._label_list()),)
        expected = 2 if name in _PARAM_AGGREGATORS else 1
        if len(args) != expected:
            raise PromQLSyntaxError(
                f"wrong number of arguments for aggregate expression {name!r}"
            )
        return Node("aggregate", name, args + modifier)

    def _matchers(self) -> tuple[Node, ...]:
        self._expect("OP", "{")
        matchers: list[Node] = []
        while not self._is("OP", "}"):
            label = self._expect("IDENT").value
            op = self._tok
            if op.kind != "OP" or op.value not in ("=", "!=", "=~", "!~"):
                raise PromQLSyntaxError(
                    f"unexpected {op.value or 'end of input'!r} in label matching at position {op.pos}"
                )
            self._advance()
            value = self._expect("STRING").value
            matchers.append(Node("matcher", op.value, (Node("label", label), Node("string", value))))
            if not self._is("OP", "}"):
                self._expect("OP", ",")
        self._expect("OP", "}")
        if not matchers:
            raise PromQLSyntaxError("vector selector must contain at least one matcher")
        return tuple(matchers)


def parse_expr(text: str) -> Node:
    """Parse a PromQL expression, raising PromQLSyntaxError when it is invalid."""
    return _Parser(text).parse()


def is_valid_expr(text: str) -> bool:
    """Tell whether ``text`` is a syntactically valid PromQL expression."""
    try:
        parse_expr(text)
    except PromQLSyntaxError:
        return False
    return True