"""
Arithmetic expressions for service formulas.

Tokenizer -> recursive-descent parser -> AST -> evaluator. Only numbers, names,
+ - * / and parentheses are accepted; names are looked up in a bindings map at
evaluation time, so no text substitution happens before parsing.

Grammar:
    expr   := term (("+" | "-") term)*
    term   := factor (("*" | "/") factor)*
    factor := ("+" | "-") factor | NUMBER | NAME | "(" expr ")"
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from typing import Mapping, Union


class ExpressionError(ValueError):
    """Base class for formula parse and evaluation failures."""


class ExpressionSyntaxError(ExpressionError):
    pass


class UnresolvedIdentifierError(ExpressionError):
    def __init__(self, name: str):
        super().__init__(f"unresolved identifier {name!r}")
        self.name = name


class ExpressionEvaluationError(ExpressionError):
    pass


_TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<number>(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<op>[-+*/()])
    """,
    re.VERBOSE,
)


@dataclass(frozen=True)
class Token:
    kind: str  # "number", "name", "op", "end"
    text: str
    pos: int


def tokenize(text: str) -> list[Token]:
    tokens: list[Token] = []
    pos = 0
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match:
            raise ExpressionSyntaxError(f"unexpected character {text[pos]!r} at position {pos}")
        kind = match.lastgroup
        if kind != "ws":
            tokens.append(Token(kind, match.group(), pos))
        pos = match.end()
    tokens.append(Token("end", "", len(text)))
    return tokens


# AST


@dataclass(frozen=True)
class Number:
    value: float


@dataclass(frozen=True)
class Name:
    id: str


@dataclass(frozen=True)
class UnaryOp:
    op: str
    operand: "Node"


@dataclass(frozen=True)
class BinOp:
    op: str
    left: "Node"
    right: "Node"


Node = Union[Number, Name, UnaryOp, BinOp]

# Parentheses plus unary signs; each level costs the parser a few stack frames
MAX_NESTING = 100


class _Parser:
    def __init__(self, tokens: list[Token]):
        self.tokens = tokens
        self.index = 0
        self.depth = 0

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        tok = self.tokens[self.index]
        self.index += 1
        return tok

    def _at_op(self, *ops: str) -> bool:
        return self.current.kind == "op" and self.current.text in ops

    def parse(self) -> Node:
        if self.current.kind == "end":
            raise ExpressionSyntaxError("empty expression")
        node = self.expr()
        if self.current.kind != "end":
            raise ExpressionSyntaxError(
                f"unexpected {self.current.text!r} at position {self.current.pos}"
            )
        return node

    def expr(self) -> Node:
        node = self.term()
        while self._at_op("+", "-"):
            op = self._advance().text
            node = BinOp(op, node, self.term())
        return node

    def term(self) -> Node:
        node = self.factor()
        while self._at_op("*", "/"):
            op = self._advance().text
            node = BinOp(op, node, self.factor())
        return node

    def _nest(self, tok: Token) -> None:
        self.depth += 1
        if self.depth > MAX_NESTING:
            raise ExpressionSyntaxError(
                f"expression nested more than {MAX_NESTING} levels deep at position {tok.pos}"
            )

    def factor(self) -> Node:
        tok = self.current
        if self._at_op("+", "-"):
            self._advance()
            self._nest(tok)
            node = UnaryOp(tok.text, self.factor())
            self.depth -= 1
            return node
        if tok.kind == "number":
            self._advance()
            return Number(float(tok.text))
        if tok.kind == "name":
            self._advance()
            return Name(tok.text)
        if self._at_op("("):
            self._advance()
            self._nest(tok)
            node = self.expr()
            if not self._at_op(")"):
                raise ExpressionSyntaxError(f"missing ')' at position {self.current.pos}")
            self._advance()
            self.depth -= 1
            return node
        if tok.kind == "end":
            raise ExpressionSyntaxError("unexpected end of expression")
        raise ExpressionSyntaxError(f"unexpected {tok.text!r} at position {tok.pos}")


def parse(text: str) -> Node:
    try:
        return _Parser(tokenize(text)).parse()
    except RecursionError:
        raise ExpressionSyntaxError("expression is nested too deeply") from None


def _apply(op: str, left: float, right: float) -> float:
    if op == "+":
        return left + right
    if op == "-":
        return left - right
    if op == "*":
        return left * right
    if right == 0:
        raise ExpressionEvaluationError("division by zero")
    return left / right


def evaluate_node(node: Node, bindings: Mapping[str, float]) -> float:
    """
    Evaluate an AST against `bindings`.

    Walks the tree with an explicit stack, so long operator chains (which parse to
    deep left-leaning trees) do not hit the interpreter's recursion limit.
    """
    pending: list[tuple[Node, bool]] = [(node, False)]
    values: list[float] = []
    while pending:
        current, operands_done = pending.pop()
        if isinstance(current, Number):
            values.append(current.value)
        elif isinstance(current, Name):
            if current.id not in bindings:
                raise UnresolvedIdentifierError(current.id)
            values.append(float(bindings[current.id]))
        elif isinstance(current, UnaryOp):
            if operands_done:
                value = values.pop()
                values.append(-value if current.op == "-" else value)
            else:
                pending.append((current, True))
                pending.append((current.operand, False))
        elif isinstance(current, BinOp):
            if operands_done:
                right = values.pop()
                left = values.pop()
                values.append(_apply(current.op, left, right))
            else:
                pending.append((current, True))
                pending.append((current.right, False))
                pending.append((current.left, False))
        else:
            raise TypeError(f"not an expression node: {current!r}")
    return values[0]


def evaluate(text: str, bindings: Mapping[str, float] | None = None) -> float:
    """Parse and evaluate `text`; the result is always a finite float."""
    tree = parse(text)
    try:
        result = evaluate_node(tree, bindings or {})
    except ArithmeticError as exc:
        raise ExpressionEvaluationError(str(exc)) from exc
    if not math.isfinite(result):
        raise ExpressionEvaluationError(f"result is not finite: {result}")
    return result


def identifiers(text: str) -> list[str]:
    """Names referenced by `text`, in order of first appearance."""
    seen: dict[str, None] = {}
    for tok in tokenize(text):
        if tok.kind == "name":
            seen.setdefault(tok.text, None)
    return list(seen)


def _format_number(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return repr(float(value))


def substitute(text: str, bindings: Mapping[str, float]) -> str:
    """
    Render `text` with every bound name replaced by its number.

    Used for diagnostics only. Unbound names are left in place; text that does not
    tokenize is returned unchanged.
    """
    try:
        tokens = tokenize(text)
    except ExpressionSyntaxError:
        return text
    out: list[str] = []
    last = 0
    for tok in tokens:
        if tok.kind == "name" and tok.text in bindings:
            out.append(text[last:tok.pos])
            out.append(_format_number(bindings[tok.text]))
            last = tok.pos + len(tok.text)
    out.append(text[last:])
    return "".join(out)
