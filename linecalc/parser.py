"""
Tokenizer and recursive descent parser for calculator lines.

Grammar (precedence low to high):
    line        → EMPTY | IDENT "=" additive | additive
    additive    → multiply (("+"|"-") multiply | ("in"|"to") target)*
    multiply    → unary (("*"|"/") unary)*
    unary       → ("-"|"+")* power
    power       → primary ("^" unary)?
    primary     → NUMBER "%" "of" unary
                | NUMBER "%"
                | NUMBER (SYMBOL | currency | unit | IDENT)?
                | (SYMBOL | currency) NUMBER
                | IDENT "(" (additive ("," additive)*)? ")"
                | IDENT
                | "(" additive ")"
    target      → IDENT | SYMBOL

A line that does not parse is retried from each later character offset,
so leading prose such as "rent: $1200" still yields an expression.
"""

import logging
import re
from contextlib import contextmanager
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import List, Optional, Tuple

from linecalc.currency import Currency, currency_symbols, letter_symbols
from linecalc.syntax import (
    Assignment,
    Ast,
    BinaryOp,
    CompoundUnitLiteral,
    Conversion,
    CurrencyLiteral,
    EmptyLine,
    Expr,
    Expression,
    FunctionCall,
    NumberLiteral,
    Op,
    PercentageLiteral,
    PercentageOf,
    UnitLiteral,
    Variable,
)
from linecalc.units import parse_unit, unit_registry

logger = logging.getLogger(__name__)

PARSE_FAILURE = "Parse error: Could not understand line"

# Parentheses, call arguments and exponents open a nesting level each
MAX_NESTING = 64


class TokenKind(Enum):
    NUMBER = "number"
    PERCENT = "%"
    IDENT = "identifier"
    SYMBOL = "currency symbol"
    PLUS = "+"
    MINUS = "-"
    STAR = "*"
    SLASH = "/"
    CARET = "^"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    EQUALS = "="
    EOF = "end of line"


class Token:
    __slots__ = ("kind", "value", "pos")

    def __init__(self, kind: TokenKind, value: str, pos: int):
        self.kind = kind
        self.value = value
        self.pos = pos

    def __repr__(self):
        return f"Token({self.kind.name}, {self.value!r}, pos={self.pos})"


class ParseError(Exception):
    def __init__(self, message: str, pos: int = 0):
        super().__init__(message)
        self.pos = pos


_OPERATORS = {
    "+": TokenKind.PLUS,
    "-": TokenKind.MINUS,
    "−": TokenKind.MINUS,
    "*": TokenKind.STAR,
    "×": TokenKind.STAR,
    "/": TokenKind.SLASH,
    "÷": TokenKind.SLASH,
    "^": TokenKind.CARET,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    ",": TokenKind.COMMA,
    "=": TokenKind.EQUALS,
    "%": TokenKind.PERCENT,
}

# Group separators are "," or a single space before exactly three digits
_NUMBER_RE = re.compile(r"[0-9]{1,3}(?:[, ][0-9]{3}(?![0-9]))+(?:\.[0-9]+)?|[0-9]+(?:\.[0-9]+)?|\.[0-9]+")
# Inside call arguments a comma separates arguments instead
_ARGUMENT_NUMBER_RE = re.compile(r"[0-9]{1,3}(?: [0-9]{3}(?![0-9]))+(?:\.[0-9]+)?|[0-9]+(?:\.[0-9]+)?|\.[0-9]+")
_IDENT_RE = re.compile(r"°?[^\W\d]\w*")

KEYWORDS = frozenset({"in", "to", "of"})


def is_keyword(word: str) -> bool:
    return word.lower() in KEYWORDS


@lru_cache(maxsize=None)
def _symbols() -> Tuple[Tuple[str, ...], Tuple[str, ...]]:
    return tuple(currency_symbols()), tuple(letter_symbols())


@lru_cache(maxsize=None)
def _slashed_unit_names() -> frozenset:
    return frozenset(
        alias
        for definition in unit_registry()
        for alias in definition.aliases
        if "/" in alias
    )


def _match_symbol(line: str, pos: int) -> Optional[str]:
    symbols, letters = _symbols()
    for symbol in symbols:
        if line.startswith(symbol, pos):
            return symbol
    char = line[pos]
    if char in letters:
        following = line[pos + 1 : pos + 2]
        if not following.isalpha():
            return char
    return None


def tokenize(line: str) -> List[Token]:
    tokens: List[Token] = []
    # One entry per open parenthesis: True when it opened a call
    parens: List[bool] = []
    pos = 0
    length = len(line)

    while pos < length:
        char = line[pos]

        if char.isspace():
            pos += 1
            continue

        if char == "#" or line.startswith("//", pos):
            break

        symbol = _match_symbol(line, pos)
        if symbol:
            tokens.append(Token(TokenKind.SYMBOL, symbol, pos))
            pos += len(symbol)
            continue

        number_re = _ARGUMENT_NUMBER_RE if parens and parens[-1] else _NUMBER_RE
        match = number_re.match(line, pos)
        if match:
            text = match.group().replace(",", "").replace(" ", "")
            tokens.append(Token(TokenKind.NUMBER, text, pos))
            pos = match.end()
            continue

        match = _IDENT_RE.match(line, pos)
        if match:
            text, end = match.group(), match.end()
            if line[end : end + 1] == "/":
                denominator = _IDENT_RE.match(line, end + 1)
                if denominator:
                    combined = f"{text}/{denominator.group()}"
                    if combined.lower() in _slashed_unit_names():
                        text, end = combined, denominator.end()
            tokens.append(Token(TokenKind.IDENT, text, pos))
            pos = end
            continue

        kind = _OPERATORS.get(char)
        if kind is None:
            raise ParseError(f"Unexpected character '{char}'", pos)
        if kind == TokenKind.LPAREN:
            parens.append(bool(tokens) and tokens[-1].kind == TokenKind.IDENT)
        elif kind == TokenKind.RPAREN and parens:
            parens.pop()
        tokens.append(Token(kind, char, pos))
        pos += 1

    tokens.append(Token(TokenKind.EOF, "", length))
    return tokens


def _to_decimal(token: Token) -> Decimal:
    # The number patterns only admit valid decimal text
    return Decimal(token.value)


def _negate(expr: Expr) -> Expr:
    if isinstance(expr, NumberLiteral):
        return NumberLiteral(-expr.value)
    if isinstance(expr, PercentageLiteral):
        return PercentageLiteral(-expr.value)
    if isinstance(expr, CurrencyLiteral):
        return CurrencyLiteral(-expr.amount, expr.currency)
    if isinstance(expr, UnitLiteral):
        return UnitLiteral(-expr.amount, expr.unit)
    if isinstance(expr, CompoundUnitLiteral):
        return CompoundUnitLiteral(-expr.amount, expr.unit)
    return BinaryOp(Op.MULTIPLY, NumberLiteral(Decimal(-1)), expr)


class _Parser:
    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self.depth = 0

    @contextmanager
    def nested(self):
        if self.depth >= MAX_NESTING:
            raise ParseError("Expression is nested too deeply", self.current().pos)
        self.depth += 1
        try:
            yield
        finally:
            self.depth -= 1

    def current(self) -> Token:
        return self.tokens[self.pos]

    def peek(self, offset: int = 1) -> Token:
        index = min(self.pos + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        if token.kind != TokenKind.EOF:
            self.pos += 1
        return token

    def expect(self, kind: TokenKind) -> Token:
        token = self.current()
        if token.kind != kind:
            raise ParseError(
                f"Expected {kind.value}, got {token.kind.value}", token.pos
            )
        return self.advance()

    def match(self, *kinds: TokenKind) -> Optional[Token]:
        if self.current().kind in kinds:
            return self.advance()
        return None

    def at_keyword(self, *words: str) -> bool:
        token = self.current()
        return token.kind == TokenKind.IDENT and token.value.lower() in words

    def parse_line(self) -> Ast:
        if self.current().kind == TokenKind.EOF:
            return EmptyLine()

        token = self.current()
        if (
            token.kind == TokenKind.IDENT
            and not is_keyword(token.value)
            and self.peek().kind == TokenKind.EQUALS
        ):
            self.advance()
            self.advance()
            ast = Assignment(token.value, self.parse_additive())
        else:
            ast = Expression(self.parse_additive())

        self.expect(TokenKind.EOF)
        return ast

    def parse_additive(self) -> Expr:
        left = self.parse_multiply()
        while True:
            if self.match(TokenKind.PLUS):
                left = BinaryOp(Op.ADD, left, self.parse_multiply())
            elif self.match(TokenKind.MINUS):
                left = BinaryOp(Op.SUBTRACT, left, self.parse_multiply())
            elif self.at_keyword("in", "to"):
                self.advance()
                left = Conversion(left, self.parse_target())
            else:
                return left

    def parse_target(self) -> str:
        token = self.current()
        if token.kind == TokenKind.SYMBOL or (
            token.kind == TokenKind.IDENT and not is_keyword(token.value)
        ):
            self.advance()
            return token.value
        raise ParseError("Expected a unit or currency name", token.pos)

    def parse_multiply(self) -> Expr:
        left = self.parse_unary()
        while True:
            if self.match(TokenKind.STAR):
                op = Op.MULTIPLY
            elif self.match(TokenKind.SLASH):
                op = Op.DIVIDE
            else:
                return left
            left = BinaryOp(op, left, self.parse_unary())

    def parse_unary(self) -> Expr:
        negative = False
        while True:
            if self.match(TokenKind.MINUS):
                negative = not negative
            elif not self.match(TokenKind.PLUS):
                break
        expr = self.parse_power()
        return _negate(expr) if negative else expr

    def parse_power(self) -> Expr:
        base = self.parse_primary()
        if self.match(TokenKind.CARET):
            with self.nested():
                return BinaryOp(Op.POWER, base, self.parse_unary())
        return base

    def parse_primary(self) -> Expr:
        token = self.current()

        if token.kind == TokenKind.NUMBER:
            self.advance()
            return self._parse_number_suffix(_to_decimal(token))

        if token.kind == TokenKind.SYMBOL:
            self.advance()
            amount = _to_decimal(self.expect(TokenKind.NUMBER))
            return CurrencyLiteral(amount, Currency.parse(token.value))

        if token.kind == TokenKind.IDENT:
            if is_keyword(token.value):
                raise ParseError(f"Unexpected keyword '{token.value}'", token.pos)
            self.advance()
            if self.match(TokenKind.LPAREN):
                with self.nested():
                    return FunctionCall(token.value, tuple(self._parse_args()))
            # "USD 100" style prefix codes
            currency = Currency.parse(token.value)
            if currency is not None and self.current().kind == TokenKind.NUMBER:
                return CurrencyLiteral(_to_decimal(self.advance()), currency)
            return Variable(token.value)

        if self.match(TokenKind.LPAREN):
            with self.nested():
                expr = self.parse_additive()
            self.expect(TokenKind.RPAREN)
            return expr

        raise ParseError(f"Unexpected {token.kind.value}", token.pos)

    def _parse_number_suffix(self, amount: Decimal) -> Expr:
        token = self.current()

        if token.kind == TokenKind.PERCENT:
            self.advance()
            fraction = amount / 100
            if self.at_keyword("of"):
                self.advance()
                with self.nested():
                    return PercentageOf(fraction, self.parse_unary())
            return PercentageLiteral(fraction)

        if token.kind == TokenKind.SYMBOL:
            self.advance()
            return CurrencyLiteral(amount, Currency.parse(token.value))

        if (
            token.kind == TokenKind.IDENT
            and not is_keyword(token.value)
            and self.peek().kind != TokenKind.LPAREN
        ):
            self.advance()
            currency = Currency.parse(token.value)
            if currency is not None:
                return CurrencyLiteral(amount, currency)
            unit = parse_unit(token.value)
            if unit is not None:
                if unit.is_simple:
                    return UnitLiteral(amount, unit)
                return CompoundUnitLiteral(amount, unit)
            # "3 tax" reads as 3 * tax
            return BinaryOp(Op.MULTIPLY, NumberLiteral(amount), Variable(token.value))

        return NumberLiteral(amount)

    def _parse_args(self) -> List[Expr]:
        args: List[Expr] = []
        if self.match(TokenKind.RPAREN):
            return args
        while True:
            args.append(self.parse_additive())
            if self.match(TokenKind.COMMA):
                continue
            self.expect(TokenKind.RPAREN)
            return args


def parse_exact(line: str) -> Ast:
    """Parses the whole line or raises ParseError."""
    try:
        return _Parser(tokenize(line)).parse_line()
    except RecursionError:
        raise ParseError("Expression is nested too deeply")


def _is_fragment_start(line: str, offset: int) -> bool:
    """True when ``offset`` falls inside a word or number."""
    char, previous = line[offset], line[offset - 1]
    if char.isalpha() or char == "_":
        return previous.isalnum() or previous == "_"
    if char.isdigit() or char == ".":
        if previous.isdigit() or previous == ".":
            return True
        return previous == "," and offset >= 2 and line[offset - 2].isdigit()
    return False


def parse_line(line: str) -> Tuple[Optional[Ast], Optional[str]]:
    """Parses a line, skipping leading prose if needed.

    Returns ``(ast, None)`` on success and ``(None, error)`` otherwise.
    """
    try:
        return parse_exact(line), None
    except ParseError as e:
        logger.debug(f"Full parse failed for '{line}': {e}")

    for offset in range(1, len(line)):
        if line[offset].isspace() or _is_fragment_start(line, offset):
            continue
        suffix = line[offset:]
        try:
            ast = parse_exact(suffix)
        except ParseError:
            continue
        if isinstance(ast, EmptyLine):
            continue
        logger.debug(f"Recovered '{suffix}' from '{line}'")
        return ast, None

    return None, PARSE_FAILURE
