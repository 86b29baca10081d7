"""Syntax tree for a single calculator line."""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Tuple, Union

from linecalc.currency import Currency
from linecalc.units import CompoundUnit


class Op(Enum):
    ADD = "+"
    SUBTRACT = "-"
    MULTIPLY = "*"
    DIVIDE = "/"
    POWER = "^"


@dataclass(frozen=True)
class NumberLiteral:
    value: Decimal


@dataclass(frozen=True)
class PercentageLiteral:
    value: Decimal  # fraction


@dataclass(frozen=True)
class CurrencyLiteral:
    amount: Decimal
    currency: Currency


@dataclass(frozen=True)
class UnitLiteral:
    amount: Decimal
    unit: CompoundUnit


@dataclass(frozen=True)
class CompoundUnitLiteral:
    amount: Decimal
    unit: CompoundUnit


@dataclass(frozen=True)
class Variable:
    name: str


@dataclass(frozen=True)
class BinaryOp:
    op: Op
    left: "Expr"
    right: "Expr"


@dataclass(frozen=True)
class PercentageOf:
    percentage: Decimal  # fraction
    value: "Expr"


@dataclass(frozen=True)
class Conversion:
    value: "Expr"
    target: str


@dataclass(frozen=True)
class FunctionCall:
    name: str
    args: Tuple["Expr", ...]


Expr = Union[
    NumberLiteral,
    PercentageLiteral,
    CurrencyLiteral,
    UnitLiteral,
    CompoundUnitLiteral,
    Variable,
    BinaryOp,
    PercentageOf,
    Conversion,
    FunctionCall,
]


@dataclass(frozen=True)
class EmptyLine:
    pass


@dataclass(frozen=True)
class Assignment:
    name: str
    expr: Expr


@dataclass(frozen=True)
class Expression:
    expr: Expr


Ast = Union[EmptyLine, Assignment, Expression]
