"""Evaluates parsed lines against variables and exchange rates."""

import logging
from decimal import Decimal, ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from linecalc.currency import Currency, RateGraph
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
from linecalc.units import CompoundUnit, convert, parse_unit
from linecalc.values import (
    CurrencyValue,
    Empty,
    Error,
    Number,
    Percentage,
    UnitValue,
    Value,
    WithCompoundUnit,
    WithUnit,
    as_decimal,
    unit_value,
    with_scaled_amount,
)

logger = logging.getLogger(__name__)


class EvalContext:
    """Variables and exchange rates visible to an evaluation."""

    def __init__(self, rates: Optional[RateGraph] = None):
        self.variables: Dict[str, Value] = {}
        self.rates = rates if rates is not None else RateGraph()

    def get_variable(self, name: str) -> Optional[Value]:
        return self.variables.get(name)

    def set_variable(self, name: str, value: Value):
        self.variables[name] = value

    def clear_variables(self):
        self.variables.clear()

    def copy(self) -> "EvalContext":
        context = EvalContext(self.rates.copy())
        context.variables = dict(self.variables)
        return context


def evaluate(ast: Ast, context: EvalContext) -> Value:
    """Evaluates a line. Failures come back as ``Error`` values."""
    if isinstance(ast, EmptyLine):
        return Empty()
    if isinstance(ast, Assignment):
        value = _eval_guarded(ast.expr, context)
        if not isinstance(value, Error):
            context.set_variable(ast.name, value)
        return value
    if isinstance(ast, Expression):
        return _eval_guarded(ast.expr, context)
    raise TypeError(f"Unhandled syntax node: {type(ast).__name__}")


def _eval_guarded(expr: Expr, context: EvalContext) -> Value:
    try:
        return _eval_expr(expr, context)
    except RecursionError:
        # Long operator chains nest as deep as they are long
        return Error("Expression is nested too deeply")


def _eval_expr(expr: Expr, context: EvalContext) -> Value:
    if isinstance(expr, NumberLiteral):
        return Number(expr.value)
    if isinstance(expr, PercentageLiteral):
        return Percentage(expr.value)
    if isinstance(expr, CurrencyLiteral):
        return CurrencyValue(expr.amount, expr.currency)
    if isinstance(expr, UnitLiteral):
        return WithUnit(expr.amount, expr.unit)
    if isinstance(expr, CompoundUnitLiteral):
        return WithCompoundUnit(expr.amount, expr.unit)
    if isinstance(expr, Variable):
        value = context.get_variable(expr.name)
        if value is None:
            return Error(f"Unknown variable: {expr.name}")
        return value
    if isinstance(expr, BinaryOp):
        left = _eval_expr(expr.left, context)
        if isinstance(left, Error):
            return left
        right = _eval_expr(expr.right, context)
        if isinstance(right, Error):
            return right
        try:
            return _eval_binary(expr.op, left, right, context)
        except ArithmeticError as e:
            logger.debug(f"Arithmetic failure in {expr.op.name}: {e!r}")
            return Error("Arithmetic error")
    if isinstance(expr, PercentageOf):
        return _eval_percentage_of(expr.percentage, _eval_expr(expr.value, context))
    if isinstance(expr, Conversion):
        return _eval_conversion(_eval_expr(expr.value, context), expr.target, context)
    if isinstance(expr, FunctionCall):
        args = [_eval_expr(arg, context) for arg in expr.args]
        return _eval_function(expr.name, args)
    raise TypeError(f"Unhandled expression node: {type(expr).__name__}")


def _eval_percentage_of(fraction: Decimal, value: Value) -> Value:
    if isinstance(value, Error):
        return value
    if isinstance(value, (Number, CurrencyValue, WithUnit, WithCompoundUnit)):
        return with_scaled_amount(value, as_decimal(value) * fraction)
    return Error("Cannot calculate percentage of this value")


def _is_unit(value: Value) -> bool:
    return isinstance(value, UnitValue)


def _eval_binary(op: Op, left: Value, right: Value, context: EvalContext) -> Value:
    # 100 + 20% = 120
    if isinstance(right, Percentage):
        base = as_decimal(left)
        if base is None:
            return Error("Invalid operands")
        p = right.value
        # Only currency and unit amounts keep their tag; 10% + 5% is 0.105
        tag = left if isinstance(left, (CurrencyValue, WithUnit, WithCompoundUnit)) else Number(base)
        if op == Op.ADD:
            return with_scaled_amount(tag, base * (1 + p))
        if op == Op.SUBTRACT:
            return with_scaled_amount(tag, base * (1 - p))
        if op == Op.MULTIPLY:
            return Number(base * p)
        if op == Op.DIVIDE:
            if p == 0:
                return Error("Division by zero")
            return Number(base / p)
        return Number(_power(base, p))

    if op == Op.MULTIPLY:
        # 45h * $85 = $3825
        if _is_unit(left) and isinstance(right, CurrencyValue):
            return CurrencyValue(left.amount * right.amount, right.currency)
        if isinstance(left, CurrencyValue) and _is_unit(right):
            return CurrencyValue(left.amount * right.amount, left.currency)
        # $340 * 12 = $4080
        if isinstance(left, CurrencyValue) and isinstance(right, Number):
            return CurrencyValue(left.amount * right.value, left.currency)
        if isinstance(left, Number) and isinstance(right, CurrencyValue):
            return CurrencyValue(left.value * right.amount, right.currency)

    composed = _compose_units(op, left, right, context)
    if composed is not None:
        return composed

    return _eval_coerced(op, left, right, context)


def _compose_units(op: Op, left: Value, right: Value, context: EvalContext) -> Optional[Value]:
    """Operations that change dimensions rather than adding like to like."""
    if _is_unit(left) and _is_unit(right) and op in (Op.MULTIPLY, Op.DIVIDE):
        if op == Op.MULTIPLY:
            unit = left.unit.multiply(right.unit)
            return unit_value(left.amount * right.amount, unit)
        if right.amount == 0:
            return Error("Division by zero")
        unit = left.unit.divide(right.unit)
        return unit_value(left.amount / right.amount, unit)

    if _is_unit(right) and op == Op.POWER:
        return Error("Invalid operands")

    if _is_unit(left) and op == Op.POWER:
        if not isinstance(right, Number) or right.value != right.value.to_integral_value():
            return Error("Invalid operands")
        exponent = int(right.value)
        return unit_value(_power(left.amount, right.value), left.unit.power(exponent))

    if isinstance(left, Number) and _is_unit(right) and op == Op.DIVIDE:
        if right.amount == 0:
            return Error("Division by zero")
        return unit_value(left.value / right.amount, right.unit.power(-1))

    if isinstance(left, CurrencyValue) and isinstance(right, CurrencyValue) and op == Op.DIVIDE:
        rate = context.rates.get_rate(right.currency, left.currency)
        if rate is None:
            return Error(f"No exchange rate for {right.currency.code} to {left.currency.code}")
        divisor = right.amount * rate
        if divisor == 0:
            return Error("Division by zero")
        return Number(left.amount / divisor)

    return None


def _eval_coerced(op: Op, left: Value, right: Value, context: EvalContext) -> Value:
    left_amount, right_amount = as_decimal(left), as_decimal(right)
    if left_amount is None or right_amount is None:
        return Error("Invalid operands")

    tag: Value = Number(Decimal(0))
    if isinstance(left, CurrencyValue) and isinstance(right, CurrencyValue):
        if left.currency != right.currency:
            right_amount = context.rates.convert(right_amount, right.currency, left.currency)
            if right_amount is None:
                return Error(
                    f"No exchange rate for {right.currency.code} to {left.currency.code}"
                )
        tag = left
    elif _is_unit(left) and _is_unit(right):
        if left.unit != right.unit:
            right_amount = convert(right_amount, right.unit, left.unit)
            if right_amount is None:
                return Error(f"Cannot convert {right.unit.symbol} to {left.unit.symbol}")
        tag = left
    elif (_is_unit(left) and isinstance(right, CurrencyValue)) or (
        isinstance(left, CurrencyValue) and _is_unit(right)
    ):
        if op in (Op.ADD, Op.SUBTRACT):
            return Error("Cannot add or subtract units and currency")
        return Error("Invalid operands")
    elif isinstance(left, (CurrencyValue, WithUnit, WithCompoundUnit)):
        tag = left
    elif isinstance(right, (CurrencyValue, WithUnit, WithCompoundUnit)):
        tag = right

    if op == Op.ADD:
        result = left_amount + right_amount
    elif op == Op.SUBTRACT:
        result = left_amount - right_amount
    elif op == Op.MULTIPLY:
        result = left_amount * right_amount
    elif op == Op.DIVIDE:
        if right_amount == 0:
            return Error("Division by zero")
        result = left_amount / right_amount
    elif op == Op.POWER:
        result = _power(left_amount, right_amount)
    else:
        raise TypeError(f"Unhandled operator: {op}")

    return with_scaled_amount(tag, result)


def _power(base: Decimal, exponent: Decimal) -> Decimal:
    if exponent == exponent.to_integral_value():
        return base ** int(exponent)
    return base ** exponent


def _eval_conversion(value: Value, target: str, context: EvalContext) -> Value:
    if isinstance(value, Error):
        return value

    currency = Currency.parse(target)
    if currency is not None:
        if isinstance(value, CurrencyValue):
            amount = context.rates.convert(value.amount, value.currency, currency)
            if amount is None:
                return Error(f"No exchange rate for {value.currency.code} to {currency.code}")
            return CurrencyValue(amount, currency)
        if isinstance(value, Number):
            return CurrencyValue(value.value, currency)
        return Error(f"Cannot convert {value} to {currency.code}")

    unit = parse_unit(target)
    if unit is not None:
        return _convert_to_unit(value, unit)

    return Error(f"Unknown target unit: {target}")


def _convert_to_unit(value: Value, unit: CompoundUnit) -> Value:
    if isinstance(value, Number):
        # "(500 usd / 50 usd) in months" labels the ratio
        return unit_value(value.value, unit)
    if _is_unit(value):
        amount = convert(value.amount, value.unit, unit)
        if amount is None:
            return Error(f"Cannot convert {value.unit.symbol} to {unit.symbol}")
        return unit_value(amount, unit)
    return Error(f"Cannot convert {value} to {unit.symbol}")


def _eval_function(name: str, args: Sequence[Value]) -> Value:
    for arg in args:
        if isinstance(arg, Error):
            return arg

    lowered = name.lower()
    amounts: List[Decimal] = [a for a in map(as_decimal, args) if a is not None]

    if lowered in ("sum", "total"):
        return Number(sum(amounts, Decimal(0)))
    if lowered in ("avg", "average"):
        if not amounts:
            return Number(Decimal(0))
        return Number(sum(amounts, Decimal(0)) / len(amounts))
    if lowered in ("min", "max"):
        if not amounts:
            return Error(f"No values for {lowered}")
        return Number(min(amounts) if lowered == "min" else max(amounts))

    if lowered in ("abs", "round", "floor", "ceil", "sqrt"):
        if not args or as_decimal(args[0]) is None:
            return Error(f"{lowered} requires a number")
        first = args[0]
        amount = as_decimal(first)
        if lowered == "sqrt":
            if amount < 0:
                return Error("Cannot take sqrt of negative number")
            return Number(amount.sqrt())
        if lowered == "abs":
            return with_scaled_amount(first, abs(amount))
        rounding = {"round": ROUND_HALF_UP, "floor": ROUND_FLOOR, "ceil": ROUND_CEILING}[lowered]
        return with_scaled_amount(first, amount.to_integral_value(rounding=rounding))

    return Error(f"Unknown function: {name}")
