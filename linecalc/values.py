"""Result values and their display formatting."""

from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Optional, Union

from linecalc.currency import Currency
from linecalc.units import CompoundUnit

_CENT = Decimal("0.01")


@dataclass(frozen=True)
class Number:
    value: Decimal

    def __str__(self):
        return format_number(self.value)


@dataclass(frozen=True)
class Percentage:
    """A percentage stored as a fraction, 0.2 for 20%."""

    value: Decimal

    def __str__(self):
        return f"{format_number(self.value * 100)}%"


@dataclass(frozen=True)
class CurrencyValue:
    amount: Decimal
    currency: Currency

    def __str__(self):
        return self.currency.format_amount(format_currency(self.amount))


@dataclass(frozen=True)
class WithUnit:
    """An amount in a unit of one base dimension (km, h, kg)."""

    amount: Decimal
    unit: CompoundUnit

    def __str__(self):
        return _format_with_unit(self.amount, self.unit)


@dataclass(frozen=True)
class WithCompoundUnit:
    """An amount in a derived unit (km/h, m²)."""

    amount: Decimal
    unit: CompoundUnit

    def __str__(self):
        return _format_with_unit(self.amount, self.unit)


@dataclass(frozen=True)
class Empty:
    def __str__(self):
        return ""


@dataclass(frozen=True)
class Error:
    message: str

    def __str__(self):
        return f"Error: {self.message}"


Value = Union[Number, Percentage, CurrencyValue, WithUnit, WithCompoundUnit, Empty, Error]
UnitValue = (WithUnit, WithCompoundUnit)


def _round(amount: Decimal) -> Decimal:
    try:
        return amount.quantize(_CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        # Too many digits to quantize within the context precision
        return amount


def format_number(amount: Decimal) -> str:
    """At most two decimals; whole numbers print without a fraction."""
    rounded = _round(amount)
    if rounded == 0:
        return "0"
    if rounded == rounded.to_integral_value():
        return format(rounded.to_integral_value(), "f")
    return format(rounded, ".2f")


def format_currency(amount: Decimal) -> str:
    rounded = _round(amount)
    if rounded == 0:
        rounded = abs(rounded)
    return format(rounded, ".2f")


def _format_with_unit(amount: Decimal, unit: CompoundUnit) -> str:
    if not unit.symbol:
        return format_number(amount)
    return f"{format_number(amount)} {unit.symbol}"


def unit_value(amount: Decimal, unit: CompoundUnit) -> Value:
    """Wraps an amount in the value type its unit calls for."""
    if unit.dimensions.is_dimensionless:
        return Number(amount * unit.factor)
    if unit.is_simple:
        return WithUnit(amount, unit)
    return WithCompoundUnit(amount, unit)


def as_decimal(value: Value) -> Optional[Decimal]:
    """The numeric magnitude of a value, None for Empty and Error."""
    if isinstance(value, (Number, Percentage)):
        return value.value
    if isinstance(value, (CurrencyValue, WithUnit, WithCompoundUnit)):
        return value.amount
    return None


def is_valid(value: Value) -> bool:
    return not isinstance(value, (Empty, Error))


def with_scaled_amount(value: Value, amount: Decimal) -> Value:
    """Same tag as ``value`` carrying a new magnitude."""
    if isinstance(value, (Number, Percentage)):
        return replace(value, value=amount)
    if isinstance(value, (CurrencyValue, WithUnit, WithCompoundUnit)):
        return replace(value, amount=amount)
    return value


def to_dict(value: Value) -> Dict[str, Any]:
    """Structured form used by the JSON-RPC and HTTP surfaces."""
    if isinstance(value, Number):
        result = {"type": "number", "value": float(value.value)}
    elif isinstance(value, Percentage):
        result = {"type": "percentage", "value": float(value.value)}
    elif isinstance(value, CurrencyValue):
        result = {
            "type": "currency",
            "value": float(value.amount),
            "unit": value.currency.code,
        }
    elif isinstance(value, (WithUnit, WithCompoundUnit)):
        result = {"type": "unit", "value": float(value.amount), "unit": value.unit.symbol}
    elif isinstance(value, Empty):
        result = {"type": "empty"}
    elif isinstance(value, Error):
        result = {"type": "error", "message": value.message}
    else:
        raise TypeError(f"Unhandled value type: {type(value).__name__}")
    result["display"] = str(value)
    return result
