"""Tests for value display and serialization."""

from decimal import Decimal

from linecalc.currency import Currency
from linecalc.units import parse_unit
from linecalc.values import (
    CurrencyValue,
    Empty,
    Error,
    Number,
    Percentage,
    WithCompoundUnit,
    WithUnit,
    format_number,
    to_dict,
    unit_value,
    with_scaled_amount,
)


def test_format_number():
    assert format_number(Decimal("42")) == "42"
    assert format_number(Decimal("42.000")) == "42"
    assert format_number(Decimal("3.14159")) == "3.14"
    assert format_number(Decimal("100.5")) == "100.50"
    assert format_number(Decimal("2.005")) == "2.01"
    assert format_number(Decimal("-0.001")) == "0"
    assert format_number(Decimal("-7.5")) == "-7.50"


def test_display_of_each_value_type():
    assert str(Number(Decimal("95"))) == "95"
    assert str(Percentage(Decimal("0.2"))) == "20%"
    assert str(CurrencyValue(Decimal("3825"), Currency.USD)) == "$3825.00"
    assert str(CurrencyValue(Decimal("100"), Currency.RUB)) == "100.00₽"
    assert str(WithUnit(Decimal("160.9344"), parse_unit("km"))) == "160.93 km"
    assert str(WithCompoundUnit(Decimal("50"), parse_unit("m2"))) == "50 m²"
    assert str(Empty()) == ""
    assert str(Error("Division by zero")) == "Error: Division by zero"


def test_unit_value_picks_value_type():
    assert isinstance(unit_value(Decimal(5), parse_unit("km")), WithUnit)
    assert isinstance(unit_value(Decimal(5), parse_unit("kph")), WithCompoundUnit)
    ratio = parse_unit("km").divide(parse_unit("m"))
    assert unit_value(Decimal(2), ratio) == Number(Decimal(2000))


def test_with_scaled_amount_keeps_tag():
    value = CurrencyValue(Decimal(10), Currency.EUR)
    assert with_scaled_amount(value, Decimal(12)) == CurrencyValue(Decimal(12), Currency.EUR)
    assert with_scaled_amount(Number(Decimal(1)), Decimal(2)) == Number(Decimal(2))


def test_to_dict():
    assert to_dict(Number(Decimal("4"))) == {"type": "number", "value": 4.0, "display": "4"}
    assert to_dict(CurrencyValue(Decimal("92"), Currency.EUR)) == {
        "type": "currency",
        "value": 92.0,
        "unit": "EUR",
        "display": "€92.00",
    }
    assert to_dict(WithUnit(Decimal("3"), parse_unit("h"))) == {
        "type": "unit",
        "value": 3.0,
        "unit": "h",
        "display": "3 h",
    }
    assert to_dict(Empty()) == {"type": "empty", "display": ""}
    assert to_dict(Error("nope")) == {"type": "error", "message": "nope", "display": "Error: nope"}
