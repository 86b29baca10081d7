"""Tests for the unit algebra."""

from decimal import Decimal

from linecalc.units import (
    ZERO,
    Dimensions,
    UnitType,
    convert,
    grouping_key,
    parse_unit,
)

TOLERANCE = Decimal("0.000001")


def close(a, b):
    return abs(Decimal(a) - Decimal(b)) < TOLERANCE


def test_dimension_arithmetic():
    speed = Dimensions(length=1).divide(Dimensions(time=1))
    assert speed == Dimensions(length=1, time=-1)
    assert speed.multiply(Dimensions(time=1)) == Dimensions(length=1)
    assert Dimensions(length=1).power(3) == Dimensions(length=3)
    assert ZERO.is_dimensionless
    assert not speed.is_dimensionless


def test_parse_unit_by_symbol_and_alias():
    assert parse_unit("km").factor == Decimal(1000)
    assert parse_unit("KM").symbol == "km"
    assert parse_unit("miles").symbol == "mi"
    assert parse_unit("hours").symbol == "h"
    assert parse_unit("GB").factor == Decimal(1024 ** 3)
    assert parse_unit("months").factor == Decimal(2629746)
    assert parse_unit("parsecs") is None


def test_compound_unit_aliases():
    assert parse_unit("kph").symbol == "km/h"
    assert parse_unit("mps").symbol == "m/s"
    assert parse_unit("m2").symbol == "m²"
    assert not parse_unit("m2").is_simple
    assert parse_unit("m").is_simple


def test_convert_linear_units():
    assert close(convert(Decimal(100), parse_unit("mi"), parse_unit("km")), "160.9344")
    assert close(convert(Decimal(1), parse_unit("GB"), parse_unit("MB")), 1024)
    assert close(convert(Decimal(2), parse_unit("h"), parse_unit("min")), 120)


def test_convert_round_trip():
    feet, meters = parse_unit("ft"), parse_unit("m")
    value = Decimal("123.45")
    there = convert(value, feet, meters)
    assert close(convert(there, meters, feet), value)


def test_convert_temperature_uses_offsets():
    celsius, fahrenheit, kelvin = parse_unit("C"), parse_unit("F"), parse_unit("kelvin")
    assert close(convert(Decimal(100), celsius, fahrenheit), 212)
    assert close(convert(Decimal(32), fahrenheit, celsius), 0)
    assert close(convert(Decimal(0), celsius, kelvin), "273.15")


def test_convert_rejects_different_dimensions():
    assert convert(Decimal(1), parse_unit("km"), parse_unit("kg")) is None


def test_multiply_prefers_known_symbols():
    meter = parse_unit("m")
    area = meter.multiply(meter)
    assert area.symbol == "m²"
    assert area.dimensions == Dimensions(length=2)

    speed = parse_unit("km").divide(parse_unit("h"))
    assert speed.symbol == "km/h"
    assert speed.multiply(parse_unit("h")).symbol == "km"


def test_synthesized_symbols():
    hour = parse_unit("h")
    assert hour.multiply(hour).symbol == "h²"
    assert parse_unit("kg").divide(parse_unit("m")).symbol == "kg/m"
    assert hour.power(-1).symbol == "1/h"
    assert parse_unit("kg").multiply(parse_unit("km")).symbol == "kg·km"


def test_dividing_same_dimension_is_dimensionless():
    ratio = parse_unit("km").divide(parse_unit("m"))
    assert ratio.dimensions.is_dimensionless
    assert ratio.factor == Decimal(1000)


def test_grouping_key_orders_unit_types():
    keys = [grouping_key(t.value) for t in UnitType]
    assert keys == sorted(keys)
    assert grouping_key(Dimensions(length=1)) < grouping_key(Dimensions(time=1))
    assert grouping_key(Dimensions(temperature=1)) < grouping_key(Dimensions(length=2))
