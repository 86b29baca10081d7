"""Dimensional unit algebra.

Every unit is a ``CompoundUnit``: a scale factor and offset into the base
representation of its dimensions, plus a display symbol. Base units are
meter, gram, second, degree Celsius and byte. Factors for the fixed unit
table are read from pint once, the first time the table is needed.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from functools import lru_cache
from typing import List, NamedTuple, Optional, Tuple

from pint import UnitRegistry

logger = logging.getLogger(__name__)


class Dimensions(NamedTuple):
    """Exponent vector over the supported base dimensions."""

    length: int = 0
    mass: int = 0
    time: int = 0
    temperature: int = 0
    data: int = 0

    def multiply(self, other: "Dimensions") -> "Dimensions":
        return Dimensions(*(a + b for a, b in zip(self, other)))

    def divide(self, other: "Dimensions") -> "Dimensions":
        return Dimensions(*(a - b for a, b in zip(self, other)))

    def power(self, exponent: int) -> "Dimensions":
        return Dimensions(*(a * exponent for a in self))

    @property
    def is_dimensionless(self) -> bool:
        return not any(self)


ZERO = Dimensions()

# Relative tolerance when matching a computed factor against the unit table
_FACTOR_TOLERANCE = Decimal("0.001")
_SUPERSCRIPTS = {2: "²", 3: "³"}


@dataclass(frozen=True)
class CompoundUnit:
    """A unit with ``base = (value + offset) * factor``."""

    factor: Decimal
    offset: Decimal
    dimensions: Dimensions
    symbol: str

    @property
    def is_simple(self) -> bool:
        """True for units of a single base dimension to the first power."""
        return sorted(self.dimensions) == [0, 0, 0, 0, 1]

    def multiply(self, other: "CompoundUnit") -> "CompoundUnit":
        if self.symbol == other.symbol:
            fallback = _raise_symbol(self.symbol, 2)
        else:
            fallback = f"{_group(self.symbol)}·{_group(other.symbol)}"
        return _derive(
            self.factor * other.factor,
            self.dimensions.multiply(other.dimensions),
            fallback,
        )

    def divide(self, other: "CompoundUnit") -> "CompoundUnit":
        if self.symbol == other.symbol:
            fallback = ""
        else:
            fallback = f"{self.symbol}/{_group(other.symbol)}"
        return _derive(
            self.factor / other.factor,
            self.dimensions.divide(other.dimensions),
            fallback,
        )

    def power(self, exponent: int) -> "CompoundUnit":
        return _derive(
            self.factor ** exponent,
            self.dimensions.power(exponent),
            _raise_symbol(self.symbol, exponent),
        )


def _group(symbol: str) -> str:
    if "/" in symbol or "·" in symbol:
        return f"({symbol})"
    return symbol


def _raise_symbol(symbol: str, exponent: int) -> str:
    if exponent == 1:
        return symbol
    if exponent < 0:
        return "1/" + _raise_symbol(symbol, -exponent)
    suffix = _SUPERSCRIPTS.get(exponent, f"^{exponent}")
    return f"{_group(symbol)}{suffix}"


def _derive(factor: Decimal, dimensions: Dimensions, fallback: str) -> CompoundUnit:
    if dimensions.is_dimensionless:
        symbol = ""
    else:
        symbol = lookup_symbol(factor, dimensions) or fallback
    return CompoundUnit(factor, Decimal(0), dimensions, symbol)


# --- Unit table ---

# (symbol, pint expression, aliases). Aliases are matched lowercased.
_SIMPLE_UNITS = [
    # Length
    ("km", "kilometer", ("km", "kilometer", "kilometers", "kilometre", "kilometres")),
    ("m", "meter", ("m", "meter", "meters", "metre", "metres")),
    ("cm", "centimeter", ("cm", "centimeter", "centimeters", "centimetre", "centimetres")),
    ("mm", "millimeter", ("mm", "millimeter", "millimeters", "millimetre", "millimetres")),
    ("mi", "mile", ("mi", "mile", "miles")),
    ("yd", "yard", ("yd", "yard", "yards")),
    ("ft", "foot", ("ft", "foot", "feet")),
    # "in" is the conversion keyword, so inches have no short alias
    ("in", "inch", ("inch", "inches")),
    # Mass
    ("kg", "kilogram", ("kg", "kilogram", "kilograms", "kilo", "kilos")),
    ("g", "gram", ("g", "gram", "grams")),
    ("mg", "milligram", ("mg", "milligram", "milligrams")),
    ("lb", "pound", ("lb", "lbs", "pound")),
    ("oz", "ounce", ("oz", "ounce", "ounces")),
    # Time
    ("yr", "year", ("yr", "yrs", "year", "years")),
    ("mo", "calendar_month", ("mo", "month", "months")),
    ("wk", "week", ("wk", "week", "weeks")),
    ("d", "day", ("d", "day", "days")),
    ("h", "hour", ("h", "hr", "hrs", "hour", "hours")),
    ("min", "minute", ("min", "mins", "minute", "minutes")),
    ("s", "second", ("s", "sec", "secs", "second", "seconds")),
    # Data, binary multiples
    ("TB", "tebibyte", ("tb", "terabyte", "terabytes")),
    ("GB", "gibibyte", ("gb", "gigabyte", "gigabytes")),
    ("MB", "mebibyte", ("mb", "megabyte", "megabytes")),
    ("KB", "kibibyte", ("kb", "kilobyte", "kilobytes")),
    ("B", "byte", ("b", "byte", "bytes")),
    # Temperature
    ("°C", "degree_Celsius", ("c", "°c", "celsius")),
    ("°F", "degree_Fahrenheit", ("f", "°f", "fahrenheit")),
    ("K", "kelvin", ("kelvin", "kelvins")),
    # Volume
    ("L", "liter", ("l", "liter", "liters", "litre", "litres")),
    ("mL", "milliliter", ("ml", "milliliter", "milliliters", "millilitre", "millilitres")),
]

# (symbol, base symbol, divisor symbol, exponent, aliases)
_DERIVED_UNITS = [
    ("km/h", "km", "h", 1, ("kph", "kmh", "km/h")),
    ("mph", "mi", "h", 1, ("mph",)),
    ("m/s", "m", "s", 1, ("mps", "m/s")),
    ("ft/s", "ft", "s", 1, ("fps", "ft/s")),
    ("m²", "m", None, 2, ("m2", "m²", "sqm")),
    ("km²", "km", None, 2, ("km2", "km²")),
    ("cm²", "cm", None, 2, ("cm2", "cm²")),
    ("ft²", "ft", None, 2, ("ft2", "ft²", "sqft")),
    ("m³", "m", None, 3, ("m3", "m³")),
]

_PINT_DIMENSIONS = {
    "[length]": 0,
    "[mass]": 1,
    "[time]": 2,
    "[temperature]": 3,
    "[information]": 4,
}
_BASE_UNITS = ("meter", "gram", "second", "degree_Celsius", "byte")


@dataclass(frozen=True)
class UnitDefinition:
    unit: CompoundUnit
    aliases: Tuple[str, ...]


def _to_decimal(value) -> Decimal:
    # pint works in floats; 15 significant digits drops binary noise
    return Decimal(format(value, ".15g"))


def _dimensions_of(quantity) -> Dimensions:
    exponents = [0] * len(ZERO)
    for name, exponent in quantity.dimensionality.items():
        if name not in _PINT_DIMENSIONS:
            raise ValueError(f"Unsupported dimension {name}")
        exponents[_PINT_DIMENSIONS[name]] = int(exponent)
    return Dimensions(*exponents)


def _from_pint(ureg: UnitRegistry, symbol: str, expression: str) -> CompoundUnit:
    quantity = ureg.Quantity(1, expression)
    dimensions = _dimensions_of(quantity)

    if dimensions.temperature:
        zero = ureg.Quantity(0, expression).to("degree_Celsius").magnitude
        hundred = ureg.Quantity(100, expression).to("degree_Celsius").magnitude
        slope = (hundred - zero) / 100
        return CompoundUnit(
            _to_decimal(slope), _to_decimal(zero / slope), dimensions, symbol
        )

    target = ureg.dimensionless
    for exponent, base in zip(dimensions, _BASE_UNITS):
        if exponent:
            target = target * ureg.Unit(base) ** exponent
    factor = quantity.to(target).magnitude
    return CompoundUnit(_to_decimal(factor), Decimal(0), dimensions, symbol)


@lru_cache(maxsize=None)
def unit_registry() -> Tuple[UnitDefinition, ...]:
    """Builds the fixed unit table. Computed once per process."""
    ureg = UnitRegistry()
    ureg.define("calendar_month = 30.436875 * day")

    definitions: List[UnitDefinition] = []
    by_symbol = {}
    for symbol, expression, aliases in _SIMPLE_UNITS:
        unit = _from_pint(ureg, symbol, expression)
        by_symbol[symbol] = unit
        definitions.append(UnitDefinition(unit, aliases))

    for symbol, base_symbol, divisor_symbol, exponent, aliases in _DERIVED_UNITS:
        base = by_symbol[base_symbol]
        factor = base.factor ** exponent
        dimensions = base.dimensions.power(exponent)
        if divisor_symbol:
            divisor = by_symbol[divisor_symbol]
            factor = factor / divisor.factor
            dimensions = dimensions.divide(divisor.dimensions)
        unit = CompoundUnit(factor, Decimal(0), dimensions, symbol)
        definitions.append(UnitDefinition(unit, aliases))

    logger.debug(f"Unit registry built with {len(definitions)} units")
    return tuple(definitions)


def parse_unit(name: str) -> Optional[CompoundUnit]:
    """Resolves a unit symbol or alias, first match in table order."""
    lowered = name.lower()
    for definition in unit_registry():
        if name == definition.unit.symbol or lowered in definition.aliases:
            return definition.unit
    return None


def lookup_symbol(factor: Decimal, dimensions: Dimensions) -> Optional[str]:
    """Finds a table unit with the same dimensions and a factor within 0.1%."""
    for definition in unit_registry():
        unit = definition.unit
        if unit.offset or unit.dimensions != dimensions:
            continue
        if abs(unit.factor - factor) <= abs(unit.factor) * _FACTOR_TOLERANCE:
            return unit.symbol
    return None


def convert(
    value: Decimal, from_unit: CompoundUnit, to_unit: CompoundUnit
) -> Optional[Decimal]:
    """Converts between units of equal dimensions. None if they differ."""
    if from_unit.dimensions != to_unit.dimensions:
        return None
    base = (value + from_unit.offset) * from_unit.factor
    return base / to_unit.factor - to_unit.offset


def known_unit_names() -> List[str]:
    names = []
    for definition in unit_registry():
        names.append(definition.unit.symbol)
        names.extend(definition.aliases)
    return names


class UnitType(Enum):
    """Named single-dimension unit families, in totals display order."""

    LENGTH = Dimensions(length=1)
    MASS = Dimensions(mass=1)
    TIME = Dimensions(time=1)
    DATA = Dimensions(data=1)
    TEMPERATURE = Dimensions(temperature=1)


def grouping_key(dimensions: Dimensions) -> Tuple[int, Tuple[int, ...]]:
    """Sort key placing unit families first, then other dimensions."""
    for index, unit_type in enumerate(UnitType):
        if unit_type.value == dimensions:
            return index, ()
    return len(UnitType), tuple(dimensions)
