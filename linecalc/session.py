"""A sequence of evaluated lines with continuation and totals."""

import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from linecalc.currency import Currency, RateGraph
from linecalc.evaluator import EvalContext, evaluate
from linecalc.parser import ParseError, parse_exact, parse_line, tokenize
from linecalc.units import CompoundUnit, Dimensions, convert, grouping_key
from linecalc.values import (
    CurrencyValue,
    Error,
    Number,
    UnitValue,
    Value,
    as_decimal,
    is_valid,
    unit_value,
)

logger = logging.getLogger(__name__)

PREVIOUS_RESULT_NAMES = ("_", "ANS", "ans")
PSEUDO_VARIABLES = frozenset(("total",) + PREVIOUS_RESULT_NAMES)

# Explicit references to the previous result
_REFERENCE_RE = re.compile(r"\b(?:_|ans)\b", re.IGNORECASE)


@dataclass
class LineResult:
    input: str
    value: Value
    # Set once a later line has continued from this one
    is_continuation_source: bool = False


def _has_tokens(line: str) -> bool:
    try:
        return len(tokenize(line)) > 1
    except ParseError:
        return True


class Session:
    """Evaluates lines in order, threading the previous result forward.

    A line such as ``+ 5`` is first tried as ``_ + 5``. When that works the
    previous line is marked as consumed so ``sum()`` and
    ``grouped_totals()`` count the chain once.
    """

    def __init__(self, rates: Optional[RateGraph] = None):
        if rates is None:
            rates = RateGraph()
            rates.load_defaults()
        self.context = EvalContext(rates)
        self._lines: List[LineResult] = []

    @property
    def rates(self) -> RateGraph:
        return self.context.rates

    def evaluate(self, line: str) -> Value:
        value, consumed = self._evaluate_in(self.context, line)
        if consumed is not None:
            self._lines[consumed].is_continuation_source = True
        self._lines.append(LineResult(line, value))
        return value

    def evaluate_preview(self, line: str) -> Value:
        """Evaluates without touching history or variables."""
        value, _ = self._evaluate_in(self.context.copy(), line)
        return value

    def _last_valid_index(self) -> Optional[int]:
        for index in range(len(self._lines) - 1, -1, -1):
            if is_valid(self._lines[index].value):
                return index
        return None

    def _evaluate_in(self, context: EvalContext, line: str) -> Tuple[Value, Optional[int]]:
        context.set_variable("total", self.sum())
        previous = self._last_valid_index()
        if previous is not None:
            for name in PREVIOUS_RESULT_NAMES:
                context.set_variable(name, self._lines[previous].value)

        if context.get_variable("_") is not None and _has_tokens(line):
            try:
                ast = parse_exact("_ " + line)
            except ParseError:
                ast = None
            if ast is not None:
                value = evaluate(ast, context)
                if not isinstance(value, Error):
                    logger.debug(f"Continued previous result with '{line}'")
                    return value, previous

        ast, error = parse_line(line)
        if error:
            return Error(error), None
        value = evaluate(ast, context)
        if previous is not None and _REFERENCE_RE.search(line):
            return value, previous
        return value, None

    def lines(self) -> List[LineResult]:
        return list(self._lines)

    def inputs(self) -> List[str]:
        return [line.input for line in self._lines]

    def clear(self):
        """Drops history and variables. Exchange rates are kept."""
        self._lines.clear()
        self.context.clear_variables()

    def variables(self) -> List[Tuple[str, Value]]:
        return sorted(
            (name, value)
            for name, value in self.context.variables.items()
            if name not in PSEUDO_VARIABLES
        )

    def _counted_values(self) -> List[Value]:
        return [
            line.value
            for line in self._lines
            if not line.is_continuation_source and is_valid(line.value)
        ]

    def sum(self) -> Number:
        total = Decimal(0)
        for value in self._counted_values():
            total += as_decimal(value)
        return Number(total)

    def grouped_totals(self) -> List[Value]:
        """Currency total in the last currency seen, then one total per unit dimension."""
        currency_amounts: List[Tuple[Currency, Decimal]] = []
        unit_amounts: Dict[Dimensions, List[Tuple[CompoundUnit, Decimal]]] = {}

        for value in self._counted_values():
            if isinstance(value, CurrencyValue):
                currency_amounts.append((value.currency, value.amount))
            elif isinstance(value, UnitValue):
                unit_amounts.setdefault(value.unit.dimensions, []).append(
                    (value.unit, value.amount)
                )

        totals: List[Value] = []
        if currency_amounts:
            target = currency_amounts[-1][0]
            total = Decimal(0)
            for currency, amount in currency_amounts:
                converted = self.rates.convert(amount, currency, target)
                # Unconvertible amounts are added as they are
                total += amount if converted is None else converted
            if total != 0:
                totals.append(CurrencyValue(total, target))

        for dimensions in sorted(unit_amounts, key=grouping_key):
            entries = unit_amounts[dimensions]
            target_unit = entries[-1][0]
            total = Decimal(0)
            for unit, amount in entries:
                converted = convert(amount, unit, target_unit)
                total += amount if converted is None else converted
            if total != 0:
                totals.append(unit_value(total, target_unit))

        return totals

    def set_exchange_rate(
        self,
        from_currency: Union[Currency, str],
        to_currency: Union[Currency, str],
        rate: Union[Decimal, float, str],
    ):
        source = _as_currency(from_currency)
        target = _as_currency(to_currency)
        self.rates.set_rate(source, target, Decimal(str(rate)))

    def apply_raw_rates(self, rates: Mapping[str, Any]) -> int:
        return self.rates.apply_raw_rates(rates)


def _as_currency(currency: Union[Currency, str]) -> Currency:
    if isinstance(currency, Currency):
        return currency
    parsed = Currency.parse(currency)
    if parsed is None:
        raise ValueError(f"Unknown currency: {currency}")
    return parsed
