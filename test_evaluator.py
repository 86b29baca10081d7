"""Tests for single line evaluation."""

from decimal import Decimal

import pytest

from linecalc.currency import Currency, RateGraph
from linecalc.evaluator import EvalContext, evaluate
from linecalc.parser import parse_exact
from linecalc.values import CurrencyValue, Empty, Error, Number, WithCompoundUnit, WithUnit


@pytest.fixture
def context():
    rates = RateGraph()
    rates.load_defaults()
    return EvalContext(rates)


def run(line, context):
    return evaluate(parse_exact(line), context)


@pytest.mark.parametrize(
    "line, expected",
    [
        ("2 + 3 * 4", "14"),
        ("(2 + 3) * 4", "20"),
        ("2 ^ 10", "1024"),
        ("10 / 4", "2.50"),
        ("20% of 150", "30"),
        ("100 + 10%", "110"),
        ("110 - 10%", "99"),
        ("50 * 10%", "5"),
        ("$100 + 10%", "$110.00"),
        ("18% of $85", "$15.30"),
    ],
)
def test_arithmetic_and_percentages(context, line, expected):
    assert str(run(line, context)) == expected


@pytest.mark.parametrize(
    "line, expected",
    [
        ("45 h * $85", "$3825.00"),
        ("45h * 85 usd", "$3825.00"),
        ("$340 * 12", "$4080.00"),
        ("$10 / 3", "$3.33"),
        ("$50 / $200", "0.25"),
        ("$100 in EUR", "€92.00"),
        ("200 USD in EUR", "€184.00"),
        ("€92 in USD", "$100.00"),
        ("1 BTC in EUR", "€55200.00"),
        ("60000 USD in BTC", "₿1.00"),
        ("6000 USD in BTC", "₿0.10"),
        ("₽100", "100.00₽"),
        ("100 in EUR", "€100.00"),
        ("$50 + €46", "$100.00"),
    ],
)
def test_currency(context, line, expected):
    assert str(run(line, context)) == expected


@pytest.mark.parametrize(
    "line, expected",
    [
        ("5 m * 10 m", "50 m²"),
        ("2 m * 2 m", "4 m²"),
        ("100 km / 2 h", "50 km/h"),
        ("50 km/h * 2 h", "100 km"),
        ("50 km/h in m/s", "13.89 m/s"),
        ("1.5 km in m", "1500 m"),
        ("100 mi in km", "160.93 km"),
        ("1 GB in MB", "1024 MB"),
        ("100 C in F", "212 °F"),
        ("10 months", "10 mo"),
        ("2 h + 30 min", "2.50 h"),
        ("10 km / 5 km", "2"),
        ("12 in m", "12 m"),
    ],
)
def test_units(context, line, expected):
    assert str(run(line, context)) == expected


def test_unit_value_types(context):
    assert isinstance(run("5 km", context), WithUnit)
    assert isinstance(run("5 m * 10 m", context), WithCompoundUnit)


@pytest.mark.parametrize(
    "line, message",
    [
        ("10 / 0", "Division by zero"),
        ("100 / 0%", "Division by zero"),
        ("5 hours + 100 RUB", "Cannot add or subtract units and currency"),
        ("10 kg + $50", "Cannot add or subtract units and currency"),
        ("5 km / 0 km", "Division by zero"),
        ("x + 1", "Unknown variable: x"),
        ("$100 + 5 km", "Cannot add or subtract units and currency"),
        ("5 km + 3 kg", "Cannot convert kg to km"),
        ("5 km in EUR", "Cannot convert 5 km to EUR"),
        ("$5 in km", "Cannot convert $5.00 to km"),
        ("5 km in parsecs", "Unknown target unit: parsecs"),
        ("5 km ^ 1.5", "Invalid operands"),
        ("2 ^ 3 km", "Invalid operands"),
    ],
)
def test_errors(context, line, message):
    assert run(line, context) == Error(message)


def test_missing_exchange_rate():
    context = EvalContext(RateGraph())
    assert run("$1 in EUR", context) == Error("No exchange rate for USD to EUR")


@pytest.mark.parametrize(
    "line, expected",
    [
        ("sum(1, 2, 3)", "6"),
        ("total(4, 5)", "9"),
        ("avg(2, 4)", "3"),
        ("average()", "0"),
        ("min(3, 1, 2)", "1"),
        ("max(3, 1, 2)", "3"),
        ("sqrt(16)", "4"),
        ("abs(-5)", "5"),
        ("round(2.5)", "3"),
        ("floor(2.7)", "2"),
        ("ceil(2.1)", "3"),
        ("round($2.50)", "$3.00"),
        ("abs(-3 km)", "3 km"),
    ],
)
def test_functions(context, line, expected):
    assert str(run(line, context)) == expected


@pytest.mark.parametrize(
    "line, message",
    [
        ("sqrt(-4)", "Cannot take sqrt of negative number"),
        ("max()", "No values for max"),
        ("sqrt()", "sqrt requires a number"),
        ("foo(1)", "Unknown function: foo"),
        ("sum(1, y)", "Unknown variable: y"),
    ],
)
def test_function_errors(context, line, message):
    assert run(line, context) == Error(message)


def test_assignment_stores_value(context):
    assert run("rent = $1200", context) == CurrencyValue(Decimal(1200), Currency.USD)
    assert str(run("rent * 12", context)) == "$14400.00"


def test_failed_assignment_is_not_stored(context):
    assert isinstance(run("x = 1 / 0", context), Error)
    assert context.get_variable("x") is None


def test_empty_line(context):
    assert run("# nothing", context) == Empty()


def test_implicit_multiplication_by_variable(context):
    run("tax = 2", context)
    assert run("3 tax", context) == Number(Decimal(6))


def test_context_copy_is_independent(context):
    run("a = 1", context)
    copied = context.copy()
    copied.set_variable("b", Number(Decimal(2)))
    copied.rates.set_rate(Currency.USD, Currency.EUR, Decimal(2))
    assert context.get_variable("b") is None
    assert str(run("$1 in EUR", context)) == "€0.92"


def test_variable_reads_back_assigned_value(context):
    assigned = run("x = 10 km", context)
    assert run("x", context) == assigned


def test_percentage_plus_percentage_is_a_number(context):
    assert run("10% + 5%", context) == Number(Decimal("0.105"))
    assert run("10% - 5%", context) == Number(Decimal("0.095"))


def test_adjusted_percentage_variable(context):
    run("tax = 15%", context)
    assert run("100 + (tax + 5%)", context) == Number(Decimal("100.1575"))


def test_long_operator_chain_is_an_error(context):
    assert run("1" + " + 1" * 3000, context) == Error("Expression is nested too deeply")
