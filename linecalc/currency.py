"""Currency registry and the exchange rate graph."""

import logging
from collections import deque
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrencyDefinition:
    symbol: str
    code: str
    aliases: Tuple[str, ...]
    symbol_after: bool = False
    is_crypto: bool = False
    price_id: Optional[str] = None  # CoinGecko id for crypto prices


class Currency(Enum):
    USD = CurrencyDefinition("$", "USD", ("$", "usd", "dollar", "dollars"))
    EUR = CurrencyDefinition("€", "EUR", ("€", "eur", "euro", "euros"))
    GBP = CurrencyDefinition("£", "GBP", ("£", "gbp", "pounds"))
    JPY = CurrencyDefinition("¥", "JPY", ("¥", "jpy", "yen"))
    CHF = CurrencyDefinition("CHF", "CHF", ("chf", "franc", "francs"))
    CNY = CurrencyDefinition("¥", "CNY", ("cny", "rmb", "yuan"))
    CAD = CurrencyDefinition("C$", "CAD", ("c$", "cad"))
    AUD = CurrencyDefinition("A$", "AUD", ("a$", "aud"))
    INR = CurrencyDefinition("₹", "INR", ("₹", "inr", "rupee", "rupees"))
    KRW = CurrencyDefinition("₩", "KRW", ("₩", "krw", "won"))
    RUB = CurrencyDefinition("₽", "RUB", ("₽", "rub", "ruble", "rubles"), symbol_after=True)
    ILS = CurrencyDefinition("₪", "ILS", ("₪", "ils", "shekel", "shekels"))
    PLN = CurrencyDefinition("zł", "PLN", ("zł", "pln", "zloty"), symbol_after=True)
    UAH = CurrencyDefinition("₴", "UAH", ("₴", "uah", "hryvnia"))
    # Crypto
    BTC = CurrencyDefinition("₿", "BTC", ("₿", "btc", "bitcoin"), is_crypto=True, price_id="bitcoin")
    ETH = CurrencyDefinition("Ξ", "ETH", ("Ξ", "eth", "ethereum", "ether"), is_crypto=True, price_id="ethereum")
    SOL = CurrencyDefinition("◎", "SOL", ("◎", "sol", "solana"), is_crypto=True, price_id="solana")
    USDT = CurrencyDefinition("₮", "USDT", ("₮", "usdt", "tether"), is_crypto=True, price_id="tether")
    USDC = CurrencyDefinition("USDC", "USDC", ("usdc",), is_crypto=True, price_id="usd-coin")
    BNB = CurrencyDefinition("BNB", "BNB", ("bnb", "binance"), is_crypto=True, price_id="binancecoin")
    XRP = CurrencyDefinition("XRP", "XRP", ("xrp", "ripple"), is_crypto=True, price_id="ripple")
    ADA = CurrencyDefinition("₳", "ADA", ("₳", "ada", "cardano"), is_crypto=True, price_id="cardano")
    DOGE = CurrencyDefinition("Ð", "DOGE", ("Ð", "doge", "dogecoin"), is_crypto=True, price_id="dogecoin")
    DOT = CurrencyDefinition("DOT", "DOT", ("dot", "polkadot"), is_crypto=True, price_id="polkadot")
    LTC = CurrencyDefinition("Ł", "LTC", ("Ł", "ltc", "litecoin"), is_crypto=True, price_id="litecoin")
    LINK = CurrencyDefinition("LINK", "LINK", ("link", "chainlink"), is_crypto=True, price_id="chainlink")
    AVAX = CurrencyDefinition("AVAX", "AVAX", ("avax", "avalanche"), is_crypto=True, price_id="avalanche-2")
    MATIC = CurrencyDefinition("MATIC", "MATIC", ("matic", "polygon"), is_crypto=True, price_id="polygon-ecosystem-token")
    TON = CurrencyDefinition("TON", "TON", ("ton", "toncoin"), is_crypto=True, price_id="the-open-network")

    @property
    def symbol(self) -> str:
        return self.value.symbol

    @property
    def code(self) -> str:
        return self.value.code

    @property
    def is_crypto(self) -> bool:
        return self.value.is_crypto

    @property
    def price_id(self) -> Optional[str]:
        return self.value.price_id

    @classmethod
    def parse(cls, token: str) -> Optional["Currency"]:
        """Matches a symbol, ISO code or alias. First match in table order wins."""
        lowered = token.lower()
        for currency in cls:
            definition = currency.value
            if (
                token == definition.symbol
                or lowered == definition.code.lower()
                or lowered in definition.aliases
                or token in definition.aliases
            ):
                return currency
        return None

    @classmethod
    def from_code(cls, code: str) -> Optional["Currency"]:
        return cls.__members__.get(code.upper())

    def format_amount(self, amount: str) -> str:
        if self.value.symbol_after:
            return f"{amount}{self.symbol}"
        if self.symbol[-1].isalpha():
            return f"{self.symbol} {amount}"
        return f"{self.symbol}{amount}"


def currency_symbols() -> List[str]:
    """Non-alphabetic symbols, longest first, for the tokenizer."""
    symbols = {c.symbol for c in Currency if not c.symbol.isalpha()}
    symbols.update(alias.upper() for c in Currency for alias in c.value.aliases if "$" in alias)
    return sorted(symbols, key=len, reverse=True)


def letter_symbols() -> List[str]:
    """Single-letter symbols that only count when not followed by a letter."""
    return [c.symbol for c in Currency if len(c.symbol) == 1 and c.symbol.isalpha()]


# Offline defaults used until live rates are applied
DEFAULT_RATES = [
    (Currency.USD, Currency.EUR, Decimal("0.92")),
    (Currency.USD, Currency.GBP, Decimal("0.79")),
    (Currency.USD, Currency.JPY, Decimal("149.50")),
    (Currency.USD, Currency.RUB, Decimal("92")),
    (Currency.USD, Currency.ILS, Decimal("3.65")),
    (Currency.BTC, Currency.USD, Decimal("60000")),
]


class RateGraph:
    """Known exchange rates, each stored together with its inverse.

    Lookups walk the graph breadth first and multiply the rates along the
    first path found, so USD->EUR and EUR->GBP together give USD->GBP.
    """

    def __init__(self):
        self._rates: Dict[Currency, Dict[Currency, Decimal]] = {}

    def set_rate(self, from_currency: Currency, to_currency: Currency, rate: Decimal):
        self._rates.setdefault(from_currency, {})[to_currency] = rate
        if rate != 0:
            self._rates.setdefault(to_currency, {})[from_currency] = Decimal(1) / rate

    def get_rate(self, from_currency: Currency, to_currency: Currency) -> Optional[Decimal]:
        if from_currency == to_currency:
            return Decimal(1)

        visited = {from_currency}
        queue = deque([(from_currency, Decimal(1))])
        while queue:
            current, accumulated = queue.popleft()
            for neighbour, rate in self._rates.get(current, {}).items():
                if neighbour in visited:
                    continue
                if neighbour == to_currency:
                    return accumulated * rate
                visited.add(neighbour)
                queue.append((neighbour, accumulated * rate))
        return None

    def convert(
        self, amount: Decimal, from_currency: Currency, to_currency: Currency
    ) -> Optional[Decimal]:
        rate = self.get_rate(from_currency, to_currency)
        if rate is None:
            return None
        return amount * rate

    def load_defaults(self):
        for from_currency, to_currency, rate in DEFAULT_RATES:
            self.set_rate(from_currency, to_currency, rate)

    def apply_raw_rates(self, rates: Mapping[str, Any]) -> int:
        """Absorbs fetched rates keyed by code.

        Fiat values mean "1 USD = X code", crypto values mean
        "1 code = X USD". Unknown codes are skipped. Returns how many
        rates were applied.
        """
        applied = 0
        for code, raw in rates.items():
            currency = Currency.from_code(code)
            if currency is None or currency == Currency.USD:
                continue
            try:
                rate = Decimal(str(raw))
            except InvalidOperation:
                logger.warning(f"Ignoring malformed rate for {code}: {raw!r}")
                continue
            if not rate.is_finite() or rate <= 0:
                logger.warning(f"Ignoring non-positive rate for {code}: {raw!r}")
                continue
            if currency.is_crypto:
                self.set_rate(currency, Currency.USD, rate)
            else:
                self.set_rate(Currency.USD, currency, rate)
            applied += 1
        logger.debug(f"Applied {applied} of {len(rates)} exchange rates")
        return applied

    def copy(self) -> "RateGraph":
        graph = RateGraph()
        graph._rates = {key: dict(edges) for key, edges in self._rates.items()}
        return graph
