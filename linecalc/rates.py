"""Live exchange rates and their on-disk cache.

Fetched rates are keyed by currency code:
- fiat codes mean "1 USD = X code" (EUR -> 0.92)
- crypto codes mean "1 code = X USD" (BTC -> 60000)
"""

import json
import logging
import os
import time
from typing import Dict, Optional

import requests

from linecalc import config
from linecalc.currency import Currency

logger = logging.getLogger(__name__)


def fetch_fiat_rates() -> Optional[Dict[str, float]]:
    try:
        response = requests.get(config.FIAT_RATES_URL, timeout=config.REQUEST_TIMEOUT)
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        logger.error(f"Failed to fetch fiat rates: {e}")
        return None
    except ValueError as e:
        logger.error(f"Failed to parse fiat rates: {e}")
        return None

    rates = data.get("rates") if isinstance(data, dict) else None
    if not isinstance(rates, dict):
        logger.error("Fiat rates response has no 'rates' object")
        return None
    return rates


def fetch_crypto_prices() -> Optional[Dict[str, float]]:
    ids = {c.price_id: c.code for c in Currency if c.is_crypto and c.price_id}
    if not ids:
        return {}

    params = {"ids": ",".join(ids), "vs_currencies": "usd"}
    try:
        response = requests.get(
            config.CRYPTO_PRICES_URL, params=params, timeout=config.REQUEST_TIMEOUT
        )
        response.raise_for_status()
        data = response.json()
    except requests.RequestException as e:
        logger.warning(f"Failed to fetch crypto prices: {e}")
        return None
    except ValueError as e:
        logger.warning(f"Failed to parse crypto prices: {e}")
        return None

    prices = {}
    for price_id, code in ids.items():
        entry = data.get(price_id) if isinstance(data, dict) else None
        if isinstance(entry, dict) and entry.get("usd") is not None:
            prices[code] = entry["usd"]
    return prices


def fetch_rates() -> Optional[Dict[str, float]]:
    """Fetches fiat rates plus crypto prices. None if fiat rates are unavailable."""
    rates = fetch_fiat_rates()
    if rates is None:
        return None

    crypto = fetch_crypto_prices()
    if crypto:
        rates.update(crypto)
    else:
        logger.warning("Continuing with fiat rates only")

    logger.info(f"Fetched {len(rates)} exchange rates")
    return rates


# --- Rate Cache ---


def save_rates_to_cache(rates: Dict[str, float], path: str = config.RATES_CACHE_FILE) -> bool:
    """Writes ``{"timestamp": ..., "rates": ...}``. Returns False on I/O errors."""
    try:
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(path, "w") as f:
            json.dump({"timestamp": int(time.time()), "rates": rates}, f, indent=2)
        logger.debug(f"Saved {len(rates)} rates to {path}")
        return True
    except OSError as e:
        logger.error(f"Failed to write rate cache {path}: {e}")
        return False


def _read_cache(path: str) -> Optional[dict]:
    if not os.path.exists(path):
        return None
    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Ignoring unreadable rate cache {path}: {e}")
        return None
    if not isinstance(data, dict) or not isinstance(data.get("rates"), dict):
        logger.warning(f"Ignoring malformed rate cache {path}")
        return None
    return data


def is_cache_valid(
    path: str = config.RATES_CACHE_FILE, ttl: int = config.EXCHANGE_RATE_CACHE_TTL
) -> bool:
    data = _read_cache(path)
    if data is None:
        return False
    try:
        age = time.time() - float(data.get("timestamp", 0))
    except (TypeError, ValueError):
        return False
    return age < ttl


def load_cached_rates(
    path: str = config.RATES_CACHE_FILE, ttl: Optional[int] = config.EXCHANGE_RATE_CACHE_TTL
) -> Optional[Dict[str, float]]:
    """Returns cached rates, or None when missing or older than ``ttl``.

    Pass ``ttl=None`` to accept a stale cache.
    """
    if ttl is not None and not is_cache_valid(path, ttl):
        return None
    data = _read_cache(path)
    if data is None:
        return None
    return data["rates"]


def refresh_rates(path: str = config.RATES_CACHE_FILE) -> Optional[Dict[str, float]]:
    """Fetches live rates and stores them in the cache."""
    rates = fetch_rates()
    if rates is not None:
        save_rates_to_cache(rates, path)
    return rates
