"""Tests for rate fetching and the rate cache."""

import json
import time
from unittest import mock

import requests

from linecalc import rates


def _response(payload):
    response = mock.Mock()
    response.json.return_value = payload
    response.raise_for_status.return_value = None
    return response


def test_fetch_rates_merges_crypto_prices():
    fiat = _response({"result": "success", "rates": {"USD": 1, "EUR": 0.9}})
    crypto = _response({"bitcoin": {"usd": 65000}, "ethereum": {"usd": 3000}})
    with mock.patch("linecalc.rates.requests.get", side_effect=[fiat, crypto]) as get:
        result = rates.fetch_rates()

    assert result == {"USD": 1, "EUR": 0.9, "BTC": 65000, "ETH": 3000}
    assert get.call_count == 2
    assert get.call_args.kwargs["params"]["vs_currencies"] == "usd"


def test_fetch_rates_without_crypto():
    fiat = _response({"rates": {"EUR": 0.9}})
    with mock.patch(
        "linecalc.rates.requests.get",
        side_effect=[fiat, requests.ConnectionError("offline")],
    ):
        assert rates.fetch_rates() == {"EUR": 0.9}


def test_fetch_rates_fails_without_fiat():
    with mock.patch("linecalc.rates.requests.get", side_effect=requests.Timeout("slow")):
        assert rates.fetch_rates() is None


def test_fetch_fiat_rates_rejects_malformed_payload():
    with mock.patch("linecalc.rates.requests.get", return_value=_response({"oops": 1})):
        assert rates.fetch_fiat_rates() is None


def test_cache_round_trip(tmp_path):
    path = str(tmp_path / "nested" / "rates.json")
    assert rates.save_rates_to_cache({"EUR": 0.9}, path)
    assert rates.is_cache_valid(path, ttl=3600)
    assert rates.load_cached_rates(path) == {"EUR": 0.9}


def test_expired_cache(tmp_path):
    path = tmp_path / "rates.json"
    path.write_text(json.dumps({"timestamp": int(time.time()) - 7200, "rates": {"EUR": 0.8}}))

    assert not rates.is_cache_valid(str(path), ttl=3600)
    assert rates.load_cached_rates(str(path), ttl=3600) is None
    assert rates.load_cached_rates(str(path), ttl=None) == {"EUR": 0.8}


def test_unreadable_cache(tmp_path):
    path = tmp_path / "rates.json"
    path.write_text("not json")
    assert rates.load_cached_rates(str(path), ttl=None) is None
    assert rates.load_cached_rates(str(tmp_path / "missing.json"), ttl=None) is None


def test_refresh_rates_saves_cache(tmp_path):
    path = str(tmp_path / "rates.json")
    with mock.patch("linecalc.rates.fetch_rates", return_value={"GBP": 0.8}):
        assert rates.refresh_rates(path) == {"GBP": 0.8}
    assert rates.load_cached_rates(path) == {"GBP": 0.8}


def test_refresh_rates_keeps_cache_on_failure(tmp_path):
    path = str(tmp_path / "rates.json")
    rates.save_rates_to_cache({"GBP": 0.8}, path)
    with mock.patch("linecalc.rates.fetch_rates", return_value=None):
        assert rates.refresh_rates(path) is None
    assert rates.load_cached_rates(path) == {"GBP": 0.8}
